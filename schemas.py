"""
Database Schemas for the multi-seller storefront

Each Pydantic model represents a MongoDB collection (noted in its docstring).

Tenancy model: every shop is a seller. All seller-owned data (categories,
products, orders, clients) carries a seller_id field, and that field is the only
thing separating one shop's data from another's.

Prices are whole currency units (no minor unit), stored as integers.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field

Role = Literal["seller_admin", "super_admin"]
OrderStatus = Literal["processing", "processed", "cancelled", "refused"]


class GeoPoint(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class Seller(BaseModel):
    """
    Sellers collection schema
    Collection: "sellers" (_id = 7 character seller code)
    """
    name: str = Field(..., description="Owner name")
    shop_name: str = Field(..., description="Displayed shop name")
    phone: str = Field(..., description="Contact phone, also receives new-order messages")
    logo_url: Optional[str] = Field(None, description="Logo URL on the asset host")
    whatsapp_api_key: Optional[str] = Field(None, description="Messaging gateway API key")
    whatsapp_sender: Optional[str] = Field(None, description="Messaging gateway sender id")


class Identity(BaseModel):
    """
    Login identities
    Collection: "identities" (_id = uid)
    """
    email: str
    password_hash: str


class AppUser(BaseModel):
    """
    Link between a login identity and a seller
    Collection: "users" (_id = uid)
    """
    email: str
    role: Role = "seller_admin"
    seller_id: Optional[str] = Field(None, description="Owned seller, unset for super_admin")


class Category(BaseModel):
    """
    Categories collection schema
    Collection: "categories"
    """
    seller_id: str
    name: str = Field(..., min_length=1)


class Product(BaseModel):
    """
    Products collection schema
    Collection: "products"
    """
    seller_id: str
    name: str = Field(..., min_length=1)
    description: str = ""
    price: int = Field(..., ge=0, description="List price in whole units")
    category_id: str
    image_url: str = ""
    stock: Optional[int] = Field(None, description="Units in stock, unset when not tracked")
    promotion_price: Optional[int] = Field(None, ge=0, description="Discounted price, below price")
    is_out_of_stock: bool = Field(False, description="Manual out-of-stock flag")


class OrderItem(BaseModel):
    product_id: str
    name: str
    quantity: int = Field(..., gt=0)
    price: int = Field(..., ge=0, description="Unit price captured when added to the cart")


class DeliveryDetails(BaseModel):
    name: str
    first_name: str = ""
    phone: str
    second_contact: Optional[str] = None
    location: str
    gps: Optional[GeoPoint] = None
    date: str = Field(..., description="Requested delivery date, YYYY-MM-DD")
    time_slot: Optional[str] = None
    details: str = ""


class Order(BaseModel):
    """
    Orders collection schema
    Collection: "orders"
    """
    seller_id: str
    client_id: str = Field(..., description="Client phone number")
    reference: str = Field(..., description="Human-facing code CO-YYMMDD-NNNN")
    items: List[OrderItem]
    total: int = Field(..., ge=0)
    status: OrderStatus = "processing"
    delivery_details: DeliveryDetails


class Client(BaseModel):
    """
    Clients collection schema
    Collection: "clients" (_id = "{seller_id}_{phone}")
    """
    seller_id: str
    phone: str
    name: str
    first_name: Optional[str] = None
    delivery_place: Optional[str] = None
    location: Optional[GeoPoint] = None
