"""
Data access: one function per (entity, operation).

Seller-owned entities are read and written through ``TenantCollection`` so a
seller id is always part of the query. ``list_sellers`` is the only
cross-seller read.
"""
from typing import Any, Dict, List, Optional

from pymongo import DESCENDING

from database import (
    TenantCollection,
    create_document,
    delete_document,
    get_document,
    get_documents,
    get_db,
    serialize,
    update_document,
)
from schemas import AppUser, Category, Client, Order, OrderStatus, Product, Seller

SELLERS = "sellers"
USERS = "users"
CATEGORIES = "categories"
PRODUCTS = "products"
ORDERS = "orders"
CLIENTS = "clients"


def client_doc_id(seller_id: str, phone: str) -> str:
    return f"{seller_id}_{phone}"


# ============ Sellers ============
def list_sellers() -> List[dict]:
    return [serialize(d) for d in get_documents(SELLERS, sort=[("created_at", DESCENDING)])]


def get_seller(seller_id: str) -> Optional[dict]:
    return serialize(get_document(SELLERS, seller_id))


def add_seller(seller_id: str, seller: Seller) -> str:
    return create_document(SELLERS, seller, doc_id=seller_id)


def update_seller(seller_id: str, fields: Dict[str, Any]) -> bool:
    return update_document(SELLERS, seller_id, fields)


def delete_seller(seller_id: str) -> bool:
    return delete_document(SELLERS, seller_id)


# ============ Users ============
def create_app_user(uid: str, user: AppUser) -> str:
    return create_document(USERS, user, doc_id=uid)


def get_app_user(uid: str) -> Optional[dict]:
    return serialize(get_document(USERS, uid))


def find_app_user_by_email(email: str) -> Optional[dict]:
    return serialize(get_db()[USERS].find_one({"email": email}))


# ============ Categories ============
def get_categories(seller_id: str) -> List[dict]:
    return [serialize(d) for d in TenantCollection(CATEGORIES, seller_id).find(sort=[("name", 1)])]


def get_category(seller_id: str, category_id: str) -> Optional[dict]:
    return serialize(TenantCollection(CATEGORIES, seller_id).get(category_id))


def add_category(seller_id: str, name: str) -> str:
    return TenantCollection(CATEGORIES, seller_id).insert(Category(seller_id=seller_id, name=name))


def update_category(seller_id: str, category_id: str, name: str) -> bool:
    return TenantCollection(CATEGORIES, seller_id).update(category_id, {"name": name})


def delete_category(seller_id: str, category_id: str) -> bool:
    # products pointing at the category are left as they are
    return TenantCollection(CATEGORIES, seller_id).delete(category_id)


# ============ Products ============
def get_products(seller_id: str, category_id: Optional[str] = None, q: Optional[str] = None) -> List[dict]:
    flt: Dict[str, Any] = {}
    if category_id:
        flt["category_id"] = category_id
    if q:
        flt["name"] = {"$regex": q, "$options": "i"}
    return [serialize(d) for d in TenantCollection(PRODUCTS, seller_id).find(flt)]


def get_product(seller_id: str, product_id: str) -> Optional[dict]:
    return serialize(TenantCollection(PRODUCTS, seller_id).get(product_id))


def add_product(product: Product) -> str:
    return TenantCollection(PRODUCTS, product.seller_id).insert(product)


def update_product(seller_id: str, product_id: str, fields: Dict[str, Any]) -> bool:
    return TenantCollection(PRODUCTS, seller_id).update(product_id, fields)


def delete_product(seller_id: str, product_id: str) -> bool:
    return TenantCollection(PRODUCTS, seller_id).delete(product_id)


# ============ Orders ============
def create_order(order: Order) -> str:
    return TenantCollection(ORDERS, order.seller_id).insert(order)


def get_orders(seller_id: str) -> List[dict]:
    docs = TenantCollection(ORDERS, seller_id).find(sort=[("created_at", DESCENDING)])
    return [serialize(d) for d in docs]


def get_client_orders(seller_id: str, client_id: str) -> List[dict]:
    docs = TenantCollection(ORDERS, seller_id).find({"client_id": client_id}, sort=[("created_at", DESCENDING)])
    return [serialize(d) for d in docs]


def get_order(seller_id: str, order_id: str) -> Optional[dict]:
    return serialize(TenantCollection(ORDERS, seller_id).get(order_id))


def update_order_status(seller_id: str, order_id: str, status: OrderStatus) -> bool:
    return TenantCollection(ORDERS, seller_id).update(order_id, {"status": status})


# ============ Clients ============
def get_client(seller_id: str, phone: str) -> Optional[dict]:
    return serialize(TenantCollection(CLIENTS, seller_id).get(client_doc_id(seller_id, phone)))


def save_client(client: Client) -> str:
    """Merge-write a client. Unset optional fields never erase stored values."""
    doc_id = client_doc_id(client.seller_id, client.phone)
    fields = client.model_dump(exclude_none=True, exclude={"seller_id"})
    TenantCollection(CLIENTS, client.seller_id).upsert(doc_id, fields)
    return doc_id


def update_client_info(seller_id: str, phone: str, fields: Dict[str, Any]) -> bool:
    return TenantCollection(CLIENTS, seller_id).update(client_doc_id(seller_id, phone), fields)


def get_all_clients(seller_id: str) -> List[dict]:
    return [serialize(d) for d in TenantCollection(CLIENTS, seller_id).find(sort=[("name", 1)])]
