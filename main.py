import os
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import BackgroundTasks, Depends, FastAPI, File, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import AliasChoices, BaseModel, Field
from pymongo.errors import PyMongoError
import requests

import config
import database
import repository
from auth import (
    IdentityExists,
    authenticate,
    bootstrap_super_admin,
    create_token,
    get_current_user,
    require_super_admin,
    seller_scope,
)
from cart import Cart, CartRegistry, CartSession
from catalog import display_product, is_available, listing, validate_product_fields
from database import DatabaseUnavailable
from notifications import RelayResult, notify_new_order, notify_status_change, send_whatsapp_message
from orders import (
    DeliveryForm,
    OrderError,
    change_order_status,
    clean_phone,
    filter_orders,
    order_stats,
    place_order,
)
from schemas import OrderStatus, Product, Seller
from storage import UploadError, UploadNotConfigured, upload_image
from tenants import ProvisioningError, generate_seller_id, provision_seller

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
logger = logging.getLogger("storefront")


@asynccontextmanager
async def lifespan(app: FastAPI):
    if database.db is not None:
        try:
            bootstrap_super_admin()
        except (PyMongoError, IdentityExists):
            logger.exception("Super admin bootstrap failed")
    yield


app = FastAPI(title="Storefront API", version="1.0.0", lifespan=lifespan)
app.state.carts = CartRegistry()

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in config.ALLOWED_ORIGINS],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Error handlers
@app.exception_handler(DatabaseUnavailable)
async def setup_required_handler(request: Request, exc: DatabaseUnavailable):
    return JSONResponse(status_code=503, content={"detail": "setup_required"})


@app.exception_handler(PyMongoError)
async def database_error_handler(request: Request, exc: PyMongoError):
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=503, content={"detail": "database_error"})


@app.exception_handler(UploadNotConfigured)
async def upload_not_configured_handler(request: Request, exc: UploadNotConfigured):
    return JSONResponse(status_code=503, content={"detail": "upload_not_configured"})


@app.exception_handler(UploadError)
async def upload_error_handler(request: Request, exc: UploadError):
    return JSONResponse(status_code=502, content={"detail": str(exc)})


@app.exception_handler(OrderError)
async def order_error_handler(request: Request, exc: OrderError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error: %s", exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# Helpers
def get_carts(request: Request) -> CartRegistry:
    return request.app.state.carts


def public_seller(doc: dict) -> dict:
    return {
        "id": doc["id"],
        "shop_name": doc.get("shop_name"),
        "logo_url": doc.get("logo_url"),
    }


def admin_seller(doc: dict) -> dict:
    return {
        "id": doc["id"],
        "name": doc.get("name"),
        "shop_name": doc.get("shop_name"),
        "phone": doc.get("phone"),
        "logo_url": doc.get("logo_url"),
        "whatsapp_sender": doc.get("whatsapp_sender"),
        "has_whatsapp_credentials": bool(doc.get("whatsapp_api_key") and doc.get("whatsapp_sender")),
        "created_at": doc.get("created_at"),
    }


def require_seller(seller_id: str) -> dict:
    seller = repository.get_seller(seller_id)
    if not seller:
        raise HTTPException(status_code=404, detail="Seller not found")
    return seller


@app.get("/")
def root():
    return {"name": "Storefront API", "status": "ok", "configured": database.db is not None}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": [],
    }
    try:
        db = database.db
        if db is not None:
            response["database"] = "✅ Connected & Working"
            response["database_url"] = "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set"
            response["database_name"] = db.name if hasattr(db, "name") else "❌ Unknown"
            response["connection_status"] = "Connected"
            try:
                response["collections"] = db.list_collection_names()[:10]
            except Exception as e:
                response["database"] = f"⚠️ Connected but Error: {str(e)[:80]}"
        else:
            response["database"] = "⚠️ Setup required: DATABASE_URL / DATABASE_NAME not set"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response


# ============ Auth ============
class LoginDTO(BaseModel):
    email: str
    password: str


@app.post("/api/auth/login")
def login(payload: LoginDTO):
    uid = authenticate(payload.email, payload.password)
    if not uid:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    user = repository.get_app_user(uid)
    if not user:
        # identity without a user link, e.g. left behind by a failed provisioning
        raise HTTPException(status_code=403, detail="Account not linked to a seller")
    return {"token": create_token(uid, user["role"]), "user": user}


@app.get("/api/auth/me")
def me(user: Dict[str, Any] = Depends(get_current_user)):
    return user


# ============ Sellers (super admin) ============
class CreateSellerDTO(BaseModel):
    id: Optional[str] = Field(None, pattern=r"^[A-Z0-9]{7}$")
    name: str = Field(..., min_length=1)
    shop_name: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=6)


class UpdateSellerDTO(BaseModel):
    name: Optional[str] = None
    shop_name: Optional[str] = None
    phone: Optional[str] = None
    logo_url: Optional[str] = None
    whatsapp_api_key: Optional[str] = None
    whatsapp_sender: Optional[str] = None


@app.get("/api/admin/sellers", response_model=List[dict])
def list_sellers(user: Dict[str, Any] = Depends(require_super_admin)):
    return [admin_seller(s) for s in repository.list_sellers()]


@app.get("/api/admin/sellers/new-id")
def new_seller_id(user: Dict[str, Any] = Depends(require_super_admin)):
    return {"id": generate_seller_id()}


@app.post("/api/admin/sellers", status_code=201)
def create_seller(payload: CreateSellerDTO, user: Dict[str, Any] = Depends(require_super_admin)):
    seller_id = payload.id or generate_seller_id()
    seller = Seller(name=payload.name, shop_name=payload.shop_name, phone=clean_phone(payload.phone))
    try:
        return provision_seller(seller_id, seller, payload.email, payload.password)
    except IdentityExists as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ProvisioningError as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.patch("/api/admin/sellers/{seller_id}")
def update_seller(seller_id: str, payload: UpdateSellerDTO, user: Dict[str, Any] = Depends(require_super_admin)):
    fields = payload.model_dump(exclude_unset=True)
    if not repository.update_seller(seller_id, fields):
        raise HTTPException(status_code=404, detail="Seller not found")
    return admin_seller(repository.get_seller(seller_id))


@app.post("/api/admin/sellers/{seller_id}/logo")
def upload_seller_logo(seller_id: str, file: UploadFile = File(...),
                       user: Dict[str, Any] = Depends(require_super_admin)):
    require_seller(seller_id)
    url = upload_image(file.file, file.filename or "logo", file.content_type)
    repository.update_seller(seller_id, {"logo_url": url})
    return {"id": seller_id, "logo_url": url}


@app.get("/api/admin/seller")
def current_seller(seller_id: str = Depends(seller_scope)):
    return admin_seller(require_seller(seller_id))


# ============ Categories (admin) ============
class CategoryDTO(BaseModel):
    name: str = Field(..., min_length=1)


@app.get("/api/admin/categories", response_model=List[dict])
def admin_list_categories(seller_id: str = Depends(seller_scope)):
    return repository.get_categories(seller_id)


@app.post("/api/admin/categories", status_code=201)
def admin_add_category(payload: CategoryDTO, seller_id: str = Depends(seller_scope)):
    return {"id": repository.add_category(seller_id, payload.name.strip())}


@app.patch("/api/admin/categories/{category_id}")
def admin_update_category(category_id: str, payload: CategoryDTO, seller_id: str = Depends(seller_scope)):
    if not repository.update_category(seller_id, category_id, payload.name.strip()):
        raise HTTPException(status_code=404, detail="Category not found")
    return repository.get_category(seller_id, category_id)


@app.delete("/api/admin/categories/{category_id}")
def admin_delete_category(category_id: str, seller_id: str = Depends(seller_scope)):
    if not repository.delete_category(seller_id, category_id):
        raise HTTPException(status_code=404, detail="Category not found")
    return {"ok": True}


# ============ Products (admin) ============
class ProductDTO(BaseModel):
    name: str = Field(..., min_length=1)
    description: str = ""
    price: int = Field(..., ge=0)
    category_id: str
    image_url: str = ""
    stock: Optional[int] = None
    promotion_price: Optional[int] = Field(None, ge=0)
    is_out_of_stock: bool = False


class ProductUpdateDTO(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    price: Optional[int] = Field(None, ge=0)
    category_id: Optional[str] = None
    image_url: Optional[str] = None
    stock: Optional[int] = None
    promotion_price: Optional[int] = Field(None, ge=0)
    is_out_of_stock: Optional[bool] = None


# the only product fields a PATCH may set back to null
CLEARABLE_PRODUCT_FIELDS = {"stock", "promotion_price"}


def check_category(seller_id: str, category_id: str) -> None:
    if not repository.get_category(seller_id, category_id):
        raise HTTPException(status_code=400, detail="Unknown category")


@app.get("/api/admin/products", response_model=List[dict])
def admin_list_products(category_id: Optional[str] = None, q: Optional[str] = None,
                        seller_id: str = Depends(seller_scope)):
    return listing(repository.get_products(seller_id, category_id, q))


@app.post("/api/admin/products", status_code=201)
def admin_add_product(payload: ProductDTO, seller_id: str = Depends(seller_scope)):
    error = validate_product_fields(payload.price, payload.promotion_price, payload.stock)
    if error:
        raise HTTPException(status_code=400, detail=error)
    check_category(seller_id, payload.category_id)
    product = Product(seller_id=seller_id, **payload.model_dump())
    return {"id": repository.add_product(product)}


@app.get("/api/admin/products/{product_id}")
def admin_get_product(product_id: str, seller_id: str = Depends(seller_scope)):
    product = repository.get_product(seller_id, product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return display_product(product)


@app.patch("/api/admin/products/{product_id}")
def admin_update_product(product_id: str, payload: ProductUpdateDTO, seller_id: str = Depends(seller_scope)):
    current = repository.get_product(seller_id, product_id)
    if not current:
        raise HTTPException(status_code=404, detail="Product not found")
    fields = payload.model_dump(exclude_unset=True)
    cleared = sorted(k for k, v in fields.items() if v is None and k not in CLEARABLE_PRODUCT_FIELDS)
    if cleared:
        raise HTTPException(status_code=400, detail=f"Cannot clear {', '.join(cleared)}")
    merged = {**current, **fields}
    error = validate_product_fields(merged.get("price"), merged.get("promotion_price"), merged.get("stock"))
    if error:
        raise HTTPException(status_code=400, detail=error)
    if "category_id" in fields:
        check_category(seller_id, fields["category_id"])
    repository.update_product(seller_id, product_id, fields)
    return display_product(repository.get_product(seller_id, product_id))


@app.delete("/api/admin/products/{product_id}")
def admin_delete_product(product_id: str, seller_id: str = Depends(seller_scope)):
    if not repository.delete_product(seller_id, product_id):
        raise HTTPException(status_code=404, detail="Product not found")
    return {"ok": True}


@app.post("/api/admin/products/{product_id}/image")
def admin_upload_product_image(product_id: str, file: UploadFile = File(...),
                               seller_id: str = Depends(seller_scope)):
    if not repository.get_product(seller_id, product_id):
        raise HTTPException(status_code=404, detail="Product not found")
    url = upload_image(file.file, file.filename or "product", file.content_type)
    repository.update_product(seller_id, product_id, {"image_url": url})
    return {"id": product_id, "image_url": url}


# ============ Clients (admin) ============
class ClientUpdateDTO(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    first_name: Optional[str] = None
    delivery_place: Optional[str] = None


@app.get("/api/admin/clients", response_model=List[dict])
def admin_list_clients(seller_id: str = Depends(seller_scope)):
    return repository.get_all_clients(seller_id)


@app.patch("/api/admin/clients/{phone}")
def admin_update_client(phone: str, payload: ClientUpdateDTO, seller_id: str = Depends(seller_scope)):
    phone = clean_phone(phone)
    if not repository.update_client_info(seller_id, phone, payload.model_dump(exclude_unset=True)):
        raise HTTPException(status_code=404, detail="Client not found")
    return repository.get_client(seller_id, phone)


# ============ Orders (admin) ============
class OrderStatusDTO(BaseModel):
    status: OrderStatus


@app.get("/api/admin/orders", response_model=List[dict])
def admin_list_orders(status: Optional[OrderStatus] = None, start: Optional[datetime] = None,
                      end: Optional[datetime] = None, seller_id: str = Depends(seller_scope)):
    return filter_orders(repository.get_orders(seller_id), status, start, end)


@app.get("/api/admin/orders/{order_id}")
def admin_get_order(order_id: str, seller_id: str = Depends(seller_scope)):
    order = repository.get_order(seller_id, order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


@app.patch("/api/admin/orders/{order_id}/status")
def admin_update_order_status(order_id: str, payload: OrderStatusDTO, background_tasks: BackgroundTasks,
                              seller_id: str = Depends(seller_scope)):
    order = change_order_status(seller_id, order_id, payload.status)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    background_tasks.add_task(notify_status_change, seller_id, order["client_id"], order["reference"], payload.status)
    return order


@app.get("/api/admin/dashboard")
def admin_dashboard(start: Optional[datetime] = None, end: Optional[datetime] = None,
                    seller_id: str = Depends(seller_scope)):
    orders = filter_orders(repository.get_orders(seller_id), start=start, end=end)
    return order_stats(orders).model_dump()


# ============ Storefront (client) ============
class AddToCartDTO(BaseModel):
    product_id: str


class QuantityDTO(BaseModel):
    quantity: int


@app.get("/api/sellers/{seller_id}")
@app.get("/api/client/{seller_id}")
def client_landing(seller_id: str):
    return public_seller(require_seller(seller_id))


@app.get("/api/client/{seller_id}/{phone}/catalog")
def client_catalog(seller_id: str, phone: str, category_id: Optional[str] = None, q: Optional[str] = None,
                   name: Optional[str] = None, carts: CartRegistry = Depends(get_carts)):
    seller = require_seller(seller_id)
    if name and name.strip():
        carts.session(seller_id, clean_phone(phone)).client_name = name.strip()
    return {
        "seller": public_seller(seller),
        "categories": repository.get_categories(seller_id),
        "products": listing(repository.get_products(seller_id, category_id, q)),
    }


def edit_cart(carts: CartRegistry, seller_id: str, phone: str, change) -> dict:
    """Apply ``change`` to an open cart, then release the session if it is left empty."""
    require_seller(seller_id)
    phone = clean_phone(phone)
    session = carts.find(seller_id, phone)
    if session is None:
        return Cart().to_dict()
    change(session.cart)
    carts.release(seller_id, phone)
    return session.cart.to_dict()


@app.get("/api/client/{seller_id}/{phone}/cart")
def client_get_cart(seller_id: str, phone: str, carts: CartRegistry = Depends(get_carts)):
    return edit_cart(carts, seller_id, phone, lambda cart: None)


@app.post("/api/client/{seller_id}/{phone}/cart/items")
def client_add_to_cart(seller_id: str, phone: str, payload: AddToCartDTO, carts: CartRegistry = Depends(get_carts)):
    require_seller(seller_id)
    product = repository.get_product(seller_id, payload.product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    if not is_available(product):
        raise HTTPException(status_code=409, detail="out_of_stock")
    cart = carts.session(seller_id, clean_phone(phone)).cart
    cart.add_item(product)
    return cart.to_dict()


@app.patch("/api/client/{seller_id}/{phone}/cart/items/{product_id}")
def client_update_cart_item(seller_id: str, phone: str, product_id: str, payload: QuantityDTO,
                            carts: CartRegistry = Depends(get_carts)):
    return edit_cart(carts, seller_id, phone, lambda cart: cart.update_quantity(product_id, payload.quantity))


@app.delete("/api/client/{seller_id}/{phone}/cart/items/{product_id}")
def client_remove_cart_item(seller_id: str, phone: str, product_id: str, carts: CartRegistry = Depends(get_carts)):
    return edit_cart(carts, seller_id, phone, lambda cart: cart.remove_item(product_id))


@app.delete("/api/client/{seller_id}/{phone}/cart")
def client_clear_cart(seller_id: str, phone: str, carts: CartRegistry = Depends(get_carts)):
    return edit_cart(carts, seller_id, phone, lambda cart: cart.clear())


@app.post("/api/client/{seller_id}/{phone}/orders", status_code=201)
def client_place_order(seller_id: str, phone: str, form: DeliveryForm, background_tasks: BackgroundTasks,
                       carts: CartRegistry = Depends(get_carts)):
    seller = require_seller(seller_id)
    key = clean_phone(phone)
    session = carts.find(seller_id, key) or CartSession()
    order = place_order(seller_id, phone, session, form)
    carts.drop(seller_id, key)
    background_tasks.add_task(notify_new_order, seller_id, seller.get("phone"), order["client_id"], order["reference"])
    return order


@app.get("/api/client/{seller_id}/{phone}/orders", response_model=List[dict])
def client_orders(seller_id: str, phone: str):
    return repository.get_client_orders(seller_id, clean_phone(phone))


# ============ WhatsApp relay ============
class RelayRequest(BaseModel):
    seller_id: str = Field("", validation_alias=AliasChoices("sellerId", "seller_id"))
    phone: str = ""
    text: str = ""


@app.post("/api/notifications/whatsapp", response_model=RelayResult, response_model_exclude_none=True)
def relay_whatsapp(payload: RelayRequest):
    try:
        return send_whatsapp_message(payload.seller_id, payload.phone, payload.text)
    except requests.RequestException as e:
        logger.exception("WhatsApp gateway unreachable")
        raise HTTPException(status_code=502, detail=f"Gateway error: {str(e)[:80]}")


# ============ Schemas Discovery ============
@app.get("/schema")
def get_schema():
    return {
        "sellers": {
            "fields": ["name", "shop_name", "phone", "logo_url", "whatsapp_api_key", "whatsapp_sender"],
            "indexes": [],
        },
        "users": {"fields": ["email", "role", "seller_id"], "indexes": ["email"]},
        "identities": {"fields": ["email", "password_hash"], "indexes": ["email"]},
        "categories": {"fields": ["seller_id", "name"], "indexes": ["seller_id"]},
        "products": {
            "fields": [
                "seller_id",
                "name",
                "description",
                "price",
                "category_id",
                "image_url",
                "stock",
                "promotion_price",
                "is_out_of_stock",
            ],
            "indexes": ["seller_id", "category_id"],
        },
        "orders": {
            "fields": ["seller_id", "client_id", "reference", "items", "total", "status", "delivery_details"],
            "indexes": ["seller_id", "client_id"],
        },
        "clients": {
            "fields": ["seller_id", "phone", "name", "first_name", "delivery_place", "location"],
            "indexes": ["seller_id"],
        },
    }


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
