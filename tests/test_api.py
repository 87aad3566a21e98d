import re
from datetime import datetime

import database
import main
import repository

PHONE = "0700000000"
FORM = {"name": "Doe", "first_name": "Jane", "location": "Downtown", "date": "2024-01-01"}


def add_cola(client, headers):
    drinks = client.post("/api/admin/categories", json={"name": "Drinks"}, headers=headers).json()["id"]
    res = client.post(
        "/api/admin/products",
        json={"name": "Cola", "price": 1000, "category_id": drinks},
        headers=headers,
    )
    assert res.status_code == 201
    return drinks, res.json()["id"]


def catalog(client, seller, **params):
    res = client.get(f"/api/client/{seller}/{PHONE}/catalog", params=params)
    assert res.status_code == 200
    return res.json()


def test_health_reports_setup_state(client, monkeypatch):
    assert client.get("/").json()["configured"] is True
    monkeypatch.setattr(database, "db", None)
    assert client.get("/").json()["configured"] is False
    res = client.get("/api/client/ABC1234")
    assert res.status_code == 503
    assert res.json() == {"detail": "setup_required"}


def test_order_flow(client, seller, seller_admin, gateway, db):
    _, cola = add_cola(client, seller_admin)

    assert catalog(client, seller)["seller"]["shop_name"] == "Awa Shop"
    for _ in range(2):
        assert client.post(f"/api/client/{seller}/{PHONE}/cart/items", json={"product_id": cola}).status_code == 200
    cart = client.get(f"/api/client/{seller}/{PHONE}/cart").json()
    assert cart["total"] == 2000
    assert cart["count"] == 2

    res = client.post(f"/api/client/{seller}/{PHONE}/orders", json=FORM)
    assert res.status_code == 201
    order = res.json()
    assert order["total"] == 2000
    assert order["status"] == "processing"
    assert re.match(r"^CO-\d{6}-\d{4}$", order["reference"])

    assert db["orders"].count_documents({"seller_id": seller}) == 1
    client_doc = repository.get_client(seller, PHONE)
    assert client_doc["id"] == "ABC1234_0700000000"
    assert client_doc["delivery_place"] == "Downtown"

    assert client.get(f"/api/client/{seller}/{PHONE}/cart").json()["items"] == []
    history = client.get(f"/api/client/{seller}/{PHONE}/orders").json()
    assert [o["reference"] for o in history] == [order["reference"]]
    # seller has no gateway credentials
    assert gateway == []


def test_promotion_price_is_locked_in_cart(client, seller, seller_admin):
    _, cola = add_cola(client, seller_admin)
    res = client.patch(f"/api/admin/products/{cola}", json={"promotion_price": 800}, headers=seller_admin)
    assert res.status_code == 200

    product = catalog(client, seller)["products"][0]
    assert product["display_price"] == 800
    assert product["original_price"] == 1000

    client.post(f"/api/client/{seller}/{PHONE}/cart/items", json={"product_id": cola})
    client.patch(f"/api/admin/products/{cola}", json={"promotion_price": None}, headers=seller_admin)
    assert catalog(client, seller)["products"][0]["display_price"] == 1000

    order = client.post(f"/api/client/{seller}/{PHONE}/orders", json=FORM).json()
    assert order["total"] == 800
    assert order["items"][0]["price"] == 800


def test_promotion_must_be_below_price(client, seller, seller_admin):
    drinks, cola = add_cola(client, seller_admin)
    res = client.patch(f"/api/admin/products/{cola}", json={"promotion_price": 1000}, headers=seller_admin)
    assert res.status_code == 400
    res = client.post(
        "/api/admin/products",
        json={"name": "Tea", "price": 500, "promotion_price": 600, "category_id": drinks},
        headers=seller_admin,
    )
    assert res.status_code == 400


def test_out_of_stock_sorts_last_and_cannot_be_added(client, seller, seller_admin):
    drinks, cola = add_cola(client, seller_admin)
    client.post("/api/admin/products", json={"name": "Water", "price": 300, "category_id": drinks}, headers=seller_admin)
    client.patch(f"/api/admin/products/{cola}", json={"is_out_of_stock": True}, headers=seller_admin)

    admin_names = [p["name"] for p in client.get("/api/admin/products", headers=seller_admin).json()]
    client_products = catalog(client, seller)["products"]
    assert admin_names == ["Water", "Cola"]
    assert [p["name"] for p in client_products] == ["Water", "Cola"]
    assert client_products[-1]["available"] is False

    res = client.post(f"/api/client/{seller}/{PHONE}/cart/items", json={"product_id": cola})
    assert res.status_code == 409


def test_relay_without_credentials(client, seller, gateway):
    res = client.post("/api/notifications/whatsapp", json={"sellerId": seller, "phone": PHONE, "text": "hi"})
    assert res.status_code == 200
    assert res.json() == {"success": False, "reason": "no_credentials"}
    assert gateway == []


def test_relay_missing_params(client, db):
    assert client.post("/api/notifications/whatsapp", json={"phone": PHONE}).json() == {
        "success": False,
        "reason": "missing_params",
    }


def test_status_change_notifies_client(client, seller, seller_admin, super_admin, gateway):
    _, cola = add_cola(client, seller_admin)
    client.post(f"/api/client/{seller}/{PHONE}/cart/items", json={"product_id": cola})
    order = client.post(f"/api/client/{seller}/{PHONE}/orders", json=FORM).json()

    res = client.patch(
        f"/api/admin/sellers/{seller}",
        json={"whatsapp_api_key": "key-123", "whatsapp_sender": "22500000000"},
        headers=super_admin,
    )
    assert res.json()["has_whatsapp_credentials"] is True
    assert "whatsapp_api_key" not in res.json()

    res = client.patch(f"/api/admin/orders/{order['id']}/status", json={"status": "processed"}, headers=seller_admin)
    assert res.status_code == 200
    assert res.json()["status"] == "processed"
    assert len(gateway) == 1
    assert gateway[0]["params"]["phone"] == PHONE
    assert "Processed" in gateway[0]["params"]["text"]

    stats = client.get("/api/admin/dashboard", headers=seller_admin).json()
    assert stats["total_revenue"] == 1000
    assert stats["processed_orders"] == 1
    assert [o["id"] for o in client.get("/api/admin/orders?status=processed", headers=seller_admin).json()] == [order["id"]]


def test_invalid_status_is_rejected(client, seller_admin):
    res = client.patch("/api/admin/orders/5f5f5f5f5f5f5f5f5f5f5f5f/status", json={"status": "shipped"}, headers=seller_admin)
    assert res.status_code == 422


def test_login_and_me(client, seller_admin):
    res = client.post("/api/auth/login", json={"email": "awa@example.com", "password": "secret123"})
    assert res.status_code == 200
    token = res.json()["token"]
    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"}).json()
    assert me["seller_id"] == "ABC1234"

    assert client.post("/api/auth/login", json={"email": "awa@example.com", "password": "nope"}).status_code == 401


def test_seller_admin_is_pinned_to_own_seller(client, seller_admin, other_seller):
    assert client.get("/api/admin/categories").status_code == 401
    assert client.get("/api/admin/categories", headers=seller_admin).status_code == 200
    res = client.get(f"/api/admin/categories?seller_id={other_seller}", headers=seller_admin)
    assert res.status_code == 403
    assert client.get("/api/admin/sellers", headers=seller_admin).status_code == 403


def test_super_admin_picks_a_seller(client, super_admin, seller, seller_admin):
    add_cola(client, seller_admin)
    res = client.get("/api/admin/products", headers=super_admin)
    assert res.status_code == 409
    assert res.json()["detail"] == "no_seller_selected"
    res = client.get(f"/api/admin/products?seller_id={seller}", headers=super_admin)
    assert [p["name"] for p in res.json()] == ["Cola"]


def test_super_admin_creates_seller(client, super_admin):
    new_id = client.get("/api/admin/sellers/new-id", headers=super_admin).json()["id"]
    res = client.post(
        "/api/admin/sellers",
        json={"id": new_id, "name": "Ama", "shop_name": "Ama Store", "phone": "06 12 34", "email": "ama@example.com", "password": "secret123"},
        headers=super_admin,
    )
    assert res.status_code == 201
    assert [s["id"] for s in client.get("/api/admin/sellers", headers=super_admin).json()] == [new_id]
    assert client.get(f"/api/client/{new_id}").json() == {"id": new_id, "shop_name": "Ama Store", "logo_url": None}

    login = client.post("/api/auth/login", json={"email": "ama@example.com", "password": "secret123"})
    assert login.json()["user"]["seller_id"] == new_id

    again = client.post(
        "/api/admin/sellers",
        json={"name": "X", "shop_name": "Y", "phone": "07", "email": "ama@example.com", "password": "secret123"},
        headers=super_admin,
    )
    assert again.status_code == 400


def test_product_image_upload(client, seller_admin, monkeypatch):
    _, cola = add_cola(client, seller_admin)
    files = {"file": ("cola.png", b"\x89PNG fake", "image/png")}

    res = client.post(f"/api/admin/products/{cola}/image", files=files, headers=seller_admin)
    assert res.status_code == 503
    assert res.json() == {"detail": "upload_not_configured"}

    monkeypatch.setattr(main, "upload_image", lambda f, name, ctype: "https://cdn.example.com/cola.png")
    res = client.post(f"/api/admin/products/{cola}/image", files=files, headers=seller_admin)
    assert res.status_code == 200
    assert client.get(f"/api/admin/products/{cola}", headers=seller_admin).json()["image_url"] == "https://cdn.example.com/cola.png"


def test_admin_clients(client, seller, seller_admin):
    _, cola = add_cola(client, seller_admin)
    client.post(f"/api/client/{seller}/{PHONE}/cart/items", json={"product_id": cola})
    client.post(f"/api/client/{seller}/{PHONE}/orders", json=FORM)

    clients = client.get("/api/admin/clients", headers=seller_admin).json()
    assert [c["phone"] for c in clients] == [PHONE]
    res = client.patch(f"/api/admin/clients/{PHONE}", json={"delivery_place": "Airport"}, headers=seller_admin)
    assert res.json()["delivery_place"] == "Airport"
    assert client.patch("/api/admin/clients/0799999999", json={"name": "X"}, headers=seller_admin).status_code == 404


def test_name_from_catalog_link_is_used(client, seller, seller_admin):
    _, cola = add_cola(client, seller_admin)
    catalog(client, seller, name="Link Name")
    client.post(f"/api/client/{seller}/{PHONE}/cart/items", json={"product_id": cola})
    order = client.post(f"/api/client/{seller}/{PHONE}/orders", json={**FORM, "name": ""}).json()
    assert order["delivery_details"]["name"] == "Link Name"


def test_order_without_name_or_items_is_refused(client, seller):
    res = client.post(f"/api/client/{seller}/{PHONE}/orders", json=FORM)
    assert res.status_code == 400
    assert res.json()["detail"] == "Cart is empty"


def test_required_product_fields_cannot_be_cleared(client, seller, seller_admin):
    _, cola = add_cola(client, seller_admin)
    for field in ("price", "name", "category_id", "description", "image_url", "is_out_of_stock"):
        res = client.patch(f"/api/admin/products/{cola}", json={field: None}, headers=seller_admin)
        assert res.status_code == 400, field
        assert field in res.json()["detail"]

    product = repository.get_product(seller, cola)
    assert product["price"] == 1000
    assert product["name"] == "Cola"

    res = client.patch(f"/api/admin/products/{cola}", json={"stock": None, "promotion_price": None},
                       headers=seller_admin)
    assert res.status_code == 200
    client.post(f"/api/client/{seller}/{PHONE}/cart/items", json={"product_id": cola})
    assert client.get(f"/api/client/{seller}/{PHONE}/cart").json()["total"] == 1000


def test_cart_reads_do_not_open_sessions(client, seller):
    for i in range(20):
        assert client.get(f"/api/client/NOSUCH1/07000000{i:02d}/cart").status_code == 404
        res = client.get(f"/api/client/{seller}/07000000{i:02d}/cart")
        assert res.json() == {"items": [], "total": 0, "count": 0}
        client.patch(f"/api/client/{seller}/07000000{i:02d}/cart/items/x", json={"quantity": 3})
        client.delete(f"/api/client/{seller}/07000000{i:02d}/cart")
    assert len(main.app.state.carts) == 0


def test_emptied_and_ordered_carts_are_released(client, seller, seller_admin):
    _, cola = add_cola(client, seller_admin)
    client.post(f"/api/client/{seller}/{PHONE}/cart/items", json={"product_id": cola})
    client.delete(f"/api/client/{seller}/{PHONE}/cart/items/{cola}")
    assert len(main.app.state.carts) == 0

    client.post(f"/api/client/{seller}/{PHONE}/cart/items", json={"product_id": cola})
    res = client.post(f"/api/client/{seller}/{PHONE}/orders", json=FORM)
    assert res.status_code == 201
    assert res.json()["created_at"]
    assert len(main.app.state.carts) == 0


def test_order_filter_includes_the_end_day(client, seller, seller_admin, db):
    db["orders"].insert_one({
        "seller_id": seller,
        "client_id": PHONE,
        "reference": "CO-240101-1234",
        "items": [],
        "total": 500,
        "status": "processing",
        "created_at": datetime(2024, 1, 1, 15, 0),
    })
    params = {"start": "2024-01-01", "end": "2024-01-01"}
    res = client.get("/api/admin/orders", params=params, headers=seller_admin)
    assert [o["reference"] for o in res.json()] == ["CO-240101-1234"]
    dashboard = client.get("/api/admin/dashboard", params=params, headers=seller_admin).json()
    assert dashboard["total_orders"] == 1


def test_public_seller_landing(client, seller):
    res = client.get(f"/api/sellers/{seller}")
    assert res.status_code == 200
    assert res.json() == {"id": seller, "shop_name": "Awa Shop", "logo_url": None}
    assert client.get("/api/sellers/NOSUCH1").status_code == 404
