import mongomock
import pytest
from fastapi.testclient import TestClient

import auth
import database
import main
import notifications
import repository
from cart import CartRegistry
from schemas import AppUser, Product, Seller


@pytest.fixture
def db(monkeypatch):
    mock_db = mongomock.MongoClient().storefront_test
    monkeypatch.setattr(database, "db", mock_db)
    return mock_db


@pytest.fixture
def client(db):
    main.app.state.carts = CartRegistry()
    return TestClient(main.app)


@pytest.fixture
def seller(db):
    repository.add_seller("ABC1234", Seller(name="Awa Diallo", shop_name="Awa Shop", phone="0600000000"))
    return "ABC1234"


@pytest.fixture
def other_seller(db):
    repository.add_seller("XYZ9876", Seller(name="Koffi", shop_name="Koffi Market", phone="0611111111"))
    return "XYZ9876"


def make_user(email, role, seller_id=None):
    uid = auth.create_identity(email, "secret123")
    repository.create_app_user(uid, AppUser(email=email, role=role, seller_id=seller_id))
    return {"Authorization": f"Bearer {auth.create_token(uid, role)}"}


@pytest.fixture
def super_admin(db):
    return make_user("root@example.com", "super_admin")


@pytest.fixture
def seller_admin(seller):
    return make_user("awa@example.com", "seller_admin", seller)


@pytest.fixture
def cola(seller):
    drinks = repository.add_category(seller, "Drinks")
    product_id = repository.add_product(Product(seller_id=seller, name="Cola", price=1000, category_id=drinks))
    return {"id": product_id, "category_id": drinks}


class FakeResponse:
    def __init__(self, status_code=200, text="OK", payload=None):
        self.status_code = status_code
        self.text = text
        self._payload = payload or {}

    @property
    def ok(self):
        return 200 <= self.status_code < 400

    def json(self):
        return self._payload


@pytest.fixture
def gateway(monkeypatch):
    """Records outgoing gateway calls instead of sending them."""
    calls = []

    def fake_get(url, params=None, headers=None, timeout=None):
        calls.append({"url": url, "params": params, "headers": headers})
        return FakeResponse(200, '{"sent": true}')

    monkeypatch.setattr(notifications.requests, "get", fake_get)
    return calls
