from threading import Thread

from cart import Cart, CartRegistry

COLA = {"id": "cola", "name": "Cola", "price": 1000}


def test_add_twice_makes_one_line():
    cart = Cart()
    cart.add_item(COLA)
    cart.add_item(COLA)
    assert len(cart.items) == 1
    assert cart.items[0].quantity == 2
    assert cart.total == 2000
    assert cart.count == 2


def test_price_is_frozen_at_first_add():
    cart = Cart()
    cart.add_item({**COLA, "promotion_price": 800})
    # promotion removed before the second add
    cart.add_item(COLA)
    assert cart.total == 1600


def test_update_quantity_zero_removes_line():
    a, b = Cart(), Cart()
    for c in (a, b):
        c.add_item(COLA)
        c.add_item({"id": "water", "name": "Water", "price": 300})
    a.update_quantity("cola", 0)
    b.remove_item("cola")
    assert a.to_dict() == b.to_dict()
    assert a.total == 300


def test_update_quantity_sets_value():
    cart = Cart()
    cart.add_item(COLA)
    cart.update_quantity("cola", 5)
    assert cart.count == 5
    assert cart.total == 5000
    cart.update_quantity("missing", 3)
    assert cart.count == 5


def test_clear_and_order_items():
    cart = Cart()
    cart.add_item(COLA)
    items = cart.order_items()
    assert items[0].product_id == "cola"
    assert items[0].price == 1000
    cart.clear()
    assert cart.is_empty()
    assert cart.total == 0


def test_registry_keeps_sessions_apart():
    carts = CartRegistry()
    carts.session("ABC1234", "0700000000").cart.add_item(COLA)
    assert carts.session("ABC1234", "0700000000").cart.count == 1
    assert carts.session("ABC1234", "0799999999").cart.is_empty()
    assert carts.session("XYZ9876", "0700000000").cart.is_empty()
    assert len(carts) == 3


def test_registry_find_does_not_open_a_session():
    carts = CartRegistry()
    assert carts.find("ABC1234", "0700000000") is None
    assert len(carts) == 0


def test_registry_releases_empty_sessions_only():
    carts = CartRegistry()
    carts.session("ABC1234", "0700000000").cart.add_item(COLA)
    carts.session("ABC1234", "0711111111").client_name = "Jane"
    carts.session("ABC1234", "0722222222")

    for phone in ("0700000000", "0711111111", "0722222222"):
        carts.release("ABC1234", phone)
    assert carts.find("ABC1234", "0700000000") is not None
    assert carts.find("ABC1234", "0711111111") is not None
    assert carts.find("ABC1234", "0722222222") is None

    carts.drop("ABC1234", "0711111111")
    assert len(carts) == 1


def test_concurrent_adds_keep_every_unit():
    cart = Cart()

    def add_many():
        for _ in range(500):
            cart.add_item(COLA)

    threads = [Thread(target=add_many) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert cart.count == 2000
