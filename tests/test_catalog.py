from catalog import display_product, effective_price, is_available, listing, sort_products, validate_product_fields


def test_effective_price_uses_lower_promotion():
    assert effective_price({"price": 1000, "promotion_price": 800}) == 800


def test_effective_price_ignores_promotion_not_lower():
    assert effective_price({"price": 1000, "promotion_price": 1000}) == 1000
    assert effective_price({"price": 1000, "promotion_price": 1200}) == 1000
    assert effective_price({"price": 1000, "promotion_price": None}) == 1000
    assert effective_price({"price": 1000}) == 1000


def test_availability():
    assert is_available({"price": 1})
    assert is_available({"stock": None})
    assert is_available({"stock": 3, "is_out_of_stock": False})
    assert not is_available({"stock": 0})
    assert not is_available({"stock": 5, "is_out_of_stock": True})


def test_sort_is_a_stable_partition():
    products = [
        {"id": "a", "stock": 0},
        {"id": "b"},
        {"id": "c", "is_out_of_stock": True},
        {"id": "d", "stock": 4},
        {"id": "e", "stock": 0},
        {"id": "f"},
    ]
    assert [p["id"] for p in sort_products(products)] == ["b", "d", "f", "a", "c", "e"]


def test_display_product_marks_strike_through_price():
    shown = display_product({"id": "p", "price": 1000, "promotion_price": 800})
    assert shown["display_price"] == 800
    assert shown["original_price"] == 1000
    assert shown["available"] is True

    plain = display_product({"id": "q", "price": 1000, "is_out_of_stock": True})
    assert plain["display_price"] == 1000
    assert plain["original_price"] is None
    assert plain["available"] is False


def test_listing_sorts_and_projects():
    out = listing([{"id": "x", "price": 5, "stock": 0}, {"id": "y", "price": 7}])
    assert [p["id"] for p in out] == ["y", "x"]
    assert out[1]["available"] is False


def test_validate_product_fields():
    assert validate_product_fields(1000, 800, 3) is None
    assert validate_product_fields(1000, None, None) is None
    assert validate_product_fields(1000, 1000, None) == "Promotion price must be lower than the price"
    assert validate_product_fields(1000, None, -1) == "Stock cannot be negative"
