"""
Catalog rules shared by the admin product grid and the client storefront.

Products are plain dicts as they come out of MongoDB, so every helper reads
fields with ``.get`` and tolerates documents written before a field existed.
"""
from typing import Any, Iterable, List, Mapping, Optional


def has_promotion(product: Mapping[str, Any]) -> bool:
    promo = product.get("promotion_price")
    return promo is not None and promo < product.get("price", 0)


def effective_price(product: Mapping[str, Any]) -> int:
    if has_promotion(product):
        return product["promotion_price"]
    return product.get("price", 0)


def is_available(product: Mapping[str, Any]) -> bool:
    # stock is None when it is not tracked
    return not (product.get("is_out_of_stock") is True or product.get("stock") == 0)


def sort_products(products: Iterable[dict]) -> List[dict]:
    """Unavailable products go last. Python's sort is stable, so order within each group is kept."""
    return sorted(products, key=lambda p: not is_available(p))


def display_product(product: dict) -> dict:
    shown = dict(product)
    shown["display_price"] = effective_price(product)
    shown["original_price"] = product.get("price") if has_promotion(product) else None
    shown["available"] = is_available(product)
    return shown


def listing(products: Iterable[dict]) -> List[dict]:
    return [display_product(p) for p in sort_products(products)]


def validate_product_fields(price: Optional[int], promotion_price: Optional[int], stock: Optional[int]) -> Optional[str]:
    """Return an error message for an invalid combination, None when it is fine."""
    if stock is not None and stock < 0:
        return "Stock cannot be negative"
    if promotion_price is not None and price is not None and promotion_price >= price:
        return "Promotion price must be lower than the price"
    return None
