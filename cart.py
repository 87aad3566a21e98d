"""
Shopping cart state.

A ``Cart`` lives in process memory for one shopper session and is never
persisted. ``CartRegistry`` owns the carts of every open session and is handed
to routes through a FastAPI dependency, so nothing here is module-global.
"""
from dataclasses import dataclass, field
from threading import Lock, RLock
from typing import Dict, List, Optional, Tuple

from catalog import effective_price
from schemas import OrderItem


@dataclass
class CartLine:
    product_id: str
    name: str
    price: int
    quantity: int
    image_url: str = ""

    @property
    def subtotal(self) -> int:
        return self.price * self.quantity


class Cart:
    def __init__(self):
        self._lines: Dict[str, CartLine] = {}
        # sync routes run in the threadpool
        self._lock = RLock()

    def add_item(self, product: dict) -> CartLine:
        """Add one unit. The effective price is frozen on first add."""
        product_id = product["id"]
        with self._lock:
            line = self._lines.get(product_id)
            if line is not None:
                line.quantity += 1
                return line
            line = CartLine(
                product_id=product_id,
                name=product.get("name", ""),
                price=effective_price(product),
                quantity=1,
                image_url=product.get("image_url", ""),
            )
            self._lines[product_id] = line
            return line

    def update_quantity(self, product_id: str, quantity: int) -> None:
        with self._lock:
            if quantity <= 0:
                self.remove_item(product_id)
                return
            line = self._lines.get(product_id)
            if line is not None:
                line.quantity = quantity

    def remove_item(self, product_id: str) -> None:
        with self._lock:
            self._lines.pop(product_id, None)

    def clear(self) -> None:
        with self._lock:
            self._lines.clear()

    @property
    def items(self) -> List[CartLine]:
        with self._lock:
            return list(self._lines.values())

    @property
    def total(self) -> int:
        return sum(line.subtotal for line in self.items)

    @property
    def count(self) -> int:
        return sum(line.quantity for line in self.items)

    def is_empty(self) -> bool:
        return not self._lines

    def order_items(self) -> List[OrderItem]:
        return [
            OrderItem(product_id=line.product_id, name=line.name, quantity=line.quantity, price=line.price)
            for line in self.items
        ]

    def to_dict(self) -> dict:
        with self._lock:
            return {
                "items": [
                    {
                        "product_id": line.product_id,
                        "name": line.name,
                        "price": line.price,
                        "quantity": line.quantity,
                        "image_url": line.image_url,
                        "subtotal": line.subtotal,
                    }
                    for line in self.items
                ],
                "total": self.total,
                "count": self.count,
            }


@dataclass
class CartSession:
    cart: Cart = field(default_factory=Cart)
    client_name: Optional[str] = None


class CartRegistry:
    """Open cart sessions keyed by (seller_id, client phone).

    Only ``session`` creates an entry. Read and edit paths use ``find``, and a
    session holding neither items nor a client name is released.
    """

    def __init__(self):
        self._sessions: Dict[Tuple[str, str], CartSession] = {}
        self._lock = Lock()

    def session(self, seller_id: str, phone: str) -> CartSession:
        key = (seller_id, phone)
        with self._lock:
            sess = self._sessions.get(key)
            if sess is None:
                sess = self._sessions[key] = CartSession()
            return sess

    def find(self, seller_id: str, phone: str) -> Optional[CartSession]:
        with self._lock:
            return self._sessions.get((seller_id, phone))

    def drop(self, seller_id: str, phone: str) -> None:
        with self._lock:
            self._sessions.pop((seller_id, phone), None)

    def release(self, seller_id: str, phone: str) -> None:
        key = (seller_id, phone)
        with self._lock:
            sess = self._sessions.get(key)
            if sess is not None and sess.cart.is_empty() and not sess.client_name:
                del self._sessions[key]

    def __len__(self) -> int:
        return len(self._sessions)
