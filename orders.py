"""
Order workflow: turning a cart and a delivery form into an order, changing
order status, and the numbers shown on the admin dashboard.
"""
import logging
import random
from collections import Counter
from datetime import datetime, time, timedelta, timezone
from typing import Iterable, List, Optional

from pydantic import BaseModel, Field

import repository
from cart import CartSession
from schemas import Client, DeliveryDetails, GeoPoint, Order

logger = logging.getLogger("storefront.orders")


class OrderError(ValueError):
    """The submission cannot be turned into an order."""


class DeliveryForm(BaseModel):
    name: str = ""
    first_name: str = ""
    phone: Optional[str] = None
    second_contact: Optional[str] = None
    location: str = Field(..., min_length=1)
    gps: Optional[GeoPoint] = None
    date: str = Field(..., min_length=1)
    time_slot: Optional[str] = None
    details: str = ""


def clean_phone(phone: str) -> str:
    return "".join((phone or "").split())


def generate_reference(now: Optional[datetime] = None) -> str:
    # no uniqueness check, the reference is for humans only
    now = now or datetime.now(timezone.utc)
    return f"CO-{now:%y%m%d}-{random.randint(1000, 9999)}"


def place_order(seller_id: str, route_phone: str, session: CartSession, form: DeliveryForm) -> dict:
    """Persist the client and the order, then empty the cart.

    Notifications are left to the caller so they can run after the response.
    """
    cart = session.cart
    if cart.is_empty():
        raise OrderError("Cart is empty")

    name = form.name.strip() or (session.client_name or "").strip()
    if not name:
        raise OrderError("Client name is required")
    phone = clean_phone(form.phone or route_phone)
    if not phone:
        raise OrderError("Phone number is required")

    existing = repository.get_client(seller_id, phone)
    if existing is None:
        repository.save_client(Client(
            seller_id=seller_id,
            phone=phone,
            name=name,
            first_name=form.first_name or None,
            delivery_place=form.location,
            location=form.gps,
        ))
    else:
        fields = {"name": name}
        if form.first_name:
            fields["first_name"] = form.first_name
        repository.update_client_info(seller_id, phone, fields)

    order = Order(
        seller_id=seller_id,
        client_id=phone,
        reference=generate_reference(),
        items=cart.order_items(),
        total=cart.total,
        status="processing",
        delivery_details=DeliveryDetails(
            name=name,
            first_name=form.first_name,
            phone=phone,
            second_contact=form.second_contact,
            location=form.location,
            gps=form.gps,
            date=form.date,
            time_slot=form.time_slot,
            details=form.details,
        ),
    )
    order_id = repository.create_order(order)
    logger.info("Order %s (%s) placed for seller %s, total %s", order.reference, order_id, seller_id, order.total)
    cart.clear()

    return repository.get_order(seller_id, order_id)


def change_order_status(seller_id: str, order_id: str, status: str) -> Optional[dict]:
    """Set the status, whatever it was before. Returns the updated order or None."""
    if not repository.update_order_status(seller_id, order_id, status):
        return None
    logger.info("Order %s of seller %s is now %s", order_id, seller_id, status)
    return repository.get_order(seller_id, order_id)


class OrderStats(BaseModel):
    total_revenue: int
    total_orders: int
    pending_orders: int
    processed_orders: int
    top_products: List[dict]


def _aware(dt: Optional[datetime]) -> Optional[datetime]:
    # mongo hands back naive UTC datetimes
    if dt is not None and dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def filter_orders(orders: Iterable[dict], status: Optional[str] = None,
                  start: Optional[datetime] = None, end: Optional[datetime] = None) -> List[dict]:
    """Keep orders matching ``status`` and created within [start, end].

    An ``end`` at midnight, which is what a bare date parses to, covers that
    whole day.
    """
    start, end = _aware(start), _aware(end)
    if end is not None and end.time() == time.min:
        end += timedelta(days=1, microseconds=-1)
    out = []
    for o in orders:
        if status and o.get("status") != status:
            continue
        created = _aware(o.get("created_at"))
        if start and (created is None or created < start):
            continue
        if end and (created is None or created > end):
            continue
        out.append(o)
    return out


def order_stats(orders: Iterable[dict]) -> OrderStats:
    orders = list(orders)
    sold = Counter()
    for o in orders:
        for item in o.get("items", []):
            sold[item["name"]] += item["quantity"]
    return OrderStats(
        total_revenue=sum(o.get("total", 0) for o in orders if o.get("status") == "processed"),
        total_orders=len(orders),
        pending_orders=sum(1 for o in orders if o.get("status") == "processing"),
        processed_orders=sum(1 for o in orders if o.get("status") == "processed"),
        top_products=[{"name": n, "quantity": q} for n, q in sold.most_common(5)],
    )
