"""
WhatsApp relay.

``send_whatsapp_message`` is the one place that talks to the messaging gateway.
It loads the seller's stored gateway credentials and forwards a single message.
``notify_new_order`` and ``notify_status_change`` are meant to run as background
tasks: every failure is logged and swallowed, an order never depends on them.
"""
import logging
from typing import Literal, Optional

import requests
from pydantic import BaseModel

import config
from repository import get_seller
from schemas import OrderStatus

logger = logging.getLogger("storefront.notifications")

FailureReason = Literal["missing_params", "seller_not_found", "no_credentials"]

STATUS_LABELS = {
    "processing": "Processing",
    "processed": "Processed",
    "cancelled": "Cancelled",
    "refused": "Refused",
}


class RelayResult(BaseModel):
    success: bool
    reason: Optional[FailureReason] = None
    status: Optional[int] = None
    body: Optional[str] = None


def send_whatsapp_message(seller_id: str, phone: str, text: str) -> RelayResult:
    if not seller_id or not phone or not text:
        logger.warning("Relay: missing params (seller=%r, phone=%r, has_text=%s)", seller_id, phone, bool(text))
        return RelayResult(success=False, reason="missing_params")

    seller = get_seller(seller_id)
    if not seller:
        logger.warning("Relay: seller %s not found", seller_id)
        return RelayResult(success=False, reason="seller_not_found")

    api_key = seller.get("whatsapp_api_key")
    sender = seller.get("whatsapp_sender")
    if not api_key or not sender:
        logger.info("Relay: no gateway credentials for seller %s", seller_id)
        return RelayResult(success=False, reason="no_credentials")

    logger.info("Relay: sending to %s from %s", phone, sender)
    resp = requests.get(
        f"{config.WHATSAPP_GATEWAY_URL}/api/messages",
        params={"phone": phone, "from": sender, "text": text},
        headers={"authorization": api_key},
        timeout=config.WHATSAPP_TIMEOUT,
    )
    logger.info("Relay: gateway answered HTTP %s", resp.status_code)
    return RelayResult(success=resp.ok, status=resp.status_code, body=resp.text)


def _dispatch(seller_id: str, phone: str, text: str) -> None:
    try:
        result = send_whatsapp_message(seller_id, phone, text)
        if not result.success:
            logger.warning("Notification to %s not delivered: %s", phone, result.reason or result.status)
    except Exception:
        logger.exception("Notification to %s failed", phone)


def notify_new_order(seller_id: str, seller_phone: Optional[str], client_phone: str, reference: str) -> None:
    tracking_url = f"{config.PUBLIC_BASE_URL}/client/{seller_id}/{client_phone}/orders"
    admin_url = f"{config.PUBLIC_BASE_URL}/login"
    _dispatch(
        seller_id,
        client_phone,
        f"Hello! Your order *{reference}* has been received.\nTrack it here:\n{tracking_url}",
    )
    if seller_phone:
        _dispatch(
            seller_id,
            seller_phone,
            f"New order *{reference}* received!\nLog in to process it:\n{admin_url}",
        )


def notify_status_change(seller_id: str, client_phone: str, reference: str, status: OrderStatus) -> None:
    _dispatch(
        seller_id,
        client_phone,
        f"Your order *{reference}* has been updated.\nNew status: *{STATUS_LABELS[status]}*",
    )
