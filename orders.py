import logging
import random
import string
from typing import Any, Dict, List, Optional

from pymongo.errors import DuplicateKeyError, PyMongoError

import config
import notifications
from catalog import get_product, reduce_stock, release_stock
from database import (
    collection, create_document, get_documents, count_documents, get_document_by_id,
    update_document, delete_document, serialize_doc, to_object_id, utcnow,
)
from errors import NotFound, InsufficientStock, InvalidTransition
from schemas import Order, OrderCreate, OrderItem, OrderUpdate

logger = logging.getLogger(__name__)

ORDER_NUMBER_PREFIX = "ORD-"

# Only consulted when ORDER_STRICT_TRANSITIONS is on; by default admins may set any status.
TRANSITIONS = {
    "pending": {"confirmed", "cancelled"},
    "confirmed": {"shipped", "cancelled"},
    "shipped": {"delivered", "cancelled"},
    "delivered": set(),
    "cancelled": set(),
}

STATUS_TIMESTAMPS = {
    "confirmed": "confirmed_at",
    "shipped": "shipped_at",
    "delivered": "delivered_at",
}


def generate_order_number() -> str:
    return ORDER_NUMBER_PREFIX + "".join(random.choices(string.digits, k=6))


# ===================== Creation =====================
def _check_stock(items: List[OrderItem]):
    for item in items:
        product = get_product(item.product_id)
        if product.get("stock", 0) < item.quantity:
            logger.warning(
                f"Order rejected: insufficient stock for {product.get('name')} ({item.product_id}). "
                f"Needed: {item.quantity}, Have: {product.get('stock', 0)}"
            )
            raise InsufficientStock(product.get("name", item.product_id))


def _release(reserved: List[OrderItem]):
    """Give back every reservation; a failed release is logged and the rest still run."""
    for item in reversed(reserved):
        try:
            release_stock(item.product_id, item.quantity)
        except PyMongoError as exc:
            logger.error(f"Could not release {item.quantity} of product {item.product_id}: {exc}")
            continue
        logger.info(f"Released {item.quantity} of product {item.product_id}")


def _insert_order(payload: OrderCreate) -> str:
    data = payload.model_dump(exclude_none=True)
    for attempt in range(1, config.ORDER_NUMBER_MAX_ATTEMPTS + 1):
        order = Order(order_number=generate_order_number(), **data)
        try:
            return create_document("order", order)
        except DuplicateKeyError:
            logger.warning(f"Order number {order.order_number} already taken (attempt {attempt})")
    raise RuntimeError(f"Could not allocate a unique order number after {config.ORDER_NUMBER_MAX_ATTEMPTS} attempts")


def create_order(payload: OrderCreate) -> dict:
    """Validate stock, reserve it, persist the order and queue the confirmation email.

    Stock is reserved item by item with atomic conditional decrements before the
    order is written. Any failure releases every reservation already taken, so
    either the order exists and all stocks reflect it, or nothing changed.
    """
    _check_stock(payload.items)

    reserved: List[OrderItem] = []
    try:
        for item in payload.items:
            reduce_stock(item.product_id, item.quantity)
            reserved.append(item)
        order_id = _insert_order(payload)
    except Exception:
        _release(reserved)
        raise

    order = get_order(order_id)
    logger.info(
        f"Created order {order['order_number']} for {order['customer_email']} "
        f"({len(order['items'])} items, total {order['total_amount']})"
    )
    notifications.enqueue("order_confirmation", order)
    return order


# ===================== Queries =====================
def get_order(order_id: str) -> dict:
    order = get_document_by_id("order", order_id)
    if not order:
        raise NotFound("Order not found")
    return order


def get_order_by_number(order_number: str) -> dict:
    order = serialize_doc(collection("order").find_one({"order_number": order_number}))
    if not order:
        raise NotFound("Order not found")
    return order


def list_orders(status: Optional[str] = None, customer_email: Optional[str] = None,
                order_number: Optional[str] = None, page: int = 1, limit: int = 10) -> Dict[str, Any]:
    filt = {}
    if status:
        filt["status"] = status
    if customer_email:
        filt["customer_email"] = customer_email
    if order_number:
        filt["order_number"] = order_number
    orders = get_documents("order", filt, sort=[("created_at", -1)], skip=(page - 1) * limit, limit=limit)
    return {"orders": orders, "total": count_documents("order", filt), "page": page, "limit": limit}


# ===================== Updates =====================
def update_order(order_id: str, payload: OrderUpdate) -> dict:
    current = get_order(order_id)
    changes = payload.model_dump(exclude_none=True)
    previous_status = current.get("status")
    new_status = changes.get("status")

    if (
        new_status
        and config.ORDER_STRICT_TRANSITIONS
        and new_status != previous_status
        and new_status not in TRANSITIONS.get(previous_status, set())
    ):
        raise InvalidTransition(f"Cannot change order status from {previous_status} to {new_status}")

    order = update_document("order", order_id, changes)
    if order is None:
        raise NotFound("Order not found")

    field = STATUS_TIMESTAMPS.get(new_status)
    if field:
        # set once: only matches while the timestamp is still empty
        result = collection("order").update_one(
            {"_id": to_object_id(order_id), field: None},
            {"$set": {field: utcnow()}},
        )
        if result.modified_count:
            order = get_order(order_id)

    if new_status and new_status != previous_status:
        logger.info(f"Order {order['order_number']} status {previous_status} -> {new_status}")
        notifications.enqueue("order_status_update", order, previous_status=previous_status)
    return order


def delete_order(order_id: str):
    if not delete_document("order", order_id):
        raise NotFound("Order not found")
    logger.info(f"Deleted order {order_id}")
