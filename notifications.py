"""
Order notification outbox.

Order mutations only insert a pending record here. Delivery happens later,
either in a FastAPI background task right after the response or in the
standalone worker (`python notifications.py`), and failed sends are retried
with exponential backoff until NOTIFICATION_MAX_ATTEMPTS is reached.
"""
import html
import logging
import time
from datetime import timedelta
from typing import Callable, Dict, Optional

import requests
import resend
from resend.exceptions import ResendError, MissingApiKeyError, InvalidApiKeyError
from pymongo.errors import PyMongoError

import config
from database import collection, get_document_by_id, utcnow
from errors import NotificationFailure
from schemas import Notification

logger = logging.getLogger(__name__)

# how long a claimed record stays invisible to other deliverers
CLAIM_LEASE = timedelta(minutes=5)

STATUS_MESSAGES = {
    "pending": ("Order Received", "Thank you for your order! We have received your order and are processing it."),
    "confirmed": ("Order Confirmed", "Great news! Your order has been confirmed and is being prepared for shipment."),
    "shipped": ("Order Shipped", "Your order is on its way! It has been shipped and should arrive soon."),
    "delivered": ("Order Delivered", "Your order has been successfully delivered! Thank you for shopping with us."),
    "cancelled": ("Order Cancelled", "Your order has been cancelled. If you have any questions, please contact us."),
}

Sender = Callable[[str, str, str], None]


# ===================== Rendering =====================
def _e(value) -> str:
    return html.escape(str(value if value is not None else ""))


def _shipping_html(order: dict) -> str:
    addr = order.get("shipping_address") or {}
    rows = [
        f"<p><strong>{_e(addr.get('first_name'))} {_e(addr.get('last_name'))}</strong></p>",
        f"<p>{_e(addr.get('address'))}</p>",
        f"<p>{_e(addr.get('city'))}, {_e(addr.get('state'))} {_e(addr.get('zip_code'))}</p>",
        f"<p><strong>Phone:</strong> {_e(addr.get('phone'))}</p>",
    ]
    if order.get("tracking_number"):
        rows.append(f"<p><strong>Tracking Number:</strong> {_e(order['tracking_number'])}</p>")
    return "<h3>Shipping Address</h3>" + "".join(rows)


def render_order_confirmation(order: dict):
    items = "".join(
        f"<tr><td>{_e(i['name'])}</td><td>{i['quantity']}</td>"
        f"<td>${i['price']:.2f}</td><td>${i['price'] * i['quantity']:.2f}</td></tr>"
        for i in order.get("items", [])
    )
    notes = f"<h3>Order Notes</h3><p>{_e(order['notes'])}</p>" if order.get("notes") else ""
    body = f"""<html><body>
<h1>{_e(config.STORE_NAME)}</h1>
<p>Thank you for your order, {_e(order.get('customer_name'))}!</p>
<p><strong>Order Number:</strong> {_e(order['order_number'])}<br>
<strong>Status:</strong> {_e(order.get('status'))}<br>
<strong>Payment Method:</strong> {_e(order.get('payment_method'))}</p>
<table>
<thead><tr><th>Product</th><th>Quantity</th><th>Unit Price</th><th>Total</th></tr></thead>
<tbody>{items}</tbody>
</table>
<p><strong>Total Amount: ${order.get('total_amount', 0):.2f}</strong></p>
{_shipping_html(order)}
{notes}
<p>This is an automated email. Please do not reply to this message.</p>
</body></html>"""
    return f"Order Confirmation - {order['order_number']}", body


def render_status_update(order: dict, previous_status: Optional[str]):
    title, message = STATUS_MESSAGES.get(order.get("status"), ("Order Update", "Your order status has changed."))
    body = f"""<html><body>
<h1>{_e(config.STORE_NAME)}</h1>
<h2>{_e(title)}</h2>
<p>{_e(message)}</p>
<p><strong>Order Number:</strong> {_e(order['order_number'])}<br>
<strong>Status:</strong> {_e(previous_status)} &rarr; {_e(order.get('status'))}</p>
{_shipping_html(order)}
</body></html>"""
    return f"Order Status Update - {order['order_number']}", body


# ===================== Delivery =====================
def send_email(to: str, subject: str, html_body: str):
    if not config.RESEND_API_KEY:
        raise NotificationFailure("Resend API key is not configured.", reason="auth")
    resend.api_key = config.RESEND_API_KEY
    payload = {"from": config.EMAIL_FROM, "to": [to], "subject": subject, "html": html_body}
    try:
        response = resend.Emails.send(payload)
    except (MissingApiKeyError, InvalidApiKeyError) as exc:
        raise NotificationFailure(str(exc), reason="auth") from exc
    except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as exc:
        raise NotificationFailure(str(exc), reason="connection") from exc
    except ResendError as exc:
        raise NotificationFailure(str(exc)) from exc
    if not isinstance(response, dict) or not response.get("id"):
        raise NotificationFailure(f"Unexpected response from Resend: {response}")


def log_delivery_failure(exc: Exception, context: str):
    logger.error(f"Failed to send {context}: {exc}")
    reason = getattr(exc, "reason", None)
    if reason is None and isinstance(exc, (requests.exceptions.ConnectionError, requests.exceptions.Timeout)):
        reason = "connection"
    if reason == "auth":
        logger.error("Authentication failed. Please check RESEND_API_KEY.")
        logger.error("Make sure the key is active and allowed to send from the EMAIL_FROM domain.")
    elif reason == "connection":
        logger.error("Connection failed. Please check network access to the Resend API.")


# ===================== Outbox =====================
def enqueue(kind: str, order: dict, previous_status: Optional[str] = None) -> Optional[str]:
    """Queue a notification for an order. Never raises; a failed insert is logged."""
    record = Notification(
        kind=kind,
        order_id=order["_id"],
        recipient=order["customer_email"],
        previous_status=previous_status,
        next_attempt_at=utcnow(),
    )
    data = record.model_dump()
    now = utcnow()
    data["created_at"] = now
    data["updated_at"] = now
    try:
        result = collection("notification").insert_one(data)
    except PyMongoError as exc:
        logger.error(f"Could not queue {kind} for order {order.get('order_number')}: {exc}")
        return None
    return str(result.inserted_id)


def _render(record: dict, order: dict):
    if record["kind"] == "order_confirmation":
        return render_order_confirmation(order)
    return render_status_update(order, record.get("previous_status"))


def _deliver_one(record: dict, sender: Sender, now) -> str:
    order = get_document_by_id("order", record["order_id"])
    notifications = collection("notification")
    if order is None:
        notifications.update_one(
            {"_id": record["_id"]},
            {"$set": {"status": "failed", "last_error": "Order not found", "updated_at": now}},
        )
        return "failed"

    context = f"{record['kind']} email for order {order.get('order_number')}"
    try:
        subject, body = _render(record, order)
        sender(record["recipient"], subject, body)
    except Exception as exc:
        log_delivery_failure(exc, context)
        attempts = record.get("attempts", 0) + 1
        update = {"attempts": attempts, "last_error": str(exc)[:500], "updated_at": now}
        if attempts >= config.NOTIFICATION_MAX_ATTEMPTS:
            update["status"] = "failed"
            outcome = "failed"
        else:
            delay = config.NOTIFICATION_RETRY_BASE_SECONDS * 2 ** (attempts - 1)
            update["next_attempt_at"] = now + timedelta(seconds=delay)
            outcome = "retrying"
        notifications.update_one({"_id": record["_id"]}, {"$set": update})
        return outcome

    notifications.update_one(
        {"_id": record["_id"]},
        {"$set": {"status": "sent", "sent_at": now, "updated_at": now},
         "$inc": {"attempts": 1}},
    )
    logger.info(f"Sent {context} to {record['recipient']}")
    return "sent"


def deliver_pending(sender: Optional[Sender] = None, now=None, limit: int = 50) -> Dict[str, int]:
    """Send every due notification once. Returns outcome counts and never raises."""
    sender = sender or send_email
    now = now or utcnow()
    summary = {"sent": 0, "retrying": 0, "failed": 0}
    try:
        notifications = collection("notification")
        due = list(
            notifications.find({"status": "pending", "next_attempt_at": {"$lte": now}})
            .sort("next_attempt_at", 1)
            .limit(limit)
        )
        for record in due:
            claimed = notifications.find_one_and_update(
                {"_id": record["_id"], "status": "pending", "next_attempt_at": record["next_attempt_at"]},
                {"$set": {"next_attempt_at": now + CLAIM_LEASE}},
            )
            if claimed is None:
                continue
            summary[_deliver_one(record, sender, now)] += 1
    except PyMongoError as exc:
        logger.error(f"Notification outbox unavailable: {exc}")
    return summary


def run_worker(poll_seconds: int = 30):
    logger.info(f"Notification worker started, polling every {poll_seconds}s")
    while True:
        summary = deliver_pending()
        if any(summary.values()):
            logger.info(f"Notification batch: {summary}")
        time.sleep(poll_seconds)


if __name__ == "__main__":
    logging.basicConfig(level=config.LOG_LEVEL, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    run_worker()
