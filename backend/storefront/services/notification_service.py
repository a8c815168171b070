from __future__ import annotations

from flask import current_app

from ..errors import InvalidArgumentError, NotFoundError
from ..extensions import db
from ..models import Notification, Order, User
from ..pagination import paginate
from ..time_utils import utcnow
from .concurrency import run_in_transaction


TYPE_ORDER = "order"
TYPE_PROMOTION = "promotion"
TYPE_REMINDER = "reminder"
TYPE_SYSTEM = "system"
VALID_TYPES = {TYPE_ORDER, TYPE_PROMOTION, TYPE_REMINDER, TYPE_SYSTEM}

# Status changes that produce a customer notification
NOTIFY_ON_STATUS = {"confirmed", "shipped", "delivered", "cancelled"}


def add_notification(
    user_id: int,
    title: str,
    message: str,
    notification_type: str = TYPE_SYSTEM,
    order_id: int | None = None,
) -> Notification:
    """Stage a notification in the current transaction (no commit)."""
    if notification_type not in VALID_TYPES:
        raise InvalidArgumentError("Invalid notification type", {"type": f"must be one of {', '.join(sorted(VALID_TYPES))}"})
    notification = Notification(
        user_id=user_id,
        order_id=order_id,
        title=title,
        message=message,
        type=notification_type,
        read=False,
    )
    db.session.add(notification)
    return notification


# =============================================================================
# ORDER LIFECYCLE MESSAGES
# =============================================================================

def order_placed_message(order: Order) -> tuple[str, str]:
    return (
        f"Order Placed - {order.order_number}",
        f"Your order {order.order_number} has been placed successfully. "
        f"Tracking number: {order.tracking_number}.",
    )


def payment_received_message(order: Order) -> tuple[str, str]:
    return (
        f"Payment Received - {order.order_number}",
        f"We have received your payment for order {order.order_number}. It is now being processed.",
    )


def order_status_message(order: Order, status: str) -> tuple[str, str] | None:
    number = order.order_number
    if status == "confirmed":
        return f"Order Confirmed - {number}", f"Your order {number} has been confirmed and is being prepared."
    if status == "shipped":
        return (
            f"Order Shipped - {number}",
            f"Your order {number} has been shipped. Tracking number: {order.tracking_number}.",
        )
    if status == "delivered":
        return f"Order Delivered - {number}", f"Your order {number} has been delivered. Enjoy your purchase!"
    if status == "cancelled":
        return f"Order Cancelled - {number}", f"Your order {number} has been cancelled."
    return None


def notify_order_event(order: Order, title_message: tuple[str, str] | None) -> Notification | None:
    """Stage an order notification for a signed-in owner; guests get none."""
    if order.user_id is None or title_message is None:
        return None
    title, message = title_message
    return add_notification(order.user_id, title, message, TYPE_ORDER, order_id=order.id)


# =============================================================================
# ADMIN SEND
# =============================================================================

def send_notification(
    user_id: int,
    title: str,
    message: str,
    notification_type: str = TYPE_SYSTEM,
    order_id: int | None = None,
) -> Notification:
    def _op():
        if not db.session.get(User, user_id):
            raise NotFoundError(f"User {user_id} not found")
        if order_id is not None and not db.session.get(Order, order_id):
            raise NotFoundError(f"Order {order_id} not found")
        return add_notification(user_id, title, message, notification_type, order_id=order_id)

    return run_in_transaction(_op)


def send_bulk_notification(user_ids, title: str, message: str, notification_type: str = TYPE_SYSTEM) -> dict:
    """
    Send the same notification to several users.

    Unknown user ids are skipped and reported back, the rest are sent in one
    transaction.
    """
    def _op():
        known = {
            row[0]
            for row in db.session.query(User.id).filter(User.id.in_(list(user_ids))).all()
        }
        sent = 0
        for user_id in user_ids:
            if user_id in known:
                add_notification(user_id, title, message, notification_type)
                sent += 1
        return {"sent": sent, "skipped_user_ids": [uid for uid in user_ids if uid not in known]}

    result = run_in_transaction(_op)
    current_app.logger.info("Bulk notification '%s' sent to %s users", title, result["sent"])
    return result


# =============================================================================
# INBOX
# =============================================================================

def unread_count(user_id: int) -> int:
    return db.session.query(Notification).filter_by(user_id=user_id, read=False).count()


def list_notifications(
    user_id: int,
    *,
    page: int | None = None,
    per_page: int | None = None,
    notification_type: str | None = None,
    unread_only: bool = False,
) -> dict:
    if notification_type is not None and notification_type not in VALID_TYPES:
        raise InvalidArgumentError("Invalid notification type", {"type": f"must be one of {', '.join(sorted(VALID_TYPES))}"})

    query = db.session.query(Notification).filter(Notification.user_id == user_id)
    if notification_type:
        query = query.filter(Notification.type == notification_type)
    if unread_only:
        query = query.filter(Notification.read.is_(False))
    query = query.order_by(Notification.created_at.desc(), Notification.id.desc())

    result = paginate(query, page=page, per_page=per_page, serialize=lambda n: n.to_dict())
    result["unread_count"] = unread_count(user_id)
    return result


def mark_read(notification_id: int, user_id: int) -> Notification:
    def _op():
        notification = db.session.get(Notification, notification_id)
        # Other users' notifications are reported as missing
        if not notification or notification.user_id != user_id:
            raise NotFoundError("Notification not found")
        if not notification.read:
            notification.read = True
            notification.read_at = utcnow()
        return notification

    return run_in_transaction(_op)


def mark_all_read(user_id: int) -> int:
    def _op():
        now = utcnow()
        rows = db.session.query(Notification).filter_by(user_id=user_id, read=False).all()
        for notification in rows:
            notification.read = True
            notification.read_at = now
        return len(rows)

    return run_in_transaction(_op)
