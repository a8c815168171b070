# Overview: Order placement, status transitions, tracking history and order queries.

"""
Order Service

DESIGN PRINCIPLES:
- Validate everything first, then write everything in one transaction.
  Placement creates the order, its lines, its first tracking entry and all
  stock decrements together; any shortage rolls the whole placement back.
- The catalog is authoritative for names and prices. Lines snapshot the
  price at placement time.
- Tracking history is append-only. Each status change appends exactly one
  OrderTrackingEvent; nothing ever edits or removes one.
- Status changes follow ALLOWED_TRANSITIONS unless the caller asks for the
  permissive mode (ORDER_STATUS_STRICT=false), in which any status may
  follow any other.
"""

from __future__ import annotations

from collections import OrderedDict

from flask import current_app

from ..errors import FailedPreconditionError, InvalidArgumentError, NotFoundError
from ..extensions import db
from ..models import Cart, Order, OrderLine, OrderTrackingEvent, Product
from ..pagination import paginate
from ..time_utils import estimated_delivery, utcnow
from ..validation import PlaceOrderRequest
from . import inventory_service, notification_service
from .access import Requester, assert_can_access_order
from .concurrency import lock_for_update, run_in_transaction
from .identifier_service import next_order_identifiers


# =============================================================================
# ORDER STATUS (CONSTANTS)
# =============================================================================

STATUS_PENDING = "pending"
STATUS_CONFIRMED = "confirmed"
STATUS_PROCESSING = "processing"
STATUS_SHIPPED = "shipped"
STATUS_DELIVERED = "delivered"
STATUS_CANCELLED = "cancelled"

VALID_STATUSES = (
    STATUS_PENDING,
    STATUS_CONFIRMED,
    STATUS_PROCESSING,
    STATUS_SHIPPED,
    STATUS_DELIVERED,
    STATUS_CANCELLED,
)

ALLOWED_TRANSITIONS = {
    STATUS_PENDING: {STATUS_CONFIRMED, STATUS_PROCESSING, STATUS_CANCELLED},
    STATUS_CONFIRMED: {STATUS_PROCESSING, STATUS_SHIPPED, STATUS_CANCELLED},
    STATUS_PROCESSING: {STATUS_SHIPPED, STATUS_CANCELLED},
    STATUS_SHIPPED: {STATUS_DELIVERED},
    STATUS_DELIVERED: set(),
    STATUS_CANCELLED: set(),
}


# =============================================================================
# PAYMENT STATUS ON THE ORDER (CONSTANTS)
# =============================================================================

PAYMENT_PENDING = "pending"
PAYMENT_PAID = "paid"
PAYMENT_FAILED = "failed"


# =============================================================================
# TRACKING TEXT
# =============================================================================

PLACED_LABEL = "Order Placed"
PLACED_DESCRIPTION = "Your order has been placed successfully"
PLACED_LOCATION = "Online"

PAYMENT_RECEIVED_LABEL = "Payment Received"
PAYMENT_RECEIVED_DESCRIPTION = "Payment has been received and verified"
PAYMENT_RECEIVED_LOCATION = "Payment Gateway"

STATUS_TRACKING_TEXT = {
    STATUS_PENDING: ("Your order is pending", "Processing Center"),
    STATUS_CONFIRMED: ("Your order is being processed", "Processing Center"),
    STATUS_PROCESSING: ("Your order is being prepared for shipment", "Processing Center"),
    STATUS_SHIPPED: ("Your order has been shipped", "Shipping Center"),
    STATUS_DELIVERED: ("Your order has been delivered", "Delivery Location"),
    STATUS_CANCELLED: ("Your order has been cancelled", "Processing Center"),
}

USER_ORDERS_DEFAULT_LIMIT = 20


def status_label(status: str) -> str:
    """"shipped" -> "Shipped". Only the first character changes case."""
    return status[:1].upper() + status[1:]


def append_tracking_event(order: Order, label: str, description: str, location: str) -> OrderTrackingEvent:
    """The only way tracking history grows."""
    event = OrderTrackingEvent(
        status=label,
        description=description,
        location=location,
        created_at=utcnow(),
    )
    order.tracking_events.append(event)
    return event


def can_transition(current: str, target: str, *, strict: bool = True) -> bool:
    if target not in VALID_STATUSES:
        return False
    if not strict:
        return True
    return target in ALLOWED_TRANSITIONS.get(current, set())


# =============================================================================
# PLACEMENT
# =============================================================================

def _merge_lines(request: PlaceOrderRequest) -> "OrderedDict[int, dict]":
    """Sum quantities for repeated product ids, keeping first-seen order."""
    merged: "OrderedDict[int, dict]" = OrderedDict()
    for idx, line in enumerate(request.items):
        entry = merged.get(line.product_id)
        if entry is None:
            merged[line.product_id] = {"index": idx, "quantity": line.quantity, "image": line.image}
        else:
            entry["quantity"] += line.quantity
            entry["image"] = entry["image"] or line.image
    return merged


def _clear_owner_cart(user_id: int | None, session_id: str | None) -> None:
    query = db.session.query(Cart)
    if user_id is not None:
        cart = query.filter_by(user_id=user_id).first()
    else:
        cart = query.filter_by(session_id=session_id).first()
    if cart:
        db.session.delete(cart)


def place_order(request: PlaceOrderRequest, requester: Requester) -> Order:
    """
    Create a pending order from a validated checkout request.

    Steps, all in one transaction:
    1. Resolve every product; unknown or inactive ids fail validation.
    2. Conditionally decrement stock for each distinct product.
    3. Insert the order, its lines and the "Order Placed" tracking entry.
    4. Stage an "order placed" notification (signed-in buyers only) and
       clear the buyer's server-held cart.

    Args:
        request: Parsed checkout payload (see validation.parse_place_order)
        requester: Buyer identity; a guest must carry a session id

    Returns:
        The committed Order

    Raises:
        InvalidArgumentError: no buyer identity, or unknown/inactive products
        FailedPreconditionError: one or more products lack stock (nothing is written)
    """
    if requester.user is None and not requester.session_id:
        raise InvalidArgumentError(
            "A session id is required for guest checkout",
            {"session_id": "is required for guest checkout"},
        )

    merged = _merge_lines(request)

    def _op():
        products = {
            p.id: p
            for p in db.session.query(Product).filter(Product.id.in_(list(merged))).all()
        }

        errors = {}
        for product_id, entry in merged.items():
            product = products.get(product_id)
            if product is None or not product.is_active:
                errors[f"items.{entry['index']}.product_id"] = "unknown product"
        if errors:
            raise InvalidArgumentError("Invalid order data", errors)

        now = utcnow()
        order_number, tracking_number = next_order_identifiers(now)

        shortages = {}
        for product_id, entry in merged.items():
            try:
                inventory_service.apply_stock_delta(
                    product_id,
                    -entry["quantity"],
                    reason=inventory_service.REASON_ORDER,
                    reference=order_number,
                    user_id=requester.user_id,
                )
            except FailedPreconditionError as exc:
                shortages[f"items.{entry['index']}.quantity"] = (
                    f"only {exc.fields.get('available', 0)} left in stock"
                )
        if shortages:
            raise FailedPreconditionError("Insufficient stock", shortages)

        order = Order(
            order_number=order_number,
            tracking_number=tracking_number,
            user_id=requester.user_id,
            session_id=None if requester.user else requester.session_id,
            status=STATUS_PENDING,
            payment_status=PAYMENT_PENDING,
            payment_method=request.payment_method,
            total_cents=0,
            shipping_address=request.shipping_address.to_dict(),
            estimated_delivery=estimated_delivery(now),
            created_at=now,
            updated_at=now,
        )

        total = 0
        for product_id, entry in merged.items():
            product = products[product_id]
            line_total = product.sale_price_cents * entry["quantity"]
            total += line_total
            order.lines.append(OrderLine(
                product_id=product_id,
                name=product.name,
                image=entry["image"] or (product.images or [None])[0],
                quantity=entry["quantity"],
                unit_price_cents=product.sale_price_cents,
                line_total_cents=line_total,
            ))
        order.total_cents = total

        append_tracking_event(order, PLACED_LABEL, PLACED_DESCRIPTION, PLACED_LOCATION)
        db.session.add(order)
        db.session.flush()

        notification_service.notify_order_event(order, notification_service.order_placed_message(order))
        _clear_owner_cart(requester.user_id, requester.session_id)
        return order

    order = run_in_transaction(_op)
    current_app.logger.info(
        "Order %s placed (%s lines, total %s cents)", order.order_number, len(order.lines), order.total_cents
    )
    return order


# =============================================================================
# STATUS TRANSITIONS
# =============================================================================

def update_order_status(
    order_id: int,
    new_status: str,
    *,
    description: str | None = None,
    location: str | None = None,
    strict: bool = True,
    notify: bool = False,
    actor_user_id: int | None = None,
) -> Order:
    """
    Move an order to `new_status` and append one tracking entry.

    The entry label is the status with its first letter capitalized; the
    description/location default to STATUS_TRACKING_TEXT and may be
    overridden by the admin. Cancelling returns every line's quantity to
    stock in the same transaction; moving a cancelled order to any other
    status takes it out again.

    Args:
        strict: enforce ALLOWED_TRANSITIONS
        notify: stage a customer notification for NOTIFY_ON_STATUS changes

    Raises:
        InvalidArgumentError: unknown status
        NotFoundError: order does not exist
        FailedPreconditionError: transition not allowed (nothing is appended),
            or not enough stock to reopen a cancelled order
    """
    if new_status not in VALID_STATUSES:
        raise InvalidArgumentError(
            "Invalid status",
            {"status": f"must be one of {', '.join(VALID_STATUSES)}"},
        )

    def _op():
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if not order:
            raise NotFoundError(f"Order {order_id} not found")

        previous = order.status
        if not can_transition(previous, new_status, strict=strict):
            raise FailedPreconditionError(
                f"Cannot change order status from {previous} to {new_status}",
                {"status": f"allowed from {previous}: {', '.join(sorted(ALLOWED_TRANSITIONS[previous])) or 'none'}"},
            )

        default_description, default_location = STATUS_TRACKING_TEXT[new_status]
        order.status = new_status
        order.updated_at = utcnow()
        append_tracking_event(
            order,
            status_label(new_status),
            description or default_description,
            location or default_location,
        )

        if new_status == STATUS_CANCELLED and previous != STATUS_CANCELLED:
            for line in order.lines:
                inventory_service.apply_stock_delta(
                    line.product_id,
                    line.quantity,
                    reason=inventory_service.REASON_CANCELLATION,
                    reference=order.order_number,
                    user_id=actor_user_id,
                )
        elif previous == STATUS_CANCELLED and new_status != STATUS_CANCELLED:
            # Reopened (permissive mode only): the lines hold stock again
            for line in order.lines:
                inventory_service.apply_stock_delta(
                    line.product_id,
                    -line.quantity,
                    reason=inventory_service.REASON_ORDER,
                    reference=order.order_number,
                    user_id=actor_user_id,
                )

        if notify and new_status in notification_service.NOTIFY_ON_STATUS:
            notification_service.notify_order_event(
                order, notification_service.order_status_message(order, new_status)
            )
        return order

    order = run_in_transaction(_op)
    current_app.logger.info("Order %s status -> %s", order.order_number, new_status)
    return order


# =============================================================================
# QUERIES
# =============================================================================

def get_order(order_id: int, requester: Requester) -> Order:
    """Raises NotFoundError, or PermissionDeniedError when the caller is not the owner/admin."""
    order = db.session.get(Order, order_id)
    if not order:
        raise NotFoundError(f"Order {order_id} not found")
    assert_can_access_order(order, requester)
    return order


def track_order(tracking_number: str, email: str) -> Order:
    """
    Public tracking lookup. The email must match the shipping address;
    a mismatch looks the same as an unknown tracking number.
    """
    order = db.session.query(Order).filter_by(tracking_number=(tracking_number or "").strip().upper()).first()
    if not order:
        raise NotFoundError("Order not found")
    shipping_email = (order.shipping_address or {}).get("email", "")
    if not email or shipping_email.strip().lower() != email.strip().lower():
        raise NotFoundError("Order not found")
    return order


def list_orders(*, page: int | None = None, per_page: int | None = None, status: str | None = None) -> dict:
    """Admin listing, newest first."""
    if status is not None and status not in VALID_STATUSES:
        raise InvalidArgumentError("Invalid status", {"status": f"must be one of {', '.join(VALID_STATUSES)}"})
    query = db.session.query(Order)
    if status:
        query = query.filter(Order.status == status)
    query = query.order_by(Order.created_at.desc(), Order.id.desc())
    return paginate(query, page=page, per_page=per_page, serialize=lambda o: o.to_dict(include_lines=False))


def list_user_orders(
    requester: Requester,
    *,
    limit: int = USER_ORDERS_DEFAULT_LIMIT,
    status: str | None = None,
) -> list[Order]:
    """Orders owned by the signed-in user or, for guests, by the session."""
    if status is not None and status not in VALID_STATUSES:
        raise InvalidArgumentError("Invalid status", {"status": f"must be one of {', '.join(VALID_STATUSES)}"})

    query = db.session.query(Order)
    if requester.user is not None:
        query = query.filter(Order.user_id == requester.user_id)
    else:
        query = query.filter(Order.user_id.is_(None), Order.session_id == requester.session_id)
    if status:
        query = query.filter(Order.status == status)
    return query.order_by(Order.created_at.desc(), Order.id.desc()).limit(max(1, min(limit, 100))).all()
