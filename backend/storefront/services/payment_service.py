# Overview: Payment attempts (UPI and card), verification through the gateway, and expiry.

"""
Payment Processing Service

DESIGN PRINCIPLES:
- A payment is an attempt against one order; an order may have several.
- Payments have their own status machine (PAYMENT_TRANSITIONS). Every
  change is written to the append-only payment_events log.
- Only a payment reaching "completed" marks its order paid. That update,
  the order's "Payment Received" tracking entry and the customer
  notification commit in the same transaction as the payment change.
- Verification is idempotent. A completed payment reports "verified" again
  without touching the order, and an order that is already paid never gets
  a second "Payment Received" entry.
- The gateway is passed in by the caller; this module holds no gateway state.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta
from urllib.parse import quote

from flask import current_app

from ..errors import (
    FailedPreconditionError,
    InvalidArgumentError,
    NotFoundError,
)
from ..extensions import db
from ..models import Order, Payment, PaymentEvent
from ..money import format_cents
from ..time_utils import utcnow
from ..validation import CardDetails
from . import notification_service, order_service
from .access import Requester, assert_can_access_order
from .concurrency import lock_for_update, run_in_transaction
from .identifier_service import next_payment_reference
from .payment_gateway import (
    OUTCOME_FAILED,
    OUTCOME_PENDING,
    OUTCOME_VERIFIED,
    PaymentGateway,
    VerificationRequest,
)


# =============================================================================
# PAYMENT METHODS / STATUS (CONSTANTS)
# =============================================================================

METHOD_UPI = "upi"
METHOD_CARD = "card"

STATUS_INITIATED = "initiated"
STATUS_PROCESSING = "processing"
STATUS_PENDING = "pending"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"

TERMINAL_STATUSES = {STATUS_COMPLETED, STATUS_FAILED}

PAYMENT_TRANSITIONS = {
    STATUS_INITIATED: {STATUS_PROCESSING, STATUS_PENDING, STATUS_COMPLETED, STATUS_FAILED},
    STATUS_PROCESSING: {STATUS_PENDING, STATUS_COMPLETED, STATUS_FAILED},
    STATUS_PENDING: {STATUS_COMPLETED, STATUS_FAILED},
    STATUS_COMPLETED: set(),
    STATUS_FAILED: set(),
}

DEFAULT_EXPIRY_MINUTES = 10


# =============================================================================
# TEST CARDS / UPI RULES
# =============================================================================

DECLINED_TEST_CARD = "4000000000000002"
OTP_TEST_CARD = "4000000000000119"

CARD_BRANDS = (
    ("visa", re.compile(r"^4")),
    ("mastercard", re.compile(r"^(5[1-5]|2[2-7])")),
    ("amex", re.compile(r"^3[47]")),
    ("discover", re.compile(r"^6(011|5)")),
    ("rupay", re.compile(r"^(60|65|81|82)")),
)

UPI_ID_RE = re.compile(r"^[a-zA-Z0-9.\-_]{2,256}@[a-zA-Z][a-zA-Z0-9.\-_]{2,64}$")


def luhn_valid(number: str) -> bool:
    if not number.isdigit() or not 13 <= len(number) <= 19:
        return False
    total = 0
    for idx, ch in enumerate(reversed(number)):
        digit = int(ch)
        if idx % 2 == 1:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return total % 10 == 0


def detect_card_brand(number: str) -> str:
    """First matching brand wins; rupay's 65 prefix is shadowed by discover."""
    for brand, pattern in CARD_BRANDS:
        if pattern.match(number):
            return brand
    return "unknown"


def mask_card_number(number: str) -> str:
    return f"XXXX-XXXX-XXXX-{number[-4:]}"


def card_expired(month: int, year: int, now: datetime) -> bool:
    """A card is valid through the last day of its expiry month."""
    return (year, month) < (now.year, now.month)


def build_upi_url(*, merchant_upi_id: str, merchant_name: str, amount_cents: int, reference: str, order_number: str) -> str:
    return (
        f"upi://pay?pa={quote(merchant_upi_id, safe='@.-_')}"
        f"&pn={quote(merchant_name)}"
        f"&am={format_cents(amount_cents)}"
        f"&cu=INR"
        f"&tr={quote(reference)}"
        f"&tn={quote('Order ' + order_number)}"
    )


# =============================================================================
# INTERNAL HELPERS
# =============================================================================

def _record_event(payment: Payment, from_status: str | None, to_status: str, *, outcome: str | None = None, note: str | None = None) -> None:
    payment.events.append(PaymentEvent(
        from_status=from_status,
        to_status=to_status,
        gateway_outcome=outcome,
        note=note,
    ))


def _transition(payment: Payment, to_status: str, *, outcome: str | None = None, note: str | None = None) -> None:
    current = payment.status
    if current == to_status:
        return
    if to_status not in PAYMENT_TRANSITIONS.get(current, set()):
        raise FailedPreconditionError(f"Cannot move payment from {current} to {to_status}")
    payment.status = to_status
    payment.updated_at = utcnow()
    _record_event(payment, current, to_status, outcome=outcome, note=note)


def _load_payable_order(order_id: int, requester: Requester) -> Order:
    order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
    if not order:
        raise NotFoundError(f"Order {order_id} not found")
    assert_can_access_order(order, requester)
    if order.status == order_service.STATUS_CANCELLED:
        raise FailedPreconditionError("Cannot pay for a cancelled order")
    if order.payment_status == order_service.PAYMENT_PAID:
        raise FailedPreconditionError("Order is already paid")
    if order.total_cents <= 0:
        raise FailedPreconditionError("Order total must be greater than zero")
    return order


def _new_payment(order: Order, method: str, status: str, **details) -> Payment:
    now = utcnow()
    payment = Payment(
        reference=next_payment_reference(method, now),
        order_id=order.id,
        amount_cents=order.total_cents,
        payment_method=method,
        status=status,
        created_at=now,
        updated_at=now,
        **details,
    )
    _record_event(payment, None, status, note=details.get("failure_reason"))
    db.session.add(payment)
    return payment


# =============================================================================
# UPI
# =============================================================================

def initiate_upi_payment(
    order_id: int,
    requester: Requester,
    *,
    merchant_upi_id: str | None,
    merchant_name: str,
) -> Payment:
    """
    Create an "initiated" UPI payment carrying a upi:// deep link.

    Raises:
        FailedPreconditionError: merchant UPI id not configured, or order not payable
    """
    if not merchant_upi_id:
        raise FailedPreconditionError("UPI payments are not configured")

    def _op():
        order = _load_payable_order(order_id, requester)
        payment = _new_payment(order, METHOD_UPI, STATUS_INITIATED)
        payment.upi_url = build_upi_url(
            merchant_upi_id=merchant_upi_id,
            merchant_name=merchant_name,
            amount_cents=order.total_cents,
            reference=payment.reference,
            order_number=order.order_number,
        )
        return payment

    return run_in_transaction(_op)


def create_upi_collect(order_id: int, upi_id: str, requester: Requester) -> Payment:
    """
    Collect request against the payer's UPI id. The payment stays "pending"
    until verified; ids containing "fail" are declined immediately.
    """
    upi_id = (upi_id or "").strip()
    if not UPI_ID_RE.match(upi_id):
        raise InvalidArgumentError("Invalid UPI ID", {"upi_id": "must look like name@bank"})

    def _op():
        order = _load_payable_order(order_id, requester)
        if "fail" in upi_id.lower():
            return _new_payment(order, METHOD_UPI, STATUS_FAILED, upi_id=upi_id, failure_reason="UPI ID declined")
        return _new_payment(order, METHOD_UPI, STATUS_PENDING, upi_id=upi_id)

    payment = run_in_transaction(_op)
    current_app.logger.info("UPI collect %s for order %s -> %s", payment.reference, order_id, payment.status)
    return payment


# =============================================================================
# CARD
# =============================================================================

def process_card_payment(order_id: int, card: CardDetails, requester: Requester, *, now: datetime | None = None) -> Payment:
    """
    Accept card details and open a card payment.

    Only the masked number, brand and holder name are stored.

    Returns a Payment in one of:
    - "failed" for the declined test card
    - "pending" with requires_otp for the OTP test card
    - "processing" otherwise (completed later by verify_payment)

    Raises:
        InvalidArgumentError: Luhn check failed or card expired
    """
    now = now or utcnow()
    errors = {}
    if not luhn_valid(card.number):
        errors["card.number"] = "is not a valid card number"
    if card_expired(card.expiry_month, card.expiry_year, now):
        errors["card.expiry_year"] = "card has expired"
    if errors:
        raise InvalidArgumentError("Invalid card details", errors)

    details = {
        "masked_card_number": mask_card_number(card.number),
        "card_brand": detect_card_brand(card.number),
        "card_holder_name": card.holder_name,
    }

    def _op():
        order = _load_payable_order(order_id, requester)
        if card.number == DECLINED_TEST_CARD:
            return _new_payment(order, METHOD_CARD, STATUS_FAILED, failure_reason="Card declined", **details)
        if card.number == OTP_TEST_CARD:
            return _new_payment(order, METHOD_CARD, STATUS_PENDING, requires_otp=True, **details)
        return _new_payment(order, METHOD_CARD, STATUS_PROCESSING, **details)

    payment = run_in_transaction(_op)
    current_app.logger.info("Card payment %s for order %s -> %s", payment.reference, order_id, payment.status)
    return payment


def process_payment(action, requester: Requester, *, merchant_upi_id: str | None, merchant_name: str) -> Payment:
    """Dispatch a ProcessPayment action to the UPI or card flow."""
    if action.payment_method == METHOD_CARD:
        return process_card_payment(action.order_id, action.card, requester)
    if action.upi_id:
        return create_upi_collect(action.order_id, action.upi_id, requester)
    return initiate_upi_payment(
        action.order_id,
        requester,
        merchant_upi_id=merchant_upi_id,
        merchant_name=merchant_name,
    )


# =============================================================================
# VERIFICATION
# =============================================================================

def _is_expired(payment: Payment, now: datetime, expiry_minutes: int) -> bool:
    return payment.created_at + timedelta(minutes=expiry_minutes) < now


def _mark_order_paid(order: Order, payment: Payment, now: datetime) -> None:
    """Apply payment success to the order once."""
    if order.payment_status == order_service.PAYMENT_PAID:
        return
    order.payment_status = order_service.PAYMENT_PAID
    order.transaction_id = payment.transaction_id or payment.reference
    order.paid_at = now
    # Never moves an order backwards: a processing/shipped order keeps its status
    if order.status == order_service.STATUS_PENDING:
        order.status = order_service.STATUS_CONFIRMED
    order.updated_at = now
    order_service.append_tracking_event(
        order,
        order_service.PAYMENT_RECEIVED_LABEL,
        order_service.PAYMENT_RECEIVED_DESCRIPTION,
        order_service.PAYMENT_RECEIVED_LOCATION,
    )
    notification_service.notify_order_event(order, notification_service.payment_received_message(order))


def verify_payment(
    reference: str,
    *,
    transaction_id: str,
    gateway: PaymentGateway,
    requester: Requester,
    otp: str | None = None,
    upi_reference: str | None = None,
    expiry_minutes: int = DEFAULT_EXPIRY_MINUTES,
) -> dict:
    """
    Ask the gateway whether a payment went through and apply the outcome.

    Args:
        reference: Payment reference (TX.../CC...)
        transaction_id: Gateway transaction id reported by the client
        gateway: PaymentGateway to consult
        requester: Caller; must own the order (or be admin)
        otp: Card OTP, required for payments flagged requires_otp
        upi_reference: Payer-side UPI reference, passed through to the gateway
        expiry_minutes: Non-terminal payments older than this fail as expired

    Returns:
        {"status": "verified" | "pending" | "failed", "message", "payment", "order"}

    Raises:
        NotFoundError: unknown reference
        PermissionDeniedError: caller does not own the order
        InvalidArgumentError: OTP required but missing
        FailedPreconditionError: order cancelled or already paid by another payment
    """
    def _op():
        payment = lock_for_update(db.session.query(Payment).filter_by(reference=reference)).first()
        if not payment:
            raise NotFoundError("Payment not found")
        order = lock_for_update(db.session.query(Order).filter_by(id=payment.order_id)).first()
        assert_can_access_order(order, requester)

        if payment.status == STATUS_COMPLETED:
            return OUTCOME_VERIFIED, "Payment already verified", payment, order
        if payment.status == STATUS_FAILED:
            return OUTCOME_FAILED, payment.failure_reason or "Payment failed", payment, order

        now = utcnow()
        if _is_expired(payment, now, expiry_minutes):
            payment.failure_reason = "Payment expired"
            _transition(payment, STATUS_FAILED, note="expired")
            return OUTCOME_FAILED, "Payment expired", payment, order

        if order.status == order_service.STATUS_CANCELLED:
            raise FailedPreconditionError("Order has been cancelled")
        if order.payment_status == order_service.PAYMENT_PAID:
            raise FailedPreconditionError("Order is already paid")
        if payment.requires_otp and not otp:
            raise InvalidArgumentError("OTP is required for this card", {"otp": "is required"})

        result = gateway.submit(VerificationRequest(
            payment_method=payment.payment_method,
            transaction_id=transaction_id,
            amount_cents=payment.amount_cents,
            otp=otp,
            upi_reference=upi_reference,
        ))

        if result.is_verified:
            payment.transaction_id = transaction_id
            payment.verified_at = now
            _transition(payment, STATUS_COMPLETED, outcome=result.status, note=result.message)
            _mark_order_paid(order, payment, now)
        elif result.status == OUTCOME_PENDING:
            _transition(payment, STATUS_PENDING, outcome=result.status, note=result.message)
        else:
            payment.failure_reason = result.message
            _transition(payment, STATUS_FAILED, outcome=OUTCOME_FAILED, note=result.message)
            if order.payment_status != order_service.PAYMENT_PAID:
                order.payment_status = order_service.PAYMENT_FAILED
                order.updated_at = now

        return result.status, result.message, payment, order

    status, message, payment, order = run_in_transaction(_op)
    current_app.logger.info("Payment %s verification -> %s", reference, status)
    return {
        "status": status,
        "message": message,
        "payment": payment.to_dict(),
        "order": order.to_dict(),
    }


# =============================================================================
# QUERIES / MAINTENANCE
# =============================================================================

def get_payment(reference: str, requester: Requester) -> Payment:
    payment = db.session.query(Payment).filter_by(reference=reference).first()
    if not payment:
        raise NotFoundError("Payment not found")
    assert_can_access_order(payment.order, requester)
    return payment


def list_order_payments(order_id: int, requester: Requester) -> list[Payment]:
    order = db.session.get(Order, order_id)
    if not order:
        raise NotFoundError(f"Order {order_id} not found")
    assert_can_access_order(order, requester)
    return list(order.payments)


def expire_stale_payments(expiry_minutes: int = DEFAULT_EXPIRY_MINUTES, now: datetime | None = None) -> int:
    """
    Fail every non-terminal payment older than `expiry_minutes`.

    Returns the number of payments expired.
    """
    now = now or utcnow()
    cutoff = now - timedelta(minutes=expiry_minutes)

    def _op():
        stale = (
            db.session.query(Payment)
            .filter(Payment.status.notin_(TERMINAL_STATUSES), Payment.created_at < cutoff)
            .all()
        )
        for payment in stale:
            payment.failure_reason = "Payment expired"
            _transition(payment, STATUS_FAILED, note="expired")
        return len(stale)

    return run_in_transaction(_op)
