from __future__ import annotations

from ..extensions import db
from ..money import format_cents
from ..time_utils import to_utc_z, utcnow


class Payment(db.Model):
    """
    One payment attempt against an order.

    An order may have several attempts; only the one that reaches
    "completed" marks the order paid. Card numbers are stored masked and
    CVVs are never stored.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.Index("ix_payments_order_status", "order_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    reference = db.Column(db.String(64), nullable=False, unique=True, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(16), nullable=False)  # upi, card
    status = db.Column(db.String(16), nullable=False, default="initiated", index=True)

    # Gateway-side identifier supplied at verification
    transaction_id = db.Column(db.String(64), nullable=True)

    # Card detail (masked)
    masked_card_number = db.Column(db.String(32), nullable=True)
    card_brand = db.Column(db.String(16), nullable=True)
    card_holder_name = db.Column(db.String(120), nullable=True)
    requires_otp = db.Column(db.Boolean, nullable=False, default=False)

    # UPI detail
    upi_id = db.Column(db.String(320), nullable=True)
    upi_url = db.Column(db.String(1000), nullable=True)

    failure_reason = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    verified_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    order = db.relationship("Order", backref=db.backref("payments", lazy=True, order_by="Payment.id"))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "reference": self.reference,
            "order_id": self.order_id,
            "amount_cents": self.amount_cents,
            "amount": format_cents(self.amount_cents),
            "payment_method": self.payment_method,
            "status": self.status,
            "transaction_id": self.transaction_id,
            "masked_card_number": self.masked_card_number,
            "card_brand": self.card_brand,
            "card_holder_name": self.card_holder_name,
            "requires_otp": self.requires_otp,
            "upi_id": self.upi_id,
            "upi_url": self.upi_url,
            "failure_reason": self.failure_reason,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "verified_at": to_utc_z(self.verified_at),
        }


class PaymentEvent(db.Model):
    """
    Immutable log of payment status changes.

    from_status is NULL for the creation event.
    """
    __tablename__ = "payment_events"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    payment_id = db.Column(db.Integer, db.ForeignKey("payments.id"), nullable=False, index=True)

    from_status = db.Column(db.String(16), nullable=True)
    to_status = db.Column(db.String(16), nullable=False)
    gateway_outcome = db.Column(db.String(16), nullable=True)  # verified, pending, failed
    note = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    payment = db.relationship("Payment", backref=db.backref("events", lazy=True, order_by="PaymentEvent.id"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "payment_id": self.payment_id,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "gateway_outcome": self.gateway_outcome,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }
