from __future__ import annotations

from ..extensions import db
from ..money import format_cents
from ..time_utils import to_utc_z, utcnow


class Order(db.Model):
    """
    Customer order.

    Owned either by a signed-in user (user_id) or a guest browser session
    (session_id). Orders are never deleted; cancellation is a status.

    The tracking history lives in order_tracking_events and is append-only.
    version_id guards against concurrent status/payment updates.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_status_created", "status", "created_at"),
        db.Index("ix_orders_user_created", "user_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(32), nullable=False, unique=True)
    tracking_number = db.Column(db.String(32), nullable=False, unique=True, index=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    session_id = db.Column(db.String(128), nullable=True, index=True)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    payment_status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    payment_method = db.Column(db.String(16), nullable=False)

    total_cents = db.Column(db.Integer, nullable=False)
    shipping_address = db.Column(db.JSON, nullable=False)

    # Set by the payment that paid the order
    transaction_id = db.Column(db.String(64), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)

    estimated_delivery = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    user = db.relationship("User")
    lines = db.relationship(
        "OrderLine",
        back_populates="order",
        order_by="OrderLine.id",
        lazy=True,
    )
    tracking_events = db.relationship(
        "OrderTrackingEvent",
        back_populates="order",
        order_by="OrderTrackingEvent.id",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "tracking_number": self.tracking_number,
            "user_id": self.user_id,
            "status": self.status,
            "payment_status": self.payment_status,
            "payment_method": self.payment_method,
            "total_cents": self.total_cents,
            "total_amount": format_cents(self.total_cents),
            "shipping_address": dict(self.shipping_address or {}),
            "transaction_id": self.transaction_id,
            "paid_at": to_utc_z(self.paid_at),
            "estimated_delivery": to_utc_z(self.estimated_delivery),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "tracking_history": [event.to_dict() for event in self.tracking_events],
        }
        if include_lines:
            data["items"] = [line.to_dict() for line in self.lines]
        return data


class OrderLine(db.Model):
    """Line snapshot: name and price are copied from the catalog at placement."""
    __tablename__ = "order_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    name = db.Column(db.String(200), nullable=False)
    image = db.Column(db.String(500), nullable=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    order = db.relationship("Order", back_populates="lines")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "name": self.name,
            "image": self.image,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "unit_price": format_cents(self.unit_price_cents),
            "line_total_cents": self.line_total_cents,
        }


class OrderTrackingEvent(db.Model):
    """
    One entry of an order's tracking history.

    Rows are only ever inserted. Ordering is by primary key, which follows
    insertion order.
    """
    __tablename__ = "order_tracking_events"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    status = db.Column(db.String(64), nullable=False)  # display label, e.g. "Shipped"
    description = db.Column(db.String(255), nullable=False)
    location = db.Column(db.String(120), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    order = db.relationship("Order", back_populates="tracking_events")

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "timestamp": to_utc_z(self.created_at),
            "description": self.description,
            "location": self.location,
        }
