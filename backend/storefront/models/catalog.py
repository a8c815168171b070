from __future__ import annotations

from ..extensions import db
from ..money import format_cents
from ..time_utils import to_utc_z, utcnow


class Product(db.Model):
    """
    Catalog product.

    stock is the sellable on-hand quantity. It is only ever changed through
    inventory_service, which writes a StockMovement row for each change and
    uses conditional UPDATEs so the value cannot go negative.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock >= 0", name="ck_products_stock_nonnegative"),
        db.Index("ix_products_category_active", "category", "is_active"),
        db.Index("ix_products_active_rating", "is_active", "rating_average"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(64), nullable=True, unique=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(100), nullable=False)
    brand = db.Column(db.String(100), nullable=True)

    original_price_cents = db.Column(db.Integer, nullable=False)
    sale_price_cents = db.Column(db.Integer, nullable=False)

    stock = db.Column(db.Integer, nullable=False, default=0)
    low_stock_threshold = db.Column(db.Integer, nullable=False, default=10)

    # Average review score (0-5) and number of reviews; trending sorts on these
    rating_average = db.Column(db.Float, nullable=False, default=0.0)
    rating_count = db.Column(db.Integer, nullable=False, default=0)

    images = db.Column(db.JSON, nullable=False, default=list)
    tags = db.Column(db.JSON, nullable=False, default=list)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    @property
    def is_low_stock(self) -> bool:
        return self.stock < self.low_stock_threshold

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "brand": self.brand,
            "original_price_cents": self.original_price_cents,
            "sale_price_cents": self.sale_price_cents,
            "original_price": format_cents(self.original_price_cents),
            "sale_price": format_cents(self.sale_price_cents),
            "stock": self.stock,
            "low_stock_threshold": self.low_stock_threshold,
            "in_stock": self.stock > 0,
            "rating_average": self.rating_average,
            "rating_count": self.rating_count,
            "images": list(self.images or []),
            "tags": list(self.tags or []),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only stock ledger.

    One row per stock change; resulting_stock is the product's stock right
    after the change was applied.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_product_created", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity_delta = db.Column(db.Integer, nullable=False)
    resulting_stock = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(32), nullable=False)  # order, adjustment, restock, cancellation
    reference = db.Column(db.String(64), nullable=True)
    note = db.Column(db.String(255), nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity_delta": self.quantity_delta,
            "resulting_stock": self.resulting_stock,
            "reason": self.reason,
            "reference": self.reference,
            "note": self.note,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }


class RestockRequest(db.Model):
    """Admin request to reorder a product from the supplier."""
    __tablename__ = "restock_requests"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    note = db.Column(db.String(255), nullable=True)
    status = db.Column(db.String(16), nullable=False, default="open", index=True)  # open, fulfilled, cancelled

    requested_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "note": self.note,
            "status": self.status,
            "requested_by_user_id": self.requested_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "resolved_at": to_utc_z(self.resolved_at),
        }
