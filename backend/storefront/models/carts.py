from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class Cart(db.Model):
    """
    Server-held cart.

    Exactly one of user_id / session_id is set: signed-in carts are keyed by
    user, guest carts by the browser session id.
    """
    __tablename__ = "carts"
    __table_args__ = (
        db.CheckConstraint(
            "(user_id IS NOT NULL) OR (session_id IS NOT NULL)",
            name="ck_carts_owner",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, unique=True)
    session_id = db.Column(db.String(128), nullable=True, unique=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    items = db.relationship(
        "CartItem",
        back_populates="cart",
        order_by="CartItem.id",
        cascade="all, delete-orphan",
        lazy=True,
    )


class CartItem(db.Model):
    __tablename__ = "cart_items"
    __table_args__ = (
        db.UniqueConstraint("cart_id", "product_id", name="uq_cart_items_cart_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    cart_id = db.Column(db.Integer, db.ForeignKey("carts.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    added_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    cart = db.relationship("Cart", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        product = self.product
        return {
            "product_id": self.product_id,
            "quantity": self.quantity,
            "name": product.name if product else None,
            "unit_price_cents": product.sale_price_cents if product else None,
            "image": (product.images or [None])[0] if product else None,
            "in_stock": bool(product and product.is_active and product.stock >= self.quantity),
            "added_at": to_utc_z(self.added_at),
        }
