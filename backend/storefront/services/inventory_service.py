# Overview: Stock changes, stock alerts, restock requests and the inventory report.

"""
Storefront Inventory Invariants

Stock model:
- Product.stock is the sellable on-hand quantity and is never negative.
- Every change goes through apply_stock_delta(), which issues a single
  conditional UPDATE:
      UPDATE products SET stock = stock + :delta
      WHERE id = :id AND stock + :delta >= 0
  A zero rowcount means the product is missing or the change would take
  stock below zero. No read-modify-write happens in Python, so concurrent
  checkouts cannot oversell.
- Each applied change appends one StockMovement row (append-only ledger)
  in the same transaction.

Transactions:
- apply_stock_delta() never commits. Callers (order placement, admin
  adjustments) wrap it in run_in_transaction so the stock change, the
  movement row and the caller's own writes commit or roll back together.
"""

from flask import current_app
from sqlalchemy import case, func, update

from ..errors import FailedPreconditionError, NotFoundError
from ..extensions import db
from ..models import Product, RestockRequest, StockMovement
from ..money import format_cents
from ..time_utils import utcnow
from .concurrency import run_in_transaction


# =============================================================================
# MOVEMENT REASONS
# =============================================================================

REASON_ORDER = "order"
REASON_ADJUSTMENT = "adjustment"
REASON_RESTOCK = "restock"
REASON_CANCELLATION = "cancellation"

REPORT_PRODUCT_LIMIT = 100


def _current_stock(product_id: int) -> int | None:
    return db.session.query(Product.stock).filter(Product.id == product_id).scalar()


def apply_stock_delta(
    product_id: int,
    delta: int,
    *,
    reason: str,
    reference: str | None = None,
    note: str | None = None,
    user_id: int | None = None,
) -> tuple[int, int]:
    """
    Atomically add `delta` (may be negative) to a product's stock.

    Does not commit; runs inside the caller's transaction.

    Returns:
        (previous_stock, new_stock)

    Raises:
        NotFoundError: product does not exist
        FailedPreconditionError: the change would make stock negative
    """
    products = Product.__table__
    result = db.session.execute(
        update(products)
        .where(products.c.id == product_id, products.c.stock + delta >= 0)
        .values(stock=products.c.stock + delta, updated_at=utcnow())
    )

    if result.rowcount == 0:
        available = _current_stock(product_id)
        if available is None:
            raise NotFoundError(f"Product {product_id} not found")
        raise FailedPreconditionError(
            f"Insufficient stock for product {product_id}",
            {"product_id": product_id, "available": available, "requested": -delta},
        )

    # The UPDATE bypassed the ORM; reload the cached row's stock
    product = db.session.get(Product, product_id)
    db.session.refresh(product, ["stock", "updated_at"])
    new_stock = product.stock
    previous_stock = new_stock - delta

    db.session.add(StockMovement(
        product_id=product_id,
        quantity_delta=delta,
        resulting_stock=new_stock,
        reason=reason,
        reference=reference,
        note=note,
        created_by_user_id=user_id,
    ))

    threshold = product.low_stock_threshold
    if delta < 0 and new_stock < threshold <= previous_stock:
        current_app.logger.warning(
            "Product %s fell below its stock alert level (%s < %s)", product_id, new_stock, threshold
        )

    return previous_stock, new_stock


# =============================================================================
# ADMIN OPERATIONS
# =============================================================================

def update_stock(product_id: int, quantity: int, *, note: str | None = None, user_id: int | None = None) -> dict:
    """
    Manual stock adjustment by an admin.

    Args:
        product_id: Product to adjust
        quantity: Signed delta (positive receives, negative removes)
        note: Free-text reason
        user_id: Acting admin

    Returns:
        {"product_id", "previous_stock", "new_stock"}
    """
    def _op():
        reason = REASON_RESTOCK if quantity > 0 else REASON_ADJUSTMENT
        previous_stock, new_stock = apply_stock_delta(
            product_id, quantity, reason=reason, note=note, user_id=user_id
        )
        return {"product_id": product_id, "previous_stock": previous_stock, "new_stock": new_stock}

    return run_in_transaction(_op)


def bulk_update_stock(updates, *, user_id: int | None = None) -> list[dict]:
    """
    Apply several stock adjustments as one transaction.

    If any single adjustment fails, none are applied.
    """
    def _op():
        results = []
        for item in updates:
            reason = REASON_RESTOCK if item.quantity > 0 else REASON_ADJUSTMENT
            previous_stock, new_stock = apply_stock_delta(
                item.product_id, item.quantity, reason=reason, note=item.note, user_id=user_id
            )
            results.append({
                "product_id": item.product_id,
                "previous_stock": previous_stock,
                "new_stock": new_stock,
            })
        return results

    return run_in_transaction(_op)


def set_stock_alert(product_id: int, threshold: int) -> dict:
    def _op():
        product = db.session.get(Product, product_id)
        if not product:
            raise NotFoundError(f"Product {product_id} not found")
        product.low_stock_threshold = threshold
        product.updated_at = utcnow()
        return product

    product = run_in_transaction(_op)
    return {
        "product_id": product.id,
        "low_stock_threshold": product.low_stock_threshold,
        "is_low_stock": product.is_low_stock,
    }


def create_restock_request(
    product_id: int,
    quantity: int,
    *,
    note: str | None = None,
    user_id: int | None = None,
) -> RestockRequest:
    def _op():
        if not db.session.get(Product, product_id):
            raise NotFoundError(f"Product {product_id} not found")
        request = RestockRequest(
            product_id=product_id,
            quantity=quantity,
            note=note,
            status="open",
            requested_by_user_id=user_id,
        )
        db.session.add(request)
        return request

    request = run_in_transaction(_op)
    current_app.logger.info("Restock request %s opened for product %s (qty %s)", request.id, product_id, quantity)
    return request


def list_movements(product_id: int, limit: int = 50) -> list[dict]:
    if not db.session.get(Product, product_id):
        raise NotFoundError(f"Product {product_id} not found")
    rows = (
        db.session.query(StockMovement)
        .filter_by(product_id=product_id)
        .order_by(StockMovement.id.desc())
        .limit(max(1, min(limit, 200)))
        .all()
    )
    return [row.to_dict() for row in rows]


# =============================================================================
# REPORTING
# =============================================================================

def list_low_stock_products() -> list[Product]:
    return (
        db.session.query(Product)
        .filter(Product.is_active.is_(True), Product.stock < Product.low_stock_threshold)
        .order_by(Product.stock.asc(), Product.id.asc())
        .all()
    )


def get_inventory_report(limit: int = REPORT_PRODUCT_LIMIT) -> dict:
    """
    Stock summary across the whole catalog.

    - low_stock: stock below the product's alert level
    - out_of_stock: stock == 0
    - in_stock: stock > 0
    - total_value: sum of sale price x stock

    The product list is capped at `limit` rows.
    """
    totals = db.session.query(
        func.count(Product.id),
        func.coalesce(func.sum(case((Product.stock < Product.low_stock_threshold, 1), else_=0)), 0),
        func.coalesce(func.sum(case((Product.stock == 0, 1), else_=0)), 0),
        func.coalesce(func.sum(case((Product.stock > 0, 1), else_=0)), 0),
        func.coalesce(func.sum(Product.sale_price_cents * Product.stock), 0),
    ).one()

    total_products, low_stock, out_of_stock, in_stock, total_value_cents = (int(v) for v in totals)

    products = db.session.query(Product).order_by(Product.id.asc()).limit(limit).all()

    return {
        "summary": {
            "total_products": total_products,
            "low_stock_products": low_stock,
            "out_of_stock_products": out_of_stock,
            "in_stock_products": in_stock,
            "total_value_cents": total_value_cents,
            "total_value": format_cents(total_value_cents),
        },
        "products": [p.to_dict() for p in products],
    }
