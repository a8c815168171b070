# backend/storefront/services/products_service.py
"""
Products Service

Catalog search for shoppers and product maintenance for admins.

- Prices arrive either as unit amounts ("sale_price": 499.99) or as cents
  ("sale_price_cents": 49999); both are stored as cents.
- Deleting a product deactivates it. Orders keep referencing it.
- Stock may be set on create; afterwards it only changes through
  inventory_service so every change lands in the stock ledger.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import or_

from ..errors import FailedPreconditionError, InvalidArgumentError, NotFoundError
from ..extensions import db
from ..models import Order, OrderLine, Product
from ..money import to_cents
from ..pagination import paginate
from ..time_utils import utcnow
from ..validation import FieldErrors, ModelValidationPolicy, enforce_rules_product, read_int, validate_payload
from . import inventory_service, order_service
from .concurrency import run_in_transaction


PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku", "name", "description", "category", "brand",
        "original_price_cents", "sale_price_cents",
        "stock", "low_stock_threshold", "images", "tags", "is_active",
        "rating_average", "rating_count",
    },
    required_on_create={"name", "category", "original_price_cents", "sale_price_cents"},
)

# Stock is set once at creation; later changes go through inventory_service
PRODUCT_MUTABLE_FIELDS = PRODUCT_POLICY.writable_fields - {"stock"}

# SKUs are unique per product, so a batch may not set one
BULK_MUTABLE_FIELDS = PRODUCT_MUTABLE_FIELDS - {"sku"}
MAX_BULK_PRODUCTS = 100

SORT_OPTIONS = {
    "price_low": (Product.sale_price_cents.asc(), Product.id.asc()),
    "price_high": (Product.sale_price_cents.desc(), Product.id.asc()),
    "newest": (Product.created_at.desc(), Product.id.desc()),
    "name": (Product.name.asc(), Product.id.asc()),
}
DEFAULT_SORT = "newest"

RECOMMENDATION_TYPES = ("similar", "related", "trending", "personalized")
DEFAULT_RECOMMENDATION_LIMIT = 8


def normalize_product_payload(payload: dict) -> dict:
    """Convert unit price fields to their *_cents columns."""
    if not isinstance(payload, dict):
        raise InvalidArgumentError("Invalid JSON payload")
    data = dict(payload)
    for unit_key, cents_key in (("original_price", "original_price_cents"), ("sale_price", "sale_price_cents")):
        if unit_key in data:
            data[cents_key] = to_cents(data.pop(unit_key), field=unit_key)
    return data


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


# =============================================================================
# READS
# =============================================================================

def search_products(
    *,
    query: str | None = None,
    category: str | None = None,
    min_price: str | None = None,
    max_price: str | None = None,
    sort: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
    include_inactive: bool = False,
) -> dict:
    """
    Catalog search with pagination.

    Args:
        query: Case-insensitive match on name, description or brand
        category: Exact category
        min_price / max_price: Unit amounts bounding the sale price
        sort: price_low, price_high, newest (default) or name
        page / per_page: 1-indexed page, at most 50 per page
        include_inactive: Admin view

    Returns:
        Dict with 'items', 'count' and 'pagination'.
    """
    if sort is not None and sort not in SORT_OPTIONS:
        raise InvalidArgumentError("Invalid sort", {"sort": f"must be one of {', '.join(SORT_OPTIONS)}"})

    q = db.session.query(Product)
    if not include_inactive:
        q = q.filter(Product.is_active.is_(True))
    if query:
        pattern = f"%{query.strip()}%"
        q = q.filter(or_(
            Product.name.ilike(pattern),
            Product.description.ilike(pattern),
            Product.brand.ilike(pattern),
        ))
    if category:
        q = q.filter(Product.category == category)
    if min_price not in (None, ""):
        q = q.filter(Product.sale_price_cents >= to_cents(min_price, field="min_price"))
    if max_price not in (None, ""):
        q = q.filter(Product.sale_price_cents <= to_cents(max_price, field="max_price"))

    q = q.order_by(*SORT_OPTIONS[sort or DEFAULT_SORT])
    return paginate(q, page=page, per_page=per_page, serialize=lambda p: p.to_dict())


def get_product(product_id: int, *, include_inactive: bool = False) -> Product:
    product = db.session.get(Product, product_id)
    if not product or (not product.is_active and not include_inactive):
        raise NotFoundError(f"Product {product_id} not found")
    return product


def _active_peers(product: Product):
    return db.session.query(Product).filter(Product.is_active.is_(True), Product.id != product.id)


def _by_rating(query):
    return query.order_by(Product.rating_average.desc(), Product.rating_count.desc(), Product.id.asc())


def _purchased_by(user_id: int) -> tuple[set[int], set[str]]:
    """Product ids and categories from the user's orders that were not cancelled."""
    rows = (
        db.session.query(Product.id, Product.category)
        .join(OrderLine, OrderLine.product_id == Product.id)
        .join(Order, Order.id == OrderLine.order_id)
        .filter(Order.user_id == user_id, Order.status != order_service.STATUS_CANCELLED)
        .distinct()
        .all()
    )
    return {pid for pid, _ in rows}, {category for _, category in rows}


def get_recommendations(
    product_id: int,
    *,
    kind: str = "similar",
    limit: int = DEFAULT_RECOMMENDATION_LIMIT,
    user_id: int | None = None,
) -> list[Product]:
    """
    Products to show next to `product_id`.

    similar: same category. related: same brand. trending: best rated
    across the catalog. personalized: best rated in the categories the user
    has bought from, skipping what they already bought; guests and users
    without orders get trending.

    The product itself is never included.
    """
    if kind not in RECOMMENDATION_TYPES:
        raise InvalidArgumentError("Invalid recommendation type", {"type": f"must be one of {', '.join(RECOMMENDATION_TYPES)}"})
    product = get_product(product_id)
    limit = max(1, min(limit, 50))
    q = _active_peers(product)

    if kind == "related":
        if not product.brand:
            return []
        return q.filter(Product.brand == product.brand).order_by(Product.id.asc()).limit(limit).all()
    if kind == "similar":
        return q.filter(Product.category == product.category).order_by(Product.id.asc()).limit(limit).all()

    if kind == "personalized" and user_id is not None:
        bought_ids, categories = _purchased_by(user_id)
        if categories:
            picks = (
                _by_rating(q.filter(Product.category.in_(sorted(categories)), Product.id.notin_(sorted(bought_ids))))
                .limit(limit)
                .all()
            )
            if picks:
                return picks

    return _by_rating(q).limit(limit).all()


# =============================================================================
# ADMIN WRITES
# =============================================================================

def _ensure_sku_free(sku: str | None, exclude_id: int | None = None) -> None:
    if not sku:
        return
    q = db.session.query(Product.id).filter(Product.sku == sku)
    if exclude_id is not None:
        q = q.filter(Product.id != exclude_id)
    if q.first():
        raise FailedPreconditionError("SKU already exists", {"sku": "already in use"})


def create_product(payload: dict, *, user_id: int | None = None) -> Product:
    """
    Validate and create a product.

    Initial stock is recorded as a restock movement so the ledger explains
    every unit.
    """
    patch = validate_payload(
        model=Product,
        payload=normalize_product_payload(payload),
        policy=PRODUCT_POLICY,
        partial=False,
        message="Invalid product data",
    )
    enforce_rules_product(patch)
    initial_stock = patch.pop("stock", 0) or 0

    def _op():
        _ensure_sku_free(patch.get("sku"))
        product = Product(
            stock=0,
            images=[],
            tags=[],
            is_active=True,
            low_stock_threshold=current_app.config["LOW_STOCK_THRESHOLD"],
        )
        apply_product_patch(product, patch)
        db.session.add(product)
        db.session.flush()
        if initial_stock:
            inventory_service.apply_stock_delta(
                product.id,
                initial_stock,
                reason=inventory_service.REASON_RESTOCK,
                note="Initial stock",
                user_id=user_id,
            )
        return product

    product = run_in_transaction(_op)
    current_app.logger.info("Created product %s (%s)", product.id, product.name)
    return product


def update_product(product_id: int, payload: dict) -> Product:
    patch = validate_payload(
        model=Product,
        payload=normalize_product_payload(payload),
        policy=PRODUCT_POLICY,
        partial=True,
        message="Invalid product data",
    )
    enforce_rules_product(patch)
    if "stock" in patch:
        raise InvalidArgumentError(
            "Stock cannot be edited directly",
            {"stock": "use the inventory updateStock action"},
        )

    def _op():
        product = db.session.get(Product, product_id)
        if not product:
            raise NotFoundError(f"Product {product_id} not found")
        _ensure_sku_free(patch.get("sku"), exclude_id=product_id)
        apply_product_patch(product, patch)
        product.updated_at = utcnow()
        return product

    return run_in_transaction(_op)


def deactivate_product(product_id: int) -> Product:
    def _op():
        product = db.session.get(Product, product_id)
        if not product:
            raise NotFoundError(f"Product {product_id} not found")
        product.is_active = False
        product.updated_at = utcnow()
        return product

    product = run_in_transaction(_op)
    current_app.logger.info("Deactivated product %s", product_id)
    return product


def bulk_update_products(product_ids, payload: dict) -> list[Product]:
    """
    Apply one validated patch to many products in a single transaction.

    Either every product is updated or none is: an unknown id fails the
    whole batch with not-found.

    Raises:
        InvalidArgumentError: bad id list, bad patch, or a field that cannot
            be set in bulk (stock, sku)
        NotFoundError: one or more ids do not exist
    """
    errors = FieldErrors()
    if not isinstance(product_ids, list) or not product_ids:
        raise InvalidArgumentError("Product IDs array is required", {"product_ids": "must be a non-empty list"})
    if len(product_ids) > MAX_BULK_PRODUCTS:
        raise InvalidArgumentError("Too many products", {"product_ids": f"at most {MAX_BULK_PRODUCTS} per batch"})
    ids: list[int] = []
    for idx, raw in enumerate(product_ids):
        value = read_int(raw, f"product_ids.{idx}", errors, minimum=1)
        if value is not None and value not in ids:
            ids.append(value)
    errors.raise_if_any("Invalid product ids")

    patch = validate_payload(
        model=Product,
        payload=normalize_product_payload(payload),
        policy=PRODUCT_POLICY,
        partial=True,
        message="Invalid product data",
    )
    enforce_rules_product(patch)
    if not patch:
        raise InvalidArgumentError("Nothing to update", {"updates": "is required"})
    blocked = sorted(set(patch) - BULK_MUTABLE_FIELDS)
    if blocked:
        raise InvalidArgumentError(
            "Fields cannot be updated in bulk",
            {field: "cannot be updated in bulk" for field in blocked},
        )

    def _op():
        products = db.session.query(Product).filter(Product.id.in_(ids)).order_by(Product.id.asc()).all()
        missing = sorted(set(ids) - {p.id for p in products})
        if missing:
            raise NotFoundError(
                "Products not found",
                {"product_ids": ", ".join(str(pid) for pid in missing)},
            )
        now = utcnow()
        for product in products:
            apply_product_patch(product, patch)
            product.updated_at = now
        return products

    products = run_in_transaction(_op)
    current_app.logger.info("Bulk updated %d products (%s)", len(products), ", ".join(sorted(patch)))
    return products
