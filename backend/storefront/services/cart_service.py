# Overview: Server-held carts for users and guest sessions, and guest-to-user cart merge.

"""
Cart Service

A cart belongs to a signed-in user or to a guest session id. When a guest
signs in, their local cart (sent by the client) and any server-held guest
cart are merged into the user's cart and the guest cart is deleted.

Merge rule: quantities for the same product id are summed; products on only
one side are kept. The rule is commutative. Quantities are not capped
against stock here; checkout enforces stock.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from flask import current_app

from ..errors import InvalidArgumentError, NotFoundError
from ..extensions import db
from ..models import Cart, CartItem, Product
from ..time_utils import utcnow
from .access import Requester
from .concurrency import run_in_transaction


MAX_LINE_QUANTITY = 99


def merge_cart_items(local: Mapping[int, int], remote: Mapping[int, int]) -> dict[int, int]:
    """
    Merge two {product_id: quantity} maps by summing quantities.

    >>> merge_cart_items({1: 2}, {1: 1, 2: 3})
    {1: 3, 2: 3}
    """
    merged = dict(remote)
    for product_id, quantity in local.items():
        merged[product_id] = merged.get(product_id, 0) + quantity
    return merged


def quantities_from_items(items: Iterable[dict]) -> dict[int, int]:
    """
    [{"product_id": 1, "quantity": 2}, ...] -> {1: 2, ...}

    Duplicate product ids are summed. Raises InvalidArgumentError for
    non-positive or non-integer quantities.
    """
    quantities: dict[int, int] = {}
    errors = {}
    for idx, item in enumerate(items):
        if not isinstance(item, dict):
            errors[f"items.{idx}"] = "must be an object"
            continue
        product_id = item.get("product_id")
        quantity = item.get("quantity")
        if isinstance(product_id, bool) or not isinstance(product_id, int) or product_id < 1:
            errors[f"items.{idx}.product_id"] = "must be a positive integer"
            continue
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            errors[f"items.{idx}.quantity"] = "must be a positive integer"
            continue
        quantities[product_id] = quantities.get(product_id, 0) + quantity
    if errors:
        raise InvalidArgumentError("Invalid cart items", errors)
    return quantities


# =============================================================================
# CART LOOKUP
# =============================================================================

def _find_cart(requester: Requester) -> Cart | None:
    if requester.user is not None:
        return db.session.query(Cart).filter_by(user_id=requester.user_id).first()
    if requester.session_id:
        return db.session.query(Cart).filter_by(session_id=requester.session_id).first()
    return None


def _get_or_create_cart(requester: Requester) -> Cart:
    if requester.is_anonymous:
        raise InvalidArgumentError(
            "A session id is required for a guest cart",
            {"session_id": "is required"},
        )
    cart = _find_cart(requester)
    if cart is None:
        if requester.user is not None:
            cart = Cart(user_id=requester.user_id)
        else:
            cart = Cart(session_id=requester.session_id)
        db.session.add(cart)
    return cart


def _require_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product or not product.is_active:
        raise NotFoundError(f"Product {product_id} not found")
    return product


def _check_quantity(quantity, *, allow_zero: bool = False) -> int:
    minimum = 0 if allow_zero else 1
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < minimum:
        raise InvalidArgumentError("Invalid quantity", {"quantity": f"must be an integer >= {minimum}"})
    if quantity > MAX_LINE_QUANTITY:
        raise InvalidArgumentError("Invalid quantity", {"quantity": f"must be at most {MAX_LINE_QUANTITY}"})
    return quantity


def serialize_cart(cart: Cart | None) -> dict:
    items = [item.to_dict() for item in cart.items] if cart else []
    subtotal = sum((i["unit_price_cents"] or 0) * i["quantity"] for i in items)
    return {
        "items": items,
        "item_count": sum(i["quantity"] for i in items),
        "subtotal_cents": subtotal,
    }


def get_cart(requester: Requester) -> dict:
    return serialize_cart(_find_cart(requester))


# =============================================================================
# MUTATIONS
# =============================================================================

def add_item(requester: Requester, product_id: int, quantity: int = 1) -> dict:
    if isinstance(product_id, bool) or not isinstance(product_id, int) or product_id < 1:
        raise InvalidArgumentError("Invalid product", {"product_id": "must be a positive integer"})
    quantity = _check_quantity(quantity)

    def _op():
        _require_product(product_id)
        cart = _get_or_create_cart(requester)
        item = next((i for i in cart.items if i.product_id == product_id), None)
        if item is None:
            cart.items.append(CartItem(product_id=product_id, quantity=quantity))
        else:
            item.quantity = min(item.quantity + quantity, MAX_LINE_QUANTITY)
        cart.updated_at = utcnow()
        return cart

    return serialize_cart(run_in_transaction(_op))


def set_item_quantity(requester: Requester, product_id: int, quantity: int) -> dict:
    """Set an item's quantity; 0 removes the item."""
    quantity = _check_quantity(quantity, allow_zero=True)

    def _op():
        cart = _find_cart(requester)
        item = next((i for i in cart.items if i.product_id == product_id), None) if cart else None
        if item is None:
            raise NotFoundError(f"Product {product_id} is not in the cart")
        if quantity == 0:
            cart.items.remove(item)
        else:
            item.quantity = quantity
        cart.updated_at = utcnow()
        return cart

    return serialize_cart(run_in_transaction(_op))


def remove_item(requester: Requester, product_id: int) -> dict:
    return set_item_quantity(requester, product_id, 0)


def clear_cart(requester: Requester) -> dict:
    def _op():
        cart = _find_cart(requester)
        if cart is not None:
            cart.items.clear()
            cart.updated_at = utcnow()
        return cart

    return serialize_cart(run_in_transaction(_op))


def merge_guest_cart(requester: Requester, local_items: Iterable[dict] = ()) -> dict:
    """
    Merge a guest cart into the signed-in user's cart.

    Sources, summed together:
    - `local_items` sent by the client (browser-side cart)
    - the server-held guest cart for requester.session_id, if any
    - the user's existing cart

    The guest session cart is deleted afterwards. Products that no longer
    exist or are inactive are dropped and reported in "skipped_product_ids".
    """
    if requester.user is None:
        raise InvalidArgumentError("Sign in to merge a cart")
    local = quantities_from_items(local_items)

    def _op():
        guest_cart = None
        if requester.session_id:
            guest_cart = db.session.query(Cart).filter_by(session_id=requester.session_id).first()
        if guest_cart is not None:
            local_merged = merge_cart_items(local, {i.product_id: i.quantity for i in guest_cart.items})
            db.session.delete(guest_cart)
            db.session.flush()
        else:
            local_merged = local

        cart = db.session.query(Cart).filter_by(user_id=requester.user_id).first()
        if cart is None:
            cart = Cart(user_id=requester.user_id)
            db.session.add(cart)
        existing = {i.product_id: i.quantity for i in cart.items}
        merged = merge_cart_items(local_merged, existing)

        active_ids = {
            row[0]
            for row in db.session.query(Product.id)
            .filter(Product.id.in_(list(merged)), Product.is_active.is_(True))
            .all()
        }
        skipped = sorted(pid for pid in merged if pid not in active_ids)

        by_product = {i.product_id: i for i in cart.items}
        for product_id, quantity in merged.items():
            if product_id not in active_ids:
                if product_id in by_product:
                    cart.items.remove(by_product[product_id])
                continue
            if product_id in by_product:
                by_product[product_id].quantity = quantity
            else:
                cart.items.append(CartItem(product_id=product_id, quantity=quantity))
        cart.updated_at = utcnow()
        return cart, skipped

    cart, skipped = run_in_transaction(_op)
    current_app.logger.info("Merged guest cart into user %s cart (%s skipped)", requester.user_id, len(skipped))
    result = serialize_cart(cart)
    result["skipped_product_ids"] = skipped
    return result
