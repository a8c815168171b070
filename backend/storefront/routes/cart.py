# Overview: Flask API routes for the shopping cart (users and guest sessions).

"""
Cart routes.

Guests identify their cart with the X-Session-Id header. Signed-in users
use their bearer token; POST /api/cart/merge folds a guest cart into theirs
right after login.
"""

from flask import Blueprint, current_app, jsonify, request

from ..decorators import current_requester, optional_auth, require_auth
from ..errors import InvalidArgumentError, StorefrontError, error_response, internal_error_response
from ..services import cart_service


cart_bp = Blueprint("cart", __name__, url_prefix="/api/cart")


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidArgumentError("Invalid JSON payload")
    return data


@cart_bp.get("")
@optional_auth
def get_cart_route():
    try:
        return jsonify({"success": True, "cart": cart_service.get_cart(current_requester())})
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load cart")
        return internal_error_response()


@cart_bp.post("/items")
@optional_auth
def add_item_route():
    """
    Request body:
    {"product_id": 3, "quantity": 2}
    """
    try:
        data = _json_body()
        cart = cart_service.add_item(
            current_requester(data),
            data.get("product_id"),
            data.get("quantity", 1),
        )
        return jsonify({"success": True, "cart": cart}), 201
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to add cart item")
        return internal_error_response()


@cart_bp.patch("/items/<int:product_id>")
@optional_auth
def update_item_route(product_id: int):
    """Set quantity; 0 removes the item."""
    try:
        data = _json_body()
        cart = cart_service.set_item_quantity(current_requester(data), product_id, data.get("quantity"))
        return jsonify({"success": True, "cart": cart})
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update cart item")
        return internal_error_response()


@cart_bp.delete("/items/<int:product_id>")
@optional_auth
def remove_item_route(product_id: int):
    try:
        cart = cart_service.remove_item(current_requester(), product_id)
        return jsonify({"success": True, "cart": cart})
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to remove cart item")
        return internal_error_response()


@cart_bp.delete("")
@optional_auth
def clear_cart_route():
    try:
        cart = cart_service.clear_cart(current_requester())
        return jsonify({"success": True, "cart": cart})
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to clear cart")
        return internal_error_response()


@cart_bp.post("/merge")
@require_auth
def merge_cart_route():
    """
    Merge a guest cart into the signed-in user's cart.

    Request body:
    {
        "items": [{"product_id": 1, "quantity": 2}],   (browser-side cart, optional)
        "session_id": "guest-abc"                      (or X-Session-Id header)
    }
    """
    try:
        data = _json_body()
        items = data.get("items") or []
        if not isinstance(items, list):
            raise InvalidArgumentError("Invalid cart items", {"items": "must be a list"})
        cart = cart_service.merge_guest_cart(current_requester(data), items)
        return jsonify({"success": True, "cart": cart})
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to merge cart")
        return internal_error_response()
