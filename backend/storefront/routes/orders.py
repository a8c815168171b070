# Overview: Flask API routes for order placement, lookup, tracking and admin status updates.

# backend/storefront/routes/orders.py
"""
Order API Routes

- POST /api/orders: checkout for signed-in users and guests
- GET /api/orders: admin listing with pagination and status filter
- GET /api/orders/mine: the caller's orders
- GET /api/orders/<id>: owner or admin
- PATCH /api/orders/<id>: admin status change, one tracking entry per change
- GET /api/orders/track/<tracking_number>?email=: public tracking lookup
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import current_requester, optional_auth, require_admin, require_auth
from ..errors import InvalidArgumentError, StorefrontError, error_response, internal_error_response
from ..services import order_service
from ..validation import FieldErrors, parse_place_order, read_str


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("")
@optional_auth
def place_order_route():
    """
    Place an order.

    Request body:
    {
        "items": [{"product_id": 1, "quantity": 2}],
        "shipping_address": {
            "name": "...", "email": "...", "phone": "...", "address": "...",
            "city": "...", "state": "...", "zip_code": "...", "country": "India"
        },
        "payment_method": "upi" | "card",
        "session_id": "guest-abc"   (guests, or X-Session-Id header)
    }

    Prices come from the catalog; client-sent prices are ignored.

    Returns:
        201: Order with one "Order Placed" tracking entry
        400: Invalid payload (field messages under error.fields)
        409: Insufficient stock
    """
    try:
        data = request.get_json(silent=True)
        place_request = parse_place_order(data)
        order = order_service.place_order(place_request, current_requester(data))
        return jsonify({"success": True, "order": order.to_dict()}), 201
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to place order")
        return internal_error_response("Failed to create order")


@orders_bp.get("")
@require_auth
@require_admin
def list_orders_route():
    """
    Admin listing.

    Query params:
    - page: int (default 1)
    - limit: int (default 20, max 50)
    - status: filter by order status
    """
    try:
        result = order_service.list_orders(
            page=request.args.get("page", type=int),
            per_page=request.args.get("limit", type=int),
            status=request.args.get("status") or None,
        )
        return jsonify({
            "success": True,
            "orders": result["items"],
            "count": result["count"],
            "pagination": result["pagination"],
        })
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return internal_error_response()


@orders_bp.get("/mine")
@optional_auth
def my_orders_route():
    try:
        requester = current_requester()
        if requester.is_anonymous:
            raise InvalidArgumentError("A session id is required", {"session_id": "is required"})
        orders = order_service.list_user_orders(
            requester,
            limit=request.args.get("limit", order_service.USER_ORDERS_DEFAULT_LIMIT, type=int),
            status=request.args.get("status") or None,
        )
        return jsonify({
            "success": True,
            "orders": [o.to_dict() for o in orders],
            "count": len(orders),
        })
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list user orders")
        return internal_error_response()


@orders_bp.get("/<int:order_id>")
@optional_auth
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(order_id, current_requester())
        return jsonify({"success": True, "order": order.to_dict()})
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load order")
        return internal_error_response()


@orders_bp.patch("/<int:order_id>")
@require_auth
@require_admin
def update_order_status_route(order_id: int):
    """
    Change an order's status.

    Request body:
    {
        "status": "shipped",
        "tracking_info": {"description": "...", "location": "..."}   (optional)
    }

    Returns:
        200: Updated order
        400: Unknown status or invalid tracking info
        404: Order not found
        409: Transition not allowed
    """
    try:
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise InvalidArgumentError("Invalid JSON payload")
        status = data.get("status")
        if not isinstance(status, str) or not status:
            raise InvalidArgumentError("Status is required", {"status": "is required"})
        tracking_info = data.get("tracking_info") or {}
        if not isinstance(tracking_info, dict):
            raise InvalidArgumentError("Invalid tracking info", {"tracking_info": "must be an object"})
        errors = FieldErrors()
        description = read_str(tracking_info.get("description"), "tracking_info.description", errors, required=False, max_length=255)
        location = read_str(tracking_info.get("location"), "tracking_info.location", errors, required=False, max_length=120)
        errors.raise_if_any("Invalid tracking info")

        order = order_service.update_order_status(
            order_id,
            status,
            description=description,
            location=location,
            strict=current_app.config["ORDER_STATUS_STRICT"],
            notify=current_app.config["ORDER_STATUS_NOTIFICATIONS"],
            actor_user_id=g.current_user.id,
        )
        return jsonify({"success": True, "order": order.to_dict()})
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return internal_error_response()


@orders_bp.get("/track/<tracking_number>")
def track_order_route(tracking_number: str):
    """Public lookup; the email must match the order's shipping email."""
    try:
        order = order_service.track_order(tracking_number, request.args.get("email", ""))
        summary = order.to_dict(include_lines=False)
        return jsonify({
            "success": True,
            "order": {
                key: summary[key]
                for key in ("order_number", "tracking_number", "status", "payment_status", "estimated_delivery", "tracking_history")
            },
        })
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to track order")
        return internal_error_response()
