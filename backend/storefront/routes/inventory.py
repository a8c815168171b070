# Overview: Flask API routes for admin inventory reporting and stock actions.

from flask import Blueprint, current_app, g, jsonify, request

from ..actions import (
    INVENTORY_ACTIONS,
    BulkUpdateStock,
    CreateRestockRequest,
    SetStockAlert,
    UpdateStock,
    parse_action,
)
from ..decorators import require_admin, require_auth
from ..errors import StorefrontError, error_response, internal_error_response
from ..services import inventory_service


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("")
@require_auth
@require_admin
def inventory_report_route():
    """Stock summary plus the product list (capped at `limit`, default 100)."""
    try:
        report = inventory_service.get_inventory_report(
            limit=request.args.get("limit", inventory_service.REPORT_PRODUCT_LIMIT, type=int)
        )
        return jsonify({"success": True, **report})
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to build inventory report")
        return internal_error_response()


@inventory_bp.post("")
@require_auth
@require_admin
def inventory_action_route():
    """
    Run one inventory action.

    Request body, by action:
    - {"action": "updateStock", "product_id": 1, "quantity": -3, "note": "..."}
    - {"action": "bulkUpdateStock", "updates": [{"product_id": 1, "quantity": 5}, ...]}
    - {"action": "setStockAlert", "product_id": 1, "threshold": 5}
    - {"action": "createRestockRequest", "product_id": 1, "quantity": 50, "note": "..."}

    quantity for updateStock is a signed delta. A delta that would take
    stock below zero is rejected with 409 and nothing changes.
    """
    try:
        action = parse_action(request.get_json(silent=True), INVENTORY_ACTIONS)
        user_id = g.current_user.id

        if isinstance(action, UpdateStock):
            result = inventory_service.update_stock(
                action.product_id, action.quantity, note=action.note, user_id=user_id
            )
            return jsonify({"success": True, "result": result})

        if isinstance(action, BulkUpdateStock):
            results = inventory_service.bulk_update_stock(action.updates, user_id=user_id)
            return jsonify({"success": True, "results": results, "count": len(results)})

        if isinstance(action, SetStockAlert):
            result = inventory_service.set_stock_alert(action.product_id, action.threshold)
            return jsonify({"success": True, "result": result})

        if isinstance(action, CreateRestockRequest):
            restock = inventory_service.create_restock_request(
                action.product_id, action.quantity, note=action.note, user_id=user_id
            )
            return jsonify({"success": True, "restock_request": restock.to_dict()}), 201

        raise TypeError(f"Unhandled inventory action {type(action).__name__}")
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to run inventory action")
        return internal_error_response()


@inventory_bp.get("/movements/<int:product_id>")
@require_auth
@require_admin
def stock_movements_route(product_id: int):
    try:
        movements = inventory_service.list_movements(
            product_id, limit=request.args.get("limit", 50, type=int)
        )
        return jsonify({"success": True, "movements": movements, "count": len(movements)})
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list stock movements")
        return internal_error_response()
