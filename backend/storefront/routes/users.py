# Overview: Flask API routes for a signed-in user's saved addresses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..errors import StorefrontError, error_response, internal_error_response
from ..services import user_service


users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("/me/addresses")
@require_auth
def list_addresses_route():
    try:
        addresses = user_service.list_addresses(g.current_user.id)
        return jsonify({"success": True, "addresses": [a.to_dict() for a in addresses]})
    except Exception:
        current_app.logger.exception("Failed to list addresses")
        return internal_error_response()


@users_bp.post("/me/addresses")
@require_auth
def add_address_route():
    try:
        address = user_service.add_address(g.current_user.id, request.get_json(silent=True))
        return jsonify({"success": True, "address": address.to_dict()}), 201
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to add address")
        return internal_error_response()


@users_bp.delete("/me/addresses/<int:address_id>")
@require_auth
def delete_address_route(address_id: int):
    try:
        user_service.delete_address(g.current_user.id, address_id)
        return jsonify({"success": True})
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete address")
        return internal_error_response()


@users_bp.post("/me/addresses/<int:address_id>/default")
@require_auth
def set_default_address_route(address_id: int):
    try:
        address = user_service.set_default_address(g.current_user.id, address_id)
        return jsonify({"success": True, "address": address.to_dict()})
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to set default address")
        return internal_error_response()
