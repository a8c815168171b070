# Overview: Flask API routes for checkout form validation (zip, phone, email).

from flask import Blueprint, current_app, jsonify, request

from ..errors import StorefrontError, error_response, internal_error_response
from ..services import address_service
from ..validation import FieldErrors, read_object, read_str


checkout_bp = Blueprint("checkout", __name__, url_prefix="/api/checkout")


def _read_field(name: str, max_length: int) -> tuple[str, str | None]:
    data = read_object(request.get_json(silent=True))
    errors = FieldErrors()
    value = read_str(data.get(name), name, errors, max_length=max_length)
    extra = data.get("country") or data.get("country_code")
    errors.raise_if_any(f"Invalid {name.replace('_', ' ')}")
    return value, extra if isinstance(extra, str) else None


@checkout_bp.post("/validate-zip")
def validate_zip_route():
    """Request body: {"zip_code": "560001", "country": "India"}"""
    try:
        zip_code, country = _read_field("zip_code", 32)
        return jsonify({"success": True, **address_service.validate_zip_code(zip_code, country)})
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to validate zip code")
        return internal_error_response()


@checkout_bp.post("/validate-phone")
def validate_phone_route():
    """Request body: {"phone": "98765 43210", "country_code": "+91"}"""
    try:
        phone, country_code = _read_field("phone", 32)
        return jsonify({"success": True, **address_service.validate_phone(phone, country_code)})
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to validate phone")
        return internal_error_response()


@checkout_bp.post("/validate-email")
def validate_email_route():
    try:
        email, _ = _read_field("email", 320)
        return jsonify({"success": True, **address_service.validate_email(email)})
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to validate email")
        return internal_error_response()
