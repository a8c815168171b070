# Overview: Flask API routes for UPI and card payments and gateway verification.

# backend/storefront/routes/payments.py
"""
Payment API Routes

Payments belong to an order. The caller must own the order (user or guest
session) or be an admin.

FLOW:
- UPI: /upi/initiate returns a upi:// deep link, /upi sends a collect request
- Card: /card pre-checks the card and opens a payment
- Both finish with /verify, which consults the payment gateway configured
  on the app and applies the outcome to the payment and the order
"""

import re

from flask import Blueprint, current_app, jsonify, request

from ..actions import PAYMENT_ACTIONS, ProcessPayment, ValidateZip, parse_action
from ..decorators import current_requester, optional_auth
from ..errors import StorefrontError, error_response, internal_error_response
from ..services import address_service, payment_service
from ..validation import FieldErrors, parse_card_details, read_int, read_object, read_str


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")

OTP_RE = re.compile(r"^\d{6}$")


def _read_order_id(data: dict) -> int:
    errors = FieldErrors()
    order_id = read_int(data.get("order_id"), "order_id", errors, minimum=1)
    errors.raise_if_any("Invalid payment request")
    return order_id


def _merchant_kwargs() -> dict:
    return {
        "merchant_upi_id": current_app.config["MERCHANT_UPI_ID"],
        "merchant_name": current_app.config["MERCHANT_NAME"],
    }


# =============================================================================
# PAYMENT CREATION
# =============================================================================

@payments_bp.post("")
@optional_auth
def payment_action_route():
    """
    Action dispatch.

    Request body:
    - {"action": "process", "order_id": 1, "payment_method": "upi", "upi_id": "name@bank"}
    - {"action": "process", "order_id": 1, "payment_method": "card", "card": {...}}
    - {"action": "validate-zip", "zip_code": "560001", "country": "India"}
    """
    try:
        data = request.get_json(silent=True)
        action = parse_action(data, PAYMENT_ACTIONS)

        if isinstance(action, ValidateZip):
            result = address_service.validate_zip_code(action.zip_code, action.country)
            return jsonify({"success": True, **result})

        if isinstance(action, ProcessPayment):
            payment = payment_service.process_payment(action, current_requester(data), **_merchant_kwargs())
            return jsonify({"success": True, "payment": payment.to_dict()}), 201

        raise TypeError(f"Unhandled payment action {type(action).__name__}")
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to process payment action")
        return internal_error_response("Failed to process payment")


@payments_bp.post("/upi/initiate")
@optional_auth
def initiate_upi_route():
    """
    Request body: {"order_id": 1}

    Returns 201 with the payment and its upi:// deep link, or 409 when the
    merchant UPI id is not configured.
    """
    try:
        data = read_object(request.get_json(silent=True))
        payment = payment_service.initiate_upi_payment(
            _read_order_id(data),
            current_requester(data),
            **_merchant_kwargs(),
        )
        return jsonify({
            "success": True,
            "payment": payment.to_dict(),
            "upi_url": payment.upi_url,
            "expires_in_seconds": current_app.config["PAYMENT_EXPIRY_MINUTES"] * 60,
        }), 201
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to initiate UPI payment")
        return internal_error_response("Failed to initiate payment")


@payments_bp.post("/upi")
@optional_auth
def upi_collect_route():
    """Request body: {"order_id": 1, "upi_id": "name@bank"}"""
    try:
        data = read_object(request.get_json(silent=True))
        payment = payment_service.create_upi_collect(
            _read_order_id(data),
            data.get("upi_id") if isinstance(data.get("upi_id"), str) else "",
            current_requester(data),
        )
        return jsonify({"success": True, "payment": payment.to_dict()}), 201
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create UPI collect request")
        return internal_error_response("Failed to process UPI payment")


@payments_bp.post("/card")
@optional_auth
def card_payment_route():
    """
    Request body:
    {
        "order_id": 1,
        "card": {
            "number": "4111111111111111",
            "expiry_month": 12,
            "expiry_year": 2030,
            "cvv": "123",
            "holder_name": "Asha Rao"
        }
    }

    The full card number and CVV are never stored.
    """
    try:
        data = read_object(request.get_json(silent=True))
        order_id = _read_order_id(data)
        card = parse_card_details(data.get("card"))
        payment = payment_service.process_card_payment(order_id, card, current_requester(data))
        return jsonify({"success": True, "payment": payment.to_dict()}), 201
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to process card payment")
        return internal_error_response("Failed to process card payment")


# =============================================================================
# VERIFICATION
# =============================================================================

@payments_bp.post("/verify")
@optional_auth
def verify_payment_route():
    """
    Request body:
    {
        "reference": "TX...",
        "transaction_id": "TXN_...",
        "otp": "123456",            (cards flagged requires_otp)
        "upi_reference": "..."      (optional)
    }

    Returns:
        200 with status verified | pending | failed. Verifying a completed
        payment again returns verified without changing the order.
    """
    try:
        data = read_object(request.get_json(silent=True))
        errors = FieldErrors()
        reference = read_str(data.get("reference"), "reference", errors, max_length=64)
        transaction_id = read_str(data.get("transaction_id"), "transaction_id", errors, max_length=128)
        otp = read_str(data.get("otp"), "otp", errors, required=False)
        if otp is not None and not OTP_RE.match(otp):
            errors.add("otp", "must be 6 digits")
        upi_reference = read_str(data.get("upi_reference"), "upi_reference", errors, max_length=128, required=False)
        errors.raise_if_any("Invalid verification request")

        result = payment_service.verify_payment(
            reference,
            transaction_id=transaction_id,
            gateway=current_app.extensions["payment_gateway"],
            requester=current_requester(data),
            otp=otp,
            upi_reference=upi_reference,
            expiry_minutes=current_app.config["PAYMENT_EXPIRY_MINUTES"],
        )
        return jsonify({"success": True, **result})
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to verify payment")
        return internal_error_response("Payment verification failed")


# =============================================================================
# QUERIES
# =============================================================================

@payments_bp.get("/<reference>")
@optional_auth
def get_payment_route(reference: str):
    try:
        payment = payment_service.get_payment(reference, current_requester())
        return jsonify({
            "success": True,
            "payment": payment.to_dict(),
            "events": [e.to_dict() for e in payment.events],
        })
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load payment")
        return internal_error_response()


@payments_bp.get("/order/<int:order_id>")
@optional_auth
def order_payments_route(order_id: int):
    try:
        payments = payment_service.list_order_payments(order_id, current_requester())
        return jsonify({
            "success": True,
            "order_id": order_id,
            "payments": [p.to_dict() for p in payments],
        })
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list order payments")
        return internal_error_response()
