# Overview: Flask API routes for registration, login and logout.

# backend/storefront/routes/auth.py
"""
Authentication API routes

- Passwords are bcrypt-hashed (auth_service)
- Login returns an opaque bearer token (session_service)
- Logout revokes the presented token
"""

from datetime import timedelta

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..errors import InvalidArgumentError, StorefrontError, error_response, internal_error_response
from ..services import auth_service, session_service
from ..time_utils import to_utc_z


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _issue_session(user):
    ttl = timedelta(hours=current_app.config["SESSION_TTL_HOURS"])
    session, token = session_service.create_session(
        user.id,
        ttl=ttl,
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )
    return {
        "token": token,
        "expires_at": to_utc_z(session.expires_at),
        "user": user.to_dict(),
    }


@auth_bp.post("/register")
def register_route():
    """
    Create a shopper account and sign it in.

    Request body:
    {
        "email": "asha@example.com",
        "password": "secret123",
        "name": "Asha",
        "phone": "9876543210"   (optional)
    }
    """
    try:
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise InvalidArgumentError("Invalid JSON payload")
        user = auth_service.register_user(
            email=data.get("email"),
            password=data.get("password"),
            name=data.get("name"),
            phone=data.get("phone"),
            bcrypt_rounds=current_app.config.get("BCRYPT_ROUNDS", 12),
        )
        return jsonify({"success": True, **_issue_session(user)}), 201
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to register user")
        return internal_error_response()


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Token must be sent as "Authorization: Bearer <token>" on protected routes.
    """
    try:
        data = request.get_json(silent=True) or {}
        email = data.get("email")
        password = data.get("password")
        if not email or not password:
            raise InvalidArgumentError(
                "email and password required",
                {k: "is required" for k in ("email", "password") if not data.get(k)},
            )
        user = auth_service.authenticate(email, password)
        return jsonify({"success": True, **_issue_session(user)})
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to log in")
        return internal_error_response()


@auth_bp.post("/logout")
@require_auth
def logout_route():
    try:
        session_service.revoke_session(g.auth_token)
        return jsonify({"success": True})
    except Exception:
        current_app.logger.exception("Failed to log out")
        return internal_error_response()


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"success": True, "user": g.current_user.to_dict()})
