# Overview: Request authentication decorators for API routes.

from functools import wraps

from flask import g, request

from .errors import PermissionDeniedError, UnauthenticatedError, error_response
from .services import session_service
from .services.access import Requester


SESSION_HEADER = "X-Session-Id"


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def _reset_context() -> None:
    # g outlives a request when the app context was pushed outside it
    g.current_user = None
    g.session_context = None
    g.auth_token = None


def _load_context(token: str) -> bool:
    context = session_service.validate_session(token)
    if not context:
        return False
    g.current_user = context.user
    g.session_context = context
    g.auth_token = token
    return True


def require_auth(f):
    """
    Require a valid bearer token.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.session_context: The SessionContext
    - g.auth_token: The plaintext bearer token (used by logout)

    Returns 401 if the header is missing, the token is invalid or expired,
    or the account is deactivated.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        _reset_context()
        token = _bearer_token()
        if not token:
            return error_response(UnauthenticatedError("Authentication required"))
        if not _load_context(token):
            return error_response(UnauthenticatedError("Invalid or expired token"))
        return f(*args, **kwargs)

    return decorated_function


def optional_auth(f):
    """
    Load the user when a valid bearer token is sent; otherwise continue as
    a guest. A token that is present but invalid is still rejected.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        _reset_context()
        token = _bearer_token()
        if token and not _load_context(token):
            return error_response(UnauthenticatedError("Invalid or expired token"))
        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """Require the authenticated user to be an admin. Use after @require_auth."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get("current_user") is None:
            return error_response(UnauthenticatedError("Authentication required"))
        if not g.current_user.is_admin:
            return error_response(PermissionDeniedError("Admin access required"))
        return f(*args, **kwargs)

    return decorated_function


def current_requester(payload: dict | None = None) -> Requester:
    """
    Build the Requester for this request.

    The guest session id comes from the X-Session-Id header, falling back to
    a "session_id" field in the JSON body.
    """
    session_id = request.headers.get(SESSION_HEADER)
    if not session_id and isinstance(payload, dict) and isinstance(payload.get("session_id"), str):
        session_id = payload["session_id"]
    session_id = (session_id or "").strip()[:128] or None
    return Requester(user=g.get("current_user"), session_id=session_id)
