# Overview: Account registration, password hashing and credential checks.

"""
Authentication Service

Uses bcrypt for password hashing. Session tokens are handled separately
(see session_service.py).

PASSWORD POLICY:
- Minimum 8 characters
- At least one letter and one digit
"""

import re

import bcrypt
from flask import current_app

from ..errors import InvalidArgumentError, UnauthenticatedError
from ..extensions import db
from ..models import User
from ..time_utils import utcnow


EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# Used to keep login timing flat when the email is unknown
_DUMMY_HASH = bcrypt.hashpw(b"not-a-real-password", bcrypt.gensalt(rounds=4)).decode("utf-8")


def validate_password_strength(password: str) -> None:
    """Raises InvalidArgumentError if the password is too weak."""
    if not isinstance(password, str) or len(password) < 8:
        raise InvalidArgumentError(
            "Password must be at least 8 characters long",
            {"password": "must be at least 8 characters"},
        )
    if not re.search(r"[A-Za-z]", password) or not re.search(r"\d", password):
        raise InvalidArgumentError(
            "Password must contain a letter and a digit",
            {"password": "must contain a letter and a digit"},
        )


def hash_password(password: str, rounds: int = 12) -> str:
    """
    Hash password using bcrypt.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Returns True if password matches hash, False otherwise."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed hash in the database
        return False


def register_user(
    email: str,
    password: str,
    name: str,
    phone: str | None = None,
    is_admin: bool = False,
    bcrypt_rounds: int = 12,
) -> User:
    """
    Create a new account.

    Raises:
        InvalidArgumentError: bad email/name/password, or email already registered
    """
    errors = {}
    email = (email or "").strip().lower()
    name = (name or "").strip()
    if not EMAIL_RE.match(email):
        errors["email"] = "must be a valid email address"
    if not name:
        errors["name"] = "is required"
    if errors:
        raise InvalidArgumentError("Invalid registration data", errors)

    password_hash = hash_password(password, rounds=bcrypt_rounds)

    if db.session.query(User).filter_by(email=email).first():
        raise InvalidArgumentError("Email already registered", {"email": "already registered"})

    user = User(
        email=email,
        name=name,
        phone=(phone or "").strip() or None,
        password_hash=password_hash,
        is_admin=is_admin,
        is_active=True,
    )
    db.session.add(user)
    db.session.commit()

    current_app.logger.info("Registered user %s (admin=%s)", user.id, is_admin)
    return user


def authenticate(email: str, password: str) -> User:
    """
    Check credentials and return the active user.

    Raises:
        UnauthenticatedError: unknown email, wrong password, or inactive account
    """
    email = (email or "").strip().lower()
    user = db.session.query(User).filter_by(email=email).first()

    if not user:
        verify_password(password or "", _DUMMY_HASH)
        raise UnauthenticatedError("Invalid email or password")

    if not verify_password(password or "", user.password_hash):
        raise UnauthenticatedError("Invalid email or password")

    if not user.is_active:
        raise UnauthenticatedError("Account is disabled")

    user.last_login_at = utcnow()
    db.session.commit()
    return user
