# backend/storefront/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///storefront.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Only read by `flask users create-admin`
    ADMIN_SECRET = os.environ.get("ADMIN_SECRET")

    APP_URL = os.environ.get("APP_URL", "http://localhost:3000")
    APP_ENV = os.environ.get("APP_ENV", "development")

    # UPI deep links
    MERCHANT_UPI_ID = os.environ.get("MERCHANT_UPI_ID")
    MERCHANT_NAME = os.environ.get("MERCHANT_NAME", "Storefront")

    # Simulated gateway latency in seconds
    PAYMENT_GATEWAY_MIN_DELAY = float(os.environ.get("PAYMENT_GATEWAY_MIN_DELAY", "1.0"))
    PAYMENT_GATEWAY_MAX_DELAY = float(os.environ.get("PAYMENT_GATEWAY_MAX_DELAY", "5.0"))
    PAYMENT_GATEWAY_SEED = os.environ.get("PAYMENT_GATEWAY_SEED")
    PAYMENT_EXPIRY_MINUTES = int(os.environ.get("PAYMENT_EXPIRY_MINUTES", "10"))

    LOW_STOCK_THRESHOLD = int(os.environ.get("LOW_STOCK_THRESHOLD", "10"))

    ORDER_STATUS_STRICT = _env_bool("ORDER_STATUS_STRICT", True)
    ORDER_STATUS_NOTIFICATIONS = _env_bool("ORDER_STATUS_NOTIFICATIONS", False)

    SESSION_TTL_HOURS = int(os.environ.get("SESSION_TTL_HOURS", "24"))
    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))
