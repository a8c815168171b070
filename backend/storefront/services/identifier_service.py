# Overview: Human-facing identifiers for orders and payments.

"""
Identifier Service

Order numbers, tracking numbers and payment references are short uppercase
strings a customer can read over the phone. Each one combines a time
component with a random suffix; uniqueness is enforced by the database and
re-checked here before use.

FORMATS:
- Order number:    ORD-YYMMDD-XXXXXX   (date + 6 random base36 chars)
- Tracking number: FK + last 8 digits of epoch millis + 3 random base36 chars
- UPI reference:   TX + epoch millis + 4 random base36 chars
- Card reference:  CC + epoch millis + 6 random hex chars
"""

import secrets
import string
from datetime import datetime

from ..extensions import db
from ..models import Order, Payment
from ..time_utils import epoch_millis, utcnow


BASE36 = string.digits + string.ascii_uppercase
HEX = "0123456789ABCDEF"

MAX_ATTEMPTS = 5


def random_suffix(length: int, alphabet: str = BASE36) -> str:
    return "".join(secrets.choice(alphabet) for _ in range(length))


def build_order_number(now: datetime) -> str:
    return f"ORD-{now:%y%m%d}-{random_suffix(6)}"


def build_tracking_number(now: datetime) -> str:
    return f"FK{str(epoch_millis(now))[-8:]}{random_suffix(3)}"


def build_payment_reference(method: str, now: datetime) -> str:
    if method == "card":
        return f"CC{epoch_millis(now)}{random_suffix(6, HEX)}"
    return f"TX{epoch_millis(now)}{random_suffix(4)}"


def _unique(builder, column, now: datetime) -> str:
    for _ in range(MAX_ATTEMPTS):
        candidate = builder(now)
        if not db.session.query(column).filter(column == candidate).first():
            return candidate
    raise RuntimeError(f"Could not allocate a unique {column.key}")


def next_order_identifiers(now: datetime | None = None) -> tuple[str, str]:
    """Returns (order_number, tracking_number), both unused."""
    now = now or utcnow()
    return (
        _unique(build_order_number, Order.order_number, now),
        _unique(build_tracking_number, Order.tracking_number, now),
    )


def next_payment_reference(method: str, now: datetime | None = None) -> str:
    now = now or utcnow()
    return _unique(lambda ts: build_payment_reference(method, ts), Payment.reference, now)
