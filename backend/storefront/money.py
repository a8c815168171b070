"""
Money helpers.

All amounts are stored as integer cents (paise). Client input may be a
decimal number or string in currency units; it is rounded half-up to two
places before conversion.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from .errors import InvalidArgumentError


# Maximum price: 9,999,999.99 (999,999,999 cents)
MAX_AMOUNT_CENTS = 999_999_999

_CENT = Decimal("0.01")


def to_cents(value, field: str = "amount") -> int:
    """Convert a unit amount (e.g. 499.99 or "499.99") to integer cents."""
    if isinstance(value, bool) or value is None:
        raise InvalidArgumentError(f"{field} must be a number", {field: "must be a number"})
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise InvalidArgumentError(f"{field} must be a number", {field: "must be a number"})
    if not amount.is_finite():
        raise InvalidArgumentError(f"{field} must be a number", {field: "must be a number"})

    cents = int((amount.quantize(_CENT, rounding=ROUND_HALF_UP) * 100).to_integral_value())
    if cents > MAX_AMOUNT_CENTS:
        raise InvalidArgumentError(
            f"{field} exceeds maximum",
            {field: f"cannot exceed {format_cents(MAX_AMOUNT_CENTS)}"},
        )
    return cents


def format_cents(cents: int | None) -> str | None:
    """Integer cents -> "1234.50"."""
    if cents is None:
        return None
    return str((Decimal(cents) / 100).quantize(_CENT))
