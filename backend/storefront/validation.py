from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Float, Integer, JSON, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .errors import InvalidArgumentError
from .money import MAX_AMOUNT_CENTS
from .time_utils import parse_iso_datetime


PAYMENT_METHODS = ("upi", "card")

MAX_RATING = 5

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class FieldErrors:
    """
    Collects per-field messages so a payload reports every problem at once.

    Keys are dotted paths, e.g. "items.0.quantity" or "shipping_address.zip_code".
    """

    def __init__(self):
        self.errors: dict[str, str] = {}

    def add(self, path: str, message: str) -> None:
        self.errors.setdefault(path, message)

    def __bool__(self) -> bool:
        return bool(self.errors)

    def raise_if_any(self, message: str = "Validation failed") -> None:
        if self.errors:
            raise InvalidArgumentError(message, dict(self.errors))


# =============================================================================
# MODEL PAYLOAD POLICY
# =============================================================================

@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    return {c.key: c for c in model.__mapper__.columns}


def _coerce_value(col, value: Any):
    """Returns the coerced value or raises ValueError with a field message."""
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped or "e" in stripped.lower() or "." in stripped:
                raise ValueError("must be a plain integer")
            try:
                return int(stripped)
            except ValueError:
                raise ValueError("must be an integer")
        raise ValueError("must be an integer")

    if isinstance(coltype, Float):
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
        if isinstance(value, str):
            try:
                return float(value.strip())
            except ValueError:
                raise ValueError("must be a number")
        raise ValueError("must be a number")

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValueError("must be true or false")

    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                dt = None
            if dt is not None:
                return dt
        raise ValueError("must be an ISO-8601 datetime")

    if isinstance(coltype, (String, Text)):
        if isinstance(value, (dict, list)):
            raise ValueError("must be a string")
        return str(value).strip()

    if isinstance(coltype, JSON):
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise ValueError("must be a list of strings")
        return [v.strip() for v in value if v.strip()]

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
    message: str = "Validation failed",
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)

    Raises InvalidArgumentError listing every offending field.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise InvalidArgumentError("Invalid JSON payload")

    errors = FieldErrors()

    if not partial:
        for name in sorted(policy.required_on_create):
            if name not in payload:
                errors.add(name, "is required")

    cols = _columns_by_key(model)
    patch: dict = {}

    for key, raw in payload.items():
        if key not in policy.writable_fields or key not in cols:
            errors.add(key, "is not allowed")
            continue
        col = cols[key]

        if raw is None:
            if not col.nullable:
                errors.add(key, "cannot be null")
            else:
                patch[key] = None
            continue

        try:
            val = _coerce_value(col, raw)
        except ValueError as exc:
            errors.add(key, str(exc))
            continue

        if isinstance(col.type, (String, Text)) and not col.nullable and val == "":
            errors.add(key, "cannot be blank")
            continue

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                errors.add(key, f"exceeds max length {col.type.length}")
                continue

        patch[key] = val

    errors.raise_if_any(message)
    return patch


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    errors = FieldErrors()
    for key in ("original_price_cents", "sale_price_cents"):
        if key in patch and patch[key] is not None:
            if patch[key] <= 0:
                errors.add(key, "must be > 0")
            elif patch[key] > MAX_AMOUNT_CENTS:
                errors.add(key, f"cannot exceed {MAX_AMOUNT_CENTS}")
    if "stock" in patch and patch["stock"] is not None and patch["stock"] < 0:
        errors.add("stock", "must be >= 0")
    if "low_stock_threshold" in patch and patch["low_stock_threshold"] is not None:
        if patch["low_stock_threshold"] < 0:
            errors.add("low_stock_threshold", "must be >= 0")
    if patch.get("rating_average") is not None and not 0 <= patch["rating_average"] <= MAX_RATING:
        errors.add("rating_average", f"must be between 0 and {MAX_RATING}")
    if patch.get("rating_count") is not None and patch["rating_count"] < 0:
        errors.add("rating_count", "must be >= 0")
    errors.raise_if_any("Invalid product data")


# =============================================================================
# PRIMITIVE READERS
# =============================================================================

def read_int(value: Any, path: str, errors: FieldErrors, *, minimum: int | None = None) -> int | None:
    """Accepts ints and digit strings; rejects bools and floats."""
    if isinstance(value, bool) or value is None:
        errors.add(path, "must be an integer")
        return None
    if isinstance(value, str) and re.fullmatch(r"-?\d+", value.strip()):
        value = int(value.strip())
    if not isinstance(value, int):
        errors.add(path, "must be an integer")
        return None
    if minimum is not None and value < minimum:
        errors.add(path, f"must be >= {minimum}")
        return None
    return value


def read_str(
    value: Any,
    path: str,
    errors: FieldErrors,
    *,
    min_length: int = 1,
    max_length: int | None = None,
    required: bool = True,
) -> str | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            errors.add(path, "is required")
        return None
    if not isinstance(value, str):
        errors.add(path, "must be a string")
        return None
    value = value.strip()
    if len(value) < min_length:
        errors.add(path, f"must be at least {min_length} characters")
        return None
    if max_length is not None and len(value) > max_length:
        errors.add(path, f"must be at most {max_length} characters")
        return None
    return value


def read_object(payload: Any, message: str = "Invalid JSON payload") -> dict:
    if not isinstance(payload, dict):
        raise InvalidArgumentError(message)
    return payload


# =============================================================================
# CHECKOUT REQUESTS
# =============================================================================

@dataclass(frozen=True)
class ShippingAddress:
    name: str
    email: str
    phone: str
    address: str
    city: str
    state: str
    zip_code: str
    country: str

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "zip_code": self.zip_code,
            "country": self.country,
        }


@dataclass(frozen=True)
class OrderLineRequest:
    product_id: int
    quantity: int
    image: str | None = None


@dataclass(frozen=True)
class PlaceOrderRequest:
    items: tuple[OrderLineRequest, ...]
    shipping_address: ShippingAddress
    payment_method: str


def parse_shipping_address(
    payload: Any,
    errors: FieldErrors,
    prefix: str = "shipping_address",
    *,
    require_email: bool = True,
) -> ShippingAddress | None:
    if not isinstance(payload, dict):
        errors.add(prefix, "is required")
        return None

    values = {
        "name": read_str(payload.get("name"), f"{prefix}.name", errors, max_length=120),
        "email": read_str(payload.get("email"), f"{prefix}.email", errors, max_length=255, required=require_email),
        "phone": read_str(payload.get("phone"), f"{prefix}.phone", errors, max_length=32),
        "address": read_str(payload.get("address"), f"{prefix}.address", errors, max_length=255),
        "city": read_str(payload.get("city"), f"{prefix}.city", errors, max_length=100),
        "state": read_str(payload.get("state"), f"{prefix}.state", errors, max_length=100),
        "zip_code": read_str(payload.get("zip_code"), f"{prefix}.zip_code", errors, max_length=10),
        "country": read_str(payload.get("country"), f"{prefix}.country", errors, max_length=64),
    }

    if values["email"] and not EMAIL_RE.match(values["email"]):
        errors.add(f"{prefix}.email", "must be a valid email address")
    if values["phone"] and len(re.sub(r"\D", "", values["phone"])) < 10:
        errors.add(f"{prefix}.phone", "must have at least 10 digits")
    if values["zip_code"] and len(values["zip_code"]) < 5:
        errors.add(f"{prefix}.zip_code", "must be at least 5 characters")

    if errors or any(v is None for k, v in values.items() if k != "email" or require_email):
        return None
    return ShippingAddress(**values)


def parse_place_order(payload: Any) -> PlaceOrderRequest:
    """
    Parse a checkout payload:

    {
        "items": [{"product_id": 1, "quantity": 2, "image": "..."}],
        "shipping_address": {...},
        "payment_method": "upi"
    }

    Client-sent names and prices are ignored; the catalog is authoritative.
    Raises InvalidArgumentError with every field problem found.
    """
    payload = read_object(payload)
    errors = FieldErrors()

    raw_items = payload.get("items")
    items: list[OrderLineRequest] = []
    if not isinstance(raw_items, list) or not raw_items:
        errors.add("items", "must be a non-empty list")
    else:
        for idx, raw in enumerate(raw_items):
            if not isinstance(raw, dict):
                errors.add(f"items.{idx}", "must be an object")
                continue
            product_id = read_int(raw.get("product_id"), f"items.{idx}.product_id", errors, minimum=1)
            quantity = read_int(raw.get("quantity"), f"items.{idx}.quantity", errors, minimum=1)
            image = raw.get("image") if isinstance(raw.get("image"), str) else None
            if product_id is not None and quantity is not None:
                items.append(OrderLineRequest(product_id=product_id, quantity=quantity, image=image))

    address = parse_shipping_address(payload.get("shipping_address"), errors)

    method = payload.get("payment_method")
    if method not in PAYMENT_METHODS:
        errors.add("payment_method", f"must be one of {', '.join(PAYMENT_METHODS)}")

    errors.raise_if_any("Invalid order data")
    return PlaceOrderRequest(items=tuple(items), shipping_address=address, payment_method=method)


# =============================================================================
# CARD DETAILS
# =============================================================================

@dataclass(frozen=True)
class CardDetails:
    number: str
    expiry_month: int
    expiry_year: int
    cvv: str
    holder_name: str

    def __repr__(self) -> str:
        return f"CardDetails(last4={self.number[-4:]!r}, holder_name={self.holder_name!r})"


def parse_card_details(payload: Any, prefix: str = "card") -> CardDetails:
    """
    Shape-check card fields. Luhn and expiry-date checks live in
    payment_service so they can be reported as payment failures.
    """
    if not isinstance(payload, dict):
        raise InvalidArgumentError("Card details are required", {prefix: "is required"})
    errors = FieldErrors()

    number = re.sub(r"[\s-]", "", str(payload.get("number") or ""))
    if not re.fullmatch(r"\d{13,19}", number):
        errors.add(f"{prefix}.number", "must be 13-19 digits")

    month = read_int(payload.get("expiry_month"), f"{prefix}.expiry_month", errors, minimum=1)
    if month is not None and month > 12:
        errors.add(f"{prefix}.expiry_month", "must be between 1 and 12")

    year = read_int(payload.get("expiry_year"), f"{prefix}.expiry_year", errors, minimum=0)
    if year is not None and year < 100:
        year += 2000

    cvv = str(payload.get("cvv") or "")
    if not re.fullmatch(r"\d{3,4}", cvv):
        errors.add(f"{prefix}.cvv", "must be 3 or 4 digits")

    holder = read_str(payload.get("holder_name"), f"{prefix}.holder_name", errors, min_length=3, max_length=120)

    errors.raise_if_any("Invalid card details")
    return CardDetails(number=number, expiry_month=month, expiry_year=year, cvv=cvv, holder_name=holder)
