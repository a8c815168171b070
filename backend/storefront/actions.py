# Overview: Typed request objects for action-dispatch endpoints (inventory, payments, notifications).

"""
Action payloads.

Endpoints such as POST /api/inventory take {"action": "...", ...}. Each
action name maps to exactly one frozen dataclass; parse_action() turns the
raw JSON into that dataclass or raises InvalidArgumentError. Route handlers
then dispatch on the dataclass type, so an unknown action never reaches a
service.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

from .errors import InvalidArgumentError
from .validation import (
    FieldErrors,
    PAYMENT_METHODS,
    CardDetails,
    parse_card_details,
    read_int,
    read_object,
    read_str,
)


# =============================================================================
# INVENTORY ACTIONS
# =============================================================================

@dataclass(frozen=True)
class UpdateStock:
    product_id: int
    quantity: int  # signed delta
    note: str | None = None


@dataclass(frozen=True)
class BulkUpdateStock:
    updates: tuple[UpdateStock, ...]


@dataclass(frozen=True)
class SetStockAlert:
    product_id: int
    threshold: int


@dataclass(frozen=True)
class CreateRestockRequest:
    product_id: int
    quantity: int
    note: str | None = None


def _parse_update_stock(data: dict, errors: FieldErrors, prefix: str = "") -> UpdateStock | None:
    product_id = read_int(data.get("product_id"), f"{prefix}product_id", errors, minimum=1)
    quantity = read_int(data.get("quantity"), f"{prefix}quantity", errors)
    if quantity == 0:
        errors.add(f"{prefix}quantity", "must not be 0")
        quantity = None
    note = read_str(data.get("note"), f"{prefix}note", errors, max_length=255, required=False)
    if product_id is None or quantity is None:
        return None
    return UpdateStock(product_id=product_id, quantity=quantity, note=note)


def _parse_bulk_update_stock(data: dict, errors: FieldErrors) -> BulkUpdateStock | None:
    raw_updates = data.get("updates")
    if not isinstance(raw_updates, list) or not raw_updates:
        errors.add("updates", "must be a non-empty list")
        return None
    updates = []
    for idx, raw in enumerate(raw_updates):
        if not isinstance(raw, dict):
            errors.add(f"updates.{idx}", "must be an object")
            continue
        update = _parse_update_stock(raw, errors, prefix=f"updates.{idx}.")
        if update:
            updates.append(update)
    return BulkUpdateStock(updates=tuple(updates))


def _parse_set_stock_alert(data: dict, errors: FieldErrors) -> SetStockAlert | None:
    product_id = read_int(data.get("product_id"), "product_id", errors, minimum=1)
    threshold = read_int(data.get("threshold"), "threshold", errors, minimum=0)
    if product_id is None or threshold is None:
        return None
    return SetStockAlert(product_id=product_id, threshold=threshold)


def _parse_create_restock_request(data: dict, errors: FieldErrors) -> CreateRestockRequest | None:
    product_id = read_int(data.get("product_id"), "product_id", errors, minimum=1)
    quantity = read_int(data.get("quantity"), "quantity", errors, minimum=1)
    note = read_str(data.get("note"), "note", errors, max_length=255, required=False)
    if product_id is None or quantity is None:
        return None
    return CreateRestockRequest(product_id=product_id, quantity=quantity, note=note)


INVENTORY_ACTIONS: dict[str, Callable[[dict, FieldErrors], Any]] = {
    "updateStock": _parse_update_stock,
    "bulkUpdateStock": _parse_bulk_update_stock,
    "setStockAlert": _parse_set_stock_alert,
    "createRestockRequest": _parse_create_restock_request,
}


# =============================================================================
# PAYMENT ACTIONS
# =============================================================================

@dataclass(frozen=True)
class ProcessPayment:
    order_id: int
    payment_method: str
    upi_id: str | None = None
    card: CardDetails | None = None


@dataclass(frozen=True)
class ValidateZip:
    zip_code: str
    country: str | None = None


def _parse_process_payment(data: dict, errors: FieldErrors) -> ProcessPayment | None:
    order_id = read_int(data.get("order_id"), "order_id", errors, minimum=1)
    method = data.get("payment_method")
    if method not in PAYMENT_METHODS:
        errors.add("payment_method", f"must be one of {', '.join(PAYMENT_METHODS)}")
        return None

    upi_id = None
    card = None
    if method == "upi":
        upi_id = read_str(data.get("upi_id"), "upi_id", errors, max_length=320, required=False)
    else:
        try:
            card = parse_card_details(data.get("card"))
        except InvalidArgumentError as exc:
            for path, message in exc.fields.items():
                errors.add(path, message)
            return None

    if order_id is None:
        return None
    return ProcessPayment(order_id=order_id, payment_method=method, upi_id=upi_id, card=card)


def _parse_validate_zip(data: dict, errors: FieldErrors) -> ValidateZip | None:
    zip_code = read_str(data.get("zip_code"), "zip_code", errors, max_length=32)
    country = read_str(data.get("country"), "country", errors, max_length=64, required=False)
    if zip_code is None:
        return None
    return ValidateZip(zip_code=zip_code, country=country)


PAYMENT_ACTIONS: dict[str, Callable[[dict, FieldErrors], Any]] = {
    "process": _parse_process_payment,
    "validate-zip": _parse_validate_zip,
}


# =============================================================================
# NOTIFICATION ACTIONS
# =============================================================================

NOTIFICATION_TYPES = ("order", "promotion", "reminder", "system")


@dataclass(frozen=True)
class SendNotification:
    user_id: int
    title: str
    message: str
    type: str = "system"
    order_id: int | None = None


@dataclass(frozen=True)
class SendBulkNotification:
    user_ids: tuple[int, ...]
    title: str
    message: str
    type: str = "system"


def _read_notification_body(data: dict, errors: FieldErrors) -> tuple[str | None, str | None, str]:
    title = read_str(data.get("title"), "title", errors, max_length=200)
    message = read_str(data.get("message"), "message", errors, max_length=2000)
    ntype = data.get("type") or "system"
    if ntype not in NOTIFICATION_TYPES:
        errors.add("type", f"must be one of {', '.join(NOTIFICATION_TYPES)}")
    return title, message, ntype


def _parse_send_notification(data: dict, errors: FieldErrors) -> SendNotification | None:
    user_id = read_int(data.get("user_id"), "user_id", errors, minimum=1)
    title, message, ntype = _read_notification_body(data, errors)
    order_id = None
    if data.get("order_id") is not None:
        order_id = read_int(data.get("order_id"), "order_id", errors, minimum=1)
    if errors:
        return None
    return SendNotification(user_id=user_id, title=title, message=message, type=ntype, order_id=order_id)


def _parse_send_bulk_notification(data: dict, errors: FieldErrors) -> SendBulkNotification | None:
    raw_ids = data.get("user_ids")
    user_ids: list[int] = []
    if not isinstance(raw_ids, list) or not raw_ids:
        errors.add("user_ids", "must be a non-empty list")
    else:
        for idx, raw in enumerate(raw_ids):
            user_id = read_int(raw, f"user_ids.{idx}", errors, minimum=1)
            if user_id is not None and user_id not in user_ids:
                user_ids.append(user_id)
    title, message, ntype = _read_notification_body(data, errors)
    if errors:
        return None
    return SendBulkNotification(user_ids=tuple(user_ids), title=title, message=message, type=ntype)


NOTIFICATION_ACTIONS: dict[str, Callable[[dict, FieldErrors], Any]] = {
    "sendNotification": _parse_send_notification,
    "sendBulkNotification": _parse_send_bulk_notification,
}


def parse_action(payload: Any, registry: dict[str, Callable[[dict, FieldErrors], Any]]):
    """
    Parse {"action": name, ...} into the dataclass registered for `name`.

    Raises:
        InvalidArgumentError: unknown action or malformed fields
    """
    data = read_object(payload)
    action = data.get("action")
    parser = registry.get(action) if isinstance(action, str) else None
    if parser is None:
        raise InvalidArgumentError(
            "Invalid action",
            {"action": f"must be one of {', '.join(registry)}"},
        )

    errors = FieldErrors()
    parsed = parser(data, errors)
    errors.raise_if_any(f"Invalid {action} request")
    if parsed is None:
        raise InvalidArgumentError(f"Invalid {action} request")
    return parsed
