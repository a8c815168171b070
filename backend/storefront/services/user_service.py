# Overview: Saved shipping addresses for signed-in users.

from __future__ import annotations

from ..errors import NotFoundError
from ..extensions import db
from ..models import UserAddress
from ..validation import FieldErrors, parse_shipping_address, read_str
from .concurrency import run_in_transaction


ADDRESS_LABELS = ("home", "work", "other")
MAX_ADDRESSES = 10


def list_addresses(user_id: int) -> list[UserAddress]:
    return (
        db.session.query(UserAddress)
        .filter_by(user_id=user_id)
        .order_by(UserAddress.is_default.desc(), UserAddress.id.asc())
        .all()
    )


def _clear_default(user_id: int) -> None:
    for address in db.session.query(UserAddress).filter_by(user_id=user_id, is_default=True).all():
        address.is_default = False


def add_address(user_id: int, payload: dict) -> UserAddress:
    """
    Save an address. Uses the checkout address rules; the first address a
    user saves becomes the default.
    """
    errors = FieldErrors()
    data = payload if isinstance(payload, dict) else {}
    parsed = parse_shipping_address(data, errors, prefix="address", require_email=False)
    label = read_str(data.get("label"), "address.label", errors, required=False) or "home"
    if label not in ADDRESS_LABELS:
        errors.add("address.label", f"must be one of {', '.join(ADDRESS_LABELS)}")
    if len(list_addresses(user_id)) >= MAX_ADDRESSES:
        errors.add("address", f"at most {MAX_ADDRESSES} saved addresses")
    errors.raise_if_any("Invalid address")

    make_default = bool(data.get("is_default"))

    def _op():
        existing = db.session.query(UserAddress).filter_by(user_id=user_id).count()
        is_default = make_default or existing == 0
        if is_default:
            _clear_default(user_id)
        address = UserAddress(
            user_id=user_id,
            label=label,
            name=parsed.name,
            phone=parsed.phone,
            address=parsed.address,
            city=parsed.city,
            state=parsed.state,
            zip_code=parsed.zip_code,
            country=parsed.country,
            is_default=is_default,
        )
        db.session.add(address)
        return address

    return run_in_transaction(_op)


def _owned_address(user_id: int, address_id: int) -> UserAddress:
    address = db.session.get(UserAddress, address_id)
    if not address or address.user_id != user_id:
        raise NotFoundError("Address not found")
    return address


def delete_address(user_id: int, address_id: int) -> None:
    def _op():
        address = _owned_address(user_id, address_id)
        was_default = address.is_default
        db.session.delete(address)
        db.session.flush()
        if was_default:
            replacement = (
                db.session.query(UserAddress)
                .filter_by(user_id=user_id)
                .order_by(UserAddress.id.asc())
                .first()
            )
            if replacement:
                replacement.is_default = True

    run_in_transaction(_op)


def set_default_address(user_id: int, address_id: int) -> UserAddress:
    def _op():
        address = _owned_address(user_id, address_id)
        _clear_default(user_id)
        address.is_default = True
        return address

    return run_in_transaction(_op)
