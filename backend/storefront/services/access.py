# Overview: Who is calling: a signed-in user, a guest browser session, or both.

from __future__ import annotations

from dataclasses import dataclass

from ..errors import PermissionDeniedError
from ..models import Order, User


@dataclass(frozen=True)
class Requester:
    """
    Identity of the caller for ownership checks.

    Guests are identified only by their browser session id. A signed-in
    user may also carry a session id (used when merging a guest cart).
    """
    user: User | None = None
    session_id: str | None = None

    @property
    def user_id(self) -> int | None:
        return self.user.id if self.user else None

    @property
    def is_admin(self) -> bool:
        return bool(self.user and self.user.is_admin)

    @property
    def is_anonymous(self) -> bool:
        return self.user is None and not self.session_id


def can_access_order(order: Order, requester: Requester) -> bool:
    if requester.is_admin:
        return True
    if order.user_id is not None:
        return requester.user_id == order.user_id
    return bool(requester.session_id) and requester.session_id == order.session_id


def assert_can_access_order(order: Order, requester: Requester) -> None:
    """Raises PermissionDeniedError unless the requester owns the order or is admin."""
    if not can_access_order(order, requester):
        raise PermissionDeniedError("You do not have access to this order")
