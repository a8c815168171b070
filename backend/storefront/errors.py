# Overview: Error taxonomy shared by services and routes; maps failures to JSON bodies and HTTP codes.

"""
Storefront error kinds.

Every business failure raised by a service is one of the classes below.
Routes catch StorefrontError and hand it to error_response(); anything else
is logged and reported as an internal error.

Response shape:
    {"success": false, "error": {"kind": "...", "message": "...", "fields": {...}}}
"""

from __future__ import annotations

from flask import jsonify


class StorefrontError(Exception):
    """Base class for errors that carry a client-facing kind and status."""

    kind = "internal"
    status_code = 500

    def __init__(self, message: str, fields: dict | None = None):
        super().__init__(message)
        self.message = message
        self.fields = fields or {}

    def to_dict(self) -> dict:
        body = {"kind": self.kind, "message": self.message}
        if self.fields:
            body["fields"] = self.fields
        return body


class UnauthenticatedError(StorefrontError):
    kind = "unauthenticated"
    status_code = 401


class PermissionDeniedError(StorefrontError):
    kind = "permission-denied"
    status_code = 403


class InvalidArgumentError(StorefrontError):
    """Payload failed validation. `fields` maps field path -> message."""

    kind = "invalid-argument"
    status_code = 400


class NotFoundError(StorefrontError):
    kind = "not-found"
    status_code = 404


class FailedPreconditionError(StorefrontError):
    """A business rule blocks the action (stock, transition, payment state)."""

    kind = "failed-precondition"
    status_code = 409


class InternalError(StorefrontError):
    kind = "internal"
    status_code = 500


def error_response(exc: StorefrontError):
    return jsonify({"success": False, "error": exc.to_dict()}), exc.status_code


def internal_error_response(message: str = "Internal server error"):
    return error_response(InternalError(message))
