# agricart/errors.py
"""
Error taxonomy shared by services and blueprints.

Services raise these; the handlers registered in ``create_app`` turn them into
the uniform JSON envelope ``{"success": false, "message": ...}``.
"""

from __future__ import annotations

from typing import Any


class MarketplaceError(Exception):
    status_code = 500
    default_message = "Something went wrong. Please try again."

    def __init__(self, message: str | None = None, *, payload: dict[str, Any] | None = None):
        self.message = message or self.default_message
        self.payload = dict(payload or {})
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"success": False, "message": self.message}
        body.update(self.payload)
        return body


class ValidationError(MarketplaceError):
    status_code = 400
    default_message = "Invalid request."


class Unauthenticated(MarketplaceError):
    status_code = 401
    default_message = "Not authorized, no token"


class Forbidden(MarketplaceError):
    status_code = 403
    default_message = "Not authorized"


class NotFound(MarketplaceError):
    status_code = 404
    default_message = "Not found"


class InvalidState(MarketplaceError):
    status_code = 400
    default_message = "This action is not allowed in the current state."


class OutOfStock(InvalidState):
    """
    Raised with one entry per deficient line item:
        {"product": <id>, "name": <str>, "requested": <int>, "available": <int>}
    """

    def __init__(self, shortages: list[dict[str, Any]]):
        self.shortages = list(shortages)
        names = ", ".join(str(s.get("name") or s.get("product")) for s in self.shortages)
        super().__init__(f"Insufficient stock for: {names}", payload={"items": self.shortages})


class UpstreamFailure(MarketplaceError):
    """Payment gateway error. The gateway's message is only shown outside production."""

    status_code = 500
    default_message = "Payment gateway request failed."


class InternalError(MarketplaceError):
    status_code = 500
    default_message = "Server error"
