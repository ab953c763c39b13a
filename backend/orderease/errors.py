# Overview: Domain error taxonomy shared by services, decorators, and routes.

"""
Every failure a service can report is one of the classes below.

Each class carries a stable ``kind`` (used in logs and tests) and the HTTP
status the boundary renders it with. Messages are safe to show to clients;
infrastructure details are logged, never put into a message.
"""

from __future__ import annotations

from typing import Any


class OrderEaseError(Exception):
    kind = "Internal"
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None, details: dict[str, Any] | None = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        payload: dict[str, Any] = {"error": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class InvalidInput(OrderEaseError):
    kind = "InvalidInput"
    status_code = 400
    default_message = "Invalid input"


class InvalidCredentials(OrderEaseError):
    kind = "InvalidCredentials"
    status_code = 401
    default_message = "Invalid username or password"


class Unauthenticated(OrderEaseError):
    kind = "Unauthenticated"
    status_code = 401
    default_message = "Authentication required"


class TempTokenExpired(Unauthenticated):
    kind = "Expired"
    default_message = "Temporary token has expired"


class TempTokenMismatch(Unauthenticated):
    kind = "Mismatch"
    default_message = "Temporary token is invalid"


class Forbidden(OrderEaseError):
    kind = "Forbidden"
    status_code = 403
    default_message = "Access to this shop is not allowed"


class NotFound(OrderEaseError):
    kind = "NotFound"
    status_code = 404
    default_message = "Not found"


class Conflict(OrderEaseError):
    kind = "Conflict"
    status_code = 409
    default_message = "Conflict"


class ShopExpired(OrderEaseError):
    kind = "ShopExpired"
    status_code = 403
    default_message = "Shop service period has expired"


class DomainError(OrderEaseError):
    status_code = 400


class InsufficientStock(DomainError):
    kind = "InsufficientStock"
    default_message = "Insufficient stock"


class InvalidOption(DomainError):
    kind = "InvalidOption"
    default_message = "Invalid product option"


class ProductInUse(DomainError):
    kind = "ProductInUse"
    default_message = "Product is referenced by orders and cannot be deleted"


class OrderImmutable(DomainError):
    kind = "OrderImmutable"
    default_message = "Order is in a final state and cannot be changed"


class StatusNotAllowed(DomainError):
    kind = "StatusNotAllowed"
    default_message = "Status transition not allowed"


class Internal(OrderEaseError):
    pass
