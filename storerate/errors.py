"""Typed failures raised by the directory service and its collaborators."""

from __future__ import annotations

from typing import Optional


class StoreRateError(Exception):
    """Base class for errors that map onto a fixed HTTP status."""

    status_code = 500
    default_message = "Something went wrong on the server!"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(StoreRateError):
    status_code = 400
    default_message = "Validation Error"


class UnauthorizedError(StoreRateError):
    status_code = 401
    default_message = "Unauthorized"


class ForbiddenError(StoreRateError):
    status_code = 403
    default_message = "Insufficient permissions"


class NotFoundError(StoreRateError):
    """Raised when a referenced store or user does not exist."""

    status_code = 404

    def __init__(self, resource: str = "Resource") -> None:
        self.resource = resource
        super().__init__(f"{resource} not found")


class ConflictError(StoreRateError):
    status_code = 409
    default_message = "Duplicate entry"


class DatabaseError(StoreRateError):
    """Persistence failure. The message never includes engine details."""

    status_code = 500
    default_message = "A database error occurred"


__all__ = [
    "ConflictError",
    "DatabaseError",
    "ForbiddenError",
    "NotFoundError",
    "StoreRateError",
    "UnauthorizedError",
    "ValidationError",
]
