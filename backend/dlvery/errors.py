# Overview: Domain exceptions raised by services and mapped to HTTP responses in one place.

from __future__ import annotations


class ApiError(Exception):
    """Base class for errors that carry their own HTTP status."""

    status_code = 500
    error = "Internal Server Error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.error)
        self.message = message or self.error


class ValidationError(ApiError, ValueError):
    """400-level input problem. `errors` maps field name -> message."""

    status_code = 400
    error = "Bad Request"

    def __init__(self, message: str | None = None, errors: dict[str, str] | None = None):
        super().__init__(message or "Validation failed")
        self.errors = dict(errors or {})


class InsufficientStockError(ValidationError):
    """A ledger entry would drive Product.quantity below zero."""

    def __init__(self, sku: str, available: int, delta: int):
        super().__init__("Cannot reduce quantity below zero")
        self.sku = sku
        self.available = available
        self.delta = delta


class BadCredentialsError(ApiError):
    status_code = 401
    error = "Unauthorized"

    def __init__(self, message: str | None = None):
        super().__init__(message or "Invalid username or password")


class AccessDeniedError(ApiError):
    status_code = 403
    error = "Forbidden"

    def __init__(self, message: str | None = None):
        super().__init__(message or "You don't have permission to access this resource")


class NotFoundError(ApiError):
    status_code = 404
    error = "Not Found"

    def __init__(self, resource: str, field: str, value):
        super().__init__(f"{resource} not found with {field} : '{value}'")
        self.resource = resource
        self.field = field
        self.value = value


class ConflictError(ApiError, ValueError):
    """409-level business rule conflict (duplicate SKU, invalid status transition, ...)."""

    status_code = 409
    error = "Conflict"
