from __future__ import annotations


class StorefrontError(Exception):
    """Base class for failures surfaced by the storefront core."""


class ValidationError(StorefrontError):
    """Structured rejection from the remote API, or a malformed payload."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ServiceUnavailableError(StorefrontError):
    """Remote API unreachable or failing without a structured message."""


class ConflictError(StorefrontError):
    """Raised when an order status transition is not allowed."""


class NotFoundError(StorefrontError):
    """Entity absent from both the remote API and the fallback cache."""
