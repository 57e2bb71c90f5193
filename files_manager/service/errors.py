from __future__ import annotations

from typing import Optional


class ServiceError(Exception):
    """Base class for service-layer exceptions mapped to HTTP responses.

    Each subclass defines an HTTP ``status_code`` and a stable ``error_code``.
    The ``message`` is what clients see in the ``{"error": ...}`` body, so it
    must never carry driver or storage details.
    """

    status_code: int = 400
    error_code: str = "validation_error"
    default_message: str = "Bad Request"

    def __init__(self, message: Optional[str] = None) -> None:
        message = message or self.default_message
        super().__init__(message)
        self.message = message


class ValidationError(ServiceError):
    """Missing or conflicting user input (400)."""
    status_code = 400
    error_code = "validation_error"


class AuthenticationError(ServiceError):
    """Credential or token rejected (401).

    The message is fixed so callers cannot tell which factor failed.
    """
    status_code = 401
    error_code = "unauthorized"
    default_message = "Unauthorized"

    def __init__(self) -> None:
        super().__init__(self.default_message)


class StoreUnavailableError(ServiceError):
    """A backing store could not be reached (500)."""
    status_code = 500
    error_code = "store_unavailable"
    default_message = "Internal Server Error"


class ConnectionTimeoutError(ServiceError):
    """The persistent store never became alive during startup."""
    status_code = 500
    error_code = "connection_timeout"
    default_message = "Connection timeout"


__all__ = [
    "ServiceError",
    "ValidationError",
    "AuthenticationError",
    "StoreUnavailableError",
    "ConnectionTimeoutError",
]
