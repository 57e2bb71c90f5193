from __future__ import annotations

from typing import Any, Dict, Optional


class ConstraintViolation(Exception):
    """Raised when a storage-layer uniqueness constraint is violated."""

    def __init__(self, message: str, detail: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or {}


class BackendUnavailable(Exception):
    """Raised when an adapter cannot reach its backend.

    ``backend`` names the store ("postgres", "redis") for logging only.
    """

    def __init__(self, backend: str, message: str = "backend unavailable"):
        super().__init__(f"{backend}: {message}")
        self.backend = backend
        self.message = message


__all__ = ["BackendUnavailable", "ConstraintViolation"]
