"""Error taxonomy shared by the storage, graph and organizer layers."""

from __future__ import annotations

from typing import Any, Dict, Optional


class ZammError(Exception):
    """Base error carrying a category and optional structured details."""

    error_type = "system"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            extra = ", ".join(f"{key}={value}" for key, value in self.details.items())
            return f"{self.message} ({extra})"
        return self.message


class ValidationError(ZammError):
    """Malformed or empty input, self-referential edge, size limits."""

    error_type = "validation"


class NotFoundError(ZammError):
    """Unknown node, edge or root record."""

    error_type = "not_found"


class StorageError(ZammError):
    """Filesystem failure (read, write, mkdir, rename)."""

    error_type = "storage"


class InconsistencyError(ZammError):
    """Physical file location and recorded pointer disagree.

    Raised instead of StorageError so callers can choose manual recovery
    over a blind retry.
    """

    error_type = "inconsistency"


__all__ = [
    "ZammError",
    "ValidationError",
    "NotFoundError",
    "StorageError",
    "InconsistencyError",
]
