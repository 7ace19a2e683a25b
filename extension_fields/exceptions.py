from __future__ import annotations

from typing import Optional


class ExtensionFieldError(Exception):
    """Base exception for extension field operations."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class ExtensionFieldValidationError(ExtensionFieldError):
    """Raised when a field name, data type, length or value is malformed."""


class ExtensionFieldConflictError(ExtensionFieldError):
    """Raised when an active field already owns the derived column name."""


class ExtensionFieldNotFoundError(ExtensionFieldError):
    """Raised when an entity type is unmapped or a field id is unknown."""


class ExtensionFieldExecutionError(ExtensionFieldError):
    """Raised when the store rejects the DDL issued for a field."""


__all__ = [
    "ExtensionFieldError",
    "ExtensionFieldValidationError",
    "ExtensionFieldConflictError",
    "ExtensionFieldNotFoundError",
    "ExtensionFieldExecutionError",
]
