"""
Store Exceptions.

Typed error kinds surfaced by every store operation. Each carries a stable
``code`` for structured logs and a ``kind`` used in failed StoreResults.
"""

from typing import Any


class StoreError(Exception):
    """Base exception for all store errors."""

    kind = "StoreError"

    def __init__(
        self,
        message: str,
        code: str = "SYS_INTERNAL_ERROR",
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(StoreError):
    """Raised for hierarchy violations, cycles and malformed input."""

    kind = "ValidationError"

    def __init__(self, message: str = "Validation failed", details: dict | None = None) -> None:
        super().__init__(message, code="VAL_VALIDATION_ERROR", details=details)


class NotFoundError(StoreError):
    """Raised when an item is missing or soft-deleted."""

    kind = "NotFoundError"

    def __init__(self, message: str = "Item not found", details: dict | None = None) -> None:
        super().__init__(message, code="RES_NOT_FOUND", details=details)


class ConflictError(StoreError):
    """Raised when a sibling sort key collision cannot be resolved."""

    kind = "ConflictError"

    def __init__(self, message: str = "Resource conflict", details: dict | None = None) -> None:
        super().__init__(message, code="RES_CONFLICT", details=details)


class StorageError(StoreError):
    """Raised when an I/O or transaction failure reaches the store.

    ``transient`` marks lock and busy failures that are worth one retry.
    """

    kind = "StorageError"

    def __init__(
        self,
        message: str = "Storage error",
        transient: bool = False,
        details: dict | None = None,
    ) -> None:
        self.transient = transient
        super().__init__(message, code="SYS_STORAGE_ERROR", details=details)


class SchemaError(StoreError):
    """Raised when provisioning hits a failure outside the tolerated set."""

    kind = "SchemaError"

    def __init__(self, message: str = "Schema provisioning failed", details: dict | None = None) -> None:
        super().__init__(message, code="SYS_SCHEMA_ERROR", details=details)


ERROR_KINDS: dict[str, type[StoreError]] = {
    cls.kind: cls
    for cls in (ValidationError, NotFoundError, ConflictError, StorageError, SchemaError)
}


def error_from_kind(kind: str, message: str, details: dict | None = None) -> StoreError:
    """Rebuild a typed exception from a serialized error kind."""
    cls = ERROR_KINDS.get(kind)
    if cls is None:
        return StoreError(message, details=details)
    return cls(message, details=details)
