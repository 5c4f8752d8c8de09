"""
Base Schemas.

Discriminated result envelope returned by every store operation.
"""

from datetime import datetime
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from notestore.core.exceptions import StoreError, error_from_kind
from notestore.core.utils import utc_now

DataT = TypeVar("DataT")


class ResultMetadata(BaseModel):
    """Metadata included in every result."""

    timestamp: datetime = Field(default_factory=utc_now)
    operation: str | None = None


class ErrorDetail(BaseModel):
    """Error detail structure."""

    kind: str
    code: str
    message: str
    details: dict[str, Any] | None = None

    @classmethod
    def from_exception(cls, exc: StoreError) -> "ErrorDetail":
        return cls(
            kind=exc.kind,
            code=exc.code,
            message=exc.message,
            details=exc.details or None,
        )


class StoreResult(BaseModel, Generic[DataT]):
    """
    Success-or-error envelope.

    ``success`` is True exactly when ``error`` is None.
    """

    success: bool = True
    data: DataT | None = None
    error: ErrorDetail | None = None
    metadata: ResultMetadata = Field(default_factory=ResultMetadata)

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @classmethod
    def ok(cls, data: Any = None, operation: str | None = None) -> "StoreResult":
        return cls(success=True, data=data, metadata=ResultMetadata(operation=operation))

    @classmethod
    def failure(cls, exc: StoreError, operation: str | None = None) -> "StoreResult":
        return cls(
            success=False,
            error=ErrorDetail.from_exception(exc),
            metadata=ResultMetadata(operation=operation),
        )

    def unwrap(self) -> DataT:
        """Return the data, or raise the typed error this result carries."""
        if self.success:
            return self.data
        raise error_from_kind(self.error.kind, self.error.message, self.error.details)
