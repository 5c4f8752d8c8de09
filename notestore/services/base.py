"""
Shared plumbing for the store's services.

A service lives for exactly one unit of work. The caller opens the
transaction and commits it; the service only reads, writes and queues the
events that describe its writes. Queued events are published by the caller
after the commit, so a rolled-back call never announces anything.
"""

from collections.abc import Awaitable
from typing import Any, TypeVar
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from notestore.core.database import translate_error
from notestore.core.exceptions import ConflictError, ValidationError
from notestore.core.logging import get_logger
from notestore.events.schemas import EventEnvelope

T = TypeVar("T")


class BaseService:
    """Session holder with database error translation and an event queue."""

    def __init__(self, session: AsyncSession, correlation_id: str | None = None) -> None:
        self._session = session
        self._logger = get_logger(type(self).__module__)
        self.correlation_id = correlation_id or str(uuid4())
        self.pending_events: list[EventEnvelope] = []

    @property
    def session(self) -> AsyncSession:
        return self._session

    def _queue_event(self, event_cls: type[EventEnvelope], payload: dict[str, Any]) -> None:
        """Hold an event until the caller has committed."""
        self.pending_events.append(event_cls(correlation_id=self.correlation_id, payload=payload))

    async def _execute_db_operation(self, operation: str, coro: Awaitable[T]) -> T:
        """
        Await ``coro`` and turn driver failures into store errors.

        A unique-constraint hit becomes ConflictError; anything else from
        SQLAlchemy becomes StorageError, flagged transient when SQLite
        reported a lock. Non-database exceptions pass through untouched.
        """
        try:
            return await coro
        except SQLAlchemyError as e:
            mapped = translate_error(e, operation)
            level = "warning" if isinstance(mapped, ConflictError) else "error"
            getattr(self._logger, level)(
                "Database error",
                extra={"operation": operation, "code": mapped.code, "error": str(e)},
            )
            raise mapped from e

    def _validate_string_length(
        self,
        value: str,
        field_name: str,
        min_length: int | None = None,
        max_length: int | None = None,
    ) -> None:
        if min_length is not None and len(value) < min_length:
            raise ValidationError(
                f"{field_name} too short",
                details={field_name: f"Minimum length is {min_length}"},
            )
        if max_length is not None and len(value) > max_length:
            raise ValidationError(
                f"{field_name} too long",
                details={field_name: f"Maximum length is {max_length}"},
            )

    def _context(self, **fields: Any) -> dict[str, Any]:
        return {"service": type(self).__name__, "correlation_id": self.correlation_id, **fields}

    def _log_operation(self, message: str, **fields: Any) -> None:
        self._logger.info(message, extra=self._context(**fields))

    def _log_debug(self, message: str, **fields: Any) -> None:
        self._logger.debug(message, extra=self._context(**fields))
