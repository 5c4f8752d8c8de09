"""
Database Configuration.

SQLAlchemy async engine and session management for the SQLite file.
Every connection gets the configured journal mode, foreign keys and a busy
timeout. In-memory databases share a single connection through StaticPool
so all sessions see the same data.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from sqlalchemy import event
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from notestore.core.config_schema import DatabaseSchema
from notestore.core.exceptions import ConflictError, StorageError
from notestore.core.logging import get_logger

logger = get_logger(__name__)

MEMORY = ":memory:"

_TRANSIENT_MARKERS = ("database is locked", "database table is locked", "busy")


def build_database_url(path: str) -> str:
    """Return the aiosqlite URL for a database path."""
    if path == MEMORY:
        return "sqlite+aiosqlite:///:memory:"
    return f"sqlite+aiosqlite:///{path}"


def create_engine(path: str, db_config: DatabaseSchema | None = None) -> AsyncEngine:
    """
    Create the async engine for a database file.

    Args:
        path: Filesystem path, or ":memory:"
        db_config: database.yaml settings

    Returns:
        SQLAlchemy async engine with connection pragmas installed
    """
    db_config = db_config or DatabaseSchema()

    kwargs: dict[str, Any] = {"echo": db_config.echo}
    if path == MEMORY:
        kwargs["poolclass"] = StaticPool
        kwargs["connect_args"] = {"check_same_thread": False}
    else:
        Path(path).expanduser().parent.mkdir(parents=True, exist_ok=True)

    engine = create_async_engine(build_database_url(path), **kwargs)

    journal_mode = db_config.journal_mode
    busy_timeout = db_config.busy_timeout_ms

    @event.listens_for(engine.sync_engine, "connect")
    def _set_sqlite_pragmas(dbapi_connection: Any, connection_record: Any) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute(f"PRAGMA journal_mode={journal_mode}")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute(f"PRAGMA busy_timeout={busy_timeout}")
        cursor.close()

    logger.debug("Database engine created", extra={"path": path, "journal_mode": journal_mode})
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the engine. Objects stay usable after commit."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


def is_transient_message(message: str) -> bool:
    """True when a driver message describes lock or busy contention."""
    lowered = message.lower()
    return any(marker in lowered for marker in _TRANSIENT_MARKERS)


def translate_error(exc: SQLAlchemyError, operation: str) -> Exception:
    """
    Map a SQLAlchemy exception to a store error.

    Unique violations become ConflictError. Lock and busy failures become
    transient StorageErrors. Everything else is a plain StorageError.
    """
    message = str(exc.orig) if isinstance(exc, DBAPIError) and exc.orig is not None else str(exc)
    if isinstance(exc, IntegrityError):
        lowered = message.lower()
        if "unique" in lowered or "duplicate" in lowered:
            return ConflictError(
                f"Conflicting write during {operation}",
                details={"operation": operation, "error": message},
            )
        return StorageError(
            f"Constraint violation during {operation}: {message}",
            details={"operation": operation},
        )
    if isinstance(exc, OperationalError) and is_transient_message(message):
        return StorageError(
            f"Storage busy during {operation}",
            transient=True,
            details={"operation": operation, "error": message},
        )
    return StorageError(
        f"Storage operation failed: {operation}",
        details={"operation": operation, "error": message},
    )


@asynccontextmanager
async def unit_of_work(
    session_factory: async_sessionmaker[AsyncSession],
    operation: str,
) -> AsyncIterator[AsyncSession]:
    """
    Provide a session wrapped in one transaction.

    Commits on success and rolls back on any exception. SQLAlchemy errors
    escaping the body are translated to store errors.

    Usage:
        async with unit_of_work(factory, "move_item") as session:
            ...
    """
    async with session_factory() as session:
        try:
            async with session.begin():
                yield session
        except SQLAlchemyError as e:
            logger.error(
                "Database error",
                extra={"operation": operation, "error": str(e)},
            )
            raise translate_error(e, operation) from e
