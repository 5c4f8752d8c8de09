"""
Schema Provisioner.

Applies the packaged SQL script statement by statement, on every launch.
Re-running is safe: "already exists" style failures are expected and
skipped. Any other failure is checked against the resulting schema and is
only fatal (SchemaError) when the object the statement targets is missing.

Usage:
    from notestore.migrations.provisioner import SchemaProvisioner

    report = await SchemaProvisioner(engine).provision()
"""

import re
from dataclasses import dataclass, field
from pathlib import Path

from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from notestore.core.exceptions import SchemaError
from notestore.core.logging import get_logger

logger = get_logger(__name__)

SQL_DIR = Path(__file__).resolve().parent / "sql"
DEFAULT_SCRIPT = "base.sql"

EXPECTED_ERRORS = (
    "already exists",
    "duplicate column name",
    "duplicate index name",
    "duplicate trigger name",
    "duplicate view name",
    "cannot commit - no transaction is active",
    "cannot start a transaction within a transaction",
    "cannot rollback - no transaction is active",
)

_VERSION_HEADER = re.compile(r"^--\s*schema-version:\s*(\d+)\s*$", re.MULTILINE | re.IGNORECASE)

_CREATE_TARGET = re.compile(
    r"^\s*CREATE\s+(?:UNIQUE\s+|VIRTUAL\s+|TEMP\s+|TEMPORARY\s+)*"
    r"(TABLE|INDEX|TRIGGER|VIEW)\s+(?:IF\s+NOT\s+EXISTS\s+)?[\"`\[]?(\w+)",
    re.IGNORECASE,
)
_ADD_COLUMN_TARGET = re.compile(
    r"^\s*ALTER\s+TABLE\s+[\"`\[]?(\w+)[\"`\]]?\s+ADD\s+(?:COLUMN\s+)?[\"`\[]?(\w+)",
    re.IGNORECASE,
)


def load_schema_script(name: str = DEFAULT_SCRIPT) -> str:
    """Read a packaged SQL script."""
    return (SQL_DIR / name).read_text(encoding="utf-8")


def script_version(script: str) -> int | None:
    """Version number from a ``-- schema-version: N`` header, if present."""
    match = _VERSION_HEADER.search(script)
    return int(match.group(1)) if match else None


def is_expected_error(message: str) -> bool:
    """True for failures that only mean the object is already in place."""
    lowered = message.lower()
    return any(expected in lowered for expected in EXPECTED_ERRORS)


def split_sql_statements(script: str) -> list[str]:
    """
    Split a script into executable statements.

    A ``;`` ends a statement only outside quotes, comments and parentheses,
    and outside the BEGIN ... END body of a CREATE TRIGGER (CASE ... END
    nests inside it). Comments are dropped from the output.

    Raises:
        SchemaError: if the script ends inside an unterminated statement
    """
    statements: list[str] = []
    buf: list[str] = []
    word: list[str] = []
    words_in_statement: list[str] = []
    paren_depth = 0
    block_depth = 0
    i = 0
    n = len(script)

    def flush_word() -> None:
        nonlocal block_depth
        if not word:
            return
        token = "".join(word).upper()
        word.clear()
        if len(words_in_statement) < 4:
            words_in_statement.append(token)
        is_trigger = "TRIGGER" in words_in_statement
        if token == "CASE" or (token == "BEGIN" and is_trigger):
            block_depth += 1
        elif token == "END" and block_depth > 0:
            block_depth -= 1

    def finish_statement() -> None:
        nonlocal paren_depth, block_depth
        text = "".join(buf).strip()
        if text:
            statements.append(text)
        buf.clear()
        words_in_statement.clear()
        paren_depth = 0
        block_depth = 0

    while i < n:
        ch = script[i]
        nxt = script[i + 1] if i + 1 < n else ""

        if ch == "-" and nxt == "-":
            flush_word()
            end = script.find("\n", i)
            i = n if end == -1 else end
            buf.append("\n" if buf else "")
            continue

        if ch == "/" and nxt == "*":
            flush_word()
            end = script.find("*/", i + 2)
            if end == -1:
                raise SchemaError("Unterminated block comment in schema script")
            i = end + 2
            buf.append(" " if buf else "")
            continue

        if ch in ("'", '"', "`", "["):
            flush_word()
            closing = "]" if ch == "[" else ch
            j = i + 1
            while True:
                j = script.find(closing, j)
                if j == -1:
                    raise SchemaError("Unterminated quoted literal in schema script")
                # a doubled quote is an escaped quote
                if closing != "]" and j + 1 < n and script[j + 1] == closing:
                    j += 2
                    continue
                break
            buf.append(script[i:j + 1])
            i = j + 1
            continue

        if ch.isalnum() or ch == "_":
            word.append(ch)
            buf.append(ch)
            i += 1
            continue

        flush_word()

        if ch == "(":
            paren_depth += 1
        elif ch == ")":
            paren_depth = max(0, paren_depth - 1)
        elif ch == ";" and paren_depth == 0 and block_depth == 0:
            buf.append(ch)
            finish_statement()
            i += 1
            continue

        buf.append(ch)
        i += 1

    flush_word()
    remainder = "".join(buf).strip()
    if remainder:
        if paren_depth or block_depth:
            raise SchemaError(
                "Schema script ends inside an unterminated statement",
                details={"fragment": remainder[:200]},
            )
        statements.append(remainder)
    return statements


def _error_message(exc: SQLAlchemyError) -> str:
    if isinstance(exc, DBAPIError) and exc.orig is not None:
        return str(exc.orig)
    return str(exc)


def _summarize(statement: str) -> str:
    return " ".join(statement.split())[:120]


@dataclass
class ProvisionReport:
    """What a provisioning run did."""

    total: int = 0
    executed: int = 0
    skipped: int = 0
    recovered: list[str] = field(default_factory=list)
    version: int | None = None

    @property
    def ok(self) -> bool:
        return self.executed + self.skipped + len(self.recovered) == self.total


class SchemaProvisioner:
    """Idempotent schema bootstrap for one engine."""

    def __init__(self, engine: AsyncEngine) -> None:
        self.engine = engine

    async def provision(self, script: str | None = None) -> ProvisionReport:
        """
        Run every statement of the script, each in its own transaction.

        Raises:
            SchemaError: for a failure outside the tolerated set whose
                target object is absent afterwards
        """
        script = script if script is not None else load_schema_script()
        statements = split_sql_statements(script)
        report = ProvisionReport(total=len(statements), version=script_version(script))

        logger.info(
            "Provisioning schema",
            extra={"source": "provisioner", "statements": report.total, "version": report.version},
        )

        for statement in statements:
            try:
                async with self.engine.begin() as conn:
                    await conn.exec_driver_sql(statement)
                report.executed += 1
            except SQLAlchemyError as e:
                message = _error_message(e)
                if is_expected_error(message):
                    report.skipped += 1
                    logger.debug(
                        "Schema statement already applied",
                        extra={"statement": _summarize(statement), "error": message},
                    )
                    continue
                if await self._target_exists(statement):
                    report.recovered.append(_summarize(statement))
                    logger.warning(
                        "Schema statement failed but its target exists",
                        extra={"statement": _summarize(statement), "error": message},
                    )
                    continue
                logger.error(
                    "Schema provisioning failed",
                    extra={"statement": _summarize(statement), "error": message},
                )
                raise SchemaError(
                    f"Schema statement failed: {message}",
                    details={"statement": _summarize(statement), "error": message},
                ) from e

        if report.version is not None:
            await self._record_version(report.version)

        logger.info(
            "Schema provisioned",
            extra={
                "source": "provisioner",
                "executed": report.executed,
                "skipped": report.skipped,
                "recovered": len(report.recovered),
            },
        )
        return report

    async def _target_exists(self, statement: str) -> bool:
        async with self.engine.connect() as conn:
            match = _CREATE_TARGET.match(statement)
            if match:
                kind = match.group(1).lower()
                return await _object_exists(conn, kind, match.group(2))
            match = _ADD_COLUMN_TARGET.match(statement)
            if match:
                return await _column_exists(conn, match.group(1), match.group(2))
        return False

    async def _record_version(self, version: int) -> None:
        # informational only; provisioning never branches on it
        async with self.engine.begin() as conn:
            current = (await conn.exec_driver_sql("PRAGMA user_version")).scalar() or 0
            if version > current:
                await conn.exec_driver_sql(f"PRAGMA user_version = {int(version)}")

    async def user_version(self) -> int:
        async with self.engine.connect() as conn:
            return (await conn.exec_driver_sql("PRAGMA user_version")).scalar() or 0


async def _object_exists(conn: AsyncConnection, kind: str, name: str) -> bool:
    result = await conn.exec_driver_sql(
        "SELECT 1 FROM sqlite_master WHERE type = ? AND name = ?",
        (kind, name),
    )
    return result.first() is not None


async def _column_exists(conn: AsyncConnection, table: str, column: str) -> bool:
    result = await conn.exec_driver_sql(f'PRAGMA table_info("{table}")')
    return any(row[1] == column for row in result.fetchall())


async def schema_snapshot(engine: AsyncEngine) -> list[tuple[str, str, str | None]]:
    """Sorted ``(type, name, sql)`` rows describing the whole schema."""
    async with engine.connect() as conn:
        result = await conn.exec_driver_sql(
            "SELECT type, name, sql FROM sqlite_master "
            "WHERE name NOT LIKE 'sqlite_%' ORDER BY type, name"
        )
        return [tuple(row) for row in result.fetchall()]
