"""
Store access for CLI commands.

Opens a NoteStore for the database chosen with ``--database`` (or the
configured default), runs one coroutine against it and turns store errors
into a red message and exit code 1.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import typer
from rich.console import Console

from notestore.core.exceptions import StoreError
from notestore.core.logging import get_logger, log_with_source
from notestore.schemas.base import StoreResult
from notestore.store import NoteStore

logger = get_logger(__name__)
console = Console()

T = TypeVar("T")


def database_from(ctx: typer.Context) -> str | None:
    """Database path given to the root ``--database`` option, if any."""
    return (ctx.obj or {}).get("database")


def unwrap(result: StoreResult) -> Any:
    """Return the result data, or print the error and exit."""
    if result.success:
        return result.data
    error = result.error
    console.print(f"[red]Error ({error.code}): {error.message}[/red]")
    if error.details:
        console.print(f"[dim]{error.details}[/dim]")
    raise typer.Exit(1)


async def _with_store(database: str | None, work: Callable[[NoteStore], Awaitable[T]]) -> T:
    store = await NoteStore.open(database)
    try:
        return await work(store)
    finally:
        await store.close()


def run_with_store(database: str | None, work: Callable[[NoteStore], Awaitable[T]]) -> T:
    """
    Run ``work`` against an open store.

    Raises:
        typer.Exit: With code 1 when the store cannot be opened or raises
    """
    try:
        return asyncio.run(_with_store(database, work))
    except StoreError as e:
        log_with_source(logger, "cli", "error", "Command failed", code=e.code, error=e.message)
        console.print(f"[red]Error ({e.code}): {e.message}[/red]")
        raise typer.Exit(1) from e
