"""
Settings Commands.

Commands for reading, writing, exporting and importing settings.
"""

import json
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from notestore.cli.client import database_from, run_with_store, unwrap
from notestore.store import NoteStore

app = typer.Typer(help="Settings commands")
console = Console()


def _parse_value(raw: str):
    """JSON when it parses, otherwise the plain string."""
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


@app.command("list")
def list_settings(ctx: typer.Context) -> None:
    """
    Show every stored setting.

    Examples:
        notestore settings list
    """

    async def work(store: NoteStore):
        return await store.settings.get_all()

    values = unwrap(run_with_store(database_from(ctx), work))
    if not values:
        console.print("[dim]No settings stored[/dim]")
        return

    table = Table(title="Settings", show_header=True)
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    for key in sorted(values):
        table.add_row(key, json.dumps(values[key], ensure_ascii=False))
    console.print(table)


@app.command()
def get(ctx: typer.Context, key: str = typer.Argument(..., help="Setting key")) -> None:
    """
    Print one setting as JSON.

    Examples:
        notestore settings get theme
    """

    async def work(store: NoteStore):
        return await store.settings.get(key)

    value = unwrap(run_with_store(database_from(ctx), work))
    typer.echo(json.dumps(value, ensure_ascii=False, indent=2))


@app.command("set")
def set_setting(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Setting key"),
    value: str = typer.Argument(..., help="JSON value; anything else is stored as a string"),
) -> None:
    """
    Store one setting.

    Examples:
        notestore settings set theme dark
        notestore settings set editor.font_size 14
    """

    async def work(store: NoteStore):
        return await store.settings.set(key, _parse_value(value))

    unwrap(run_with_store(database_from(ctx), work))
    console.print(f"[green]Saved {key}[/green]")


@app.command("export")
def export_settings(
    ctx: typer.Context,
    path: Optional[Path] = typer.Argument(None, help="Output file; prints to stdout when omitted"),
) -> None:
    """
    Export settings as a versioned JSON document.

    Examples:
        notestore settings export
        notestore settings export backup.json
    """

    async def work(store: NoteStore):
        return await store.settings.export_settings(path)

    envelope = unwrap(run_with_store(database_from(ctx), work))
    if path is None:
        typer.echo(envelope.to_json())
    else:
        console.print(f"[green]Exported {len(envelope.settings)} settings to {path}[/green]")


@app.command("import")
def import_settings(
    ctx: typer.Context,
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Export file to apply"),
) -> None:
    """
    Apply an exported settings file. Nothing is written if the file is invalid.

    Examples:
        notestore settings import backup.json
    """

    async def work(store: NoteStore):
        return await store.settings.import_settings(path)

    count = unwrap(run_with_store(database_from(ctx), work))
    console.print(f"[green]Imported {count} settings[/green]")
