"""
Trash Commands.

Commands for listing and emptying soft-deleted items.
"""

import typer
from rich.console import Console
from rich.table import Table

from notestore.cli.client import database_from, run_with_store, unwrap
from notestore.store import NoteStore

app = typer.Typer(help="Trash commands")
console = Console()


@app.command("list")
def list_trash(ctx: typer.Context) -> None:
    """
    Show deleted items, most recent first.

    Examples:
        notestore trash list
    """

    async def work(store: NoteStore):
        return await store.get_trash()

    items = unwrap(run_with_store(database_from(ctx), work))
    if not items:
        console.print("[dim]Trash is empty[/dim]")
        return

    table = Table(title="Trash", show_header=True)
    table.add_column("Type", style="cyan")
    table.add_column("Title", style="bold")
    table.add_column("Deleted at")
    table.add_column("Id", style="dim")
    for item in items:
        table.add_row(item.type.value, item.title, item.deleted_at.isoformat(timespec="seconds"), item.id)
    console.print(table)


@app.command()
def empty(
    ctx: typer.Context,
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """
    Permanently remove everything in the trash.

    Examples:
        notestore trash empty
        notestore trash empty --yes
    """
    if not yes and not typer.confirm("Permanently delete all items in the trash?"):
        console.print("[yellow]Cancelled[/yellow]")
        raise typer.Exit(0)

    async def work(store: NoteStore):
        return await store.empty_trash()

    removed = unwrap(run_with_store(database_from(ctx), work))
    console.print(f"[green]Removed {removed} items[/green]")
