"""
Notestore CLI.

Command-line client for a notes database.
Built with Typer for type-safe commands and Rich for formatted output.

Usage:
    notestore --help                              # Show help

    # Database
    notestore db provision                        # Create or repair the schema
    notestore db schema                           # List schema objects
    notestore db info                             # Counts, size, schema version

    # Items
    notestore tree                                # Print the book/section/note tree
    notestore trash list                          # Show deleted items
    notestore trash empty --yes                   # Purge the trash

    # Search
    notestore search query "weekly review"        # Ranked matches with snippets
    notestore search rebuild                      # Rebuild the full-text index

    # Settings
    notestore settings list                       # Show all settings
    notestore settings export backup.json         # Versioned JSON export
    notestore settings import backup.json         # Validate, then apply

Options:
    --database PATH   Database file (default: config/settings/database.yaml)
    --verbose, -v     Enable verbose output
    --debug, -d       Enable debug mode (detailed logging)
    --help            Show help message
"""

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.tree import Tree as RichTree

from notestore.cli.client import database_from, run_with_store, unwrap
from notestore.cli.commands import db_app, search_app, settings_app, trash_app
from notestore.core.config import get_settings
from notestore.core.logging import setup_logging
from notestore.schemas.item import TreeEntry
from notestore.store import NoteStore

app = typer.Typer(
    name="notestore",
    help="Notestore CLI - Provisioning, search, settings and trash for a notes database.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()

# Register command groups
app.add_typer(db_app, name="db")
app.add_typer(search_app, name="search")
app.add_typer(settings_app, name="settings")
app.add_typer(trash_app, name="trash")

_ICONS = {"book": "📚", "section": "📂", "note": "📝"}


def _add_branch(branch: RichTree, entry: TreeEntry) -> None:
    label = entry.custom_icon or _ICONS.get(entry.type.value, "")
    node = branch.add(f"{label} {entry.title} [dim]{entry.sort_order}[/dim]")
    for child in entry.children:
        _add_branch(node, child)


@app.command()
def tree(ctx: typer.Context) -> None:
    """
    Print the live item tree in display order.

    Examples:
        notestore tree
    """

    async def work(store: NoteStore):
        return await store.get_tree()

    entries = unwrap(run_with_store(database_from(ctx), work))
    if not entries:
        console.print("[dim]No items[/dim]")
        return

    root = RichTree("[bold]Library[/bold]")
    for entry in entries:
        _add_branch(root, entry)
    console.print(root)


@app.callback()
def main(
    ctx: typer.Context,
    database: Optional[Path] = typer.Option(
        None,
        "--database",
        "-D",
        help="SQLite database file (overrides config and NOTESTORE_DATABASE_PATH)",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose output (INFO level logging)",
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        "-d",
        help="Enable debug mode (DEBUG level logging)",
    ),
) -> None:
    """
    Notestore CLI.

    Provisioning, search, settings and trash for a local notes database.
    """
    ctx.obj = {"database": str(database) if database is not None else None}

    # Configure logging based on flags
    if debug:
        setup_logging(level="DEBUG", format_type="console")
        console.print("[dim]Debug mode enabled[/dim]")
    elif verbose:
        setup_logging(level="INFO", format_type="console")
    else:
        setup_logging(level=get_settings().log_level or "WARNING", format_type="console")


if __name__ == "__main__":
    app()
