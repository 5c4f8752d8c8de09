"""
Search Commands.

Commands for querying and rebuilding the full-text index.
"""

from typing import Optional

import typer
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from notestore.cli.client import database_from, run_with_store, unwrap
from notestore.domain.hierarchy import ItemType
from notestore.store import NoteStore

app = typer.Typer(help="Full-text search commands")
console = Console()


@app.command()
def query(
    ctx: typer.Context,
    text: str = typer.Argument(..., help="Words to search for; the last one matches as a prefix"),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Maximum number of results"),
    types: Optional[list[ItemType]] = typer.Option(None, "--type", "-t", help="Restrict to item type"),
) -> None:
    """
    Search titles and note text.

    Examples:
        notestore search query "quarterly plan"
        notestore search query meet --type note -n 5
    """

    async def work(store: NoteStore):
        return await store.search_items(text, types=types or None, limit=limit)

    results = unwrap(run_with_store(database_from(ctx), work))
    if not results:
        console.print("[dim]No matches[/dim]")
        return

    table = Table(title=f"Results for {text!r}", show_header=True)
    table.add_column("Type", style="cyan")
    table.add_column("Title", style="bold")
    table.add_column("Snippet")
    table.add_column("Id", style="dim")
    for result in results:
        snippet = result.snippet.replace("<mark>", "[reverse]").replace("</mark>", "[/reverse]")
        table.add_row(result.item.type.value, result.item.title, snippet, result.item.id)
    console.print(table)


@app.command()
def rebuild(
    ctx: typer.Context,
    batch_size: Optional[int] = typer.Option(None, "--batch-size", "-b", help="Rows per committed batch"),
) -> None:
    """
    Rebuild the search index from item rows.

    The existing index keeps serving queries until the new one is swapped in.

    Examples:
        notestore search rebuild
        notestore search rebuild --batch-size 200
    """
    with Progress(SpinnerColumn(), TextColumn("{task.description}"), console=console) as progress:
        task = progress.add_task("Indexing...", total=None)

        def report(staged: int) -> None:
            progress.update(task, description=f"Indexed {staged} items")

        async def work(store: NoteStore):
            return await store.rebuild_search_index(batch_size=batch_size, progress=report)

        total = unwrap(run_with_store(database_from(ctx), work))

    console.print(f"[green]Search index rebuilt: {total} items[/green]")
