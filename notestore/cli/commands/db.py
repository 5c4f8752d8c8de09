"""
Database Commands.

Commands for provisioning and inspecting the SQLite file.
"""

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from notestore.cli.client import database_from, run_with_store, unwrap
from notestore.migrations.provisioner import SchemaProvisioner, schema_snapshot
from notestore.store import NoteStore

app = typer.Typer(help="Database provisioning commands")
console = Console()


@app.command()
def provision(ctx: typer.Context) -> None:
    """
    Create or repair the schema. Safe to run any number of times.

    Examples:
        notestore db provision
        notestore --database /tmp/notes.db db provision
    """

    async def work(store: NoteStore):
        return await SchemaProvisioner(store.engine).provision()

    report = run_with_store(database_from(ctx), work)

    table = Table(title="Schema Provisioning", show_header=True)
    table.add_column("Statements", justify="right")
    table.add_column("Executed", justify="right")
    table.add_column("Skipped", justify="right")
    table.add_column("Recovered", justify="right")
    table.add_column("Version", justify="right")
    table.add_row(
        str(report.total),
        str(report.executed),
        str(report.skipped),
        str(len(report.recovered)),
        str(report.version or "-"),
    )
    console.print(table)
    console.print("[green]Schema is up to date[/green]")


@app.command()
def schema(
    ctx: typer.Context,
    show_sql: bool = typer.Option(False, "--sql", help="Print each object's SQL"),
) -> None:
    """
    List tables, indexes, triggers and views.

    Examples:
        notestore db schema
        notestore db schema --sql
    """

    async def work(store: NoteStore):
        return await schema_snapshot(store.engine)

    rows = run_with_store(database_from(ctx), work)

    if show_sql:
        for kind, name, sql in rows:
            console.print(f"[cyan]-- {kind} {name}[/cyan]")
            console.print(sql or "[dim](implicit)[/dim]")
            console.print()
        return

    table = Table(title="Schema Objects", show_header=True)
    table.add_column("Type", style="cyan")
    table.add_column("Name")
    for kind, name, _ in rows:
        table.add_row(kind, name)
    console.print(table)


@app.command()
def info(ctx: typer.Context) -> None:
    """
    Show item counts, database size and schema version.

    Examples:
        notestore db info
    """

    async def work(store: NoteStore):
        return await store.get_storage_info()

    storage = unwrap(run_with_store(database_from(ctx), work))

    size = storage.database_size_bytes
    console.print(Panel(
        f"[bold]{storage.database_path}[/bold]\n"
        f"Size: {f'{size:,} bytes' if size is not None else 'in memory'}\n"
        f"Schema version: {storage.schema_version}\n\n"
        f"Books: {storage.books}\n"
        f"Sections: {storage.sections}\n"
        f"Notes: {storage.notes}\n"
        f"In trash: {storage.deleted}\n"
        f"Settings: {storage.settings}",
        title="Storage Info",
    ))
