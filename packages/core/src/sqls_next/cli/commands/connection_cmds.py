"""Connection config commands: add, update, remove, use, list, clear."""

import sys

import click
from pydantic import ValidationError
from rich.prompt import Confirm, Prompt
from rich.table import Table
from sqls_next_models import ConnectionConfig, DatabaseDriver, parse_driver

from sqls_next.cli.utils import console, get_store

DRIVER_CHOICES = [driver.value for driver in DatabaseDriver]


@click.group("connection")
def connection_group():
    """Manage saved database connections."""
    pass


@connection_group.command("add")
@click.option("--alias", "-a", default=None, help="Connection alias")
@click.option(
    "--driver",
    "-d",
    type=click.Choice(DRIVER_CHOICES + ["sqlite", "postgres"], case_sensitive=False),
    default=None,
    help="Database driver",
)
@click.option("--dsn", default=None, help="Data source name (connection string)")
@click.option("--default", "make_default", is_flag=True, help="Make it the default connection")
def add_cmd(alias: str | None, driver: str | None, dsn: str | None, make_default: bool):
    """Add (or overwrite) a connection.

    Missing values are prompted for.

    Examples:
        sqls-next connection add -a local -d sqlite3 --dsn ./app.db
        sqls-next connection add            # interactive
    """
    if driver is None:
        console.print("\n[bold]Database Driver[/bold]")
        for item in DatabaseDriver:
            console.print(f"  [cyan]{item.value}[/cyan]  {item.description}")
        driver = Prompt.ask("Driver", choices=DRIVER_CHOICES, default=DatabaseDriver.MYSQL.value)

    if not alias:
        alias = Prompt.ask("Alias")
    if not alias:
        console.print("[red]Alias is required.[/red]")
        sys.exit(1)

    if not dsn:
        console.print(f"[dim]e.g. {parse_driver(driver).example}[/dim]")
        dsn = Prompt.ask("Data source name")
    if not dsn:
        console.print("[red]Data source name is required.[/red]")
        sys.exit(1)

    try:
        config = ConnectionConfig(alias=alias, driver=driver, data_source_name=dsn)
    except ValidationError as e:
        console.print(f"[red]Invalid connection: {e.errors()[0]['msg']}[/red]")
        sys.exit(1)

    store = get_store()
    store.upsert(config)
    if make_default:
        store.set_default(config.alias)
    console.print(f"[green]✓ Saved connection '{config.alias}'[/green]")


@connection_group.command("update")
@click.argument("alias")
@click.option("--dsn", default=None, help="New data source name")
def update_cmd(alias: str, dsn: str | None):
    """Change the data source name of ALIAS."""
    store = get_store()
    current = store.get(alias)
    if current is None:
        console.print(f"[red]Connection '{alias}' not found.[/red]")
        sys.exit(1)

    if not dsn:
        dsn = Prompt.ask("New data source name", default=current.data_source_name)
    if not dsn:
        return

    store.upsert(current.model_copy(update={"data_source_name": dsn}))
    console.print(f"[green]✓ Updated connection '{alias}'[/green]")


@connection_group.command("remove")
@click.argument("alias")
def remove_cmd(alias: str):
    """Remove the connection ALIAS."""
    store = get_store()
    if store.get(alias) is None:
        console.print(f"[red]Connection '{alias}' not found.[/red]")
        sys.exit(1)
    store.remove(alias)
    console.print(f"[green]✓ Removed connection '{alias}'[/green]")


@connection_group.command("use")
@click.argument("alias")
def use_cmd(alias: str):
    """Make ALIAS the default connection."""
    store = get_store()
    if store.get(alias) is None:
        console.print(f"[red]Connection '{alias}' not found.[/red]")
        sys.exit(1)
    store.set_default(alias)
    console.print(f"[green]✓ Default connection is now '{alias}'[/green]")


@connection_group.command("list")
def list_cmd():
    """List saved connections."""
    entries = get_store().list_all()
    if not entries:
        console.print("[dim]No connections saved. Run 'sqls-next connection add'.[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("", width=1)
    table.add_column("Alias")
    table.add_column("Driver")
    table.add_column("Data source")
    for entry in entries:
        table.add_row(
            "[green]✓[/green]" if entry.selected else "",
            entry.config.alias,
            entry.config.driver.value,
            entry.config.data_source_name,
        )
    console.print(table)


@connection_group.command("clear")
@click.option("--yes", "-y", is_flag=True, help="Don't ask for confirmation")
def clear_cmd(yes: bool):
    """Remove every saved connection."""
    if not yes and not Confirm.ask("Remove all saved connections?", default=False):
        return
    get_store().clear_all()
    console.print("[green]✓ All connections removed[/green]")
