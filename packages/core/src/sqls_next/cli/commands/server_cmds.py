"""Commands that talk to the sqls server: databases, tables, tree, query, status."""

import sys
from pathlib import Path

import click
from rich.markup import escape
from rich.panel import Panel
from rich.tree import Tree
from sqls_next_models import Range

from sqls_next.binary import get_base_path, get_executable_name, resolve_server_executable
from sqls_next.cli.utils import console, get_store, run_with_server
from sqls_next.client import SqlsClient
from sqls_next.config import get_settings
from sqls_next.display import ResultView
from sqls_next.errors import ExecutableMissing
from sqls_next.export import export_to_csv
from sqls_next.notifications import Notifier
from sqls_next.tree import DatabaseTree, NodeType, TreeNode

NODE_STYLES = {
    NodeType.CONNECTION: "bold cyan",
    NodeType.DATABASE: "yellow",
    NodeType.TABLE: "white",
}


def _require_alias(alias: str | None) -> str:
    """Resolve ALIAS or the current connection, exiting when there is none."""
    store = get_store()
    if alias:
        if store.get(alias) is None:
            console.print(f"[red]Connection '{escape(alias)}' not found.[/red]")
            sys.exit(1)
        return alias
    current = store.get_current()
    if current is None:
        console.print("[red]No connections saved. Run 'sqls-next connection add'.[/red]")
        sys.exit(1)
    return current.alias


@click.command("databases")
@click.argument("alias", required=False)
def databases_cmd(alias: str | None):
    """List databases of ALIAS (default: the current connection)."""
    alias = _require_alias(alias)
    view = ResultView(console)

    async def action(client: SqlsClient) -> list[str]:
        return await client.get_databases(alias)

    view.display_databases(run_with_server(action), alias)


@click.command("tables")
@click.argument("alias", required=False)
@click.option("--database", "-d", default=None, help="Database to list tables from")
def tables_cmd(alias: str | None, database: str | None):
    """List tables of ALIAS (default: the current connection)."""
    alias = _require_alias(alias)
    view = ResultView(console)

    async def action(client: SqlsClient) -> list[str]:
        return await client.get_tables(alias, database)

    view.display_tables(run_with_server(action), database, alias)


async def _expand(tree: DatabaseTree, node: TreeNode, branch: Tree) -> None:
    for child in await tree.get_children(node):
        child_branch = branch.add(f"[{NODE_STYLES[child.node_type]}]{escape(child.key)}[/]")
        if child.expandable:
            await _expand(tree, child, child_branch)


@click.command("tree")
def tree_cmd():
    """Show every connection with its databases and tables."""
    store = get_store()

    async def action(client: SqlsClient) -> Tree:
        db_tree = DatabaseTree(store, client)
        root = Tree("[bold]Connections[/bold]")
        for node in await db_tree.get_children():
            marker = " [green]✓[/green]" if node.selected else ""
            branch = root.add(f"[{NODE_STYLES[node.node_type]}]{escape(node.key)}[/]{marker}")
            await _expand(db_tree, node, branch)
        return root

    if not store.list_all():
        console.print("[dim]No connections saved. Run 'sqls-next connection add'.[/dim]")
        return
    console.print(run_with_server(action))


def _query_range(text: str, line: int | None, start: int | None, end: int | None) -> Range:
    """Build a zero-based range from one-based CLI line numbers."""
    if line is not None:
        return Range.from_lines(line - 1)
    line_count = len(text.splitlines())
    first = (start or 1) - 1
    last = end if end is not None else line_count
    return Range.from_lines(first, 0, max(last, first), 0)


@click.command("query")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--line", "-l", type=click.IntRange(min=1), default=None,
              help="Run only the statement on this line")
@click.option("--start", type=click.IntRange(min=1), default=None, help="First line to run")
@click.option("--end", type=click.IntRange(min=1), default=None, help="Last line to run")
@click.option("--csv", "csv_path", type=click.Path(path_type=Path), default=None,
              help="Export the result to this CSV file (or directory)")
def query_cmd(file: Path, line: int | None, start: int | None, end: int | None,
              csv_path: Path | None):
    """Execute the SQL in FILE against the current connection.

    Examples:
        sqls-next query report.sql
        sqls-next query report.sql --line 12
        sqls-next query report.sql --start 3 --end 9 --csv out/
    """
    if line is not None and (start is not None or end is not None):
        raise click.UsageError("--line cannot be combined with --start/--end")

    file = file.resolve()
    query_range = _query_range(file.read_text(encoding="utf-8"), line, start, end)
    view = ResultView(console)

    async def action(client: SqlsClient):
        return await client.execute_query(file, query_range, cursor_only=line is not None)

    result = run_with_server(action, view=view)
    if csv_path is not None:
        export_to_csv(result, csv_path, notifier=Notifier(console=console))


@click.command("status")
def status_cmd():
    """Show configuration, saved connections and the sqls binary."""
    settings = get_settings()
    store = get_store(settings)
    current = store.get_current()

    try:
        executable = str(resolve_server_executable(settings.resources_dir))
        binary_line = f"[green]✓[/green] {escape(executable)}"
    except ExecutableMissing as e:
        binary_line = f"[red]✗[/red] {escape(str(e))}"

    lines = [
        f"State file:   {escape(str(settings.get_state_file()))}",
        f"Platform:     {get_base_path()} ({get_executable_name()})",
        f"Server:       {binary_line}",
        f"Connections:  {len(store.list_all())}",
        f"Current:      {escape(current.alias) if current else '[dim]none[/dim]'}",
        f"Max restarts: {settings.max_restarts}",
    ]
    console.print(Panel.fit("\n".join(lines), title="sqls-next status"))
