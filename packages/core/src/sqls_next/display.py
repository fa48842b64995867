"""Console results view for query results, database and table lists."""

from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.table import Table
from sqls_next_models import QueryResult

NULL_MARKUP = "[dim]NULL[/dim]"


def _cell(value: Any) -> str:
    if value is None:
        return NULL_MARKUP
    return escape(str(value))


class ResultView:
    """Renders results to a rich console and keeps the last result for export."""

    def __init__(self, console: Console | None = None):
        self.console = console or Console()
        self._current: QueryResult | None = None

    @property
    def current(self) -> QueryResult | None:
        """The last displayed query result."""
        return self._current

    @property
    def has_query_data(self) -> bool:
        return self._current is not None and self._current.has_data

    def display_loading(self, message: str = "Executing query...") -> None:
        self.console.print(f"[dim]{message}[/dim]")

    def display_results(self, result: QueryResult) -> None:
        self._current = result

        table = Table(show_header=True, header_style="bold")
        for column in result.columns:
            table.add_column(column.name)
        for row in result.rows:
            table.add_row(*(_cell(row.get(name)) for name in result.column_names))

        self.console.print(table)

        summary = []
        if result.rows_affected is not None:
            summary.append(f"{result.rows_affected} rows")
        if result.execution_time is not None:
            summary.append(f"{result.execution_time:.0f} ms")
        if summary:
            self.console.print(f"[dim]{', '.join(summary)}[/dim]")

    def display_error(self, error: str) -> None:
        self._current = None
        self.console.print(f"[red]Error:[/red] {_cell(error)}")

    def display_databases(self, databases: list[str], connection_alias: str | None = None) -> None:
        title = f"Databases ({connection_alias})" if connection_alias else "Databases"
        self._print_list(title, databases)

    def display_tables(
        self,
        tables: list[str],
        database: str | None = None,
        connection_alias: str | None = None,
    ) -> None:
        scope = "/".join(part for part in (connection_alias, database) if part)
        title = f"Tables ({scope})" if scope else "Tables"
        self._print_list(title, tables)

    def _print_list(self, title: str, names: list[str]) -> None:
        table = Table(title=title, show_header=False)
        table.add_column("name")
        for name in names:
            table.add_row(_cell(name))
        self.console.print(table)
        if not names:
            self.console.print("[dim]No entries.[/dim]")
