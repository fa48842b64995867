"""Click command group for sqls-next.

Commands stay thin; they delegate to the client, store and views.
"""

import click

from sqls_next.cli.commands.connection_cmds import connection_group
from sqls_next.cli.commands.server_cmds import (
    databases_cmd,
    query_cmd,
    status_cmd,
    tables_cmd,
    tree_cmd,
)
from sqls_next.cli.utils import _get_cli_version, configure_logging
from sqls_next.config import get_settings


@click.group()
@click.version_option(version=_get_cli_version())
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Log level for stderr (default: SQLS_NEXT_LOG_LEVEL or WARNING)",
)
@click.option("--verbose", "-v", is_flag=True, help="Shortcut for --log-level DEBUG")
def main(log_level: str | None, verbose: bool):
    """sqls-next - SQL workbench on top of the sqls language server."""
    configure_logging(get_settings(), "DEBUG" if verbose else log_level)


main.add_command(connection_group)
main.add_command(databases_cmd)
main.add_command(tables_cmd)
main.add_command(tree_cmd)
main.add_command(query_cmd)
main.add_command(status_cmd)


if __name__ == "__main__":
    main()
