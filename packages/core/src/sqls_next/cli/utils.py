"""Utility functions for the sqls-next CLI.

Shared helpers: console, logging, store/client construction and the
start-run-stop wrapper used by every command that needs the server.
"""

import asyncio
import logging
import sys
from collections.abc import Awaitable, Callable
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import TypeVar

from rich.console import Console

from sqls_next.client import SqlsClient
from sqls_next.config import Settings, get_settings
from sqls_next.connections import ConnectionConfigStore
from sqls_next.display import ResultView
from sqls_next.errors import SqlsError
from sqls_next.notifications import Notifier
from sqls_next.state import GlobalState

console = Console()

T = TypeVar("T")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _get_cli_version() -> str:
    """Get installed package version.

    Falls back to "unknown" when package metadata isn't available
    (e.g. running from a source checkout without installation).
    """
    try:
        return version("sqls-next")
    except PackageNotFoundError:
        return "unknown"


def configure_logging(settings: Settings, level: str | None = None) -> None:
    """Configure logging: stderr at the requested level, plus the trace file."""
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format=LOG_FORMAT,
        stream=sys.stderr,
    )
    if settings.log_file:
        log_path = Path(settings.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_path, encoding="utf-8")
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler.setLevel(logging.DEBUG)
        logging.getLogger("sqls_next").addHandler(handler)


def get_store(settings: Settings | None = None) -> ConnectionConfigStore:
    """Connection store over the persisted state file."""
    settings = settings or get_settings()
    return ConnectionConfigStore(GlobalState(settings.get_state_file()), prefix=settings.state_prefix)


def build_client(
    settings: Settings | None = None,
    store: ConnectionConfigStore | None = None,
    view: ResultView | None = None,
) -> SqlsClient:
    settings = settings or get_settings()
    return SqlsClient(
        store or get_store(settings),
        settings=settings,
        notifier=Notifier(console=Console(stderr=True)),
        result_view=view,
    )


async def _run_with_client(client: SqlsClient, action: Callable[[SqlsClient], Awaitable[T]]) -> T:
    try:
        await client.start()
        return await action(client)
    finally:
        await client.stop()
        client.dispose()


def run_with_server(
    action: Callable[[SqlsClient], Awaitable[T]],
    view: ResultView | None = None,
) -> T:
    """Start sqls, run ``action(client)``, always stop. Exits 1 on sqls errors."""
    client = build_client(view=view)
    try:
        return asyncio.run(_run_with_client(client, action))
    except SqlsError as e:
        console.print(str(e), style="red", markup=False, highlight=False)
        sys.exit(1)
