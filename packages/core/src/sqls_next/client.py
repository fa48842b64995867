"""Supervisor for the sqls language-server connection.

Owns exactly one server process at a time and gives the rest of the package
a single primitive, ``execute_command(name, args)``. Lifecycle:

    STOPPED --start()--> STARTING --handshake ok--> RUNNING
                                  --handshake fails--> STOPPED (StartFailed)
    RUNNING --closed, budget left--> STARTING (automatic restart)
    RUNNING --closed, budget spent--> STOPPED (MaxRestartsExceeded)
    RUNNING --transport errors > threshold--> STOPPED
    RUNNING --stop()--> STOPPED

Automatic restarts are bounded by ``max_restarts``; only a successful
``start()`` resets the count. ``restart()`` is operator-requested and does
not consult the budget.

Cross-connection listing (``get_databases``/``get_tables`` for an alias
other than the active one) switches the server's active connection, lists,
and switches back. Those steps are not atomic: a concurrent
``switch_connection`` can interleave and leave a different alias active.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from enum import Enum
from pathlib import Path
from typing import Any

from sqls_next_models import (
    DidChangeConfigurationParams,
    DidChangeConfigurationSettings,
    InitializeOptions,
    QueryResult,
    Range,
    SqlsDBConfig,
    SqlsSettings,
)

from sqls_next.binary import SERVER_ARGS, get_server_dir, resolve_server_executable
from sqls_next.config import Settings, get_settings
from sqls_next.connections import ConnectionConfigStore
from sqls_next.errors import ExecutableMissing, MaxRestartsExceeded, ServerNotRunning, StartFailed
from sqls_next.interceptor import MessageInterceptor, create_message_filter
from sqls_next.lsp.jsonrpc import ErrorAction
from sqls_next.lsp.process import LanguageServerProcess
from sqls_next.notifications import Notifier
from sqls_next.parser import parse_result_smart

logger = logging.getLogger(__name__)

EXECUTE_COMMAND = "workspace/executeCommand"
DID_CHANGE_CONFIGURATION = "workspace/didChangeConfiguration"

# Output mode flag that makes sqls answer executeQuery with JSON
SHOW_JSON = "-show-json"


class ConnectionState(str, Enum):
    """Supervisor connection state."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"


ProcessFactory = Callable[..., Any]


def _preview(result: Any, limit: int) -> str:
    if isinstance(result, str):
        text = result
    else:
        try:
            text = json.dumps(result, default=str)
        except (TypeError, ValueError):
            text = repr(result)
    if len(text) > limit:
        return text[:limit] + "..."
    return text


def _split_names(result: Any, scope: str | None = None) -> list[str]:
    """Newline-delimited reply -> trimmed, non-empty names."""
    if not isinstance(result, str):
        return []

    prefix = f"{scope}." if scope else None
    names = []
    for line in result.split("\n"):
        if prefix and line.startswith(prefix):
            line = line[len(prefix) :]
        name = line.strip()
        if name:
            names.append(name)
    return names


def _to_file_uri(file: str | Path) -> str:
    text = str(file)
    if "://" in text:
        return text
    return Path(text).resolve().as_uri()


class SqlsClient:
    """Starts, monitors, restarts and talks to the sqls server."""

    def __init__(
        self,
        store: ConnectionConfigStore,
        settings: Settings | None = None,
        notifier: Notifier | None = None,
        result_view: Any = None,
        process_factory: ProcessFactory | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._store = store
        self._notifier = notifier or Notifier()
        self._result_view = result_view
        self._process_factory = process_factory or self._create_process

        self._process: Any = None
        self._state = ConnectionState.STOPPED
        self._restart_count = 0
        self._max_restarts = self._settings.max_restarts
        self._lock = asyncio.Lock()
        self._restart_task: asyncio.Task | None = None

        self._message_interceptor = MessageInterceptor(
            self._notifier,
            filter=create_message_filter(self._settings.suppressed_messages),
            log_messages=True,
        )
        self._message_interceptor.activate()

    # =========================================================================
    # State
    # =========================================================================

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state == ConnectionState.RUNNING

    @property
    def restart_count(self) -> int:
        return self._restart_count

    @property
    def max_restarts(self) -> int:
        return self._max_restarts

    @property
    def notifier(self) -> Notifier:
        return self._notifier

    @property
    def message_interceptor(self) -> MessageInterceptor:
        return self._message_interceptor

    # =========================================================================
    # Process lifecycle
    # =========================================================================

    def _default_initialize_options(self) -> InitializeOptions:
        current = self._store.get_current()
        return InitializeOptions(
            connection_config=SqlsDBConfig.from_config(current) if current else None
        )

    def _create_process(
        self,
        initialization_options: dict[str, Any],
        on_close: Callable[[], None],
        on_error: Callable[[Exception, int], ErrorAction],
        notifier: Any,
    ) -> LanguageServerProcess:
        resources_dir = Path(self._settings.resources_dir)
        executable = resolve_server_executable(resources_dir)
        return LanguageServerProcess(
            executable,
            args=SERVER_ARGS,
            cwd=get_server_dir(resources_dir),
            initialization_options=initialization_options,
            on_close=on_close,
            on_error=on_error,
            notifier=notifier,
        )

    async def start(self, initialize_options: InitializeOptions | None = None) -> None:
        """Start the server. No-op while already starting or running."""
        async with self._lock:
            if self._state != ConnectionState.STOPPED:
                logger.info("Server is already started")
                return
            await self._start_locked(initialize_options)

    async def _start_locked(self, initialize_options: InitializeOptions | None) -> None:
        self._state = ConnectionState.STARTING
        try:
            if self._process is None:
                options = initialize_options or self._default_initialize_options()
                self._process = self._process_factory(
                    options.to_wire(),
                    self._handle_closed,
                    self._handle_error,
                    self._notifier,
                )
            logger.info("Starting sqls language server...")
            await self._process.start()
        except ExecutableMissing as e:
            self._state = ConnectionState.STOPPED
            self._process = None
            logger.error("%s", e)
            self._notifier.show_error_message(
                f"{e}. Please ensure the sqls binary is installed."
            )
            raise
        except Exception as e:
            self._state = ConnectionState.STOPPED
            logger.exception("Failed to start sqls language server")
            self._notifier.show_error_message(f"Failed to start language server: {e}")
            raise StartFailed(str(e)) from e

        self._state = ConnectionState.RUNNING
        self._restart_count = 0
        logger.info("sqls language server started successfully")

        try:
            await self._try_connect_database()
        except Exception as e:
            logger.exception("Failed to push configuration to sqls")
            await self._release_process()
            raise StartFailed(f"Failed to configure language server: {e}") from e

    async def stop(self) -> None:
        """Stop the server. Resources are released even if shutdown fails."""
        async with self._lock:
            self._cancel_restart_task()
            if self._process is None:
                logger.info("Server is not started")
                return
            try:
                await self._process.stop()
                logger.info("Server stopped successfully")
            finally:
                self._state = ConnectionState.STOPPED
                self._process = None

    async def restart(self, initialize_options: InitializeOptions | None = None) -> None:
        """Operator-requested restart; ignores the automatic restart budget."""
        async with self._lock:
            self._cancel_restart_task()
            if self._process is None:
                logger.info("Server is not initialized")
                await self._start_locked(initialize_options)
                return

            try:
                self._state = ConnectionState.STARTING
                await self._process.restart()
                self._state = ConnectionState.RUNNING
                await self._try_connect_database()
            except Exception as e:
                self._state = ConnectionState.STOPPED
                logger.exception("Server restart failed")
                self._notifier.show_error_message(f"Failed to restart language server: {e}")
                raise

            logger.info("sqls language server restarted")

    async def _release_process(self) -> None:
        process = self._process
        self._state = ConnectionState.STOPPED
        self._process = None
        if process is not None:
            await process.stop()

    def _cancel_restart_task(self) -> None:
        task = self._restart_task
        self._restart_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def _handle_closed(self) -> None:
        """The server went away without being asked to."""
        logger.info("Language server connection closed")
        self._state = ConnectionState.STOPPED

        if self._restart_count >= self._max_restarts:
            error = MaxRestartsExceeded(self._max_restarts)
            logger.error(
                "Maximum restart attempts (%d) reached. Server will not restart.",
                self._max_restarts,
            )
            self._notifier.show_error_message(str(error))
            return

        self._restart_count += 1
        logger.info(
            "Restarting language server (attempt %d/%d)...",
            self._restart_count,
            self._max_restarts,
        )
        self._state = ConnectionState.STARTING
        self._restart_task = asyncio.create_task(self._auto_restart())

    async def _auto_restart(self) -> None:
        async with self._lock:
            if self._state != ConnectionState.STARTING or self._process is None:
                return
            try:
                await self._process.start()
            except Exception as e:
                self._state = ConnectionState.STOPPED
                logger.exception("Automatic restart failed")
                self._notifier.show_error_message(f"Failed to restart language server: {e}")
                return

            self._state = ConnectionState.RUNNING
            try:
                await self._try_connect_database()
            except Exception:
                logger.exception("Failed to push configuration after restart")

    def _handle_error(self, error: Exception, count: int) -> ErrorAction:
        logger.error("Language server error: %s (count: %d)", error, count)
        if count <= self._settings.transport_error_threshold:
            return ErrorAction.CONTINUE

        self._state = ConnectionState.STOPPED
        self._notifier.show_error_message(f"Language server connection error: {error}")
        return ErrorAction.SHUTDOWN

    async def _try_connect_database(self) -> None:
        await self.did_change_configuration(True)

    # =========================================================================
    # Commands
    # =========================================================================

    async def execute_command(self, command: str, args: list[Any] | None = None) -> Any:
        """Run a named sqls command and return its raw result.

        Raises:
            ServerNotRunning: if the supervisor is not running.
        """
        if self._process is None or self._state != ConnectionState.RUNNING:
            logger.error("Language server is not started")
            raise ServerNotRunning()

        logger.info("Executing server command: %s", command)
        if args:
            logger.info("Arguments: %s", json.dumps(args, default=str))

        try:
            result = await self._process.send_request(
                EXECUTE_COMMAND, {"command": command, "arguments": args or []}
            )
        except Exception as e:
            logger.exception("Error executing command %s", command)
            self._notifier.show_error_message(f"Failed to execute server command {command}: {e}")
            raise

        logger.info("Command executed successfully: %s", command)
        logger.info("Result: %s", _preview(result, self._settings.result_preview_chars))
        return result

    async def did_change_configuration(self, switch_connection: bool = False) -> None:
        """Push every stored connection to sqls.

        With ``switch_connection``, also switch to the default alias when one
        is set and still exists.
        """
        if self._process is None or self._state != ConnectionState.RUNNING:
            logger.error("Server is not started")
            return

        entries = self._store.list_all()
        params = DidChangeConfigurationParams(
            settings=DidChangeConfigurationSettings(
                sqls=SqlsSettings(
                    lowercase_keywords=self._settings.lowercase_keywords,
                    connections=[SqlsDBConfig.from_config(entry.config) for entry in entries],
                )
            )
        )
        await self._process.send_notification(DID_CHANGE_CONFIGURATION, params.to_wire())

        selected = next((entry.config.alias for entry in entries if entry.selected), None)
        if switch_connection and selected:
            await self.switch_connection(selected)

    async def switch_connection(self, alias: str) -> None:
        await self.execute_command("switchConnections", [alias])

    async def switch_database(self, database: str) -> None:
        await self.execute_command("switchDatabase", [database])

    async def get_current_databases(self) -> list[str]:
        """Databases of the active connection."""
        result = await self.execute_command("showDatabases")
        return _split_names(result)

    async def get_current_tables(self, scope: str | None = None) -> list[str]:
        """Tables of the active connection, optionally within one database."""
        result = await self.execute_command("showTables", [scope] if scope else None)
        return _split_names(result, scope)

    async def get_databases(self, alias: str) -> list[str]:
        """Databases of ``alias``; the active connection is restored afterwards."""
        try:
            await self.switch_connection(alias)
            return await self.get_current_databases()
        finally:
            await self._restore_connection(alias)

    async def get_tables(self, alias: str, database: str | None = None) -> list[str]:
        """Tables of ``alias`` (within ``database`` when given).

        The active connection is restored afterwards.
        """
        try:
            await self.switch_connection(alias)
            if database:
                await self.switch_database(database)
            return await self.get_current_tables(database)
        finally:
            await self._restore_connection(alias)

    async def _restore_connection(self, switched_to: str) -> None:
        current = self._store.get_current()
        if current is not None and current.alias != switched_to:
            await self.switch_connection(current.alias)

    async def execute_query(
        self,
        file: str | Path,
        query_range: Range,
        cursor_only: bool = False,
    ) -> QueryResult:
        """Execute the statement(s) of ``file`` within ``query_range``.

        With ``cursor_only`` sqls runs the single statement under the cursor.
        """
        if self._result_view is not None:
            self._result_view.display_loading()

        try:
            result = await self.execute_command(
                "executeQuery",
                [_to_file_uri(file), SHOW_JSON, query_range.model_dump(), cursor_only],
            )
        except Exception as e:
            if self._result_view is not None:
                self._result_view.display_error(str(e))
            raise

        parsed = parse_result_smart(result)
        if self._result_view is not None:
            self._result_view.display_results(parsed)
        return parsed

    def dispose(self) -> None:
        """Release the interceptor. Call ``stop()`` first to end the process."""
        self._cancel_restart_task()
        self._message_interceptor.deactivate()
