"""The sqls child process and its language-server handshake."""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable
from contextlib import suppress
from pathlib import Path
from typing import Any

from sqls_next.errors import ConnectionClosed, RemoteError
from sqls_next.lsp.jsonrpc import METHOD_NOT_FOUND, ErrorAction, ErrorHandler, JsonRpcConnection
from sqls_next.notifications import MessageType

logger = logging.getLogger(__name__)

# Grace periods for process teardown
SHUTDOWN_TIMEOUT = 2.0
TERMINATE_TIMEOUT = 5.0

CLIENT_INFO = {"name": "sqls-next"}

CLIENT_CAPABILITIES = {
    "workspace": {
        "configuration": True,
        "didChangeConfiguration": {"dynamicRegistration": False},
        "executeCommand": {"dynamicRegistration": False},
    },
    "window": {"showMessage": {}},
}

# window/showMessage and window/logMessage ``type`` values
_LSP_MESSAGE_TYPES = {
    1: MessageType.ERROR,
    2: MessageType.WARNING,
    3: MessageType.INFO,
}

_LOG_LEVELS = {
    1: logging.ERROR,
    2: logging.WARNING,
    3: logging.INFO,
    4: logging.DEBUG,
}


class LanguageServerProcess:
    """Spawns sqls, performs ``initialize``/``initialized`` and owns the pipes.

    ``on_close`` fires only when an initialized server goes away on its own;
    ``stop()`` and shutdowns requested by ``on_error`` never trigger it.
    """

    def __init__(
        self,
        executable: Path,
        args: list[str] | None = None,
        cwd: Path | None = None,
        initialization_options: dict[str, Any] | None = None,
        on_close: Callable[[], None] | None = None,
        on_error: ErrorHandler | None = None,
        notifier: Any = None,
        env: dict[str, str] | None = None,
    ):
        self._executable = Path(executable)
        self._args = list(args or [])
        self._cwd = Path(cwd) if cwd else self._executable.parent
        self._initialization_options = initialization_options
        self._on_close = on_close
        self._on_error = on_error
        self._notifier = notifier
        self._env = env

        self._proc: asyncio.subprocess.Process | None = None
        self._connection: JsonRpcConnection | None = None
        self._stderr_task: asyncio.Task | None = None
        self._shutdown_task: asyncio.Task | None = None
        self._ready = False
        self._stopping = False
        self.server_capabilities: dict[str, Any] = {}

    @property
    def is_running(self) -> bool:
        return self._ready and self._proc is not None and self._proc.returncode is None

    @property
    def pid(self) -> int | None:
        return self._proc.pid if self._proc else None

    async def start(self) -> None:
        """Spawn the server and complete the handshake."""
        if self.is_running:
            return

        logger.info("Spawning %s %s (cwd: %s)", self._executable, " ".join(self._args), self._cwd)
        self._proc = await asyncio.create_subprocess_exec(
            str(self._executable),
            *self._args,
            cwd=str(self._cwd),
            env={**os.environ, **(self._env or {})},
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        self._connection = JsonRpcConnection(
            self._proc.stdout,
            self._proc.stdin,
            on_close=self._handle_close,
            on_error=self._handle_error,
            request_handler=self._handle_server_request,
            notification_handler=self._handle_notification,
        )
        self._connection.start()
        self._stderr_task = asyncio.create_task(self._drain_stderr(self._proc.stderr))

        try:
            result = await self._connection.send_request(
                "initialize",
                {
                    "processId": os.getpid(),
                    "clientInfo": CLIENT_INFO,
                    "rootUri": None,
                    "capabilities": CLIENT_CAPABILITIES,
                    "initializationOptions": self._initialization_options,
                },
            )
            self.server_capabilities = (result or {}).get("capabilities", {})
            await self._connection.send_notification("initialized", {})
        except BaseException:
            await self._teardown()
            raise

        self._ready = True
        logger.info("sqls initialized (pid %s)", self._proc.pid)

    async def stop(self) -> None:
        """Ask the server to shut down, then release the process regardless."""
        self._stopping = True
        try:
            connection = self._connection
            if self._ready and connection is not None and not connection.closed:
                try:
                    await asyncio.wait_for(
                        connection.send_request("shutdown"), timeout=SHUTDOWN_TIMEOUT
                    )
                    await connection.send_notification("exit")
                except (asyncio.TimeoutError, ConnectionClosed, RemoteError) as e:
                    logger.warning("Shutdown request failed: %s", e)
        finally:
            await self._teardown()
            self._stopping = False

    async def restart(self) -> None:
        await self.stop()
        await self.start()

    async def send_request(self, method: str, params: Any = None) -> Any:
        return await self._require_connection().send_request(method, params)

    async def send_notification(self, method: str, params: Any = None) -> None:
        await self._require_connection().send_notification(method, params)

    def _require_connection(self) -> JsonRpcConnection:
        if self._connection is None or self._connection.closed:
            raise ConnectionClosed("Language server connection is not open")
        return self._connection

    def _detach(self) -> tuple:
        """Hand the current pipes and process over for release."""
        self._ready = False
        resources = (self._connection, self._proc, self._stderr_task)
        self._connection = None
        self._proc = None
        self._stderr_task = None
        return resources

    async def _teardown(self) -> None:
        await self._release(*self._detach())

    @staticmethod
    async def _release(
        connection: JsonRpcConnection | None,
        proc: asyncio.subprocess.Process | None,
        stderr_task: asyncio.Task | None,
    ) -> None:
        if connection is not None:
            await connection.close()

        if proc is not None and proc.returncode is None:
            with suppress(ProcessLookupError):
                proc.terminate()
            try:
                await asyncio.wait_for(proc.wait(), timeout=TERMINATE_TIMEOUT)
            except asyncio.TimeoutError:
                logger.warning("sqls did not exit, killing pid %s", proc.pid)
                with suppress(ProcessLookupError):
                    proc.kill()
                await proc.wait()

        if stderr_task is not None:
            stderr_task.cancel()
            with suppress(asyncio.CancelledError):
                await stderr_task

    async def _drain_stderr(self, stream: asyncio.StreamReader) -> None:
        while True:
            line = await stream.readline()
            if not line:
                return
            logger.debug("[sqls] %s", line.decode("utf-8", errors="replace").rstrip())

    def _handle_close(self) -> None:
        if self._stopping or not self._ready:
            return
        logger.info("sqls connection closed (pid %s)", self.pid)
        self._shutdown_task = asyncio.create_task(self._release(*self._detach()))
        if self._on_close is not None:
            self._on_close()

    def _handle_error(self, error: Exception, count: int) -> ErrorAction:
        action = ErrorAction.CONTINUE
        if self._on_error is not None:
            action = self._on_error(error, count)
        if action == ErrorAction.SHUTDOWN and not self._stopping:
            self._shutdown_task = asyncio.create_task(self._release(*self._detach()))
        return action

    def _handle_server_request(self, method: str, params: Any) -> Any:
        if method == "window/showMessageRequest":
            return self._show_message_request(params or {})
        if method == "workspace/configuration":
            items = (params or {}).get("items", [])
            return [None] * len(items)
        if method in (
            "client/registerCapability",
            "client/unregisterCapability",
            "window/workDoneProgress/create",
        ):
            return None
        raise RemoteError(METHOD_NOT_FOUND, f"Unhandled method {method}")

    def _show_message_request(self, params: dict[str, Any]) -> dict[str, str] | None:
        titles = [action.get("title", "") for action in params.get("actions") or []]
        chosen = self._show(params.get("type", 3), params.get("message", ""), titles)
        return {"title": chosen} if chosen else None

    def _handle_notification(self, method: str, params: Any) -> None:
        params = params or {}
        if method == "window/showMessage":
            self._show(params.get("type", 3), params.get("message", ""), [])
        elif method == "window/logMessage":
            level = _LOG_LEVELS.get(params.get("type", 4), logging.DEBUG)
            logger.log(level, "[sqls] %s", params.get("message", ""))
        else:
            logger.debug("Notification %s: %s", method, params)

    def _show(self, lsp_type: int, message: str, items: list[str]) -> str | None:
        severity = _LSP_MESSAGE_TYPES.get(lsp_type)
        if severity is None or self._notifier is None:
            logger.info("[sqls] %s", message)
            return None
        channel = {
            MessageType.ERROR: self._notifier.show_error_message,
            MessageType.WARNING: self._notifier.show_warning_message,
            MessageType.INFO: self._notifier.show_information_message,
        }[severity]
        return channel(message, *items)
