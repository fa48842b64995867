"""JSON-RPC 2.0 over a byte stream with LSP ``Content-Length`` framing."""

from __future__ import annotations

import asyncio
import inspect
import itertools
import json
import logging
from collections.abc import Callable
from contextlib import suppress
from enum import Enum
from typing import Any

from pydantic import ValidationError
from sqls_next_models import JsonRpcError, JsonRpcRequest, JsonRpcResponse
from sqls_next_models.lsp import INTERNAL_ERROR, METHOD_NOT_FOUND

from sqls_next.errors import ConnectionClosed, RemoteError, TransportError

logger = logging.getLogger(__name__)

JsonRpcMessage = JsonRpcRequest | JsonRpcResponse


class ErrorAction(str, Enum):
    """What to do after a transport error."""

    CONTINUE = "continue"
    SHUTDOWN = "shutdown"


RequestHandler = Callable[[str, Any], Any]
NotificationHandler = Callable[[str, Any], None]
ErrorHandler = Callable[[Exception, int], ErrorAction]


def encode_message(message: dict[str, Any] | JsonRpcMessage) -> bytes:
    """Frame a message with its Content-Length header."""
    if isinstance(message, (JsonRpcRequest, JsonRpcResponse)):
        message = message.to_wire()
    body = json.dumps(message, default=str).encode("utf-8")
    header = f"Content-Length: {len(body)}\r\n\r\n".encode("ascii")
    return header + body


class JsonRpcConnection:
    """A bidirectional JSON-RPC endpoint.

    Requests are matched to responses by id, so any number of callers may
    have requests in flight at once. A background task reads the stream and
    dispatches responses, server requests and notifications.

    ``on_error(exc, count)`` is called for every framing or decode failure
    with the running error count; returning ``ErrorAction.SHUTDOWN`` closes
    the connection. ``on_close()`` is called only when the peer closes the
    stream, not after ``close()`` or a shutdown decided by ``on_error``.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        on_close: Callable[[], None] | None = None,
        on_error: ErrorHandler | None = None,
        request_handler: RequestHandler | None = None,
        notification_handler: NotificationHandler | None = None,
    ):
        self._reader = reader
        self._writer = writer
        self._on_close = on_close
        self._on_error = on_error
        self._request_handler = request_handler
        self._notification_handler = notification_handler

        self._ids = itertools.count(1)
        self._pending: dict[int, asyncio.Future] = {}
        self._write_lock = asyncio.Lock()
        self._reader_task: asyncio.Task | None = None
        self._handler_tasks: set[asyncio.Task] = set()
        self._closing = False
        self._closed = False
        self._error_count = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def error_count(self) -> int:
        return self._error_count

    def start(self) -> None:
        """Start the background reader."""
        if self._reader_task is not None:
            return
        self._reader_task = asyncio.create_task(self._read_loop())

    async def close(self) -> None:
        """Stop reading, fail pending requests and close the write side."""
        self._closing = True
        if self._reader_task is not None and not self._reader_task.done():
            self._reader_task.cancel()
            with suppress(asyncio.CancelledError):
                await self._reader_task
        for task in list(self._handler_tasks):
            task.cancel()
        self._finish()
        with suppress(OSError, RuntimeError):
            self._writer.close()

    async def send_request(self, method: str, params: dict | list | None = None) -> Any:
        """Send a request and wait for its result.

        Raises:
            RemoteError: the peer answered with an error object.
            ConnectionClosed: the connection closed before the answer arrived.
        """
        if self._closed:
            raise ConnectionClosed("Connection is closed")

        request_id = next(self._ids)
        request = JsonRpcRequest(id=request_id, method=method, params=params)
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future

        try:
            await self._write(request)
            return await future
        finally:
            self._pending.pop(request_id, None)

    async def send_notification(self, method: str, params: dict | list | None = None) -> None:
        if self._closed:
            raise ConnectionClosed("Connection is closed")

        await self._write(JsonRpcRequest(method=method, params=params))

    async def _write(self, message: JsonRpcMessage) -> None:
        data = encode_message(message)
        async with self._write_lock:
            try:
                self._writer.write(data)
                await self._writer.drain()
            except (ConnectionError, RuntimeError) as e:
                raise ConnectionClosed(f"Failed to write to server: {e}") from e

    async def _readline(self) -> bytes:
        try:
            return await self._reader.readline()
        except (ValueError, asyncio.LimitOverrunError) as e:
            raise TransportError(f"Header line too long: {e}") from e

    async def _read_message(self) -> JsonRpcMessage | None:
        """Read one framed message. Returns None at end of stream."""
        headers: dict[str, str] = {}
        while True:
            line = await self._readline()
            if not line:
                return None
            text = line.decode("ascii", errors="replace").strip()
            if not text:
                if headers:
                    break
                continue
            name, sep, value = text.partition(":")
            if not sep:
                raise TransportError(f"Malformed header line: {text!r}")
            headers[name.strip().lower()] = value.strip()

        try:
            length = int(headers.get("content-length", ""))
        except ValueError as e:
            raise TransportError("Missing or invalid Content-Length header") from e
        if length < 0:
            raise TransportError(f"Negative Content-Length: {length}")

        body = await self._reader.readexactly(length)
        try:
            payload = json.loads(body.decode("utf-8"))
        except ValueError as e:
            raise TransportError(f"Invalid JSON payload: {e}") from e

        if not isinstance(payload, dict):
            raise TransportError(f"Unexpected JSON-RPC payload type: {type(payload).__name__}")

        try:
            if "method" in payload:
                return JsonRpcRequest.model_validate(payload)
            return JsonRpcResponse.model_validate(payload)
        except ValidationError as e:
            raise TransportError(f"Invalid JSON-RPC message: {e}") from e

    async def _read_loop(self) -> None:
        try:
            while True:
                try:
                    message = await self._read_message()
                except TransportError as e:
                    if self._report_error(e) == ErrorAction.SHUTDOWN:
                        break
                    continue

                if message is None:
                    break
                self._dispatch(message)
        except (asyncio.IncompleteReadError, ConnectionError):
            logger.debug("Server stream ended mid-message")
        finally:
            self._finish()

    def _report_error(self, error: Exception) -> ErrorAction:
        self._error_count += 1
        action = ErrorAction.CONTINUE
        if self._on_error is not None:
            action = self._on_error(error, self._error_count)
        if action == ErrorAction.SHUTDOWN:
            self._closing = True
        return action

    def _finish(self) -> None:
        if self._closed:
            return
        self._closed = True

        for future in self._pending.values():
            if not future.done():
                future.set_exception(ConnectionClosed("Connection to server closed"))
        self._pending.clear()

        if not self._closing and self._on_close is not None:
            self._on_close()

    def _dispatch(self, message: JsonRpcMessage) -> None:
        if isinstance(message, JsonRpcRequest):
            if message.is_notification:
                self._notify(message.method, message.params)
            else:
                task = asyncio.create_task(self._answer(message))
                self._handler_tasks.add(task)
                task.add_done_callback(self._handler_tasks.discard)
            return

        future = self._pending.get(message.id)
        if future is None or future.done():
            logger.warning("Response for unknown request id %s", message.id)
            return

        if message.error is not None:
            error = message.error
            future.set_exception(RemoteError(error.code, error.message, error.data))
        else:
            future.set_result(message.result)

    def _notify(self, method: str, params: Any) -> None:
        if self._notification_handler is None:
            logger.debug("Ignoring notification %s", method)
            return
        try:
            self._notification_handler(method, params)
        except Exception:
            logger.exception("Notification handler failed for %s", method)

    async def _answer(self, request: JsonRpcRequest) -> None:
        method = request.method
        try:
            if self._request_handler is None:
                raise RemoteError(METHOD_NOT_FOUND, f"Unhandled method {method}")
            result = self._request_handler(method, request.params)
            if inspect.isawaitable(result):
                result = await result
            response = JsonRpcResponse(id=request.id, result=result)
        except RemoteError as e:
            response = JsonRpcResponse(id=request.id, error=JsonRpcError(code=e.code, message=str(e)))
        except Exception as e:
            logger.exception("Request handler failed for %s", method)
            response = JsonRpcResponse(
                id=request.id, error=JsonRpcError(code=INTERNAL_ERROR, message=str(e))
            )

        try:
            await self._write(response)
        except ConnectionClosed:
            logger.debug("Could not answer %s: connection closed", method)
