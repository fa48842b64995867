"""Error taxonomy for the sqls supervisor and result pipeline."""


class SqlsError(Exception):
    """Base class for sqls-next errors."""

    pass


class ExecutableMissing(SqlsError):
    """The platform-specific sqls binary was not found. Not retryable."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"sqls executable not found at: {path}")


class StartFailed(SqlsError):
    """The server process could not be spawned or the handshake failed."""

    pass


class ServerNotRunning(SqlsError):
    """A command was issued while the supervisor is not running."""

    def __init__(self, message: str = "Language server is not started"):
        super().__init__(message)


class TransportError(SqlsError):
    """Framing or decoding failure on the JSON-RPC stream."""

    pass


class ConnectionClosed(SqlsError):
    """The server connection closed (unexpectedly or during a request)."""

    pass


class MaxRestartsExceeded(SqlsError):
    """The automatic restart budget is spent."""

    def __init__(self, max_restarts: int):
        self.max_restarts = max_restarts
        super().__init__(
            f"Language server has been restarted {max_restarts} times. "
            "Please check the server configuration."
        )


class RemoteError(SqlsError):
    """The server answered a request with a JSON-RPC error object."""

    def __init__(self, code: int, message: str, data=None):
        self.code = code
        self.data = data
        super().__init__(message)


class ParseFailure(SqlsError):
    """A raw result could not be read in the attempted format."""

    pass


class NoColumnsFound(ParseFailure):
    """An ASCII table header produced no column names."""

    pass
