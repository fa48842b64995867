"""sqls-next: client for the sqls SQL language server."""

from sqls_next.client import ConnectionState, SqlsClient
from sqls_next.errors import (
    ExecutableMissing,
    MaxRestartsExceeded,
    ServerNotRunning,
    SqlsError,
    StartFailed,
)
from sqls_next.parser import parse_result_smart

__all__ = [
    "ConnectionState",
    "ExecutableMissing",
    "MaxRestartsExceeded",
    "ServerNotRunning",
    "SqlsClient",
    "SqlsError",
    "StartFailed",
    "parse_result_smart",
]
