"""Shared Pydantic models for sqls-next."""

from sqls_next_models.connection import (
    DRIVER_INFO,
    ConnectionConfig,
    ConnectionEntry,
    DatabaseDriver,
    parse_driver,
)
from sqls_next_models.lsp import (
    DidChangeConfigurationParams,
    DidChangeConfigurationSettings,
    InitializeOptions,
    JsonRpcError,
    JsonRpcRequest,
    JsonRpcResponse,
    Position,
    Range,
    SqlsDBConfig,
    SqlsSettings,
)
from sqls_next_models.query import Column, QueryResult

__version__ = "0.1.0"

__all__ = [
    # Connections
    "DRIVER_INFO",
    "ConnectionConfig",
    "ConnectionEntry",
    "DatabaseDriver",
    "parse_driver",
    # Language server payloads
    "DidChangeConfigurationParams",
    "DidChangeConfigurationSettings",
    "InitializeOptions",
    "JsonRpcError",
    "JsonRpcRequest",
    "JsonRpcResponse",
    "Position",
    "Range",
    "SqlsDBConfig",
    "SqlsSettings",
    # Query results
    "Column",
    "QueryResult",
]
