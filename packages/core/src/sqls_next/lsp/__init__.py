"""Language-server transport: JSON-RPC framing and the sqls child process."""

from sqls_next.lsp.jsonrpc import ErrorAction, JsonRpcConnection, encode_message
from sqls_next.lsp.process import LanguageServerProcess

__all__ = [
    "ErrorAction",
    "JsonRpcConnection",
    "LanguageServerProcess",
    "encode_message",
]
