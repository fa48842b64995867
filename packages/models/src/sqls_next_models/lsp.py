"""Payload models exchanged with the sqls language server."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from sqls_next_models.connection import ConnectionConfig


class Position(BaseModel):
    """Zero-based position in a text document."""

    line: int = Field(default=0, ge=0)
    character: int = Field(default=0, ge=0)


class Range(BaseModel):
    """A start/end pair of positions."""

    start: Position = Field(default_factory=Position)
    end: Position = Field(default_factory=Position)

    @classmethod
    def from_lines(
        cls,
        start_line: int,
        start_char: int = 0,
        end_line: int | None = None,
        end_char: int = 0,
    ) -> "Range":
        if end_line is None:
            end_line = start_line
        return cls(
            start=Position(line=start_line, character=start_char),
            end=Position(line=end_line, character=end_char),
        )


class SqlsDBConfig(BaseModel):
    """One entry of the ``connections`` list sqls reads."""

    model_config = ConfigDict(populate_by_name=True)

    alias: str
    driver: str
    data_source_name: str = Field(..., alias="dataSourceName")

    @classmethod
    def from_config(cls, config: ConnectionConfig) -> "SqlsDBConfig":
        return cls(
            alias=config.alias,
            driver=config.driver.value,
            data_source_name=config.data_source_name,
        )


class SqlsSettings(BaseModel):
    """The ``sqls`` settings section."""

    model_config = ConfigDict(populate_by_name=True)

    lowercase_keywords: bool = Field(default=False, alias="lowercaseKeywords")
    connections: list[SqlsDBConfig] = Field(default_factory=list)


class DidChangeConfigurationSettings(BaseModel):
    sqls: SqlsSettings = Field(default_factory=SqlsSettings)


class DidChangeConfigurationParams(BaseModel):
    """Params of ``workspace/didChangeConfiguration``."""

    settings: DidChangeConfigurationSettings = Field(
        default_factory=DidChangeConfigurationSettings
    )

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True)


class InitializeOptions(BaseModel):
    """``initializationOptions`` sent with the ``initialize`` request."""

    model_config = ConfigDict(populate_by_name=True)

    connection_config: SqlsDBConfig | None = Field(default=None, alias="connectionConfig")

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True)


JSONRPC_VERSION = "2.0"

# Standard JSON-RPC error codes
METHOD_NOT_FOUND = -32601
INTERNAL_ERROR = -32603


class JsonRpcError(BaseModel):
    """JSON-RPC 2.0 error."""

    code: int = INTERNAL_ERROR
    message: str = "Unknown error"
    data: Any | None = None


class JsonRpcRequest(BaseModel):
    """JSON-RPC 2.0 request. Without an id it is a notification."""

    jsonrpc: str = JSONRPC_VERSION
    method: str
    params: dict[str, Any] | list[Any] | None = None
    id: int | str | None = None

    @property
    def is_notification(self) -> bool:
        return self.id is None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(
            exclude={name for name in ("params", "id") if getattr(self, name) is None}
        )


class JsonRpcResponse(BaseModel):
    """JSON-RPC 2.0 response."""

    jsonrpc: str = JSONRPC_VERSION
    id: int | str | None = None
    result: Any | None = None
    error: JsonRpcError | None = None

    @field_validator("error", mode="before")
    @classmethod
    def wrap_bare_error(cls, value: Any) -> Any:
        if value is None or isinstance(value, (dict, JsonRpcError)):
            return value
        return {"message": str(value)}

    def to_wire(self) -> dict[str, Any]:
        # result and error are mutually exclusive; a null result is still sent
        if self.error is None:
            return self.model_dump(exclude={"error"})
        return self.model_dump(exclude={"result"}, exclude_none=True)
