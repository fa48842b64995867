"""Query result models."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Column(BaseModel):
    """A single result column."""

    name: str = Field(..., description="Column name (matches row keys)")
    type: str | None = Field(default=None, description="SQL type, when the server reports one")


class QueryResult(BaseModel):
    """Canonical tabular result, whatever shape the server replied with.

    Every row holds at least the keys named in ``columns``. Missing source
    values are stored as ``None`` (SQL NULL), which is distinct from ``""``.
    """

    model_config = ConfigDict(populate_by_name=True)

    columns: list[Column] = Field(default_factory=list, description="Columns in display order")
    rows: list[dict[str, Any]] = Field(default_factory=list, description="Rows keyed by column")
    rows_affected: int | None = Field(
        default=None,
        alias="rowsAffected",
        description="Row count for reads, or the acknowledged count for mutations",
    )
    execution_time: float | None = Field(
        default=None,
        alias="executionTime",
        description="Execution time in milliseconds (if known)",
    )

    @property
    def column_names(self) -> list[str]:
        return [col.name for col in self.columns]

    @property
    def has_data(self) -> bool:
        """Whether there is anything worth exporting."""
        return len(self.rows) > 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to the camelCase wire shape."""
        return self.model_dump(by_alias=True, exclude_none=True)
