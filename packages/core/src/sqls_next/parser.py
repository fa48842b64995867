"""Normalize sqls command output into a QueryResult.

sqls answers ``executeQuery`` in different shapes depending on its output
mode, version and statement type:

* an ASCII table (default text mode)::

    +----+------+-----+
    | ID | NAME | AGE |
    +----+------+-----+
    |  1 | aaa  | <nil> |
    +----+------+-----+
    1 rows in set

* JSON ``{"columns": [...], "rows": [[...], ...]}`` (``-show-json``)
* JSON rows as objects, or a bare list of objects
* ``{"rows_affected": N}`` for DML
* any other scalar text

``parse_result_smart`` folds all of them into one QueryResult and never
raises.
"""

import json
import logging
import re
import reprlib
from typing import Any

from sqls_next_models import Column, QueryResult

from sqls_next.errors import NoColumnsFound, ParseFailure

logger = logging.getLogger(__name__)

COLUMN_SEPARATOR = "|"
BORDER_CHAR = "+"
BORDER_MARKERS = ("+--", "+==")

# Cell text sqls prints for NULL in table mode
ASCII_NULLS = frozenset({"<nil>", "NULL", ""})

# Values treated as NULL in positional JSON rows
JSON_NULLS = frozenset({"null", "<nil>"})

RESULT_COLUMN = "result"
ROWS_AFFECTED_COLUMN = "rows_affected"

_LETTER_RE = re.compile(r"[A-Za-z]")


def is_ascii_table(text: Any) -> bool:
    """Detect whether a string looks like an ASCII table."""
    if not isinstance(text, str):
        return False

    has_border = any(marker in text for marker in BORDER_MARKERS)
    return has_border and COLUMN_SEPARATOR in text and "\n" in text


def _split_cells(line: str) -> list[str]:
    # Drop the empty fields outside the leading and trailing pipes
    return [cell.strip() for cell in line.split(COLUMN_SEPARATOR)[1:-1]]


def parse_ascii_table_result(ascii_table: str) -> QueryResult:
    """Parse an ASCII table into a QueryResult.

    Raises:
        ParseFailure: if the input is not a string or has no header line.
        NoColumnsFound: if the header yields no column names.
    """
    if not ascii_table or not isinstance(ascii_table, str):
        raise ParseFailure("Invalid ASCII table input")

    lines = [line.rstrip("\r") for line in ascii_table.split("\n") if line.strip()]

    header_index = -1
    for i, line in enumerate(lines):
        if line.startswith(COLUMN_SEPARATOR) and _LETTER_RE.search(line):
            header_index = i
            break

    if header_index == -1:
        raise ParseFailure("Could not find header line in ASCII table")

    column_names = [name for name in _split_cells(lines[header_index]) if name]
    if not column_names:
        raise NoColumnsFound("No columns found in header")

    rows: list[dict[str, Any]] = []
    for line in lines[header_index + 1 :]:
        if line.startswith(BORDER_CHAR):
            continue

        # Footer such as "3 rows in set"
        if not line.startswith(COLUMN_SEPARATOR):
            break

        values = _split_cells(line)
        if len(values) != len(column_names):
            logger.debug("Dropping row with %d fields: %r", len(values), line)
            continue

        rows.append(
            {
                name: (None if value in ASCII_NULLS else value)
                for name, value in zip(column_names, values)
            }
        )

    return QueryResult(
        columns=[Column(name=name) for name in column_names],
        rows=rows,
        rows_affected=len(rows),
    )


def _coerce_columns(raw_columns: list) -> list[Column]:
    columns = []
    for col in raw_columns:
        if isinstance(col, Column):
            columns.append(col)
        elif isinstance(col, dict) and "name" in col:
            col_type = col.get("type")
            columns.append(
                Column(name=str(col["name"]), type=None if col_type is None else str(col_type))
            )
        else:
            columns.append(Column(name=str(col)))
    return columns


def _json_null(value: Any) -> Any:
    if value is None or (isinstance(value, str) and value in JSON_NULLS):
        return None
    return value


def _complete_row(row: dict[str, Any], names: list[str]) -> dict[str, Any]:
    if all(name in row for name in names):
        return row
    completed = dict(row)
    for name in names:
        completed.setdefault(name, None)
    return completed


def _rows_affected_of(value: dict) -> int | None:
    for key in ("rowsAffected", "rows_affected"):
        count = value.get(key)
        if isinstance(count, int) and not isinstance(count, bool):
            return count
    return None


def _parse_columnar(value: dict) -> QueryResult | None:
    """Handle ``{"columns": [...], "rows": [...]}`` with object or positional rows."""
    raw_columns = value.get("columns")
    raw_rows = value.get("rows")
    if not isinstance(raw_columns, list) or not isinstance(raw_rows, list):
        return None

    columns = _coerce_columns(raw_columns)
    names = [col.name for col in columns]

    if all(isinstance(row, dict) for row in raw_rows):
        execution_time = value.get("executionTime")
        return QueryResult(
            columns=columns,
            rows=[_complete_row(row, names) for row in raw_rows],
            rows_affected=_rows_affected_of(value),
            execution_time=execution_time if isinstance(execution_time, (int, float)) else None,
        )

    rows = []
    for raw_row in raw_rows:
        if isinstance(raw_row, dict):
            rows.append(_complete_row(raw_row, names))
        elif isinstance(raw_row, (list, tuple)):
            row = {name: None for name in names}
            for name, cell in zip(names, raw_row):
                row[name] = _json_null(cell)
            rows.append(row)
        else:
            raise ParseFailure(f"Unsupported row type: {type(raw_row).__name__}")

    return QueryResult(columns=columns, rows=rows, rows_affected=len(rows))


def _parse_object_list(value: list) -> QueryResult | None:
    if not value or not all(isinstance(row, dict) for row in value):
        return None

    names = [str(key) for key in value[0].keys()]
    rows = [_complete_row(row, names) for row in value]
    return QueryResult(
        columns=[Column(name=name) for name in names],
        rows=rows,
        rows_affected=len(rows),
    )


def _parse_rows_affected(value: dict) -> QueryResult | None:
    count = value.get(ROWS_AFFECTED_COLUMN)
    if isinstance(count, bool) or not isinstance(count, (int, float)):
        return None
    if isinstance(count, float):
        if not count.is_integer():
            return None
        count = int(count)

    return QueryResult(
        columns=[Column(name=ROWS_AFFECTED_COLUMN)],
        rows=[{ROWS_AFFECTED_COLUMN: count}],
        rows_affected=count,
    )


def _parse_structured(value: Any) -> QueryResult | None:
    if isinstance(value, dict):
        if "columns" in value and "rows" in value:
            parsed = _parse_columnar(value)
            if parsed is not None:
                return parsed
        return _parse_rows_affected(value)

    if isinstance(value, list):
        return _parse_object_list(value)

    return None


def _wrap_raw(text: str) -> QueryResult:
    return QueryResult(columns=[Column(name=RESULT_COLUMN)], rows=[{RESULT_COLUMN: text}])


def _parse_string(text: str) -> QueryResult:
    if is_ascii_table(text):
        try:
            return parse_ascii_table_result(text)
        except ParseFailure as e:
            logger.warning("Failed to parse ASCII table: %s", e)

    try:
        decoded = json.loads(text)
    except ValueError:
        return _wrap_raw(text)

    try:
        parsed = _parse_structured(decoded)
    except ParseFailure as e:
        logger.warning("Unrecognized JSON result: %s", e)
        parsed = None

    if parsed is not None:
        return parsed
    return _wrap_raw(text)


def _fallback(value: Any) -> QueryResult:
    try:
        text = json.dumps(value, default=str)
    except (TypeError, ValueError, RecursionError):
        text = reprlib.repr(value)
    return _wrap_raw(text)


def parse_result_smart(result: Any) -> QueryResult:
    """Normalize any command result into a QueryResult without raising."""
    if isinstance(result, QueryResult):
        return result

    try:
        if isinstance(result, str):
            return _parse_string(result)

        parsed = _parse_structured(result)
        if parsed is not None:
            return parsed
    except ParseFailure as e:
        logger.warning("Unrecognized result shape: %s", e)
    except Exception:
        logger.exception("Result normalization failed, using raw fallback")

    return _fallback(result)
