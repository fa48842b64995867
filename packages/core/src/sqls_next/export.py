"""CSV export of query results."""

import csv
import io
import logging
import time
from pathlib import Path

from sqls_next_models import QueryResult

from sqls_next.notifications import Notifier

logger = logging.getLogger(__name__)


def default_export_name() -> str:
    """File name for an export, e.g. ``query_results_1700000000000.csv``."""
    return f"query_results_{int(time.time() * 1000)}.csv"


def to_csv(result: QueryResult) -> str:
    """Render a result as CSV text. NULL cells are empty."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    names = result.column_names
    writer.writerow(names)
    for row in result.rows:
        writer.writerow(["" if row.get(name) is None else row.get(name) for name in names])
    return buffer.getvalue()


def export_to_csv(
    result: QueryResult | None,
    path: Path,
    notifier: Notifier | None = None,
) -> Path | None:
    """Write ``result`` to ``path``.

    Returns the written path, or None (after a warning) when there is
    nothing to export.
    """
    if result is None or not result.has_data:
        if notifier is not None:
            notifier.show_warning_message("No data to export")
        return None

    path = Path(path)
    if path.is_dir():
        path = path / default_export_name()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(to_csv(result), encoding="utf-8")

    logger.info("Exported %d rows to %s", len(result.rows), path)
    if notifier is not None:
        notifier.show_information_message(f"Results exported to {path}")
    return path
