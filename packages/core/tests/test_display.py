"""Tests for the console results view."""

import io

import pytest
from rich.console import Console
from sqls_next_models import Column, QueryResult

from sqls_next.display import ResultView


@pytest.fixture
def output():
    return io.StringIO()


@pytest.fixture
def view(output):
    return ResultView(Console(file=output, width=120, color_system=None))


class TestResultView:
    def test_results_render_table_and_keep_current(self, view, output):
        result = QueryResult(
            columns=[Column(name="id"), Column(name="note")],
            rows=[{"id": "1", "note": None}, {"id": "2", "note": "[x]"}],
            rows_affected=2,
        )

        view.display_results(result)

        text = output.getvalue()
        assert "NULL" in text
        assert "[x]" in text
        assert "2 rows" in text
        assert view.current is result
        assert view.has_query_data

    def test_backslash_before_bracket_renders_literally(self, view, output):
        view.display_results(
            QueryResult(columns=[Column(name="path")], rows=[{"path": "C:\\[dim]tmp"}])
        )

        assert "C:\\[dim]tmp" in output.getvalue()

    def test_error_clears_current(self, view, output):
        view.display_results(QueryResult(columns=[Column(name="a")], rows=[{"a": 1}]))

        view.display_error("syntax error near [")

        assert view.current is None
        assert not view.has_query_data
        assert "syntax error near [" in output.getvalue()

    def test_lists(self, view, output):
        view.display_databases(["shop"], "pg")
        view.display_tables([], "shop", "pg")

        text = output.getvalue()
        assert "Databases (pg)" in text
        assert "Tables (pg/shop)" in text
        assert "No entries." in text
