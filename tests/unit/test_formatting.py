"""Unit tests for table/CSV rendering and answer formatting."""

import pytest

from cortexrelay.formatting import (
    NO_RESULT_MESSAGE,
    column_union,
    format_reasoning,
    format_result,
    format_row,
    render_csv,
    render_table,
    sanitize_query,
    split_message,
    write_csv_export,
)
from cortexrelay.models import SynthesizedResult
from cortexrelay.synthesizer import parse_csv_rows


class TestColumnUnion:
    def test_first_seen_order_across_rows(self):
        rows = [{"a": 1, "b": 2}, {"a": 3, "c": 4}, {"d": 5, "b": 6}]
        assert column_union(rows) == ["a", "b", "c", "d"]

    def test_empty(self):
        assert column_union([]) == []


class TestRenderCsv:
    def test_heterogeneous_rows(self):
        rows = [{"a": 1, "b": 2}, {"a": 3, "c": 4}]
        assert render_csv(rows) == "a,b,c\n1,2,\n3,,4\n"

    def test_non_string_keys(self):
        rows = [{1: "x", "name": "a"}, {1: "y"}]
        assert render_csv(rows) == "1,name\nx,a\ny,\n"
        table = render_table(rows)
        assert table.splitlines()[2].startswith("| x ")
        assert table.splitlines()[3].startswith("| y ")

    def test_quoting(self):
        rows = [{"v": 'say "hi"'}, {"v": "a,b"}, {"v": "line\nbreak"}, {"v": "cr\rx"}, {"v": None}]
        assert render_csv(rows) == 'v\n"say ""hi"""\n"a,b"\n"line\nbreak"\n"cr\rx"\n\n'

    def test_round_trip_through_simple_reader(self):
        rows = [
            {"region": "EMEA", "revenue": "100", "units": "7"},
            {"region": "APAC", "revenue": "250", "units": "12"},
        ]
        assert parse_csv_rows(render_csv(rows)) == rows

    def test_empty(self):
        assert render_csv([]) == ""

    def test_deterministic(self):
        rows = [{"x": 1, "y": "two"}, {"z": 3.5}]
        assert render_csv(rows) == render_csv(list(rows))


class TestRenderTable:
    def test_minimum_width(self):
        lines = render_table([{"a": 1}]).splitlines()
        assert lines[0] == "| " + "a".ljust(8) + " |"
        assert lines[1] == "| " + "-" * 8 + " |"
        assert lines[2] == "| " + "1".ljust(8) + " |"

    def test_width_follows_longest_cell(self):
        lines = render_table([{"name": "a much longer value"}, {"name": "x"}]).splitlines()
        assert lines[0] == "| " + "name".ljust(19) + " |"
        assert lines[2] == "| a much longer value |"
        assert lines[3] == "| " + "x".ljust(19) + " |"

    def test_includes_every_column(self):
        table = render_table([{"a": 1, "b": 2}, {"a": 3, "c": 4}])
        header = table.splitlines()[0]
        assert [h.strip() for h in header.strip("|").split("|")] == ["a", "b", "c"]
        cells = ["3".ljust(8), "".ljust(8), "4".ljust(8)]
        assert table.splitlines()[3] == "| " + " | ".join(cells) + " |"

    def test_row_cap_note(self):
        rows = [{"n": i} for i in range(25)]
        table = render_table(rows, max_rows=20)
        lines = table.splitlines()
        assert len(lines) == 2 + 20 + 1
        assert lines[-1] == "... and 5 more rows (25 total)"

    def test_no_note_under_cap(self):
        table = render_table([{"n": 1}], max_rows=20)
        assert "more rows" not in table

    def test_width_cap_truncates(self):
        table = render_table([{"text": "abcdefghijklmnop"}], max_width=10)
        assert table.splitlines()[2] == "| abcdefg... |"

    def test_empty(self):
        assert render_table([]) == ""


class TestSanitizeQuery:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("  top customers;;  ", "top customers"),
            ("sales -- ignore this\nby region", "sales \nby region"),
            ("revenue /* hidden */ trend", "revenue  trend"),
            ("", ""),
            (None, ""),
        ],
    )
    def test_sanitize(self, raw, expected):
        assert sanitize_query(raw) == expected


class TestFormatRow:
    def test_short_row(self):
        assert format_row({"a": 1, "b": 2}) == "a: 1, b: 2"

    def test_wide_row(self):
        assert format_row({"a": 1, "b": 2, "c": 3, "d": 4}) == "a: 1, b: 2, ... (+2 more fields)"

    def test_non_dict(self):
        assert format_row(5) == "5"


class TestFormatResult:
    def test_none(self):
        assert format_result(None) == NO_RESULT_MESSAGE

    def test_sql_with_inline_csv(self, tmp_path):
        result = SynthesizedResult(
            summary="Top regions.",
            sql="SELECT region FROM sales",
            insights="SQL query executed successfully.",
            rows=[{"region": "EMEA"}, {"region": "APAC"}],
        )
        text = format_result(result, export_dir=tmp_path)

        assert "**Summary:** Top regions." in text
        assert "```sql\nSELECT region FROM sales\n```" in text
        assert "**Query Results:**" in text
        assert "*2 rows returned*" in text
        assert "```csv\nregion\nEMEA\nAPAC\n```" in text
        assert list(tmp_path.iterdir()) == []

    def test_large_result_exported(self, tmp_path):
        rows = [{"n": i} for i in range(12)]
        result = SynthesizedResult(summary="s", sql="SELECT n", rows=rows)
        text = format_result(result, inline_csv_limit=10, export_dir=tmp_path)

        files = list(tmp_path.iterdir())
        assert len(files) == 1
        assert files[0].name.endswith("_12rows.csv")
        assert files[0].read_text(encoding="utf-8") == render_csv(rows)
        assert "**CSV File Created**" in text
        assert "```csv" not in text

    def test_key_findings_without_sql(self):
        rows = [{"table_name": f"T{i}"} for i in range(7)]
        text = format_result(SynthesizedResult(summary="Tables:", rows=rows))
        assert "**Key Findings:**" in text
        assert "1. table_name: T0" in text
        assert "5. table_name: T4" in text
        assert "6. table_name" not in text
        assert "*... and 2 more results*" in text

    def test_reasoning(self):
        assert format_reasoning(SynthesizedResult(summary="because")) == "because"
        assert format_reasoning(SynthesizedResult()) == "Agent reasoning content"


class TestSplitMessage:
    def test_short_message_untouched(self):
        assert split_message("hello", limit=100) == ["hello"]

    def test_empty(self):
        assert split_message("", limit=100) == []

    def test_splits_at_section_headers(self):
        text = "intro " * 10 + "\n**Section A**\n" + "a" * 40 + "\n**Section B**\n" + "b" * 40
        chunks = split_message(text, limit=70)
        assert all(len(c) <= 70 for c in chunks)
        assert chunks[1].startswith("**Section A**")
        assert "".join(chunks).replace("\n", "").replace(" ", "") == text.replace("\n", "").replace(" ", "")

    def test_long_line_cut(self):
        chunks = split_message("x" * 250, limit=100)
        assert [len(c) for c in chunks] == [100, 100, 50]


class TestWriteCsvExport:
    def test_creates_directory(self, tmp_path):
        path = write_csv_export("a\n1\n", 1, tmp_path / "nested" / "exports")
        assert path.exists()
        assert path.read_text(encoding="utf-8") == "a\n1\n"
        assert path.name.startswith("query_results_")
