"""Text presentation of query results.

``render_table`` and ``render_csv`` are pure functions of their rows:
the same input always renders byte-identically. The remaining helpers
build the markdown answer sent back to the user.
"""

import logging
import re
from datetime import datetime
from pathlib import Path

from cortexrelay.models import SynthesizedResult

logger = logging.getLogger(__name__)

MIN_COLUMN_WIDTH = 8
NO_RESULT_MESSAGE = (
    "I wasn't able to find relevant information for your query. Please try "
    "rephrasing your question or ask about something more specific."
)

_SECTION_RE = re.compile(r"(\n\*\*[^*]+\*\*)")


def column_union(rows: list[dict]) -> list:
    """Every key that appears in any row, in first-seen order."""
    columns: dict = {}
    for row in rows:
        if isinstance(row, dict):
            for key in row:
                columns.setdefault(key, None)
    return list(columns)


def _cell(row: dict, column) -> str:
    value = row.get(column) if isinstance(row, dict) else None
    return "" if value is None else str(value)


def _fit(text: str, width: int) -> str:
    if len(text) > width:
        return text[: width - 3] + "..."
    return text.ljust(width)


def render_table(
    rows: list[dict],
    max_rows: int | None = None,
    max_width: int | None = None,
) -> str:
    """Render *rows* as a fixed-width, pipe-delimited text table.

    Columns are at least eight characters wide and otherwise as wide as
    their longest header or cell. *max_width* caps column width, cutting
    longer cells with ``...``. *max_rows* limits the rows shown and adds
    a note counting the rest.
    """
    columns = column_union(rows)
    if not columns:
        return ""
    shown = rows if max_rows is None else rows[:max_rows]

    widths = {}
    for column in columns:
        width = max([len(str(column))] + [len(_cell(row, column)) for row in shown])
        if max_width is not None:
            width = min(width, max_width)
        widths[column] = max(width, MIN_COLUMN_WIDTH)

    lines = [
        "| " + " | ".join(_fit(str(c), widths[c]) for c in columns) + " |",
        "| " + " | ".join("-" * widths[c] for c in columns) + " |",
    ]
    for row in shown:
        lines.append(
            "| " + " | ".join(_fit(_cell(row, c), widths[c]) for c in columns) + " |"
        )
    table = "\n".join(lines) + "\n"
    if len(rows) > len(shown):
        table += f"... and {len(rows) - len(shown)} more rows ({len(rows)} total)\n"
    return table


def escape_csv_field(field: str) -> str:
    if any(ch in field for ch in (",", '"', "\r", "\n")):
        return '"' + field.replace('"', '""') + '"'
    return field


def render_csv(rows: list[dict]) -> str:
    """Render *rows* as CSV, header first, one line per row."""
    columns = column_union(rows)
    if not columns:
        return ""
    lines = [",".join(escape_csv_field(str(c)) for c in columns)]
    for row in rows:
        lines.append(",".join(escape_csv_field(_cell(row, c)) for c in columns))
    return "\n".join(lines) + "\n"


def sanitize_query(query) -> str:
    """Trim a user question and strip trailing semicolons and SQL comments."""
    if not isinstance(query, str):
        return ""
    query = re.sub(r";+$", "", query.strip())
    query = re.sub(r"--.*$", "", query, flags=re.MULTILINE)
    query = re.sub(r"/\*.*?\*/", "", query, flags=re.DOTALL)
    return query.strip()


def format_row(row) -> str:
    """One-line rendering of a row for the key findings list."""
    if not isinstance(row, dict):
        return str(row)
    pairs = [f"{key}: {value}" for key, value in row.items()]
    if len(pairs) <= 3:
        return ", ".join(pairs)
    return f"{', '.join(pairs[:2])}, ... (+{len(pairs) - 2} more fields)"


def write_csv_export(
    csv_text: str, record_count: int, export_dir: str | Path = "exports"
) -> Path:
    """Write *csv_text* to a timestamped file under *export_dir*."""
    directory = Path(export_dir)
    directory.mkdir(parents=True, exist_ok=True)
    stamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
    path = directory / f"query_results_{stamp}_{record_count}rows.csv"
    path.write_text(csv_text, encoding="utf-8")
    logger.info(f"Wrote {record_count} rows to {path}")
    return path


def _rows_section(
    rows: list[dict], row_limit: int, inline_csv_limit: int, export_dir: str | Path
) -> str:
    out = "**Query Results:**\n"
    out += "```\n" + render_table(rows, max_rows=row_limit) + "```\n"
    if len(rows) <= row_limit:
        out += f"\n*{len(rows)} row{'s' if len(rows) != 1 else ''} returned*\n"

    csv_text = render_csv(rows)
    if len(rows) > inline_csv_limit:
        try:
            path = write_csv_export(csv_text, len(rows), export_dir)
        except OSError as e:
            logger.error(f"Failed to write CSV file: {e}")
            out += "\n**CSV Export Failed**\nPlease copy the data manually.\n\n"
        else:
            out += "\n**CSV File Created**\n"
            out += f"**{path}** has been created with all {len(rows)} records.\n\n"
    else:
        out += "\n**CSV Download**\n"
        out += "Copy the content below and save as a `.csv` file:\n\n"
        out += "```csv\n" + csv_text + "```\n\n"
    return out


def format_result(
    result: SynthesizedResult | None,
    row_limit: int = 20,
    inline_csv_limit: int = 10,
    export_dir: str | Path = "exports",
) -> str:
    """Markdown answer for one synthesized result.

    SQL results get a table plus CSV, inline for small results and as an
    exported file for larger ones. Rows without SQL are listed as key
    findings.
    """
    if result is None:
        return NO_RESULT_MESSAGE

    out = "**Analysis Results:**\n\n"
    if result.summary:
        out += f"**Summary:** {result.summary}\n\n"
    if result.sql.strip():
        out += f"**SQL Query**\n```sql\n{result.sql}\n```\n\n"
    if result.insights:
        out += f"\n**Insights:** {result.insights}\n"

    rows = result.rows
    if rows and result.sql.strip():
        out += _rows_section(rows, row_limit, inline_csv_limit, export_dir)
    elif rows:
        out += "**Key Findings:**\n"
        for i, row in enumerate(rows[:5], start=1):
            out += f"{i}. {format_row(row)}\n"
        if len(rows) > 5:
            out += f"\n*... and {len(rows) - 5} more results*\n"
    return out


def format_reasoning(result: SynthesizedResult | None) -> str:
    if result is None or not result.summary:
        return "Agent reasoning content"
    return result.summary


def split_message(text: str, limit: int = 4000) -> list[str]:
    """Split *text* into chunks of at most *limit* characters.

    Splits prefer bold section headers, then line breaks. Lines longer
    than *limit* are cut.
    """
    if len(text) <= limit:
        return [text] if text else []

    chunks: list[str] = []
    current = ""

    def push():
        nonlocal current
        if current.strip():
            chunks.append(current.strip())
        current = ""

    for section in _SECTION_RE.split(text):
        if len(current) + len(section) <= limit:
            current += section
            continue
        push()
        if len(section) <= limit:
            current = section
            continue
        for line in section.split("\n"):
            while len(line) > limit:
                push()
                chunks.append(line[:limit])
                line = line[limit:]
            if len(current) + len(line) + 1 > limit:
                push()
            current += ("\n" if current else "") + line
    push()
    return chunks
