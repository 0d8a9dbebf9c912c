"""Tracing sink for per-delta diagnostics.

The pipeline calls the sink unconditionally. The sink decides whether
anything is written, so no parsing code ever checks a debug flag.
"""

import json
import logging

from cortexrelay.models import (
    ChartContent,
    TextContent,
    ThinkingContent,
    ToolResultsContent,
    ToolUseContent,
    UnknownContent,
)

logger = logging.getLogger("cortexrelay.trace")


def _preview(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


class DeltaTracer:
    """Logs previews of deltas, SQL and results when enabled.

    Args:
        enabled: When false every method is a no-op.
        level: Logging level used for emitted records.
    """

    def __init__(self, enabled: bool = False, level: int = logging.INFO):
        self.enabled = enabled
        self.level = level

    def _emit(self, message: str) -> None:
        if self.enabled:
            logger.log(self.level, message)

    def delta(self, delta) -> None:
        if not self.enabled:
            return
        self._emit(
            f"DELTA #{delta.index} id={delta.metadata.id} "
            f"kind={delta.metadata.kind} items={len(delta.content)}"
        )
        for i, item in enumerate(delta.content):
            self._emit(f"  [{i}] {self.describe(item)}")

    def describe(self, item) -> str:
        if isinstance(item, TextContent):
            return f"text ({len(item.text)} chars): {_preview(item.text, 100)!r}"
        if isinstance(item, ThinkingContent):
            return f"thinking ({len(item.text)} chars): {_preview(item.text, 150)!r}"
        if isinstance(item, ToolUseContent):
            return f"tool_use {item.name or 'unknown'} input={json.dumps(item.input, default=str)}"
        if isinstance(item, ToolResultsContent):
            kinds = ", ".join(result.type for result in item.items)
            return f"tool_results ({len(item.items)} items: {kinds})"
        if isinstance(item, ChartContent):
            return "chart"
        if isinstance(item, UnknownContent):
            return f"unknown content type {item.kind!r}"
        return repr(item)

    def stream_complete(self, total_deltas: int) -> None:
        self._emit(f"Stream completed after {total_deltas} deltas")

    def sql(self, statement: str) -> None:
        self._emit(f"SQL extracted from agent response:\n{statement}")

    def sql_result(self, rows: list[dict], elapsed_ms: float) -> None:
        if not self.enabled:
            return
        self._emit(f"SQL returned {len(rows)} rows in {elapsed_ms:.0f}ms")
        if rows:
            self._emit(f"  first row: {_preview(json.dumps(rows[0], default=str), 200)}")

    def result(self, result) -> None:
        self._emit(
            f"Synthesized result: summary={len(result.summary)} chars, "
            f"rows={len(result.rows)}, sql={'yes' if result.sql else 'no'}, "
            f"charts={len(result.charts)}"
        )


NULL_TRACER = DeltaTracer(enabled=False)
