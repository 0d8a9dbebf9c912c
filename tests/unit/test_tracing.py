"""Unit tests for the delta tracing sink."""

import logging

from cortexrelay.models import (
    ChartContent,
    CsvResult,
    JsonResult,
    SynthesizedResult,
    TextContent,
    ThinkingContent,
    ToolResultsContent,
    ToolUseContent,
    UnknownContent,
)
from cortexrelay.streaming import Delta, DeltaMetadata
from cortexrelay.tracing import NULL_TRACER, DeltaTracer


def _messages(caplog):
    return [r.message for r in caplog.records if r.name == "cortexrelay.trace"]


class TestDeltaTracer:
    def test_disabled_emits_nothing(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="cortexrelay.trace"):
            NULL_TRACER.delta(Delta(index=1, content=(TextContent(text="x"),)))
            NULL_TRACER.sql("SELECT 1")
            NULL_TRACER.sql_result([{"a": 1}], 3.0)
            NULL_TRACER.result(SynthesizedResult())
        assert _messages(caplog) == []

    def test_delta_preview(self, caplog):
        tracer = DeltaTracer(enabled=True)
        delta = Delta(
            index=2,
            content=(TextContent(text="y" * 120), ToolUseContent(name="analyst", input={"q": 1})),
            metadata=DeltaMetadata(id="m1", kind="message.delta"),
        )
        with caplog.at_level(logging.INFO, logger="cortexrelay.trace"):
            tracer.delta(delta)
        messages = _messages(caplog)
        assert messages[0] == "DELTA #2 id=m1 kind=message.delta items=2"
        assert "text (120 chars)" in messages[1]
        assert "y" * 100 + "..." in messages[1]
        assert "tool_use analyst" in messages[2]

    def test_describe_variants(self):
        tracer = DeltaTracer(enabled=True)
        assert tracer.describe(ThinkingContent(text="z" * 200)).endswith("...'")
        assert tracer.describe(
            ToolResultsContent(items=[JsonResult(value={}), CsvResult(text="")])
        ) == "tool_results (2 items: json, csv)"
        assert tracer.describe(ChartContent()) == "chart"
        assert tracer.describe(UnknownContent(kind="table")) == "unknown content type 'table'"

    def test_custom_level(self, caplog):
        tracer = DeltaTracer(enabled=True, level=logging.DEBUG)
        with caplog.at_level(logging.DEBUG, logger="cortexrelay.trace"):
            tracer.stream_complete(3)
        record = [r for r in caplog.records if r.name == "cortexrelay.trace"][0]
        assert record.levelno == logging.DEBUG
        assert record.message == "Stream completed after 3 deltas"

    def test_sql_result(self, caplog):
        tracer = DeltaTracer(enabled=True)
        with caplog.at_level(logging.INFO, logger="cortexrelay.trace"):
            tracer.sql_result([{"a": 1}], 12.4)
        messages = _messages(caplog)
        assert messages[0] == "SQL returned 1 rows in 12ms"
        assert '{"a": 1}' in messages[1]
