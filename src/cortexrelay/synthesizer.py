"""Turn a finished stream aggregate into a displayable result."""

from __future__ import annotations

import json
import logging
import time

from cortexrelay.models import (
    ChartSpec,
    CsvResult,
    JsonResult,
    MultiMessageResult,
    QueryResult,
    ResultSource,
    SynthesizedResult,
    ToolResultsContent,
)
from cortexrelay.streaming import StreamAggregate
from cortexrelay.tracing import NULL_TRACER, DeltaTracer
from cortexrelay.warehouse import QueryExecutor

logger = logging.getLogger(__name__)

DEFAULT_INSIGHTS = "Response generated by Snowflake Cortex Agents"
CHART_NOTE = " Chart visualization included."
REASONING_HEADER = "**Agent Reasoning:**\n"
NO_EXECUTOR = "no query executor configured"


def parse_csv_rows(csv_text: str) -> list[dict]:
    """Parse agent CSV output into row dicts.

    Deliberately simple: every line is split on commas and quotes are
    stripped from each field, so quoted fields with embedded commas are
    not supported. Missing trailing values become empty strings.
    """
    lines = [line.rstrip("\r") for line in csv_text.strip().split("\n")]
    if len(lines) < 2:
        return []
    headers = [h.strip().replace('"', "") for h in lines[0].split(",")]
    rows = []
    for line in lines[1:]:
        values = [v.strip().replace('"', "") for v in line.split(",")]
        rows.append({
            header: values[i] if i < len(values) else ""
            for i, header in enumerate(headers)
        })
    return rows


def fallback_summary(row_count: int) -> str:
    if row_count == 0:
        return "Query processed successfully."
    return f"Found {row_count} result{'s' if row_count != 1 else ''} for your query."


def _text_field(value: dict, key: str) -> str:
    field = value.get(key)
    return field if isinstance(field, str) else ""


def _mentions_sql(summary: str) -> bool:
    return "```sql" in summary or "sql" in summary.lower()


class ResponseSynthesizer:
    """Builds :class:`SynthesizedResult` objects from stream aggregates.

    When the agent's tool results contain SQL, the synthesizer executes
    it through *executor* and replaces the rows with the live result.
    Execution problems never raise; they are reported in ``insights``.

    Args:
        executor: Runs SQL against the warehouse. Without one, extracted
            SQL is reported but not executed.
        tracer: Sink for SQL and result diagnostics.
    """

    def __init__(
        self,
        executor: QueryExecutor | None = None,
        tracer: DeltaTracer | None = None,
    ):
        self.executor = executor
        self.tracer = tracer or NULL_TRACER

    async def synthesize(
        self, aggregate: StreamAggregate, include_thinking: bool = False
    ) -> QueryResult:
        main = await self.build(aggregate, execute_sql=True)
        if include_thinking and aggregate.has_thinking and aggregate.thinking:
            reasoning = await self.build(
                StreamAggregate(text=REASONING_HEADER + aggregate.thinking),
                execute_sql=False,
            )
            return MultiMessageResult(main=main, reasoning=reasoning)
        return main

    async def build(
        self, aggregate: StreamAggregate, execute_sql: bool = True
    ) -> SynthesizedResult:
        rows: list[dict] = []
        insights = DEFAULT_INSIGHTS
        sql = ""
        charts: list[ChartSpec] = []

        for item in aggregate.tool_results:
            if not isinstance(item, ToolResultsContent):
                continue
            for result in item.items:
                if isinstance(result, JsonResult):
                    value = result.value
                    if isinstance(value, dict) and _text_field(value, "sql"):
                        sql = value["sql"]
                        insights = _text_field(value, "text") or insights
                        self.tracer.sql(sql)
                    if isinstance(value, list):
                        rows = [row for row in value if isinstance(row, dict)]
                    elif isinstance(value, dict) and value.get("query_id"):
                        rows = [value]
                elif isinstance(result, CsvResult):
                    rows = parse_csv_rows(result.text)

        for chart in aggregate.charts:
            spec = self._chart_spec(chart.spec)
            if spec is not None:
                charts.append(ChartSpec(spec=spec))
                insights += CHART_NOTE

        summary = aggregate.text.strip()

        if execute_sql and sql.strip():
            summary, rows, insights = await self._execute(sql, summary, rows, insights)

        if not summary:
            summary = fallback_summary(len(rows))

        result = SynthesizedResult(
            summary=summary,
            rows=rows,
            insights=insights,
            sql=sql,
            charts=charts,
            source=ResultSource.AGENT_API,
        )
        self.tracer.result(result)
        return result

    def _chart_spec(self, chart):
        if not isinstance(chart, dict):
            return None
        raw = chart.get("chart_spec")
        if isinstance(raw, dict):
            return raw
        if not isinstance(raw, str):
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Skipping unparseable chart spec: {e}")
            return None

    async def _execute(
        self, sql: str, summary: str, rows: list[dict], insights: str
    ) -> tuple[str, list[dict], str]:
        if self.executor is None:
            logger.warning("SQL found in agent response but no executor is configured")
            return (
                summary,
                rows,
                f"SQL query provided but execution failed: {NO_EXECUTOR}. {insights}",
            )

        logger.info(f"SQL query detected in response, executing: {sql}")
        start = time.perf_counter()
        try:
            result_rows = await self.executor.execute_query(sql, restore_context=True)
        except Exception as e:
            logger.error(f"Failed to execute SQL query: {e}")
            return (
                summary,
                rows,
                f"SQL query provided but execution failed: {e}. {insights}",
            )
        self.tracer.sql_result(result_rows or [], (time.perf_counter() - start) * 1000)

        if not result_rows:
            logger.info("SQL query executed but returned no results")
            return summary, [], f"SQL query executed but returned no results. {insights}"

        logger.info(f"SQL query executed successfully, {len(result_rows)} rows returned")
        if _mentions_sql(summary):
            summary += f"\n\n**Query Results:** {len(result_rows)} row(s) found."
        return summary, list(result_rows), f"SQL query executed successfully. {insights}"
