"""Content and result models.

Agent deltas arrive as loosely shaped JSON. :func:`parse_content_item`
normalizes each raw item into exactly one tagged variant so nothing
downstream has to guess whether a field is a string or an object.
"""

from __future__ import annotations

import json
import logging
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field, field_serializer

logger = logging.getLogger(__name__)

CSV_RESULT_TYPES = ("text/csv", "csv")


class TextContent(BaseModel):
    model_config = {"frozen": True}

    type: Literal["text"] = "text"
    text: str = ""


class ThinkingContent(BaseModel):
    model_config = {"frozen": True}

    type: Literal["thinking"] = "thinking"
    text: str = ""


class ToolUseContent(BaseModel):
    model_config = {"frozen": True}

    type: Literal["tool_use"] = "tool_use"
    name: str = ""
    input: Any = None


class JsonResult(BaseModel):
    model_config = {"frozen": True}

    type: Literal["json"] = "json"
    value: Any = None


class CsvResult(BaseModel):
    model_config = {"frozen": True}

    type: Literal["csv"] = "csv"
    text: str = ""


ResultItem = JsonResult | CsvResult


class ToolResultsContent(BaseModel):
    model_config = {"frozen": True}

    type: Literal["tool_results"] = "tool_results"
    items: list[ResultItem] = Field(default_factory=list)


class ChartContent(BaseModel):
    model_config = {"frozen": True}

    type: Literal["chart"] = "chart"
    spec: Any = None


class UnknownContent(BaseModel):
    """Content of a type this relay does not understand."""

    model_config = {"frozen": True}

    type: Literal["unknown"] = "unknown"
    kind: str = ""
    raw: Any = None


ContentItem = (
    TextContent
    | ThinkingContent
    | ToolUseContent
    | ToolResultsContent
    | ChartContent
    | UnknownContent
)


def normalize_thinking(value: Any) -> str:
    """Reduce a thinking payload to plain text.

    Strings pass through. Objects yield the first non-empty of ``text``,
    ``content`` or ``message``, falling back to an indented JSON dump.
    """
    if not value:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        for key in ("text", "content", "message"):
            candidate = value.get(key)
            if isinstance(candidate, str) and candidate:
                return candidate
    return json.dumps(value, indent=2, default=str)


def _parse_result_item(raw: Any) -> ResultItem | None:
    if not isinstance(raw, dict):
        return None
    kind = raw.get("type")
    if kind == "json" and "json" in raw:
        return JsonResult(value=raw["json"])
    if kind in CSV_RESULT_TYPES:
        return CsvResult(text=raw.get("text") or "")
    logger.debug(f"Skipping tool result item of type {kind!r}")
    return None


def parse_content_item(raw: Any) -> ContentItem:
    """Normalize one raw ``delta.content`` entry into a content variant."""
    if not isinstance(raw, dict):
        return UnknownContent(kind=type(raw).__name__, raw=raw)

    kind = raw.get("type")
    if kind == "text":
        return TextContent(text=raw.get("text") or "")
    if kind == "thinking":
        return ThinkingContent(text=normalize_thinking(raw.get("thinking")))
    if kind == "tool_use":
        tool_use = raw.get("tool_use") or {}
        if not isinstance(tool_use, dict):
            tool_use = {}
        return ToolUseContent(
            name=tool_use.get("name") or "",
            input=tool_use.get("input"),
        )
    if kind == "tool_results":
        tool_results = raw.get("tool_results") or {}
        if not isinstance(tool_results, dict):
            tool_results = {}
        items = [
            item
            for item in map(_parse_result_item, tool_results.get("content") or [])
            if item is not None
        ]
        return ToolResultsContent(items=items)
    if kind == "chart":
        return ChartContent(spec=raw.get("chart"))
    return UnknownContent(kind=str(kind), raw=raw)


class ResultSource(Enum):
    AGENT_API = "agent_api"
    FALLBACK_QUERY = "fallback_query"
    CONFIGURATION_ERROR = "configuration_error"
    ERROR_FALLBACK = "error_fallback"


class ChartSpec(BaseModel):
    type: str = "chart-spec"
    spec: Any = None


class SynthesizedResult(BaseModel):
    """The displayable outcome of one query."""

    summary: str = ""
    rows: list[dict] = Field(default_factory=list)
    insights: str = ""
    sql: str = ""
    charts: list[ChartSpec] = Field(default_factory=list)
    source: ResultSource = ResultSource.AGENT_API

    @field_serializer("source")
    def serialize_source(self, source: ResultSource, _info) -> str:
        return source.value


class MultiMessageResult(BaseModel):
    """A main answer paired with the agent's captured reasoning."""

    main: SynthesizedResult
    reasoning: SynthesizedResult
    has_multiple_messages: bool = True


QueryResult = SynthesizedResult | MultiMessageResult


def primary_result(result: QueryResult) -> SynthesizedResult:
    """Return the main answer of either result shape."""
    if isinstance(result, MultiMessageResult):
        return result.main
    return result


class AgentConfiguration(BaseModel):
    """Agent settings read from the warehouse's agent catalog."""

    agent_spec: dict | None = None
    tools: list | None = None
    response_instruction: str | None = None
    tool_resources: dict | None = None

    agent_name: str | None = None
    database_name: str | None = None
    schema_name: str | None = None
    owner: str | None = None
    comment: str | None = None

    @classmethod
    def from_describe_rows(cls, rows: list[dict]) -> "AgentConfiguration | None":
        """Build a configuration from ``DESCRIBE AGENT`` output.

        The first row carries an ``agent_spec`` column holding the full
        agent definition as JSON (string or already-decoded object).
        Column names are matched case-insensitively.
        """
        if not rows:
            logger.warning("No rows returned from DESCRIBE AGENT")
            return None

        row = {str(key).lower(): value for key, value in rows[0].items()}
        config = cls(
            agent_name=row.get("name"),
            database_name=row.get("database_name"),
            schema_name=row.get("schema_name"),
            owner=row.get("owner"),
            comment=row.get("comment"),
        )

        spec_value = row.get("agent_spec")
        if not spec_value:
            logger.warning("No agent_spec column found in DESCRIBE AGENT result")
            return config

        try:
            spec = json.loads(spec_value) if isinstance(spec_value, str) else spec_value
        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse agent_spec from DESCRIBE AGENT: {e}")
            return config
        if not isinstance(spec, dict):
            logger.warning("agent_spec is not a JSON object, ignoring it")
            return config

        config.agent_spec = spec
        if spec.get("tools"):
            config.tools = spec["tools"]
        instructions = spec.get("instructions")
        if isinstance(instructions, dict) and instructions.get("response"):
            config.response_instruction = instructions["response"]
        if spec.get("tool_resources"):
            config.tool_resources = spec["tool_resources"]
        logger.info(
            f"Loaded agent_spec for {config.agent_name} "
            f"({len(config.tools or [])} tools)"
        )
        return config
