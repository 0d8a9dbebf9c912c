"""Streaming primitives for agent responses.

The decoder yields :class:`Delta` records. The :class:`DeltaAccumulator`
routes their content into a :class:`StreamAggregate` that the
synthesizer reads once the stream has ended.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from cortexrelay.models import (
    ChartContent,
    ContentItem,
    TextContent,
    ThinkingContent,
    ToolResultsContent,
    ToolUseContent,
    UnknownContent,
)

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class DeltaMetadata:
    """Identifiers passed through from the event payload."""

    id: str | None = None
    kind: str | None = None


@dataclass(frozen=True)
class Delta:
    """One parsed ``message.delta`` event."""

    index: int
    content: tuple[ContentItem, ...] = ()
    metadata: DeltaMetadata = field(default_factory=DeltaMetadata)
    timestamp: datetime = field(default_factory=_now)

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "timestamp": self.timestamp.isoformat(),
            "content": [item.model_dump(mode="json") for item in self.content],
            "metadata": {"id": self.metadata.id, "kind": self.metadata.kind},
        }


@dataclass(frozen=True)
class StreamCompletion:
    """The agent signalled the end of its stream."""

    total_deltas: int
    timestamp: datetime = field(default_factory=_now)

    def to_dict(self) -> dict:
        return {
            "type": "completion",
            "timestamp": self.timestamp.isoformat(),
            "total_deltas": self.total_deltas,
        }


@dataclass
class StreamAggregate:
    """Running totals for one query's stream.

    Text and tool items are separate channels. Order is preserved within
    each channel, not across them.
    """

    text: str = ""
    thinking: str = ""
    has_thinking: bool = False
    tool_results: list[ContentItem] = field(default_factory=list)
    charts: list[ChartContent] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.text or self.thinking or self.tool_results or self.charts)


class DeltaAccumulator:
    """Routes delta content into a :class:`StreamAggregate`.

    Live streams and buffered responses both feed through here, so they
    synthesize identically.

    Args:
        capture_thinking: Keep the agent's reasoning text. When false,
            thinking items are normalized and then dropped.
    """

    def __init__(self, capture_thinking: bool = False) -> None:
        self.capture_thinking = capture_thinking
        self._aggregate = StreamAggregate()

    def feed(self, delta: Delta) -> None:
        for item in delta.content:
            self.route(item)

    def route(self, item: ContentItem) -> None:
        agg = self._aggregate
        if isinstance(item, TextContent):
            agg.text += item.text
        elif isinstance(item, ThinkingContent):
            if self.capture_thinking and item.text:
                agg.thinking += item.text
                agg.has_thinking = True
        elif isinstance(item, (ToolUseContent, ToolResultsContent)):
            agg.tool_results.append(item)
        elif isinstance(item, ChartContent):
            agg.charts.append(item)
        elif isinstance(item, UnknownContent):
            logger.debug(f"Unknown content type: {item.kind}")

    def finalize(self) -> StreamAggregate:
        """Hand over the aggregate. The accumulator starts fresh afterwards."""
        aggregate, self._aggregate = self._aggregate, StreamAggregate()
        return aggregate
