"""Streaming events emitted while a query runs."""

from __future__ import annotations

from dataclasses import dataclass

from cortexrelay.models import QueryResult
from cortexrelay.streaming import Delta, StreamCompletion


@dataclass
class StreamEvent:
    """Base for all streaming events."""


@dataclass
class DeltaEvent(StreamEvent):
    """One delta, emitted as soon as its frame has been parsed."""

    delta: Delta


@dataclass
class StreamCompleteEvent(StreamEvent):
    """The agent's ``done`` frame arrived."""

    completion: StreamCompletion


@dataclass
class RunCompleteEvent(StreamEvent):
    """Final event, always the last one yielded."""

    result: QueryResult
