"""Server-Sent Events decoding and encoding.

:class:`SSEDecoder` turns an agent response body, delivered in chunks
that need not line up with event boundaries, into :class:`Delta`
records. :func:`sse_generator` goes the other way and re-emits run
events as SSE frames for a browser-facing endpoint.
"""

from __future__ import annotations

import codecs
import json
import logging
from collections.abc import AsyncIterable, AsyncIterator

from cortexrelay.errors import CortexRelayError
from cortexrelay.events import (
    DeltaEvent,
    RunCompleteEvent,
    StreamCompleteEvent,
    StreamEvent,
)
from cortexrelay.models import parse_content_item
from cortexrelay.streaming import Delta, DeltaMetadata, StreamCompletion

logger = logging.getLogger(__name__)

DELTA_EVENT = "message.delta"
DONE_EVENT = "done"
ERROR_EVENT = "error"

StreamRecord = Delta | StreamCompletion


class SSEDecoder:
    """Incremental decoder for the agent's event stream.

    Feed it chunks in arrival order. Each call returns the records whose
    frames were completed by that chunk. Delta indices count successfully
    parsed ``message.delta`` frames only; a malformed frame is logged and
    skipped without consuming an index.
    """

    def __init__(self) -> None:
        self._buffer = ""
        self._bytes = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self.delta_count = 0
        self.skipped = 0

    def feed(self, chunk: str | bytes) -> list[StreamRecord]:
        if isinstance(chunk, bytes):
            chunk = self._bytes.decode(chunk)
        self._buffer = (self._buffer + chunk).replace("\r\n", "\n")
        *frames, self._buffer = self._buffer.split("\n\n")
        return self._process_all(frames)

    def flush(self) -> list[StreamRecord]:
        """Process whatever is left once the body has ended."""
        tail = self._buffer + self._bytes.decode(b"", final=True)
        self._buffer = ""
        return self._process_all([tail.replace("\r\n", "\n")])

    def _process_all(self, frames: list[str]) -> list[StreamRecord]:
        records = []
        for frame in frames:
            if not frame.strip():
                continue
            record = self._process(frame)
            if record is not None:
                records.append(record)
        return records

    def _process(self, frame: str) -> StreamRecord | None:
        event, data = parse_frame(frame)
        if event == DELTA_EVENT and data is not None:
            return self._parse_delta(data)
        if event == DONE_EVENT:
            return StreamCompletion(total_deltas=self.delta_count)
        if event == ERROR_EVENT:
            logger.warning(f"Agent stream reported an error: {data}")
        else:
            logger.debug(f"Ignoring SSE event {event!r}")
        return None

    def _parse_delta(self, data: str) -> Delta | None:
        try:
            payload = json.loads(data)
        except ValueError as e:
            return self._skip(e)
        return self.delta_from_payload(payload)

    def _skip(self, error: Exception) -> None:
        self.skipped += 1
        logger.warning(
            f"Skipping malformed delta frame after #{self.delta_count}: {error}"
        )

    def delta_from_payload(self, payload) -> Delta | None:
        """Build the next delta from an already-decoded event payload."""
        try:
            if not isinstance(payload, dict):
                raise ValueError(f"expected an object, got {type(payload).__name__}")
            body = payload.get("delta") or {}
            raw_items = body.get("content") if isinstance(body, dict) else None
            if raw_items is not None and not isinstance(raw_items, list):
                raise ValueError("delta.content is not a list")
            content = tuple(parse_content_item(raw) for raw in raw_items or [])
        except ValueError as e:
            return self._skip(e)

        self.delta_count += 1
        return Delta(
            index=self.delta_count,
            content=content,
            metadata=DeltaMetadata(
                id=payload.get("id"), kind=payload.get("object")
            ),
        )


def parse_frame(frame: str) -> tuple[str | None, str | None]:
    """Split one SSE frame into its event name and joined data lines."""
    event = None
    data_lines = []
    for line in frame.split("\n"):
        if not line or line.startswith(":"):
            continue
        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if name == "event":
            event = value.strip()
        elif name == "data":
            data_lines.append(value)
    data = "\n".join(data_lines) if data_lines else None
    return event, data


async def decode_stream(
    chunks: AsyncIterable[str | bytes],
    decoder: SSEDecoder | None = None,
) -> AsyncIterator[StreamRecord]:
    """Decode an async chunk stream, yielding records as frames complete."""
    decoder = decoder or SSEDecoder()
    async for chunk in chunks:
        for record in decoder.feed(chunk):
            yield record
    for record in decoder.flush():
        yield record


def decode_text(text: str, decoder: SSEDecoder | None = None) -> list[StreamRecord]:
    """Decode a fully buffered SSE body."""
    decoder = decoder or SSEDecoder()
    return decoder.feed(text) + decoder.flush()


def format_sse(event: str, data) -> str:
    return f"event: {event}\ndata: {json.dumps(data, default=str)}\n\n"


def _encode(event: StreamEvent) -> tuple[str, dict]:
    if isinstance(event, DeltaEvent):
        return "delta", event.delta.to_dict()
    if isinstance(event, StreamCompleteEvent):
        return "completion", event.completion.to_dict()
    if isinstance(event, RunCompleteEvent):
        return "result", {
            "type": "result",
            "content": event.result.model_dump(mode="json"),
        }
    return type(event).__name__, {}


async def sse_generator(
    event_stream: AsyncIterator[StreamEvent],
) -> AsyncIterator[str]:
    """Convert a StreamEvent async iterator into SSE-formatted strings."""
    try:
        async for event in event_stream:
            name, data = _encode(event)
            yield format_sse(name, data)
    except CortexRelayError as e:
        logger.error(f"Run failed while relaying events: {e}")
        yield format_sse(ERROR_EVENT, {"type": "error", "message": str(e)})
        return
    yield "event: done\ndata: {}\n\n"
