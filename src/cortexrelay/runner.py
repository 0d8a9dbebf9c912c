"""Runs one question through Cortex Agents and yields the stream as events."""

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Callable, Iterable

import httpx

from cortexrelay.config import Settings
from cortexrelay.errors import (
    AgentTimeoutError,
    AgentTransportError,
    AgentUnavailableError,
)
from cortexrelay.events import (
    DeltaEvent,
    RunCompleteEvent,
    StreamCompleteEvent,
    StreamEvent,
)
from cortexrelay.instrumentation import agent_span, record_deltas, record_error
from cortexrelay.models import (
    AgentConfiguration,
    QueryResult,
    ResultSource,
    SynthesizedResult,
)
from cortexrelay.provider import CortexAgentsProvider
from cortexrelay.sse import DELTA_EVENT, SSEDecoder, StreamRecord, decode_stream, decode_text
from cortexrelay.streaming import Delta, DeltaAccumulator, StreamCompletion
from cortexrelay.synthesizer import ResponseSynthesizer
from cortexrelay.tracing import DeltaTracer
from cortexrelay.warehouse import AgentDirectory, QueryExecutor, SnowflakeWarehouse, tables_query

logger = logging.getLogger(__name__)

DeltaCallback = Callable[[Delta | StreamCompletion], None]


def configuration_error(summary: str, insights: str) -> SynthesizedResult:
    return SynthesizedResult(
        summary=summary,
        insights=insights,
        source=ResultSource.CONFIGURATION_ERROR,
    )


def _message(body: dict) -> str:
    message = body.get("message")
    return message if isinstance(message, str) else ""


async def _aiter(records: Iterable[StreamRecord]) -> AsyncIterator[StreamRecord]:
    for record in records:
        yield record


class Runner:
    """Runs one natural-language query through the agent pipeline.

    The Runner resolves the agent's configuration, posts the query,
    decodes the response as it arrives, routes every delta into an
    aggregate and hands the aggregate to the synthesizer once the
    stream ends. If the agent cannot be reached at all it answers from
    the fallback table listing instead.

    ``run()`` drains ``iter()``.  ``iter()`` is the streaming entry point.

    Args:
        settings: Runtime configuration.
        provider: HTTP access to the agent API.
        executor: Runs extracted SQL and the fallback query.
        directory: Looks up the agent configuration by name. Without
            one, requests use the default payload.
        tracer: Sink for per-delta diagnostics.
    """

    def __init__(
        self,
        settings: Settings,
        provider: CortexAgentsProvider,
        executor: QueryExecutor | None = None,
        directory: AgentDirectory | None = None,
        tracer: DeltaTracer | None = None,
    ):
        self.settings = settings
        self.provider = provider
        self.executor = executor
        self.directory = directory
        self.tracer = tracer or DeltaTracer(enabled=settings.trace_deltas)
        self.synthesizer = ResponseSynthesizer(executor, self.tracer)

    @classmethod
    def from_settings(cls, settings: Settings) -> "Runner":
        """Runner backed by a Snowflake connection and the HTTP provider."""
        warehouse = SnowflakeWarehouse(settings)
        return cls(
            settings,
            CortexAgentsProvider(settings),
            executor=warehouse,
            directory=warehouse,
        )

    async def run(
        self,
        query: str,
        on_delta: DeltaCallback | None = None,
        timeout: float | None = None,
    ) -> QueryResult:
        """Run *query* to completion.

        *on_delta* receives every :class:`Delta` as soon as it is parsed,
        and the :class:`StreamCompletion` when the agent signals the end.
        Exceptions raised by the callback are logged and ignored.

        Raises:
            AgentTimeoutError: *timeout* seconds elapsed. The in-flight
                request is aborted.
            AgentTransportError: The stream broke after it had started.
        """
        try:
            return await asyncio.wait_for(self._drain(query, on_delta), timeout)
        except asyncio.TimeoutError as e:
            raise AgentTimeoutError(f"Query did not finish within {timeout} seconds") from e

    async def _drain(self, query: str, on_delta: DeltaCallback | None) -> QueryResult:
        result: QueryResult | None = None
        async for event in self.iter(query):
            if isinstance(event, DeltaEvent):
                self._notify(on_delta, event.delta)
            elif isinstance(event, StreamCompleteEvent):
                self._notify(on_delta, event.completion)
            elif isinstance(event, RunCompleteEvent):
                result = event.result
        if result is None:
            raise RuntimeError("iter() ended without emitting RunCompleteEvent")
        return result

    def _notify(self, on_delta: DeltaCallback | None, record) -> None:
        if on_delta is None:
            return
        try:
            on_delta(record)
        except Exception as e:
            logger.warning(f"Delta callback error: {e}")

    async def iter(self, query: str) -> AsyncIterator[StreamEvent]:
        """Run *query*, yielding events as the response arrives.

        Events are produced on demand. Decoding of the next chunk does
        not begin until the consumer asks for the next event, so a slow
        consumer slows down processing of the stream.
        """
        config, error = await self._resolve_agent()
        if error is not None:
            yield RunCompleteEvent(result=error)
            return

        payload = self.provider.build_payload(query, config)
        agent_name = self.settings.agent_name or ""
        async with agent_span(agent_name, str(payload.get("model", ""))) as span:
            try:
                async with self.provider.open_stream(payload) as response:
                    async for event in self._consume(response, span):
                        yield event
                    return
            except AgentUnavailableError as e:
                logger.warning(f"Cortex Agents API unavailable, using fallback query: {e}")
                record_error(span, e)
            except AgentTransportError as e:
                logger.error(f"Cortex Agents stream failed: {e}")
                record_error(span, e)
                raise

        yield RunCompleteEvent(result=await self.fallback(query))

    async def _resolve_agent(
        self,
    ) -> tuple[AgentConfiguration | None, SynthesizedResult | None]:
        name = self.settings.agent_name
        if not name:
            logger.error("No agent name configured in CORTEX_AGENTS_AGENT_NAME")
            return None, configuration_error(
                "Agent configuration error: No Cortex Agent is configured for this bot.",
                "Please set CORTEX_AGENTS_AGENT_NAME in your environment variables "
                "to specify which Cortex Agent to use. Contact your administrator "
                "for available agent names.",
            )
        if self.directory is None:
            logger.info("No agent directory available, using the default payload")
            return None, None

        try:
            config = await self.directory.get_agent_configuration(name)
        except Exception as e:
            logger.error(f"Failed to get agent configuration: {e}")
            return None, configuration_error(
                f"Failed to read agent configuration for '{name}': {e}",
                "Check database permissions and table structure. "
                "Contact your administrator for assistance.",
            )
        if config is None:
            logger.error(f"No configuration found for agent: {name}")
            return None, configuration_error(
                f"Agent configuration not found for '{name}'. Please check "
                "that the agent exists and is accessible.",
                "Contact your administrator to verify the agent exists and "
                "you have permissions to access it.",
            )
        logger.info(f"Using agent configuration for: {name}")
        return config, None

    # ------------------------------------------------------------------
    # Response handling
    # ------------------------------------------------------------------

    async def _consume(
        self, response: httpx.Response, span
    ) -> AsyncIterator[StreamEvent]:
        decoder = SSEDecoder()
        content_type = response.headers.get("content-type", "")

        if "text/event-stream" in content_type:
            logger.info("Received streaming response from Cortex Agents, processing real-time")
            records = decode_stream(self._chunks(response), decoder)
        else:
            body = await self._read(response)
            try:
                parsed = json.loads(body) if body.strip() else None
            except ValueError:
                parsed = None

            if isinstance(parsed, dict) and "delta" in parsed:
                logger.info("Received direct delta response from Cortex Agents")
                delta = decoder.delta_from_payload(parsed)
                records = _aiter([delta] if delta is not None else [])
            elif isinstance(parsed, dict):
                logger.info("Received other response format from Cortex Agents")
                yield RunCompleteEvent(result=SynthesizedResult(
                    summary=_message(parsed) or "Response received from Cortex Agents",
                    source=ResultSource.AGENT_API,
                ))
                return
            elif f"event: {DELTA_EVENT}" in body:
                logger.info("Received SSE response from Cortex Agents, parsing")
                records = _aiter(decode_text(body, decoder))
            else:
                raise AgentUnavailableError("No usable data in Cortex Agents response")

        accumulator = DeltaAccumulator(capture_thinking=self.settings.include_thinking)
        async for record in records:
            if isinstance(record, Delta):
                self.tracer.delta(record)
                accumulator.feed(record)
                yield DeltaEvent(delta=record)
            elif isinstance(record, StreamCompletion):
                self.tracer.stream_complete(record.total_deltas)
                yield StreamCompleteEvent(completion=record)

        record_deltas(span, decoder.delta_count, decoder.skipped)
        logger.info(
            f"Stream finished: {decoder.delta_count} deltas, {decoder.skipped} skipped"
        )
        result = await self.synthesizer.synthesize(
            accumulator.finalize(), include_thinking=self.settings.include_thinking
        )
        yield RunCompleteEvent(result=result)

    async def _chunks(self, response: httpx.Response) -> AsyncIterator[bytes]:
        try:
            async for chunk in response.aiter_bytes():
                yield chunk
        except httpx.TimeoutException as e:
            raise AgentTimeoutError(
                f"Cortex Agents API timeout after {self.settings.timeout} seconds"
            ) from e
        except httpx.HTTPError as e:
            raise AgentTransportError(f"Cortex Agents stream interrupted: {e}") from e

    async def _read(self, response: httpx.Response) -> str:
        try:
            return (await response.aread()).decode("utf-8", errors="replace")
        except httpx.TimeoutException as e:
            raise AgentTimeoutError(
                f"Cortex Agents API timeout after {self.settings.timeout} seconds"
            ) from e
        except httpx.HTTPError as e:
            raise AgentTransportError(f"Failed to read Cortex Agents response: {e}") from e

    # ------------------------------------------------------------------
    # Fallback
    # ------------------------------------------------------------------

    async def fallback(self, query: str) -> SynthesizedResult:
        """List the schema's tables when the agent cannot answer *query*."""
        logger.info(f"Answering with fallback query for: {query!r}")
        if self.executor is None:
            return self._error_fallback()
        try:
            tables = await self.executor.execute_query(
                tables_query(self.settings.schema_name)
            )
        except Exception as e:
            logger.error(f"Fallback query failed: {e}")
            return self._error_fallback()
        return SynthesizedResult(
            summary="Cortex Agents is not available. Here are the available tables in your schema:",
            rows=list(tables),
            insights=(
                f"You have {len(tables)} tables available. Try asking specific "
                "questions about these tables or contact your administrator to "
                "enable Cortex Agents."
            ),
            source=ResultSource.FALLBACK_QUERY,
        )

    def _error_fallback(self) -> SynthesizedResult:
        return SynthesizedResult(
            summary="I'm having trouble connecting to your data.",
            insights=(
                "Please check your Snowflake connection and try again. You may "
                "need to enable Cortex Agents in your account."
            ),
            source=ResultSource.ERROR_FALLBACK,
        )
