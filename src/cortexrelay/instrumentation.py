"""Optional OpenTelemetry instrumentation for cortexrelay.

Call ``cortexrelay.instrument()`` once at startup to enable tracing.
Requires ``opentelemetry-api`` to be installed; the relay works
identically without it.
"""

import importlib.util
import logging
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)

_tracer = None

_MAX_STATEMENT_LENGTH = 2000


def instrument(*, tracer_name: str = "cortexrelay") -> None:
    """Enable OpenTelemetry tracing for agent runs and SQL execution.

    Call once at startup, after configuring your TracerProvider.
    Requires ``opentelemetry-api``: ``pip install cortexrelay[otel]``

    Example::

        from opentelemetry import trace
        from opentelemetry.sdk.trace import TracerProvider

        trace.set_tracer_provider(TracerProvider())

        import cortexrelay
        cortexrelay.instrument()

    Args:
        tracer_name: Name passed to ``trace.get_tracer()``.

    Raises:
        ImportError: If ``opentelemetry-api`` is not installed.
    """
    global _tracer
    if importlib.util.find_spec("opentelemetry") is None:
        raise ImportError(
            "opentelemetry-api is required for instrumentation. "
            "Install it with: pip install cortexrelay[otel]"
        )
    from opentelemetry import trace
    _tracer = trace.get_tracer(tracer_name)
    if isinstance(_tracer, trace.NoOpTracer):
        logger.info(
            "No TracerProvider configured; spans will be "
            "discarded. Set up a TracerProvider to export "
            "traces."
        )
    else:
        logger.info("cortexrelay instrumentation enabled")


def uninstrument() -> None:
    """Disable OpenTelemetry tracing.

    Subsequent operations will not emit spans.
    """
    global _tracer
    _tracer = None


@asynccontextmanager
async def agent_span(agent_name: str, model: str):
    """Wrap one agent run in an ``invoke_agent`` span."""
    if _tracer is None:
        yield None
        return
    from opentelemetry.trace import SpanKind

    with _tracer.start_as_current_span(
        f"invoke_agent {agent_name}",
        kind=SpanKind.CLIENT,
        attributes={
            "gen_ai.operation.name": "invoke_agent",
            "gen_ai.agent.name": agent_name,
            "gen_ai.request.model": model,
        },
    ) as span:
        yield span


@asynccontextmanager
async def sql_span(statement: str):
    """Wrap one warehouse statement in a ``db`` span."""
    if _tracer is None:
        yield None
        return
    operation = statement.strip().split(None, 1)[0].upper() if statement.strip() else ""
    with _tracer.start_as_current_span(
        f"{operation or 'SQL'} snowflake",
        attributes={
            "db.system": "snowflake",
            "db.operation.name": operation,
            "db.query.text": statement[:_MAX_STATEMENT_LENGTH],
        },
    ) as span:
        yield span


def record_deltas(span, delta_count: int, skipped: int = 0) -> None:
    """Record how many deltas a stream produced."""
    if span is None:
        return
    span.set_attribute("cortexrelay.deltas", delta_count)
    if skipped:
        span.set_attribute("cortexrelay.deltas.skipped", skipped)


def record_rows(span, row_count: int) -> None:
    """Record the number of rows a statement returned."""
    if span is None:
        return
    span.set_attribute("db.response.returned_rows", row_count)


def record_error(span, exception: BaseException) -> None:
    """Record an exception and set ERROR status on a span.

    Sets ``error.type`` per OpenTelemetry semantic conventions.
    No-ops when *span* is ``None`` (tracing disabled).
    """
    if span is None:
        return
    from opentelemetry.trace import StatusCode

    span.set_status(StatusCode.ERROR, str(exception))
    span.record_exception(exception)
    span.set_attribute(
        "error.type", type(exception).__qualname__
    )
