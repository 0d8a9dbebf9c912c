from cortexrelay.auth import CallbackTokenProvider, StaticTokenProvider, TokenProvider
from cortexrelay.config import Settings
from cortexrelay.errors import (
    AgentTimeoutError,
    AgentTransportError,
    AgentUnavailableError,
    ConfigurationError,
    CortexRelayError,
    QueryExecutionError,
)
from cortexrelay.events import DeltaEvent, RunCompleteEvent, StreamCompleteEvent, StreamEvent
from cortexrelay.formatting import render_csv, render_table
from cortexrelay.instrumentation import instrument, uninstrument
from cortexrelay.models import (
    AgentConfiguration,
    MultiMessageResult,
    QueryResult,
    ResultSource,
    SynthesizedResult,
)
from cortexrelay.provider import CortexAgentsProvider
from cortexrelay.responder import QueryResponder
from cortexrelay.runner import Runner
from cortexrelay.sse import SSEDecoder, decode_stream, sse_generator
from cortexrelay.streaming import Delta, DeltaAccumulator, StreamAggregate, StreamCompletion
from cortexrelay.synthesizer import ResponseSynthesizer
from cortexrelay.tracing import DeltaTracer
from cortexrelay.warehouse import SnowflakeWarehouse

__all__ = [
    "AgentConfiguration",
    "AgentTimeoutError",
    "AgentTransportError",
    "AgentUnavailableError",
    "CallbackTokenProvider",
    "ConfigurationError",
    "CortexAgentsProvider",
    "CortexRelayError",
    "Delta",
    "DeltaAccumulator",
    "DeltaEvent",
    "DeltaTracer",
    "MultiMessageResult",
    "QueryExecutionError",
    "QueryResponder",
    "QueryResult",
    "ResponseSynthesizer",
    "ResultSource",
    "RunCompleteEvent",
    "Runner",
    "SSEDecoder",
    "Settings",
    "SnowflakeWarehouse",
    "StaticTokenProvider",
    "StreamAggregate",
    "StreamCompleteEvent",
    "StreamCompletion",
    "StreamEvent",
    "SynthesizedResult",
    "TokenProvider",
    "decode_stream",
    "instrument",
    "render_csv",
    "render_table",
    "sse_generator",
    "uninstrument",
]
