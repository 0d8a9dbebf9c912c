import json

import httpx
import pytest

from cortexrelay.config import Settings
from cortexrelay.models import AgentConfiguration
from cortexrelay.provider import CortexAgentsProvider
from cortexrelay.runner import Runner


# ---------------------------------------------------------------------------
# SSE frame builders
# ---------------------------------------------------------------------------

def delta_frame(*content: dict, id: str = "msg_1", object: str = "message.delta") -> str:
    """A ``message.delta`` SSE frame carrying *content* items."""
    payload = {"id": id, "object": object, "delta": {"content": list(content)}}
    return f"event: message.delta\ndata: {json.dumps(payload)}\n\n"


def done_frame() -> str:
    return "event: done\ndata: {}\n\n"


def text_item(text: str) -> dict:
    return {"type": "text", "text": text}


def thinking_item(thinking) -> dict:
    return {"type": "thinking", "thinking": thinking}


def tool_use_item(name: str, input: dict | None = None) -> dict:
    return {"type": "tool_use", "tool_use": {"name": name, "input": input or {}}}


def json_results_item(*values) -> dict:
    return {
        "type": "tool_results",
        "tool_results": {"content": [{"type": "json", "json": v} for v in values]},
    }


def csv_results_item(text: str) -> dict:
    return {
        "type": "tool_results",
        "tool_results": {"content": [{"type": "text/csv", "text": text}]},
    }


def chart_item(chart_spec) -> dict:
    return {"type": "chart", "chart": {"chart_spec": chart_spec}}


def sse_body(*frames: str) -> str:
    return "".join(frames)


# ---------------------------------------------------------------------------
# Fake collaborators
# ---------------------------------------------------------------------------

class FakeExecutor:
    """Query executor returning queued results. No warehouse access.

    Queue a list of rows or an exception per expected call; an empty
    queue answers ``[]``.
    """

    def __init__(self, *results):
        self.results = list(results)
        self.calls: list[tuple[str, bool]] = []

    async def execute_query(self, sql, *, restore_context=False):
        self.calls.append((sql, restore_context))
        if not self.results:
            return []
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


class FakeDirectory:
    """Agent directory backed by a dict, or raising *error*."""

    def __init__(self, configs: dict | None = None, error: Exception | None = None):
        self.configs = configs or {}
        self.error = error
        self.lookups: list[str] = []

    async def get_agent_configuration(self, name):
        self.lookups.append(name)
        if self.error is not None:
            raise self.error
        return self.configs.get(name)


class FakeTokenProvider:
    def __init__(self, token="test-token", error: Exception | None = None):
        self.token = token
        self.error = error
        self.token_type = "KEYPAIR_JWT"
        self.calls = 0

    async def get_access_token(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.token


class ChunkedStream(httpx.AsyncByteStream):
    """Response body delivered as separate chunks, optionally failing."""

    def __init__(self, chunks, error: Exception | None = None):
        self.chunks = [c.encode() if isinstance(c, str) else c for c in chunks]
        self.error = error

    async def __aiter__(self):
        for chunk in self.chunks:
            yield chunk
        if self.error is not None:
            raise self.error

    async def aclose(self):
        pass


def sse_response(chunks, error: Exception | None = None, status_code: int = 200):
    return httpx.Response(
        status_code,
        headers={"content-type": "text/event-stream"},
        stream=ChunkedStream(chunks, error=error),
    )


class RecordingTransport(httpx.MockTransport):
    """MockTransport that also keeps the requests it served."""

    def __init__(self, handler):
        self.requests: list[httpx.Request] = []

        def _record(request):
            self.requests.append(request)
            return handler(request)

        super().__init__(_record)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def settings():
    return Settings(
        account="xy12345.us-east-1",
        user="tester",
        access_token="pat",
        database="SALES",
        schema_name="PUBLIC",
        agent_name="sales_agent",
    )


@pytest.fixture
def agent_config():
    return AgentConfiguration(
        agent_spec={
            "models": {"orchestration": "claude-4-sonnet"},
            "tools": [{"tool_spec": {"type": "cortex_analyst_text_to_sql", "name": "analyst"}}],
            "experimental": {"chartToolRequired": False, "custom": 1},
        },
        tools=[{"tool_spec": {"type": "cortex_analyst_text_to_sql", "name": "analyst"}}],
        agent_name="sales_agent",
    )


@pytest.fixture
def make_runner(settings, agent_config):
    """Factory fixture wiring a Runner to a mock HTTP transport.

    *handler* receives the ``httpx.Request`` and returns the response.
    The transport is exposed as ``runner.transport``.
    """
    def _make(
        handler,
        executor=None,
        directory=None,
        token_provider=None,
        settings_override=None,
    ):
        s = settings_override or settings
        transport = RecordingTransport(handler)
        provider = CortexAgentsProvider(
            s,
            token_provider=token_provider or FakeTokenProvider(),
            client=httpx.AsyncClient(transport=transport),
        )
        runner = Runner(
            s,
            provider,
            executor=executor if executor is not None else FakeExecutor(),
            directory=directory if directory is not None else FakeDirectory(
                {"sales_agent": agent_config}
            ),
        )
        runner.transport = transport
        return runner
    return _make
