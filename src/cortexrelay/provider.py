"""HTTP access to the Cortex Agents ``agent:run`` endpoint."""

import copy
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx

from cortexrelay.auth import StaticTokenProvider, TokenProvider
from cortexrelay.config import Settings
from cortexrelay.errors import AgentTimeoutError, AgentUnavailableError
from cortexrelay.models import AgentConfiguration

logger = logging.getLogger(__name__)


class CortexAgentsProvider:
    """Builds agent requests and opens their response streams.

    The provider never retries. Anything that goes wrong before a
    response is available (no token, connection refused, HTTP error
    status) raises :class:`AgentUnavailableError` so the caller can fall
    back; a timeout raises :class:`AgentTimeoutError`.

    Args:
        settings: Endpoint, model and request defaults.
        token_provider: Source of bearer tokens. Defaults to the access
            token in *settings*.
        client: Shared HTTP client. One is created on first use if
            omitted.
    """

    def __init__(
        self,
        settings: Settings,
        token_provider: TokenProvider | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.settings = settings
        self.token_provider = token_provider or StaticTokenProvider.from_settings(settings)
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.settings.timeout, connect=10.0)
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def build_payload(
        self, query: str, config: AgentConfiguration | None = None
    ) -> dict:
        """Request body for *query*, merged with the agent configuration.

        A full ``agent_spec`` becomes the base of the payload; the user's
        message and our experimental flags are applied on top of it.
        Without one, individual configuration fields are merged in.
        """
        s = self.settings
        payload = {
            "model": s.model,
            "response_instruction": s.response_instruction,
            "experimental": s.experimental_flags(),
            "tool_choice": {"type": "auto"},
            "messages": [
                {"role": "user", "content": [{"type": "text", "text": query}]}
            ],
        }
        if config is None:
            return payload

        if config.agent_spec:
            messages = payload["messages"]
            experimental = payload["experimental"]
            payload.update(copy.deepcopy(config.agent_spec))
            payload["messages"] = messages
            spec_experimental = config.agent_spec.get("experimental")
            if not isinstance(spec_experimental, dict):
                spec_experimental = {}
            payload["experimental"] = {**spec_experimental, **experimental}
            logger.info(f"Using agent_spec for request payload from: {s.agent_name}")
            return payload

        logger.info("No agent_spec found, using individual configuration fields")
        if config.tools:
            payload["tools"] = config.tools
        if config.response_instruction:
            payload["response_instruction"] = config.response_instruction
        if config.tool_resources:
            payload["tool_resources"] = config.tool_resources
        return payload

    async def _headers(self) -> dict:
        try:
            token = await self.token_provider.get_access_token()
        except Exception as e:
            raise AgentUnavailableError(f"Error generating access token: {e}") from e
        if not token:
            raise AgentUnavailableError("No access token available for Cortex Agents API")
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "Accept": "text/event-stream, application/json",
            "X-Snowflake-Authorization-Token-Type": self.token_provider.token_type,
        }

    @asynccontextmanager
    async def open_stream(self, payload: dict) -> AsyncIterator[httpx.Response]:
        """POST *payload* and yield the response with its body unread."""
        headers = await self._headers()
        url = self.settings.endpoint
        logger.info(f"Making Cortex Agents API request to: {url}")
        request = self.client.build_request("POST", url, json=payload, headers=headers)
        try:
            response = await self.client.send(request, stream=True)
        except httpx.TimeoutException as e:
            raise AgentTimeoutError(
                f"Cortex Agents API timeout after {self.settings.timeout} seconds"
            ) from e
        except httpx.TransportError as e:
            raise AgentUnavailableError(f"Could not reach Cortex Agents API: {e}") from e

        try:
            logger.info(f"API Response Status: {response.status_code}")
            if response.status_code >= 400:
                try:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                except httpx.HTTPError:
                    body = ""
                raise AgentUnavailableError(
                    f"Cortex Agents API returned {response.status_code}: {body[:500]}",
                    status_code=response.status_code,
                )
            yield response
        finally:
            await response.aclose()
