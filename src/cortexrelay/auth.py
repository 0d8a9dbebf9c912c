"""Bearer tokens for the agent API.

Generating tokens (key-pair JWTs, OAuth flows) happens elsewhere; the
relay only asks a provider for the current token. ``None`` means the
caller cannot authenticate and the agent call is skipped.
"""

import inspect
from collections.abc import Awaitable, Callable
from typing import Protocol

from cortexrelay.config import Settings


class TokenProvider(Protocol):
    token_type: str

    async def get_access_token(self) -> str | None:
        ...


class StaticTokenProvider:
    """Hands out a fixed token, e.g. a programmatic access token."""

    def __init__(
        self,
        token: str | None,
        token_type: str = "PROGRAMMATIC_ACCESS_TOKEN",
    ):
        self.token = token
        self.token_type = token_type

    async def get_access_token(self) -> str | None:
        return self.token or None

    @classmethod
    def from_settings(cls, settings: Settings) -> "StaticTokenProvider":
        return cls(settings.access_token, token_type=settings.token_type)


class CallbackTokenProvider:
    """Delegates to a sync or async callable, e.g. a JWT signer."""

    def __init__(
        self,
        func: Callable[[], str | None | Awaitable[str | None]],
        token_type: str = "KEYPAIR_JWT",
    ):
        self.func = func
        self.token_type = token_type

    async def get_access_token(self) -> str | None:
        token = self.func()
        if inspect.isawaitable(token):
            token = await token
        return token or None
