"""Exception types raised by cortexrelay.

Only transport-level failures during an active agent stream escape the
public entry points. Everything else is folded into a
:class:`~cortexrelay.models.SynthesizedResult`.
"""


class CortexRelayError(Exception):
    """Base class for all cortexrelay errors."""


class ConfigurationError(CortexRelayError):
    """Raised when required settings or the agent configuration are missing."""


class AgentUnavailableError(CortexRelayError):
    """The agent API could not be reached before a response stream opened.

    Raised for missing credentials, connection failures and HTTP error
    statuses. The runner answers it with the fallback query.
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class AgentTransportError(CortexRelayError):
    """The agent response stream failed after it was opened."""


class AgentTimeoutError(AgentTransportError):
    """The agent call exceeded its deadline."""


class QueryExecutionError(CortexRelayError):
    """A warehouse statement failed."""

    def __init__(self, message: str, statement: str = ""):
        super().__init__(message)
        self.statement = statement
