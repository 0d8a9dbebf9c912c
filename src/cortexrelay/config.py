import os

from pydantic import BaseModel, Field

DEFAULT_RESPONSE_INSTRUCTION = (
    "You are a helpful data analyst. Provide clear, concise answers about "
    "the data. When generating charts, make them visually appealing and "
    "easy to understand."
)


def default_experimental() -> dict:
    """Experimental flags sent with every agent request."""
    return {
        "chartToolRequired": True,
        "useLegacyAnswersToolNames": False,
        "snowflakeIntelligence": True,
        "enableChartAndTableContent": True,
        "enableAnalystStreaming": False,
        "searchResultConfidenceThreshold": {"enabled": True, "threshold": 1.5},
        "enableSSEAsString": True,
        "reasoningAgentToolConfig": {"orchestrationType": "reasoning"},
        "enableStepTrace": True,
        "enableSqlExplanation": False,
        "enableCortexLiteAgentIntegrateWithThread": True,
        "sqlGenMode": "STANDARD",
        "reasoningAgentFlowType": "simple",
        "responseSchemaVersion": "v1",
    }


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    try:
        return int(value) if value else default
    except ValueError:
        return default


class Settings(BaseModel):
    """Runtime configuration for the relay.

    Build one from the process environment with :meth:`from_env`, or
    construct it directly in tests.

    Args:
        account: Snowflake account (``xy12345`` or ``xy12345.us-east-1``).
        agent_name: Name of the Cortex agent whose spec drives requests.
        include_thinking: Capture the agent's reasoning and return it as
            a separate message.
        trace_deltas: Emit per-delta previews through the tracing sink.
        surface_tool_results: Ask the agent to copy raw tool results into
            top-level response fields.
    """

    account: str = ""
    user: str = ""
    password: str | None = None
    access_token: str | None = None
    token_type: str = "PROGRAMMATIC_ACCESS_TOKEN"
    database: str | None = None
    schema_name: str | None = None
    warehouse: str | None = None
    role: str | None = None

    agent_name: str | None = None
    agent_namespace: str = "snowflake_intelligence.agents"
    agent_url: str | None = None
    model: str = "llama3.3-70b"
    response_instruction: str = DEFAULT_RESPONSE_INSTRUCTION
    timeout: float = 60.0
    experimental: dict = Field(default_factory=default_experimental)
    surface_tool_results: bool = False

    include_thinking: bool = False
    trace_deltas: bool = False

    table_row_limit: int = 20
    inline_csv_limit: int = 10
    message_limit: int = 4000
    export_dir: str = "exports"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            account=os.getenv("SNOWFLAKE_ACCOUNT", ""),
            user=os.getenv("SNOWFLAKE_USERNAME", ""),
            password=os.getenv("SNOWFLAKE_PASSWORD"),
            access_token=os.getenv("SNOWFLAKE_ACCESS_TOKEN"),
            token_type=os.getenv("SNOWFLAKE_TOKEN_TYPE", "PROGRAMMATIC_ACCESS_TOKEN"),
            database=os.getenv("SNOWFLAKE_DATABASE"),
            schema_name=os.getenv("SNOWFLAKE_SCHEMA"),
            warehouse=os.getenv("SNOWFLAKE_WAREHOUSE"),
            role=os.getenv("SNOWFLAKE_ROLE"),
            agent_name=os.getenv("CORTEX_AGENTS_AGENT_NAME") or None,
            agent_url=os.getenv("CORTEX_AGENTS_URL") or None,
            model=os.getenv("CORTEX_AGENTS_MODEL", "llama3.3-70b"),
            timeout=_env_int("CORTEX_AGENTS_TIMEOUT", 60),
            surface_tool_results=_env_flag("CORTEX_AGENTS_SURFACE_TOOL_RESULTS"),
            include_thinking=_env_flag("INCLUDE_AGENT_THINKING"),
            trace_deltas=_env_flag("DEBUG_DELTAS") or _env_flag("DEBUG"),
            export_dir=os.getenv("CSV_EXPORT_DIR", "exports"),
        )

    @property
    def account_identifier(self) -> str:
        return self.account.split(".")[0]

    @property
    def endpoint(self) -> str:
        if self.agent_url:
            return self.agent_url
        return (
            f"https://{self.account_identifier}.snowflakecomputing.com"
            "/api/v2/cortex/agent:run"
        )

    def experimental_flags(self) -> dict:
        """Experimental flags with tool-result visibility applied."""
        flags = dict(self.experimental)
        flags["enableAnalystToolResultInTopLevelFields"] = self.surface_tool_results
        return flags
