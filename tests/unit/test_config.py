"""Unit tests for Settings."""

import pytest

from cortexrelay.config import DEFAULT_RESPONSE_INSTRUCTION, Settings, default_experimental


@pytest.fixture
def clean_env(monkeypatch):
    for name in (
        "SNOWFLAKE_ACCOUNT", "SNOWFLAKE_USERNAME", "SNOWFLAKE_PASSWORD",
        "SNOWFLAKE_ACCESS_TOKEN", "SNOWFLAKE_TOKEN_TYPE", "SNOWFLAKE_DATABASE",
        "SNOWFLAKE_SCHEMA", "SNOWFLAKE_WAREHOUSE", "SNOWFLAKE_ROLE",
        "CORTEX_AGENTS_AGENT_NAME", "CORTEX_AGENTS_URL", "CORTEX_AGENTS_MODEL",
        "CORTEX_AGENTS_TIMEOUT", "CORTEX_AGENTS_SURFACE_TOOL_RESULTS",
        "INCLUDE_AGENT_THINKING", "DEBUG_DELTAS", "DEBUG", "CSV_EXPORT_DIR",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestFromEnv:
    def test_defaults(self, clean_env):
        s = Settings.from_env()
        assert s.agent_name is None
        assert s.model == "llama3.3-70b"
        assert s.timeout == 60
        assert s.include_thinking is False
        assert s.trace_deltas is False
        assert s.response_instruction == DEFAULT_RESPONSE_INSTRUCTION
        assert s.experimental == default_experimental()

    def test_reads_environment(self, clean_env):
        clean_env.setenv("SNOWFLAKE_ACCOUNT", "xy12345.us-east-1")
        clean_env.setenv("SNOWFLAKE_SCHEMA", "PUBLIC")
        clean_env.setenv("CORTEX_AGENTS_AGENT_NAME", "sales_agent")
        clean_env.setenv("CORTEX_AGENTS_TIMEOUT", "15")
        clean_env.setenv("INCLUDE_AGENT_THINKING", "true")
        clean_env.setenv("DEBUG_DELTAS", "1")
        clean_env.setenv("CORTEX_AGENTS_SURFACE_TOOL_RESULTS", "yes")

        s = Settings.from_env()
        assert s.account == "xy12345.us-east-1"
        assert s.schema_name == "PUBLIC"
        assert s.agent_name == "sales_agent"
        assert s.timeout == 15
        assert s.include_thinking is True
        assert s.trace_deltas is True
        assert s.surface_tool_results is True

    def test_bad_timeout_falls_back(self, clean_env):
        clean_env.setenv("CORTEX_AGENTS_TIMEOUT", "soon")
        assert Settings.from_env().timeout == 60

    def test_empty_agent_name_is_none(self, clean_env):
        clean_env.setenv("CORTEX_AGENTS_AGENT_NAME", "")
        assert Settings.from_env().agent_name is None


class TestDerived:
    def test_endpoint_from_account(self):
        s = Settings(account="xy12345.us-east-1")
        assert s.account_identifier == "xy12345"
        assert s.endpoint == "https://xy12345.snowflakecomputing.com/api/v2/cortex/agent:run"

    def test_endpoint_override(self):
        s = Settings(account="xy12345", agent_url="http://localhost:9000/run")
        assert s.endpoint == "http://localhost:9000/run"

    @pytest.mark.parametrize("surface", [True, False])
    def test_tool_result_visibility_is_configurable(self, surface):
        flags = Settings(surface_tool_results=surface).experimental_flags()
        assert flags["enableAnalystToolResultInTopLevelFields"] is surface

    def test_experimental_flags_copy(self):
        s = Settings()
        s.experimental_flags()["chartToolRequired"] = False
        assert s.experimental["chartToolRequired"] is True
