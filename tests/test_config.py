"""Tests for settings validation and per-run configuration."""

import pytest
from pydantic import ValidationError

from pagepilot.config import (
    AgentConfig,
    Settings,
)


def _settings(**values) -> Settings:
    return Settings(_env_file=None, **values)


def test_azure_endpoint_must_use_https() -> None:
    with pytest.raises(ValidationError, match="HTTPS"):
        _settings(AZURE_OPENAI_ENDPOINT="http://example.openai.azure.com")

    assert _settings(AZURE_OPENAI_ENDPOINT="  ").AZURE_OPENAI_ENDPOINT is None


@pytest.mark.parametrize(
    "values, configured",
    [
        ({"PLANNER": "openai", "OPENAI_API_KEY": "sk-test"}, True),
        ({"PLANNER": "openai", "OPENAI_API_KEY": ""}, False),
        ({"PLANNER": "anthropic", "ANTHROPIC_API_KEY": "key"}, True),
        (
            {
                "PLANNER": "azure",
                "AZURE_OPENAI_ENDPOINT": "https://x.openai.azure.com",
                "AZURE_OPENAI_API_KEY": "key",
            },
            False,
        ),
        (
            {
                "PLANNER": "Azure",
                "AZURE_OPENAI_ENDPOINT": "https://x.openai.azure.com",
                "AZURE_OPENAI_API_KEY": "key",
                "AZURE_OPENAI_DEPLOYMENT": "gpt",
            },
            True,
        ),
    ],
)
def test_planner_configured(values, configured) -> None:
    assert _settings(**values).planner_configured() is configured


def test_agent_config_from_settings() -> None:
    source = _settings(MAX_ITERATIONS=7, AUTO_APPROVE=True, SETTLE_DELAY_MS=0)

    config = AgentConfig.from_settings(source, max_iterations=None, auto_approve=False)

    assert config.max_iterations == 7
    assert config.auto_approve is False
    assert config.settle_delay_ms == 0
    assert config.single_turn is False


def test_agent_config_rejects_zero_iterations() -> None:
    with pytest.raises(ValidationError):
        AgentConfig(max_iterations=0)
