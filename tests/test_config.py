import pytest

from config import Config
from screenpilot.models import ModelProvider, OperatorType

SETTINGS = {
    "model": {"provider": "anthropic"},
    "models": {
        "anthropic": {"name": "claude-test", "api_key": "${TEST_ANTHROPIC_KEY}"},
        "openai": {"name": "gpt-test"},
    },
    "agents": {"hybrid": {"max_iterations": 20, "continuation": {"success_window": 4}}},
    "operators": {"hybrid": {"headless": False}},
    "timeouts": {"model": 42, "browser_wait": 5},
}


@pytest.fixture(autouse=True)
def settings(monkeypatch):
    monkeypatch.setattr(Config, "SETTINGS", SETTINGS)


def test_get_setting_dot_path():
    assert Config.get_setting("models.openai.name") == "gpt-test"
    assert Config.get_setting("models.missing.name", "fallback") == "fallback"
    assert Config.get_setting("model.provider.deeper", 1) == 1


def test_env_placeholder(monkeypatch):
    monkeypatch.setenv("TEST_ANTHROPIC_KEY", "sk-ant")
    assert Config.get_setting("models.anthropic.api_key") == "sk-ant"
    monkeypatch.delenv("TEST_ANTHROPIC_KEY")
    assert Config.get_setting("models.anthropic.api_key", "none") == "none"


def test_api_key_falls_back_to_provider_env(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-openai")
    assert Config.get_api_key("openai") == "sk-openai"


def test_build_agent_config(monkeypatch):
    monkeypatch.setenv("TEST_ANTHROPIC_KEY", "sk-ant")
    agent_config = Config.build_agent_config("hybrid", overrides={"max_iterations": 3})

    assert agent_config.operator.type == OperatorType.HYBRID
    assert agent_config.operator.settings == {"headless": False, "timeout": 5000}
    assert agent_config.model.provider == ModelProvider.ANTHROPIC
    assert agent_config.model.name == "claude-test"
    assert agent_config.model.api_key == "sk-ant"
    assert agent_config.model.timeout == 42
    assert agent_config.settings.max_iterations == 3
    assert agent_config.settings.continuation.success_window == 4
    assert "max_iterations" in agent_config.settings.model_fields_set
