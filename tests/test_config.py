"""Tests for WorkflowSettings and provider resolution."""

import pytest

from browser_workflow.config import ModelSettings, ProviderKind, WorkflowSettings
from browser_workflow.errors import ConfigurationError


ENV_VARS = [
    "WORKFLOW_PROVIDER",
    "WORKFLOW_MODEL",
    "WORKFLOW_PLANNER_MODEL",
    "WORKFLOW_ALLOWED_DOMAINS",
    "WORKFLOW_TYPE_APPROVAL_THRESHOLD",
    "WORKFLOW_APPROVAL_TIMEOUT",
    "WORKFLOW_MAX_RETRIES",
    "WORKFLOW_MAX_STEPS",
    "YOU_API_KEY",
    "OPIK_ENABLED",
    "OPIK_PROJECT_NAME",
    "GOOGLE_API_KEY",
    "OPENROUTER_API_KEY",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    settings = WorkflowSettings.from_env()

    assert settings.model.provider == ProviderKind.GOOGLE
    assert settings.model.resolved_model == "gemini-2.5-pro"
    assert settings.resolved_planner_model is settings.model
    assert settings.max_retries == 2
    assert settings.max_steps == 100
    assert settings.approval.allowed_domains == []
    assert settings.approval.type_text_threshold == 100
    assert settings.search_api_key is None
    assert settings.tracing_enabled is False


def test_from_env(monkeypatch):
    monkeypatch.setenv("WORKFLOW_PROVIDER", "OpenRouter")
    monkeypatch.setenv("WORKFLOW_MODEL", "some/model")
    monkeypatch.setenv("WORKFLOW_PLANNER_MODEL", "some/planner")
    monkeypatch.setenv("WORKFLOW_ALLOWED_DOMAINS", "Example.com, shop.example.org,,")
    monkeypatch.setenv("WORKFLOW_MAX_RETRIES", "1")
    monkeypatch.setenv("YOU_API_KEY", "you-key")
    monkeypatch.setenv("OPIK_ENABLED", "true")

    settings = WorkflowSettings.from_env()

    assert settings.model.provider == ProviderKind.OPENROUTER
    assert settings.model.resolved_model == "some/model"
    assert settings.resolved_planner_model.resolved_model == "some/planner"
    assert settings.resolved_planner_model.provider == ProviderKind.OPENROUTER
    assert settings.approval.allowed_domains == ["example.com", "shop.example.org"]
    assert settings.max_retries == 1
    assert settings.search_api_key == "you-key"
    assert settings.tracing_enabled is True
    assert settings.model.profile.default_headers["X-Title"]


def test_overrides_take_precedence(monkeypatch):
    monkeypatch.setenv("WORKFLOW_MAX_STEPS", "50")

    settings = WorkflowSettings.from_env(max_steps=10, analyze_failures=False)

    assert settings.max_steps == 10
    assert settings.analyze_failures is False


def test_unknown_provider(monkeypatch):
    monkeypatch.setenv("WORKFLOW_PROVIDER", "acme")

    with pytest.raises(ConfigurationError, match="Unknown provider 'acme'"):
        WorkflowSettings.from_env()


def test_require_api_key_names_env_var(monkeypatch):
    with pytest.raises(ConfigurationError, match="GOOGLE_API_KEY"):
        ModelSettings().require_api_key()

    monkeypatch.setenv("GOOGLE_API_KEY", "g-key")
    assert ModelSettings().require_api_key() == "g-key"
    assert ModelSettings(api_key="explicit").require_api_key() == "explicit"


def test_resolved_base_url():
    assert ModelSettings(provider=ProviderKind.NIM).resolved_base_url == "https://integrate.api.nvidia.com/v1"
    assert ModelSettings(base_url="http://localhost:8000/v1/").resolved_base_url == "http://localhost:8000/v1"
