"""Tests for provider configuration loading."""

import os

import pytest

from content_pipeline_providers import ProviderConfigError, load_provider_config
from content_pipeline_providers.config import DEFAULT_PROVIDER, PROVIDER_ENV_VAR

from services.processor.app.providers import resolve_provider_config


@pytest.fixture(autouse=True)
def clear_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in list(os.environ):
        if key.startswith("OPENAI_") or key.startswith("GEMINI_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.delenv(PROVIDER_ENV_VAR, raising=False)


def test_load_openai_config(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(PROVIDER_ENV_VAR, "openai")
    monkeypatch.setenv("OPENAI_API_KEY", "key")
    monkeypatch.setenv("OPENAI_MODEL", "gpt-4.1")
    cfg = load_provider_config()
    assert cfg.name == "openai"
    assert cfg.api_key == "key"
    assert cfg.model == "gpt-4.1"


def test_task_model_overrides_default(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GEMINI_API_KEY", "key")
    monkeypatch.setenv("GEMINI_MODEL", "gemini-2.5-flash")
    monkeypatch.setenv("GEMINI_INSIGHTS_MODEL", "gemini-2.5-pro")
    assert load_provider_config(prefix="gemini", task="insights").model == "gemini-2.5-pro"
    assert load_provider_config(prefix="gemini", task="title").model == "gemini-2.5-flash"


def test_missing_variables_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(PROVIDER_ENV_VAR, "gemini")
    with pytest.raises(ProviderConfigError):
        load_provider_config()


def test_invalid_numbers_raise(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "key")
    monkeypatch.setenv("OPENAI_MODEL", "gpt-5-mini")
    monkeypatch.setenv("OPENAI_THINKING_BUDGET", "lots")
    with pytest.raises(ProviderConfigError):
        load_provider_config(prefix="openai")


def test_custom_prefix(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MYPROV_API_KEY", "abc")
    monkeypatch.setenv("MYPROV_MODEL", "model")
    monkeypatch.setenv("MYPROV_JSON_MODE", "yes")
    cfg = load_provider_config(prefix="myprov")
    assert cfg.name == "myprov"
    assert cfg.settings.temperature == 0.4
    assert cfg.settings.json_mode is True


def test_resolve_defaults_to_mock() -> None:
    cfg = resolve_provider_config("insights")
    assert DEFAULT_PROVIDER == "mock"
    assert cfg.name == "mock"


def test_resolve_reads_selected_provider(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(PROVIDER_ENV_VAR, "openai")
    monkeypatch.setenv("OPENAI_API_KEY", "key")
    monkeypatch.setenv("OPENAI_MODEL", "gpt-4.1-mini")
    monkeypatch.setenv("OPENAI_POSTS_MODEL", "gpt-5")
    assert resolve_provider_config("posts").model == "gpt-5"
    assert resolve_provider_config("title").model == "gpt-4.1-mini"
