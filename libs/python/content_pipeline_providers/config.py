"""Configuration models and helpers for provider selection."""

from __future__ import annotations

import os
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .exceptions import ProviderConfigError

PROVIDER_ENV_VAR = "LLM_PROVIDER"
DEFAULT_PROVIDER = "mock"


class ProviderSettings(BaseModel):
    """Per-call default parameters."""

    temperature: float = Field(0.4, ge=0, le=2)
    max_output_tokens: int | None = Field(None, ge=16)
    top_p: float | None = Field(None, ge=0, le=1)
    json_mode: bool = Field(False)
    reasoning_effort: str | None = Field(
        None, description="Default reasoning effort for OpenAI reasoning models"
    )
    thinking_budget: int | None = Field(
        None, description="Default thinking token budget for Gemini 2.5 models; -1 is dynamic"
    )


class ProviderConfig(BaseModel):
    """Configuration for a single provider instance."""

    model_config = ConfigDict(frozen=True)

    name: str
    api_key: str
    model: str
    settings: ProviderSettings = Field(default_factory=ProviderSettings)


def load_provider_config(prefix: str | None = None, task: str | None = None) -> ProviderConfig:
    """Load configuration from environment variables.

    Args:
        prefix: Optional prefix for environment variables (defaults to ``LLM_PROVIDER``).
        task: Optional pipeline task; ``<PREFIX>_<TASK>_MODEL`` overrides the model.

    Environment variables used (assuming prefix "GEMINI" and task "title"):
        GEMINI_API_KEY
        GEMINI_MODEL
        GEMINI_TITLE_MODEL (optional)
        GEMINI_TEMPERATURE (optional)
        GEMINI_MAX_OUTPUT_TOKENS (optional)
        GEMINI_TOP_P (optional)
        GEMINI_JSON_MODE (optional boolean)
        GEMINI_REASONING_EFFORT (optional)
        GEMINI_THINKING_BUDGET (optional)

    Returns:
        ProviderConfig object populated from environment variables.

    Raises:
        ProviderConfigError: If required variables are missing or invalid.
    """

    env_prefix = (prefix or os.getenv(PROVIDER_ENV_VAR, DEFAULT_PROVIDER)).upper()

    def read_env(key: str, default: Any | None = None) -> Any:
        value = os.getenv(f"{env_prefix}_{key}", default)
        if isinstance(value, str):
            value = value.strip()
            if not value:
                return default
        return value

    api_key = read_env("API_KEY")
    model = (read_env(f"{task.upper()}_MODEL") if task else None) or read_env("MODEL")
    if not api_key or not model:
        raise ProviderConfigError(f"{env_prefix}_API_KEY or {env_prefix}_MODEL not configured")

    try:
        temperature = float(read_env("TEMPERATURE", 0.4))
    except ValueError as exc:
        raise ProviderConfigError(f"{env_prefix}_TEMPERATURE must be a float") from exc

    max_output_tokens = _parse_optional_int(read_env("MAX_OUTPUT_TOKENS"), f"{env_prefix}_MAX_OUTPUT_TOKENS")
    if max_output_tokens is not None and max_output_tokens <= 0:
        max_output_tokens = None

    top_p_raw = read_env("TOP_P")
    try:
        top_p = float(top_p_raw) if top_p_raw is not None else None
    except ValueError as exc:
        raise ProviderConfigError(f"{env_prefix}_TOP_P must be a float between 0 and 1") from exc

    settings = ProviderSettings(
        temperature=temperature,
        max_output_tokens=max_output_tokens,
        top_p=top_p,
        json_mode=_parse_bool(read_env("JSON_MODE", False)),
        reasoning_effort=read_env("REASONING_EFFORT"),
        thinking_budget=_parse_optional_int(read_env("THINKING_BUDGET"), f"{env_prefix}_THINKING_BUDGET"),
    )

    return ProviderConfig(name=env_prefix.lower(), api_key=api_key, model=model, settings=settings)


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in {"true", "1", "yes", "on"}


def _parse_optional_int(value: Any, variable: str) -> int | None:
    if value is None:
        return None
    try:
        return int(str(value))
    except ValueError as exc:
        raise ProviderConfigError(f"{variable} must be an integer") from exc
