"""Utilities for working with provider configurations inside the processor."""

from __future__ import annotations

import os

from content_pipeline_providers import ProviderConfig, ProviderSettings, load_provider_config
from content_pipeline_providers.config import DEFAULT_PROVIDER, PROVIDER_ENV_VAR


def resolve_provider_config(task: str) -> ProviderConfig:
    """Return the provider configuration used for ``task``.

    ``LLM_PROVIDER=mock`` (the default) needs no credentials. Real providers read
    ``<PROVIDER>_*`` variables, with ``<PROVIDER>_<TASK>_MODEL`` taking precedence
    over ``<PROVIDER>_MODEL``.
    """

    provider_name = os.getenv(PROVIDER_ENV_VAR, DEFAULT_PROVIDER).strip().lower() or DEFAULT_PROVIDER
    if provider_name == "mock":
        return ProviderConfig(name="mock", api_key="mock", model="mock", settings=ProviderSettings())
    return load_provider_config(prefix=provider_name, task=task)
