"""Provider lookup keyed by the configured provider name."""

from __future__ import annotations

import logging
from typing import Dict, Tuple, Type

from .base import LLMProvider
from .config import ProviderConfig, load_provider_config
from .exceptions import ProviderConfigError
from .gemini import GeminiProvider
from .mock import MockProvider
from .openai import OpenAIProvider

logger = logging.getLogger(__name__)

PROVIDERS: Dict[str, Type[LLMProvider]] = {
    "gemini": GeminiProvider,
    "openai": OpenAIProvider,
    "mock": MockProvider,
}


def provider_names() -> Tuple[str, ...]:
    return tuple(sorted(PROVIDERS))


class ProviderFactory:
    """Builds the adapter named by a :class:`ProviderConfig`."""

    @staticmethod
    def create(config: ProviderConfig | None = None) -> LLMProvider:
        config = config or load_provider_config()
        key = config.name.strip().lower()
        try:
            provider_cls = PROVIDERS[key]
        except KeyError:
            raise ProviderConfigError(
                f"Unknown provider '{config.name}'; expected one of {', '.join(provider_names())}"
            ) from None
        logger.debug("Creating provider", extra={"provider": key, "model": config.model})
        return provider_cls(config)
