"""Errors raised by provider adapters and response parsing."""

from __future__ import annotations

from typing import Optional


class ProviderError(RuntimeError):
    """Any failure talking to, or interpreting, a language model."""


class ProviderConfigError(ProviderError):
    """Provider name, credentials or tuning variables are missing or malformed."""


class ProviderResponseError(ProviderError):
    """The provider answered, but the answer cannot be used.

    ``task`` names the pipeline step whose response was rejected when known.
    """

    def __init__(self, message: str, *, task: Optional[str] = None) -> None:
        super().__init__(message)
        self.task = task
