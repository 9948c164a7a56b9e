"""Shared helper for schema-constrained provider calls."""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping, Type, TypeVar

from pydantic import BaseModel, ValidationError

from content_pipeline_observability import observe_provider_response
from content_pipeline_providers import ProviderFactory, ProviderRequest
from content_pipeline_providers.exceptions import ProviderResponseError

from .providers import resolve_provider_config
from .settings import SERVICE_NAME

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


async def request_structured(
    task: str,
    prompt: str,
    schema: Type[ModelT],
    *,
    system_prompt: str | None = None,
    temperature: float | None = None,
    metadata: Mapping[str, Any] | None = None,
) -> ModelT:
    """Ask the configured provider for JSON matching ``schema`` and validate it.

    Raises:
        ProviderResponseError: If the response is not JSON or does not match ``schema``.
        ProviderConfigError: If the provider for ``task`` is not configured.
    """

    provider_config = resolve_provider_config(task)
    provider = ProviderFactory.create(provider_config)
    request = ProviderRequest(
        prompt=prompt,
        task=task,
        system_prompt=system_prompt,
        json_schema=schema.model_json_schema(),
        temperature=temperature,
        metadata=dict(metadata or {}),
    )
    response = await provider.generate(request)
    observe_provider_response(
        task=task,
        provider=provider_config.name,
        service_name=SERVICE_NAME,
        response=response,
    )
    logger.debug(
        "Provider call completed",
        extra={
            "task": task,
            "provider": provider_config.name,
            "model": response.model,
            "prompt_tokens": response.prompt_tokens,
            "completion_tokens": response.completion_tokens,
            "latency_ms": response.latency_ms,
            "cost_usd": response.cost_usd,
        },
    )
    return parse_structured(response.text, schema, task)


def parse_structured(payload: str, schema: Type[ModelT], task: str) -> ModelT:
    try:
        data = json.loads(_strip_code_fence(payload))
    except json.JSONDecodeError as exc:
        raise ProviderResponseError(f"{task} response was not valid JSON", task=task) from exc
    try:
        return schema.model_validate(data)
    except ValidationError as exc:
        raise ProviderResponseError(
            f"{task} response did not match the expected schema", task=task
        ) from exc


def _strip_code_fence(payload: str) -> str:
    text = payload.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return text.strip()
