"""Deterministic mock provider for tests and offline development."""

from __future__ import annotations

import json
from typing import Any

from .base import LLMProvider, ProviderCapabilities, ProviderRequest, ProviderResponse
from .config import ProviderConfig, ProviderSettings

DEFAULT_TEXT = "Mock response generated for testing."
MOCK_TITLE = "Lessons From a Client Call"


class MockProvider(LLMProvider):
    """Returns payloads shaped for each pipeline task without any network access.

    The engines pass task inputs through ``ProviderRequest.metadata`` so the mock
    can echo them back: ``transcript`` for normalization, ``target_count`` for
    insights and ``insight_ids`` for post drafting.
    """

    name = "mock"

    def __init__(self, config: ProviderConfig | None = None) -> None:
        if config is None:
            config = ProviderConfig(
                name="mock",
                api_key="mock",
                model="mock",
                settings=ProviderSettings(temperature=0.1),
            )
        self._config = config

    def capabilities(self) -> ProviderCapabilities:
        return ProviderCapabilities(supports_json_mode=True, max_output_tokens=2000)

    async def generate(self, request: ProviderRequest) -> ProviderResponse:
        payload: Any
        if request.json_schema:
            payload = self._structured_payload(request)
            text = json.dumps(payload)
        else:
            text = f"{DEFAULT_TEXT}\nPrompt: {request.prompt[:80]}"
            payload = text
        return ProviderResponse(
            text=text,
            raw={"mock": True, "payload": payload},
            model="mock",
            prompt_tokens=len(request.prompt.split()),
            completion_tokens=len(text.split()),
            cost_usd=0.0,
            latency_ms=1.0,
        )

    @staticmethod
    def _structured_payload(request: ProviderRequest) -> Any:
        metadata = request.metadata
        if request.task == "transcript":
            source = str(metadata.get("transcript", request.prompt))
            return {"transcript": " ".join(source.split())}
        if request.task == "title":
            return {"title": MOCK_TITLE}
        if request.task == "insights":
            count = int(metadata.get("target_count", 7))
            return {
                "insights": [
                    {
                        "content": f"Mock insight {index + 1}: clients value clear next steps.",
                        "quote": f"Quote {index + 1}",
                        "score": round(1.0 - index * 0.05, 2),
                    }
                    for index in range(count)
                ]
            }
        if request.task == "posts":
            return {
                "posts": [
                    {
                        "insight_id": insight_id,
                        "content": (
                            "Every client call teaches something new. "
                            f"This draft was generated offline for insight {insight_id}."
                        ),
                        "hashtags": ["#clients"],
                    }
                    for insight_id in metadata.get("insight_ids", [])
                ]
            }
        return {"message": DEFAULT_TEXT, "echo": request.prompt[:50]}
