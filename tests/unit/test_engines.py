"""Tests for the generation engines running against the mock provider."""

from types import SimpleNamespace

import pytest

from content_pipeline_providers import LLMProvider, ProviderCapabilities, ProviderRequest, ProviderResponse
from content_pipeline_providers.exceptions import ProviderResponseError
from content_pipeline_schemas import InsightCandidate, TitleSuggestion

from services.processor.app import generation
from services.processor.app.insights import generate_insights, select_insights
from services.processor.app.posts import generate_posts
from services.processor.app.repository import InMemoryProjectRepository
from services.processor.app.title import build_title_prompt, generate_project_title
from services.processor.app.transcript import normalize_transcript


pytestmark = pytest.mark.anyio("asyncio")

OWNER = "owner-1"


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def mock_provider(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LLM_PROVIDER", "mock")


class _StubProvider(LLMProvider):
    name = "mock"

    def __init__(self, text: str) -> None:
        self.text = text
        self.requests: list[ProviderRequest] = []

    def capabilities(self) -> ProviderCapabilities:
        return ProviderCapabilities(supports_json_mode=True)

    async def generate(self, request: ProviderRequest) -> ProviderResponse:
        self.requests.append(request)
        return ProviderResponse(
            text=self.text,
            raw={},
            model="stub-model",
            prompt_tokens=10,
            completion_tokens=5,
        )


def _use_stub(monkeypatch: pytest.MonkeyPatch, text: str) -> _StubProvider:
    provider = _StubProvider(text)
    monkeypatch.setattr(generation, "ProviderFactory", SimpleNamespace(create=lambda config: provider))
    return provider


async def test_normalize_transcript_with_mock() -> None:
    result = await normalize_transcript("  So   um, the client\n\nsaid yes.  ")
    assert result.transcript == "So um, the client said yes."


async def test_generate_title_with_stub(monkeypatch: pytest.MonkeyPatch) -> None:
    provider = _use_stub(monkeypatch, '```json\n{"title": "\\"Pricing Without Fear\\""}\n```')

    suggestion = await generate_project_title(build_title_prompt("We talked about pricing."))

    assert suggestion == TitleSuggestion(title="Pricing Without Fear")
    assert provider.requests[0].task == "title"
    assert "We talked about pricing." in provider.requests[0].prompt


async def test_invalid_json_raises_provider_error(monkeypatch: pytest.MonkeyPatch) -> None:
    _use_stub(monkeypatch, "Sure! Here is a title: Pricing")

    with pytest.raises(ProviderResponseError):
        await generate_project_title("prompt")


async def test_schema_mismatch_raises_provider_error(monkeypatch: pytest.MonkeyPatch) -> None:
    _use_stub(monkeypatch, '{"name": "Pricing"}')

    with pytest.raises(ProviderResponseError) as excinfo:
        await generate_project_title("prompt")
    assert excinfo.value.task == "title"


def test_select_insights_dedupes_sorts_and_limits() -> None:
    candidates = [
        InsightCandidate(content="Follow up the same day.", quote="q1", score=0.4),
        InsightCandidate(content="  follow up   the SAME day. ", quote="q2", score=0.9),
        InsightCandidate(content="Price on value.", quote="", score=0.7),
        InsightCandidate(content="   ", quote="q4", score=1.0),
        InsightCandidate(content="Record every call.", quote="q5", score=0.2),
    ]

    selected = select_insights(candidates, limit=2)

    assert [item.content for item in selected] == ["follow up   the SAME day.", "Price on value."]
    assert selected[0].quote == "q2"
    assert selected[1].quote == "Price on value."


async def test_generate_insights_stores_target_count_and_reuses() -> None:
    repository = InMemoryProjectRepository()
    project = repository.create_project(OWNER, "Call", "text")

    first = await generate_insights(repository, project.id, "Cleaned transcript.", 7)
    stored = repository.list_insights(project.id)
    second = await generate_insights(repository, project.id, "Cleaned transcript.", 7)

    assert first.count == 7
    assert second.count == 7
    assert len(repository.list_insights(project.id)) == 7
    scores = [insight.score for insight in stored]
    assert scores == sorted(scores, reverse=True)
    assert all(not insight.is_approved for insight in stored)


async def test_generate_insights_accepts_empty_batch(monkeypatch: pytest.MonkeyPatch) -> None:
    _use_stub(monkeypatch, '{"insights": []}')
    repository = InMemoryProjectRepository()
    project = repository.create_project(OWNER, "Call", "text")

    result = await generate_insights(repository, project.id, "Cleaned transcript.", 7)

    assert result.count == 0


async def test_generate_posts_only_drafts_missing_posts() -> None:
    repository = InMemoryProjectRepository()
    project = repository.create_project(OWNER, "Call", "text")
    await generate_insights(repository, project.id, "Cleaned transcript.", 7)

    first = await generate_posts(repository, OWNER, project.id, "Cleaned transcript.", 7)
    second = await generate_posts(repository, OWNER, project.id, "Cleaned transcript.", 7)

    posts = repository.list_posts(project.id)
    assert first.count == 7
    assert second.count == 7
    assert len(posts) == 7
    assert len({post.insight_id for post in posts}) == 7


async def test_generate_posts_respects_limit() -> None:
    repository = InMemoryProjectRepository()
    project = repository.create_project(OWNER, "Call", "text")
    await generate_insights(repository, project.id, "Cleaned transcript.", 7)

    result = await generate_posts(repository, OWNER, project.id, "Cleaned transcript.", 3)

    assert result.count == 3
    assert len(repository.list_posts(project.id)) == 3


async def test_generate_posts_without_insights_returns_zero() -> None:
    repository = InMemoryProjectRepository()
    project = repository.create_project(OWNER, "Call", "text")

    result = await generate_posts(repository, OWNER, project.id, "Cleaned transcript.", 7)

    assert result.count == 0


async def test_generate_posts_discards_unknown_insights(monkeypatch: pytest.MonkeyPatch) -> None:
    repository = InMemoryProjectRepository()
    project = repository.create_project(OWNER, "Call", "text")
    [insight] = repository.add_insights(
        project.id, [InsightCandidate(content="Record every call.", quote="q", score=0.5)]
    )
    body = "Recording every client call changed how our team learns from mistakes."
    _use_stub(
        monkeypatch,
        '{"posts": ['
        f'{{"insight_id": "{insight.id}", "content": "   "}},'
        f'{{"insight_id": "{insight.id}", "content": "{body}"}},'
        f'{{"insight_id": "00000000-0000-0000-0000-000000000000", "content": "{body}"}}'
        "]}",
    )

    result = await generate_posts(repository, OWNER, project.id, "Cleaned transcript.", 7)

    assert result.count == 1
    assert repository.list_posts(project.id)[0].insight_id == insight.id
