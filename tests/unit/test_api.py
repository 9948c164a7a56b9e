"""HTTP-level tests for the processor service."""

import asyncio
from datetime import datetime, timedelta
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient

from content_pipeline_providers.mock import MOCK_TITLE
from content_pipeline_schemas import (
    GenerationResult,
    NormalizedTranscript,
    PostDraftCandidate,
    ProjectStage,
    TitleSuggestion,
)

from services.processor.app.collaborators import ProcessingCollaborators, build_default_collaborators
from services.processor.app.main import create_app
from services.processor.app.repository import InMemoryProjectRepository
from services.processor.app.settings import ProcessingSettings
from tests.utils.sse import event_names, parse_sse

OWNER = "owner-1"
HEADERS = {"X-User-Id": OWNER}
TRANSCRIPT = "So, um, the client said our onboarding calls run too long and nobody follows up."


@pytest.fixture(autouse=True)
def mock_provider(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LLM_PROVIDER", "mock")


def _settings(**overrides) -> ProcessingSettings:
    return ProcessingSettings.for_environment("test", **overrides)


def _client(repository=None, settings=None, collaborators=None) -> TestClient:
    repository = repository or InMemoryProjectRepository()
    app = create_app(
        repository=repository,
        settings=settings or _settings(),
        collaborators=collaborators or build_default_collaborators(repository),
    )
    return TestClient(app)


def _stub_collaborators(*, fail_insights: bool = False, slow_insights: float = 0.0) -> ProcessingCollaborators:
    async def normalize(raw: str) -> NormalizedTranscript:
        return NormalizedTranscript(transcript=raw.strip())

    async def title(prompt: str) -> TitleSuggestion:
        return TitleSuggestion(title="Onboarding Calls")

    async def insights(project_id, transcript: str, target_count: int) -> GenerationResult:
        if slow_insights:
            await asyncio.sleep(slow_insights)
        if fail_insights:
            raise RuntimeError("upstream 503: internal quota exceeded for key sk-live-123")
        return GenerationResult(count=target_count)

    async def posts(owner_id: str, project_id, transcript: str, limit: int) -> GenerationResult:
        return GenerationResult(count=limit)

    return ProcessingCollaborators(
        normalize_transcript=normalize,
        generate_title=title,
        generate_insights=insights,
        generate_posts=posts,
    )


def _create(client: TestClient, title: str | None = None, owner: str = OWNER) -> dict:
    body = {"transcript": TRANSCRIPT}
    if title is not None:
        body["title"] = title
    response = client.post("/projects", json=body, headers={"X-User-Id": owner})
    assert response.status_code == 201
    return response.json()["project"]


def test_health() -> None:
    client = _client()
    assert client.get("/health").json() == {"status": "ok"}


def test_create_project_uses_camel_case_and_placeholder_title() -> None:
    client = _client()

    project = _create(client)

    assert project["title"] == "Untitled Project"
    assert project["currentStage"] == "processing"
    assert project["processingProgress"] == 0
    assert project["processingStep"] is None
    assert project["transcriptCleaned"] is None
    assert project["ownerId"] == OWNER
    assert "processingRunId" not in project


def test_missing_user_header_is_unauthorized() -> None:
    client = _client()

    response = client.post("/projects", json={"transcript": TRANSCRIPT})

    assert response.status_code == 401
    assert response.json()["code"] == "UNAUTHORIZED"


def test_unknown_and_foreign_projects() -> None:
    client = _client()
    project = _create(client)

    missing = client.get(f"/projects/{uuid4()}", headers=HEADERS)
    assert missing.status_code == 404
    assert missing.json() == {"error": "Project not found", "code": "NOT_FOUND", "status": 404}

    foreign = client.get(f"/projects/{project['id']}", headers={"X-User-Id": "intruder"})
    assert foreign.status_code == 403
    assert foreign.json()["code"] == "FORBIDDEN"


def test_list_projects_paginates_and_filters() -> None:
    client = _client()
    for index in range(3):
        _create(client, title=f"Call {index}")
    _create(client, title="Quarterly review")
    _create(client, title="Not mine", owner="other")

    first_page = client.get("/projects", params={"page": 1, "pageSize": 2}, headers=HEADERS).json()
    assert first_page["meta"] == {"page": 1, "pageSize": 2, "total": 4}
    assert len(first_page["items"]) == 2

    searched = client.get("/projects", params={"q": "quarterly"}, headers=HEADERS).json()
    assert [item["title"] for item in searched["items"]] == ["Quarterly review"]

    by_stage = client.get("/projects", params=[("stage", "posts"), ("stage", "ready")], headers=HEADERS).json()
    assert by_stage["meta"]["total"] == 0


def test_update_title_and_delete() -> None:
    client = _client()
    project = _create(client)

    renamed = client.patch(f"/projects/{project['id']}", json={"title": "  Kickoff  "}, headers=HEADERS)
    assert renamed.status_code == 200
    assert renamed.json()["project"]["title"] == "Kickoff"

    deleted = client.delete(f"/projects/{project['id']}", headers=HEADERS)
    assert deleted.status_code == 204
    assert client.get(f"/projects/{project['id']}", headers=HEADERS).status_code == 404


def test_stage_advances_one_step() -> None:
    client = _client()
    project = _create(client)

    response = client.put(f"/projects/{project['id']}/stage", json={"nextStage": "posts"}, headers=HEADERS)

    assert response.status_code == 200
    assert response.json()["project"]["currentStage"] == "posts"


def test_stage_skip_is_rejected_with_allowed_next() -> None:
    client = _client()
    project = _create(client)

    response = client.put(f"/projects/{project['id']}/stage", json={"nextStage": "ready"}, headers=HEADERS)

    assert response.status_code == 422
    body = response.json()
    assert body["code"] == "INVALID_TRANSITION"
    assert body["from"] == "processing"
    assert body["to"] == "ready"
    assert body["allowedNext"] == "posts"


def test_stage_update_from_terminal_stage() -> None:
    client = _client()
    project = _create(client)
    for stage in ("posts", "ready"):
        client.put(f"/projects/{project['id']}/stage", json={"nextStage": stage}, headers=HEADERS)

    response = client.put(f"/projects/{project['id']}/stage", json={"nextStage": "processing"}, headers=HEADERS)

    assert response.status_code == 422
    assert response.json()["allowedNext"] is None


def test_stage_update_rejected_while_processing_lock_held() -> None:
    repository = InMemoryProjectRepository()
    client = _client(repository=repository)
    project = _create(client)
    repository.acquire_processing_lock(UUID(project["id"]), OWNER, uuid4(), timedelta(minutes=5))

    response = client.put(f"/projects/{project['id']}/stage", json={"nextStage": "posts"}, headers=HEADERS)

    assert response.status_code == 409
    assert response.json()["code"] == "PROCESSING_IN_PROGRESS"
    assert repository.get_project(UUID(project["id"])).current_stage == ProjectStage.PROCESSING


def test_stage_update_allowed_once_lock_is_stale() -> None:
    repository = InMemoryProjectRepository()
    client = _client(repository=repository)
    project = _create(client)
    project_id = UUID(project["id"])
    repository.acquire_processing_lock(project_id, OWNER, uuid4(), timedelta(minutes=5))
    stored = repository._projects[project_id]
    repository._projects[project_id] = stored.model_copy(
        update={"processing_locked_at": datetime.utcnow() - timedelta(hours=1)}
    )

    response = client.put(f"/projects/{project['id']}/stage", json={"nextStage": "posts"}, headers=HEADERS)

    assert response.status_code == 200
    assert response.json()["project"]["currentStage"] == "posts"


def test_overlapping_stage_updates_do_not_move_backwards() -> None:
    class RacingRepository(InMemoryProjectRepository):
        raced = False

        def advance_stage(self, project_id, owner_id, from_stage, to_stage, fields=None, **conditions):
            if not self.raced:
                self.raced = True
                super().advance_stage(project_id, owner_id, from_stage, to_stage, fields)
            return super().advance_stage(project_id, owner_id, from_stage, to_stage, fields, **conditions)

    repository = RacingRepository()
    client = _client(repository=repository)
    project = _create(client)

    response = client.put(f"/projects/{project['id']}/stage", json={"nextStage": "posts"}, headers=HEADERS)

    assert response.status_code == 422
    body = response.json()
    assert body["code"] == "INVALID_TRANSITION"
    assert body["from"] == "posts"
    assert repository.get_project(UUID(project["id"])).current_stage == ProjectStage.POSTS


def test_process_rejected_outside_processing_stage() -> None:
    client = _client(collaborators=_stub_collaborators())
    project = _create(client)
    client.put(f"/projects/{project['id']}/stage", json={"nextStage": "posts"}, headers=HEADERS)

    response = client.post(f"/projects/{project['id']}/process", headers=HEADERS)

    assert response.status_code == 422
    assert response.headers["content-type"].startswith("application/json")
    assert response.json()["code"] == "NOT_PROCESSABLE"


def test_process_rejected_while_locked() -> None:
    repository = InMemoryProjectRepository()
    client = _client(repository=repository, collaborators=_stub_collaborators())
    project = _create(client)
    repository.acquire_processing_lock(UUID(project["id"]), OWNER, uuid4(), timedelta(minutes=5))

    response = client.post(f"/projects/{project['id']}/process", headers=HEADERS)

    assert response.status_code == 409
    assert response.json()["code"] == "PROCESSING_IN_PROGRESS"


def test_process_streams_events_and_advances_stage() -> None:
    client = _client(collaborators=_stub_collaborators())
    project = _create(client)

    response = client.post(f"/projects/{project['id']}/process", headers=HEADERS)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.headers["cache-control"] == "no-cache"
    assert response.headers["x-accel-buffering"] == "no"
    events = parse_sse(response.text)
    assert event_names(events) == ["started", "progress", "insights_ready", "posts_ready", "complete"]
    assert dict(events)["insights_ready"] == {"count": 7, "progress": 50}
    assert dict(events)["posts_ready"] == {"count": 7, "progress": 80}

    status = client.get(f"/projects/{project['id']}/status", headers=HEADERS).json()["project"]
    assert status == {"currentStage": "posts", "processingProgress": 100, "processingStep": "complete"}


def test_process_failure_emits_error_and_keeps_stage() -> None:
    client = _client(collaborators=_stub_collaborators(fail_insights=True))
    project = _create(client)

    response = client.post(f"/projects/{project['id']}/process", headers=HEADERS)

    events = parse_sse(response.text)
    assert event_names(events) == ["started", "progress", "error"]
    assert "sk-live-123" not in response.text

    status = client.get(f"/projects/{project['id']}/status", headers=HEADERS).json()["project"]
    assert status["processingStep"] == "error"
    assert status["currentStage"] == "processing"


def test_process_timeout_leaves_last_checkpoint() -> None:
    client = _client(
        settings=_settings(timeout_seconds=0.3, heartbeat_seconds=5),
        collaborators=_stub_collaborators(slow_insights=5),
    )
    project = _create(client, title="Named")

    response = client.post(f"/projects/{project['id']}/process", headers=HEADERS)

    names = event_names(parse_sse(response.text))
    assert names[-1] == "timeout"
    assert "complete" not in names

    status = client.get(f"/projects/{project['id']}/status", headers=HEADERS).json()["project"]
    assert status == {
        "currentStage": "processing",
        "processingProgress": 10,
        "processingStep": "normalize_transcript",
    }


def test_full_pipeline_with_mock_provider() -> None:
    client = _client()
    project = _create(client)

    response = client.post(f"/projects/{project['id']}/process", headers=HEADERS)

    events = parse_sse(response.text)
    assert event_names(events)[-1] == "complete"
    assert dict(events)["insights_ready"]["count"] == 7

    detail = client.get(f"/projects/{project['id']}", headers=HEADERS).json()["project"]
    assert detail["title"] == MOCK_TITLE
    assert detail["transcriptCleaned"] == " ".join(TRANSCRIPT.split())

    insights = client.get(f"/projects/{project['id']}/insights", headers=HEADERS).json()["items"]
    posts = client.get(f"/projects/{project['id']}/posts", headers=HEADERS).json()["items"]
    assert len(insights) == 7
    assert len(posts) == 7
    assert {post["insightId"] for post in posts} == {insight["id"] for insight in insights}
    assert all(post["status"] == "pending" for post in posts)


def _project_with_post(repository: InMemoryProjectRepository, client: TestClient) -> tuple[dict, str]:
    project = _create(client)
    draft = PostDraftCandidate(content="Shorter calls, faster follow-ups.")
    [post] = repository.add_posts(UUID(project["id"]), [draft])
    return project, str(post.id)


@pytest.mark.parametrize("decision", ["approved", "rejected"])
def test_review_post_records_decision(decision: str) -> None:
    repository = InMemoryProjectRepository()
    client = _client(repository=repository)
    project, post_id = _project_with_post(repository, client)

    response = client.patch(
        f"/projects/{project['id']}/posts/{post_id}", json={"status": decision}, headers=HEADERS
    )

    assert response.status_code == 200
    assert response.json()["post"]["status"] == decision
    posts = client.get(f"/projects/{project['id']}/posts", headers=HEADERS).json()["items"]
    assert [post["status"] for post in posts] == [decision]


def test_review_post_rejects_pending_status() -> None:
    repository = InMemoryProjectRepository()
    client = _client(repository=repository)
    project, post_id = _project_with_post(repository, client)

    response = client.patch(
        f"/projects/{project['id']}/posts/{post_id}", json={"status": "pending"}, headers=HEADERS
    )

    assert response.status_code == 422


def test_review_post_unknown_and_foreign() -> None:
    repository = InMemoryProjectRepository()
    client = _client(repository=repository)
    project, post_id = _project_with_post(repository, client)

    missing = client.patch(
        f"/projects/{project['id']}/posts/{uuid4()}", json={"status": "approved"}, headers=HEADERS
    )
    assert missing.status_code == 404
    assert missing.json() == {"error": "Post not found", "code": "NOT_FOUND", "status": 404}

    foreign = client.patch(
        f"/projects/{project['id']}/posts/{post_id}",
        json={"status": "approved"},
        headers={"X-User-Id": "intruder"},
    )
    assert foreign.status_code == 403


def test_status_stream_completes_for_processed_project() -> None:
    client = _client()
    project = _create(client)
    client.put(f"/projects/{project['id']}/stage", json={"nextStage": "posts"}, headers=HEADERS)

    response = client.get(f"/projects/{project['id']}/process/stream", headers=HEADERS)

    events = parse_sse(response.text)
    assert events[0] == ("progress", {"step": "snapshot", "progress": 0})
    assert event_names(events) == ["progress", "complete"]


def test_status_stream_times_out_for_idle_project() -> None:
    client = _client(settings=_settings(timeout_seconds=0.3))
    project = _create(client)

    response = client.get(f"/projects/{project['id']}/process/stream", headers=HEADERS)

    assert event_names(parse_sse(response.text)) == ["progress", "timeout"]


def test_status_stream_checks_ownership() -> None:
    client = _client()
    project = _create(client)

    response = client.get(f"/projects/{project['id']}/process/stream", headers={"X-User-Id": "intruder"})

    assert response.status_code == 403
