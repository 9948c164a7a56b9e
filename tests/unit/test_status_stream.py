"""Tests for the read-only status stream."""

import asyncio
from datetime import timedelta
from uuid import uuid4

import pytest

from content_pipeline_schemas import ProcessingEventType, ProcessingStep, ProjectStage

from services.processor.app.events import INTERRUPTED_MESSAGE
from services.processor.app.exceptions import ProjectAccessDenied, ProjectNotFound
from services.processor.app.repository import InMemoryProjectRepository
from services.processor.app.settings import ProcessingSettings
from services.processor.app.status_stream import open_status_stream


pytestmark = pytest.mark.anyio("asyncio")

OWNER = "owner-1"


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def repository() -> InMemoryProjectRepository:
    return InMemoryProjectRepository()


def _settings(**overrides) -> ProcessingSettings:
    values = {"poll_seconds": 0.02, "heartbeat_seconds": 10, "timeout_seconds": 2}
    values.update(overrides)
    return ProcessingSettings.for_environment("test", **values)


async def _collect(stream) -> list:
    return [event async for event in stream]


async def test_snapshot_then_complete_for_advanced_project(repository):
    project = repository.create_project(OWNER, "Call", "text")
    repository.update_project(
        project.id,
        OWNER,
        {
            "current_stage": ProjectStage.POSTS,
            "processing_progress": 100,
            "processing_step": ProcessingStep.COMPLETE,
        },
    )

    events = await _collect(await open_status_stream(project.id, OWNER, repository, _settings()))

    assert [event.event for event in events] == [ProcessingEventType.PROGRESS, ProcessingEventType.COMPLETE]
    assert events[0].data == {"step": "complete", "progress": 100}


async def test_follows_progress_until_stage_advances(repository):
    project = repository.create_project(OWNER, "Call", "text")
    stream = await open_status_stream(project.id, OWNER, repository, _settings())

    async def advance():
        await asyncio.sleep(0.05)
        repository.update_project(
            project.id, OWNER, {"processing_progress": 50, "processing_step": ProcessingStep.INSIGHTS_READY}
        )
        await asyncio.sleep(0.05)
        repository.update_project(
            project.id,
            OWNER,
            {
                "current_stage": ProjectStage.POSTS,
                "processing_progress": 100,
                "processing_step": ProcessingStep.COMPLETE,
            },
        )

    task = asyncio.create_task(advance())
    events = await _collect(stream)
    await task

    assert events[0].data == {"step": "snapshot", "progress": 0}
    progress = [event.data["progress"] for event in events if event.event == ProcessingEventType.PROGRESS]
    assert progress == [0, 50, 100]
    assert events[-1].event == ProcessingEventType.COMPLETE


async def test_error_checkpoint_ends_stream(repository):
    project = repository.create_project(OWNER, "Call", "text")
    stream = await open_status_stream(project.id, OWNER, repository, _settings())

    async def fail():
        await asyncio.sleep(0.05)
        repository.update_project(project.id, OWNER, {"processing_step": ProcessingStep.ERROR})

    task = asyncio.create_task(fail())
    events = await _collect(stream)
    await task

    assert events[-1].event == ProcessingEventType.ERROR


@pytest.mark.parametrize("step", [ProcessingStep.ERROR, ProcessingStep.INTERRUPTED])
async def test_stopped_run_ends_stream_after_snapshot(repository, step):
    project = repository.create_project(OWNER, "Call", "text")
    repository.update_project(project.id, OWNER, {"processing_progress": 50, "processing_step": step})

    stream = await open_status_stream(project.id, OWNER, repository, _settings(timeout_seconds=5))

    events = await _collect(stream)

    assert [event.event for event in events] == [ProcessingEventType.PROGRESS, ProcessingEventType.ERROR]
    assert events[0].data == {"step": step.value, "progress": 50}


async def test_interrupted_message_is_reported(repository):
    project = repository.create_project(OWNER, "Call", "text")
    repository.update_project(project.id, OWNER, {"processing_step": ProcessingStep.INTERRUPTED})

    events = await _collect(await open_status_stream(project.id, OWNER, repository, _settings()))

    assert events[-1].data == {"message": INTERRUPTED_MESSAGE}


async def test_stopped_step_keeps_polling_while_a_new_run_holds_the_lock(repository):
    project = repository.create_project(OWNER, "Call", "text")
    repository.update_project(project.id, OWNER, {"processing_step": ProcessingStep.ERROR})
    assert repository.acquire_processing_lock(project.id, OWNER, uuid4(), timedelta(minutes=5))
    stream = await open_status_stream(project.id, OWNER, repository, _settings())

    async def restart():
        await asyncio.sleep(0.05)
        repository.update_project(
            project.id, OWNER, {"processing_progress": 0, "processing_step": ProcessingStep.STARTED}
        )
        await asyncio.sleep(0.05)
        repository.update_project(
            project.id,
            OWNER,
            {
                "current_stage": ProjectStage.POSTS,
                "processing_progress": 100,
                "processing_step": ProcessingStep.COMPLETE,
            },
        )

    task = asyncio.create_task(restart())
    events = await _collect(stream)
    await task

    steps = [event.data["step"] for event in events if event.event == ProcessingEventType.PROGRESS]
    assert steps == ["error", "started", "complete"]
    assert events[-1].event == ProcessingEventType.COMPLETE


async def test_deleted_project_ends_with_error(repository):
    project = repository.create_project(OWNER, "Call", "text")
    stream = await open_status_stream(project.id, OWNER, repository, _settings())
    first = await stream.__anext__()
    repository.delete_project(project.id, OWNER)

    rest = await _collect(stream)

    assert first.event == ProcessingEventType.PROGRESS
    assert rest[-1].event == ProcessingEventType.ERROR


async def test_idle_project_times_out_with_pings(repository):
    project = repository.create_project(OWNER, "Call", "text")
    settings = _settings(timeout_seconds=0.3, heartbeat_seconds=0.05)

    events = await _collect(await open_status_stream(project.id, OWNER, repository, settings))

    names = [event.event for event in events]
    assert ProcessingEventType.PING in names
    assert names[-1] == ProcessingEventType.TIMEOUT


async def test_access_checked_before_streaming(repository):
    project = repository.create_project(OWNER, "Call", "text")

    with pytest.raises(ProjectNotFound):
        await open_status_stream(uuid4(), OWNER, repository, _settings())
    with pytest.raises(ProjectAccessDenied):
        await open_status_stream(project.id, "intruder", repository, _settings())
