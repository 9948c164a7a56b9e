"""Read-only progress stream for clients reconnecting to a project."""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import AsyncGenerator, Optional
from uuid import UUID

from fastapi.concurrency import run_in_threadpool

from content_pipeline_schemas import ProcessingStep, Project

from .events import GENERIC_ERROR_MESSAGE, INTERRUPTED_MESSAGE, ProcessingEvent
from .exceptions import ProjectAccessDenied, ProjectNotFound
from .repository import ProjectRepository, lock_is_held
from .settings import ProcessingSettings
from .stages import PROCESSING_STAGE

logger = logging.getLogger(__name__)

SNAPSHOT_STEP = "snapshot"

# Steps after which nothing further happens until a new run is started.
STOPPED_STEPS = {
    ProcessingStep.ERROR: GENERIC_ERROR_MESSAGE,
    ProcessingStep.INTERRUPTED: INTERRUPTED_MESSAGE,
}


async def open_status_stream(
    project_id: UUID,
    owner_id: str,
    repository: ProjectRepository,
    settings: ProcessingSettings,
) -> AsyncGenerator[ProcessingEvent, None]:
    """Validate access, then return a stream that mirrors persisted progress."""

    project = await run_in_threadpool(repository.get_project, project_id)
    if project is None:
        raise ProjectNotFound(project_id)
    if project.owner_id != owner_id:
        raise ProjectAccessDenied(project_id)
    return watch_project_status(project, repository, settings)


async def watch_project_status(
    project: Project,
    repository: ProjectRepository,
    settings: ProcessingSettings,
) -> AsyncGenerator[ProcessingEvent, None]:
    yield ProcessingEvent.progress(_step_name(project), project.processing_progress)
    if project.current_stage != PROCESSING_STAGE:
        yield ProcessingEvent.complete()
        return
    stopped = _stopped_message(project)
    if stopped is not None and not lock_is_held(project, timedelta(seconds=settings.stale_lock_seconds)):
        yield ProcessingEvent.error(stopped)
        return

    loop = asyncio.get_running_loop()
    deadline = loop.time() + settings.timeout_seconds
    next_ping = loop.time() + settings.heartbeat_seconds
    last_seen = (project.processing_step, project.processing_progress)

    while True:
        remaining = deadline - loop.time()
        if remaining <= 0:
            yield ProcessingEvent.timeout()
            return
        await asyncio.sleep(min(settings.poll_seconds, remaining))

        try:
            current = await run_in_threadpool(repository.get_project, project.id)
        except Exception:
            logger.exception("Could not load project status", extra={"project_id": str(project.id)})
            yield ProcessingEvent.error()
            return
        if current is None:
            yield ProcessingEvent.error("Project no longer exists")
            return

        snapshot = (current.processing_step, current.processing_progress)
        if snapshot != last_seen:
            last_seen = snapshot
            yield ProcessingEvent.progress(_step_name(current), current.processing_progress)
            stopped = _stopped_message(current)
            if stopped is not None:
                yield ProcessingEvent.error(stopped)
                return

        if current.current_stage != PROCESSING_STAGE:
            yield ProcessingEvent.complete()
            return

        if loop.time() >= next_ping:
            next_ping = loop.time() + settings.heartbeat_seconds
            yield ProcessingEvent.ping()


def _step_name(project: Project) -> str:
    return project.processing_step.value if project.processing_step else SNAPSHOT_STEP


def _stopped_message(project: Project) -> Optional[str]:
    if project.processing_step is None:
        return None
    return STOPPED_STEPS.get(project.processing_step)
