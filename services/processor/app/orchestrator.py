"""Streaming orchestration of a single project processing run."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from time import perf_counter
from typing import Any, AsyncGenerator, AsyncIterator, Mapping, Optional
from uuid import UUID, uuid4

from fastapi.concurrency import run_in_threadpool

from content_pipeline_observability import (
    log_context,
    observe_step_duration,
    record_run_outcome,
    record_stream_heartbeat,
)
from content_pipeline_schemas import ProcessingStep, Project

from .collaborators import ProcessingCollaborators
from .events import ProcessingEvent
from .exceptions import (
    ProcessingConflict,
    ProcessingInProgress,
    ProjectAccessDenied,
    ProjectNotFound,
    ProjectNotProcessable,
)
from .repository import ProjectRepository
from .settings import SERVICE_NAME, ProcessingSettings
from .stages import PROCESSING_STAGE, stage_after_processing
from .title import build_title_prompt

logger = logging.getLogger(__name__)

NORMALIZED_PROGRESS = 10
INSIGHTS_PROGRESS = 50
POSTS_PROGRESS = 80
COMPLETE_PROGRESS = 100


class ProcessingRun:
    """One processing run for one project, consumed through :meth:`events`.

    The run owns the heartbeat task, the timeout handle, the worker task and the
    ``finished`` flag. Every exit path (completion, failure, timeout and the
    consumer closing the stream) goes through :meth:`_finish` or :meth:`_close`,
    which clear both timers and release the processing lock.
    """

    def __init__(
        self,
        project: Project,
        repository: ProjectRepository,
        collaborators: ProcessingCollaborators,
        settings: ProcessingSettings,
        run_id: UUID,
    ) -> None:
        self.project = project
        self.repository = repository
        self.collaborators = collaborators
        self.settings = settings
        self.run_id = run_id
        self.finished = False
        self.outcome: Optional[str] = None
        self._queue: asyncio.Queue[Optional[ProcessingEvent]] = asyncio.Queue()
        self._heartbeat_task: Optional[asyncio.Task[None]] = None
        self._timeout_handle: Optional[asyncio.TimerHandle] = None
        self._worker: Optional[asyncio.Task[None]] = None
        self._expiry: Optional[asyncio.Task[None]] = None
        self._closed = False

    @property
    def timers_active(self) -> bool:
        heartbeat_running = self._heartbeat_task is not None and not self._heartbeat_task.done()
        return heartbeat_running or self._timeout_handle is not None

    async def events(self) -> AsyncGenerator[ProcessingEvent, None]:
        if self._worker is not None:
            raise RuntimeError("Processing run events can only be consumed once")

        loop = asyncio.get_running_loop()
        self._timeout_handle = loop.call_later(self.settings.timeout_seconds, self._on_timeout)
        self._heartbeat_task = asyncio.create_task(self._heartbeat())
        self._worker = asyncio.create_task(self._execute())
        try:
            while True:
                event = await self._queue.get()
                if event is None:
                    break
                yield event
        finally:
            await asyncio.shield(self._close())

    async def _execute(self) -> None:
        with log_context(project_id=str(self.project.id), run_id=str(self.run_id)):
            logger.info("Processing run started")
            try:
                await self._run_steps()
            except Exception:
                await self._fail()

    async def _run_steps(self) -> None:
        self._emit(ProcessingEvent.started())
        await self._update({"processing_progress": 0, "processing_step": ProcessingStep.STARTED})
        await self._pause()

        async with self._step(ProcessingStep.NORMALIZE_TRANSCRIPT):
            transcript = await self._normalize()
        self._emit(ProcessingEvent.progress(ProcessingStep.NORMALIZE_TRANSCRIPT, NORMALIZED_PROGRESS))
        await self._pause()

        await self._suggest_title(transcript)

        async with self._step(ProcessingStep.INSIGHTS_READY):
            insights = await self.collaborators.generate_insights(
                self.project.id, transcript, self.settings.insight_target_count
            )
            await self._checkpoint(ProcessingStep.INSIGHTS_READY, INSIGHTS_PROGRESS)
        self._emit(ProcessingEvent.insights_ready(insights.count, INSIGHTS_PROGRESS))
        await self._pause()

        async with self._step(ProcessingStep.POSTS_READY):
            posts = await self.collaborators.generate_posts(
                self.project.owner_id, self.project.id, transcript, self.settings.post_limit
            )
            await self._checkpoint(ProcessingStep.POSTS_READY, POSTS_PROGRESS)
        self._emit(ProcessingEvent.posts_ready(posts.count, POSTS_PROGRESS))
        await self._pause()

        async with self._step(ProcessingStep.COMPLETE):
            project = await run_in_threadpool(
                self.repository.advance_stage,
                self.project.id,
                self.project.owner_id,
                PROCESSING_STAGE,
                stage_after_processing(),
                {"processing_progress": COMPLETE_PROGRESS, "processing_step": ProcessingStep.COMPLETE},
                run_id=self.run_id,
            )
            if project is None:
                raise ProcessingConflict(self.project.id)
            self.project = project
        logger.info(
            "Processing run completed",
            extra={"insight_count": insights.count, "post_count": posts.count},
        )
        self._finish("complete", ProcessingEvent.complete())

    async def _normalize(self) -> str:
        if self.project.transcript_cleaned:
            logger.info("Transcript already normalized, skipping")
            await self._checkpoint(ProcessingStep.NORMALIZE_TRANSCRIPT, NORMALIZED_PROGRESS)
            return self.project.transcript_cleaned

        result = await self.collaborators.normalize_transcript(self.project.transcript_original)
        await self._update(
            {
                "transcript_cleaned": result.transcript,
                "processing_progress": NORMALIZED_PROGRESS,
                "processing_step": ProcessingStep.NORMALIZE_TRANSCRIPT,
            }
        )
        return result.transcript

    async def _suggest_title(self, transcript: str) -> None:
        if not self.project.has_placeholder_title:
            return
        try:
            suggestion = await self.collaborators.generate_title(build_title_prompt(transcript))
            await self._update({"title": suggestion.title})
        except Exception:
            logger.warning("Title suggestion failed, keeping placeholder", exc_info=True)

    async def _fail(self) -> None:
        if self.finished:
            return
        logger.exception("Processing run failed")
        self._finish("error", ProcessingEvent.error(), close=False)
        try:
            await self._update({"processing_step": ProcessingStep.ERROR})
        except Exception:
            logger.warning("Could not persist error checkpoint", exc_info=True)
        finally:
            self._queue.put_nowait(None)

    def _on_timeout(self) -> None:
        self._timeout_handle = None
        if self.finished:
            return
        logger.info(
            "Processing run timed out",
            extra={
                "project_id": str(self.project.id),
                "run_id": str(self.run_id),
                "last_step": self.project.processing_step.value if self.project.processing_step else None,
            },
        )
        self._expiry = asyncio.create_task(self._expire())

    async def _expire(self) -> None:
        # The lock is dropped before ``timeout`` is reported; a step write still
        # running in a worker thread is then rejected by its run-scoped condition.
        if self._worker is not None:
            self._worker.cancel()
        try:
            await run_in_threadpool(
                self.repository.release_processing_lock, self.project.id, self.run_id
            )
        except Exception:
            logger.warning("Could not release processing lock on timeout", exc_info=True)
        if not self.finished:
            self._finish("timeout", ProcessingEvent.timeout())

    async def _heartbeat(self) -> None:
        while not self.finished:
            await asyncio.sleep(self.settings.heartbeat_seconds)
            if self.finished:
                break
            record_stream_heartbeat(SERVICE_NAME)
            self._emit(ProcessingEvent.ping())

    def _emit(self, event: ProcessingEvent) -> None:
        if not self.finished:
            self._queue.put_nowait(event)

    def _finish(self, outcome: str, event: ProcessingEvent, *, close: bool = True) -> None:
        self._emit(event)
        self.finished = True
        self.outcome = outcome
        self._cancel_timers()
        if close:
            self._queue.put_nowait(None)

    def _cancel_timers(self) -> None:
        if self._timeout_handle is not None:
            self._timeout_handle.cancel()
            self._timeout_handle = None
        if self._heartbeat_task is not None and not self._heartbeat_task.done():
            self._heartbeat_task.cancel()

    async def _close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._cancel_timers()

        interrupted = not self.finished
        if interrupted:
            self.finished = True
            self.outcome = "interrupted"
            for task in (self._worker, self._expiry):
                if task is not None:
                    task.cancel()

        pending = [
            task for task in (self._worker, self._heartbeat_task, self._expiry) if task is not None
        ]
        await asyncio.gather(*pending, return_exceptions=True)

        with log_context(project_id=str(self.project.id), run_id=str(self.run_id)):
            if interrupted:
                logger.info("Processing stream closed before the run finished")
            try:
                released = await run_in_threadpool(
                    self.repository.release_processing_lock,
                    self.project.id,
                    self.run_id,
                    ProcessingStep.INTERRUPTED if interrupted else None,
                )
            except Exception:
                logger.warning("Could not release processing lock", exc_info=True)
            else:
                if interrupted and not released:
                    logger.warning("Processing lock was lost before the interrupted checkpoint")
        record_run_outcome(self.outcome or "unknown", service_name=SERVICE_NAME)

    async def _checkpoint(self, step: ProcessingStep, progress: int) -> None:
        await self._update({"processing_progress": progress, "processing_step": step})

    async def _update(self, fields: Mapping[str, Any]) -> None:
        project = await run_in_threadpool(
            self.repository.update_project,
            self.project.id,
            self.project.owner_id,
            dict(fields),
            run_id=self.run_id,
        )
        if project is None:
            raise ProcessingConflict(self.project.id)
        self.project = project

    async def _pause(self) -> None:
        if self.settings.step_delay_seconds > 0:
            await asyncio.sleep(self.settings.step_delay_seconds)

    @asynccontextmanager
    async def _step(self, step: ProcessingStep) -> AsyncIterator[None]:
        started = perf_counter()
        with log_context(step=step.value):
            try:
                yield
            except Exception:
                observe_step_duration(
                    step.value, perf_counter() - started, service_name=SERVICE_NAME, status="error"
                )
                raise
            observe_step_duration(step.value, perf_counter() - started, service_name=SERVICE_NAME)


async def start_processing(
    project_id: UUID,
    owner_id: str,
    repository: ProjectRepository,
    collaborators: ProcessingCollaborators,
    settings: ProcessingSettings,
) -> ProcessingRun:
    """Check preconditions and take the processing lock.

    Raises:
        ProjectNotFound: The project does not exist.
        ProjectAccessDenied: ``owner_id`` does not own the project.
        ProjectNotProcessable: The project is past the processing stage.
        ProcessingInProgress: Another run holds the processing lock.
    """

    project = await run_in_threadpool(repository.get_project, project_id)
    if project is None:
        raise ProjectNotFound(project_id)
    if project.owner_id != owner_id:
        raise ProjectAccessDenied(project_id)
    if project.current_stage != PROCESSING_STAGE:
        raise ProjectNotProcessable(project_id, project.current_stage.value)

    run_id = uuid4()
    acquired = await run_in_threadpool(
        repository.acquire_processing_lock,
        project_id,
        owner_id,
        run_id,
        timedelta(seconds=settings.stale_lock_seconds),
    )
    if not acquired:
        current = await run_in_threadpool(repository.get_project, project_id)
        if current is not None and current.current_stage != PROCESSING_STAGE:
            raise ProjectNotProcessable(project_id, current.current_stage.value)
        raise ProcessingInProgress(project_id)

    locked = await run_in_threadpool(repository.get_project, project_id)
    return ProcessingRun(locked or project, repository, collaborators, settings, run_id)
