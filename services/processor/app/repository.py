"""Persistence adapter for projects and the content generated from them."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any, Iterable, Mapping, Optional, Sequence
from uuid import UUID

from content_pipeline_schemas import (
    PLACEHOLDER_TITLE,
    Insight,
    InsightCandidate,
    PostDraft,
    PostDraftCandidate,
    Project,
    PostStatus,
    ProcessingStep,
    ProjectStage,
)

UPDATABLE_FIELDS = frozenset(
    {
        "title",
        "transcript_cleaned",
        "current_stage",
        "processing_progress",
        "processing_step",
    }
)


def validate_update_fields(fields: Mapping[str, Any]) -> None:
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")


def lock_is_held(project: Project, stale_after: timedelta, now: Optional[datetime] = None) -> bool:
    """True while a run holds ``project``'s processing lock and it is younger than ``stale_after``."""

    if project.processing_run_id is None or project.processing_locked_at is None:
        return False
    return project.processing_locked_at > (now or datetime.utcnow()) - stale_after


class ProjectRepository(ABC):
    """Storage contract used by the API and the processing orchestrator.

    Every method is synchronous; async callers go through ``run_in_threadpool``.
    ``update_project`` must tolerate repeated calls with the same values, since
    checkpoints are rewritten when a run resumes.
    """

    @abstractmethod
    def create_project(self, owner_id: str, title: str | None, transcript: str) -> Project:
        """Insert a project in the first stage with no processing state."""

    @abstractmethod
    def get_project(self, project_id: UUID) -> Optional[Project]:
        """Return the project regardless of owner, or ``None``."""

    @abstractmethod
    def list_projects(
        self,
        owner_id: str,
        *,
        stages: Sequence[ProjectStage] | None = None,
        query: str | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[Project], int]:
        """Return one page of the owner's projects, newest first, and the total count."""

    @abstractmethod
    def update_project(
        self,
        project_id: UUID,
        owner_id: str,
        fields: Mapping[str, Any],
        *,
        run_id: UUID | None = None,
    ) -> Optional[Project]:
        """Apply ``fields`` and bump ``updated_at``; ``None`` when no owned project matched.

        With ``run_id`` the write only lands while that run still holds the
        processing lock, so a run that lost its lock cannot overwrite later state.
        """

    @abstractmethod
    def advance_stage(
        self,
        project_id: UUID,
        owner_id: str,
        from_stage: ProjectStage,
        to_stage: ProjectStage,
        fields: Mapping[str, Any] | None = None,
        *,
        run_id: UUID | None = None,
        stale_after: timedelta | None = None,
    ) -> Optional[Project]:
        """Move the project from ``from_stage`` to ``to_stage`` in one conditional write.

        Returns ``None`` when the stored stage is no longer ``from_stage``. ``run_id``
        additionally requires that run to hold the lock; ``stale_after`` requires that
        no run holds a lock younger than it.
        """

    @abstractmethod
    def delete_project(self, project_id: UUID, owner_id: str) -> bool:
        """Delete the project with its insights and posts."""

    @abstractmethod
    def acquire_processing_lock(
        self, project_id: UUID, owner_id: str, run_id: UUID, stale_after: timedelta
    ) -> bool:
        """Mark the project as being processed by ``run_id``.

        Succeeds only while the project is in the processing stage and no other run
        holds a lock younger than ``stale_after``.
        """

    @abstractmethod
    def release_processing_lock(
        self, project_id: UUID, run_id: UUID, step: ProcessingStep | None = None
    ) -> bool:
        """Clear the lock if ``run_id`` still holds it, recording ``step`` in the same write.

        Returns ``False`` when the run no longer held the lock.
        """

    @abstractmethod
    def add_insights(self, project_id: UUID, insights: Iterable[InsightCandidate]) -> list[Insight]:
        ...

    @abstractmethod
    def list_insights(self, project_id: UUID) -> list[Insight]:
        ...

    @abstractmethod
    def add_posts(self, project_id: UUID, posts: Iterable[PostDraftCandidate]) -> list[PostDraft]:
        ...

    @abstractmethod
    def list_posts(self, project_id: UUID) -> list[PostDraft]:
        ...

    @abstractmethod
    def set_post_status(self, project_id: UUID, post_id: UUID, status: PostStatus) -> Optional[PostDraft]:
        """Record a review decision; ``None`` when the post is not part of the project."""


class InMemoryProjectRepository(ProjectRepository):
    """Thread-safe dictionary-backed repository for development and tests."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._projects: dict[UUID, Project] = {}
        self._insights: dict[UUID, list[Insight]] = {}
        self._posts: dict[UUID, list[PostDraft]] = {}

    def create_project(self, owner_id: str, title: str | None, transcript: str) -> Project:
        project = Project(
            owner_id=owner_id,
            title=(title or "").strip() or PLACEHOLDER_TITLE,
            transcript_original=transcript.strip(),
        )
        with self._lock:
            self._projects[project.id] = project
        return project.model_copy()

    def get_project(self, project_id: UUID) -> Optional[Project]:
        with self._lock:
            project = self._projects.get(project_id)
            return project.model_copy() if project else None

    def list_projects(
        self,
        owner_id: str,
        *,
        stages: Sequence[ProjectStage] | None = None,
        query: str | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[Project], int]:
        needle = (query or "").strip().lower()
        with self._lock:
            matches = [
                project
                for project in self._projects.values()
                if project.owner_id == owner_id
                and (not stages or project.current_stage in stages)
                and (not needle or needle in project.title.lower())
            ]
        matches.sort(key=lambda project: project.created_at, reverse=True)
        start = (max(page, 1) - 1) * page_size
        return [project.model_copy() for project in matches[start : start + page_size]], len(matches)

    def update_project(
        self,
        project_id: UUID,
        owner_id: str,
        fields: Mapping[str, Any],
        *,
        run_id: UUID | None = None,
    ) -> Optional[Project]:
        validate_update_fields(fields)
        with self._lock:
            project = self._owned(project_id, owner_id)
            if project is None:
                return None
            if run_id is not None and project.processing_run_id != run_id:
                return None
            return self._apply(project, fields)

    def advance_stage(
        self,
        project_id: UUID,
        owner_id: str,
        from_stage: ProjectStage,
        to_stage: ProjectStage,
        fields: Mapping[str, Any] | None = None,
        *,
        run_id: UUID | None = None,
        stale_after: timedelta | None = None,
    ) -> Optional[Project]:
        changes = {**(fields or {}), "current_stage": to_stage}
        validate_update_fields(changes)
        with self._lock:
            project = self._owned(project_id, owner_id)
            if project is None or project.current_stage != from_stage:
                return None
            if run_id is not None and project.processing_run_id != run_id:
                return None
            if stale_after is not None and lock_is_held(project, stale_after):
                return None
            return self._apply(project, changes)

    def _owned(self, project_id: UUID, owner_id: str) -> Optional[Project]:
        project = self._projects.get(project_id)
        if project is None or project.owner_id != owner_id:
            return None
        return project

    def _apply(self, project: Project, fields: Mapping[str, Any]) -> Project:
        updated = Project.model_validate(
            {**project.model_dump(), **fields, "updated_at": datetime.utcnow()}
        )
        self._projects[project.id] = updated
        return updated.model_copy()

    def delete_project(self, project_id: UUID, owner_id: str) -> bool:
        with self._lock:
            project = self._projects.get(project_id)
            if project is None or project.owner_id != owner_id:
                return False
            del self._projects[project_id]
            self._insights.pop(project_id, None)
            self._posts.pop(project_id, None)
            return True

    def acquire_processing_lock(
        self, project_id: UUID, owner_id: str, run_id: UUID, stale_after: timedelta
    ) -> bool:
        now = datetime.utcnow()
        with self._lock:
            project = self._projects.get(project_id)
            if project is None or project.owner_id != owner_id:
                return False
            if project.current_stage != ProjectStage.PROCESSING:
                return False
            if lock_is_held(project, stale_after, now):
                return False
            self._projects[project_id] = project.model_copy(
                update={"processing_run_id": run_id, "processing_locked_at": now}
            )
            return True

    def release_processing_lock(
        self, project_id: UUID, run_id: UUID, step: ProcessingStep | None = None
    ) -> bool:
        update: dict[str, Any] = {"processing_run_id": None, "processing_locked_at": None}
        if step is not None:
            update.update(processing_step=step, updated_at=datetime.utcnow())
        with self._lock:
            project = self._projects.get(project_id)
            if project is None or project.processing_run_id != run_id:
                return False
            self._projects[project_id] = project.model_copy(update=update)
            return True

    def add_insights(self, project_id: UUID, insights: Iterable[InsightCandidate]) -> list[Insight]:
        created = [
            Insight(project_id=project_id, content=item.content, quote=item.quote, score=item.score)
            for item in insights
        ]
        with self._lock:
            self._insights.setdefault(project_id, []).extend(created)
        return [insight.model_copy() for insight in created]

    def list_insights(self, project_id: UUID) -> list[Insight]:
        with self._lock:
            return [insight.model_copy() for insight in self._insights.get(project_id, [])]

    def add_posts(self, project_id: UUID, posts: Iterable[PostDraftCandidate]) -> list[PostDraft]:
        created = [
            PostDraft(
                project_id=project_id,
                insight_id=item.insight_id,
                content=item.content,
                hashtags=list(item.hashtags),
            )
            for item in posts
        ]
        with self._lock:
            self._posts.setdefault(project_id, []).extend(created)
        return [post.model_copy() for post in created]

    def list_posts(self, project_id: UUID) -> list[PostDraft]:
        with self._lock:
            return [post.model_copy() for post in self._posts.get(project_id, [])]

    def set_post_status(self, project_id: UUID, post_id: UUID, status: PostStatus) -> Optional[PostDraft]:
        with self._lock:
            posts = self._posts.get(project_id, [])
            for index, post in enumerate(posts):
                if post.id == post_id:
                    posts[index] = post.model_copy(update={"status": status})
                    return posts[index].model_copy()
        return None
