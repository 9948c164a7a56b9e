"""Pydantic models for the processor HTTP API."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from content_pipeline_schemas import (
    Insight,
    Platform,
    PostDraft,
    PostStatus,
    ProcessingStep,
    Project,
    ProjectStage,
)


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateProjectRequest(ApiModel):
    title: Optional[str] = Field(None, max_length=200)
    transcript: str = Field(..., min_length=1)

    @field_validator("transcript")
    @classmethod
    def require_text(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Transcript cannot be blank")
        return value


class UpdateProjectRequest(ApiModel):
    title: str = Field(..., min_length=1, max_length=200)

    @field_validator("title")
    @classmethod
    def strip_title(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("Title cannot be blank")
        return cleaned


class StageUpdateRequest(ApiModel):
    next_stage: str = Field(..., min_length=1, description="Stage immediately after the current one")


class PostReviewRequest(ApiModel):
    status: PostStatus

    @field_validator("status")
    @classmethod
    def require_decision(cls, value: PostStatus) -> PostStatus:
        if value == PostStatus.PENDING:
            raise ValueError("Review status must be approved or rejected")
        return value


class ProjectView(ApiModel):
    id: UUID
    owner_id: str
    title: str
    transcript_original: str
    transcript_cleaned: Optional[str] = None
    current_stage: ProjectStage
    processing_progress: int
    processing_step: Optional[ProcessingStep] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_project(cls, project: Project) -> "ProjectView":
        return cls.model_validate(project.model_dump(exclude={"processing_run_id", "processing_locked_at"}))


class ProjectResponse(ApiModel):
    project: ProjectView


class PageMeta(ApiModel):
    page: int
    page_size: int
    total: int


class ProjectListResponse(ApiModel):
    items: List[ProjectView]
    meta: PageMeta


class ProjectStatusView(ApiModel):
    current_stage: ProjectStage
    processing_progress: int
    processing_step: Optional[ProcessingStep] = None


class ProjectStatusResponse(ApiModel):
    project: ProjectStatusView


class InsightView(ApiModel):
    id: UUID
    project_id: UUID
    content: str
    quote: str
    score: float
    is_approved: bool
    created_at: datetime

    @classmethod
    def from_insight(cls, insight: Insight) -> "InsightView":
        return cls.model_validate(insight.model_dump())


class PostView(ApiModel):
    id: UUID
    project_id: UUID
    insight_id: Optional[UUID] = None
    content: str
    hashtags: List[str]
    platform: Platform
    status: PostStatus
    created_at: datetime

    @classmethod
    def from_post(cls, post: PostDraft) -> "PostView":
        return cls.model_validate(post.model_dump())


class InsightListResponse(ApiModel):
    items: List[InsightView]


class PostListResponse(ApiModel):
    items: List[PostView]


class PostResponse(ApiModel):
    post: PostView
