"""Domain models describing projects and the content produced from them."""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from ..enums import Platform, PostStatus, ProcessingStep, ProjectStage

PLACEHOLDER_TITLE = "Untitled Project"


class Project(BaseModel):
    """A transcript submitted by a user and the state of its processing."""

    id: UUID = Field(default_factory=uuid4)
    owner_id: str = Field(..., min_length=1)
    title: str = Field(PLACEHOLDER_TITLE, max_length=200)
    transcript_original: str = ""
    transcript_cleaned: Optional[str] = None
    current_stage: ProjectStage = ProjectStage.PROCESSING
    processing_progress: int = Field(0, ge=0, le=100)
    processing_step: Optional[ProcessingStep] = None
    processing_run_id: Optional[UUID] = Field(
        None, description="Identifier of the run currently holding the processing lock"
    )
    processing_locked_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def has_placeholder_title(self) -> bool:
        return not self.title.strip() or self.title == PLACEHOLDER_TITLE


class Insight(BaseModel):
    """A self-contained idea extracted from a cleaned transcript."""

    id: UUID = Field(default_factory=uuid4)
    project_id: UUID
    content: str = Field(..., min_length=1, max_length=1000)
    quote: str = Field(..., min_length=1, max_length=200)
    score: float = Field(0.0, ge=0, le=1)
    is_approved: bool = False
    created_at: datetime = Field(default_factory=datetime.utcnow)


class PostDraft(BaseModel):
    """A social-media post drafted from an insight, awaiting review."""

    id: UUID = Field(default_factory=uuid4)
    project_id: UUID
    insight_id: Optional[UUID] = None
    content: str = Field(..., min_length=1)
    hashtags: list[str] = Field(default_factory=list)
    platform: Platform = Platform.LINKEDIN
    status: PostStatus = PostStatus.PENDING
    created_at: datetime = Field(default_factory=datetime.utcnow)
