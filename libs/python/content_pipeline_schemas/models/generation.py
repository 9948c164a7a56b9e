"""Structured payloads exchanged with language model providers."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, ValidationInfo, field_validator

from ..utils.text import clamp_unit, truncate

INSIGHT_CONTENT_LIMIT = 1000
INSIGHT_QUOTE_LIMIT = 200
POST_CONTENT_LIMIT = 3000


class NormalizedTranscript(BaseModel):
    """Transcript after filler removal and punctuation repair."""

    transcript: str = Field(..., description="Cleaned transcript text")


class TitleSuggestion(BaseModel):
    title: str = Field(..., min_length=1, max_length=120)

    @field_validator("title")
    @classmethod
    def strip_title(cls, value: str) -> str:
        cleaned = value.strip().strip('"').strip()
        if not cleaned:
            raise ValueError("Title cannot be blank")
        return cleaned


class InsightCandidate(BaseModel):
    """Insight as returned by a provider; blank entries are dropped by the insights step."""

    content: str = Field(..., max_length=INSIGHT_CONTENT_LIMIT)
    quote: str = Field("", max_length=INSIGHT_QUOTE_LIMIT)
    score: float = Field(0.0, description="Quality score between 0.0 and 1.0")

    @field_validator("content", "quote", mode="before")
    @classmethod
    def tidy_text(cls, value: object, info: ValidationInfo) -> str:
        limit = INSIGHT_CONTENT_LIMIT if info.field_name == "content" else INSIGHT_QUOTE_LIMIT
        return truncate(str(value or "").strip(), limit)

    @field_validator("score", mode="before")
    @classmethod
    def clamp_score(cls, value: object) -> float:
        if value is None:
            return 0.0
        return clamp_unit(float(value))


class InsightBatch(BaseModel):
    insights: list[InsightCandidate] = Field(default_factory=list)


class PostDraftCandidate(BaseModel):
    insight_id: Optional[UUID] = Field(
        None, description="Identifier of the insight the post was written from"
    )
    content: str = Field(..., max_length=POST_CONTENT_LIMIT)
    hashtags: list[str] = Field(default_factory=list)

    @field_validator("content", mode="before")
    @classmethod
    def tidy_content(cls, value: object) -> str:
        return truncate(str(value or "").strip(), POST_CONTENT_LIMIT)


class PostDraftBatch(BaseModel):
    posts: list[PostDraftCandidate] = Field(default_factory=list)


class GenerationResult(BaseModel):
    """Outcome reported by a generation collaborator back to the orchestrator."""

    count: int = Field(..., ge=0)
