"""Shared enums and models for the content pipeline."""

from .enums import Platform, PostStatus, ProcessingEventType, ProcessingStep, ProjectStage
from .models import (
    PLACEHOLDER_TITLE,
    GenerationResult,
    Insight,
    InsightBatch,
    InsightCandidate,
    NormalizedTranscript,
    PostDraft,
    PostDraftBatch,
    PostDraftCandidate,
    Project,
    TitleSuggestion,
)

__all__ = [
    "GenerationResult",
    "Insight",
    "InsightBatch",
    "InsightCandidate",
    "NormalizedTranscript",
    "PLACEHOLDER_TITLE",
    "Platform",
    "PostDraft",
    "PostDraftBatch",
    "PostDraftCandidate",
    "PostStatus",
    "ProcessingEventType",
    "ProcessingStep",
    "Project",
    "ProjectStage",
    "TitleSuggestion",
]
