"""Pydantic models shared by the API and the processing engines."""

from .generation import (
    GenerationResult,
    InsightBatch,
    InsightCandidate,
    NormalizedTranscript,
    PostDraftBatch,
    PostDraftCandidate,
    TitleSuggestion,
)
from .project import PLACEHOLDER_TITLE, Insight, PostDraft, Project

__all__ = [
    "GenerationResult",
    "Insight",
    "InsightBatch",
    "InsightCandidate",
    "NormalizedTranscript",
    "PLACEHOLDER_TITLE",
    "PostDraft",
    "PostDraftBatch",
    "PostDraftCandidate",
    "Project",
    "TitleSuggestion",
]
