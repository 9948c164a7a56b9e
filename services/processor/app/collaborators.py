"""The generation calls a processing run depends on, bundled so tests can swap them."""

from __future__ import annotations

from dataclasses import dataclass
from functools import partial
from typing import Awaitable, Callable
from uuid import UUID

from content_pipeline_schemas import GenerationResult, NormalizedTranscript, TitleSuggestion

from .insights import generate_insights
from .posts import generate_posts
from .repository import ProjectRepository
from .title import generate_project_title
from .transcript import normalize_transcript

NormalizeTranscript = Callable[[str], Awaitable[NormalizedTranscript]]
GenerateTitle = Callable[[str], Awaitable[TitleSuggestion]]
GenerateInsights = Callable[[UUID, str, int], Awaitable[GenerationResult]]
GeneratePosts = Callable[[str, UUID, str, int], Awaitable[GenerationResult]]


@dataclass
class ProcessingCollaborators:
    """Callables invoked by the orchestrator.

    ``generate_insights`` receives ``(project_id, transcript, target_count)`` and
    ``generate_posts`` receives ``(owner_id, project_id, transcript, limit)``.
    """

    normalize_transcript: NormalizeTranscript
    generate_title: GenerateTitle
    generate_insights: GenerateInsights
    generate_posts: GeneratePosts


def build_default_collaborators(repository: ProjectRepository) -> ProcessingCollaborators:
    return ProcessingCollaborators(
        normalize_transcript=normalize_transcript,
        generate_title=generate_project_title,
        generate_insights=partial(generate_insights, repository),
        generate_posts=partial(generate_posts, repository),
    )
