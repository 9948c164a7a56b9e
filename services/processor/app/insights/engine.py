"""Insight extraction for processed transcripts."""

from __future__ import annotations

import logging
from typing import Iterable
from uuid import UUID

from fastapi.concurrency import run_in_threadpool

from content_pipeline_schemas import GenerationResult, InsightBatch, InsightCandidate
from content_pipeline_schemas.utils.text import normalize_for_comparison

from ..context import trim_transcript
from ..generation import request_structured
from ..repository import ProjectRepository
from .prompts import INSIGHTS_PROMPT, INSIGHTS_SYSTEM_PROMPT

logger = logging.getLogger(__name__)

MIN_REQUESTED = 5
MAX_REQUESTED = 10


async def generate_insights(
    repository: ProjectRepository,
    project_id: UUID,
    transcript: str,
    target_count: int,
) -> GenerationResult:
    """Extract and store insights for ``project_id``.

    Insights stored by an earlier run are reused as-is, so repeating the step
    after a later failure never duplicates them.
    """

    existing = await run_in_threadpool(repository.list_insights, project_id)
    if existing:
        logger.info("Reusing stored insights", extra={"count": len(existing)})
        return GenerationResult(count=len(existing))

    prompt_transcript, _ = trim_transcript(transcript)
    batch = await request_structured(
        "insights",
        INSIGHTS_PROMPT.format(
            transcript=prompt_transcript,
            minimum=min(MIN_REQUESTED, target_count),
            maximum=max(MAX_REQUESTED, target_count),
            target=target_count,
        ),
        InsightBatch,
        system_prompt=INSIGHTS_SYSTEM_PROMPT,
        temperature=0.3,
        metadata={"target_count": target_count},
    )
    selected = select_insights(batch.insights, target_count)
    stored = await run_in_threadpool(repository.add_insights, project_id, selected)
    return GenerationResult(count=len(stored))


def select_insights(candidates: Iterable[InsightCandidate], limit: int) -> list[InsightCandidate]:
    """Drop blank and duplicate insights, keeping the best ``limit`` by score."""

    ranked = sorted(
        (candidate for candidate in candidates if candidate.content),
        key=lambda candidate: candidate.score,
        reverse=True,
    )
    seen: set[str] = set()
    selected: list[InsightCandidate] = []
    for candidate in ranked:
        key = normalize_for_comparison(candidate.content)
        if key in seen:
            continue
        seen.add(key)
        if not candidate.quote:
            candidate = candidate.model_copy(update={"quote": candidate.content[:200].rstrip()})
        selected.append(candidate)
        if len(selected) >= limit:
            break
    return selected
