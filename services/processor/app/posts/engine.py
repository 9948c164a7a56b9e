"""Post drafting from stored insights."""

from __future__ import annotations

import json
import logging
from uuid import UUID

from fastapi.concurrency import run_in_threadpool

from content_pipeline_schemas import GenerationResult, Insight, PostDraftBatch

from ..context import trim_transcript
from ..generation import request_structured
from ..repository import ProjectRepository
from .prompts import POSTS_PROMPT, POSTS_SYSTEM_PROMPT

logger = logging.getLogger(__name__)


async def generate_posts(
    repository: ProjectRepository,
    owner_id: str,
    project_id: UUID,
    transcript: str,
    limit: int,
) -> GenerationResult:
    """Draft posts for insights that have none yet and report the project's post count."""

    insights = await run_in_threadpool(repository.list_insights, project_id)
    posts = await run_in_threadpool(repository.list_posts, project_id)
    drafted_ids = {post.insight_id for post in posts if post.insight_id is not None}
    pending = [insight for insight in insights if insight.id not in drafted_ids]
    pending = pending[: max(limit - len(posts), 0)]

    if not pending:
        logger.info(
            "No insights awaiting posts",
            extra={"owner_id": owner_id, "insights": len(insights), "posts": len(posts)},
        )
        return GenerationResult(count=len(posts))

    prompt_transcript, _ = trim_transcript(transcript, token_limit=8000)
    batch = await request_structured(
        "posts",
        POSTS_PROMPT.format(transcript=prompt_transcript, insights=_format_insights(pending)),
        PostDraftBatch,
        system_prompt=POSTS_SYSTEM_PROMPT,
        temperature=0.6,
        metadata={"insight_ids": [str(insight.id) for insight in pending]},
    )

    pending_ids = {insight.id for insight in pending}
    accepted = []
    for draft in batch.posts:
        if not draft.content:
            logger.warning("Discarding empty post draft", extra={"insight_id": str(draft.insight_id)})
            continue
        if draft.insight_id not in pending_ids:
            logger.warning("Discarding post for unknown insight", extra={"insight_id": str(draft.insight_id)})
            continue
        pending_ids.discard(draft.insight_id)
        accepted.append(draft)

    stored = await run_in_threadpool(repository.add_posts, project_id, accepted)
    return GenerationResult(count=len(posts) + len(stored))


def _format_insights(insights: list[Insight]) -> str:
    return json.dumps(
        [
            {"insight_id": str(insight.id), "content": insight.content, "quote": insight.quote}
            for insight in insights
        ],
        ensure_ascii=False,
        indent=2,
    )
