"""Title suggestion for projects created without a title."""

from __future__ import annotations

from content_pipeline_schemas import TitleSuggestion

from ..generation import request_structured
from .prompts import EXCERPT_CHARS, TITLE_PROMPT, TITLE_SYSTEM_PROMPT


def build_title_prompt(transcript: str) -> str:
    excerpt = transcript.strip()[:EXCERPT_CHARS]
    return TITLE_PROMPT.format(excerpt=excerpt)


async def generate_project_title(prompt: str) -> TitleSuggestion:
    return await request_structured(
        "title",
        prompt,
        TitleSuggestion,
        system_prompt=TITLE_SYSTEM_PROMPT,
        temperature=0.5,
    )
