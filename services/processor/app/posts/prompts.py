"""Prompts used for LinkedIn post drafting."""

from __future__ import annotations

POSTS_SYSTEM_PROMPT = """
You are a ghostwriter drafting LinkedIn posts for a consultant. Open with a hook, tell one
concrete story or lesson, and finish with a soft call to action. Keep each post under 1,300
characters and suggest at most three hashtags.
""".strip()

POSTS_PROMPT = """
Background transcript:
{transcript}

Insights to write about:
{insights}

Write exactly one post per insight and copy each insight_id into the matching post. Return
JSON using the provided schema.
""".strip()
