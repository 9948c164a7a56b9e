"""Prompts used for project title suggestions."""

from __future__ import annotations

TITLE_SYSTEM_PROMPT = """
You name recorded client calls for a content team. Titles are specific, plain and at most
80 characters long. Do not wrap the title in quotes.
""".strip()

TITLE_PROMPT = """
Transcript excerpt:
{excerpt}

Suggest one descriptive title for this conversation. Respond with JSON of the form
{{"title": "..."}}.
""".strip()

EXCERPT_CHARS = 4000
