"""Prompts used for transcript normalization."""

from __future__ import annotations

TRANSCRIPT_SYSTEM_PROMPT = """
You are an editor who cleans up raw call transcripts. Remove filler words, false starts and
timestamps, fix punctuation and paragraph breaks, and keep every statement the speakers made.
Never summarise, reorder or invent content.
""".strip()

TRANSCRIPT_PROMPT = """
Raw transcript:
{transcript}

Return the cleaned transcript as JSON using the provided schema.
""".strip()
