"""Context trimming helpers to keep transcripts within safe token budgets."""

from __future__ import annotations

import os
from typing import Tuple

_DEFAULT_LIMIT = int(os.getenv("CONTEXT_TOKEN_LIMIT", "24000"))


def trim_transcript(transcript: str, token_limit: int | None = None) -> Tuple[str, bool]:
    """Keep the head and tail of very long transcripts.

    Args:
        transcript: The transcript text to embed in a prompt.
        token_limit: Optional override for the maximum token budget.

    Returns:
        A tuple of ``(possibly_trimmed_transcript, was_trimmed)``.
    """

    if not transcript:
        return transcript, False

    limit = max(token_limit or _DEFAULT_LIMIT, 256)
    # Rough heuristic: 1 token ~ 4 characters for conversational English.
    if len(transcript) // 4 <= limit:
        return transcript, False

    max_chars = limit * 4
    head = transcript[: max_chars // 2].strip()
    tail = transcript[-(max_chars - max_chars // 2) :].strip()
    trimmed = (
        f"[transcript trimmed to ~{limit} tokens]\n"
        f"{head}\n"
        "\n[...]\n\n"
        f"{tail}"
    )
    return trimmed, True


__all__ = ["trim_transcript"]
