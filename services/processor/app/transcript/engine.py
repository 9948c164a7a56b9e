"""Transcript normalization step."""

from __future__ import annotations

import logging

from content_pipeline_schemas import NormalizedTranscript
from content_pipeline_providers.exceptions import ProviderResponseError

from ..context import trim_transcript
from ..generation import request_structured
from .prompts import TRANSCRIPT_PROMPT, TRANSCRIPT_SYSTEM_PROMPT

logger = logging.getLogger(__name__)


async def normalize_transcript(raw_transcript: str) -> NormalizedTranscript:
    prompt_transcript, trimmed = trim_transcript(raw_transcript)
    if trimmed:
        logger.warning("Transcript trimmed before normalization", extra={"chars": len(raw_transcript)})

    result = await request_structured(
        "transcript",
        TRANSCRIPT_PROMPT.format(transcript=prompt_transcript),
        NormalizedTranscript,
        system_prompt=TRANSCRIPT_SYSTEM_PROMPT,
        temperature=0.1,
        metadata={"transcript": raw_transcript},
    )
    cleaned = result.transcript.strip()
    if not cleaned:
        raise ProviderResponseError("Normalized transcript was empty", task="transcript")
    return NormalizedTranscript(transcript=cleaned)
