"""Reusable text helpers."""

from __future__ import annotations

import re

_WHITESPACE = re.compile(r"\s+")


def normalize_for_comparison(value: str) -> str:
    """Collapse whitespace and lowercase ``value`` so near-identical texts compare equal.

    Args:
        value: Input text to normalise.

    Returns:
        The comparison key for ``value``.
    """

    return _WHITESPACE.sub(" ", value.lower()).strip()


def clamp_unit(value: float) -> float:
    return max(0.0, min(1.0, value))


def truncate(value: str, limit: int) -> str:
    if len(value) <= limit:
        return value
    return value[:limit].rstrip()
