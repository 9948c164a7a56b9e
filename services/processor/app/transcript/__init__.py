from .engine import normalize_transcript

__all__ = ["normalize_transcript"]
