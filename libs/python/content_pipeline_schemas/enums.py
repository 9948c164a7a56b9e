"""Enum definitions shared across the pipeline."""

from __future__ import annotations

from enum import Enum


class ProjectStage(str, Enum):
    """Project lifecycle stages.

    Declaration order is the canonical stage order: a project moves forward one
    member at a time and never backwards.
    """

    PROCESSING = "processing"
    POSTS = "posts"
    READY = "ready"


class ProcessingStep(str, Enum):
    STARTED = "started"
    NORMALIZE_TRANSCRIPT = "normalize_transcript"
    INSIGHTS_READY = "insights_ready"
    POSTS_READY = "posts_ready"
    COMPLETE = "complete"
    ERROR = "error"
    INTERRUPTED = "interrupted"


class ProcessingEventType(str, Enum):
    STARTED = "started"
    PROGRESS = "progress"
    INSIGHTS_READY = "insights_ready"
    POSTS_READY = "posts_ready"
    COMPLETE = "complete"
    PING = "ping"
    TIMEOUT = "timeout"
    ERROR = "error"


class PostStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Platform(str, Enum):
    LINKEDIN = "linkedin"
