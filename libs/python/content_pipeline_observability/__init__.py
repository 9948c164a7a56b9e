"""Shared observability helpers used across content pipeline services."""

from .logging import log_context, setup_logging
from .metrics import (
    observe_provider_response,
    observe_step_duration,
    record_run_outcome,
    record_stream_heartbeat,
    setup_fastapi_metrics,
)

__all__ = [
    "setup_logging",
    "log_context",
    "setup_fastapi_metrics",
    "observe_provider_response",
    "observe_step_duration",
    "record_run_outcome",
    "record_stream_heartbeat",
]
