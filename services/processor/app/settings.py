"""Runtime settings for the processing service."""

from __future__ import annotations

import os
from typing import Literal

from pydantic import BaseModel, Field, ValidationError

SERVICE_NAME = "processor"
ENVIRONMENT_ENV_VAR = "CONTENT_PIPELINE_ENV"

Environment = Literal["production", "development", "test"]

_PROFILE_DEFAULTS: dict[str, dict[str, float]] = {
    "production": {"heartbeat_seconds": 15.0, "step_delay_seconds": 0.0, "poll_seconds": 1.0},
    "development": {"heartbeat_seconds": 2.0, "step_delay_seconds": 0.4, "poll_seconds": 1.0},
    "test": {"heartbeat_seconds": 0.2, "step_delay_seconds": 0.0, "poll_seconds": 0.1},
}


class ProcessingSettings(BaseModel):
    """Timers and generation limits for processing runs."""

    environment: Environment = "development"
    heartbeat_seconds: float = Field(2.0, gt=0)
    timeout_seconds: float = Field(300.0, gt=0)
    step_delay_seconds: float = Field(0.4, ge=0)
    poll_seconds: float = Field(1.0, gt=0)
    insight_target_count: int = Field(7, ge=1, le=20)
    post_limit: int = Field(7, ge=1, le=20)
    lock_grace_seconds: float = Field(
        60.0, ge=0, description="Extra time before an abandoned processing lock is considered stale"
    )

    @property
    def stale_lock_seconds(self) -> float:
        return self.timeout_seconds + self.lock_grace_seconds

    @classmethod
    def for_environment(cls, environment: Environment, **overrides: object) -> "ProcessingSettings":
        values: dict[str, object] = {"environment": environment, **_PROFILE_DEFAULTS[environment]}
        values.update(overrides)
        return cls.model_validate(values)


def load_processing_settings() -> ProcessingSettings:
    """Build settings from ``CONTENT_PIPELINE_ENV`` defaults plus explicit overrides.

    Environment variables:
        CONTENT_PIPELINE_ENV: ``production``, ``development`` (default) or ``test``.
        PROCESSING_HEARTBEAT_SECONDS, PROCESSING_TIMEOUT_SECONDS,
        PROCESSING_STEP_DELAY_SECONDS, PROCESSING_POLL_SECONDS,
        INSIGHT_TARGET_COUNT, POST_LIMIT: optional overrides.

    Raises:
        RuntimeError: If the environment name or an override is invalid.
    """

    environment = os.getenv(ENVIRONMENT_ENV_VAR, "development").strip().lower()
    if environment not in _PROFILE_DEFAULTS:
        raise RuntimeError(f"{ENVIRONMENT_ENV_VAR} must be one of {sorted(_PROFILE_DEFAULTS)}")

    overrides: dict[str, object] = {}
    for field_name, variable in (
        ("heartbeat_seconds", "PROCESSING_HEARTBEAT_SECONDS"),
        ("timeout_seconds", "PROCESSING_TIMEOUT_SECONDS"),
        ("step_delay_seconds", "PROCESSING_STEP_DELAY_SECONDS"),
        ("poll_seconds", "PROCESSING_POLL_SECONDS"),
        ("insight_target_count", "INSIGHT_TARGET_COUNT"),
        ("post_limit", "POST_LIMIT"),
    ):
        raw = os.getenv(variable, "").strip()
        if raw:
            overrides[field_name] = raw

    try:
        return ProcessingSettings.for_environment(environment, **overrides)  # type: ignore[arg-type]
    except ValidationError as exc:
        raise RuntimeError(f"Invalid processing settings: {exc}") from exc
