"""Stage ordering and transition rules for projects."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from content_pipeline_schemas import ProjectStage

from .exceptions import InvalidStageTransition

STAGE_ORDER: tuple[ProjectStage, ...] = tuple(ProjectStage)
PROCESSING_STAGE = ProjectStage.PROCESSING

StageLike = Union[ProjectStage, str]


@dataclass(frozen=True)
class StageTransition:
    from_stage: str
    to_stage: str
    allowed_next: Optional[ProjectStage]

    @property
    def valid(self) -> bool:
        return self.allowed_next is not None and self.to_stage == self.allowed_next.value


def coerce_stage(value: StageLike) -> Optional[ProjectStage]:
    """Return the matching stage, or ``None`` for names outside the stage order."""

    if isinstance(value, ProjectStage):
        return value
    try:
        return ProjectStage(value)
    except ValueError:
        return None


def next_stage(stage: StageLike) -> Optional[ProjectStage]:
    current = coerce_stage(stage)
    if current is None:
        return None
    index = STAGE_ORDER.index(current)
    if index + 1 >= len(STAGE_ORDER):
        return None
    return STAGE_ORDER[index + 1]


def validate_transition(current: StageLike, requested: StageLike) -> StageTransition:
    """Describe a requested move; it is valid only when it is exactly one stage forward."""

    return StageTransition(
        from_stage=_stage_name(current),
        to_stage=_stage_name(requested),
        allowed_next=next_stage(current),
    )


def ensure_transition(current: StageLike, requested: StageLike) -> ProjectStage:
    """Return the requested stage or raise :class:`InvalidStageTransition`."""

    transition = validate_transition(current, requested)
    if not transition.valid:
        raise InvalidStageTransition(
            from_stage=transition.from_stage,
            to_stage=transition.to_stage,
            allowed_next=transition.allowed_next.value if transition.allowed_next else None,
        )
    return transition.allowed_next  # type: ignore[return-value]


def stage_after_processing() -> ProjectStage:
    stage = next_stage(PROCESSING_STAGE)
    if stage is None:  # pragma: no cover - guarded by the enum declaration
        raise RuntimeError("Processing stage has no successor")
    return stage


def _stage_name(value: StageLike) -> str:
    return value.value if isinstance(value, ProjectStage) else str(value)
