"""Domain errors raised before a processing stream opens or by project operations."""

from __future__ import annotations

from typing import Any
from uuid import UUID


class ProjectError(Exception):
    """Base error carrying the HTTP status and machine-readable code used by the API."""

    status_code = 400
    code = "BAD_REQUEST"
    message = "Request failed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)
        self.message = message or self.message

    def context(self) -> dict[str, Any]:
        return {}

    def to_payload(self) -> dict[str, Any]:
        return {"error": self.message, "code": self.code, "status": self.status_code, **self.context()}


class ProjectNotFound(ProjectError):
    status_code = 404
    code = "NOT_FOUND"
    message = "Project not found"

    def __init__(self, project_id: UUID) -> None:
        super().__init__()
        self.project_id = project_id


class ProjectAccessDenied(ProjectError):
    status_code = 403
    code = "FORBIDDEN"
    message = "Project belongs to another user"

    def __init__(self, project_id: UUID) -> None:
        super().__init__()
        self.project_id = project_id


class InvalidStageTransition(ProjectError):
    status_code = 422
    code = "INVALID_TRANSITION"
    message = "Invalid stage transition"

    def __init__(self, *, from_stage: str, to_stage: str, allowed_next: str | None) -> None:
        super().__init__()
        self.from_stage = from_stage
        self.to_stage = to_stage
        self.allowed_next = allowed_next

    def context(self) -> dict[str, Any]:
        return {"from": self.from_stage, "to": self.to_stage, "allowedNext": self.allowed_next}


class ProjectNotProcessable(ProjectError):
    status_code = 422
    code = "NOT_PROCESSABLE"
    message = "Project is not in processing stage"

    def __init__(self, project_id: UUID, current_stage: str) -> None:
        super().__init__()
        self.project_id = project_id
        self.current_stage = current_stage

    def context(self) -> dict[str, Any]:
        return {"currentStage": self.current_stage}


class ProcessingInProgress(ProjectError):
    status_code = 409
    code = "PROCESSING_IN_PROGRESS"
    message = "Project is already being processed"

    def __init__(self, project_id: UUID) -> None:
        super().__init__()
        self.project_id = project_id


class AuthenticationRequired(ProjectError):
    status_code = 401
    code = "UNAUTHORIZED"
    message = "Authentication required"


class ProcessingConflict(ProjectError):
    """The project changed under a run, or the run lost its processing lock."""

    status_code = 409
    code = "PROCESSING_CONFLICT"
    message = "Project changed while it was being processed"

    def __init__(self, project_id: UUID) -> None:
        super().__init__()
        self.project_id = project_id


class PostNotFound(ProjectError):
    status_code = 404
    code = "NOT_FOUND"
    message = "Post not found"

    def __init__(self, post_id: UUID) -> None:
        super().__init__()
        self.post_id = post_id
