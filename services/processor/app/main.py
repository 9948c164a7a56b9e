"""FastAPI entrypoint for the content processing service."""

from __future__ import annotations

import logging
import os
from datetime import timedelta
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, FastAPI, Header, Query, Request, Response, status
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from content_pipeline_observability import log_context, setup_fastapi_metrics, setup_logging
from content_pipeline_schemas import Project, ProjectStage

from .collaborators import ProcessingCollaborators, build_default_collaborators
from .events import SSE_HEADERS, encode_stream
from .exceptions import (
    AuthenticationRequired,
    PostNotFound,
    ProcessingConflict,
    ProcessingInProgress,
    ProjectAccessDenied,
    ProjectError,
    ProjectNotFound,
)
from .models import (
    CreateProjectRequest,
    InsightListResponse,
    InsightView,
    PageMeta,
    PostListResponse,
    PostResponse,
    PostReviewRequest,
    PostView,
    ProjectListResponse,
    ProjectResponse,
    ProjectStatusResponse,
    ProjectStatusView,
    ProjectView,
    StageUpdateRequest,
    UpdateProjectRequest,
)
from .orchestrator import start_processing
from .postgres import PostgresProjectRepository
from .repository import InMemoryProjectRepository, ProjectRepository, lock_is_held
from .settings import SERVICE_NAME, ProcessingSettings, load_processing_settings
from .stages import ensure_transition
from .status_stream import open_status_stream

setup_logging(SERVICE_NAME)
logger = logging.getLogger(__name__)

ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CONTENT_PIPELINE_ALLOWED_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]

EVENT_STREAM_MEDIA_TYPE = "text/event-stream"

router = APIRouter()


def build_repository() -> ProjectRepository:
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        logger.warning("DATABASE_URL is not set; projects are kept in memory only")
        return InMemoryProjectRepository()
    return PostgresProjectRepository(database_url)


def get_repository(request: Request) -> ProjectRepository:
    return request.app.state.repository


def get_settings(request: Request) -> ProcessingSettings:
    return request.app.state.settings


def get_collaborators(request: Request) -> ProcessingCollaborators:
    return request.app.state.collaborators


async def current_owner_id(x_user_id: Optional[str] = Header(None)) -> str:
    owner_id = (x_user_id or "").strip()
    if not owner_id:
        raise AuthenticationRequired()
    return owner_id


async def _load_owned_project(repository: ProjectRepository, project_id: UUID, owner_id: str) -> Project:
    project = await run_in_threadpool(repository.get_project, project_id)
    if project is None:
        raise ProjectNotFound(project_id)
    if project.owner_id != owner_id:
        raise ProjectAccessDenied(project_id)
    return project


@router.get("/health", tags=["health"])
async def health() -> dict[str, str]:
    return {"status": "ok"}


@router.post(
    "/projects",
    response_model=ProjectResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["projects"],
)
async def create_project(
    payload: CreateProjectRequest,
    owner_id: str = Depends(current_owner_id),
    repository: ProjectRepository = Depends(get_repository),
) -> ProjectResponse:
    project = await run_in_threadpool(
        repository.create_project, owner_id, payload.title, payload.transcript
    )
    with log_context(project_id=str(project.id), owner_id=owner_id):
        logger.info("Project created", extra={"transcript_chars": len(project.transcript_original)})
    return ProjectResponse(project=ProjectView.from_project(project))


@router.get("/projects", response_model=ProjectListResponse, tags=["projects"])
async def list_projects(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100, alias="pageSize"),
    stage: Optional[List[ProjectStage]] = Query(None),
    q: Optional[str] = Query(None, max_length=200),
    owner_id: str = Depends(current_owner_id),
    repository: ProjectRepository = Depends(get_repository),
) -> ProjectListResponse:
    projects, total = await run_in_threadpool(
        lambda: repository.list_projects(
            owner_id, stages=stage, query=q, page=page, page_size=page_size
        )
    )
    return ProjectListResponse(
        items=[ProjectView.from_project(project) for project in projects],
        meta=PageMeta(page=page, page_size=page_size, total=total),
    )


@router.get("/projects/{project_id}", response_model=ProjectResponse, tags=["projects"])
async def get_project(
    project_id: UUID,
    owner_id: str = Depends(current_owner_id),
    repository: ProjectRepository = Depends(get_repository),
) -> ProjectResponse:
    project = await _load_owned_project(repository, project_id, owner_id)
    return ProjectResponse(project=ProjectView.from_project(project))


@router.get("/projects/{project_id}/status", response_model=ProjectStatusResponse, tags=["projects"])
async def get_project_status(
    project_id: UUID,
    owner_id: str = Depends(current_owner_id),
    repository: ProjectRepository = Depends(get_repository),
) -> ProjectStatusResponse:
    project = await _load_owned_project(repository, project_id, owner_id)
    return ProjectStatusResponse(
        project=ProjectStatusView(
            current_stage=project.current_stage,
            processing_progress=project.processing_progress,
            processing_step=project.processing_step,
        )
    )


@router.patch("/projects/{project_id}", response_model=ProjectResponse, tags=["projects"])
async def update_project(
    project_id: UUID,
    payload: UpdateProjectRequest,
    owner_id: str = Depends(current_owner_id),
    repository: ProjectRepository = Depends(get_repository),
) -> ProjectResponse:
    await _load_owned_project(repository, project_id, owner_id)
    project = await run_in_threadpool(
        repository.update_project, project_id, owner_id, {"title": payload.title}
    )
    if project is None:
        raise ProjectNotFound(project_id)
    return ProjectResponse(project=ProjectView.from_project(project))


@router.delete("/projects/{project_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["projects"])
async def delete_project(
    project_id: UUID,
    owner_id: str = Depends(current_owner_id),
    repository: ProjectRepository = Depends(get_repository),
) -> Response:
    await _load_owned_project(repository, project_id, owner_id)
    deleted = await run_in_threadpool(repository.delete_project, project_id, owner_id)
    if not deleted:
        raise ProjectNotFound(project_id)
    with log_context(project_id=str(project_id), owner_id=owner_id):
        logger.info("Project deleted")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/projects/{project_id}/stage", response_model=ProjectResponse, tags=["projects"])
async def update_project_stage(
    project_id: UUID,
    payload: StageUpdateRequest,
    owner_id: str = Depends(current_owner_id),
    repository: ProjectRepository = Depends(get_repository),
    settings: ProcessingSettings = Depends(get_settings),
) -> ProjectResponse:
    project = await _load_owned_project(repository, project_id, owner_id)
    next_stage = ensure_transition(project.current_stage, payload.next_stage)
    stale_after = timedelta(seconds=settings.stale_lock_seconds)
    if lock_is_held(project, stale_after):
        raise ProcessingInProgress(project_id)
    updated = await run_in_threadpool(
        repository.advance_stage,
        project_id,
        owner_id,
        project.current_stage,
        next_stage,
        stale_after=stale_after,
    )
    if updated is None:
        # Another request or a processing run changed the project since it was read.
        current = await _load_owned_project(repository, project_id, owner_id)
        if lock_is_held(current, stale_after):
            raise ProcessingInProgress(project_id)
        ensure_transition(current.current_stage, payload.next_stage)
        raise ProcessingConflict(project_id)
    with log_context(project_id=str(project_id), owner_id=owner_id):
        logger.info(
            "Project stage advanced",
            extra={"from_stage": project.current_stage.value, "to_stage": next_stage.value},
        )
    return ProjectResponse(project=ProjectView.from_project(updated))


@router.post("/projects/{project_id}/process", tags=["processing"])
async def process_project(
    project_id: UUID,
    owner_id: str = Depends(current_owner_id),
    repository: ProjectRepository = Depends(get_repository),
    settings: ProcessingSettings = Depends(get_settings),
    collaborators: ProcessingCollaborators = Depends(get_collaborators),
) -> StreamingResponse:
    run = await start_processing(project_id, owner_id, repository, collaborators, settings)
    return StreamingResponse(
        encode_stream(run.events()),
        media_type=EVENT_STREAM_MEDIA_TYPE,
        headers=SSE_HEADERS,
    )


@router.get("/projects/{project_id}/process/stream", tags=["processing"])
async def stream_project_status(
    project_id: UUID,
    owner_id: str = Depends(current_owner_id),
    repository: ProjectRepository = Depends(get_repository),
    settings: ProcessingSettings = Depends(get_settings),
) -> StreamingResponse:
    events = await open_status_stream(project_id, owner_id, repository, settings)
    return StreamingResponse(
        encode_stream(events),
        media_type=EVENT_STREAM_MEDIA_TYPE,
        headers=SSE_HEADERS,
    )


@router.get("/projects/{project_id}/insights", response_model=InsightListResponse, tags=["content"])
async def list_insights(
    project_id: UUID,
    owner_id: str = Depends(current_owner_id),
    repository: ProjectRepository = Depends(get_repository),
) -> InsightListResponse:
    await _load_owned_project(repository, project_id, owner_id)
    insights = await run_in_threadpool(repository.list_insights, project_id)
    return InsightListResponse(items=[InsightView.from_insight(insight) for insight in insights])


@router.get("/projects/{project_id}/posts", response_model=PostListResponse, tags=["content"])
async def list_posts(
    project_id: UUID,
    owner_id: str = Depends(current_owner_id),
    repository: ProjectRepository = Depends(get_repository),
) -> PostListResponse:
    await _load_owned_project(repository, project_id, owner_id)
    posts = await run_in_threadpool(repository.list_posts, project_id)
    return PostListResponse(items=[PostView.from_post(post) for post in posts])


@router.patch("/projects/{project_id}/posts/{post_id}", response_model=PostResponse, tags=["content"])
async def review_post(
    project_id: UUID,
    post_id: UUID,
    payload: PostReviewRequest,
    owner_id: str = Depends(current_owner_id),
    repository: ProjectRepository = Depends(get_repository),
) -> PostResponse:
    await _load_owned_project(repository, project_id, owner_id)
    post = await run_in_threadpool(repository.set_post_status, project_id, post_id, payload.status)
    if post is None:
        raise PostNotFound(post_id)
    with log_context(project_id=str(project_id), owner_id=owner_id):
        logger.info("Post reviewed", extra={"post_id": str(post_id), "status": post.status.value})
    return PostResponse(post=PostView.from_post(post))


async def _project_error_handler(request: Request, exc: ProjectError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Project request failed", extra={"code": exc.code, "path": request.url.path})
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


def create_app(
    repository: ProjectRepository | None = None,
    settings: ProcessingSettings | None = None,
    collaborators: ProcessingCollaborators | None = None,
) -> FastAPI:
    """Assemble the service; arguments left as ``None`` are built from the environment."""

    app = FastAPI(title="Content Pipeline Processor", version="0.1.0")
    app.state.repository = repository or build_repository()
    app.state.settings = settings or load_processing_settings()
    app.state.collaborators = collaborators or build_default_collaborators(app.state.repository)

    setup_fastapi_metrics(app, service_name=SERVICE_NAME)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ProjectError, _project_error_handler)  # type: ignore[arg-type]
    app.include_router(router)

    @app.on_event("startup")
    def _on_startup() -> None:
        repo = app.state.repository
        if isinstance(repo, PostgresProjectRepository):
            repo.initialise_schema()
        logger.info(
            "Processor ready",
            extra={
                "environment": app.state.settings.environment,
                "repository": type(repo).__name__,
            },
        )

    @app.on_event("shutdown")
    def _on_shutdown() -> None:
        repo = app.state.repository
        if isinstance(repo, PostgresProjectRepository):
            repo.close()

    return app


app = create_app()
