"""PostgreSQL implementation of the project repository."""

from __future__ import annotations

import logging
from datetime import timedelta
from enum import Enum
from typing import Any, Iterable, Mapping, Optional, Sequence
from uuid import UUID, uuid4

from psycopg import sql
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from psycopg_pool import ConnectionPool

from content_pipeline_schemas import (
    PLACEHOLDER_TITLE,
    Insight,
    InsightCandidate,
    PostDraft,
    PostDraftCandidate,
    PostStatus,
    ProcessingStep,
    Project,
    ProjectStage,
)

from .repository import ProjectRepository, validate_update_fields

logger = logging.getLogger(__name__)

_PROJECT_COLUMNS = """
    id, user_id AS owner_id, title, transcript_original, transcript_cleaned,
    current_stage, processing_progress, processing_step, processing_run_id,
    processing_locked_at, created_at, updated_at
"""

_SCHEMA_DDL = """
CREATE TABLE IF NOT EXISTS content_projects (
    id UUID PRIMARY KEY,
    user_id TEXT NOT NULL,
    title TEXT NOT NULL,
    transcript_original TEXT NOT NULL DEFAULT '',
    transcript_cleaned TEXT,
    current_stage TEXT NOT NULL DEFAULT 'processing',
    processing_progress INTEGER NOT NULL DEFAULT 0
        CHECK (processing_progress BETWEEN 0 AND 100),
    processing_step TEXT,
    processing_run_id UUID,
    processing_locked_at TIMESTAMP WITHOUT TIME ZONE,
    created_at TIMESTAMP WITHOUT TIME ZONE NOT NULL DEFAULT (NOW() AT TIME ZONE 'utc'),
    updated_at TIMESTAMP WITHOUT TIME ZONE NOT NULL DEFAULT (NOW() AT TIME ZONE 'utc')
);

CREATE INDEX IF NOT EXISTS idx_content_projects_user_created
    ON content_projects (user_id, created_at DESC);

CREATE TABLE IF NOT EXISTS insights (
    id UUID PRIMARY KEY,
    project_id UUID NOT NULL REFERENCES content_projects(id) ON DELETE CASCADE,
    content TEXT NOT NULL,
    quote TEXT NOT NULL,
    score DOUBLE PRECISION NOT NULL DEFAULT 0,
    is_approved BOOLEAN NOT NULL DEFAULT FALSE,
    created_at TIMESTAMP WITHOUT TIME ZONE NOT NULL DEFAULT (NOW() AT TIME ZONE 'utc')
);

CREATE INDEX IF NOT EXISTS idx_insights_project ON insights (project_id, created_at);

CREATE TABLE IF NOT EXISTS posts (
    id UUID PRIMARY KEY,
    project_id UUID NOT NULL REFERENCES content_projects(id) ON DELETE CASCADE,
    insight_id UUID REFERENCES insights(id) ON DELETE SET NULL,
    content TEXT NOT NULL,
    hashtags JSONB NOT NULL DEFAULT '[]'::jsonb,
    platform TEXT NOT NULL DEFAULT 'linkedin',
    status TEXT NOT NULL DEFAULT 'pending',
    created_at TIMESTAMP WITHOUT TIME ZONE NOT NULL DEFAULT (NOW() AT TIME ZONE 'utc')
);

CREATE INDEX IF NOT EXISTS idx_posts_project ON posts (project_id, created_at);
"""


class PostgresProjectRepository(ProjectRepository):
    """Repository backed by a shared psycopg connection pool."""

    def __init__(self, conninfo: str, *, min_size: int = 1, max_size: int = 10) -> None:
        # psycopg connection URLs do not use SQLAlchemy's driver suffix.
        self._pool = ConnectionPool(
            conninfo.replace("+psycopg", ""), min_size=min_size, max_size=max_size, open=True
        )

    def initialise_schema(self) -> None:
        with self._pool.connection() as conn, conn.cursor() as cur:
            cur.execute(_SCHEMA_DDL)
            conn.commit()
        logger.info("Content pipeline schema ensured")

    def close(self) -> None:
        self._pool.close()

    def create_project(self, owner_id: str, title: str | None, transcript: str) -> Project:
        project_id = uuid4()
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cur:
            cur.execute(
                f"""
                INSERT INTO content_projects (id, user_id, title, transcript_original, current_stage)
                VALUES (%s, %s, %s, %s, %s)
                RETURNING {_PROJECT_COLUMNS}
                """,
                (
                    project_id,
                    owner_id,
                    (title or "").strip() or PLACEHOLDER_TITLE,
                    transcript.strip(),
                    ProjectStage.PROCESSING.value,
                ),
            )
            row = cur.fetchone()
            conn.commit()
        return Project.model_validate(row)

    def get_project(self, project_id: UUID) -> Optional[Project]:
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cur:
            cur.execute(f"SELECT {_PROJECT_COLUMNS} FROM content_projects WHERE id = %s", (project_id,))
            row = cur.fetchone()
        return Project.model_validate(row) if row else None

    def list_projects(
        self,
        owner_id: str,
        *,
        stages: Sequence[ProjectStage] | None = None,
        query: str | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[Project], int]:
        conditions = ["user_id = %s"]
        params: list[Any] = [owner_id]
        if stages:
            conditions.append("current_stage = ANY(%s)")
            params.append([stage.value for stage in stages])
        if query and query.strip():
            conditions.append("title ILIKE %s")
            params.append(f"%{query.strip()}%")
        where = " AND ".join(conditions)
        offset = (max(page, 1) - 1) * page_size

        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cur:
            cur.execute(f"SELECT COUNT(*) AS total FROM content_projects WHERE {where}", params)
            total = cur.fetchone()["total"]
            cur.execute(
                f"""
                SELECT {_PROJECT_COLUMNS} FROM content_projects
                WHERE {where}
                ORDER BY created_at DESC
                LIMIT %s OFFSET %s
                """,
                [*params, page_size, offset],
            )
            rows = cur.fetchall()
        return [Project.model_validate(row) for row in rows], int(total)

    def update_project(
        self,
        project_id: UUID,
        owner_id: str,
        fields: Mapping[str, Any],
        *,
        run_id: UUID | None = None,
    ) -> Optional[Project]:
        validate_update_fields(fields)
        conditions: list[tuple[str, Any]] = []
        if run_id is not None:
            conditions.append(("processing_run_id = %s", run_id))
        return self._conditional_update(project_id, owner_id, fields, conditions)

    def advance_stage(
        self,
        project_id: UUID,
        owner_id: str,
        from_stage: ProjectStage,
        to_stage: ProjectStage,
        fields: Mapping[str, Any] | None = None,
        *,
        run_id: UUID | None = None,
        stale_after: timedelta | None = None,
    ) -> Optional[Project]:
        changes = {**(fields or {}), "current_stage": to_stage}
        validate_update_fields(changes)
        conditions: list[tuple[str, Any]] = [("current_stage = %s", from_stage.value)]
        if run_id is not None:
            conditions.append(("processing_run_id = %s", run_id))
        if stale_after is not None:
            conditions.append(
                (
                    "(processing_run_id IS NULL OR processing_locked_at IS NULL"
                    " OR processing_locked_at <= (NOW() AT TIME ZONE 'utc') - %s)",
                    stale_after,
                )
            )
        return self._conditional_update(project_id, owner_id, changes, conditions)

    def _conditional_update(
        self,
        project_id: UUID,
        owner_id: str,
        fields: Mapping[str, Any],
        conditions: Sequence[tuple[str, Any]],
    ) -> Optional[Project]:
        assignments = [
            sql.SQL("{} = %s").format(sql.Identifier(column)) for column in fields
        ]
        assignments.append(sql.SQL("updated_at = NOW() AT TIME ZONE 'utc'"))
        where = " AND ".join(["id = %s", "user_id = %s", *(clause for clause, _ in conditions)])
        statement = sql.SQL(
            "UPDATE content_projects SET {assignments} WHERE " + where + " RETURNING " + _PROJECT_COLUMNS
        ).format(assignments=sql.SQL(", ").join(assignments))
        values = [_column_value(value) for value in fields.values()]

        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cur:
            cur.execute(statement, [*values, project_id, owner_id, *(value for _, value in conditions)])
            row = cur.fetchone()
            conn.commit()
        return Project.model_validate(row) if row else None

    def delete_project(self, project_id: UUID, owner_id: str) -> bool:
        with self._pool.connection() as conn, conn.cursor() as cur:
            cur.execute(
                "DELETE FROM content_projects WHERE id = %s AND user_id = %s",
                (project_id, owner_id),
            )
            deleted = cur.rowcount > 0
            conn.commit()
        return deleted

    def acquire_processing_lock(
        self, project_id: UUID, owner_id: str, run_id: UUID, stale_after: timedelta
    ) -> bool:
        with self._pool.connection() as conn, conn.cursor() as cur:
            cur.execute(
                """
                UPDATE content_projects
                SET processing_run_id = %s,
                    processing_locked_at = NOW() AT TIME ZONE 'utc'
                WHERE id = %s
                  AND user_id = %s
                  AND current_stage = %s
                  AND (
                    processing_run_id IS NULL
                    OR processing_locked_at IS NULL
                    OR processing_locked_at < (NOW() AT TIME ZONE 'utc') - %s
                  )
                """,
                (run_id, project_id, owner_id, ProjectStage.PROCESSING.value, stale_after),
            )
            acquired = cur.rowcount == 1
            conn.commit()
        return acquired

    def release_processing_lock(
        self, project_id: UUID, run_id: UUID, step: ProcessingStep | None = None
    ) -> bool:
        with self._pool.connection() as conn, conn.cursor() as cur:
            if step is None:
                cur.execute(
                    """
                    UPDATE content_projects
                    SET processing_run_id = NULL, processing_locked_at = NULL
                    WHERE id = %s AND processing_run_id = %s
                    """,
                    (project_id, run_id),
                )
            else:
                cur.execute(
                    """
                    UPDATE content_projects
                    SET processing_run_id = NULL, processing_locked_at = NULL,
                        processing_step = %s, updated_at = NOW() AT TIME ZONE 'utc'
                    WHERE id = %s AND processing_run_id = %s
                    """,
                    (step.value, project_id, run_id),
                )
            released = cur.rowcount == 1
            conn.commit()
        return released

    def add_insights(self, project_id: UUID, insights: Iterable[InsightCandidate]) -> list[Insight]:
        created = [
            Insight(project_id=project_id, content=item.content, quote=item.quote, score=item.score)
            for item in insights
        ]
        if not created:
            return []
        with self._pool.connection() as conn, conn.cursor() as cur:
            cur.executemany(
                """
                INSERT INTO insights (id, project_id, content, quote, score, is_approved, created_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s)
                """,
                [
                    (i.id, i.project_id, i.content, i.quote, i.score, i.is_approved, i.created_at)
                    for i in created
                ],
            )
            conn.commit()
        return created

    def list_insights(self, project_id: UUID) -> list[Insight]:
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cur:
            cur.execute(
                """
                SELECT id, project_id, content, quote, score, is_approved, created_at
                FROM insights WHERE project_id = %s ORDER BY created_at, id
                """,
                (project_id,),
            )
            rows = cur.fetchall()
        return [Insight.model_validate(row) for row in rows]

    def add_posts(self, project_id: UUID, posts: Iterable[PostDraftCandidate]) -> list[PostDraft]:
        created = [
            PostDraft(
                project_id=project_id,
                insight_id=item.insight_id,
                content=item.content,
                hashtags=list(item.hashtags),
            )
            for item in posts
        ]
        if not created:
            return []
        with self._pool.connection() as conn, conn.cursor() as cur:
            cur.executemany(
                """
                INSERT INTO posts (id, project_id, insight_id, content, hashtags, platform, status, created_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                """,
                [
                    (
                        post.id,
                        post.project_id,
                        post.insight_id,
                        post.content,
                        Jsonb(post.hashtags),
                        post.platform.value,
                        post.status.value,
                        post.created_at,
                    )
                    for post in created
                ],
            )
            conn.commit()
        return created

    def list_posts(self, project_id: UUID) -> list[PostDraft]:
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cur:
            cur.execute(
                """
                SELECT id, project_id, insight_id, content, hashtags, platform, status, created_at
                FROM posts WHERE project_id = %s ORDER BY created_at, id
                """,
                (project_id,),
            )
            rows = cur.fetchall()
        return [PostDraft.model_validate(row) for row in rows]

    def set_post_status(self, project_id: UUID, post_id: UUID, status: PostStatus) -> Optional[PostDraft]:
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cur:
            cur.execute(
                """
                UPDATE posts SET status = %s
                WHERE id = %s AND project_id = %s
                RETURNING id, project_id, insight_id, content, hashtags, platform, status, created_at
                """,
                (status.value, post_id, project_id),
            )
            row = cur.fetchone()
            conn.commit()
        return PostDraft.model_validate(row) if row else None


def _column_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    return value
