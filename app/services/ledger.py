from __future__ import annotations

from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime, timezone
from logging import getLogger
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.core.errors import PersistenceError
from app.models.lesson_migration import LessonMigration
from app.models.migration import ACTIVE_STATUSES, Migration

logger = getLogger(__name__)

_MIGRATION_FIELDS = {"course_name", "status", "progress", "local_path", "remote_url", "error", "job_id"}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _insert_for(db: Session):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert
    if dialect == "sqlite":
        return sqlite_insert
    raise PersistenceError(f"Unsupported ledger dialect: {dialect}")


class MigrationLedger:
    """
    Durable per-course and per-lesson migration status.

    Every write is keyed by its unique tuple:
      migrations         (workspace_id, course_id)
      lesson_migrations  (workspace_id, course_id, lesson_id)
    so concurrent writers are last-writer-wins per call, never duplicated rows.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise PersistenceError(str(e)) from e
        finally:
            db.close()

    # -----------------------------
    # Course records
    # -----------------------------
    def upsert_migration(self, workspace_id: str, course_id: str, **fields: Any) -> None:
        unknown = set(fields) - _MIGRATION_FIELDS
        if unknown:
            raise ValueError(f"Unknown migration fields: {', '.join(sorted(unknown))}")

        values = {
            "course_name": "",
            "status": "queued",
            "progress": 0,
            "local_path": "",
            "remote_url": None,
            "error": None,
            "job_id": None,
            **fields,
            "updated_at": _now(),
        }
        with self._session() as db:
            insert = _insert_for(db)
            stmt = insert(Migration.__table__).values(workspace_id=workspace_id, course_id=course_id, **values)
            stmt = stmt.on_conflict_do_update(
                index_elements=["workspace_id", "course_id"],
                set_={k: stmt.excluded[k] for k in values},
            )
            db.execute(stmt)

    def get_migration(self, workspace_id: str, course_id: str) -> Migration | None:
        with self._session() as db:
            return db.execute(
                select(Migration).where(Migration.workspace_id == workspace_id, Migration.course_id == course_id)
            ).scalar_one_or_none()

    def list_migrations(self, workspace_id: str) -> list[Migration]:
        with self._session() as db:
            rows = db.execute(
                select(Migration).where(Migration.workspace_id == workspace_id).order_by(Migration.id.asc())
            ).scalars()
            return list(rows)

    def update_progress(self, workspace_id: str, course_id: str, progress: int, job_id: str | None = None) -> bool:
        """
        Advance progress; never moves backwards and never touches a non-downloading record.
        With job_id, only a record still driven by that job is touched.
        """
        stmt = update(Migration).where(
            Migration.workspace_id == workspace_id,
            Migration.course_id == course_id,
            Migration.status == "downloading",
            Migration.progress <= progress,
        )
        if job_id is not None:
            stmt = stmt.where(Migration.job_id == job_id)
        with self._session() as db:
            result = db.execute(stmt.values(progress=progress, updated_at=_now()))
            return result.rowcount > 0

    def finish_migration(
        self,
        workspace_id: str,
        course_id: str,
        status: str,
        *,
        progress: int | None = None,
        remote_url: str | None = None,
        error: str | None = None,
        job_id: str | None = None,
    ) -> bool:
        """Move an active record to a terminal status. Terminal records are left alone."""
        values: dict[str, Any] = {"status": status, "error": error, "updated_at": _now()}
        if progress is not None:
            values["progress"] = progress
        if remote_url is not None:
            values["remote_url"] = remote_url
        stmt = update(Migration).where(
            Migration.workspace_id == workspace_id,
            Migration.course_id == course_id,
            Migration.status.in_(ACTIVE_STATUSES),
        )
        if job_id is not None:
            stmt = stmt.where(Migration.job_id == job_id)
        with self._session() as db:
            result = db.execute(stmt.values(**values))
            return result.rowcount > 0

    def is_driven_by(self, workspace_id: str, course_id: str, job_id: str) -> bool:
        """True while the record is active and still owned by job_id."""
        with self._session() as db:
            found = db.execute(
                select(Migration.id).where(
                    Migration.workspace_id == workspace_id,
                    Migration.course_id == course_id,
                    Migration.status.in_(ACTIVE_STATUSES),
                    Migration.job_id == job_id,
                )
            ).first()
            return found is not None

    def cancel_migrations(self, statuses: Sequence[str] = ACTIVE_STATUSES) -> int:
        with self._session() as db:
            result = db.execute(
                update(Migration)
                .where(Migration.status.in_(tuple(statuses)))
                .values(status="cancelled", updated_at=_now())
            )
            return result.rowcount

    def cancel_migration(self, workspace_id: str, course_id: str) -> bool:
        return self.finish_migration(workspace_id, course_id, "cancelled")

    # -----------------------------
    # Lesson records
    # -----------------------------
    def upsert_lesson_status(
        self,
        workspace_id: str,
        course_id: str,
        lesson_id: str,
        processing_status: str,
        stream_url: str | None = None,
    ) -> None:
        values = {"processing_status": processing_status, "stream_url": stream_url, "updated_at": _now()}
        with self._session() as db:
            insert = _insert_for(db)
            stmt = insert(LessonMigration.__table__).values(
                workspace_id=workspace_id, course_id=course_id, lesson_id=lesson_id, **values
            )
            set_ = {
                "processing_status": stmt.excluded.processing_status,
                "updated_at": stmt.excluded.updated_at,
            }
            # keep a previously published url when only the status moves
            if stream_url is not None:
                set_["stream_url"] = stmt.excluded.stream_url
            stmt = stmt.on_conflict_do_update(
                index_elements=["workspace_id", "course_id", "lesson_id"],
                set_=set_,
            )
            db.execute(stmt)

    def fail_processing_lessons(self) -> int:
        with self._session() as db:
            result = db.execute(
                update(LessonMigration)
                .where(LessonMigration.processing_status == "processing")
                .values(processing_status="error", updated_at=_now())
            )
            return result.rowcount

    def read_lesson_statuses(self, course_id: str, workspace_id: str) -> dict[str, dict[str, str | None]]:
        with self._session() as db:
            rows = db.execute(
                select(LessonMigration).where(
                    LessonMigration.course_id == course_id,
                    LessonMigration.workspace_id == workspace_id,
                )
            ).scalars()
            return {
                r.lesson_id: {"processingStatus": r.processing_status, "streamUrl": r.stream_url}
                for r in rows
            }
