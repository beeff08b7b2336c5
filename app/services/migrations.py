from __future__ import annotations

import uuid
from collections.abc import Callable
from typing import Any

import pydantic

from app.core.errors import ValidationError
from app.schemas.manifest import CourseManifest
from app.services.ledger import MigrationLedger
from app.services.paths import content_path


def enqueue_migration(
    ledger: MigrationLedger,
    manifest: dict[str, Any],
    *,
    workspace_id: str | None,
    course_id: str | None,
    dispatch: Callable[..., Any],
    content_url_prefix: str = "/content",
) -> str:
    """
    Record the migration as downloading/0 and put the job on the queue.

    The job id is chosen here so the ledger knows it before any worker does;
    `dispatch` is a Celery task's apply_async.
    Returns the job id.
    """
    try:
        parsed = CourseManifest.model_validate(manifest)
    except pydantic.ValidationError as e:
        raise ValidationError(f"invalid course manifest: {e.errors()[0].get('msg', e)}") from e

    job_id = str(uuid.uuid4())
    if workspace_id and course_id:
        ledger.upsert_migration(
            workspace_id,
            course_id,
            course_name=parsed.course.name,
            status="downloading",
            progress=0,
            local_path=content_path(content_url_prefix, parsed.course.name, workspace_id, course_id),
            job_id=job_id,
        )

    dispatch(
        kwargs={"manifest": manifest, "workspace_id": workspace_id, "course_id": course_id},
        task_id=job_id,
    )
    return job_id
