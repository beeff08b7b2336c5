from typing import Any

from app.services.migration_worker import MigrationJob
from app.worker.celery_app import celery_app
from app.worker.runtime import get_migration_worker

DOWNLOAD_COURSE_TASK = "migrations.download_course"


@celery_app.task(name=DOWNLOAD_COURSE_TASK, bind=True)
def download_course(
    self,
    manifest: dict[str, Any],
    workspace_id: str | None = None,
    course_id: str | None = None,
) -> dict:
    job = MigrationJob(id=self.request.id, manifest=manifest, workspace_id=workspace_id, course_id=course_id)
    # failures are already in the ledger; re-raise so Celery records the task as failed
    outcome = get_migration_worker().run(job)
    return {
        "ok": outcome.status == "completed",
        "job_id": outcome.job_id,
        "status": outcome.status,
        "output_dir": outcome.output_dir,
        "remote_url": outcome.remote_url,
        "lessons_seen": outcome.lessons_seen,
    }
