from __future__ import annotations

from dataclasses import dataclass
from logging import getLogger
from typing import Any

from app.services.ledger import MigrationLedger

logger = getLogger(__name__)


@dataclass
class CancelAllResult:
    revoked_jobs: int
    purged_messages: int
    cancelled_migrations: int
    failed_lessons: int

    def to_dict(self) -> dict[str, int]:
        return {
            "revokedJobs": self.revoked_jobs,
            "purgedMessages": self.purged_messages,
            "cancelledMigrations": self.cancelled_migrations,
            "failedLessons": self.failed_lessons,
        }


class QueueControl:
    """
    Administrative operations on the download queue and the ledger.

    Cancellation is logical: tasks are revoked without terminate, so a fetch
    executable that is already running keeps going until it exits. Its ledger
    record stays "cancelled" because the worker only writes to active records.
    """

    def __init__(self, celery_app: Any, ledger: MigrationLedger, queue_name: str = "download-queue") -> None:
        self._app = celery_app
        self._ledger = ledger
        self.queue_name = queue_name

    def cancel_all(self) -> CancelAllResult:
        control = self._app.control

        # pause: no worker picks up new jobs while we clean
        control.cancel_consumer(self.queue_name, reply=True)
        try:
            job_ids = self._pending_job_ids()
            if job_ids:
                control.revoke(job_ids)
            purged = control.purge() or 0
            # drain whatever slipped in while we were revoking
            purged += control.purge() or 0
        finally:
            control.add_consumer(self.queue_name, reply=True)

        cancelled = self._ledger.cancel_migrations(("downloading", "queued"))
        failed_lessons = self._ledger.fail_processing_lessons()
        logger.info(
            "Queue %s cleaned: revoked=%d purged=%d cancelled=%d lessons_failed=%d",
            self.queue_name,
            len(job_ids),
            purged,
            cancelled,
            failed_lessons,
        )
        return CancelAllResult(
            revoked_jobs=len(job_ids),
            purged_messages=purged,
            cancelled_migrations=cancelled,
            failed_lessons=failed_lessons,
        )

    def cancel_one(self, workspace_id: str, course_id: str) -> bool:
        record = self._ledger.get_migration(workspace_id, course_id)
        if record is None or not self._ledger.cancel_migration(workspace_id, course_id):
            return False
        if record.job_id:
            self._app.control.revoke(record.job_id)
        logger.info("Cancelled migration %s/%s (job %s)", workspace_id, course_id, record.job_id or "N/A")
        return True

    def _pending_job_ids(self) -> list[str]:
        """Ids of every active, reserved (prefetched) and scheduled (eta/countdown) job."""
        inspect = self._app.control.inspect()
        ids: list[str] = []
        for replies in (inspect.active(), inspect.reserved(), inspect.scheduled()):
            for requests in (replies or {}).values():
                for req in requests or []:
                    # scheduled entries wrap the request
                    task_id = (req.get("request") or req).get("id")
                    if task_id and task_id not in ids:
                        ids.append(task_id)
        return ids
