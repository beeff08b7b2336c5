from __future__ import annotations

import json
import time
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from logging import getLogger
from pathlib import Path
from typing import Any

import pydantic

from app.core.errors import (
    MigrationError,
    PersistenceError,
    ProcessExitError,
    ProcessSpawnError,
    UploadError,
    ValidationError,
)
from app.models.migration import Migration
from app.schemas.manifest import CourseManifest
from app.services.ledger import MigrationLedger
from app.services.paths import (
    LessonRef,
    content_path,
    course_prefix,
    lesson_refs,
    output_dir,
    resolve_lesson,
    scratch_manifest_path,
)
from app.services.storage import ObjectStorage
from app.services.supervisor import (
    Exited,
    LessonStarted,
    ModuleStarted,
    ProcessSupervisor,
    SpawnFailed,
)
from app.services.uploads import UploadPipeline

logger = getLogger(__name__)

# the last 5% is reserved for the closing upload
DOWNLOAD_PROGRESS_CAP = 95


def download_progress(completed: int, total: int) -> int | None:
    if total <= 0:
        return None
    return min(round(completed / total * DOWNLOAD_PROGRESS_CAP), DOWNLOAD_PROGRESS_CAP)


@dataclass(frozen=True)
class MigrationJob:
    id: str
    manifest: dict[str, Any]
    workspace_id: str | None = None
    course_id: str | None = None


@dataclass
class MigrationOutcome:
    job_id: str
    status: str
    output_dir: str
    remote_url: str | None = None
    lessons_seen: int = 0
    uploaded_dirs: list[str] = field(default_factory=list)


class MigrationWorker:
    """
    Drives one migration job end to end:
    scratch manifest -> fetch executable -> incremental lesson uploads -> ledger.
    """

    def __init__(
        self,
        *,
        ledger: MigrationLedger,
        uploads: UploadPipeline,
        storage: ObjectStorage,
        supervisor_factory: Callable[[str], ProcessSupervisor],
        downloads_dir: str | Path,
        scratch_dir: str | Path,
        grace_seconds: float = 2.0,
        upload_slots: int = 2,
        content_url_prefix: str = "/content",
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._ledger = ledger
        self._uploads = uploads
        self._storage = storage
        self._supervisor_factory = supervisor_factory
        self._downloads_dir = Path(downloads_dir)
        self._scratch_dir = Path(scratch_dir)
        self._grace_seconds = grace_seconds
        self._upload_slots = max(1, upload_slots)
        self._content_url_prefix = content_url_prefix
        self._sleep = sleep

    def run(self, job: MigrationJob) -> MigrationOutcome:
        tag = f"[job {job.id}] "
        tracked = bool(job.workspace_id and job.course_id)

        try:
            manifest = self._validate(job)
        except ValidationError as e:
            logger.error("%sRejected: %s", tag, e)
            if tracked:
                self._fail(tag, job, str(e))
            raise

        course_name = manifest.course.name
        prefix = course_prefix(course_name, job.workspace_id, job.course_id)
        out_dir = output_dir(self._downloads_dir, course_name, job.workspace_id, job.course_id)

        if tracked:
            existing = self._ledger_read(tag, job)
            if existing is not None and existing.job_id == job.id and existing.status == "cancelled":
                logger.warning("%sCancelled before start, skipping", tag)
                return MigrationOutcome(job_id=job.id, status="cancelled", output_dir=str(out_dir))
            self._ledger_write(
                tag,
                self._ledger.upsert_migration,
                job.workspace_id,
                job.course_id,
                course_name=course_name,
                status="downloading",
                progress=0,
                local_path=content_path(self._content_url_prefix, course_name, job.workspace_id, job.course_id),
                job_id=job.id,
            )

        logger.info("%sMigrating course %r (workspace=%s)", tag, course_name, job.workspace_id or "N/A")
        scratch_path = scratch_manifest_path(self._scratch_dir, course_name, job.id)
        try:
            try:
                self._write_scratch(scratch_path, job.manifest)
                out_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise PersistenceError(f"could not prepare job files: {e}") from e
            logger.info("%sManifest: %s Output: %s", tag, scratch_path, out_dir)

            outcome = self._drive(tag, job, manifest, scratch_path, out_dir, prefix)
        except MigrationError as e:
            logger.error("%sFailed: %s", tag, e)
            if tracked:
                self._fail(tag, job, str(e))
            raise
        except Exception as e:
            logger.exception("%sFailed unexpectedly", tag)
            if tracked:
                self._fail(tag, job, f"{type(e).__name__}: {e}")
            raise
        finally:
            self._remove_scratch(tag, scratch_path)

        logger.info("%sCompleted, %d lesson dir(s) uploaded", tag, len(outcome.uploaded_dirs))
        return outcome

    # -----------------------------
    # Download + incremental upload
    # -----------------------------
    def _drive(
        self,
        tag: str,
        job: MigrationJob,
        manifest: CourseManifest,
        scratch_path: Path,
        out_dir: Path,
        prefix: str,
    ) -> MigrationOutcome:
        tracked = bool(job.workspace_id and job.course_id)
        refs = lesson_refs(manifest)
        total = manifest.total_lessons
        outcome = MigrationOutcome(job_id=job.id, status="downloading", output_dir=str(out_dir))

        supervisor = self._supervisor_factory(tag)
        current_module: str | None = None
        seen: set[LessonRef] = set()
        previous: LessonRef | None = None
        lessons_started = 0
        pending: list[Future] = []
        uploaded: set[str] = set()
        exit_code: int | None = None

        with ThreadPoolExecutor(max_workers=self._upload_slots, thread_name_prefix="lesson-upload") as pool:

            def submit_upload(ref: LessonRef | None) -> None:
                if ref is None or ref.relative_dir in uploaded:
                    return
                uploaded.add(ref.relative_dir)
                future = pool.submit(self._upload_lesson, tag, job, ref, out_dir, prefix)
                future.add_done_callback(lambda f, ref=ref: self._log_incremental(tag, ref, f))
                pending.append(future)

            for event in supervisor.run(scratch_path, out_dir):
                if isinstance(event, ModuleStarted):
                    current_module = event.name
                elif isinstance(event, LessonStarted):
                    # the lesson before this one is now complete on disk
                    submit_upload(previous)
                    ref = resolve_lesson(refs, event.name, current_module, seen)
                    if ref is None:
                        logger.warning("%sLesson %r is not in the manifest", tag, event.name)
                    else:
                        seen.add(ref)
                        if tracked and ref.lesson_id and self._owns(tag, job):
                            self._ledger_write(
                                tag,
                                self._ledger.upsert_lesson_status,
                                job.workspace_id,
                                job.course_id,
                                ref.lesson_id,
                                "processing",
                            )
                    progress = download_progress(lessons_started, total)
                    if tracked and progress is not None:
                        self._ledger_write(tag, self._ledger.update_progress, job.workspace_id, job.course_id, progress, job.id)
                    previous = ref
                    lessons_started += 1
                elif isinstance(event, SpawnFailed):
                    raise ProcessSpawnError(f"could not start fetch executable: {event.error}") from event.error
                elif isinstance(event, Exited):
                    exit_code = event.code

            outcome.lessons_seen = lessons_started
            if exit_code is None:
                raise ProcessExitError(-1)
            if exit_code != 0:
                raise ProcessExitError(exit_code)

            progress = download_progress(lessons_started, total)
            if tracked and progress is not None:
                self._ledger_write(tag, self._ledger.update_progress, job.workspace_id, job.course_id, progress, job.id)

            # let the executable's last writes settle before the closing upload
            if self._grace_seconds > 0:
                self._sleep(self._grace_seconds)

            if previous is not None and previous.relative_dir not in uploaded:
                uploaded.add(previous.relative_dir)
                # closing upload gates completion, so its failure propagates
                self._upload_lesson(tag, job, previous, out_dir, prefix)

            wait(pending)

        outcome.uploaded_dirs = sorted(uploaded)
        outcome.remote_url = self._storage.public_url(prefix)
        outcome.status = "completed"
        if tracked:
            self._ledger_write(
                tag,
                self._ledger.finish_migration,
                job.workspace_id,
                job.course_id,
                "completed",
                progress=100,
                remote_url=outcome.remote_url,
                job_id=job.id,
            )
        return outcome

    def _upload_lesson(self, tag: str, job: MigrationJob, ref: LessonRef, out_dir: Path, prefix: str) -> int:
        # a re-migration may have taken the record over; its lessons are not ours to write
        tracked = bool(job.workspace_id and job.course_id and ref.lesson_id)
        remote_prefix = f"{prefix}/{ref.relative_dir}"
        try:
            count = self._uploads.upload_directory(out_dir / ref.relative_dir, remote_prefix)
        except UploadError:
            if tracked and self._owns(tag, job):
                self._ledger_write(tag, self._ledger.upsert_lesson_status, job.workspace_id, job.course_id, ref.lesson_id, "error")
            raise

        if tracked and self._owns(tag, job):
            stream_url = self._storage.public_url(f"{remote_prefix}/{ref.video_name}") if ref.video_name else None
            self._ledger_write(
                tag,
                self._ledger.upsert_lesson_status,
                job.workspace_id,
                job.course_id,
                ref.lesson_id,
                "completed",
                stream_url,
            )
        return count

    @staticmethod
    def _log_incremental(tag: str, ref: LessonRef, future: Future) -> None:
        exc = future.exception()
        if exc is None:
            logger.info("%sUploaded lesson %s", tag, ref.relative_dir)
        else:
            # incremental uploads never fail the job
            logger.error("%sIncremental upload of %s failed: %s", tag, ref.relative_dir, exc)

    # -----------------------------
    # Helpers
    # -----------------------------
    @staticmethod
    def _validate(job: MigrationJob) -> CourseManifest:
        if not isinstance(job.manifest, dict):
            raise ValidationError("job manifest must be an object")
        try:
            return CourseManifest.model_validate(job.manifest)
        except pydantic.ValidationError as e:
            raise ValidationError(f"invalid course manifest: {e.errors()[0].get('msg', e)}") from e

    @staticmethod
    def _write_scratch(path: Path, manifest: dict[str, Any]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(manifest, ensure_ascii=False, indent=2), encoding="utf-8")

    @staticmethod
    def _remove_scratch(tag: str, path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("%sCould not remove scratch manifest %s: %s", tag, path, e)

    def _fail(self, tag: str, job: MigrationJob, error: str) -> None:
        self._ledger_write(tag, self._ledger.finish_migration, job.workspace_id, job.course_id, "error", error=error, job_id=job.id)

    def _owns(self, tag: str, job: MigrationJob) -> bool:
        try:
            return self._ledger.is_driven_by(job.workspace_id, job.course_id, job.id)
        except PersistenceError as e:
            logger.error("%sLedger read failed: %s", tag, e)
            return False

    def _ledger_read(self, tag: str, job: MigrationJob) -> Migration | None:
        try:
            return self._ledger.get_migration(job.workspace_id, job.course_id)
        except PersistenceError as e:
            logger.error("%sLedger read failed: %s", tag, e)
            return None

    @staticmethod
    def _ledger_write(tag: str, write: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        # losing a status write beats losing downloaded content
        try:
            write(*args, **kwargs)
        except PersistenceError as e:
            logger.error("%sLedger write %s failed: %s", tag, write.__name__, e)
