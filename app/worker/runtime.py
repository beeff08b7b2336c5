from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from app.core.config import Settings, settings as default_settings
import app.models  # noqa: F401  (registers tables on Base)
from app.db.base import Base
from app.db.session import make_engine, make_session_factory
from app.services.ledger import MigrationLedger
from app.services.migration_worker import MigrationWorker
from app.services.queue_control import QueueControl
from app.services.storage import build_object_storage
from app.services.supervisor import ProcessSupervisor
from app.services.uploads import UploadPipeline


def build_ledger(settings: Settings) -> MigrationLedger:
    engine = make_engine(settings.database_url)
    if engine.url.get_backend_name() == "sqlite" and engine.url.database:
        Path(engine.url.database).parent.mkdir(parents=True, exist_ok=True)
    # CREATE TABLE IF NOT EXISTS; alembic owns schema changes after 0001
    Base.metadata.create_all(engine)
    return MigrationLedger(make_session_factory(engine))


def build_migration_worker(settings: Settings, ledger: MigrationLedger | None = None) -> MigrationWorker:
    storage = build_object_storage(settings)
    return MigrationWorker(
        ledger=ledger or build_ledger(settings),
        uploads=UploadPipeline(storage, max_concurrency=settings.upload_concurrency),
        storage=storage,
        supervisor_factory=lambda tag: ProcessSupervisor(settings.fetch_executable, log_prefix=tag),
        downloads_dir=settings.downloads_dir,
        scratch_dir=settings.scratch_dir,
        grace_seconds=settings.upload_grace_seconds,
        upload_slots=settings.upload_concurrency,
        content_url_prefix=settings.content_url_prefix,
    )


def build_queue_control(settings: Settings, ledger: MigrationLedger | None = None) -> QueueControl:
    from app.worker.celery_app import celery_app

    return QueueControl(celery_app, ledger or build_ledger(settings), queue_name=settings.download_queue)


# Built once per worker process, on first job
@lru_cache(maxsize=1)
def get_migration_worker() -> MigrationWorker:
    return build_migration_worker(default_settings)
