from celery import Celery
from celery.signals import setup_logging

from app.core.config import settings
from app.core.logging import configure_logging

# IMPORTANT: the variable name MUST be `celery_app`
celery_app = Celery(
    "course_bridge",
    broker=settings.broker_url,
    backend=settings.result_backend_url,
)

# Ensure tasks are discovered
celery_app.autodiscover_tasks(["app.worker"])

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    enable_utc=True,
    timezone="UTC",
    task_track_started=True,
    # jobs survive a worker crash: ack only once the job has run
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    # each job drives one OS subprocess; never hoard jobs in a busy worker
    worker_prefetch_multiplier=1,
    worker_concurrency=settings.worker_concurrency,
    task_default_queue=settings.download_queue,
    task_routes={"migrations.*": {"queue": settings.download_queue}},
    # ENV=test runs jobs inline
    task_always_eager=settings.is_test_env(),
    task_eager_propagates=settings.is_test_env(),
)


@setup_logging.connect
def _configure_worker_logging(**kwargs) -> None:
    configure_logging(settings)


__all__ = ["celery_app"]
