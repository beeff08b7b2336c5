from __future__ import annotations

from collections.abc import Callable
from functools import lru_cache
from typing import Any

from fastapi import Header, HTTPException

from app.core.config import Settings, settings
from app.services.ledger import MigrationLedger
from app.services.platform_client import PlatformClient
from app.services.queue_control import QueueControl
from app.worker.runtime import build_ledger, build_queue_control


def get_settings() -> Settings:
    return settings


@lru_cache(maxsize=1)
def get_ledger() -> MigrationLedger:
    return build_ledger(settings)


@lru_cache(maxsize=1)
def get_queue_control() -> QueueControl:
    return build_queue_control(settings, get_ledger())


@lru_cache(maxsize=1)
def get_platform_client() -> PlatformClient:
    return PlatformClient(settings.platform_api_base_url, timeout_s=settings.platform_timeout_seconds)


def get_dispatch() -> Callable[..., Any]:
    from app.worker.tasks import download_course

    # IMPORTANT: use the task object (not celery_app.send_task) so ENV=test eager mode works
    return download_course.apply_async


def require_token(authorization: str | None = Header(default=None)) -> str:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Authorization token not provided.")
    return authorization.split(" ", 1)[1]
