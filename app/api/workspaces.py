import json
from pathlib import Path

from fastapi import APIRouter, Depends, HTTPException, Request

from app.api.deps import get_ledger, get_queue_control, get_settings
from app.core.config import Settings
from app.services.catalog import decorate_manifest
from app.services.ledger import MigrationLedger
from app.services.paths import course_prefix
from app.services.queue_control import QueueControl

router = APIRouter(prefix="/workspaces", tags=["workspaces"])


@router.get("/{workspace_id}/status")
def workspace_status(workspace_id: str, ledger: MigrationLedger = Depends(get_ledger)) -> dict:
    migrations = ledger.list_migrations(workspace_id)
    return {"workspaceId": workspace_id, "migrations": [m.to_dict() for m in migrations]}


@router.get("/{workspace_id}/courses/{course_id}/lessons")
def lesson_statuses(workspace_id: str, course_id: str, ledger: MigrationLedger = Depends(get_ledger)) -> dict:
    return {
        "workspaceId": workspace_id,
        "courseId": course_id,
        "lessons": ledger.read_lesson_statuses(course_id, workspace_id),
    }


@router.get("/{workspace_id}/courses/{course_id}/catalog")
def course_catalog(
    workspace_id: str,
    course_id: str,
    request: Request,
    ledger: MigrationLedger = Depends(get_ledger),
    settings: Settings = Depends(get_settings),
) -> dict:
    """
    The downloaded course.json with lesson availability injected.
    Lessons not yet published point at the local /content mount.
    """
    prefix = course_prefix("", workspace_id, course_id)
    course_json = Path(settings.downloads_dir) / prefix / "course.json"
    if not course_json.is_file():
        raise HTTPException(status_code=404, detail="Course has not been downloaded yet.")

    manifest = json.loads(course_json.read_text(encoding="utf-8"))
    base_url = f"{str(request.base_url).rstrip('/')}{settings.content_url_prefix}/{prefix}"
    return decorate_manifest(manifest, ledger.read_lesson_statuses(course_id, workspace_id), base_url)


@router.post("/{workspace_id}/courses/{course_id}/cancel")
def cancel_migration(
    workspace_id: str,
    course_id: str,
    control: QueueControl = Depends(get_queue_control),
) -> dict:
    if not control.cancel_one(workspace_id, course_id):
        raise HTTPException(status_code=404, detail="No active migration for this course.")
    return {"ok": True, "workspaceId": workspace_id, "courseId": course_id, "status": "cancelled"}
