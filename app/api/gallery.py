from fastapi import APIRouter, Depends, Request

from app.api.deps import get_ledger, get_settings
from app.core.config import Settings
from app.services.catalog import decorate_manifest, find_downloaded_courses
from app.services.ledger import MigrationLedger

router = APIRouter(tags=["gallery"])


@router.get("/gallery")
def gallery(
    request: Request,
    ledger: MigrationLedger = Depends(get_ledger),
    settings: Settings = Depends(get_settings),
) -> list[dict]:
    """Every downloaded course, decorated for playback."""
    content_base = f"{str(request.base_url).rstrip('/')}{settings.content_url_prefix}"
    courses = []
    for prefix, manifest in find_downloaded_courses(settings.downloads_dir):
        parts = prefix.split("/")
        # legacy courses have no ledger rows
        statuses = ledger.read_lesson_statuses(parts[2], parts[1]) if len(parts) == 3 else {}
        courses.append({"dirName": prefix, **decorate_manifest(manifest, statuses, f"{content_base}/{prefix}")})
    return courses
