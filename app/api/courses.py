from collections.abc import Callable
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from app.api.deps import get_dispatch, get_ledger, get_platform_client, get_settings, require_token
from app.core.config import Settings
from app.core.errors import PersistenceError, PlatformError, ValidationError
from app.services.ledger import MigrationLedger
from app.services.migrations import enqueue_migration
from app.services.platform_client import PlatformClient

router = APIRouter(tags=["courses"])


class MigrateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    workspace_id: str | None = Field(default=None, alias="workspaceId")
    course_id: str | None = Field(default=None, alias="courseId")


class MigrateResponse(BaseModel):
    ok: bool
    job_id: str
    workspace_id: str
    course_id: str
    course_name: str


@router.get("/courses")
def list_courses(
    token: str = Depends(require_token),
    client: PlatformClient = Depends(get_platform_client),
) -> list[dict[str, Any]]:
    try:
        return client.list_courses(token)
    except PlatformError as e:
        raise HTTPException(status_code=502, detail=str(e))


def _migrate(
    course_id: str | None,
    workspace_id: str | None,
    token: str,
    client: PlatformClient,
    ledger: MigrationLedger,
    dispatch: Callable[..., Any],
    settings: Settings,
) -> MigrateResponse:
    if not course_id or not workspace_id:
        raise HTTPException(status_code=400, detail="courseId and workspaceId are required.")

    try:
        manifest = client.get_course_sections(course_id, token)
        job_id = enqueue_migration(
            ledger,
            manifest,
            workspace_id=workspace_id,
            course_id=course_id,
            dispatch=dispatch,
            content_url_prefix=settings.content_url_prefix,
        )
    except PlatformError as e:
        raise HTTPException(status_code=502, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=str(e))

    return MigrateResponse(
        ok=True,
        job_id=job_id,
        workspace_id=workspace_id,
        course_id=course_id,
        course_name=manifest["course"]["name"],
    )


@router.post("/courses/migrate", response_model=MigrateResponse)
def migrate_course(
    req: MigrateRequest,
    token: str = Depends(require_token),
    client: PlatformClient = Depends(get_platform_client),
    ledger: MigrationLedger = Depends(get_ledger),
    dispatch: Callable[..., Any] = Depends(get_dispatch),
    settings: Settings = Depends(get_settings),
) -> MigrateResponse:
    return _migrate(req.course_id, req.workspace_id, token, client, ledger, dispatch, settings)


@router.post("/courses/{course_id}/prepare-download", response_model=MigrateResponse)
def prepare_download(
    course_id: str,
    req: MigrateRequest,
    token: str = Depends(require_token),
    client: PlatformClient = Depends(get_platform_client),
    ledger: MigrationLedger = Depends(get_ledger),
    dispatch: Callable[..., Any] = Depends(get_dispatch),
    settings: Settings = Depends(get_settings),
) -> MigrateResponse:
    return _migrate(course_id, req.workspace_id, token, client, ledger, dispatch, settings)
