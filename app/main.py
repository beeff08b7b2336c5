from fastapi import Depends, FastAPI
from pydantic import BaseModel

from app.api.courses import router as courses_router
from app.api.deps import get_ledger
from app.api.gallery import router as gallery_router
from app.api.queue import router as queue_router
from app.api.workspaces import router as workspaces_router
from app.core.config import settings
from app.core.errors import PersistenceError
from app.core.logging import configure_logging
from app.services.ledger import MigrationLedger

configure_logging(settings)

app = FastAPI(title="Course Bridge API", version="0.1.0")
app.include_router(courses_router)
app.include_router(workspaces_router)
app.include_router(queue_router)
app.include_router(gallery_router)


class HealthResponse(BaseModel):
    ok: bool
    service: str
    version: str
    db_ok: bool


@app.get("/health", response_model=HealthResponse)
def health(ledger: MigrationLedger = Depends(get_ledger)) -> HealthResponse:
    # lightweight ledger check
    db_ok = False
    try:
        ledger.list_migrations("__health__")
        db_ok = True
    except PersistenceError:
        db_ok = False

    return HealthResponse(ok=True, service="api", version=app.version, db_ok=db_ok)
