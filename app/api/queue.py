from fastapi import APIRouter, Depends

from app.api.deps import get_queue_control
from app.services.queue_control import QueueControl

router = APIRouter(prefix="/queue", tags=["queue"])


@router.post("/cancel-all")
def cancel_all(control: QueueControl = Depends(get_queue_control)) -> dict:
    result = control.cancel_all()
    return {"ok": True, **result.to_dict()}
