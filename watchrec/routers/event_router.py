from fastapi import APIRouter, Depends, HTTPException, Path

from ..dependencies import get_log_repository
from ..schemas.event import OutcomeRequest, LogActionRequest
from ..services.outcome_service import OutcomeService

router = APIRouter()


async def get_outcome_service(log_repo=Depends(get_log_repository)) -> OutcomeService:
    return OutcomeService(log_repo)


@router.post("/api/recommendations/{log_id}/outcome", status_code=202)
async def track_outcome(
    body: OutcomeRequest,
    log_id: int = Path(..., ge=1),
    service: OutcomeService = Depends(get_outcome_service)
):
    """
    Record what the user did with a shown recommendation
    """
    event_id = await service.track_outcome(log_id, body.action, body.rating)
    return {"status": "accepted", "tracked": event_id is not None, "event_id": event_id}


@router.post("/api/recommendations/{log_id}/action")
async def record_action(
    body: LogActionRequest,
    log_id: int = Path(..., ge=1),
    service: OutcomeService = Depends(get_outcome_service)
):
    if not await service.record_action(log_id, body.action, body.position):
        raise HTTPException(status_code=404, detail="Recommendation log entry not found")
    return {"status": "updated", "log_id": log_id, "action": body.action}


@router.get("/api/recommendations/{log_id}/events")
async def get_log_events(
    log_id: int = Path(..., ge=1),
    service: OutcomeService = Depends(get_outcome_service)
):
    result = await service.get_log_events(log_id)
    if result is None:
        raise HTTPException(status_code=404, detail="Recommendation log entry not found")
    return result
