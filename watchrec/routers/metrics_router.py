from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from .event_router import get_outcome_service
from ..schemas.event import DateRange
from ..services.outcome_service import OutcomeService

router = APIRouter()


@router.get("/api/recommendations/acceptance")
async def get_acceptance_rate(
    user_id: str = Query(..., min_length=1),
    algorithm: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    service: OutcomeService = Depends(get_outcome_service)
):
    """Acceptance rate (added + rated over shown) for one user"""
    if (start is None) != (end is None):
        raise HTTPException(status_code=400, detail="start and end must be given together")
    date_range = DateRange(start=start, end=end) if start else None
    return await service.calculate_acceptance_rate(user_id, algorithm, date_range)


@router.get("/api/recommendations/performance")
async def get_algorithm_performance(
    user_id: str = Query(..., min_length=1),
    service: OutcomeService = Depends(get_outcome_service)
):
    return await service.get_algorithm_performance(user_id)


@router.get("/api/recommendations/outcome-stats")
async def get_outcome_stats(
    user_id: str = Query(..., min_length=1),
    algorithm: Optional[str] = None,
    days: Optional[int] = Query(None, ge=1, le=365),
    service: OutcomeService = Depends(get_outcome_service)
):
    return {"days": await service.get_outcome_stats(user_id, algorithm, days)}
