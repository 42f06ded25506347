from fastapi import APIRouter, Depends, Query

from .event_router import get_outcome_service
from ..algorithms.registry import ALGORITHM_NAMES
from ..dependencies import get_profile_service, get_similarity_service
from ..services.outcome_service import OutcomeService
from ..services.profile_service import ProfileService
from ..services.similarity import SimilarityService

router = APIRouter(prefix="/api/admin")


@router.get("/algorithms/performance")
async def get_system_algorithm_performance(
    service: OutcomeService = Depends(get_outcome_service)
):
    """System-wide per-algorithm counts with health status"""
    return await service.get_system_algorithm_performance(ALGORITHM_NAMES)


@router.post("/similarities/{user_id}")
async def recompute_similarities(
    user_id: str,
    sample_size: int = Query(50, ge=1, le=1000),
    service: SimilarityService = Depends(get_similarity_service)
):
    similar = await service.find_similar_users(user_id, sample_size=sample_size, computed_by="admin")
    return {"user_id": user_id, "similar_users": similar}


@router.get("/similarities/{user_id}")
async def get_stored_similarities(
    user_id: str,
    limit: int = Query(20, ge=1, le=100),
    service: SimilarityService = Depends(get_similarity_service)
):
    return {"user_id": user_id, "matches": await service.similarity_repo.get_top_matches(user_id, limit)}


@router.post("/profiles/{user_id}")
async def recompute_profiles(
    user_id: str,
    service: ProfileService = Depends(get_profile_service)
):
    """Rebuild the user's genre and person profiles from their watch history"""
    return {"user_id": user_id, **await service.recompute(user_id)}
