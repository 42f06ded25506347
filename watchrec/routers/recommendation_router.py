from fastapi import APIRouter, Depends, Query, Request

from ..algorithms.registry import build_algorithms
from ..config import RATE_LIMIT_RECOMMENDATIONS
from ..dependencies import (
    get_algorithm_overrides,
    get_db_pool,
    get_redis,
    get_similarity_service,
    get_tmdb_client,
)
from ..limiter import limiter
from ..repositories.log_repository import LogRepository
from ..repositories.profile_repository import ProfileRepository
from ..repositories.watchlist_repository import WatchListRepository
from ..schemas.recommendation import EnsembleResponse
from ..services.ensemble_service import EnsembleService

router = APIRouter()


async def get_ensemble_service(
    db=Depends(get_db_pool),
    redis_client=Depends(get_redis),
    tmdb_client=Depends(get_tmdb_client),
    similarity_service=Depends(get_similarity_service),
    overrides=Depends(get_algorithm_overrides),
) -> EnsembleService:
    watchlist_repo = WatchListRepository(db)
    log_repo = LogRepository(db)
    algorithms = build_algorithms(
        watchlist_repo,
        log_repo,
        ProfileRepository(redis_client),
        similarity_service,
        overrides,
    )
    return EnsembleService(watchlist_repo, log_repo, redis_client, tmdb_client, algorithms)


@router.get("/api/recommendations/patterns", response_model=EnsembleResponse)
@limiter.limit(RATE_LIMIT_RECOMMENDATIONS)
async def get_pattern_recommendations(
    request: Request,  # Required for limiter
    user_id: str = Query(..., min_length=1, max_length=100),
    service: EnsembleService = Depends(get_ensemble_service)
):
    """
    Ensemble recommendations for a user. Always 200: check ``success``.
    """
    return await service.run_ensemble(user_id)
