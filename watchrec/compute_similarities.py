"""
Refresh taste profiles, then cached similar-user lists.

Usage: python -m watchrec.compute_similarities [user_id ...]
With no ids, refreshes every user who added something in the last 30 days.
Profiles are rebuilt for all of them first so that similarities compare
fresh genre and person scores. Person profiles need TMDB_API_KEY.
"""
import asyncio
import logging
import sys
from datetime import datetime, timedelta, timezone
from typing import List

import asyncpg
import httpx
import redis.asyncio as redis

from .config import POSTGRES_DSN, REDIS_URL, SIMILARITY_SAMPLE_SIZE, TMDB_API_KEY, TMDB_BASE_URL, settings
from .logging_config import setup_logging
from .repositories.profile_repository import ProfileRepository
from .repositories.similarity_repository import SimilarityRepository
from .repositories.watchlist_repository import WatchListRepository
from .services.profile_service import ProfileService
from .services.similarity import SimilarityService
from .services.tmdb_client import TMDBClient

logger = logging.getLogger(__name__)

ACTIVE_WINDOW_DAYS = 30
MAX_USERS_PER_RUN = 10000


async def refresh_profiles(service: ProfileService, user_ids: List[str]) -> int:
    refreshed = 0
    for user_id in user_ids:
        try:
            await service.recompute(user_id)
            refreshed += 1
        except Exception as e:
            logger.error("Profile refresh failed", extra={"user_id": user_id, "error": str(e)})
    return refreshed


async def refresh_users(service: SimilarityService, user_ids: List[str]) -> int:
    refreshed = 0
    for user_id in user_ids:
        try:
            await service.find_similar_users(user_id, SIMILARITY_SAMPLE_SIZE, computed_by="batch")
            refreshed += 1
        except Exception as e:
            # One bad profile shouldn't stop the batch
            logger.error("Similarity refresh failed", extra={"user_id": user_id, "error": str(e)})
    return refreshed


async def main(user_ids: List[str]):
    pool = await asyncpg.create_pool(POSTGRES_DSN, min_size=1, max_size=5)
    redis_client = redis.from_url(REDIS_URL, encoding="utf-8", decode_responses=True)
    http_client = httpx.AsyncClient(base_url=TMDB_BASE_URL, timeout=10)
    try:
        watchlist_repo = WatchListRepository(pool)
        profile_repo = ProfileRepository(redis_client)
        tmdb_client = TMDBClient(http_client, TMDB_API_KEY) if TMDB_API_KEY else None
        profile_service = ProfileService(watchlist_repo, profile_repo, tmdb_client)
        similarity_service = SimilarityService(profile_repo, watchlist_repo, SimilarityRepository(pool))
        if not user_ids:
            since = datetime.now(timezone.utc) - timedelta(days=ACTIVE_WINDOW_DAYS)
            user_ids = await watchlist_repo.sample_user_ids("", MAX_USERS_PER_RUN, active_since=since)

        profiles = await refresh_profiles(profile_service, user_ids)
        refreshed = await refresh_users(similarity_service, user_ids)
        logger.info(
            "Similarity refresh finished",
            extra={"requested": len(user_ids), "profiles": profiles, "refreshed": refreshed},
        )
    finally:
        await http_client.aclose()
        await redis_client.aclose()
        await pool.close()


if __name__ == "__main__":
    setup_logging(settings.LOG_LEVEL)
    asyncio.run(main(sys.argv[1:]))
