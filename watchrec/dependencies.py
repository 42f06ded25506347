import logging

import asyncpg
import httpx
import redis.asyncio as redis
from fastapi import Depends

from .config import POSTGRES_DSN, REDIS_URL, TMDB_API_KEY, TMDB_BASE_URL, settings
from .exceptions import DataStoreUnavailable
from .models.base import schema_ddl
from .models import watchlist, log, similarity  # noqa: F401  (registers tables)
from .models.watchlist import MOVIE_STATUSES
from .repositories.log_repository import LogRepository
from .repositories.profile_repository import ProfileRepository
from .repositories.similarity_repository import SimilarityRepository
from .repositories.watchlist_repository import WatchListRepository
from .services.profile_service import ProfileService
from .services.similarity import SimilarityService
from .services.tmdb_client import TMDBClient

logger = logging.getLogger(__name__)


# Global state for connections
class AppState:
    pg_pool: asyncpg.Pool = None
    redis_client: redis.Redis = None
    http_client: httpx.AsyncClient = None


state = AppState()


async def init_schema(pool: asyncpg.Pool):
    """Create missing tables and indexes and seed the status catalog."""
    async with pool.acquire() as conn:
        async with conn.transaction():
            for statement in schema_ddl():
                await conn.execute(statement)
            await conn.executemany(
                "INSERT INTO movie_status (id, name) VALUES ($1, $2) ON CONFLICT (id) DO NOTHING",
                MOVIE_STATUSES,
            )


async def init_resources():
    """Initialize all resources"""
    state.pg_pool = await asyncpg.create_pool(
        POSTGRES_DSN,
        min_size=5,
        max_size=20,
        command_timeout=60
    )
    await init_schema(state.pg_pool)

    state.redis_client = redis.from_url(
        REDIS_URL,
        encoding="utf-8",
        decode_responses=True
    )

    state.http_client = httpx.AsyncClient(base_url=TMDB_BASE_URL, timeout=10)
    logger.info("Resources initialized")


async def close_resources():
    """Close all resources"""
    if state.http_client:
        await state.http_client.aclose()
    if state.redis_client:
        await state.redis_client.aclose()
    if state.pg_pool:
        await state.pg_pool.close()
    logger.info("Resources closed")


# Dependencies
async def get_db_pool() -> asyncpg.Pool:
    if state.pg_pool is None:
        raise DataStoreUnavailable("Database pool is not initialized")
    return state.pg_pool


async def get_redis() -> redis.Redis:
    if state.redis_client is None:
        raise DataStoreUnavailable("Redis client is not initialized")
    return state.redis_client


async def get_http_client() -> httpx.AsyncClient:
    return state.http_client


async def get_tmdb_client(http_client=Depends(get_http_client)) -> TMDBClient:
    return TMDBClient(http_client, TMDB_API_KEY)


async def get_similarity_service(
    db=Depends(get_db_pool),
    redis_client=Depends(get_redis)
) -> SimilarityService:
    return SimilarityService(
        ProfileRepository(redis_client),
        WatchListRepository(db),
        SimilarityRepository(db),
    )


def get_algorithm_overrides():
    return settings.algorithm_overrides()


async def get_log_repository(db=Depends(get_db_pool)) -> LogRepository:
    return LogRepository(db)


async def get_profile_service(
    db=Depends(get_db_pool),
    redis_client=Depends(get_redis),
    http_client=Depends(get_http_client)
) -> ProfileService:
    # Person profiles need TMDB credits; without a key only genres are rebuilt
    tmdb_client = TMDBClient(http_client, TMDB_API_KEY) if TMDB_API_KEY else None
    return ProfileService(WatchListRepository(db), ProfileRepository(redis_client), tmdb_client)
