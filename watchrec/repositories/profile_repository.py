import asyncio
import json
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

import redis.asyncio as redis
from redis.exceptions import RedisError

from ..config import SIMILAR_USERS_TTL_SECONDS, PROFILE_TTL_SECONDS
from ..exceptions import ProfileStoreError
from ..schemas.recommendation import SimilarUser

logger = logging.getLogger(__name__)

GenreProfile = Dict[str, float]
PersonProfile = Dict[str, Dict[str, float]]  # {"actors": {...}, "directors": {...}}


def genre_profile_key(user_id: str) -> str:
    return f"user:{user_id}:genre-profile"


def person_profile_key(user_id: str) -> str:
    return f"user:{user_id}:person-profile"


def similar_users_key(user_id: str) -> str:
    return f"similar-users:{user_id}"


def similarity_pair_key(user_id: str, other_user_id: str) -> str:
    return f"similarity:{user_id}:{other_user_id}"


async def fetch_profiles(
    fetch: Callable[[str], Awaitable[Optional[dict]]],
    user_ids: Sequence[str],
) -> List[Optional[dict]]:
    """
    Load one profile per user concurrently, in input order.
    A corrupt profile is logged and reads as missing.
    """
    results = await asyncio.gather(*(fetch(uid) for uid in user_ids), return_exceptions=True)
    profiles = []
    for uid, result in zip(user_ids, results):
        if isinstance(result, ProfileStoreError):
            logger.warning("Skipping corrupt profile", extra={"user_id": uid, "error": str(result)})
            profiles.append(None)
        elif isinstance(result, BaseException):
            raise result
        else:
            profiles.append(result)
    return profiles


class ProfileRepository:
    """
    Redis-backed taste profiles and similar-user lists.

    Profile getters return None when nothing has been computed for the
    user. An empty dict means a profile exists but holds no entries.
    """

    def __init__(self, redis_client: redis.Redis):
        self.redis = redis_client

    async def _get_json(self, key: str):
        raw = await self.redis.get(key)
        if raw is None:
            return None
        try:
            payload = json.loads(raw)
        except (TypeError, ValueError) as e:
            raise ProfileStoreError(f"Corrupt profile payload at {key}") from e
        if not isinstance(payload, dict):
            raise ProfileStoreError(f"Corrupt profile payload at {key}")
        return payload

    @staticmethod
    def _scores(values, key: str) -> Dict[str, float]:
        try:
            return {name: float(score) for name, score in (values or {}).items()}
        except (AttributeError, TypeError, ValueError) as e:
            raise ProfileStoreError(f"Corrupt profile payload at {key}") from e

    async def get_genre_profile(self, user_id: str) -> Optional[GenreProfile]:
        key = genre_profile_key(user_id)
        profile = await self._get_json(key)
        if profile is None:
            return None
        return self._scores(profile, key)

    async def store_genre_profile(self, user_id: str, profile: GenreProfile):
        await self.redis.setex(genre_profile_key(user_id), PROFILE_TTL_SECONDS, json.dumps(profile))

    async def get_person_profile(self, user_id: str) -> Optional[PersonProfile]:
        key = person_profile_key(user_id)
        profile = await self._get_json(key)
        if profile is None:
            return None
        return {
            "actors": self._scores(profile.get("actors"), key),
            "directors": self._scores(profile.get("directors"), key),
        }

    async def store_person_profile(self, user_id: str, profile: PersonProfile):
        await self.redis.setex(person_profile_key(user_id), PROFILE_TTL_SECONDS, json.dumps(profile))

    async def get_similar_users(self, user_id: str) -> List[SimilarUser]:
        """Cached similar users, best match first. Cache errors read as an empty list."""
        try:
            raw = await self.redis.get(similar_users_key(user_id))
        except RedisError as e:
            logger.error("Failed to read similar users", extra={"user_id": user_id, "error": str(e)})
            return []
        if not raw:
            return []
        return [SimilarUser(**entry) for entry in json.loads(raw)]

    async def store_similar_users(self, user_id: str, similar_users: List[SimilarUser]):
        payload = json.dumps([u.model_dump() for u in similar_users])
        try:
            await self.redis.setex(similar_users_key(user_id), SIMILAR_USERS_TTL_SECONDS, payload)
        except RedisError as e:
            logger.error("Failed to store similar users", extra={"user_id": user_id, "error": str(e)})

    async def store_similarity_pair(self, user_id: str, other_user_id: str, overall_match: float):
        try:
            await self.redis.setex(
                similarity_pair_key(user_id, other_user_id),
                SIMILAR_USERS_TTL_SECONDS,
                json.dumps(overall_match),
            )
        except RedisError as e:
            logger.error(
                "Failed to store similarity pair",
                extra={"user_id": user_id, "other_user_id": other_user_id, "error": str(e)},
            )
