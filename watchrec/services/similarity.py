"""
User-to-user similarity.

Pure primitives (cosine over genre vectors, Jaccard over favourite persons,
Pearson over paired ratings, content-type distribution distance) plus the
``SimilarityService`` that resolves similar users cache-first and falls back
to comparing against a bounded random sample of other users.
"""
import asyncio
import logging
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..config import SIMILARITY_SAMPLE_SIZE
from ..repositories.profile_repository import ProfileRepository, GenreProfile, PersonProfile, fetch_profiles
from ..repositories.similarity_repository import SimilarityRepository
from ..repositories.watchlist_repository import WatchListRepository
from ..schemas.recommendation import SimilarUser, SimilarityResult, MEDIA_TYPES

logger = logging.getLogger(__name__)

MATCH_WEIGHTS = {
    "taste_similarity": 0.5,
    "rating_correlation": 0.3,
    "person_overlap": 0.2,
}
SIMILAR_TASTE_THRESHOLD = 0.7


def cosine_similarity(profile_a: Dict[str, float], profile_b: Dict[str, float]) -> float:
    """Cosine of two sparse score vectors aligned on the union of their keys."""
    keys = sorted(set(profile_a) | set(profile_b))
    if not keys:
        return 0.0
    vec_a = np.array([profile_a.get(k, 0.0) for k in keys], dtype=float)
    vec_b = np.array([profile_b.get(k, 0.0) for k in keys], dtype=float)
    norm = np.linalg.norm(vec_a) * np.linalg.norm(vec_b)
    if norm == 0:
        return 0.0
    return float(np.clip(np.dot(vec_a, vec_b) / norm, 0.0, 1.0))


def person_overlap(persons_a: Dict[str, float], persons_b: Dict[str, float]) -> float:
    """Jaccard overlap of the names each side scores above zero."""
    names_a = {name for name, score in persons_a.items() if score > 0}
    names_b = {name for name, score in persons_b.items() if score > 0}
    union = names_a | names_b
    if not union:
        return 0.0
    return len(names_a & names_b) / len(union)


def rating_correlation(ratings_a: Sequence[float], ratings_b: Sequence[float]) -> float:
    """Pearson correlation of paired ratings in [-1, 1]; 0 when undefined."""
    if len(ratings_a) < 2 or len(ratings_a) != len(ratings_b):
        return 0.0
    a = np.asarray(ratings_a, dtype=float) - np.mean(ratings_a)
    b = np.asarray(ratings_b, dtype=float) - np.mean(ratings_b)
    denominator = np.sqrt(np.sum(a * a) * np.sum(b * b))
    if denominator == 0:
        return 0.0
    return float(np.sum(a * b) / denominator)


def type_distribution(counts: Dict[str, int]) -> Dict[str, float]:
    """Percentage of watched items per media type."""
    total = sum(counts.get(t, 0) for t in MEDIA_TYPES)
    if total == 0:
        return {t: 0.0 for t in MEDIA_TYPES}
    return {t: counts.get(t, 0) / total * 100 for t in MEDIA_TYPES}


def type_similarity(pct_a: Dict[str, float], pct_b: Dict[str, float]) -> float:
    """1 - sum(|a - b|) / 200 over the media types, in [0, 1]."""
    distance = sum(abs(pct_a.get(t, 0.0) - pct_b.get(t, 0.0)) for t in MEDIA_TYPES)
    return max(0.0, min(1.0, 1 - distance / 200))


def person_similarity(profile_a: PersonProfile, profile_b: PersonProfile) -> float:
    actors = person_overlap(profile_a.get("actors", {}), profile_b.get("actors", {}))
    directors = person_overlap(profile_a.get("directors", {}), profile_b.get("directors", {}))
    return (actors + directors) / 2


def overall_match(taste: float, correlation: float, persons: float) -> float:
    # correlation is rescaled from [-1, 1] to [0, 1] before weighting
    return (
        taste * MATCH_WEIGHTS["taste_similarity"]
        + ((correlation + 1) / 2) * MATCH_WEIGHTS["rating_correlation"]
        + persons * MATCH_WEIGHTS["person_overlap"]
    )


def is_similar(result: SimilarityResult) -> bool:
    return result.taste_similarity > SIMILAR_TASTE_THRESHOLD


Profiles = Tuple[Optional[GenreProfile], Optional[PersonProfile]]


class SimilarityService:
    def __init__(
        self,
        profile_repo: ProfileRepository,
        watchlist_repo: WatchListRepository,
        similarity_repo: Optional[SimilarityRepository] = None,
    ):
        self.profile_repo = profile_repo
        self.watchlist_repo = watchlist_repo
        self.similarity_repo = similarity_repo

    async def get_similar_users(self, user_id: str) -> List[SimilarUser]:
        return await self.profile_repo.get_similar_users(user_id)

    async def _profiles(self, user_id: str) -> Profiles:
        genre, persons = await asyncio.gather(
            self.profile_repo.get_genre_profile(user_id),
            self.profile_repo.get_person_profile(user_id),
        )
        return genre, persons

    @staticmethod
    def _compare(a: Profiles, b: Profiles) -> SimilarityResult:
        genre_a, persons_a = a
        genre_b, persons_b = b
        if genre_a is None or genre_b is None:
            return SimilarityResult()

        taste = cosine_similarity(genre_a, genre_b)
        persons = person_similarity(persons_a, persons_b) if persons_a and persons_b else 0.0
        # Paired ratings are not stored with the profiles yet, so correlation stays neutral.
        correlation = 0.0
        return SimilarityResult(
            taste_similarity=taste,
            rating_correlation=correlation,
            person_overlap=persons,
            overall_match=overall_match(taste, correlation, persons),
        )

    async def compute_similarity(self, user_id_a: str, user_id_b: str) -> SimilarityResult:
        profiles_a, profiles_b = await asyncio.gather(self._profiles(user_id_a), self._profiles(user_id_b))
        return self._compare(profiles_a, profiles_b)

    async def _compute_against(self, user_id: str, candidate_ids: Sequence[str]) -> Dict[str, SimilarityResult]:
        own = await self._profiles(user_id)
        if own[0] is None:
            return {}
        genres, persons = await asyncio.gather(
            fetch_profiles(self.profile_repo.get_genre_profile, candidate_ids),
            fetch_profiles(self.profile_repo.get_person_profile, candidate_ids),
        )
        return {
            cid: self._compare(own, (genre, person))
            for cid, genre, person in zip(candidate_ids, genres, persons)
        }

    async def get_or_compute_similar_users(
        self,
        user_id: str,
        threshold: float,
        limit: int,
        sample_size: int = SIMILARITY_SAMPLE_SIZE,
    ) -> List[SimilarUser]:
        """
        Cached similar users at or above ``threshold`` (on overall match).
        On a cache miss, compare against a random sample of other users and
        keep those whose taste similarity reaches ``threshold``.
        """
        cached = await self.get_similar_users(user_id)
        if cached:
            return [u for u in cached if u.overall_match >= threshold][:limit]

        candidate_ids = await self.watchlist_repo.sample_user_ids(user_id, sample_size)
        results = await self._compute_against(user_id, candidate_ids)
        similar = [
            SimilarUser(user_id=cid, overall_match=min(1.0, r.overall_match))
            for cid, r in results.items()
            if r.taste_similarity >= threshold
        ]
        similar.sort(key=lambda u: (-u.overall_match, u.user_id))
        logger.info(
            "Computed similar users on demand",
            extra={"user_id": user_id, "sampled": len(candidate_ids), "found": len(similar)},
        )
        return similar[:limit]

    async def candidate_user_ids(self, user_id: str, sample_size: int = SIMILARITY_SAMPLE_SIZE) -> List[str]:
        """Cached similar users followed by a random sample of others, without repeats."""
        cached = [u.user_id for u in await self.get_similar_users(user_id)]
        sampled = await self.watchlist_repo.sample_user_ids(user_id, sample_size)
        candidates = list(cached)
        for uid in sampled:
            if uid not in candidates:
                candidates.append(uid)
        return candidates

    async def find_similar_users(
        self,
        user_id: str,
        sample_size: int = SIMILARITY_SAMPLE_SIZE,
        computed_by: str = "on_demand",
    ) -> List[SimilarUser]:
        """
        Recompute and persist the similar-users list for one user.
        Every compared pair is stored; only pairs passing ``is_similar`` are cached as similar users.
        """
        candidate_ids = await self.watchlist_repo.sample_user_ids(user_id, sample_size)
        results = await self._compute_against(user_id, candidate_ids)

        if self.similarity_repo is not None:
            await self.similarity_repo.upsert_scores(user_id, results, computed_by)
        for cid, result in results.items():
            await self.profile_repo.store_similarity_pair(user_id, cid, result.overall_match)

        similar = [
            SimilarUser(user_id=cid, overall_match=min(1.0, r.overall_match))
            for cid, r in results.items()
            if is_similar(r)
        ]
        similar.sort(key=lambda u: (-u.overall_match, u.user_id))
        await self.profile_repo.store_similar_users(user_id, similar)

        logger.info(
            "Similar users refreshed",
            extra={
                "user_id": user_id,
                "compared": len(results),
                "similar": len(similar),
                "computed_by": computed_by,
            },
        )
        return similar
