from typing import Dict, List

from ..config import WATCHED_STATUSES
from ..schemas.recommendation import RecommendationContext, RecommendationSession
from .base import AlgorithmConfig, BaseAlgorithm, Candidate, CandidatePool, clamp01, rating_signal

DEFAULT_CONFIG = AlgorithmConfig(
    name="person_recommendations_v1",
    min_user_history=5,
    max_peers=10,
    items_per_peer=15,
    profile_min_score=60,
    weights={"person_match": 0.4, "rating": 0.4, "user_similarity": 0.2},
)

# Favourite persons a title would need to feature for a full match.
FULL_PERSON_MATCH = 3


def favorite_persons(profile: Dict[str, Dict[str, float]], min_score: float) -> List[str]:
    names = set()
    for group in ("actors", "directors"):
        names |= {name for name, score in profile.get(group, {}).items() if score >= min_score}
    return sorted(names)


def person_match_score(tmdb_id: int, media_type: str, favorites: List[str]) -> int:
    # Credits are not stored with watch list rows, so every title counts as one match.
    return 1


class PersonRecommendationsAlgorithm(BaseAlgorithm):
    """Titles from similar users, weighted toward the user's favourite actors and directors."""

    default_config = DEFAULT_CONFIG

    async def generate_candidates(
        self,
        user_id: str,
        context: RecommendationContext,
        session: RecommendationSession,
    ) -> List[Candidate]:
        profile = await self.profile_repo.get_person_profile(user_id)
        if profile is None:
            return []
        favorites = favorite_persons(profile, self.config.profile_min_score)
        if not favorites:
            return []

        # Precomputed similar users only; no on-demand sampling
        similar = (await self.similarity_service.get_similar_users(user_id))[:self.config.max_peers]
        match = {u.user_id: u.overall_match for u in similar if u.overall_match > 0}
        if not match:
            return []

        rows = await self.watchlist_repo.find_top_items_per_user(
            list(match), WATCHED_STATUSES, per_user=self.config.items_per_peer
        )

        pool = CandidatePool()
        for row in rows:
            if person_match_score(row["tmdb_id"], row["media_type"], favorites) == 0:
                continue
            pool.offer(row, row["user_id"], match[row["user_id"]])

        w = self.config.weights
        candidates = pool.candidates()
        for c in candidates:
            c.signals = {
                "person_match": clamp01(person_match_score(c.tmdb_id, c.media_type, favorites) / FULL_PERSON_MATCH),
                "rating": rating_signal(c.user_rating, c.vote_average),
                "user_similarity": clamp01(c.similarity),
            }
            c.score = sum(c.signals[name] * w[name] for name in c.signals)
        return candidates
