from typing import Dict, List, Optional

from ..config import WATCHED_STATUSES
from ..schemas.recommendation import RecommendationContext, RecommendationSession
from .base import AlgorithmConfig, BaseAlgorithm, Candidate, CandidatePool, clamp01, rating_signal

DEFAULT_CONFIG = AlgorithmConfig(
    name="genre_recommendations_v1",
    min_user_history=5,
    max_peers=10,
    items_per_peer=15,
    min_peer_rating=7,
    profile_min_score=50,
    profile_top_n=3,
    weights={"genre_match": 0.4, "rating": 0.4, "user_similarity": 0.2},
)


def dominant_genres(profile: Dict[str, float], min_score: float, top_n: int) -> List[str]:
    ranked = sorted(profile.items(), key=lambda kv: (-kv[1], kv[0]))
    return [genre for genre, score in ranked[:top_n] if score >= min_score]


def dominant_genre_match(item_genres: Optional[List[str]], dominant: List[str]) -> float:
    """1 when the item carries any dominant genre, 0 otherwise or when its genres are unknown."""
    if not item_genres or not dominant:
        return 0.0
    return 1.0 if any(g in dominant for g in item_genres) else 0.0


class GenreRecommendationsAlgorithm(BaseAlgorithm):
    """Highly rated titles from cached similar users, boosted when they hit the user's dominant genres."""

    default_config = DEFAULT_CONFIG

    async def generate_candidates(
        self,
        user_id: str,
        context: RecommendationContext,
        session: RecommendationSession,
    ) -> List[Candidate]:
        profile = await self.profile_repo.get_genre_profile(user_id)
        if not profile:
            return []
        dominant = dominant_genres(profile, self.config.profile_min_score, self.config.profile_top_n)
        if not dominant:
            return []

        # Precomputed list only; no on-demand similarity for this algorithm
        similar = (await self.similarity_service.get_similar_users(user_id))[:self.config.max_peers]
        if not similar:
            return []
        match = {u.user_id: u.overall_match for u in similar}

        rows = await self.watchlist_repo.find_top_items_per_user(
            list(match),
            WATCHED_STATUSES,
            per_user=self.config.items_per_peer,
            min_rating=self.config.min_peer_rating,
        )
        pool = CandidatePool()
        for row in rows:
            pool.add(row, row["user_id"], match[row["user_id"]])

        w = self.config.weights
        candidates = pool.candidates()
        for c in candidates:
            c.signals = {
                "genre_match": dominant_genre_match(c.genres, dominant),
                "rating": rating_signal(c.user_rating, c.vote_average),
                "user_similarity": clamp01(c.similarity),
            }
            c.score = sum(c.signals[name] * w[name] for name in c.signals)
        return candidates
