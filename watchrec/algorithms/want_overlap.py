from datetime import datetime, timedelta, timezone
from typing import List, Optional, Set

from ..config import WANT_STATUSES
from ..schemas.recommendation import RecommendationContext, RecommendationSession
from .base import AlgorithmConfig, BaseAlgorithm, Candidate, CandidatePool, clamp01

DEFAULT_CONFIG = AlgorithmConfig(
    name="want_overlap_v1",
    min_user_history=5,
    similarity_threshold=0.6,
    max_peers=15,
    recency_days=30,
    profile_top_n=5,
    weights={"similarity": 0.4, "want_frequency": 0.4, "genre_match": 0.2},
)

NEUTRAL_GENRE_MATCH = 0.5


def genre_match(item_genres: Optional[List[str]], preferred: Set[str]) -> float:
    """Share of the item's leading genres the user prefers; neutral when either side is unknown."""
    if not item_genres or not preferred:
        return NEUTRAL_GENRE_MATCH
    matching = sum(1 for g in item_genres if g in preferred)
    return clamp01(matching / min(len(item_genres), 3))


class WantOverlapAlgorithm(BaseAlgorithm):
    """What similar users recently put on their want lists."""

    default_config = DEFAULT_CONFIG

    async def preferred_genres(self, user_id: str) -> Set[str]:
        profile = await self.profile_repo.get_genre_profile(user_id)
        if not profile:
            return set()
        ranked = sorted(profile.items(), key=lambda kv: (-kv[1], kv[0]))
        return {genre for genre, _ in ranked[:self.config.profile_top_n]}

    async def generate_candidates(
        self,
        user_id: str,
        context: RecommendationContext,
        session: RecommendationSession,
    ) -> List[Candidate]:
        peers = await self.similarity_service.get_or_compute_similar_users(
            user_id,
            threshold=self.config.similarity_threshold,
            limit=self.config.max_peers,
            sample_size=self.config.sample_size,
        )
        if not peers:
            return []

        match = {p.user_id: p.overall_match for p in peers}
        added_after = datetime.now(timezone.utc) - timedelta(days=self.config.recency_days)
        rows = await self.watchlist_repo.find_items_for_users(list(match), WANT_STATUSES, added_after=added_after)

        pool = CandidatePool()
        for row in rows:
            pool.add(row, row["user_id"], match[row["user_id"]])
        candidates = pool.candidates()
        if not candidates:
            return []

        preferred = await self.preferred_genres(user_id)
        max_wants = max(c.cooccurrence for c in candidates)
        w = self.config.weights
        for c in candidates:
            c.signals = {
                "similarity": clamp01(c.similarity),
                "want_frequency": c.cooccurrence / max_wants,
                "genre_match": genre_match(c.genres, preferred),
            }
            c.score = sum(c.signals[name] * w[name] for name in c.signals)
        return candidates
