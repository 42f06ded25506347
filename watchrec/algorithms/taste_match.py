from typing import List

from ..config import WATCHED_STATUSES
from ..schemas.recommendation import RecommendationContext, RecommendationSession
from .base import AlgorithmConfig, BaseAlgorithm, Candidate, CandidatePool, score_by_peer_signals

DEFAULT_CONFIG = AlgorithmConfig(
    name="taste_match_v1",
    min_user_history=10,
    similarity_threshold=0.7,
    max_peers=20,
    items_per_peer=10,
    weights={"similarity": 0.5, "rating": 0.3, "cooccurrence": 0.2},
)


class TasteMatchAlgorithm(BaseAlgorithm):
    """Baseline collaborative filter: best-rated watched items of taste-similar users."""

    default_config = DEFAULT_CONFIG

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
        rows = await self.watchlist_repo.find_top_items_per_user(
            list(match), WATCHED_STATUSES, per_user=self.config.items_per_peer
        )

        pool = CandidatePool()
        for row in rows:
            pool.add(row, row["user_id"], match[row["user_id"]])
        return score_by_peer_signals(pool.candidates(), self.config.weights)
