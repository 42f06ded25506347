from typing import Dict, List

from ..config import WATCHED_STATUSES
from ..repositories.profile_repository import fetch_profiles
from ..schemas.recommendation import RecommendationContext, RecommendationSession
from ..services.similarity import cosine_similarity
from .base import AlgorithmConfig, BaseAlgorithm, Candidate, CandidatePool, score_by_peer_signals

DEFAULT_CONFIG = AlgorithmConfig(
    name="genre_twins_v1",
    min_user_history=10,
    similarity_threshold=0.6,
    max_peers=15,
    items_per_peer=10,
    min_peer_rating=7,
    weights={"similarity": 0.5, "rating": 0.3, "cooccurrence": 0.2},
)


class GenreTwinsAlgorithm(BaseAlgorithm):
    """Users with the closest genre-score vectors."""

    default_config = DEFAULT_CONFIG

    async def find_twins(self, user_id: str) -> Dict[str, float]:
        own = await self.profile_repo.get_genre_profile(user_id)
        if not own:
            return {}

        candidate_ids = await self.similarity_service.candidate_user_ids(user_id, self.config.sample_size)
        profiles = await fetch_profiles(self.profile_repo.get_genre_profile, candidate_ids)

        twins = []
        for cid, profile in zip(candidate_ids, profiles):
            if not profile:
                continue
            similarity = cosine_similarity(own, profile)
            if similarity >= self.config.similarity_threshold:
                twins.append((similarity, cid))
        twins.sort(key=lambda t: (-t[0], t[1]))
        return {cid: sim for sim, cid in twins[:self.config.max_peers]}

    async def generate_candidates(
        self,
        user_id: str,
        context: RecommendationContext,
        session: RecommendationSession,
    ) -> List[Candidate]:
        twins = await self.find_twins(user_id)
        if not twins:
            return []

        rows = await self.watchlist_repo.find_top_items_per_user(
            list(twins),
            WATCHED_STATUSES,
            per_user=self.config.items_per_peer,
            min_rating=self.config.min_peer_rating,
        )
        pool = CandidatePool()
        for row in rows:
            pool.add(row, row["user_id"], twins[row["user_id"]])
        return score_by_peer_signals(pool.candidates(), self.config.weights)
