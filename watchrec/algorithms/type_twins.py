from datetime import datetime, timedelta, timezone
from typing import List

from ..config import WATCHED_STATUSES
from ..schemas.recommendation import RecommendationContext, RecommendationSession
from ..services.similarity import type_distribution, type_similarity
from .base import AlgorithmConfig, BaseAlgorithm, Candidate, CandidatePool, rating_signal

DEFAULT_CONFIG = AlgorithmConfig(
    name="type_twins_v1",
    min_user_history=3,
    similarity_threshold=0.7,
    max_peers=10,
    items_per_peer=15,
    min_peer_rating=7,
    recency_days=30,
    sample_size=100,
    profile_min_score=50,
    weights={"type_similarity": 0.5, "rating": 0.3, "dominant_type_match": 0.2},
)


class TypeTwinsAlgorithm(BaseAlgorithm):
    """Users whose movie / tv / anime / cartoon mix matches this user's, regardless of taste."""

    default_config = DEFAULT_CONFIG

    async def generate_candidates(
        self,
        user_id: str,
        context: RecommendationContext,
        session: RecommendationSession,
    ) -> List[Candidate]:
        counts = await self.watchlist_repo.get_type_counts(user_id, sample_size=session.sample_size)
        if not sum(counts.values()):
            return []
        profile = type_distribution(counts)
        dominant_type = max(profile, key=profile.get)
        strong_preference = profile[dominant_type] >= self.config.profile_min_score

        active_since = datetime.now(timezone.utc) - timedelta(days=self.config.recency_days)
        active_users = await self.watchlist_repo.sample_user_ids(
            user_id, self.config.sample_size, active_since=active_since
        )
        others = await self.watchlist_repo.get_type_counts_for_users(active_users)

        twins = []
        for other_id, other_counts in others.items():
            similarity = type_similarity(profile, type_distribution(other_counts))
            if similarity >= self.config.similarity_threshold:
                twins.append((similarity, other_id))
        if not twins:
            return []
        twins.sort(key=lambda t: (-t[0], t[1]))
        twin_similarity = {uid: sim for sim, uid in twins[:self.config.max_peers]}

        rows = await self.watchlist_repo.find_top_items_per_user(
            list(twin_similarity),
            WATCHED_STATUSES,
            per_user=self.config.items_per_peer,
            min_rating=self.config.min_peer_rating,
        )

        # One contributor per item: the most similar twin
        pool = CandidatePool()
        for row in rows:
            pool.offer(row, row["user_id"], twin_similarity[row["user_id"]])

        w = self.config.weights
        candidates = pool.candidates()
        for c in candidates:
            matches_dominant = strong_preference and c.media_type == dominant_type
            c.signals = {
                "type_similarity": c.similarity,
                "rating": rating_signal(c.user_rating, c.vote_average),
                "dominant_type_match": 1.0 if matches_dominant else 0.5,
            }
            c.score = sum(c.signals[name] * w[name] for name in c.signals)
        return candidates
