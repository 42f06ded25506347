from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import List

from ..config import WATCHED_STATUSES, WANT_STATUSES, DROPPED_STATUSES
from ..schemas.recommendation import RecommendationContext, RecommendationSession, content_key
from .base import AlgorithmConfig, BaseAlgorithm, Candidate, CandidatePool, rating_signal

DEFAULT_CONFIG = AlgorithmConfig(
    name="drop_patterns_v1",
    min_user_history=8,
    similarity_threshold=0.65,
    max_peers=15,
    recency_days=90,
    max_penalty=0.7,
)

NEUTRAL_BASE_SCORE = 0.5


def drop_penalty(drop_frequency: int, total_peers: int, max_penalty: float) -> float:
    """Penalty grows with the share of peers who dropped the item, capped at ``max_penalty``."""
    if total_peers <= 0:
        return 0.0
    return min(drop_frequency / total_peers * max_penalty, max_penalty)


class DropPatternsAlgorithm(BaseAlgorithm):
    """
    Ranks the user's own watched and wanted titles, pushing down those that
    similar users recently dropped. Never removes a title outright.
    """

    default_config = DEFAULT_CONFIG
    exclude_own_lists = False

    async def generate_candidates(
        self,
        user_id: str,
        context: RecommendationContext,
        session: RecommendationSession,
    ) -> List[Candidate]:
        own_dropped = await self.watchlist_repo.find_items(user_id, DROPPED_STATUSES)
        dropped_keys = {content_key(r["tmdb_id"], r["media_type"]) for r in own_dropped}

        peers = await self.similarity_service.get_or_compute_similar_users(
            user_id,
            threshold=self.config.similarity_threshold,
            limit=self.config.max_peers,
            sample_size=self.config.sample_size,
        )
        if not peers:
            return []

        since = datetime.now(timezone.utc) - timedelta(days=self.config.recency_days)
        peer_drops = await self.watchlist_repo.find_items_for_users(
            [p.user_id for p in peers], DROPPED_STATUSES, added_after=since
        )
        drop_frequency = Counter(content_key(r["tmdb_id"], r["media_type"]) for r in peer_drops)

        own_items = await self.watchlist_repo.find_items(
            user_id,
            WATCHED_STATUSES + WANT_STATUSES,
            limit=session.sample_size,
            order_by="random" if session.sample_size else "recent",
        )

        pool = CandidatePool()
        for row in own_items:
            if content_key(row["tmdb_id"], row["media_type"]) not in dropped_keys:
                pool.add(row, user_id, 1.0)

        candidates = pool.candidates()
        for c in candidates:
            c.source_user_ids = []
            base = rating_signal(c.user_rating, c.vote_average, default=NEUTRAL_BASE_SCORE)
            penalty = drop_penalty(drop_frequency[c.key], len(peers), self.config.max_penalty)
            c.signals = {"base": base, "drop_frequency": drop_frequency[c.key], "penalty": penalty}
            c.score = base * (1 - penalty)
        return candidates
