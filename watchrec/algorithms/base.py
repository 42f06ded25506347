"""
Shared contract for the scoring algorithms.

Every algorithm runs the same pipeline: eligibility gate on the user's
watched count, candidate sourcing and raw scoring (the only algorithm-specific
step), exclusion of already-listed / already-served / cooling-down content,
min-max normalisation to 0-100 and truncation.
"""
import logging
import math
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Set, Any

from pydantic import BaseModel, ConfigDict, Field

from ..config import COOLDOWN_DAYS, MAX_RECOMMENDATIONS, SIMILARITY_SAMPLE_SIZE
from ..repositories.log_repository import LogRepository
from ..repositories.profile_repository import ProfileRepository
from ..repositories.watchlist_repository import WatchListRepository
from ..schemas.recommendation import (
    RecommendationContext,
    RecommendationItem,
    RecommendationMetrics,
    RecommendationResult,
    RecommendationSession,
    content_key,
)
from ..services.similarity import SimilarityService

logger = logging.getLogger(__name__)

MAX_SOURCES = 3


class AlgorithmConfig(BaseModel):
    """Tunable knobs of one algorithm. Fields an algorithm doesn't use are ignored."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str
    min_user_history: int = Field(..., ge=0)
    similarity_threshold: float = Field(0.0, ge=0, le=1)
    max_peers: int = Field(20, ge=1)
    items_per_peer: int = Field(10, ge=1)
    min_peer_rating: Optional[int] = Field(None, ge=1, le=10)
    recency_days: Optional[int] = Field(None, ge=1)
    sample_size: int = Field(SIMILARITY_SAMPLE_SIZE, ge=1)
    profile_min_score: float = 0.0
    profile_top_n: int = Field(3, ge=1)
    max_penalty: float = Field(0.7, ge=0, le=1)
    weights: Dict[str, float] = Field(default_factory=dict)
    cooldown_days: int = Field(COOLDOWN_DAYS, ge=0)
    max_recommendations: int = Field(MAX_RECOMMENDATIONS, ge=1)

    def with_overrides(self, overrides: Optional[Dict[str, Any]]) -> "AlgorithmConfig":
        if not overrides:
            return self
        data = self.model_dump()
        weights = dict(data["weights"])
        weights.update(overrides.get("weights") or {})
        data.update({k: v for k, v in overrides.items() if k != "weights"})
        data["weights"] = weights
        return AlgorithmConfig(**data)


def clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


def rating_signal(user_rating: Optional[float], vote_average: Optional[float], default: float = 0.0) -> float:
    """Own 1-10 rating over 10, else the popularity rating over 20 as a weaker proxy."""
    if user_rating:
        return clamp01(user_rating / 10)
    if vote_average:
        return clamp01(vote_average / 20)
    return default


def normalize_score(raw: float, low: float, high: float) -> int:
    if high == low:
        return 100
    scaled = (raw - low) / (high - low) * 100
    return max(0, min(100, math.floor(scaled + 0.5)))


@dataclass
class Candidate:
    """One content item under consideration, aggregated across contributing users."""
    tmdb_id: int
    media_type: str
    title: str
    user_rating: Optional[float] = None
    vote_average: Optional[float] = None
    genres: Optional[List[str]] = None
    similarity_total: float = 0.0
    cooccurrence: int = 0
    source_user_ids: List[str] = field(default_factory=list)
    score: float = 0.0
    signals: Dict[str, float] = field(default_factory=dict)

    @property
    def key(self) -> str:
        return content_key(self.tmdb_id, self.media_type)

    @property
    def similarity(self) -> float:
        """Mean similarity of the contributing users."""
        return self.similarity_total / self.cooccurrence if self.cooccurrence else 0.0

    @property
    def rating(self) -> float:
        return rating_signal(self.user_rating, self.vote_average)


def _candidate_from_row(row: Dict) -> Candidate:
    return Candidate(
        tmdb_id=row["tmdb_id"],
        media_type=row["media_type"],
        title=row.get("title") or f"Movie {row['tmdb_id']}",
        user_rating=row.get("user_rating"),
        vote_average=row.get("vote_average"),
        genres=row.get("genres"),
    )


class CandidatePool:
    """
    Candidates keyed by content identity.

    ``add`` aggregates: co-occurrence and similarity are running totals, so
    the result does not depend on the order peers are visited. ``offer``
    keeps a single best contributor per item, ties broken by user id.
    """

    def __init__(self):
        self._items: Dict[str, Candidate] = {}
        self._best: Dict[str, tuple] = {}

    def __len__(self):
        return len(self._items)

    def __bool__(self):
        return bool(self._items)

    def candidates(self) -> List[Candidate]:
        return list(self._items.values())

    def add(self, row: Dict, user_id: str, similarity: float) -> Candidate:
        key = content_key(row["tmdb_id"], row["media_type"])
        candidate = self._items.get(key)
        if candidate is None:
            candidate = _candidate_from_row(row)
            self._items[key] = candidate
        candidate.cooccurrence += 1
        candidate.similarity_total += similarity
        candidate.source_user_ids.append(user_id)
        candidate.source_user_ids.sort()
        # Keep the strongest rating seen for the item
        if (row.get("user_rating") or 0) > (candidate.user_rating or 0):
            candidate.user_rating = row.get("user_rating")
        if not candidate.genres and row.get("genres"):
            candidate.genres = row.get("genres")
        return candidate

    def offer(self, row: Dict, user_id: str, weight: float) -> Optional[Candidate]:
        key = content_key(row["tmdb_id"], row["media_type"])
        rank = (weight, user_id)
        if key in self._best and self._best[key] >= rank:
            return None
        candidate = _candidate_from_row(row)
        candidate.cooccurrence = 1
        candidate.similarity_total = weight
        candidate.source_user_ids = [user_id]
        self._items[key] = candidate
        self._best[key] = rank
        return candidate


class BaseAlgorithm:
    """Subclasses set ``default_config`` and implement ``generate_candidates``."""

    default_config: AlgorithmConfig
    # Drop-avoidance ranks the user's own lists, so it can't exclude them.
    exclude_own_lists = True

    def __init__(
        self,
        watchlist_repo: WatchListRepository,
        log_repo: LogRepository,
        profile_repo: ProfileRepository,
        similarity_service: SimilarityService,
        config: Optional[AlgorithmConfig] = None,
    ):
        self.watchlist_repo = watchlist_repo
        self.log_repo = log_repo
        self.profile_repo = profile_repo
        self.similarity_service = similarity_service
        self.config = config or self.default_config

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def min_user_history(self) -> int:
        return self.config.min_user_history

    def weight(self, signal: str) -> float:
        return self.config.weights[signal]

    async def generate_candidates(
        self,
        user_id: str,
        context: RecommendationContext,
        session: RecommendationSession,
    ) -> List[Candidate]:
        """Source candidates and set their raw ``score``. Return [] when the signal is missing."""
        raise NotImplementedError

    async def excluded_keys(self, user_id: str, session: RecommendationSession) -> Set[str]:
        since = datetime.now(timezone.utc) - timedelta(days=self.config.cooldown_days)
        excluded = set(await self.log_repo.get_recent_keys(user_id, since))
        excluded |= session.previous_recommendations
        if self.exclude_own_lists:
            excluded |= set(await self.watchlist_repo.find_user_keys(user_id))
        return excluded

    async def execute(
        self,
        user_id: str,
        context: RecommendationContext,
        session: RecommendationSession,
    ) -> RecommendationResult:
        start = time.perf_counter()

        watched_count = await self.watchlist_repo.count_watched(user_id)
        if watched_count < self.min_user_history:
            logger.info(
                "Cold start user, skipping algorithm",
                extra={
                    "algorithm": self.name,
                    "user_id": user_id,
                    "watched_count": watched_count,
                    "min_required": self.min_user_history,
                },
            )
            return RecommendationResult.empty()

        candidates = await self.generate_candidates(user_id, context, session)
        if not candidates:
            logger.info("No candidates", extra={"algorithm": self.name, "user_id": user_id})
            return RecommendationResult.empty()

        pool_size = len(candidates)
        excluded = await self.excluded_keys(user_id, session)
        filtered = [c for c in candidates if c.key not in excluded]
        if not filtered:
            logger.info(
                "All candidates filtered",
                extra={"algorithm": self.name, "user_id": user_id, "pool_size": pool_size},
            )
            return RecommendationResult.empty(candidates_pool_size=pool_size)

        recommendations = self.rank(filtered)
        avg_score = sum(r.score for r in recommendations) / len(recommendations)

        logger.info(
            "Recommendations generated",
            extra={
                "algorithm": self.name,
                "user_id": user_id,
                "count": len(recommendations),
                "pool_size": pool_size,
                "after_filters": len(filtered),
                "avg_score": round(avg_score, 1),
                "duration_ms": round((time.perf_counter() - start) * 1000, 2),
            },
        )
        return RecommendationResult(
            recommendations=recommendations,
            metrics=RecommendationMetrics(
                candidates_pool_size=pool_size,
                after_filters=len(filtered),
                avg_score=avg_score,
            ),
        )

    def rank(self, candidates: List[Candidate]) -> List[RecommendationItem]:
        """Normalise raw scores to 0-100 within the pool, best first, truncated."""
        low = min(c.score for c in candidates)
        high = max(c.score for c in candidates)
        ordered = sorted(candidates, key=lambda c: (-c.score, c.key))
        return [
            RecommendationItem(
                tmdb_id=c.tmdb_id,
                media_type=c.media_type,
                title=c.title,
                score=normalize_score(c.score, low, high),
                algorithm=self.name,
                sources=c.source_user_ids[:MAX_SOURCES],
            )
            for c in ordered[:self.config.max_recommendations]
        ]


def score_by_peer_signals(candidates: List[Candidate], weights: Dict[str, float]) -> List[Candidate]:
    """
    similarity * w + rating * w + relative co-occurrence * w.
    Co-occurrence is relative to the most shared candidate in the pool.
    """
    max_cooccurrence = max((c.cooccurrence for c in candidates), default=1) or 1
    for c in candidates:
        c.signals = {
            "similarity": clamp01(c.similarity),
            "rating": c.rating,
            "cooccurrence": clamp01(c.cooccurrence / max_cooccurrence),
        }
        c.score = sum(c.signals[name] * weights[name] for name in c.signals)
    return candidates
