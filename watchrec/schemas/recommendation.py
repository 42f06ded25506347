import uuid
from datetime import datetime, timezone
from typing import List, Optional, Dict, Set, Literal

from pydantic import BaseModel, Field

MediaType = Literal["movie", "tv", "anime", "cartoon"]
MEDIA_TYPES = ("movie", "tv", "anime", "cartoon")


def content_key(tmdb_id: int, media_type: str) -> str:
    """Identity of one piece of content across the whole system."""
    return f"{tmdb_id}_{media_type}"


class TemporalContext(BaseModel):
    hour_of_day: int = Field(..., ge=0, le=23)
    day_of_week: int = Field(..., ge=0, le=6)  # 0 = Sunday
    is_first_session_of_day: bool = True
    is_weekend: bool = False

    @classmethod
    def at(cls, moment: datetime) -> "TemporalContext":
        day_of_week = (moment.weekday() + 1) % 7
        return cls(
            hour_of_day=moment.hour,
            day_of_week=day_of_week,
            is_first_session_of_day=True,
            is_weekend=day_of_week in (0, 6),
        )


class MLFeatures(BaseModel):
    """Feature snapshot recorded with each served list. Placeholder values until a model consumes them."""
    similarity_score: float = 0.0
    novelty_score: float = 0.5
    diversity_score: float = 0.5
    predicted_acceptance: float = 0.5


class RecommendationContext(BaseModel):
    """Where and how recommendations are being requested."""
    source: Literal["recommendations_page", "modal_recommendation", "sidebar"] = "recommendations_page"
    position: int = 0
    candidates_count: int = 0
    filters_changed: bool = False


class RecommendationSession(BaseModel):
    """
    Per-request state shared by every algorithm in one ensemble run.

    ``previous_recommendations`` grows as algorithms finish so later
    finishers skip what earlier ones already chose. The update is
    best-effort since algorithms run concurrently.
    """
    session_id: str = Field(default_factory=lambda: f"session_{uuid.uuid4()}")
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    previous_recommendations: Set[str] = Field(default_factory=set)
    temporal_context: TemporalContext
    ml_features: MLFeatures = Field(default_factory=MLFeatures)
    sample_size: Optional[int] = None
    is_heavy_user: bool = False

    @classmethod
    def create(cls, now: Optional[datetime] = None) -> "RecommendationSession":
        now = now or datetime.now(timezone.utc)
        return cls(started_at=now, temporal_context=TemporalContext.at(now))

    def mark_recommended(self, items: List["RecommendationItem"]):
        for item in items:
            self.previous_recommendations.add(item.key)


class RecommendationItem(BaseModel):
    tmdb_id: int
    media_type: str
    title: str
    score: float = Field(..., ge=0, le=100)
    algorithm: str
    sources: List[str] = Field(default_factory=list, max_length=3)

    @property
    def key(self) -> str:
        return content_key(self.tmdb_id, self.media_type)


class RecommendationMetrics(BaseModel):
    candidates_pool_size: int = 0
    after_filters: int = 0
    avg_score: float = 0.0


class RecommendationResult(BaseModel):
    recommendations: List[RecommendationItem] = Field(default_factory=list)
    metrics: RecommendationMetrics = Field(default_factory=RecommendationMetrics)

    @classmethod
    def empty(cls, candidates_pool_size: int = 0) -> "RecommendationResult":
        return cls(
            recommendations=[],
            metrics=RecommendationMetrics(candidates_pool_size=candidates_pool_size),
        )


class SimilarUser(BaseModel):
    user_id: str
    overall_match: float = Field(..., ge=0, le=1)


class SimilarityResult(BaseModel):
    taste_similarity: float = 0.0
    rating_correlation: float = 0.0
    person_overlap: float = 0.0
    overall_match: float = 0.0


# Ensemble response

class AlgorithmStatus(BaseModel):
    success: bool
    error: Optional[str] = None


class ConfidenceFactors(BaseModel):
    algorithm_count: int
    similar_users_found: int
    score_variance: float
    is_cold_start: bool
    is_heavy_user: bool


class Confidence(BaseModel):
    value: int = Field(..., ge=0, le=100)
    factors: ConfidenceFactors


class ColdStartMeta(BaseModel):
    threshold: int
    fallback_source: Optional[str] = None


class HeavyUserMeta(BaseModel):
    threshold: int
    sample_size: int


class EnsembleMeta(BaseModel):
    is_cold_start: bool
    cold_start: ColdStartMeta
    is_heavy_user: bool
    heavy_user: Optional[HeavyUserMeta] = None
    watched_count: int
    algorithms_used: List[str]
    algorithms_status: Dict[str, AlgorithmStatus] = Field(default_factory=dict)
    algorithm_timeouts: List[str] = Field(default_factory=list)
    timeout_threshold_ms: int
    confidence: Confidence
    duration_ms: int
    cache_hit: bool = False


class EnsembleResponse(BaseModel):
    success: bool
    recommendations: List[RecommendationItem] = Field(default_factory=list)
    log_ids: List[int] = Field(default_factory=list)
    meta: Optional[EnsembleMeta] = None
    message: Optional[str] = None
