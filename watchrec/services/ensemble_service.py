import asyncio
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from pydantic import ValidationError
import redis.asyncio as redis
from redis.exceptions import RedisError

from ..algorithms.base import BaseAlgorithm
from ..config import (
    CACHE_TTL_SECONDS,
    COLD_START_THRESHOLD,
    HEAVY_USER_THRESHOLD,
    HEAVY_USER_SAMPLE_SIZE,
    ALGORITHM_TIMEOUT_MS,
    MAX_RECOMMENDATIONS,
    COOLDOWN_DAYS,
)
from ..exceptions import ExternalProviderError
from ..repositories.log_repository import LogRepository
from ..repositories.watchlist_repository import WatchListRepository
from ..schemas.event import EnsembleServedContext, FallbackServedContext, CandidatePoolSnapshot
from ..schemas.recommendation import (
    AlgorithmStatus,
    ColdStartMeta,
    Confidence,
    ConfidenceFactors,
    EnsembleMeta,
    EnsembleResponse,
    HeavyUserMeta,
    RecommendationContext,
    RecommendationItem,
    RecommendationMetrics,
    RecommendationSession,
)
from .tmdb_client import TMDBClient

logger = logging.getLogger(__name__)

TRENDING_FALLBACK = "tmdb_trending_fallback"
POPULAR_FALLBACK = "tmdb_popular_fallback"
HIGH_SCORE_STD_DEV = 20
SIMILAR_USERS_BONUS_MIN = 5
FAILURE_MESSAGE = "Failed to generate recommendations"
EMPTY_MESSAGE = "No recommendations available right now"


def ensemble_cache_key(user_id: str) -> str:
    return f"recs:{user_id}:patterns:v1"


def deduplicate(items: Sequence[RecommendationItem]) -> List[RecommendationItem]:
    """One entry per content identity: the highest-scoring one."""
    best: Dict[str, RecommendationItem] = {}
    for item in items:
        current = best.get(item.key)
        if current is None or item.score > current.score:
            best[item.key] = item
    return list(best.values())


def calculate_confidence(
    algorithm_count: int,
    similar_users_found: int,
    is_cold_start: bool,
    is_heavy_user: bool,
    recommendations: Sequence[RecommendationItem],
) -> Confidence:
    """Heuristic 0-100 trust signal for a served list."""
    score_std = float(np.std([r.score for r in recommendations])) if len(recommendations) > 1 else 0.0

    confidence = min(50 + 5 * algorithm_count, 90)
    if similar_users_found >= SIMILAR_USERS_BONUS_MIN:
        confidence += 10
    if score_std > HIGH_SCORE_STD_DEV:
        confidence -= 20
    if is_cold_start:
        confidence -= 30
    if is_heavy_user:
        confidence -= 10
    confidence = max(0, min(100, confidence))

    return Confidence(
        value=round(confidence),
        factors=ConfidenceFactors(
            algorithm_count=algorithm_count,
            similar_users_found=similar_users_found,
            score_variance=round(score_std, 1),
            is_cold_start=is_cold_start,
            is_heavy_user=is_heavy_user,
        ),
    )


class EnsembleService:
    def __init__(
        self,
        watchlist_repo: WatchListRepository,
        log_repo: LogRepository,
        redis_client: redis.Redis,
        tmdb_client: TMDBClient,
        algorithms: List[BaseAlgorithm],
        timeout_ms: int = ALGORITHM_TIMEOUT_MS,
    ):
        self.watchlist_repo = watchlist_repo
        self.log_repo = log_repo
        self.redis_client = redis_client
        self.tmdb_client = tmdb_client
        self.algorithms = algorithms
        self.timeout_ms = timeout_ms

    async def run_ensemble(self, user_id: str) -> EnsembleResponse:
        """
        Serve recommendations for one user.
        Strategy:
        1. Return the cached response if one is still live
        2. Below the cold-start threshold, serve TMDB trending (or popular)
        3. Otherwise run every algorithm concurrently, each time-boxed
        4. Dedupe, drop anything in cooldown, rank, log as shown, cache
        Never raises; failures come back as success=False with an empty list.
        """
        start_time = time.perf_counter()
        cache_key = ensemble_cache_key(user_id)

        try:
            cached = await self._read_cache(cache_key, user_id)
            if cached is not None:
                return cached

            watched_count = await self.watchlist_repo.count_watched(user_id)
            is_cold_start = watched_count < COLD_START_THRESHOLD
            is_heavy_user = watched_count >= HEAVY_USER_THRESHOLD

            logger.info(
                "Ensemble request started",
                extra={
                    "user_id": user_id,
                    "watched_count": watched_count,
                    "is_cold_start": is_cold_start,
                    "is_heavy_user": is_heavy_user,
                },
            )

            session = RecommendationSession.create()
            statuses: Dict[str, AlgorithmStatus] = {}
            timeouts: List[str] = []
            metrics: Dict[str, RecommendationMetrics] = {}
            pooled: List[RecommendationItem] = []
            fallback_source: Optional[str] = None

            if is_cold_start:
                recommendations, fallback_source = await self._cold_start_fallback()
            else:
                if is_heavy_user:
                    session.sample_size = HEAVY_USER_SAMPLE_SIZE
                    session.is_heavy_user = True
                pooled = await self._execute_all(user_id, session, statuses, timeouts, metrics)
                deduplicated = deduplicate(pooled)
                filtered = await self._apply_cooldown(user_id, deduplicated)
                recommendations = sorted(filtered, key=lambda r: (-r.score, r.key))[:MAX_RECOMMENDATIONS]

                logger.info(
                    "Algorithms combined",
                    extra={
                        "user_id": user_id,
                        "total_candidates": len(pooled),
                        "after_dedup": len(deduplicated),
                        "after_cooldown": len(filtered),
                        "final_count": len(recommendations),
                    },
                )

            log_ids = await self._log_shown(user_id, recommendations, session, metrics, fallback_source)

            successful = sum(1 for s in statuses.values() if s.success)
            similar_users_found = len({source for item in pooled for source in item.sources})
            confidence = calculate_confidence(
                successful, similar_users_found, is_cold_start, is_heavy_user, recommendations
            )

            if is_cold_start:
                algorithms_used = [fallback_source] if fallback_source else []
            else:
                algorithms_used = [a.name for a in self.algorithms]

            duration_ms = int((time.perf_counter() - start_time) * 1000)
            response = EnsembleResponse(
                success=True,
                recommendations=recommendations,
                log_ids=log_ids,
                message=None if recommendations else EMPTY_MESSAGE,
                meta=EnsembleMeta(
                    is_cold_start=is_cold_start,
                    cold_start=ColdStartMeta(threshold=COLD_START_THRESHOLD, fallback_source=fallback_source),
                    is_heavy_user=is_heavy_user,
                    heavy_user=HeavyUserMeta(
                        threshold=HEAVY_USER_THRESHOLD, sample_size=HEAVY_USER_SAMPLE_SIZE
                    ) if is_heavy_user else None,
                    watched_count=watched_count,
                    algorithms_used=algorithms_used,
                    algorithms_status={} if is_cold_start else statuses,
                    algorithm_timeouts=timeouts,
                    timeout_threshold_ms=self.timeout_ms,
                    confidence=confidence,
                    duration_ms=duration_ms,
                    cache_hit=False,
                ),
            )

            logger.info(
                "Ensemble request completed",
                extra={"user_id": user_id, "count": len(recommendations), "duration_ms": duration_ms},
            )
            await self._write_cache(cache_key, user_id, response)
            return response

        except Exception as e:
            logger.error(
                "Ensemble request failed",
                extra={"user_id": user_id, "error": str(e)},
                exc_info=True,
            )
            return EnsembleResponse(success=False, message=FAILURE_MESSAGE, recommendations=[])

    async def _execute_all(
        self,
        user_id: str,
        session: RecommendationSession,
        statuses: Dict[str, AlgorithmStatus],
        timeouts: List[str],
        metrics: Dict[str, RecommendationMetrics],
    ) -> List[RecommendationItem]:
        context = RecommendationContext()
        results = await asyncio.gather(*(
            self._execute_one(algorithm, user_id, context, session, statuses, timeouts, metrics)
            for algorithm in self.algorithms
        ))
        return [item for items in results for item in items]

    async def _execute_one(
        self,
        algorithm: BaseAlgorithm,
        user_id: str,
        context: RecommendationContext,
        session: RecommendationSession,
        statuses: Dict[str, AlgorithmStatus],
        timeouts: List[str],
        metrics: Dict[str, RecommendationMetrics],
    ) -> List[RecommendationItem]:
        try:
            result = await asyncio.wait_for(
                algorithm.execute(user_id, context, session),
                timeout=self.timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            timeouts.append(algorithm.name)
            statuses[algorithm.name] = AlgorithmStatus(success=False, error="timeout")
            logger.warning(
                "Algorithm timed out",
                extra={"user_id": user_id, "algorithm": algorithm.name, "timeout_ms": self.timeout_ms},
            )
            return []
        except Exception as e:
            statuses[algorithm.name] = AlgorithmStatus(success=False, error=str(e) or type(e).__name__)
            logger.error(
                "Algorithm failed",
                extra={"user_id": user_id, "algorithm": algorithm.name, "error": str(e)},
                exc_info=True,
            )
            return []

        statuses[algorithm.name] = AlgorithmStatus(success=True)
        metrics[algorithm.name] = result.metrics
        session.mark_recommended(result.recommendations)
        logger.info(
            "Algorithm executed",
            extra={
                "user_id": user_id,
                "algorithm": algorithm.name,
                "count": len(result.recommendations),
                "metrics": result.metrics.model_dump(),
            },
        )
        return result.recommendations

    async def _cold_start_fallback(self) -> Tuple[List[RecommendationItem], Optional[str]]:
        """TMDB trending, or popular when trending is empty. Placeholder scores 100, 95, 90..."""
        sources = (
            (TRENDING_FALLBACK, lambda: self.tmdb_client.fetch_trending("week")),
            (POPULAR_FALLBACK, lambda: self.tmdb_client.fetch_popular(1)),
        )
        for algorithm, fetch in sources:
            try:
                items = await fetch()
            except ExternalProviderError as e:
                logger.warning("Cold start provider failed", extra={"provider": algorithm, "error": str(e)})
                continue
            if items:
                return [
                    RecommendationItem(
                        tmdb_id=item["tmdb_id"],
                        media_type=item["media_type"],
                        title=item["title"],
                        score=100 - i * 5,
                        algorithm=algorithm,
                    )
                    for i, item in enumerate(items[:MAX_RECOMMENDATIONS])
                ], algorithm
        return [], None

    async def _apply_cooldown(self, user_id: str, items: List[RecommendationItem]) -> List[RecommendationItem]:
        if not items:
            return items
        since = datetime.now(timezone.utc) - timedelta(days=COOLDOWN_DAYS)
        recent = await self.log_repo.get_recent_keys(user_id, since)
        return [item for item in items if item.key not in recent]

    async def _log_shown(
        self,
        user_id: str,
        recommendations: List[RecommendationItem],
        session: RecommendationSession,
        metrics: Dict[str, RecommendationMetrics],
        fallback_source: Optional[str],
    ) -> List[int]:
        if not recommendations:
            return []
        rows = []
        for item in recommendations:
            if fallback_source:
                context = FallbackServedContext(provider=item.algorithm)
            else:
                pool = metrics.get(item.algorithm)
                context = EnsembleServedContext(
                    sources=item.sources,
                    session_id=session.session_id,
                    pool=CandidatePoolSnapshot(**pool.model_dump()) if pool else None,
                    temporal_context=session.temporal_context,
                    ml_features=session.ml_features,
                )
            rows.append({
                "tmdb_id": item.tmdb_id,
                "media_type": item.media_type,
                "algorithm": item.algorithm,
                "score": item.score,
                "context": context.model_dump(mode="json"),
            })
        return await self.log_repo.insert_logs(user_id, rows)

    async def _read_cache(self, cache_key: str, user_id: str) -> Optional[EnsembleResponse]:
        try:
            cached = await self.redis_client.get(cache_key)
        except RedisError as e:
            logger.warning("Ensemble cache read failed", extra={"user_id": user_id, "error": str(e)})
            return None
        if not cached:
            return None
        try:
            response = EnsembleResponse.model_validate_json(cached)
        except ValidationError as e:
            logger.warning("Discarding unreadable ensemble cache entry", extra={"user_id": user_id, "error": str(e)})
            try:
                await self.redis_client.delete(cache_key)
            except RedisError as delete_error:
                logger.warning(
                    "Ensemble cache delete failed", extra={"user_id": user_id, "error": str(delete_error)}
                )
            return None
        if response.meta is not None:
            response.meta.cache_hit = True
        logger.info("Ensemble cache hit", extra={"user_id": user_id})
        return response

    async def _write_cache(self, cache_key: str, user_id: str, response: EnsembleResponse):
        try:
            await self.redis_client.setex(cache_key, CACHE_TTL_SECONDS, response.model_dump_json())
        except RedisError as e:
            logger.warning("Ensemble cache write failed", extra={"user_id": user_id, "error": str(e)})
