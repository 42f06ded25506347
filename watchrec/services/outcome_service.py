import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Any

from ..config import HEALTH_MIN_ACCEPTANCE_RATE
from ..repositories.log_repository import LogRepository
from ..schemas.event import (
    ACTION_EVENT_TYPE,
    NEGATIVE_OUTCOMES,
    POSITIVE_OUTCOMES,
    ActionClickData,
    DateRange,
    event_data_for,
)

logger = logging.getLogger(__name__)

DAILY_EVENT_TYPES = ("added", "rated", "ignored")


def acceptance_rate(accepted: int, shown: int) -> float:
    """Percentage rounded to one decimal; 0 when nothing was shown."""
    if shown <= 0:
        return 0.0
    return round(accepted / shown * 100, 1)


def algorithm_health(shown: int, positive: int, negative: int, rate: float) -> str:
    if shown == 0:
        return "critical"
    if negative > positive or rate < HEALTH_MIN_ACCEPTANCE_RATE:
        return "warning"
    return "ok"


class OutcomeService:
    def __init__(self, log_repo: LogRepository):
        self.log_repo = log_repo

    async def track_outcome(self, log_id: int, action: str, rating: Optional[int] = None) -> Optional[int]:
        """
        Append one outcome event for a served recommendation.
        Never raises: tracking must not block the action that triggered it.
        """
        try:
            event_id = await self.log_repo.insert_event(
                log_id, action, event_data_for(rating).model_dump()
            )
        except Exception as e:
            logger.error(
                "Failed to track outcome",
                extra={"log_id": log_id, "action": action, "error": str(e)},
                exc_info=True,
            )
            return None

        logger.info("Outcome tracked", extra={"log_id": log_id, "action": action, "event_id": event_id})
        return event_id

    async def record_action(self, log_id: int, action: str, position: Optional[int] = None) -> bool:
        """Set the action on a log entry and keep the click as an event. False if the entry is unknown."""
        updated = await self.log_repo.update_action(log_id, action)
        if not updated:
            return False
        await self.log_repo.insert_event(
            log_id, ACTION_EVENT_TYPE, ActionClickData(action=action, position=position).model_dump()
        )
        return True

    async def get_log_events(self, log_id: int) -> Optional[Dict[str, Any]]:
        entry = await self.log_repo.get_log(log_id)
        if entry is None:
            return None
        events = await self.log_repo.get_events(log_id)
        return {"log": entry, "events": events}

    async def calculate_acceptance_rate(
        self,
        user_id: str,
        algorithm: Optional[str] = None,
        date_range: Optional[DateRange] = None,
    ) -> Dict[str, Any]:
        start = date_range.start if date_range else None
        end = date_range.end if date_range else None
        try:
            shown = await self.log_repo.count_shown(user_id, algorithm, start, end)
            accepted = await self.log_repo.count_events(user_id, POSITIVE_OUTCOMES, algorithm, start, end)
        except Exception as e:
            logger.error(
                "Failed to calculate acceptance rate",
                extra={"user_id": user_id, "algorithm": algorithm, "error": str(e)},
            )
            return {"overall_rate": 0.0, "accepted": 0, "shown": 0}

        return {
            "overall_rate": acceptance_rate(accepted, shown),
            "accepted": accepted,
            "shown": shown,
        }

    async def get_algorithm_performance(self, user_id: str) -> Dict[str, Any]:
        """Overall and per-algorithm acceptance for one user."""
        overall = await self.calculate_acceptance_rate(user_id)
        try:
            rows = await self.log_repo.get_algorithm_counts(user_id, POSITIVE_OUTCOMES, NEGATIVE_OUTCOMES)
        except Exception as e:
            logger.error("Failed to load algorithm performance", extra={"user_id": user_id, "error": str(e)})
            rows = []
        return {"overall": overall, "algorithms": [self._summarize(row) for row in rows]}

    async def get_system_algorithm_performance(self, known_algorithms: List[str]) -> Dict[str, Any]:
        """Per-algorithm counts across all users, with a health status for each known algorithm."""
        try:
            rows = await self.log_repo.get_algorithm_counts(None, POSITIVE_OUTCOMES, NEGATIVE_OUTCOMES)
        except Exception as e:
            logger.error("Failed to load system algorithm performance", extra={"error": str(e)})
            rows = []

        by_name = {row["algorithm"]: self._summarize(row) for row in rows}
        for name in known_algorithms:
            by_name.setdefault(name, self._summarize({"algorithm": name}))

        return {
            "total_shown": sum(a["shown"] for a in by_name.values()),
            "algorithms": sorted(by_name.values(), key=lambda a: a["algorithm"]),
        }

    @staticmethod
    def _summarize(row: Dict[str, Any]) -> Dict[str, Any]:
        shown = row.get("shown") or 0
        positive = row.get("positive") or 0
        negative = row.get("negative") or 0
        rate = acceptance_rate(positive, shown)
        last_used = row.get("last_used")
        return {
            "algorithm": row["algorithm"],
            "shown": shown,
            "positive": positive,
            "negative": negative,
            "acceptance_rate": rate,
            "last_used": last_used.isoformat() if last_used else None,
            "health": algorithm_health(shown, positive, negative, rate),
        }

    async def get_outcome_stats(
        self,
        user_id: str,
        algorithm: Optional[str] = None,
        days: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Per-day counts of added, rated and ignored events plus their total."""
        since = datetime.now(timezone.utc) - timedelta(days=days) if days else None
        try:
            rows = await self.log_repo.get_daily_event_counts(user_id, DAILY_EVENT_TYPES, algorithm, since)
        except Exception as e:
            logger.error("Failed to load outcome stats", extra={"user_id": user_id, "error": str(e)})
            return []

        days_map: Dict[str, Dict[str, Any]] = {}
        for row in rows:
            day = row["day"].isoformat()
            entry = days_map.setdefault(day, {"date": day, **{t: 0 for t in DAILY_EVENT_TYPES}})
            entry[row["event_type"]] = row["cnt"]
        for entry in days_map.values():
            entry["total"] = sum(entry[t] for t in DAILY_EVENT_TYPES)
        return [days_map[d] for d in sorted(days_map)]
