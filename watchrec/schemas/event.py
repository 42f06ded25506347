from datetime import datetime
from typing import List, Optional, Literal, Union, Annotated

from pydantic import BaseModel, Field, TypeAdapter

from .recommendation import TemporalContext, MLFeatures

OutcomeAction = Literal["added", "rated", "ignored", "dropped", "hidden"]
LogAction = Literal["shown", "skipped", "opened", "watched", "added_to_list"]

POSITIVE_OUTCOMES = ("added", "rated")
NEGATIVE_OUTCOMES = ("dropped", "hidden")
ACTION_EVENT_TYPE = "action"


# recommendation_logs.context

class CandidatePoolSnapshot(BaseModel):
    candidates_pool_size: int = 0
    after_filters: int = 0
    avg_score: float = 0.0


class EnsembleServedContext(BaseModel):
    type: Literal["ensemble_served"] = "ensemble_served"
    source: str = "patterns_api"
    sources: List[str] = Field(default_factory=list)
    session_id: Optional[str] = None
    pool: Optional[CandidatePoolSnapshot] = None
    temporal_context: Optional[TemporalContext] = None
    ml_features: Optional[MLFeatures] = None


class FallbackServedContext(BaseModel):
    type: Literal["fallback_served"] = "fallback_served"
    source: str = "patterns_api"
    provider: str


LogContext = Annotated[
    Union[EnsembleServedContext, FallbackServedContext],
    Field(discriminator="type"),
]
log_context_adapter = TypeAdapter(LogContext)


# recommendation_events.event_data

class RatedEventData(BaseModel):
    type: Literal["rated"] = "rated"
    rating: int = Field(..., ge=1, le=10)


class PlainEventData(BaseModel):
    type: Literal["plain"] = "plain"


class ActionClickData(BaseModel):
    type: Literal["action_click"] = "action_click"
    action: LogAction
    position: Optional[int] = Field(None, ge=0)


EventData = Annotated[
    Union[RatedEventData, PlainEventData, ActionClickData],
    Field(discriminator="type"),
]
event_data_adapter = TypeAdapter(EventData)


def event_data_for(rating: Optional[int]) -> Union[RatedEventData, PlainEventData]:
    if rating is not None:
        return RatedEventData(rating=rating)
    return PlainEventData()


# Requests

class OutcomeRequest(BaseModel):
    """User reaction to a shown recommendation"""
    action: OutcomeAction
    rating: Optional[int] = Field(None, ge=1, le=10)


class LogActionRequest(BaseModel):
    action: LogAction
    position: Optional[int] = Field(None, ge=0)


class DateRange(BaseModel):
    start: datetime
    end: datetime
