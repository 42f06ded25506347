from sqlalchemy import Column, Integer, String, Float, DateTime, JSON, ForeignKey, Index, func

from .base import Base


class RecommendationLogDB(Base):
    __tablename__ = 'recommendation_logs'
    __table_args__ = (
        Index('ix_recommendation_logs_user_shown', 'user_id', 'shown_at'),
        Index('ix_recommendation_logs_algorithm', 'algorithm'),
    )

    id = Column(Integer, primary_key=True)
    user_id = Column(String(100), nullable=False)
    tmdb_id = Column(Integer, nullable=False)
    media_type = Column(String(20), nullable=False)
    algorithm = Column(String(50), nullable=False)
    score = Column(Float)
    action = Column(String(20), nullable=False, server_default='shown')
    context = Column(JSON)
    shown_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class RecommendationEventDB(Base):
    __tablename__ = 'recommendation_events'
    __table_args__ = (
        Index('ix_recommendation_events_parent', 'parent_log_id'),
        Index('ix_recommendation_events_type_ts', 'event_type', 'timestamp'),
    )

    id = Column(Integer, primary_key=True)
    parent_log_id = Column(Integer, ForeignKey('recommendation_logs.id', ondelete='CASCADE'), nullable=False)
    event_type = Column(String(20), nullable=False)
    event_data = Column(JSON)
    timestamp = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
