from sqlalchemy import Column, Integer, String, Float, DateTime, UniqueConstraint, func

from .base import Base


class SimilarityScoreDB(Base):
    __tablename__ = 'similarity_scores'
    __table_args__ = (
        UniqueConstraint('user_id_a', 'user_id_b', name='uq_similarity_pair'),
    )

    id = Column(Integer, primary_key=True)
    user_id_a = Column(String(100), nullable=False)
    user_id_b = Column(String(100), nullable=False)
    overall_match = Column(Float, nullable=False)
    taste_similarity = Column(Float, nullable=False)
    rating_correlation = Column(Float, nullable=False, server_default='0')
    person_overlap = Column(Float, nullable=False, server_default='0')
    computed_by = Column(String(50), nullable=False, server_default='on_demand')
    computed_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
