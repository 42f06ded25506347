from sqlalchemy import Column, Integer, String, Float, DateTime, JSON, ForeignKey, UniqueConstraint, Index, func

from .base import Base


class MovieStatusDB(Base):
    __tablename__ = 'movie_status'

    id = Column(Integer, primary_key=True)
    name = Column(String(20), nullable=False, unique=True)


# Catalog rows; ids are referenced throughout the query layer.
MOVIE_STATUSES = [
    (1, 'want'),
    (2, 'watched'),
    (3, 'rewatched'),
    (4, 'dropped'),
]


class WatchListItemDB(Base):
    __tablename__ = 'watch_list'
    __table_args__ = (
        UniqueConstraint('user_id', 'tmdb_id', 'media_type', name='uq_watch_list_user_content'),
        Index('ix_watch_list_user_status', 'user_id', 'status_id'),
        Index('ix_watch_list_added_at', 'added_at'),
    )

    id = Column(Integer, primary_key=True)
    user_id = Column(String(100), nullable=False)
    tmdb_id = Column(Integer, nullable=False)
    media_type = Column(String(20), nullable=False)  # movie / tv / anime / cartoon
    title = Column(String(500), nullable=False)
    status_id = Column(Integer, ForeignKey('movie_status.id'), nullable=False)
    user_rating = Column(Integer)
    vote_average = Column(Float)
    genres = Column(JSON)
    added_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    last_recommended_at = Column(DateTime(timezone=True))
    recommendation_count = Column(Integer, nullable=False, server_default='0')
    watch_count = Column(Integer, nullable=False, server_default='1')
