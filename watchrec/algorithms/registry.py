from typing import Dict, List, Optional, Any, Type

from ..repositories.log_repository import LogRepository
from ..repositories.profile_repository import ProfileRepository
from ..repositories.watchlist_repository import WatchListRepository
from ..services.similarity import SimilarityService
from .base import BaseAlgorithm
from .drop_patterns import DropPatternsAlgorithm
from .genre_recommendations import GenreRecommendationsAlgorithm
from .genre_twins import GenreTwinsAlgorithm
from .person_recommendations import PersonRecommendationsAlgorithm
from .person_twins import PersonTwinsAlgorithm
from .taste_match import TasteMatchAlgorithm
from .type_twins import TypeTwinsAlgorithm
from .want_overlap import WantOverlapAlgorithm

ALGORITHM_CLASSES: List[Type[BaseAlgorithm]] = [
    TasteMatchAlgorithm,
    WantOverlapAlgorithm,
    DropPatternsAlgorithm,
    TypeTwinsAlgorithm,
    PersonTwinsAlgorithm,
    PersonRecommendationsAlgorithm,
    GenreTwinsAlgorithm,
    GenreRecommendationsAlgorithm,
]

ALGORITHM_NAMES = [cls.default_config.name for cls in ALGORITHM_CLASSES]


def build_algorithms(
    watchlist_repo: WatchListRepository,
    log_repo: LogRepository,
    profile_repo: ProfileRepository,
    similarity_service: SimilarityService,
    overrides: Optional[Dict[str, Dict[str, Any]]] = None,
) -> List[BaseAlgorithm]:
    """Instantiate every algorithm, applying per-name config overrides."""
    overrides = overrides or {}
    unknown = set(overrides) - set(ALGORITHM_NAMES)
    if unknown:
        raise ValueError(f"Overrides for unknown algorithms: {sorted(unknown)}")

    return [
        cls(
            watchlist_repo,
            log_repo,
            profile_repo,
            similarity_service,
            config=cls.default_config.with_overrides(overrides.get(cls.default_config.name)),
        )
        for cls in ALGORITHM_CLASSES
    ]


def get_algorithm_by_name(algorithms: List[BaseAlgorithm], name: str) -> Optional[BaseAlgorithm]:
    return next((a for a in algorithms if a.name == name), None)
