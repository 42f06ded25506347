"""
Taste profiles built from watch history.

Genre scores average the rating of every watched title carrying the genre
(the user's own rating, else the popularity rating) and scale it to 0-100.
Person scores do the same over each title's top-billed actors and its
directors, using TMDB credits.
"""
import asyncio
import logging
import math
from collections import defaultdict
from typing import Dict, List, Optional

from ..config import PROFILE_CREDITS_LIMIT, WATCHED_STATUSES
from ..exceptions import ExternalProviderError
from ..repositories.profile_repository import GenreProfile, PersonProfile, ProfileRepository
from ..repositories.watchlist_repository import WatchListRepository
from ..schemas.recommendation import content_key
from .tmdb_client import TMDBClient

logger = logging.getLogger(__name__)

TOP_PERSONS_LIMIT = 50
CREDITS_CONCURRENCY = 5

Credits = Dict[str, List[str]]


def item_rating(item: Dict) -> Optional[float]:
    rating = item.get("user_rating")
    if rating is None:
        rating = item.get("vote_average")
    return rating


def scaled_averages(ratings: Dict[str, List[float]]) -> Dict[str, int]:
    """Mean 1-10 rating per name, on a 0-100 scale rounded half up."""
    return {name: math.floor(sum(values) / len(values) * 10 + 0.5) for name, values in ratings.items()}


def top_scores(scores: Dict[str, int], limit: int = TOP_PERSONS_LIMIT) -> Dict[str, int]:
    ranked = sorted(scores.items(), key=lambda kv: (-kv[1], kv[0]))
    return dict(ranked[:limit])


def compute_genre_profile(items: List[Dict]) -> GenreProfile:
    ratings = defaultdict(list)
    for item in items:
        rating = item_rating(item)
        if rating is None:
            continue
        for genre in item.get("genres") or []:
            ratings[genre].append(rating)
    return scaled_averages(ratings)


def compute_person_profile(items: List[Dict], credits: Dict[str, Credits]) -> PersonProfile:
    """``credits`` maps content keys to {"actors": [...], "directors": [...]}; titles without credits are skipped."""
    actors = defaultdict(list)
    directors = defaultdict(list)
    for item in items:
        rating = item_rating(item)
        title_credits = credits.get(content_key(item["tmdb_id"], item["media_type"]))
        if rating is None or not title_credits:
            continue
        for name in title_credits.get("actors", []):
            actors[name].append(rating)
        for name in title_credits.get("directors", []):
            directors[name].append(rating)
    return {
        "actors": top_scores(scaled_averages(actors)),
        "directors": top_scores(scaled_averages(directors)),
    }


class ProfileService:
    def __init__(
        self,
        watchlist_repo: WatchListRepository,
        profile_repo: ProfileRepository,
        tmdb_client: Optional[TMDBClient] = None,
        credits_limit: int = PROFILE_CREDITS_LIMIT,
    ):
        self.watchlist_repo = watchlist_repo
        self.profile_repo = profile_repo
        self.tmdb_client = tmdb_client
        self.credits_limit = credits_limit

    async def _fetch_credits(self, items: List[Dict]) -> Dict[str, Credits]:
        semaphore = asyncio.Semaphore(CREDITS_CONCURRENCY)

        async def fetch(item: Dict):
            key = content_key(item["tmdb_id"], item["media_type"])
            async with semaphore:
                try:
                    return key, await self.tmdb_client.fetch_credits(item["tmdb_id"], item["media_type"])
                except ExternalProviderError as e:
                    logger.warning("Credits unavailable", extra={"content_key": key, "error": str(e)})
                    return key, None

        results = await asyncio.gather(*(fetch(item) for item in items))
        return {key: title_credits for key, title_credits in results if title_credits}

    async def recompute(self, user_id: str) -> Dict[str, int]:
        """
        Rebuild and store the user's genre profile, and the person profile
        when a TMDB client is available. Person credits are looked up for the
        most recently added titles only.
        """
        items = await self.watchlist_repo.find_items(user_id, WATCHED_STATUSES, order_by="recent")

        genre_profile = compute_genre_profile(items)
        await self.profile_repo.store_genre_profile(user_id, genre_profile)
        summary = {"watched": len(items), "genres": len(genre_profile)}

        if self.tmdb_client is not None:
            recent = items[:self.credits_limit]
            credits = await self._fetch_credits(recent)
            person_profile = compute_person_profile(recent, credits)
            await self.profile_repo.store_person_profile(user_id, person_profile)
            summary.update(
                credits=len(credits),
                actors=len(person_profile["actors"]),
                directors=len(person_profile["directors"]),
            )

        logger.info("Profiles recomputed", extra={"user_id": user_id, **summary})
        return summary
