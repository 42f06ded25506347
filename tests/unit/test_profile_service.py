import pytest
from unittest.mock import AsyncMock

from watchrec.config import WATCHED_STATUSES
from watchrec.exceptions import ExternalProviderError
from watchrec.services.profile_service import (
    ProfileService,
    compute_genre_profile,
    compute_person_profile,
    top_scores,
)
from watchrec.services.tmdb_client import TMDBClient


def _watched(tmdb_id, user_rating=None, vote=None, genres=None, media_type="movie"):
    return {
        "tmdb_id": tmdb_id,
        "media_type": media_type,
        "title": f"Title {tmdb_id}",
        "user_rating": user_rating,
        "vote_average": vote,
        "genres": genres,
    }


HISTORY = [
    _watched(1, user_rating=8, vote=6.0, genres=["Drama", "Crime"]),
    _watched(2, vote=6.5, genres=["Drama"]),
    _watched(3, genres=["Comedy"]),
    _watched(4, user_rating=9),
]


def test_genre_profile_averages_ratings_on_hundred_scale():
    profile = compute_genre_profile(HISTORY)

    # Drama: (8 + 6.5) / 2 = 7.25 -> 72.5, rounded half up
    assert profile == {"Drama": 73, "Crime": 80}


def test_genre_profile_of_empty_history_is_empty():
    assert compute_genre_profile([]) == {}


def test_person_profile_uses_credited_titles_only():
    credits = {
        "1_movie": {"actors": ["Ana", "Ben"], "directors": ["Dee"]},
        "2_movie": {"actors": ["Ana"], "directors": []},
        "3_movie": {"actors": ["Cal"], "directors": ["Dee"]},
    }

    profile = compute_person_profile(HISTORY, credits)

    assert profile == {"actors": {"Ana": 73, "Ben": 80}, "directors": {"Dee": 80}}


def test_top_scores_keeps_best_with_name_tiebreak():
    ranked = top_scores({"a": 50, "c": 70, "b": 70}, limit=2)

    assert list(ranked) == ["b", "c"]


@pytest.mark.asyncio
async def test_recompute_stores_both_profiles(mock_watchlist_repo, mock_profile_repo):
    # Arrange
    mock_watchlist_repo.find_items.return_value = HISTORY[:2]
    tmdb = AsyncMock(spec=TMDBClient)

    def credits(tmdb_id, media_type):
        if tmdb_id == 2:
            raise ExternalProviderError("TMDB /movie/2/credits returned 404", status_code=404)
        return {"actors": ["Ana"], "directors": ["Dee"]}

    tmdb.fetch_credits.side_effect = credits
    service = ProfileService(mock_watchlist_repo, mock_profile_repo, tmdb)

    # Act
    summary = await service.recompute("user1")

    # Assert
    mock_watchlist_repo.find_items.assert_awaited_once_with("user1", WATCHED_STATUSES, order_by="recent")
    mock_profile_repo.store_genre_profile.assert_awaited_once_with("user1", {"Drama": 73, "Crime": 80})
    mock_profile_repo.store_person_profile.assert_awaited_once_with(
        "user1", {"actors": {"Ana": 80}, "directors": {"Dee": 80}}
    )
    assert summary == {"watched": 2, "genres": 2, "credits": 1, "actors": 1, "directors": 1}


@pytest.mark.asyncio
async def test_recompute_looks_up_credits_for_recent_titles_only(mock_watchlist_repo, mock_profile_repo):
    mock_watchlist_repo.find_items.return_value = HISTORY
    tmdb = AsyncMock(spec=TMDBClient)
    tmdb.fetch_credits.return_value = {"actors": [], "directors": []}
    service = ProfileService(mock_watchlist_repo, mock_profile_repo, tmdb, credits_limit=2)

    await service.recompute("user1")

    assert [c.args for c in tmdb.fetch_credits.await_args_list] == [(1, "movie"), (2, "movie")]


@pytest.mark.asyncio
async def test_recompute_without_tmdb_only_rebuilds_genres(mock_watchlist_repo, mock_profile_repo):
    mock_watchlist_repo.find_items.return_value = HISTORY

    summary = await ProfileService(mock_watchlist_repo, mock_profile_repo).recompute("user1")

    assert summary == {"watched": 4, "genres": 2}
    mock_profile_repo.store_genre_profile.assert_awaited_once()
    mock_profile_repo.store_person_profile.assert_not_called()
