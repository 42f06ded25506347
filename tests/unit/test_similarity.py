import pytest
from unittest.mock import AsyncMock

from watchrec.compute_similarities import refresh_profiles, refresh_users
from watchrec.exceptions import ProfileStoreError
from watchrec.repositories.similarity_repository import SimilarityRepository
from watchrec.schemas.recommendation import SimilarUser, SimilarityResult
from watchrec.services.profile_service import ProfileService
from watchrec.services.similarity import (
    SimilarityService,
    cosine_similarity,
    is_similar,
    overall_match,
    person_overlap,
    person_similarity,
    rating_correlation,
    type_distribution,
    type_similarity,
)


def test_cosine_identical_and_disjoint():
    assert cosine_similarity({"Drama": 80, "Comedy": 20}, {"Drama": 80, "Comedy": 20}) == pytest.approx(1.0)
    assert cosine_similarity({"Drama": 80}, {"Horror": 60}) == 0.0
    assert cosine_similarity({}, {}) == 0.0
    assert cosine_similarity({"Drama": 0}, {"Drama": 50}) == 0.0


def test_cosine_partial_overlap_in_range():
    value = cosine_similarity({"Drama": 90, "Comedy": 10}, {"Drama": 50, "Action": 50})
    assert 0 < value < 1


def test_person_overlap_ignores_zero_scores():
    a = {"Tom Hanks": 80, "Meg Ryan": 0}
    b = {"Tom Hanks": 70, "Meg Ryan": 40}
    assert person_overlap(a, b) == pytest.approx(0.5)
    assert person_overlap({}, {}) == 0.0


def test_person_similarity_averages_actors_and_directors():
    a = {"actors": {"X": 80}, "directors": {"D": 90}}
    b = {"actors": {"X": 60}, "directors": {"E": 90}}
    assert person_similarity(a, b) == pytest.approx(0.5)


def test_rating_correlation():
    assert rating_correlation([1, 2, 3], [2, 4, 6]) == pytest.approx(1.0)
    assert rating_correlation([1, 2, 3], [3, 2, 1]) == pytest.approx(-1.0)
    assert rating_correlation([5, 5, 5], [1, 2, 3]) == 0.0
    assert rating_correlation([1], [1]) == 0.0


def test_type_similarity():
    movies_only = type_distribution({"movie": 10})
    half_half = type_distribution({"movie": 5, "tv": 5})

    assert type_similarity(movies_only, movies_only) == pytest.approx(1.0)
    assert type_similarity(movies_only, half_half) == pytest.approx(0.5)
    assert type_similarity(movies_only, type_distribution({"anime": 3})) == pytest.approx(0.0)


def test_overall_match_and_is_similar():
    assert overall_match(1.0, 1.0, 1.0) == pytest.approx(1.0)
    # neutral correlation contributes 0.15
    assert overall_match(0.8, 0.0, 0.5) == pytest.approx(0.4 + 0.15 + 0.1)
    assert is_similar(SimilarityResult(taste_similarity=0.71))
    assert not is_similar(SimilarityResult(taste_similarity=0.7))


@pytest.mark.asyncio
async def test_cached_similar_users_filtered_by_threshold(mock_profile_repo, mock_watchlist_repo):
    # Arrange
    mock_profile_repo.get_similar_users.return_value = [
        SimilarUser(user_id="u1", overall_match=0.9),
        SimilarUser(user_id="u2", overall_match=0.65),
    ]
    service = SimilarityService(mock_profile_repo, mock_watchlist_repo)

    # Act
    result = await service.get_or_compute_similar_users("me", threshold=0.7, limit=20)

    # Assert
    assert [u.user_id for u in result] == ["u1"]
    mock_watchlist_repo.sample_user_ids.assert_not_called()


@pytest.mark.asyncio
async def test_cache_miss_computes_over_sample(mock_profile_repo, mock_watchlist_repo):
    # Arrange
    profiles = {
        "me": {"Drama": 90, "Comedy": 10},
        "close": {"Drama": 85, "Comedy": 15},
        "far": {"Horror": 100},
    }
    mock_profile_repo.get_genre_profile.side_effect = lambda uid: profiles.get(uid)
    mock_watchlist_repo.sample_user_ids.return_value = ["close", "far", "unprofiled"]
    service = SimilarityService(mock_profile_repo, mock_watchlist_repo)

    # Act
    result = await service.get_or_compute_similar_users("me", threshold=0.7, limit=20, sample_size=50)

    # Assert
    assert [u.user_id for u in result] == ["close"]
    mock_watchlist_repo.sample_user_ids.assert_awaited_once_with("me", 50)


@pytest.mark.asyncio
async def test_compute_similarity_without_profile_is_zero(mock_profile_repo, mock_watchlist_repo):
    mock_profile_repo.get_genre_profile.side_effect = lambda uid: {"Drama": 50} if uid == "a" else None
    service = SimilarityService(mock_profile_repo, mock_watchlist_repo)

    result = await service.compute_similarity("a", "b")

    assert result == SimilarityResult()


@pytest.mark.asyncio
async def test_find_similar_users_persists_and_caches(mock_profile_repo, mock_watchlist_repo):
    # Arrange
    similarity_repo = AsyncMock(spec=SimilarityRepository)
    profiles = {"me": {"Drama": 100}, "twin": {"Drama": 100}, "other": {"Horror": 100}}
    mock_profile_repo.get_genre_profile.side_effect = lambda uid: profiles.get(uid)
    mock_watchlist_repo.sample_user_ids.return_value = ["twin", "other"]
    service = SimilarityService(mock_profile_repo, mock_watchlist_repo, similarity_repo)

    # Act
    similar = await service.find_similar_users("me", sample_size=10, computed_by="test")

    # Assert
    assert [u.user_id for u in similar] == ["twin"]
    stored = similarity_repo.upsert_scores.await_args.args[1]
    assert set(stored) == {"twin", "other"}
    mock_profile_repo.store_similar_users.assert_awaited_once_with("me", similar)
    assert mock_profile_repo.store_similarity_pair.await_count == 2


@pytest.mark.asyncio
async def test_batch_refresh_continues_past_failures():
    service = AsyncMock(spec=SimilarityService)
    service.find_similar_users.side_effect = [[], RuntimeError("corrupt profile"), []]

    refreshed = await refresh_users(service, ["a", "b", "c"])

    assert refreshed == 2
    assert service.find_similar_users.await_count == 3


@pytest.mark.asyncio
async def test_corrupt_candidate_profile_is_skipped(mock_profile_repo, mock_watchlist_repo):
    # Arrange
    profiles = {"me": {"Drama": 90, "Comedy": 10}, "twin": {"Drama": 85, "Comedy": 15}}

    def load(user_id):
        if user_id == "broken":
            raise ProfileStoreError("Corrupt profile payload at user:broken:genre-profile")
        return profiles.get(user_id)

    mock_profile_repo.get_genre_profile.side_effect = load
    mock_watchlist_repo.sample_user_ids.return_value = ["broken", "twin"]
    service = SimilarityService(mock_profile_repo, mock_watchlist_repo)

    # Act
    result = await service.get_or_compute_similar_users("me", threshold=0.7, limit=20)

    # Assert
    assert [u.user_id for u in result] == ["twin"]


@pytest.mark.asyncio
async def test_batch_profile_refresh_continues_past_failures():
    service = AsyncMock(spec=ProfileService)
    service.recompute.side_effect = [{"watched": 3}, RuntimeError("redis down"), {"watched": 0}]

    refreshed = await refresh_profiles(service, ["a", "b", "c"])

    assert refreshed == 2
    assert service.recompute.await_count == 3
