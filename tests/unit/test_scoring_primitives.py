import pytest

from watchrec.algorithms.base import (
    AlgorithmConfig,
    CandidatePool,
    normalize_score,
    rating_signal,
    score_by_peer_signals,
)
from watchrec.algorithms.drop_patterns import drop_penalty
from watchrec.algorithms.taste_match import DEFAULT_CONFIG as TASTE_MATCH_CONFIG


def _row(tmdb_id, user_id, rating=None, vote=7.0, media_type="movie"):
    return {
        "user_id": user_id,
        "tmdb_id": tmdb_id,
        "media_type": media_type,
        "title": f"Title {tmdb_id}",
        "user_rating": rating,
        "vote_average": vote,
        "genres": None,
    }


def test_normalize_single_candidate_is_100():
    assert normalize_score(0.42, 0.42, 0.42) == 100


@pytest.mark.parametrize("raw", [0.1, 0.25, 0.5, 0.77, 0.9])
def test_normalize_stays_in_bounds(raw):
    assert 0 <= normalize_score(raw, 0.1, 0.9) <= 100


def test_normalize_endpoints_and_rounding():
    assert normalize_score(0.1, 0.1, 0.9) == 0
    assert normalize_score(0.9, 0.1, 0.9) == 100
    # 0.5 of the range rounds half up
    assert normalize_score(0.5, 0.0, 1.0) == 50
    assert normalize_score(0.125, 0.0, 1.0) == 13


def test_rating_signal_prefers_own_rating():
    assert rating_signal(9, 8.0) == pytest.approx(0.9)
    assert rating_signal(None, 8.0) == pytest.approx(0.4)
    assert rating_signal(None, None) == 0.0
    assert rating_signal(None, None, default=0.5) == 0.5


@pytest.mark.parametrize("dropped, peers, expected", [
    (0, 10, 0.0),
    (5, 10, 0.35),
    (10, 10, 0.7),
    (15, 10, 0.7),
])
def test_drop_penalty_is_capped(dropped, peers, expected):
    assert drop_penalty(dropped, peers, 0.7) == pytest.approx(expected)


def test_candidate_pool_aggregation_is_order_independent():
    rows = [
        (_row(1, "a", rating=8), "a", 0.9),
        (_row(1, "b", rating=6), "b", 0.7),
        (_row(2, "b"), "b", 0.7),
    ]

    forward = CandidatePool()
    for row, uid, sim in rows:
        forward.add(row, uid, sim)
    backward = CandidatePool()
    for row, uid, sim in reversed(rows):
        backward.add(row, uid, sim)

    def snapshot(pool):
        return sorted(
            (c.key, c.cooccurrence, round(c.similarity, 6), tuple(c.source_user_ids), c.user_rating)
            for c in pool.candidates()
        )

    assert snapshot(forward) == snapshot(backward)
    first = {c.key: c for c in forward.candidates()}["1_movie"]
    assert first.cooccurrence == 2
    assert first.similarity == pytest.approx(0.8)


def test_candidate_pool_offer_keeps_best_contributor():
    pool = CandidatePool()
    pool.offer(_row(1, "a"), "a", 0.75)
    pool.offer(_row(1, "b"), "b", 0.9)
    pool.offer(_row(1, "c"), "c", 0.8)

    (candidate,) = pool.candidates()
    assert candidate.source_user_ids == ["b"]
    assert candidate.similarity == pytest.approx(0.9)


def test_peer_signal_scores_use_weights():
    pool = CandidatePool()
    pool.add(_row(1, "a", rating=10), "a", 1.0)
    pool.add(_row(1, "b", rating=10), "b", 1.0)
    pool.add(_row(2, "a", rating=None, vote=0), "a", 0.0)

    scored = {c.key: c.score for c in score_by_peer_signals(pool.candidates(), TASTE_MATCH_CONFIG.weights)}

    assert scored["1_movie"] == pytest.approx(1.0)
    assert scored["2_movie"] == pytest.approx(0.2 * 0.5)


def test_config_overrides_merge_weights():
    config = TASTE_MATCH_CONFIG.with_overrides({"similarity_threshold": 0.8, "weights": {"rating": 0.4}})

    assert config.similarity_threshold == 0.8
    assert config.weights == {"similarity": 0.5, "rating": 0.4, "cooccurrence": 0.2}
    # defaults untouched
    assert TASTE_MATCH_CONFIG.similarity_threshold == 0.7


def test_config_rejects_unknown_fields():
    with pytest.raises(ValueError):
        AlgorithmConfig(name="x", min_user_history=1, not_a_field=3)
