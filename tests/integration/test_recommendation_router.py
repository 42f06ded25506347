import pytest
import pytest_asyncio
from unittest.mock import AsyncMock, MagicMock

from watchrec.algorithms.registry import ALGORITHM_NAMES
from watchrec.dependencies import get_db_pool, get_profile_service
from watchrec.main import app
from watchrec.routers.event_router import get_outcome_service
from watchrec.routers.recommendation_router import get_ensemble_service
from watchrec.schemas.recommendation import EnsembleResponse, RecommendationItem
from watchrec.services.ensemble_service import FAILURE_MESSAGE
from watchrec.services.outcome_service import OutcomeService
from watchrec.services.profile_service import ProfileService


@pytest.fixture
def ensemble_service():
    service = MagicMock()
    service.run_ensemble = AsyncMock()
    return service


@pytest.fixture
def outcome_service():
    return AsyncMock(spec=OutcomeService)


@pytest_asyncio.fixture
async def api(client, ensemble_service, outcome_service):
    app.dependency_overrides[get_ensemble_service] = lambda: ensemble_service
    app.dependency_overrides[get_outcome_service] = lambda: outcome_service
    yield client


@pytest.mark.asyncio
async def test_patterns_returns_ensemble_response(api, ensemble_service):
    # Arrange
    ensemble_service.run_ensemble.return_value = EnsembleResponse(
        success=True,
        recommendations=[RecommendationItem(
            tmdb_id=550, media_type="movie", title="Fight Club", score=100,
            algorithm="taste_match_v1", sources=["u2"],
        )],
        log_ids=[1],
    )

    # Act
    response = await api.get("/api/recommendations/patterns", params={"user_id": "user1"})

    # Assert
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["recommendations"][0]["tmdb_id"] == 550
    assert body["log_ids"] == [1]
    assert "X-Request-ID" in response.headers
    ensemble_service.run_ensemble.assert_awaited_once_with("user1")


@pytest.mark.asyncio
async def test_patterns_failure_is_still_200(api, ensemble_service):
    ensemble_service.run_ensemble.return_value = EnsembleResponse(success=False, message=FAILURE_MESSAGE)

    response = await api.get("/api/recommendations/patterns", params={"user_id": "user1"})

    assert response.status_code == 200
    assert response.json() == {
        "success": False,
        "recommendations": [],
        "log_ids": [],
        "meta": None,
        "message": FAILURE_MESSAGE,
    }


@pytest.mark.asyncio
async def test_track_outcome_accepted(api, outcome_service):
    outcome_service.track_outcome.return_value = 5

    response = await api.post("/api/recommendations/3/outcome", json={"action": "rated", "rating": 8})

    assert response.status_code == 202
    assert response.json() == {"status": "accepted", "tracked": True, "event_id": 5}
    outcome_service.track_outcome.assert_awaited_once_with(3, "rated", 8)


@pytest.mark.asyncio
async def test_track_outcome_store_failure_still_accepted(api, outcome_service):
    outcome_service.track_outcome.return_value = None

    response = await api.post("/api/recommendations/3/outcome", json={"action": "ignored"})

    assert response.status_code == 202
    assert response.json()["tracked"] is False


@pytest.mark.asyncio
async def test_record_action_unknown_log(api, outcome_service):
    outcome_service.record_action.return_value = False

    response = await api.post("/api/recommendations/99/action", json={"action": "opened", "position": 2})

    assert response.status_code == 404
    outcome_service.record_action.assert_awaited_once_with(99, "opened", 2)


@pytest.mark.asyncio
async def test_acceptance_rate_with_range(api, outcome_service):
    outcome_service.calculate_acceptance_rate.return_value = {"overall_rate": 30.0, "accepted": 3, "shown": 10}

    response = await api.get("/api/recommendations/acceptance", params={
        "user_id": "user1",
        "algorithm": "taste_match_v1",
        "start": "2024-01-01T00:00:00Z",
        "end": "2024-02-01T00:00:00Z",
    })

    assert response.status_code == 200
    assert response.json()["overall_rate"] == 30.0
    user_id, algorithm, date_range = outcome_service.calculate_acceptance_rate.await_args.args
    assert (user_id, algorithm) == ("user1", "taste_match_v1")
    assert date_range.start.year == 2024 and date_range.end.month == 2


@pytest.mark.asyncio
async def test_system_performance_covers_every_algorithm(api, outcome_service):
    outcome_service.get_system_algorithm_performance.return_value = {"total_shown": 0, "algorithms": []}

    response = await api.get("/api/admin/algorithms/performance")

    assert response.status_code == 200
    outcome_service.get_system_algorithm_performance.assert_awaited_once_with(ALGORITHM_NAMES)


@pytest.mark.asyncio
async def test_profile_recompute_route(api):
    profile_service = AsyncMock(spec=ProfileService)
    profile_service.recompute.return_value = {"watched": 12, "genres": 4}
    app.dependency_overrides[get_profile_service] = lambda: profile_service

    response = await api.post("/api/admin/profiles/user1")

    assert response.status_code == 200
    assert response.json() == {"user_id": "user1", "watched": 12, "genres": 4}
    profile_service.recompute.assert_awaited_once_with("user1")

@pytest.mark.asyncio
async def test_uninitialized_database_returns_503(client):
    app.dependency_overrides.pop(get_db_pool)

    response = await client.get("/api/recommendations/performance", params={"user_id": "user1"})

    assert response.status_code == 503
    assert response.json()["error"] == "Service Unavailable"


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
