import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from unittest.mock import AsyncMock

from watchrec.main import app
from watchrec.dependencies import get_db_pool, get_redis, get_http_client
from watchrec.limiter import limiter
from watchrec.repositories.log_repository import LogRepository
from watchrec.repositories.profile_repository import ProfileRepository
from watchrec.repositories.watchlist_repository import WatchListRepository
from watchrec.services.similarity import SimilarityService


@pytest.fixture
def mock_db_pool():
    pool = AsyncMock()
    conn = AsyncMock()
    pool.acquire.return_value.__aenter__.return_value = conn
    return pool


@pytest.fixture
def mock_redis():
    mock = AsyncMock()
    mock.get.return_value = None  # Cache miss by default
    return mock


@pytest.fixture
def mock_watchlist_repo():
    repo = AsyncMock(spec=WatchListRepository)
    repo.count_watched.return_value = 20
    repo.find_user_keys.return_value = []
    repo.find_items.return_value = []
    repo.find_items_for_users.return_value = []
    repo.find_top_items_per_user.return_value = []
    repo.get_type_counts.return_value = {}
    repo.get_type_counts_for_users.return_value = {}
    repo.sample_user_ids.return_value = []
    return repo


@pytest.fixture
def mock_log_repo():
    repo = AsyncMock(spec=LogRepository)
    repo.get_recent_keys.return_value = set()
    repo.insert_logs.side_effect = lambda user_id, rows: list(range(1, len(rows) + 1))
    return repo


@pytest.fixture
def mock_profile_repo():
    repo = AsyncMock(spec=ProfileRepository)
    repo.get_genre_profile.return_value = None
    repo.get_person_profile.return_value = None
    repo.get_similar_users.return_value = []
    return repo


@pytest.fixture
def mock_similarity_service():
    service = AsyncMock(spec=SimilarityService)
    service.get_similar_users.return_value = []
    service.get_or_compute_similar_users.return_value = []
    service.candidate_user_ids.return_value = []
    return service


@pytest_asyncio.fixture
async def client(mock_db_pool, mock_redis):
    app.dependency_overrides[get_db_pool] = lambda: mock_db_pool
    app.dependency_overrides[get_redis] = lambda: mock_redis
    app.dependency_overrides[get_http_client] = lambda: AsyncMock()

    transport = ASGITransport(app=app)
    limiter.enabled = False
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    limiter.enabled = True

    app.dependency_overrides = {}
