import httpx
import pytest

from watchrec.exceptions import ExternalProviderError
from watchrec.services.tmdb_client import TMDBClient


def make_client(handler):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="https://tmdb.test/3")
    return TMDBClient(http, "key")


@pytest.mark.asyncio
async def test_trending_keeps_titles_only():
    def handler(request):
        assert request.url.params["api_key"] == "key"
        return httpx.Response(200, json={"results": [
            {"id": 1, "media_type": "movie", "title": "Heat", "vote_average": 8.3},
            {"id": 2, "media_type": "person", "name": "Al Pacino"},
            {"id": 3, "media_type": "tv", "name": "The Wire"},
        ]})

    items = await make_client(handler).fetch_trending()

    assert [(i["tmdb_id"], i["media_type"], i["title"]) for i in items] == [
        (1, "movie", "Heat"),
        (3, "tv", "The Wire"),
    ]


@pytest.mark.asyncio
async def test_non_json_body_is_provider_error():
    client = make_client(lambda request: httpx.Response(200, text="<html>maintenance</html>"))

    with pytest.raises(ExternalProviderError, match="non-JSON"):
        await client.fetch_trending()


@pytest.mark.asyncio
async def test_result_without_id_is_provider_error():
    client = make_client(lambda request: httpx.Response(200, json={"results": [{"title": "No id"}]}))

    with pytest.raises(ExternalProviderError, match="missing"):
        await client.fetch_popular()


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [{"results": "soon"}, {"results": [1, 2]}])
async def test_malformed_results_are_provider_error(body):
    client = make_client(lambda request: httpx.Response(200, json=body))

    with pytest.raises(ExternalProviderError, match="malformed"):
        await client.fetch_popular()


@pytest.mark.asyncio
async def test_error_status_carries_status_code():
    client = make_client(lambda request: httpx.Response(503))

    with pytest.raises(ExternalProviderError) as exc_info:
        await client.fetch_trending()

    assert exc_info.value.status_code == 503


@pytest.mark.asyncio
async def test_credits_top_billed_cast_and_directors():
    # Arrange
    seen = []

    def handler(request):
        seen.append(request.url.path)
        cast = [{"name": f"Actor {n}", "order": n} for n in (6, 2, 0, 5, 1, 3, 4)]
        crew = [
            {"name": "Lana", "job": "Director"},
            {"name": "Lilly", "job": "Director"},
            {"name": "Lana", "job": "Director"},
            {"name": "Joel", "job": "Producer"},
        ]
        return httpx.Response(200, json={"cast": cast, "crew": crew})

    # Act
    credits = await make_client(handler).fetch_credits(603, "anime")

    # Assert
    assert seen == ["/3/tv/603/credits"]
    assert credits == {
        "actors": ["Actor 0", "Actor 1", "Actor 2", "Actor 3", "Actor 4"],
        "directors": ["Lana", "Lilly"],
    }


@pytest.mark.asyncio
async def test_malformed_credits_are_provider_error():
    client = make_client(lambda request: httpx.Response(200, json={"cast": [{"order": 0}], "crew": []}))

    with pytest.raises(ExternalProviderError, match="malformed credits"):
        await client.fetch_credits(1, "movie")
