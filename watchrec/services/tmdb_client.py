"""
TMDB client for the cold-start fallback and person profiles.
- Async httpx client owned by the app lifecycle.
- Raises ExternalProviderError on transport errors, non-2xx responses
  and payloads that can't be decoded.
"""
import logging
from typing import Dict, List

import httpx

from ..exceptions import ExternalProviderError

logger = logging.getLogger(__name__)

# Anime and cartoons are catalogued under the closest TMDB endpoint
TMDB_MEDIA_PATHS = {"movie": "movie", "cartoon": "movie", "tv": "tv", "anime": "tv"}
TOP_BILLED_CAST = 5


def _to_content_item(raw: Dict, default_media_type: str = "movie") -> Dict:
    return {
        "tmdb_id": raw["id"],
        "media_type": raw.get("media_type") or default_media_type,
        "title": raw.get("title") or raw.get("name") or f"Movie {raw['id']}",
        "vote_average": raw.get("vote_average") or 0.0,
        "popularity": raw.get("popularity") or 0.0,
    }


def _results(path: str, data: Dict) -> List[Dict]:
    results = data.get("results") or []
    if not isinstance(results, list) or not all(isinstance(r, dict) for r in results):
        raise ExternalProviderError(f"TMDB {path} returned malformed results")
    return results


def _content_items(path: str, results: List[Dict], default_media_type: str = "movie") -> List[Dict]:
    try:
        return [_to_content_item(r, default_media_type) for r in results]
    except KeyError as e:
        raise ExternalProviderError(f"TMDB {path} result missing {e}") from e


class TMDBClient:
    def __init__(self, http_client: httpx.AsyncClient, api_key: str):
        self.http = http_client
        self.api_key = api_key

    async def _get(self, path: str, **params) -> Dict:
        params["api_key"] = self.api_key
        try:
            resp = await self.http.get(path, params=params)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ExternalProviderError(
                f"TMDB {path} returned {e.response.status_code}", status_code=e.response.status_code
            ) from e
        except httpx.HTTPError as e:
            raise ExternalProviderError(f"TMDB {path} request failed: {e}") from e
        try:
            data = resp.json()
        except ValueError as e:
            raise ExternalProviderError(f"TMDB {path} returned a non-JSON body") from e
        if not isinstance(data, dict):
            raise ExternalProviderError(f"TMDB {path} returned an unexpected payload")
        return data

    async def fetch_trending(self, window: str = "week") -> List[Dict]:
        path = f"/trending/all/{window}"
        data = await self._get(path)
        # People also trend; only keep titles
        return _content_items(
            path,
            [r for r in _results(path, data) if r.get("media_type", "movie") in ("movie", "tv")],
        )

    async def fetch_popular(self, page: int = 1) -> List[Dict]:
        data = await self._get("/movie/popular", page=page)
        return _content_items("/movie/popular", _results("/movie/popular", data), "movie")

    async def fetch_credits(self, tmdb_id: int, media_type: str) -> Dict[str, List[str]]:
        """Top-billed actors and the directors of one title."""
        path = f"/{TMDB_MEDIA_PATHS.get(media_type, 'movie')}/{tmdb_id}/credits"
        data = await self._get(path)
        cast = data.get("cast") or []
        crew = data.get("crew") or []
        try:
            ordered = sorted(cast, key=lambda c: c.get("order", 0))
            return {
                "actors": [c["name"] for c in ordered[:TOP_BILLED_CAST]],
                "directors": sorted({c["name"] for c in crew if c.get("job") == "Director"}),
            }
        except (AttributeError, KeyError, TypeError) as e:
            raise ExternalProviderError(f"TMDB {path} returned malformed credits") from e
