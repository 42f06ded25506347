import json
from datetime import datetime
from typing import List, Dict, Optional, Sequence
from asyncpg import Pool

from ..config import WATCHED_STATUSES

# Whitelisted ORDER BY clauses for find_items
ORDERINGS = {
    "rating": "user_rating DESC NULLS LAST, vote_average DESC NULLS LAST",
    "recent": "added_at DESC",
    "random": "random()",
}

ITEM_COLUMNS = """
    user_id, tmdb_id, media_type, title, status_id,
    user_rating, vote_average, genres, added_at
"""


def _item(row) -> Dict:
    item = dict(row)
    genres = item.get("genres")
    item["genres"] = json.loads(genres) if isinstance(genres, str) else genres
    return item


class WatchListRepository:
    """Read access to users' watch lists. Status filters are lists of catalog ids."""

    def __init__(self, db: Pool):
        self.db = db

    async def count_watched(self, user_id: str, statuses: Sequence[int] = WATCHED_STATUSES) -> int:
        query = """
            SELECT COUNT(*)
            FROM watch_list
            WHERE user_id = $1 AND status_id = ANY($2::int[])
        """
        return await self.db.fetchval(query, user_id, list(statuses)) or 0

    async def find_items(
        self,
        user_id: str,
        statuses: Sequence[int],
        limit: Optional[int] = None,
        order_by: str = "recent",
    ) -> List[Dict]:
        query = f"""
            SELECT {ITEM_COLUMNS}
            FROM watch_list
            WHERE user_id = $1 AND status_id = ANY($2::int[])
            ORDER BY {ORDERINGS[order_by]}
            LIMIT $3
        """
        rows = await self.db.fetch(query, user_id, list(statuses), limit)
        return [_item(row) for row in rows]

    async def find_top_items_per_user(
        self,
        user_ids: Sequence[str],
        statuses: Sequence[int],
        per_user: int,
        min_rating: Optional[int] = None,
    ) -> List[Dict]:
        """Top ``per_user`` items of each user, best rated first."""
        if not user_ids:
            return []
        query = f"""
            SELECT {ITEM_COLUMNS}
            FROM (
                SELECT w.*,
                       ROW_NUMBER() OVER (
                           PARTITION BY user_id
                           ORDER BY user_rating DESC NULLS LAST, vote_average DESC NULLS LAST
                       ) AS rn
                FROM watch_list w
                WHERE user_id = ANY($1::text[])
                  AND status_id = ANY($2::int[])
                  AND ($3::int IS NULL OR user_rating >= $3)
            ) ranked
            WHERE rn <= $4
        """
        rows = await self.db.fetch(query, list(user_ids), list(statuses), min_rating, per_user)
        return [_item(row) for row in rows]

    async def find_items_for_users(
        self,
        user_ids: Sequence[str],
        statuses: Sequence[int],
        added_after: Optional[datetime] = None,
    ) -> List[Dict]:
        if not user_ids:
            return []
        query = f"""
            SELECT {ITEM_COLUMNS}
            FROM watch_list
            WHERE user_id = ANY($1::text[])
              AND status_id = ANY($2::int[])
              AND ($3::timestamptz IS NULL OR added_at >= $3)
        """
        rows = await self.db.fetch(query, list(user_ids), list(statuses), added_after)
        return [_item(row) for row in rows]

    async def find_user_keys(self, user_id: str) -> List[str]:
        """Content keys of everything on the user's lists, any status."""
        query = """
            SELECT tmdb_id, media_type
            FROM watch_list
            WHERE user_id = $1
        """
        rows = await self.db.fetch(query, user_id)
        return [f"{row['tmdb_id']}_{row['media_type']}" for row in rows]

    async def get_type_counts(self, user_id: str, sample_size: Optional[int] = None) -> Dict[str, int]:
        """Watched item count per media type, optionally over a random sample."""
        query = """
            SELECT media_type, COUNT(*) AS cnt
            FROM (
                SELECT media_type
                FROM watch_list
                WHERE user_id = $1 AND status_id = ANY($2::int[])
                ORDER BY CASE WHEN $3::int IS NULL THEN 0 ELSE random() END
                LIMIT $3
            ) sampled
            GROUP BY media_type
        """
        rows = await self.db.fetch(query, user_id, list(WATCHED_STATUSES), sample_size)
        return {row['media_type']: row['cnt'] for row in rows}

    async def get_type_counts_for_users(self, user_ids: Sequence[str]) -> Dict[str, Dict[str, int]]:
        if not user_ids:
            return {}
        query = """
            SELECT user_id, media_type, COUNT(*) AS cnt
            FROM watch_list
            WHERE user_id = ANY($1::text[]) AND status_id = ANY($2::int[])
            GROUP BY user_id, media_type
        """
        rows = await self.db.fetch(query, list(user_ids), list(WATCHED_STATUSES))
        counts: Dict[str, Dict[str, int]] = {}
        for row in rows:
            counts.setdefault(row['user_id'], {})[row['media_type']] = row['cnt']
        return counts

    async def sample_user_ids(
        self,
        exclude_user_id: str,
        limit: int,
        active_since: Optional[datetime] = None,
    ) -> List[str]:
        """Random sample of other users, optionally only those who added something recently."""
        query = """
            SELECT user_id
            FROM (
                SELECT DISTINCT user_id
                FROM watch_list
                WHERE user_id <> $1
                  AND ($2::timestamptz IS NULL OR added_at >= $2)
            ) users
            ORDER BY random()
            LIMIT $3
        """
        rows = await self.db.fetch(query, exclude_user_id, active_since, limit)
        return [row['user_id'] for row in rows]
