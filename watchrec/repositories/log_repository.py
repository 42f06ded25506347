import json
from datetime import datetime
from typing import List, Dict, Optional, Sequence, Set
from asyncpg import Pool

from ..schemas.event import log_context_adapter, event_data_adapter


class LogRepository:
    """Append-only ledger of served recommendations and their outcome events."""

    def __init__(self, db: Pool):
        self.db = db

    async def insert_logs(self, user_id: str, rows: Sequence[Dict]) -> List[int]:
        """
        Insert one 'shown' entry per row. Each row carries tmdb_id, media_type,
        algorithm, score and a serialisable context. Ids come back in input order.
        """
        if not rows:
            return []
        query = """
            INSERT INTO recommendation_logs (
                user_id, tmdb_id, media_type, algorithm, score, action, context, shown_at
            )
            SELECT $1, t.tmdb_id, t.media_type, t.algorithm, t.score, 'shown', t.context::json, NOW()
            FROM unnest($2::int[], $3::text[], $4::text[], $5::float8[], $6::text[], $7::int[])
                AS t(tmdb_id, media_type, algorithm, score, context, ord)
            ORDER BY t.ord
            RETURNING id
        """
        records = await self.db.fetch(
            query,
            user_id,
            [r['tmdb_id'] for r in rows],
            [r['media_type'] for r in rows],
            [r['algorithm'] for r in rows],
            [float(r['score']) for r in rows],
            [json.dumps(r['context']) for r in rows],
            list(range(len(rows))),
        )
        return [record['id'] for record in records]

    async def get_recent_keys(self, user_id: str, since: datetime) -> Set[str]:
        """Content keys shown to the user at or after ``since``."""
        query = """
            SELECT DISTINCT tmdb_id, media_type
            FROM recommendation_logs
            WHERE user_id = $1 AND shown_at >= $2
        """
        rows = await self.db.fetch(query, user_id, since)
        return {f"{row['tmdb_id']}_{row['media_type']}" for row in rows}

    async def get_log(self, log_id: int) -> Optional[Dict]:
        query = """
            SELECT id, user_id, tmdb_id, media_type, algorithm, score, action, context, shown_at
            FROM recommendation_logs
            WHERE id = $1
        """
        row = await self.db.fetchrow(query, log_id)
        if not row:
            return None
        entry = dict(row)
        if entry['context']:
            raw = json.loads(entry['context']) if isinstance(entry['context'], str) else entry['context']
            entry['context'] = log_context_adapter.validate_python(raw)
        return entry

    async def update_action(self, log_id: int, action: str) -> bool:
        query = """
            UPDATE recommendation_logs
            SET action = $2
            WHERE id = $1
        """
        status = await self.db.execute(query, log_id, action)
        return status.endswith(" 1")

    async def insert_event(self, parent_log_id: int, event_type: str, event_data: Dict) -> int:
        query = """
            INSERT INTO recommendation_events (parent_log_id, event_type, event_data, timestamp)
            VALUES ($1, $2, $3, NOW())
            RETURNING id
        """
        return await self.db.fetchval(query, parent_log_id, event_type, json.dumps(event_data))

    async def get_events(self, parent_log_id: int) -> List[Dict]:
        query = """
            SELECT id, event_type, event_data, timestamp
            FROM recommendation_events
            WHERE parent_log_id = $1
            ORDER BY timestamp
        """
        rows = await self.db.fetch(query, parent_log_id)
        events = []
        for row in rows:
            event = dict(row)
            raw = json.loads(event['event_data']) if isinstance(event['event_data'], str) else event['event_data']
            event['event_data'] = event_data_adapter.validate_python(raw) if raw else None
            events.append(event)
        return events

    async def count_shown(
        self,
        user_id: str,
        algorithm: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> int:
        query = """
            SELECT COUNT(*)
            FROM recommendation_logs
            WHERE user_id = $1
              AND ($2::text IS NULL OR algorithm = $2)
              AND ($3::timestamptz IS NULL OR shown_at >= $3)
              AND ($4::timestamptz IS NULL OR shown_at <= $4)
        """
        return await self.db.fetchval(query, user_id, algorithm, start, end) or 0

    async def count_events(
        self,
        user_id: str,
        event_types: Sequence[str],
        algorithm: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> int:
        """Events of the given types whose parent entry matches the filters."""
        query = """
            SELECT COUNT(*)
            FROM recommendation_events e
            JOIN recommendation_logs l ON l.id = e.parent_log_id
            WHERE l.user_id = $1
              AND e.event_type = ANY($2::text[])
              AND ($3::text IS NULL OR l.algorithm = $3)
              AND ($4::timestamptz IS NULL OR l.shown_at >= $4)
              AND ($5::timestamptz IS NULL OR l.shown_at <= $5)
        """
        return await self.db.fetchval(query, user_id, list(event_types), algorithm, start, end) or 0

    async def get_algorithm_counts(
        self,
        user_id: Optional[str],
        positive_types: Sequence[str],
        negative_types: Sequence[str],
    ) -> List[Dict]:
        """Per-algorithm shown / positive / negative counts. ``user_id=None`` aggregates everyone."""
        query = """
            SELECT
                l.algorithm,
                COUNT(DISTINCT l.id) AS shown,
                COUNT(e.id) FILTER (WHERE e.event_type = ANY($2::text[])) AS positive,
                COUNT(e.id) FILTER (WHERE e.event_type = ANY($3::text[])) AS negative,
                MAX(l.shown_at) AS last_used
            FROM recommendation_logs l
            LEFT JOIN recommendation_events e ON e.parent_log_id = l.id
            WHERE ($1::text IS NULL OR l.user_id = $1)
            GROUP BY l.algorithm
            ORDER BY l.algorithm
        """
        rows = await self.db.fetch(query, user_id, list(positive_types), list(negative_types))
        return [dict(row) for row in rows]

    async def get_daily_event_counts(
        self,
        user_id: str,
        event_types: Sequence[str],
        algorithm: Optional[str] = None,
        since: Optional[datetime] = None,
    ) -> List[Dict]:
        query = """
            SELECT
                date_trunc('day', e.timestamp)::date AS day,
                e.event_type,
                COUNT(*) AS cnt
            FROM recommendation_events e
            JOIN recommendation_logs l ON l.id = e.parent_log_id
            WHERE l.user_id = $1
              AND e.event_type = ANY($2::text[])
              AND ($3::text IS NULL OR l.algorithm = $3)
              AND ($4::timestamptz IS NULL OR e.timestamp >= $4)
            GROUP BY day, e.event_type
            ORDER BY day
        """
        rows = await self.db.fetch(query, user_id, list(event_types), algorithm, since)
        return [dict(row) for row in rows]
