from typing import List, Dict
from asyncpg import Pool

from ..schemas.recommendation import SimilarityResult


class SimilarityRepository:
    def __init__(self, db: Pool):
        self.db = db

    async def upsert_scores(self, user_id: str, scores: Dict[str, SimilarityResult], computed_by: str):
        """Replace stored pair scores for ``user_id`` against each candidate."""
        if not scores:
            return
        query = """
            INSERT INTO similarity_scores (
                user_id_a, user_id_b, overall_match, taste_similarity,
                rating_correlation, person_overlap, computed_by, computed_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, NOW())
            ON CONFLICT (user_id_a, user_id_b) DO UPDATE SET
                overall_match = EXCLUDED.overall_match,
                taste_similarity = EXCLUDED.taste_similarity,
                rating_correlation = EXCLUDED.rating_correlation,
                person_overlap = EXCLUDED.person_overlap,
                computed_by = EXCLUDED.computed_by,
                computed_at = EXCLUDED.computed_at
        """
        await self.db.executemany(query, [
            (
                user_id,
                other_id,
                result.overall_match,
                result.taste_similarity,
                result.rating_correlation,
                result.person_overlap,
                computed_by,
            )
            for other_id, result in scores.items()
        ])

    async def get_top_matches(self, user_id: str, limit: int) -> List[Dict]:
        query = """
            SELECT user_id_b AS user_id, overall_match, taste_similarity, computed_at
            FROM similarity_scores
            WHERE user_id_a = $1
            ORDER BY overall_match DESC
            LIMIT $2
        """
        rows = await self.db.fetch(query, user_id, limit)
        return [dict(row) for row in rows]
