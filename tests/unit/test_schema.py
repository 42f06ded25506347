from watchrec.models import log, similarity, watchlist  # noqa: F401  registers the tables
from watchrec.models.base import schema_ddl


def test_every_table_created_idempotently():
    creates = [s for s in schema_ddl() if s.startswith("CREATE TABLE")]

    names = [s.split()[5] for s in creates]
    assert set(names) == {
        "movie_status",
        "watch_list",
        "recommendation_logs",
        "recommendation_events",
        "similarity_scores",
    }
    assert all(s.startswith("CREATE TABLE IF NOT EXISTS") for s in creates)


def test_referenced_tables_come_first():
    names = [s.split()[5] for s in schema_ddl() if s.startswith("CREATE TABLE")]

    assert names.index("movie_status") < names.index("watch_list")
    assert names.index("recommendation_logs") < names.index("recommendation_events")


def test_content_identity_is_unique_per_user():
    watch_list = next(s for s in schema_ddl() if s.startswith("CREATE TABLE IF NOT EXISTS watch_list"))

    assert "uq_watch_list_user_content" in watch_list
    assert "UNIQUE (user_id, tmdb_id, media_type)" in watch_list


def test_lookup_indexes_created():
    statements = "\n".join(schema_ddl())

    assert "ix_watch_list_user_status" in statements
    assert "CREATE INDEX IF NOT EXISTS" in statements
