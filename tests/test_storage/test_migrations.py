"""Tests for schema migrations."""

import pytest

from src.storage.migrations import Migration, build_migrations, run_migrations


class TestBuildMigrations:
    def test_names_in_apply_order(self, pgvector_policy):
        names = [m.name for m in build_migrations(pgvector_policy, 512, 512)]
        assert names == ["001_core_tables", "002_vector_tables", "003_search_indexes"]

    def test_pgvector_column_types(self, pgvector_policy):
        vector_tables = build_migrations(pgvector_policy, 768, 512)[1].sql
        assert "embedding vector(768) NOT NULL" in vector_tables
        assert "vector(512)," in vector_tables

    def test_pgvecto_rs_column_types(self, pgvecto_rs_policy):
        vector_tables = build_migrations(pgvecto_rs_policy, 512, 512)[1].sql
        assert "vectors.vector(512)" in vector_tables

    def test_embedding_table_cascades_from_assets(self, pgvector_policy):
        vector_tables = build_migrations(pgvector_policy, 512, 512)[1].sql
        assert "REFERENCES assets(id) ON DELETE CASCADE" in vector_tables

    def test_no_ann_indexes(self, pgvector_policy):
        for migration in build_migrations(pgvector_policy, 512, 512):
            assert "USING hnsw" not in migration.sql


class TestRunMigrations:
    @pytest.mark.asyncio
    async def test_applies_pending_only(self, mock_db, mock_conn):
        mock_conn.fetch.return_value = [{"name": "001_first"}]
        migrations = [
            Migration("001_first", "CREATE TABLE a ()"),
            Migration("002_second", "CREATE TABLE b ()"),
        ]

        applied = await run_migrations(mock_db, migrations)

        assert applied == ["002_second"]
        executed = [c.args for c in mock_conn.execute.call_args_list]
        assert ("CREATE TABLE a ()",) not in executed
        assert ("CREATE TABLE b ()",) in executed
        assert ("INSERT INTO schema_migrations (name) VALUES ($1)", "002_second") in executed
        mock_db.transaction.assert_called_once()

    @pytest.mark.asyncio
    async def test_up_to_date(self, mock_db, mock_conn):
        mock_conn.fetch.return_value = [{"name": "001_first"}]

        applied = await run_migrations(mock_db, [Migration("001_first", "SELECT 1")])

        assert applied == []

    @pytest.mark.asyncio
    async def test_failure_propagates(self, mock_db, mock_conn):
        mock_conn.fetch.return_value = []
        mock_conn.execute.side_effect = ["CREATE TABLE", RuntimeError("syntax error")]

        with pytest.raises(RuntimeError, match="syntax error"):
            await run_migrations(mock_db, [Migration("001_bad", "CREATE TABLE (")])
