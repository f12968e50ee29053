"""Tests for CLIP and face vector search execution."""

import json
from contextlib import asynccontextmanager

import pytest

from src.search.config import SearchConfig
from src.search.executor import VectorSearchExecutor, validate_num_results
from src.search.schemas import EmbeddingSearch, FaceEmbeddingSearch
from tests.test_search.conftest import _make_asset_row

EMBEDDING = [0.1, 0.2, 0.3]


@pytest.fixture
def pgvector_executor(mock_db, pgvector_policy, metrics):
    return VectorSearchExecutor(mock_db, pgvector_policy, metrics=metrics)


@pytest.fixture
def pgvecto_rs_executor(mock_db, pgvecto_rs_policy, metrics):
    return VectorSearchExecutor(mock_db, pgvecto_rs_policy, metrics=metrics)


def _face_row(face_id: str, distance: float, person_id: str | None = None) -> dict:
    return {
        "distance": distance,
        "id": face_id,
        "asset_id": f"asset-{face_id}",
        "person_id": person_id,
        "image_width": 1000,
        "image_height": 800,
        "bounding_box_x1": 10,
        "bounding_box_y1": 20,
        "bounding_box_x2": 110,
        "bounding_box_y2": 140,
    }


class FakeFaceConnection:
    """Ranks stored face distances the way the CTE does: order, limit, then filter."""

    def __init__(self, distances: list[float]):
        self.rows = [_face_row(f"f{i}", d) for i, d in enumerate(distances)]
        self.statements: list[str] = []

    async def execute(self, sql, *args):
        self.statements.append(sql)

    async def fetch(self, sql, *params):
        ranked = sorted(self.rows, key=lambda r: r["distance"])
        if "LIMIT $3" in sql:
            ranked = ranked[: params[2]]
        return [r for r in ranked if r["distance"] <= params[-1]]


class TestValidateNumResults:
    @pytest.mark.parametrize("value", [None, 1, 500])
    def test_valid(self, value):
        validate_num_results(value)

    @pytest.mark.parametrize("value", [0, -3, 2.5, "10", True])
    def test_invalid(self, value):
        with pytest.raises(ValueError, match="num_results"):
            validate_num_results(value)


class TestSessionSettings:
    def test_pgvector_never_below_unbounded_default(self, pgvector_executor):
        assert pgvector_executor.session_settings(10) == ["SET LOCAL hnsw.ef_search = 1000"]
        assert pgvector_executor.session_settings(None) == ["SET LOCAL hnsw.ef_search = 1000"]

    def test_pgvector_large_cap_is_clamped(self, pgvector_executor):
        assert pgvector_executor.session_settings(5000) == ["SET LOCAL hnsw.ef_search = 1000"]

    def test_pgvecto_rs_large_cap_is_clamped(self, pgvecto_rs_executor):
        assert pgvecto_rs_executor.session_settings(100_000)[-1] == (
            "SET LOCAL vectors.hnsw_ef_search = 65535"
        )

    def test_configured_breadth_above_limit_is_clamped(self, mock_db, pgvector_policy, metrics):
        executor = VectorSearchExecutor(
            mock_db, pgvector_policy, config=SearchConfig(unbounded_ef_search=4000), metrics=metrics
        )
        assert executor.session_settings() == ["SET LOCAL hnsw.ef_search = 1000"]

    def test_pgvecto_rs_follows_cap(self, pgvecto_rs_executor):
        assert pgvecto_rs_executor.session_settings(65) == [
            "SET LOCAL vectors.enable_prefilter = on",
            "SET LOCAL vectors.search_mode = basic",
            "SET LOCAL vectors.hnsw_ef_search = 65",
        ]

    def test_pgvecto_rs_unbounded(self, pgvecto_rs_executor):
        assert pgvecto_rs_executor.session_settings(None)[-1] == (
            "SET LOCAL vectors.hnsw_ef_search = 1000"
        )

    def test_configured_unbounded_breadth(self, mock_db, pgvector_policy, metrics):
        executor = VectorSearchExecutor(
            mock_db, pgvector_policy, config=SearchConfig(unbounded_ef_search=400), metrics=metrics
        )
        assert executor.session_settings() == ["SET LOCAL hnsw.ef_search = 400"]


class TestSearchClip:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("num_results", [0, -1, 1.5])
    async def test_invalid_cap_rejected_before_query(self, pgvector_executor, mock_db, num_results):
        with pytest.raises(ValueError):
            await pgvector_executor.search_clip(
                EmbeddingSearch(user_ids=["u1"], embedding=EMBEDDING, num_results=num_results)
            )
        mock_db.transaction.assert_not_called()

    @pytest.mark.asyncio
    async def test_query_shape(self, pgvecto_rs_executor, mock_conn):
        await pgvecto_rs_executor.search_clip(
            EmbeddingSearch(user_ids=["u1", "u2"], embedding=EMBEDDING, num_results=20)
        )

        executed = [c.args[0] for c in mock_conn.execute.call_args_list]
        assert executed == [
            "SET LOCAL vectors.enable_prefilter = on",
            "SET LOCAL vectors.search_mode = basic",
            "SET LOCAL vectors.hnsw_ef_search = 20",
        ]

        sql, *params = mock_conn.fetch.call_args.args
        assert params == ["[0.1,0.2,0.3]", ["u1", "u2"], 20]
        assert "INNER JOIN smart_search s ON s.asset_id = a.id" in sql
        assert "a.owner_id = ANY($2::uuid[])" in sql
        assert "a.is_archived = FALSE" in sql
        assert "a.is_visible = TRUE" in sql
        assert "a.file_created_at < NOW()" in sql
        assert "a.deleted_at IS NULL" in sql
        assert "ORDER BY s.embedding <=> $1" in sql
        assert sql.rstrip().endswith("LIMIT $3")

    @pytest.mark.asyncio
    async def test_with_archived_and_unbounded(self, pgvector_executor, mock_conn):
        await pgvector_executor.search_clip(
            EmbeddingSearch(user_ids=["u1"], embedding=EMBEDDING, with_archived=True)
        )

        sql, *params = mock_conn.fetch.call_args.args
        assert "a.is_archived = FALSE" not in sql
        assert "LIMIT" not in sql
        assert len(params) == 2

    @pytest.mark.asyncio
    async def test_rows_become_assets(self, pgvector_executor, mock_conn):
        row = _make_asset_row("a1")
        row["exif_info"] = json.dumps({"city": "Lisbon"})
        mock_conn.fetch.return_value = [row]

        assets = await pgvector_executor.search_clip(
            EmbeddingSearch(user_ids=["owner-1"], embedding=EMBEDDING)
        )

        assert [a.id for a in assets] == ["a1"]
        assert assets[0].exif_info == {"city": "Lisbon"}

    @pytest.mark.asyncio
    async def test_metrics_on_success_and_failure(self, pgvector_executor, mock_conn, metrics):
        search = EmbeddingSearch(user_ids=["u1"], embedding=EMBEDDING)
        await pgvector_executor.search_clip(search)

        mock_conn.fetch.side_effect = RuntimeError("connection reset")
        with pytest.raises(RuntimeError):
            await pgvector_executor.search_clip(search)

        assert metrics.searches.labels(kind="clip", status="success")._value.get() == 1
        assert metrics.searches.labels(kind="clip", status="error")._value.get() == 1


class TestSearchFaces:
    @pytest.mark.asyncio
    async def test_invalid_cap_rejected(self, pgvector_executor, mock_db):
        with pytest.raises(ValueError):
            await pgvector_executor.search_faces(
                FaceEmbeddingSearch(
                    user_ids=["u1"], embedding=EMBEDDING, max_distance=0.5, num_results=0
                )
            )
        mock_db.transaction.assert_not_called()

    @pytest.mark.asyncio
    async def test_candidate_floor(self, pgvecto_rs_executor, mock_conn):
        await pgvecto_rs_executor.search_faces(
            FaceEmbeddingSearch(user_ids=["u1"], embedding=EMBEDDING, max_distance=0.6, num_results=5)
        )

        sql, *params = mock_conn.fetch.call_args.args
        assert params == ["[0.1,0.2,0.3]", ["u1"], 64, 0.6]
        assert "LIMIT $3" in sql
        assert "WHERE res.distance <= $4" in sql
        assert "f.embedding," not in sql
        assert mock_conn.execute.call_args_list[-1].args[0] == "SET LOCAL vectors.hnsw_ef_search = 64"

    @pytest.mark.asyncio
    async def test_cap_above_floor(self, pgvector_executor, mock_conn):
        await pgvector_executor.search_faces(
            FaceEmbeddingSearch(
                user_ids=["u1"], embedding=EMBEDDING, max_distance=0.6, num_results=200
            )
        )
        assert mock_conn.fetch.call_args.args[3] == 200

    @pytest.mark.asyncio
    async def test_unbounded_has_no_limit(self, pgvector_executor, mock_conn):
        await pgvector_executor.search_faces(
            FaceEmbeddingSearch(user_ids=["u1"], embedding=EMBEDDING, max_distance=0.6)
        )

        sql, *params = mock_conn.fetch.call_args.args
        assert "LIMIT" not in sql
        assert params[-1] == 0.6
        assert "WHERE res.distance <= $3" in sql

    @pytest.mark.asyncio
    async def test_has_person(self, pgvector_executor, mock_conn):
        await pgvector_executor.search_faces(
            FaceEmbeddingSearch(
                user_ids=["u1"], embedding=EMBEDDING, max_distance=0.6, has_person=True
            )
        )
        assert "f.person_id IS NOT NULL" in mock_conn.fetch.call_args.args[0]

    @pytest.mark.asyncio
    async def test_results(self, pgvector_executor, mock_conn):
        mock_conn.fetch.return_value = [_face_row("f1", 0.12, person_id="p1")]

        results = await pgvector_executor.search_faces(
            FaceEmbeddingSearch(user_ids=["u1"], embedding=EMBEDDING, max_distance=0.6)
        )

        assert len(results) == 1
        assert results[0].distance == pytest.approx(0.12)
        assert results[0].face.person_id == "p1"
        assert results[0].face.bounding_box_x2 == 110

    @pytest.mark.asyncio
    @pytest.mark.parametrize("num_results", [1, 10, 64, 100])
    async def test_result_bounds(self, mock_db, pgvecto_rs_policy, metrics, num_results):
        distances = [i / 200 for i in range(200)]
        conn = FakeFaceConnection(distances)

        @asynccontextmanager
        async def transaction():
            yield conn

        mock_db.transaction.side_effect = transaction
        executor = VectorSearchExecutor(mock_db, pgvecto_rs_policy, metrics=metrics)

        results = await executor.search_faces(
            FaceEmbeddingSearch(
                user_ids=["u1"], embedding=EMBEDDING, max_distance=0.4, num_results=num_results
            )
        )

        assert len(results) <= max(num_results, 64)
        assert all(r.distance <= 0.4 for r in results)
        assert [r.distance for r in results] == sorted(r.distance for r in results)
