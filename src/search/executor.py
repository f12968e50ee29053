"""
Approximate nearest-neighbour searches over CLIP and face embeddings.

Each search runs in its own transaction. Extension-specific tuning is
applied with SET LOCAL at the start of that transaction, so it ends with
the transaction and never reaches the next user of the pooled connection.

Distance is whatever the extension's ``<=>`` operator returns (cosine
distance for both supported backends); the only contract relied on here
is that ascending distance means closer.
"""

import json
import time
from collections.abc import Sequence
from typing import Any

import asyncpg
import structlog

from src.extensions.repository import is_valid_integer
from src.extensions.versions import ExtensionPolicy
from src.observability.metrics import MetricsCollector, get_metrics
from src.search.config import SearchConfig
from src.search.query_builder import (
    ASSET_ALIAS,
    FACE_COLUMNS,
    QueryPlan,
    as_vector,
    restrict_to_searchable,
)
from src.search.schemas import (
    Asset,
    AssetFace,
    EmbeddingSearch,
    FaceEmbeddingSearch,
    FaceSearchResult,
)
from src.storage.database import Database

logger = structlog.get_logger(__name__)

_RELATION_COLUMNS = ("exif_info", "faces", "smart_info", "stack")


def validate_num_results(num_results: int | None) -> None:
    """Reject a result cap that is not a positive integer."""
    if num_results is not None and not is_valid_integer(num_results, min_value=1):
        raise ValueError(f"Invalid value for 'num_results': {num_results}")


def _id(value: Any) -> str | None:
    return None if value is None else str(value)


def _json(value: Any) -> Any:
    if isinstance(value, str):
        return json.loads(value)
    return value


def row_to_asset(row: Any) -> Asset:
    """Convert an asset record (plus optional relation columns) to an Asset."""
    relations = {
        name: _json(row[name]) for name in _RELATION_COLUMNS if name in row.keys()
    }
    return Asset(
        id=str(row["id"]),
        owner_id=str(row["owner_id"]),
        type=row["type"],
        original_path=row["original_path"],
        original_file_name=row["original_file_name"],
        file_created_at=row["file_created_at"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        deleted_at=row["deleted_at"],
        library_id=_id(row["library_id"]),
        device_asset_id=row["device_asset_id"],
        device_id=row["device_id"],
        resize_path=row["resize_path"],
        webp_path=row["webp_path"],
        encoded_video_path=row["encoded_video_path"],
        live_photo_video_id=_id(row["live_photo_video_id"]),
        stack_id=_id(row["stack_id"]),
        is_favorite=row["is_favorite"],
        is_archived=row["is_archived"],
        is_external=row["is_external"],
        is_offline=row["is_offline"],
        is_read_only=row["is_read_only"],
        is_visible=row["is_visible"],
        **relations,
    )


def row_to_face(row: Any) -> AssetFace:
    return AssetFace(
        id=str(row["id"]),
        asset_id=str(row["asset_id"]),
        person_id=_id(row["person_id"]),
        image_width=row["image_width"],
        image_height=row["image_height"],
        bounding_box_x1=row["bounding_box_x1"],
        bounding_box_y1=row["bounding_box_y1"],
        bounding_box_x2=row["bounding_box_x2"],
        bounding_box_y2=row["bounding_box_y2"],
    )


class VectorSearchExecutor:
    """
    Runs ranked vector queries with per-extension session tuning.

    Args:
        database: Connected Database instance
        policy: Policy of the active vector extension
        config: Search configuration
    """

    def __init__(
        self,
        database: Database,
        policy: ExtensionPolicy,
        config: SearchConfig | None = None,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self._db = database
        self._policy = policy
        self._config = config or SearchConfig()
        self._metrics = metrics or get_metrics()

    def session_settings(self, cap: int | None = None) -> list[str]:
        """
        SET LOCAL statements for one search.

        Breadth follows the cap on backends that prefilter, and never drops
        below the unbounded default on backends that post-filter. Either way
        it is clamped to the range the extension's setting accepts.
        """
        if cap is not None and self._policy.bounded_ef_search:
            breadth = cap
        else:
            breadth = max(cap or 0, self._config.unbounded_ef_search)
        breadth = max(1, min(breadth, self._policy.max_ef_search))
        return [*self._policy.search_settings, self._policy.ef_search_statement(breadth)]

    async def fetch_ranked(
        self,
        kind: str,
        sql: str,
        params: Sequence[Any],
        cap: int | None = None,
    ) -> list[asyncpg.Record]:
        """
        Run a ranked query in its own tuned transaction.

        Args:
            kind: Metrics label (clip, face)
            sql: Ordered SELECT
            params: Positional parameters for ``sql``
            cap: Number of rows the caller needs, sizes the search breadth
        """
        started = time.monotonic()
        try:
            async with self._db.transaction() as conn:
                for statement in self.session_settings(cap):
                    await conn.execute(statement)
                rows = await conn.fetch(sql, *params)
        except Exception:
            self._metrics.record_search(kind, time.monotonic() - started, success=False)
            raise

        latency = time.monotonic() - started
        self._metrics.record_search(kind, latency)
        logger.debug("vector_search_completed", kind=kind, rows=len(rows), latency=round(latency, 4))
        return rows

    async def search_clip(self, search: EmbeddingSearch) -> list[Asset]:
        """
        Assets of ``search.user_ids`` closest to the query embedding.

        Only visible assets taken in the past are considered; archived
        assets are skipped unless ``with_archived`` is set.

        Raises:
            ValueError: If num_results is given and is not a positive integer
        """
        validate_num_results(search.num_results)

        plan = QueryPlan()
        plan.join(f"INNER JOIN smart_search s ON s.asset_id = {ASSET_ALIAS}.id")
        plan.join(f"LEFT JOIN exif e ON e.asset_id = {ASSET_ALIAS}.id")
        plan.select("to_jsonb(e) AS exif_info")
        embedding = plan.add_param(as_vector(search.embedding))
        plan.where(f"{ASSET_ALIAS}.owner_id = ANY({plan.add_param(list(search.user_ids))}::uuid[])")
        restrict_to_searchable(plan, with_archived=search.with_archived)

        sql = plan.to_sql(f"s.embedding <=> {embedding}")
        if search.num_results is not None:
            sql += f"\nLIMIT {plan.add_param(search.num_results)}"

        rows = await self.fetch_ranked("clip", sql, plan.params, search.num_results)
        return [row_to_asset(row) for row in rows]

    async def search_faces(self, search: FaceEmbeddingSearch) -> list[FaceSearchResult]:
        """
        Faces within ``max_distance`` of the query embedding.

        Candidates are ranked first, limited to max(num_results, floor),
        and only then filtered by distance.

        Raises:
            ValueError: If num_results is given and is not a positive integer
        """
        validate_num_results(search.num_results)

        params: list[Any] = [as_vector(search.embedding), list(search.user_ids)]
        conditions = ["a.owner_id = ANY($2::uuid[])"]
        if search.has_person:
            conditions.append("f.person_id IS NOT NULL")

        limit_clause = ""
        candidates: int | None = None
        if search.num_results is not None:
            candidates = max(search.num_results, self._config.face_min_candidates)
            params.append(candidates)
            limit_clause = f"LIMIT ${len(params)}"

        params.append(search.max_distance)
        columns = ", ".join(f"f.{col}" for col in FACE_COLUMNS)
        sql = f"""
            WITH cte AS (
                SELECT f.embedding <=> $1 AS distance, {columns}
                FROM asset_faces f
                INNER JOIN assets a ON a.id = f.asset_id
                WHERE {" AND ".join(conditions)}
                ORDER BY f.embedding <=> $1
                {limit_clause}
            )
            SELECT res.*
            FROM cte res
            WHERE res.distance <= ${len(params)}
            ORDER BY res.distance
        """

        rows = await self.fetch_ranked("face", sql, params, candidates)
        return [
            FaceSearchResult(face=row_to_face(row), distance=float(row["distance"]))
            for row in rows
        ]
