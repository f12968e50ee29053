"""
Search repository: the contract exposed to the application layer.

Combines the structured query builder, the vector search executor and
lookahead pagination. Also owns smart-info/embedding writes and the
CLIP dimension check performed when the configured model changes.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from src.search.clip_models import get_clip_model_info
from src.search.config import SearchConfig
from src.search.executor import VectorSearchExecutor, row_to_asset
from src.search.query_builder import (
    ASSET_ALIAS,
    ASSET_COLUMNS,
    HybridSearchQueryBuilder,
    as_vector,
    restrict_to_searchable,
)
from src.search.schemas import (
    Asset,
    Embedding,
    FaceEmbeddingSearch,
    FaceSearchResult,
    SearchFilter,
    SearchPaginationOptions,
    SmartInfo,
    SmartSearchOptions,
)
from src.storage.chunking import chunked_list, chunked_set
from src.storage.database import Database
from src.storage.locks import AdvisoryLockCoordinator, DatabaseLock
from src.storage.pagination import (
    PaginatedResult,
    PaginationOptions,
    paginated_query,
    pagination_clause,
    pagination_helper,
)

if TYPE_CHECKING:
    from src.extensions.lifecycle import ExtensionLifecycleManager

logger = logging.getLogger(__name__)

_UPSERT_SMART_INFO_SQL = """
INSERT INTO smart_info (asset_id, tags, objects)
VALUES ($1, $2, $3)
ON CONFLICT (asset_id) DO UPDATE SET
    tags = COALESCE(EXCLUDED.tags, smart_info.tags),
    objects = COALESCE(EXCLUDED.objects, smart_info.objects)
"""

_UPSERT_EMBEDDING_SQL = """
INSERT INTO smart_search (asset_id, embedding)
VALUES ($1, $2)
ON CONFLICT (asset_id) DO UPDATE SET
    embedding = EXCLUDED.embedding
"""


class SearchRepository:
    """
    Asset, CLIP and face search plus smart-info writes.

    Usage:
        repo = SearchRepository(db, executor, lifecycle, locks)
        await repo.init("ViT-B-32__openai")
        page = await repo.search_assets(SearchPaginationOptions(page=1, size=100), search_filter)
    """

    def __init__(
        self,
        database: Database,
        executor: VectorSearchExecutor,
        lifecycle: ExtensionLifecycleManager,
        locks: AdvisoryLockCoordinator,
        builder: HybridSearchQueryBuilder | None = None,
        config: SearchConfig | None = None,
    ) -> None:
        self._db = database
        self._executor = executor
        self._lifecycle = lifecycle
        self._locks = locks
        self._builder = builder or HybridSearchQueryBuilder()
        self._config = config or SearchConfig()

        chunk_size = self._config.parameter_chunk_size
        self.get_by_ids = chunked_list(self._get_by_ids, chunk_size)
        self.get_embedded_asset_ids = chunked_set(self._get_embedded_asset_ids, chunk_size)

    async def init(self, model_name: str) -> None:
        """Make smart_search match the embedding width of ``model_name``."""
        dim_size = get_clip_model_info(model_name).dim_size
        if await self._lifecycle.change_embedding_dimension(dim_size):
            logger.info(f"CLIP embeddings reset for model {model_name} ({dim_size} dims)")

    def _page(self, pagination: SearchPaginationOptions) -> PaginationOptions:
        if pagination.size > self._config.max_page_size:
            raise ValueError(
                f"Page size {pagination.size} exceeds maximum {self._config.max_page_size}"
            )
        return PaginationOptions(take=pagination.take, skip=pagination.skip)

    async def search_assets(
        self,
        pagination: SearchPaginationOptions,
        search_filter: SearchFilter,
    ) -> PaginatedResult[Asset]:
        """Structured search, newest first unless the filter orders otherwise."""
        page = self._page(pagination)
        plan = self._builder.build(search_filter)
        sql = plan.to_sql(self._builder.order_by(search_filter))

        result = await paginated_query(self._db, sql, plan.params, page)
        return PaginatedResult(
            items=[row_to_asset(row) for row in result.items],
            has_next_page=result.has_next_page,
        )

    async def search_clip(
        self,
        pagination: SearchPaginationOptions,
        options: SmartSearchOptions,
    ) -> PaginatedResult[Asset]:
        """
        CLIP similarity search combined with structured filters.

        Waits for an in-process CLIP dimension change to finish first, so a
        search never races the smart_search rebuild.
        """
        page = self._page(pagination)
        if self._locks.is_busy(DatabaseLock.CLIP_DIM_SIZE):
            logger.info("Waiting for CLIP dimension change before searching")
            await self._locks.wait(DatabaseLock.CLIP_DIM_SIZE)

        plan = self._builder.build(options.filter)
        plan.join(f"INNER JOIN smart_search s ON s.asset_id = {ASSET_ALIAS}.id")
        embedding = plan.add_param(as_vector(options.embedding))
        plan.where(f"{ASSET_ALIAS}.owner_id = ANY({plan.add_param(list(options.user_ids))}::uuid[])")
        status = options.filter.status
        restrict_to_searchable(
            plan,
            with_archived=bool(status and (status.with_archived or status.is_archived is not None)),
        )

        sql = plan.to_sql(f"s.embedding <=> {embedding}, {ASSET_ALIAS}.id")
        clause, page_params = pagination_clause(page, len(plan.params) + 1)
        rows = await self._executor.fetch_ranked(
            "clip",
            f"{sql}\n{clause}",
            [*plan.params, *page_params],
            cap=page.skip + page.take + 1,
        )

        result = pagination_helper(rows, page.take)
        return PaginatedResult(
            items=[row_to_asset(row) for row in result.items],
            has_next_page=result.has_next_page,
        )

    async def search_faces(self, search: FaceEmbeddingSearch) -> list[FaceSearchResult]:
        return await self._executor.search_faces(search)

    async def upsert(self, smart_info: SmartInfo, embedding: Embedding | None = None) -> None:
        """
        Upsert a smart-info record and, when given, its CLIP embedding.

        Tags or objects left as None keep their stored values.
        """
        async with self._db.transaction() as conn:
            await conn.execute(
                _UPSERT_SMART_INFO_SQL,
                smart_info.asset_id,
                smart_info.tags,
                smart_info.objects,
            )
            if not smart_info.asset_id or not embedding:
                return
            await conn.execute(_UPSERT_EMBEDDING_SQL, smart_info.asset_id, as_vector(embedding))

    async def _get_by_ids(self, ids: list[str]) -> list[Asset]:
        """Assets by id, in the order the ids were given."""
        if not ids:
            return []
        columns = ", ".join(f"{ASSET_ALIAS}.{col}" for col in ASSET_COLUMNS)
        rows = await self._db.fetch(
            f"""
            SELECT {columns}
            FROM assets {ASSET_ALIAS}
            JOIN unnest($1::uuid[]) WITH ORDINALITY AS req(id, ord) ON req.id = {ASSET_ALIAS}.id
            ORDER BY req.ord
            """,
            list(ids),
        )
        return [row_to_asset(row) for row in rows]

    async def _get_embedded_asset_ids(self, ids: Any) -> set[str]:
        """Subset of ``ids`` that already have a CLIP embedding."""
        if not ids:
            return set()
        rows = await self._db.fetch(
            "SELECT asset_id FROM smart_search WHERE asset_id = ANY($1::uuid[])",
            list(ids),
        )
        return {str(row["asset_id"]) for row in rows}
