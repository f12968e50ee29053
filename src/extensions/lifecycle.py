"""
Extension lifecycle: creation, CLIP dimension changes and backend swaps.

Every schema-altering operation runs in one transaction under its
advisory lock, so it either fully applies or leaves tables and indexes
exactly as they were.
"""

import structlog

from src.extensions.config import ExtensionConfig
from src.extensions.repository import MAX_DIM_SIZE, DatabaseRepository, is_valid_integer
from src.extensions.versions import ExtensionKind, ExtensionPolicy
from src.observability.metrics import MetricsCollector, get_metrics
from src.search.clip_models import DEFAULT_CLIP_MODEL, get_clip_model_info
from src.storage.database import Database
from src.storage.locks import AdvisoryLockCoordinator, DatabaseLock

logger = structlog.get_logger(__name__)

CLIP_MODEL_CONFIG_KEY = "machineLearning.clip.modelName"

# Intermediate column type while moving between extensions
_NEUTRAL_EMBEDDING_TYPE = "real[]"


class ExtensionLifecycleManager:
    """
    Idempotent extension creation plus the two structural migrations.

    Args:
        database: Connected Database instance
        repository: Catalog/DDL repository
        locks: Process-wide lock coordinator
        config: Extension configuration (policies, index parameters)
        kind: Extension currently configured for this deployment
        clip_model_name: Fallback CLIP model when system_config has none
    """

    def __init__(
        self,
        database: Database,
        repository: DatabaseRepository,
        locks: AdvisoryLockCoordinator,
        config: ExtensionConfig,
        kind: ExtensionKind,
        clip_model_name: str = DEFAULT_CLIP_MODEL,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self._db = database
        self._repo = repository
        self._locks = locks
        self._config = config
        self._kind = kind
        self._clip_model_name = clip_model_name
        self._metrics = metrics or get_metrics()

    @property
    def policy(self) -> ExtensionPolicy:
        return self._config.policy_for(self._kind)

    async def create_extension(self, kind: ExtensionKind) -> None:
        """
        CREATE EXTENSION IF NOT EXISTS, with an operator diagnostic on failure.

        The original error is re-raised after the diagnostic is logged.
        """
        policy = self._config.policy_for(kind)
        alternative = self._config.policy_for(kind.alternative)
        try:
            await self._repo.create_extension(kind)
        except Exception:
            logger.critical(
                "extension_create_failed",
                extension=policy.display_name,
                remediation=(
                    f"If the PostgreSQL instance does not ship {policy.display_name}, switch "
                    f"to an image that does. If it is installed but cannot be activated, run "
                    f"'CREATE EXTENSION IF NOT EXISTS {kind.value}' manually as a superuser."
                ),
                alternative=(
                    f"Alternatively, set VECTOR_EXTENSION={kind.alternative.value} "
                    f"to use {alternative.display_name} instead."
                ),
            )
            raise

    async def change_embedding_dimension(self, dim_size: int) -> bool:
        """
        Rebuild smart_search for embeddings of width ``dim_size``.

        Stored CLIP embeddings are discarded; they cannot be resized.

        Returns:
            True if the table was rebuilt, False if it already had that width

        Raises:
            ValueError: If ``dim_size`` is not an integer in [1, 65536]
        """
        if not is_valid_integer(dim_size, 1, MAX_DIM_SIZE):
            raise ValueError(f"Invalid CLIP dimension size: {dim_size}")

        current = await self._repo.get_clip_dim_size()
        if current == dim_size:
            self._metrics.record_schema_operation("dimension_change", "skipped")
            return False

        async def migrate() -> bool:
            # Another process may have finished the same change while we waited
            previous = await self._repo.get_clip_dim_size()
            if previous == dim_size:
                return False

            logger.info("clip_dimension_change_started", old=previous, new=dim_size)
            policy = self.policy
            async with self._db.transaction() as conn:
                await self._repo.apply_session_setup(conn, policy)
                await self._repo.recreate_smart_search(conn, policy, dim_size)
                await self._repo.create_clip_index(conn, policy)
            logger.info("clip_dimension_changed", old=previous, new=dim_size)
            return True

        try:
            changed = await self._locks.with_lock(DatabaseLock.CLIP_DIM_SIZE, migrate)
        except Exception:
            self._metrics.record_schema_operation("dimension_change", "error")
            raise

        self._metrics.record_schema_operation(
            "dimension_change", "applied" if changed else "skipped"
        )
        return changed

    async def extension_swap(self, from_kind: ExtensionKind, to_kind: ExtensionKind) -> None:
        """
        Move both embedding columns and their indexes to another extension.

        Down (drop indexes, cast to real[]) and up (cast to the target
        vector type, rebuild indexes) share one transaction.
        """
        if from_kind is to_kind:
            logger.info("extension_swap_skipped", extension=to_kind.value)
            return

        source = self._config.policy_for(from_kind)
        target = self._config.policy_for(to_kind)

        async def swap() -> None:
            # Dimensions are read while both locks are held
            face_dim = await self._repo.get_face_dim_size(self._config.default_face_dim_size)
            clip_dim = await self._clip_dim_size_from_model()
            logger.info(
                "extension_swap_started",
                source=source.display_name,
                target=target.display_name,
                face_dim=face_dim,
                clip_dim=clip_dim,
            )
            async with self._db.transaction() as conn:
                await self._repo.apply_session_setup(conn, source)
                await self._repo.drop_vector_indexes(conn)
                await self._repo.alter_embedding_columns(
                    conn, _NEUTRAL_EMBEDDING_TYPE, _NEUTRAL_EMBEDDING_TYPE
                )

                await self._repo.apply_session_setup(conn, target)
                await self._repo.alter_embedding_columns(
                    conn, target.vector_type(face_dim), target.vector_type(clip_dim)
                )
                await self._repo.create_face_index(conn, target)
                await self._repo.create_clip_index(conn, target)
            logger.info("extension_swapped", source=source.display_name, target=target.display_name)

        async def swap_with_dimension_lock() -> None:
            await self._locks.with_lock(DatabaseLock.CLIP_DIM_SIZE, swap)

        try:
            await self._locks.with_lock(DatabaseLock.VECTOR_EXTENSION, swap_with_dimension_lock)
        except Exception:
            self._metrics.record_schema_operation("extension_swap", "error")
            raise
        self._metrics.record_schema_operation("extension_swap", "applied")

    async def ensure_indexes(self) -> None:
        """Create both ANN indexes if they are missing."""
        policy = self.policy
        async with self._db.transaction() as conn:
            await self._repo.create_face_index(conn, policy)
            await self._repo.create_clip_index(conn, policy)

    async def _clip_dim_size_from_model(self) -> int:
        model_name = await self._repo.get_system_config_value(CLIP_MODEL_CONFIG_KEY)
        return get_clip_model_info(model_name or self._clip_model_name).dim_size
