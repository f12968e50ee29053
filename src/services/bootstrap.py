"""
Database bootstrap service.

Brings a PostgreSQL database to a state the search layer can use:

1. Version gate (PostgreSQL, extension presence, update, compatibility)
2. Schema migrations
3. CLIP embedding width matches the configured model
4. Embedding columns belong to the configured extension (swap if not)
5. ANN indexes exist

Each step is idempotent, so running the bootstrap on every start is safe.
"""

from dataclasses import dataclass

import structlog

from src.config.settings import Settings, get_settings
from src.extensions.config import ExtensionConfig
from src.extensions.gate import ExtensionVersionGate
from src.extensions.lifecycle import ExtensionLifecycleManager
from src.extensions.repository import DatabaseRepository
from src.extensions.versions import ExtensionKind
from src.observability.metrics import MetricsCollector, get_metrics
from src.search.clip_models import get_clip_model_info
from src.search.config import SearchConfig
from src.search.executor import VectorSearchExecutor
from src.search.repository import SearchRepository
from src.storage.database import Database
from src.storage.locks import AdvisoryLockCoordinator
from src.storage.migrations import build_migrations, run_migrations

logger = structlog.get_logger(__name__)


@dataclass
class SearchServices:
    """Components sharing one connection pool and one lock coordinator."""

    database: Database
    locks: AdvisoryLockCoordinator
    repository: DatabaseRepository
    lifecycle: ExtensionLifecycleManager
    gate: ExtensionVersionGate
    executor: VectorSearchExecutor
    search: SearchRepository


def build_services(
    database: Database,
    settings: Settings | None = None,
    extension_config: ExtensionConfig | None = None,
    search_config: SearchConfig | None = None,
    metrics: MetricsCollector | None = None,
) -> SearchServices:
    """Wire the search components around an existing Database."""
    settings = settings or get_settings()
    extension_config = extension_config or ExtensionConfig()
    metrics = metrics or get_metrics()

    kind = ExtensionKind(settings.vector_extension)
    policy = extension_config.policy_for(kind)

    locks = AdvisoryLockCoordinator(database, metrics=metrics)
    repository = DatabaseRepository(
        database,
        ef_construction=extension_config.index_ef_construction,
        m=extension_config.index_m,
    )
    lifecycle = ExtensionLifecycleManager(
        database,
        repository,
        locks,
        extension_config,
        kind,
        clip_model_name=settings.clip_model_name,
        metrics=metrics,
    )
    gate = ExtensionVersionGate(
        repository,
        lifecycle,
        policy,
        min_postgres_version=extension_config.min_postgres_version,
    )
    executor = VectorSearchExecutor(database, policy, config=search_config, metrics=metrics)
    search = SearchRepository(
        database,
        executor,
        lifecycle,
        locks,
        config=search_config,
    )

    return SearchServices(
        database=database,
        locks=locks,
        repository=repository,
        lifecycle=lifecycle,
        gate=gate,
        executor=executor,
        search=search,
    )


async def initialize_database(
    services: SearchServices,
    settings: Settings | None = None,
    extension_config: ExtensionConfig | None = None,
) -> list[str]:
    """
    Run the full startup sequence.

    Returns:
        Names of migrations applied by this call

    Raises:
        DatabaseStartupError: If PostgreSQL or the extension is unusable
    """
    settings = settings or get_settings()
    extension_config = extension_config or ExtensionConfig()
    policy = services.lifecycle.policy

    await services.gate.init()

    migrations = build_migrations(
        policy,
        clip_dim_size=get_clip_model_info(settings.clip_model_name).dim_size,
        face_dim_size=extension_config.default_face_dim_size,
    )
    applied = await run_migrations(services.database, migrations)

    await services.search.init(settings.clip_model_name)

    current = await services.repository.get_column_extension("asset_faces", "embedding")
    if current is not None and current is not policy.kind:
        logger.warning(
            "Embedding columns belong to another vector extension",
            current=current.value,
            configured=policy.kind.value,
        )
        await services.lifecycle.extension_swap(current, policy.kind)

    await services.lifecycle.ensure_indexes()

    logger.info(
        "Database initialized",
        extension=policy.display_name,
        migrations_applied=len(applied),
    )
    return applied
