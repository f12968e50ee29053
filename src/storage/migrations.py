"""
Ordered schema migrations.

Each migration is a named, idempotent block of DDL. Applied names are
recorded in schema_migrations and pending ones are applied in order inside
a single transaction, so a failed step leaves the schema untouched.

Embedding columns are typed from the active extension policy. ANN indexes
are not created here; the lifecycle manager owns them.
"""

from dataclasses import dataclass

import structlog

from src.extensions.versions import ExtensionPolicy
from src.storage.database import Database

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Migration:
    name: str
    sql: str


_CREATE_MIGRATIONS_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS schema_migrations (
    name       TEXT PRIMARY KEY,
    applied_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
)
"""

_CORE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS system_config (
    key   TEXT PRIMARY KEY,
    value TEXT
);

CREATE TABLE IF NOT EXISTS person (
    id             UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    owner_id       UUID NOT NULL,
    name           TEXT NOT NULL DEFAULT '',
    thumbnail_path TEXT NOT NULL DEFAULT '',
    is_hidden      BOOLEAN NOT NULL DEFAULT FALSE,
    created_at     TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at     TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS asset_stack (
    id               UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    primary_asset_id UUID NOT NULL
);

CREATE TABLE IF NOT EXISTS assets (
    id                   UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    owner_id             UUID NOT NULL,
    library_id           UUID,
    device_asset_id      TEXT NOT NULL,
    device_id            TEXT NOT NULL,
    checksum             BYTEA NOT NULL,
    type                 TEXT NOT NULL,
    original_path        TEXT NOT NULL,
    original_file_name   TEXT NOT NULL,
    resize_path          TEXT,
    webp_path            TEXT,
    encoded_video_path   TEXT,
    live_photo_video_id  UUID,
    stack_id             UUID REFERENCES asset_stack(id) ON DELETE SET NULL,
    is_favorite          BOOLEAN NOT NULL DEFAULT FALSE,
    is_archived          BOOLEAN NOT NULL DEFAULT FALSE,
    is_external          BOOLEAN NOT NULL DEFAULT FALSE,
    is_offline           BOOLEAN NOT NULL DEFAULT FALSE,
    is_read_only         BOOLEAN NOT NULL DEFAULT FALSE,
    is_visible           BOOLEAN NOT NULL DEFAULT TRUE,
    file_created_at      TIMESTAMPTZ NOT NULL,
    created_at           TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at           TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    deleted_at           TIMESTAMPTZ
);

CREATE TABLE IF NOT EXISTS exif (
    asset_id   UUID PRIMARY KEY REFERENCES assets(id) ON DELETE CASCADE,
    make       TEXT,
    model      TEXT,
    lens_model TEXT,
    city       TEXT,
    state      TEXT,
    country    TEXT
);

CREATE TABLE IF NOT EXISTS smart_info (
    asset_id UUID PRIMARY KEY REFERENCES assets(id) ON DELETE CASCADE,
    tags     TEXT[],
    objects  TEXT[]
);
"""

_VECTOR_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS smart_search (
    asset_id  UUID PRIMARY KEY REFERENCES assets(id) ON DELETE CASCADE,
    embedding {clip_type} NOT NULL
);

CREATE TABLE IF NOT EXISTS asset_faces (
    id                UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    asset_id          UUID NOT NULL REFERENCES assets(id) ON DELETE CASCADE,
    person_id         UUID REFERENCES person(id) ON DELETE SET NULL,
    embedding         {face_type},
    image_width       INTEGER NOT NULL DEFAULT 0,
    image_height      INTEGER NOT NULL DEFAULT 0,
    bounding_box_x1   INTEGER NOT NULL DEFAULT 0,
    bounding_box_y1   INTEGER NOT NULL DEFAULT 0,
    bounding_box_x2   INTEGER NOT NULL DEFAULT 0,
    bounding_box_y2   INTEGER NOT NULL DEFAULT 0
);
"""

_SEARCH_INDEXES_SQL = """
CREATE INDEX IF NOT EXISTS idx_assets_owner_file_created
    ON assets(owner_id, file_created_at DESC);
CREATE INDEX IF NOT EXISTS idx_assets_deleted_at
    ON assets(deleted_at);
CREATE INDEX IF NOT EXISTS idx_assets_checksum
    ON assets(checksum);
CREATE INDEX IF NOT EXISTS idx_assets_live_photo
    ON assets(live_photo_video_id);
CREATE INDEX IF NOT EXISTS idx_exif_city
    ON exif(city);
CREATE INDEX IF NOT EXISTS idx_asset_faces_asset
    ON asset_faces(asset_id);
CREATE INDEX IF NOT EXISTS idx_asset_faces_person
    ON asset_faces(person_id);
"""


def build_migrations(
    policy: ExtensionPolicy,
    clip_dim_size: int,
    face_dim_size: int,
) -> list[Migration]:
    """Migrations in apply order, with embedding columns typed for ``policy``."""
    return [
        Migration("001_core_tables", _CORE_TABLES_SQL),
        Migration(
            "002_vector_tables",
            _VECTOR_TABLES_SQL.format(
                clip_type=policy.vector_type(clip_dim_size),
                face_type=policy.vector_type(face_dim_size),
            ),
        ),
        Migration("003_search_indexes", _SEARCH_INDEXES_SQL),
    ]


async def run_migrations(database: Database, migrations: list[Migration]) -> list[str]:
    """
    Apply pending migrations in one transaction.

    Returns:
        Names of the migrations applied by this call
    """
    applied: list[str] = []
    async with database.transaction() as conn:
        await conn.execute(_CREATE_MIGRATIONS_TABLE_SQL)
        rows = await conn.fetch("SELECT name FROM schema_migrations")
        done = {row["name"] for row in rows}

        for migration in migrations:
            if migration.name in done:
                continue
            await conn.execute(migration.sql)
            await conn.execute(
                "INSERT INTO schema_migrations (name) VALUES ($1)", migration.name
            )
            applied.append(migration.name)
            logger.info("migration_applied", migration=migration.name)

    if not applied:
        logger.debug("migrations_up_to_date", total=len(migrations))
    return applied
