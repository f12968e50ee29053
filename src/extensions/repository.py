"""
Catalog queries and vector DDL.

All SQL that touches pg_catalog, extensions, embedding columns or ANN
indexes lives here. Extension-specific fragments come from ExtensionPolicy;
this module never branches on the extension kind itself.

DDL helpers take an explicit connection so callers can compose them in a
single transaction.
"""

import logging

import asyncpg

from src.extensions.versions import ExtensionKind, ExtensionPolicy, Version
from src.storage.database import Database

logger = logging.getLogger(__name__)

MAX_DIM_SIZE = 2**16

CLIP_INDEX = "clip_index"
FACE_INDEX = "face_index"

_CLIP_DIM_SIZE_SQL = """
    SELECT atttypmod AS dimsize
    FROM pg_attribute f
      JOIN pg_class c ON c.oid = f.attrelid
    WHERE c.relkind = 'r'::char
      AND f.attnum > 0
      AND c.relname = 'smart_search'
      AND f.attname = 'embedding'
"""

_FACE_DIM_SIZE_SQL = """
    SELECT CARDINALITY(embedding::real[]) AS dimsize
    FROM asset_faces
    WHERE embedding IS NOT NULL
    LIMIT 1
"""

# Extension owning the type of a column, via the dependency catalog
_COLUMN_EXTENSION_SQL = """
    SELECT e.extname
    FROM pg_attribute a
      JOIN pg_class c ON c.oid = a.attrelid
      JOIN pg_depend d ON d.objid = a.atttypid AND d.deptype = 'e'
      JOIN pg_extension e ON e.oid = d.refobjid
    WHERE c.relname = $1
      AND a.attname = $2
      AND a.attnum > 0
"""


def is_valid_integer(value: object, min_value: int | None = None, max_value: int | None = None) -> bool:
    """True for a real int (not bool) within the optional inclusive bounds."""
    if isinstance(value, bool) or not isinstance(value, int):
        return False
    if min_value is not None and value < min_value:
        return False
    if max_value is not None and value > max_value:
        return False
    return True


class DatabaseRepository:
    """Read the database catalog and issue vector DDL."""

    def __init__(self, database: Database, ef_construction: int = 300, m: int = 16) -> None:
        """
        Args:
            database: Connected Database instance
            ef_construction: HNSW build-time candidate list size
            m: HNSW graph degree
        """
        self._db = database
        self._ef_construction = ef_construction
        self._m = m

    # -- catalog ---------------------------------------------------------

    async def get_postgres_version(self) -> Version:
        value = await self._db.fetchval("SHOW server_version")
        return Version.from_string(value)

    async def get_extension_version(self, kind: ExtensionKind) -> Version | None:
        """Installed version of ``kind``, or None if it is not installed."""
        value = await self._db.fetchval(
            "SELECT extversion FROM pg_extension WHERE extname = $1", kind.value
        )
        return None if value is None else Version.from_string(value)

    async def get_available_extension_version(self, kind: ExtensionKind) -> Version | None:
        """Version CREATE/ALTER EXTENSION would install, if the server ships one."""
        value = await self._db.fetchval(
            "SELECT default_version FROM pg_available_extensions WHERE name = $1",
            kind.value,
        )
        return None if value is None else Version.from_string(value)

    async def get_clip_dim_size(self) -> int:
        """Width of smart_search.embedding, read from the column's type modifier."""
        dim_size = await self._db.fetchval(_CLIP_DIM_SIZE_SQL)
        if not is_valid_integer(dim_size, 1, MAX_DIM_SIZE):
            raise RuntimeError("Could not retrieve CLIP dimension size")
        return dim_size

    async def get_face_dim_size(self, default: int = 512) -> int:
        """Width of stored face embeddings, or ``default`` when there are none."""
        dim_size = await self._db.fetchval(_FACE_DIM_SIZE_SQL)
        return dim_size if dim_size is not None else default

    async def get_column_extension(self, table: str, column: str) -> ExtensionKind | None:
        """Which vector extension owns the type of ``table.column``, if any."""
        extname = await self._db.fetchval(_COLUMN_EXTENSION_SQL, table, column)
        if extname is None:
            return None
        try:
            return ExtensionKind(extname)
        except ValueError:
            return None

    async def get_system_config_value(self, key: str) -> str | None:
        try:
            return await self._db.fetchval(
                "SELECT value FROM system_config WHERE key = $1", key
            )
        except asyncpg.UndefinedTableError:
            return None

    # -- extensions ------------------------------------------------------

    async def create_extension(self, kind: ExtensionKind) -> None:
        await self._db.execute(f"CREATE EXTENSION IF NOT EXISTS {kind.value}")

    async def update_extension(self, kind: ExtensionKind) -> None:
        """Move the extension to the default version the server ships."""
        await self._db.execute(f"ALTER EXTENSION {kind.value} UPDATE")

    # -- DDL (caller supplies the transaction) ---------------------------

    async def apply_session_setup(self, conn: asyncpg.Connection, policy: ExtensionPolicy) -> None:
        for statement in policy.session_setup:
            await conn.execute(statement)

    async def create_clip_index(self, conn: asyncpg.Connection, policy: ExtensionPolicy) -> None:
        await self._create_index(conn, policy, CLIP_INDEX, "smart_search")

    async def create_face_index(self, conn: asyncpg.Connection, policy: ExtensionPolicy) -> None:
        await self._create_index(conn, policy, FACE_INDEX, "asset_faces")

    async def _create_index(
        self,
        conn: asyncpg.Connection,
        policy: ExtensionPolicy,
        name: str,
        table: str,
    ) -> None:
        await self.apply_session_setup(conn, policy)
        await conn.execute(
            f"""
            CREATE INDEX IF NOT EXISTS {name} ON {table}
            USING hnsw (embedding {policy.index_ops})
            WITH (ef_construction = {self._ef_construction}, m = {self._m})
            """
        )

    async def drop_vector_indexes(self, conn: asyncpg.Connection) -> None:
        await conn.execute(f"DROP INDEX IF EXISTS {FACE_INDEX}")
        await conn.execute(f"DROP INDEX IF EXISTS {CLIP_INDEX}")

    async def alter_embedding_columns(
        self,
        conn: asyncpg.Connection,
        face_type: str,
        clip_type: str,
    ) -> None:
        """Retype both embedding columns, casting existing rows in place."""
        await conn.execute(
            f"ALTER TABLE asset_faces ALTER COLUMN embedding TYPE {face_type} "
            f"USING embedding::{face_type}"
        )
        await conn.execute(
            f"ALTER TABLE smart_search ALTER COLUMN embedding TYPE {clip_type} "
            f"USING embedding::{clip_type}"
        )

    async def recreate_smart_search(
        self,
        conn: asyncpg.Connection,
        policy: ExtensionPolicy,
        dim_size: int,
    ) -> None:
        """Drop and recreate the CLIP embedding table at a new width."""
        await conn.execute("DROP TABLE IF EXISTS smart_search")
        await conn.execute(
            f"""
            CREATE TABLE smart_search (
                asset_id   UUID PRIMARY KEY REFERENCES assets(id) ON DELETE CASCADE,
                embedding  {policy.vector_type(dim_size)} NOT NULL
            )
            """
        )
        logger.info(f"Recreated smart_search with {policy.vector_type(dim_size)} embeddings")
