"""
Vector extension management.

Covers the two supported PostgreSQL vector backends (pgvector and
pgvecto.rs): startup version gating, extension creation and update,
CLIP embedding dimension changes and swapping one backend for the other.

Main components:
- ExtensionPolicy: Per-backend version window, types and session settings
- ExtensionVersionGate: Startup checks for PostgreSQL and the extension
- ExtensionLifecycleManager: Dimension changes, backend swaps and indexes
- DatabaseRepository: Catalog queries and schema DDL
"""

from src.extensions.versions import (
    ExtensionKind,
    ExtensionPolicy,
    Version,
    VersionType,
    default_policies,
)
from src.extensions.config import ExtensionConfig
from src.extensions.errors import (
    DatabaseStartupError,
    ExtensionNotInstalledError,
    IncompatibleExtensionError,
    UnsupportedPostgresError,
)
from src.extensions.repository import DatabaseRepository
from src.extensions.lifecycle import ExtensionLifecycleManager
from src.extensions.gate import ExtensionVersionGate

__all__ = [
    "ExtensionKind",
    "ExtensionPolicy",
    "Version",
    "VersionType",
    "default_policies",
    "ExtensionConfig",
    "DatabaseStartupError",
    "ExtensionNotInstalledError",
    "IncompatibleExtensionError",
    "UnsupportedPostgresError",
    "DatabaseRepository",
    "ExtensionLifecycleManager",
    "ExtensionVersionGate",
]
