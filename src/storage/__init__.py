"""Storage layer: connection pool, advisory locks, migrations and query helpers."""

from src.storage.chunking import chunked, chunked_list, chunked_set
from src.storage.database import Database
from src.storage.locks import AdvisoryLockCoordinator, DatabaseLock
from src.storage.migrations import Migration, build_migrations, run_migrations
from src.storage.pagination import (
    PaginatedResult,
    PaginationMode,
    PaginationOptions,
    paginate,
    pagination_helper,
)

__all__ = [
    "Database",
    "AdvisoryLockCoordinator",
    "DatabaseLock",
    "Migration",
    "build_migrations",
    "run_migrations",
    "PaginatedResult",
    "PaginationMode",
    "PaginationOptions",
    "paginate",
    "pagination_helper",
    "chunked",
    "chunked_list",
    "chunked_set",
]
