"""
Mutual exclusion for schema lifecycle operations.

Each lifecycle operation is guarded twice: an asyncio.Lock serializes
callers inside this process, and a PostgreSQL session-level advisory lock
keyed by the same number serializes processes sharing the database.

The coordinator is created once at startup and handed to every component
that needs it.

Usage:
    locks = AdvisoryLockCoordinator(database)
    await locks.with_lock(DatabaseLock.CLIP_DIM_SIZE, migrate)
"""

import asyncio
import enum
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog

from src.observability.metrics import MetricsCollector, get_metrics
from src.storage.database import Database

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class DatabaseLock(enum.IntEnum):
    """
    Advisory lock registry.

    Values are the keys passed to pg_advisory_lock and are shared with
    every process using the database. Never renumber or reuse a value.
    """

    GEODATA_IMPORT = 100
    STORAGE_TEMPLATE_MIGRATION = 420
    CLIP_DIM_SIZE = 512
    VECTOR_EXTENSION = 600


class AdvisoryLockCoordinator:
    """
    Process-local plus database-level lock around lifecycle operations.

    Lock ordering: an operation holding VECTOR_EXTENSION may take
    CLIP_DIM_SIZE, never the reverse.
    """

    def __init__(
        self,
        database: Database,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self._db = database
        self._metrics = metrics or get_metrics()
        self._locks: dict[DatabaseLock, asyncio.Lock] = {}

    def _local_lock(self, lock: DatabaseLock) -> asyncio.Lock:
        local = self._locks.get(lock)
        if local is None:
            local = self._locks[lock] = asyncio.Lock()
        return local

    async def with_lock(
        self,
        lock: DatabaseLock,
        callback: Callable[[], Awaitable[T]],
    ) -> T:
        """
        Run ``callback`` while holding ``lock`` in this process and in the database.

        Both locks are released on every exit path. The advisory lock is
        session scoped, so it is held on a dedicated pooled connection for
        the duration of the callback.

        Args:
            lock: Registry entry identifying the operation kind
            callback: Zero-argument coroutine function to run

        Returns:
            Whatever ``callback`` returns
        """
        started = time.monotonic()
        async with self._local_lock(lock):
            async with self._db.acquire() as conn:
                await conn.execute("SELECT pg_advisory_lock($1)", int(lock))
                self._metrics.record_lock_wait(lock.name, time.monotonic() - started)
                self._metrics.set_lock_held(lock.name, True)
                logger.debug("advisory_lock_acquired", lock=lock.name, key=int(lock))
                try:
                    return await callback()
                finally:
                    self._metrics.set_lock_held(lock.name, False)
                    await self._release(conn, lock)

    async def _release(self, conn, lock: DatabaseLock) -> None:
        if conn.is_closed():
            # The server drops session-level advisory locks with the session
            logger.warning("advisory_lock_connection_lost", lock=lock.name)
            return
        await conn.execute("SELECT pg_advisory_unlock($1)", int(lock))
        logger.debug("advisory_lock_released", lock=lock.name, key=int(lock))

    def is_busy(self, lock: DatabaseLock) -> bool:
        """True while a caller in this process holds ``lock``. Never blocks."""
        local = self._locks.get(lock)
        return local is not None and local.locked()

    async def wait(self, lock: DatabaseLock) -> None:
        """Block until ``lock`` is free in this process, without doing any work."""
        async with self._local_lock(lock):
            pass
