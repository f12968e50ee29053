"""
Startup validation of the PostgreSQL server and its vector extension.

The gate runs before migrations and before any traffic is served. Every
check except the extension upgrade is fatal.
"""

import asyncpg
import structlog

from src.extensions.errors import (
    ExtensionNotInstalledError,
    IncompatibleExtensionError,
    UnsupportedPostgresError,
)
from src.extensions.lifecycle import ExtensionLifecycleManager
from src.extensions.repository import DatabaseRepository
from src.extensions.versions import NIGHTLY_VERSION, ExtensionPolicy

logger = structlog.get_logger(__name__)


class ExtensionVersionGate:
    """
    Checks run by init(), in order:

    1. PostgreSQL major version is at least the configured minimum
    2. The vector extension exists (created if missing)
    3. Best effort: upgrade to a newer version the policy allows
    4. The installed extension version satisfies the policy
    """

    def __init__(
        self,
        repository: DatabaseRepository,
        lifecycle: ExtensionLifecycleManager,
        policy: ExtensionPolicy,
        min_postgres_version: int = 14,
    ) -> None:
        self._repo = repository
        self._lifecycle = lifecycle
        self._policy = policy
        self._min_postgres_version = min_postgres_version

    async def init(self) -> None:
        await self.assert_postgres()
        await self._lifecycle.create_extension(self._policy.kind)
        await self.update_extension()
        await self.assert_extension_version()

    async def assert_postgres(self) -> None:
        version = await self._repo.get_postgres_version()
        if version.major < self._min_postgres_version:
            logger.critical(
                "postgres_version_unsupported",
                installed=str(version),
                required=self._min_postgres_version,
            )
            raise UnsupportedPostgresError(version, self._min_postgres_version)
        logger.debug("postgres_version_ok", version=str(version))

    async def update_extension(self) -> None:
        """Upgrade the extension when the server ships a newer compatible release."""
        policy = self._policy
        installed = await self._repo.get_extension_version(policy.kind)
        available = await self._repo.get_available_extension_version(policy.kind)
        if installed is None or available is None:
            return
        if not available.is_newer_than(installed) or not policy.is_supported(available):
            return

        try:
            await self._repo.update_extension(policy.kind)
        except (asyncpg.PostgresError, asyncpg.InterfaceError) as e:
            logger.warning(
                "extension_update_failed",
                extension=policy.display_name,
                installed=str(installed),
                available=str(available),
                error=str(e),
                hint=(
                    f"Run 'ALTER EXTENSION {policy.kind.value} UPDATE' as a superuser "
                    f"to upgrade manually."
                ),
            )
            return

        logger.info(
            "extension_updated",
            extension=policy.display_name,
            previous=str(installed),
            version=str(available),
        )

    async def assert_extension_version(self) -> None:
        policy = self._policy
        version = await self._repo.get_extension_version(policy.kind)
        if version is None:
            raise ExtensionNotInstalledError(policy)

        if policy.is_supported(version):
            logger.info("extension_version_ok", extension=policy.display_name, version=str(version))
            return

        if version == NIGHTLY_VERSION:
            remediation = (
                f"Version {version} is a nightly release. "
                f"Please run 'DROP EXTENSION IF EXISTS {policy.kind.value}' "
                f"and switch to a release version."
            )
        else:
            remediation = (
                f"Please run 'DROP EXTENSION IF EXISTS {policy.kind.value}' "
                f"and switch to {policy.describe_supported()}."
            )

        logger.critical(
            "extension_version_unsupported",
            extension=policy.display_name,
            installed=str(version),
            supported=policy.describe_supported(),
            remediation=remediation,
        )
        raise IncompatibleExtensionError(version, policy, remediation)
