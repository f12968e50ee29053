"""Fatal startup errors raised by the extension gate."""

from src.extensions.versions import ExtensionPolicy, Version


class DatabaseStartupError(RuntimeError):
    """The database is not in a state the service can run against."""


class UnsupportedPostgresError(DatabaseStartupError):
    """PostgreSQL server is older than the supported minimum."""

    def __init__(self, installed: Version, required: int) -> None:
        self.installed = installed
        self.required = required
        super().__init__(
            f"The PostgreSQL version is {installed.major}, which is older than the "
            f"minimum supported version {required}. "
            f"Please upgrade to this version or later."
        )


class ExtensionNotInstalledError(DatabaseStartupError):
    """Extension is still missing after CREATE EXTENSION succeeded."""

    def __init__(self, policy: ExtensionPolicy) -> None:
        self.policy = policy
        super().__init__(f"Unexpected: The {policy.display_name} extension is not installed.")


class IncompatibleExtensionError(DatabaseStartupError):
    """Installed extension version falls outside the supported policy."""

    def __init__(self, installed: Version, policy: ExtensionPolicy, remediation: str) -> None:
        self.installed = installed
        self.policy = policy
        self.remediation = remediation
        super().__init__(
            f"The {policy.display_name} extension version is {installed}, but only "
            f"{policy.describe_supported()} is supported. {remediation}"
        )
