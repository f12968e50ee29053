"""
Version and compatibility policy model for vector extensions.

Two interchangeable ANN backends are supported: pgvector (``vector``) and
pgvecto.rs (``vectors``). Everything that differs between them, from the
supported version range to the column type and session tuning statements,
lives in one ExtensionPolicy per kind so callers never branch on the kind.
"""

import enum
import re
from dataclasses import dataclass, field
from functools import total_ordering

_VERSION_RE = re.compile(r"^v?(\d+)(?:\.(\d+))?(?:\.(\d+))?")


class VersionType(enum.IntEnum):
    """Version field, ordered from most to least significant."""

    MAJOR = 0
    MINOR = 1
    PATCH = 2


@total_ordering
@dataclass(frozen=True)
class Version:
    """Semantic version. Compares field by field, major first."""

    major: int
    minor: int = 0
    patch: int = 0

    @classmethod
    def from_string(cls, value: str) -> "Version":
        """
        Parse a version string.

        Accepts ``1``, ``1.2``, ``1.2.3`` with an optional ``v`` prefix and
        ignores anything after the numeric part (``14.10 (Debian 14.10-1)``,
        ``0.2.0-beta``).
        """
        match = _VERSION_RE.match(value.strip())
        if match is None:
            raise ValueError(f"Invalid version string: {value!r}")
        major, minor, patch = (int(part) if part else 0 for part in match.groups())
        return cls(major, minor, patch)

    def _fields(self, precision: VersionType = VersionType.PATCH) -> tuple[int, ...]:
        return (self.major, self.minor, self.patch)[: precision + 1]

    def compare(self, other: "Version", precision: VersionType = VersionType.PATCH) -> int:
        """
        Compare against ``other`` using only fields up to ``precision``.

        Returns:
            -1, 0 or 1 like a classic cmp()
        """
        mine, theirs = self._fields(precision), other._fields(precision)
        return (mine > theirs) - (mine < theirs)

    def is_older_than(self, other: "Version", precision: VersionType = VersionType.PATCH) -> bool:
        return self.compare(other, precision) < 0

    def is_newer_than(self, other: "Version", precision: VersionType = VersionType.PATCH) -> bool:
        return self.compare(other, precision) > 0

    def is_equal(self, other: "Version", precision: VersionType = VersionType.PATCH) -> bool:
        return self.compare(other, precision) == 0

    def __lt__(self, other: "Version") -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.compare(other) < 0

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"


# Unstable builds report themselves as 0.0.0
NIGHTLY_VERSION = Version(0, 0, 0)


class ExtensionKind(str, enum.Enum):
    """Supported vector extensions, valued by their CREATE EXTENSION name."""

    VECTOR = "vector"
    VECTORS = "vectors"

    @property
    def alternative(self) -> "ExtensionKind":
        """The other interchangeable backend."""
        return ExtensionKind.VECTORS if self is ExtensionKind.VECTOR else ExtensionKind.VECTOR


@dataclass(frozen=True)
class ExtensionPolicy:
    """
    Compatibility policy and SQL vocabulary for one vector extension.

    Exactly one of ``max_version`` or ``pin`` bounds the supported range
    from above. With a pin, the installed version must equal
    ``min_version`` on every field up to and including the pinned one.

    Attributes:
        kind: Extension this policy applies to
        display_name: Human readable project name used in diagnostics
        min_version: Oldest supported release
        max_version: Newest supported release (inclusive), if bounded explicitly
        pin: Pin precision, used when ``max_version`` is not set
        native_type: Column type for embeddings, without the width
        index_ops: Operator class for the cosine-distance HNSW index
        session_setup: Statements run (with SET LOCAL) before DDL
        search_settings: SET LOCAL statements for any ANN search
        ef_search_setting: Setting controlling HNSW search breadth
        bounded_ef_search: Whether breadth follows the caller's cap
        max_ef_search: Largest breadth the setting accepts
    """

    kind: ExtensionKind
    display_name: str
    min_version: Version
    max_version: Version | None = None
    pin: VersionType | None = VersionType.MINOR
    native_type: str = "vector"
    index_ops: str = "vector_cosine_ops"
    session_setup: tuple[str, ...] = field(default_factory=tuple)
    search_settings: tuple[str, ...] = field(default_factory=tuple)
    ef_search_setting: str = "hnsw.ef_search"
    bounded_ef_search: bool = False
    max_ef_search: int = 1000

    def __post_init__(self) -> None:
        if self.max_version is None and self.pin is None:
            raise ValueError(f"{self.display_name}: policy needs a max_version or a pin")
        if self.max_version is not None and self.max_version < self.min_version:
            raise ValueError(
                f"{self.display_name}: max_version {self.max_version} "
                f"is older than min_version {self.min_version}"
            )

    def vector_type(self, dim_size: int) -> str:
        """Column type for embeddings of width ``dim_size``."""
        return f"{self.native_type}({dim_size})"

    def is_supported(self, version: Version) -> bool:
        """Check ``version`` against this policy."""
        if version == NIGHTLY_VERSION:
            return False
        if version.is_older_than(self.min_version):
            return False
        if self.max_version is not None:
            return not version.is_newer_than(self.max_version)
        return not version.is_newer_than(self.min_version, self.pin)

    def describe_supported(self) -> str:
        """Supported range, phrased for an operator."""
        if self.max_version is not None:
            return f"{self.min_version} through {self.max_version}"
        if self.pin is VersionType.PATCH:
            return str(self.min_version)
        later = VersionType(self.pin + 1).name.lower()
        return f"{self.min_version} and later {later} releases"

    def ef_search_statement(self, breadth: int) -> str:
        """SET LOCAL statement for HNSW search breadth."""
        return f"SET LOCAL {self.ef_search_setting} = {int(breadth)}"


def default_policies() -> dict[ExtensionKind, ExtensionPolicy]:
    """Built-in policy table, before configuration overrides."""
    return {
        ExtensionKind.VECTOR: ExtensionPolicy(
            kind=ExtensionKind.VECTOR,
            display_name="pgvector",
            min_version=Version(0, 5, 0),
            pin=VersionType.MAJOR,
            native_type="vector",
            # pgvector post-filters, so search wide regardless of the cap
            search_settings=(),
            ef_search_setting="hnsw.ef_search",
            bounded_ef_search=False,
            max_ef_search=1000,
        ),
        ExtensionKind.VECTORS: ExtensionPolicy(
            kind=ExtensionKind.VECTORS,
            display_name="pgvecto.rs",
            min_version=Version(0, 2, 0),
            pin=VersionType.MINOR,
            native_type="vectors.vector",
            session_setup=("SET LOCAL vectors.pgvector_compatibility = on",),
            search_settings=(
                "SET LOCAL vectors.enable_prefilter = on",
                "SET LOCAL vectors.search_mode = basic",
            ),
            ef_search_setting="vectors.hnsw_ef_search",
            bounded_ef_search=True,
            max_ef_search=65535,
        ),
    }
