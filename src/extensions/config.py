"""
Vector extension compatibility configuration.

Uses Pydantic BaseSettings for environment variable support. The per-kind
version policy is read once at startup and turned into immutable
ExtensionPolicy objects via policy_for().
"""

from dataclasses import replace
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.extensions.versions import (
    ExtensionKind,
    ExtensionPolicy,
    Version,
    VersionType,
    default_policies,
)

PinPrecision = Literal["MAJOR", "MINOR", "PATCH"]


class ExtensionConfig(BaseSettings):
    """
    Configuration for the extension version gate and lifecycle manager.

    All settings can be overridden via environment variables with
    VECTOR_EXTENSION_ prefix (e.g., VECTOR_EXTENSION_PGVECTOR_PIN=MINOR).
    Setting a max version replaces the pin for that extension.
    """

    model_config = SettingsConfigDict(
        env_prefix="VECTOR_EXTENSION_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    min_postgres_version: int = Field(
        default=14,
        ge=10,
        description="Oldest supported PostgreSQL major version",
    )

    # pgvector
    pgvector_min_version: str = Field(default="0.5.0")
    pgvector_max_version: str | None = Field(default=None)
    pgvector_pin: PinPrecision = Field(default="MAJOR")

    # pgvecto.rs
    pgvecto_rs_min_version: str = Field(default="0.2.0")
    pgvecto_rs_max_version: str | None = Field(default=None)
    pgvecto_rs_pin: PinPrecision = Field(default="MINOR")

    # HNSW construction parameters used for every ANN index rebuild
    index_ef_construction: int = Field(default=300, ge=1)
    index_m: int = Field(default=16, ge=2, le=100)

    default_face_dim_size: int = Field(
        default=512,
        ge=1,
        le=2**16,
        description="Face embedding width assumed when asset_faces is empty",
    )

    @field_validator(
        "pgvector_min_version",
        "pgvector_max_version",
        "pgvecto_rs_min_version",
        "pgvecto_rs_max_version",
    )
    @classmethod
    def _check_version(cls, value: str | None) -> str | None:
        if value is not None:
            Version.from_string(value)
        return value

    def policy_for(self, kind: ExtensionKind) -> ExtensionPolicy:
        """Build the immutable policy for ``kind`` from the built-in table."""
        base = default_policies()[kind]
        if kind is ExtensionKind.VECTOR:
            min_version, max_version, pin = (
                self.pgvector_min_version,
                self.pgvector_max_version,
                self.pgvector_pin,
            )
        else:
            min_version, max_version, pin = (
                self.pgvecto_rs_min_version,
                self.pgvecto_rs_max_version,
                self.pgvecto_rs_pin,
            )

        return replace(
            base,
            min_version=Version.from_string(min_version),
            max_version=Version.from_string(max_version) if max_version else None,
            pin=None if max_version else VersionType[pin],
        )
