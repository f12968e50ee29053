"""
Configuration for search query execution.

Uses Pydantic BaseSettings for environment variable support.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.storage.chunking import DATABASE_PARAMETER_CHUNK_SIZE


class SearchConfig(BaseSettings):
    """
    Configuration for SearchRepository and VectorSearchExecutor.

    All settings can be overridden via environment variables with
    SEARCH_ prefix (e.g., SEARCH_FACE_MIN_CANDIDATES=128).
    """

    model_config = SettingsConfigDict(env_prefix="SEARCH_")

    # Face search
    face_min_candidates: int = Field(
        default=64,
        ge=1,
        le=10_000,
        description="Floor on ranked face candidates; low values hurt prefilter recall",
    )

    # ANN search breadth
    unbounded_ef_search: int = Field(
        default=1000,
        ge=1,
        le=100_000,
        description="HNSW ef_search when the caller gives no cap, and the floor for post-filtering backends",
    )

    # Pagination
    max_page_size: int = Field(
        default=1000,
        ge=1,
        le=100_000,
        description="Largest page a search may request",
    )

    # Batch lookups
    parameter_chunk_size: int = Field(
        default=DATABASE_PARAMETER_CHUNK_SIZE,
        ge=1,
        le=65_535,
        description="Maximum ids bound into a single statement",
    )
