"""
Hybrid asset search.

Structured filters over assets and their relations, combined with CLIP
and face embedding similarity, returned through lookahead pagination.
"""

from src.search.clip_models import ClipModelInfo, clean_model_name, get_clip_model_info
from src.search.config import SearchConfig
from src.search.schemas import (
    Asset,
    AssetFace,
    EmbeddingSearch,
    FaceEmbeddingSearch,
    FaceSearchResult,
    SearchFilter,
    SearchPaginationOptions,
    SmartInfo,
    SmartSearchOptions,
)
from src.search.query_builder import HybridSearchQueryBuilder, QueryPlan
from src.search.executor import VectorSearchExecutor
from src.search.repository import SearchRepository

__all__ = [
    "ClipModelInfo",
    "clean_model_name",
    "get_clip_model_info",
    "SearchConfig",
    "Asset",
    "AssetFace",
    "EmbeddingSearch",
    "FaceEmbeddingSearch",
    "FaceSearchResult",
    "SearchFilter",
    "SearchPaginationOptions",
    "SmartInfo",
    "SmartSearchOptions",
    "HybridSearchQueryBuilder",
    "QueryPlan",
    "VectorSearchExecutor",
    "SearchRepository",
]
