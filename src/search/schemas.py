"""
Data models for asset and face search.

Filter option groups mirror the columns they constrain. Every field is
optional: None means "no predicate", never "match NULL".
"""

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

Embedding = list[float]


class AssetType(str, enum.Enum):
    IMAGE = "IMAGE"
    VIDEO = "VIDEO"
    AUDIO = "AUDIO"
    OTHER = "OTHER"


class OrderDirection(str, enum.Enum):
    ASC = "ASC"
    DESC = "DESC"


@dataclass(frozen=True)
class SearchDateOptions:
    """Bounds on the four asset instants. Both bounds are inclusive."""

    created_after: datetime | None = None
    created_before: datetime | None = None
    updated_after: datetime | None = None
    updated_before: datetime | None = None
    trashed_after: datetime | None = None
    trashed_before: datetime | None = None
    taken_after: datetime | None = None
    taken_before: datetime | None = None

    @property
    def has_trashed_bound(self) -> bool:
        return self.trashed_after is not None or self.trashed_before is not None


@dataclass(frozen=True)
class SearchIdOptions:
    checksum: bytes | None = None
    device_asset_id: str | None = None
    device_id: str | None = None
    id: str | None = None
    library_id: str | None = None
    owner_id: str | None = None


@dataclass(frozen=True)
class SearchExifOptions:
    city: str | None = None
    country: str | None = None
    lens_model: str | None = None
    make: str | None = None
    model: str | None = None
    state: str | None = None


@dataclass(frozen=True)
class SearchPathOptions:
    encoded_video_path: str | None = None
    original_file_name: str | None = None
    original_path: str | None = None
    resize_path: str | None = None
    webp_path: str | None = None


@dataclass(frozen=True)
class SearchStatusOptions:
    """
    Asset status flags.

    ``is_encoded`` and ``is_motion`` are presence checks rather than columns.
    ``with_archived=False`` hides archived assets unless ``is_archived`` is
    given explicitly. ``with_deleted=True`` includes soft-deleted assets.
    """

    is_archived: bool | None = None
    is_encoded: bool | None = None
    is_external: bool | None = None
    is_favorite: bool | None = None
    is_motion: bool | None = None
    is_offline: bool | None = None
    is_read_only: bool | None = None
    is_visible: bool | None = None
    type: AssetType | None = None
    with_archived: bool | None = None
    with_deleted: bool | None = None


@dataclass(frozen=True)
class SearchRelationOptions:
    with_exif: bool = False
    with_faces: bool = False
    with_people: bool = False
    with_smart_info: bool = False
    with_stacked: bool = False


@dataclass(frozen=True)
class SearchOrderOptions:
    direction: OrderDirection = OrderDirection.DESC


@dataclass(frozen=True)
class SearchFilter:
    """Structured predicate bundle for one asset query."""

    date: SearchDateOptions | None = None
    id: SearchIdOptions | None = None
    exif: SearchExifOptions | None = None
    path: SearchPathOptions | None = None
    status: SearchStatusOptions | None = None
    relation: SearchRelationOptions | None = None
    order: SearchOrderOptions | None = None


@dataclass(frozen=True)
class SearchPaginationOptions:
    """1-based page number and page size."""

    page: int = 1
    size: int = 250

    def __post_init__(self) -> None:
        if isinstance(self.page, bool) or not isinstance(self.page, int) or self.page < 1:
            raise ValueError(f"page must be a positive integer, got {self.page!r}")
        if isinstance(self.size, bool) or not isinstance(self.size, int) or self.size < 1:
            raise ValueError(f"size must be a positive integer, got {self.size!r}")

    @property
    def take(self) -> int:
        return self.size

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.size


@dataclass(frozen=True)
class EmbeddingSearch:
    """Nearest-neighbour query over CLIP embeddings of the given owners' assets."""

    user_ids: list[str]
    embedding: Embedding
    num_results: int | None = None
    with_archived: bool = False


@dataclass(frozen=True)
class SmartSearchOptions:
    """CLIP search combined with structured filters."""

    user_ids: list[str]
    embedding: Embedding
    filter: SearchFilter = field(default_factory=SearchFilter)


@dataclass(frozen=True)
class FaceEmbeddingSearch:
    user_ids: list[str]
    embedding: Embedding
    max_distance: float
    num_results: int | None = None
    has_person: bool = False


@dataclass
class Asset:
    """An asset row plus any relations that were requested."""

    id: str
    owner_id: str
    type: str
    original_path: str
    original_file_name: str
    file_created_at: datetime
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None = None
    library_id: str | None = None
    device_asset_id: str | None = None
    device_id: str | None = None
    resize_path: str | None = None
    webp_path: str | None = None
    encoded_video_path: str | None = None
    live_photo_video_id: str | None = None
    stack_id: str | None = None
    is_favorite: bool = False
    is_archived: bool = False
    is_external: bool = False
    is_offline: bool = False
    is_read_only: bool = False
    is_visible: bool = True
    exif_info: dict[str, Any] | None = None
    faces: list[dict[str, Any]] | None = None
    smart_info: dict[str, Any] | None = None
    stack: dict[str, Any] | None = None


@dataclass
class AssetFace:
    """A detected face. The raw embedding is never loaded into this model."""

    id: str
    asset_id: str
    person_id: str | None = None
    image_width: int = 0
    image_height: int = 0
    bounding_box_x1: int = 0
    bounding_box_y1: int = 0
    bounding_box_x2: int = 0
    bounding_box_y2: int = 0


@dataclass
class FaceSearchResult:
    face: AssetFace
    distance: float


@dataclass
class SmartInfo:
    asset_id: str
    tags: list[str] | None = None
    objects: list[str] | None = None
