"""
Composition of structured asset filters into one SQL query.

HybridSearchQueryBuilder turns a SearchFilter into a QueryPlan: joins,
WHERE conditions and positional asyncpg parameters. Vector ranking is
layered on top of the plan by the caller, so relational and CLIP searches
share exactly the same filter semantics.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from src.search.schemas import (
    OrderDirection,
    SearchDateOptions,
    SearchExifOptions,
    SearchFilter,
    SearchIdOptions,
    SearchPathOptions,
    SearchRelationOptions,
    SearchStatusOptions,
)

ASSET_ALIAS = "a"

ASSET_COLUMNS: tuple[str, ...] = (
    "id",
    "owner_id",
    "library_id",
    "device_asset_id",
    "device_id",
    "type",
    "original_path",
    "original_file_name",
    "resize_path",
    "webp_path",
    "encoded_video_path",
    "live_photo_video_id",
    "stack_id",
    "is_favorite",
    "is_archived",
    "is_external",
    "is_offline",
    "is_read_only",
    "is_visible",
    "file_created_at",
    "created_at",
    "updated_at",
    "deleted_at",
)

# Every asset_faces column except the embedding
FACE_COLUMNS: tuple[str, ...] = (
    "id",
    "asset_id",
    "person_id",
    "image_width",
    "image_height",
    "bounding_box_x1",
    "bounding_box_y1",
    "bounding_box_x2",
    "bounding_box_y2",
)

# Filter field -> asset column
_DATE_COLUMNS: dict[str, tuple[str, str]] = {
    "created_at": ("created_after", "created_before"),
    "updated_at": ("updated_after", "updated_before"),
    "deleted_at": ("trashed_after", "trashed_before"),
    "file_created_at": ("taken_after", "taken_before"),
}

_STATUS_COLUMNS: tuple[str, ...] = (
    "is_archived",
    "is_external",
    "is_favorite",
    "is_offline",
    "is_read_only",
    "is_visible",
    "type",
)

_EXIF_JOIN = "LEFT JOIN exif e ON e.asset_id = a.id"


def as_vector(embedding: Sequence[float], quote: bool = False) -> str:
    """
    Render an embedding in the vector extensions' text format.

    ``quote=True`` wraps it in single quotes for inlining into a statement.
    """
    literal = f"[{','.join(str(float(x)) for x in embedding)}]"
    return f"'{literal}'" if quote else literal


def _face_object(face_alias: str) -> str:
    pairs = ", ".join(f"'{col}', {face_alias}.{col}" for col in FACE_COLUMNS)
    return f"jsonb_build_object({pairs})"


@dataclass
class QueryPlan:
    """
    Mutable SELECT over assets built up by the query builder.

    Parameters are positional ($1, $2, ...) in the order they were added.
    """

    selects: list[str] = field(
        default_factory=lambda: [f"{ASSET_ALIAS}.{col}" for col in ASSET_COLUMNS]
    )
    joins: list[str] = field(default_factory=list)
    conditions: list[str] = field(default_factory=list)
    params: list[Any] = field(default_factory=list)
    with_deleted: bool = False

    def add_param(self, value: Any) -> str:
        """Bind ``value`` and return its placeholder."""
        self.params.append(value)
        return f"${len(self.params)}"

    def where(self, condition: str) -> None:
        self.conditions.append(condition)

    def join(self, clause: str) -> None:
        if clause not in self.joins:
            self.joins.append(clause)

    def select(self, expression: str) -> None:
        if expression not in self.selects:
            self.selects.append(expression)

    @property
    def where_clause(self) -> str:
        conditions = list(self.conditions)
        if not self.with_deleted:
            conditions.append(f"{ASSET_ALIAS}.deleted_at IS NULL")
        return " AND ".join(conditions) if conditions else "TRUE"

    def to_sql(self, order_by: str) -> str:
        """Render the plan as an ordered SELECT (no LIMIT)."""
        joins = "\n".join(self.joins)
        return (
            f"SELECT {', '.join(self.selects)}\n"
            f"FROM assets {ASSET_ALIAS}\n"
            f"{joins}\n"
            f"WHERE {self.where_clause}\n"
            f"ORDER BY {order_by}"
        )


def restrict_to_searchable(plan: QueryPlan, with_archived: bool = False) -> None:
    """
    Limit a ranked query to visible assets taken in the past.

    Archived assets are excluded unless ``with_archived`` is set.
    """
    archived = f"{ASSET_ALIAS}.is_archived = FALSE"
    if not with_archived and archived not in plan.conditions:
        plan.where(archived)
    plan.where(f"{ASSET_ALIAS}.is_visible = TRUE")
    plan.where(f"{ASSET_ALIAS}.file_created_at < NOW()")


class HybridSearchQueryBuilder:
    """
    Build a QueryPlan from a SearchFilter.

    Usage:
        plan = HybridSearchQueryBuilder().build(search_filter)
        rows = await db.fetch(plan.to_sql("a.file_created_at DESC"), *plan.params)
    """

    def build(self, search_filter: SearchFilter, plan: QueryPlan | None = None) -> QueryPlan:
        """
        Apply every sub-filter of ``search_filter`` to ``plan``.

        Args:
            search_filter: Filter bundle for this request
            plan: Plan to extend; a fresh one is created when omitted
        """
        plan = plan or QueryPlan()

        if search_filter.date:
            self._apply_dates(plan, search_filter.date)
        if search_filter.exif:
            self._apply_exif(plan, search_filter.exif)
        if search_filter.id:
            self._apply_ids(plan, search_filter.id)
        if search_filter.path:
            self._apply_paths(plan, search_filter.path)
        if search_filter.status:
            self._apply_status(plan, search_filter.status, search_filter.path)
        if search_filter.relation:
            self._apply_relations(plan, search_filter.relation)

        plan.with_deleted = self.includes_deleted(search_filter)
        return plan

    @staticmethod
    def includes_deleted(search_filter: SearchFilter) -> bool:
        """
        Soft-deleted assets are excluded unless with_deleted is set or a
        trashed-date bound is present.
        """
        if search_filter.status and search_filter.status.with_deleted:
            return True
        return bool(search_filter.date and search_filter.date.has_trashed_bound)

    @staticmethod
    def order_by(search_filter: SearchFilter) -> str:
        """Deterministic ordering for relational searches."""
        direction = (
            search_filter.order.direction if search_filter.order else OrderDirection.DESC
        )
        return (
            f"{ASSET_ALIAS}.file_created_at {direction.value}, "
            f"{ASSET_ALIAS}.id {direction.value}"
        )

    def _apply_dates(self, plan: QueryPlan, date: SearchDateOptions) -> None:
        for column, (after_field, before_field) in _DATE_COLUMNS.items():
            after: datetime | None = getattr(date, after_field)
            before: datetime | None = getattr(date, before_field)
            target = f"{ASSET_ALIAS}.{column}"

            if after is not None and before is not None:
                plan.where(f"{target} BETWEEN {plan.add_param(after)} AND {plan.add_param(before)}")
            elif after is not None:
                plan.where(f"{target} >= {plan.add_param(after)}")
            elif before is not None:
                plan.where(f"{target} <= {plan.add_param(before)}")

    def _apply_exif(self, plan: QueryPlan, exif: SearchExifOptions) -> None:
        supplied = _supplied(exif)
        if not supplied:
            return
        plan.join(_EXIF_JOIN)
        for column, value in supplied.items():
            plan.where(f"e.{column} = {plan.add_param(value)}")

    def _apply_ids(self, plan: QueryPlan, ids: SearchIdOptions) -> None:
        for column, value in _supplied(ids).items():
            plan.where(f"{ASSET_ALIAS}.{column} = {plan.add_param(value)}")

    def _apply_paths(self, plan: QueryPlan, paths: SearchPathOptions) -> None:
        for column, value in _supplied(paths).items():
            plan.where(f"{ASSET_ALIAS}.{column} = {plan.add_param(value)}")

    def _apply_status(
        self,
        plan: QueryPlan,
        status: SearchStatusOptions,
        paths: SearchPathOptions | None,
    ) -> None:
        for column in _STATUS_COLUMNS:
            value = getattr(status, column)
            if value is None:
                continue
            value = getattr(value, "value", value)
            plan.where(f"{ASSET_ALIAS}.{column} = {plan.add_param(value)}")

        if status.with_archived is False and status.is_archived is None:
            plan.where(f"{ASSET_ALIAS}.is_archived = FALSE")

        # An explicit encoded path already implies the path is set
        if status.is_encoded and not (paths and paths.encoded_video_path is not None):
            plan.where(f"{ASSET_ALIAS}.encoded_video_path IS NOT NULL")

        if status.is_motion:
            plan.where(f"{ASSET_ALIAS}.live_photo_video_id IS NOT NULL")

    def _apply_relations(self, plan: QueryPlan, relation: SearchRelationOptions) -> None:
        # Left joins only: a missing relation must never drop the asset
        if relation.with_exif:
            plan.join(_EXIF_JOIN)
            plan.select("to_jsonb(e) AS exif_info")

        if relation.with_faces or relation.with_people:
            person_join = ""
            face_value = _face_object("f")
            if relation.with_people:
                person_join = "LEFT JOIN person p ON p.id = f.person_id"
                face_value = f"{face_value} || jsonb_build_object('person', to_jsonb(p))"
            plan.join(
                "LEFT JOIN LATERAL (\n"
                f"    SELECT jsonb_agg({face_value}) AS faces\n"
                f"    FROM asset_faces f {person_join}\n"
                f"    WHERE f.asset_id = {ASSET_ALIAS}.id\n"
                ") af ON TRUE"
            )
            plan.select("af.faces AS faces")

        if relation.with_smart_info:
            plan.join(f"LEFT JOIN smart_info si ON si.asset_id = {ASSET_ALIAS}.id")
            plan.select("to_jsonb(si) AS smart_info")

        if relation.with_stacked:
            plan.join(f"LEFT JOIN asset_stack st ON st.id = {ASSET_ALIAS}.stack_id")
            plan.select("to_jsonb(st) AS stack")


def _supplied(options: Any) -> dict[str, Any]:
    """Fields of an options dataclass that were actually given."""
    return {
        name: value
        for name, value in vars(options).items()
        if value is not None
    }
