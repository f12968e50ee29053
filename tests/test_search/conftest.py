"""Fixtures for search tests: asset rows and an in-memory asset store."""

import re
from datetime import datetime, timezone
from typing import Any

import pytest

from src.search.config import SearchConfig

_CONDITION_SPLIT = re.compile(r" AND (?!\$)")
_BETWEEN = re.compile(r"^(\w+)\.(\w+) BETWEEN \$(\d+) AND \$(\d+)$")
_COMPARE = re.compile(r"^(\w+)\.(\w+) (=|>=|<=) \$(\d+)$")
_LITERAL = re.compile(r"^(\w+)\.(\w+) = (TRUE|FALSE)$")
_NULL_CHECK = re.compile(r"^(\w+)\.(\w+) IS (NOT )?NULL$")


def _make_asset_row(
    asset_id: str,
    created_at: datetime | None = None,
    deleted_at: datetime | None = None,
    **overrides: Any,
) -> dict[str, Any]:
    """Asset row with every column the search layer reads."""
    created = created_at or datetime(2023, 6, 1, tzinfo=timezone.utc)
    row = {
        "id": asset_id,
        "owner_id": "owner-1",
        "library_id": None,
        "device_asset_id": f"device-{asset_id}",
        "device_id": "phone",
        "type": "IMAGE",
        "original_path": f"/library/{asset_id}.jpg",
        "original_file_name": f"{asset_id}.jpg",
        "resize_path": None,
        "webp_path": None,
        "encoded_video_path": None,
        "live_photo_video_id": None,
        "stack_id": None,
        "is_favorite": False,
        "is_archived": False,
        "is_external": False,
        "is_offline": False,
        "is_read_only": False,
        "is_visible": True,
        "file_created_at": created,
        "created_at": created,
        "updated_at": created,
        "deleted_at": deleted_at,
    }
    row.update(overrides)
    return row


class FakeAssetStore:
    """
    Evaluates the SQL produced by the query builder against Python rows.

    Understands the predicate shapes the builder emits (BETWEEN, =, >=,
    <=, TRUE/FALSE literals, IS [NOT] NULL), the ORDER BY list and a
    LIMIT/OFFSET window. Exif predicates read ``row["exif"]``.
    """

    def __init__(self, rows: list[dict[str, Any]]):
        self.rows = rows
        self.queries: list[tuple[str, tuple]] = []

    async def fetch(self, sql: str, *params: Any) -> list[dict[str, Any]]:
        self.queries.append((sql, params))
        where = re.search(r"^WHERE (.*)$", sql, re.M).group(1)
        conditions = [] if where == "TRUE" else _CONDITION_SPLIT.split(where)
        rows = [
            row for row in self.rows
            if all(self._matches(row, condition, params) for condition in conditions)
        ]

        order = re.search(r"^ORDER BY (.*)$", sql, re.M).group(1)
        for term in reversed(order.split(", ")):
            column, direction = term.split()
            rows.sort(key=lambda r: r[column.split(".")[1]], reverse=direction == "DESC")

        window = re.search(r"LIMIT \$(\d+) OFFSET \$(\d+)$", sql)
        if window:
            limit = params[int(window.group(1)) - 1]
            offset = params[int(window.group(2)) - 1]
            rows = rows[offset : offset + limit]
        return rows

    @staticmethod
    def _value(row: dict[str, Any], alias: str, column: str) -> Any:
        if alias == "e":
            return (row.get("exif") or {}).get(column)
        return row[column]

    def _matches(self, row: dict[str, Any], condition: str, params: tuple) -> bool:
        if match := _BETWEEN.match(condition):
            alias, column, low, high = match.groups()
            value = self._value(row, alias, column)
            return value is not None and params[int(low) - 1] <= value <= params[int(high) - 1]

        if match := _COMPARE.match(condition):
            alias, column, op, idx = match.groups()
            value = self._value(row, alias, column)
            expected = params[int(idx) - 1]
            if value is None:
                return False
            if op == "=":
                return value == expected
            return value >= expected if op == ">=" else value <= expected

        if match := _LITERAL.match(condition):
            alias, column, literal = match.groups()
            return self._value(row, alias, column) is (literal == "TRUE")

        if match := _NULL_CHECK.match(condition):
            alias, column, negated = match.groups()
            is_null = self._value(row, alias, column) is None
            return not is_null if negated else is_null

        raise AssertionError(f"Unsupported condition in fake store: {condition}")


@pytest.fixture
def search_config() -> SearchConfig:
    return SearchConfig()
