"""Tests for lookahead pagination."""

import re

import pytest

from src.storage.pagination import (
    PaginatedResult,
    PaginationMode,
    PaginationOptions,
    paginate,
    paginated_query,
    pagination_clause,
    pagination_helper,
)


class FakeRowStore:
    """
    In-memory stand-in for an ordered SELECT.

    Reads the page window back out of the SQL clause appended by
    paginated_query, so both pagination modes are exercised end to end.
    """

    def __init__(self, count: int):
        self.rows = list(range(count))
        self.calls: list[tuple[str, tuple]] = []

    async def fetch(self, sql: str, *params):
        self.calls.append((sql, params))
        limit_offset = re.search(r"LIMIT \$(\d+) OFFSET \$(\d+)$", sql)
        if limit_offset:
            limit = params[int(limit_offset.group(1)) - 1]
            offset = params[int(limit_offset.group(2)) - 1]
        else:
            skip_take = re.search(r"OFFSET \$(\d+) ROWS FETCH NEXT \$(\d+) ROWS ONLY$", sql)
            assert skip_take, sql
            offset = params[int(skip_take.group(1)) - 1]
            limit = params[int(skip_take.group(2)) - 1]
        return self.rows[offset : offset + limit]


class TestPaginationOptions:
    def test_defaults(self):
        options = PaginationOptions(take=10)
        assert options.skip == 0
        assert options.mode is PaginationMode.LIMIT_OFFSET

    @pytest.mark.parametrize("take,skip", [(-1, 0), (5, -1), (1.5, 0), (True, 0)])
    def test_rejects_invalid_window(self, take, skip):
        with pytest.raises(ValueError):
            PaginationOptions(take=take, skip=skip)


class TestPaginationHelper:
    def test_lookahead_row_means_next_page(self):
        result = pagination_helper([1, 2, 3, 4], take=3)
        assert result.items == [1, 2, 3]
        assert result.has_next_page is True

    def test_exact_page_has_no_next_page(self):
        result = pagination_helper([1, 2, 3], take=3)
        assert result.items == [1, 2, 3]
        assert result.has_next_page is False

    def test_empty(self):
        result = pagination_helper([], take=3)
        assert result == PaginatedResult(items=[], has_next_page=False)


class TestPaginationClause:
    def test_limit_offset(self):
        sql, params = pagination_clause(PaginationOptions(take=50, skip=100), param_idx=3)
        assert sql == "LIMIT $3 OFFSET $4"
        assert params == [51, 100]

    def test_skip_take(self):
        options = PaginationOptions(take=50, skip=100, mode=PaginationMode.SKIP_TAKE)
        sql, params = pagination_clause(options, param_idx=1)
        assert sql == "OFFSET $1 ROWS FETCH NEXT $2 ROWS ONLY"
        assert params == [100, 51]


class TestPaginatedQuery:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("mode", list(PaginationMode))
    @pytest.mark.parametrize("count", [0, 1, 7, 10, 11, 25])
    @pytest.mark.parametrize("take,skip", [(1, 0), (5, 0), (5, 5), (10, 0), (3, 9), (4, 30)])
    async def test_page_size_and_next_flag(self, mode, count, take, skip):
        store = FakeRowStore(count)
        result = await paginated_query(
            store,
            "SELECT * FROM assets a ORDER BY a.id",
            [],
            PaginationOptions(take=take, skip=skip, mode=mode),
        )

        remaining = max(count - skip, 0)
        assert len(result.items) == min(remaining, take)
        assert result.has_next_page == (remaining > take)
        assert result.items == list(range(count))[skip : skip + take]

    @pytest.mark.asyncio
    async def test_modes_return_identical_pages(self):
        pages = []
        for mode in PaginationMode:
            store = FakeRowStore(12)
            pages.append(
                await paginated_query(
                    store, "SELECT 1", [], PaginationOptions(take=5, skip=5, mode=mode)
                )
            )
        assert pages[0] == pages[1]

    @pytest.mark.asyncio
    async def test_window_params_follow_existing_params(self):
        store = FakeRowStore(3)
        await paginated_query(
            store,
            "SELECT * FROM assets a WHERE a.owner_id = $1 ORDER BY a.id",
            ["owner-1"],
            PaginationOptions(take=2),
        )
        sql, params = store.calls[0]
        assert sql.endswith("LIMIT $2 OFFSET $3")
        assert params == ("owner-1", 3, 0)


class TestPaginate:
    @pytest.mark.asyncio
    async def test_requests_one_extra_row(self):
        seen = []

        async def fetch(limit, offset):
            seen.append((limit, offset))
            return list(range(offset, min(offset + limit, 8)))

        result = await paginate(fetch, PaginationOptions(take=3, skip=3))

        assert seen == [(4, 3)]
        assert result.items == [3, 4, 5]
        assert result.has_next_page is True
