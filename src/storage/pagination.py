"""
Lookahead pagination shared by relational and vector queries.

A page of ``take`` rows is fetched as ``take + 1`` rows: the extra row only
exists when there is a next page, so no COUNT(*) query is needed. Both
SQL pagination styles PostgreSQL understands are supported and render
the same page for the same ORDER BY.
"""

import enum
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class PaginationMode(enum.Enum):
    """How the page window is expressed in SQL."""

    LIMIT_OFFSET = "limit_offset"
    SKIP_TAKE = "skip_take"  # OFFSET ... ROWS FETCH NEXT ... ROWS ONLY


@dataclass(frozen=True)
class PaginationOptions:
    """Page window: return ``take`` rows after skipping ``skip``."""

    take: int
    skip: int = 0
    mode: PaginationMode = PaginationMode.LIMIT_OFFSET

    def __post_init__(self) -> None:
        if isinstance(self.take, bool) or not isinstance(self.take, int) or self.take < 0:
            raise ValueError(f"take must be a non-negative integer, got {self.take!r}")
        if isinstance(self.skip, bool) or not isinstance(self.skip, int) or self.skip < 0:
            raise ValueError(f"skip must be a non-negative integer, got {self.skip!r}")


@dataclass
class PaginatedResult(Generic[T]):
    """One page of results plus whether another page follows."""

    items: list[T] = field(default_factory=list)
    has_next_page: bool = False


def pagination_helper(items: Sequence[T], take: int) -> PaginatedResult[T]:
    """Trim a ``take + 1`` lookahead fetch down to one page."""
    return PaginatedResult(items=list(items[:take]), has_next_page=len(items) > take)


def pagination_clause(
    options: PaginationOptions,
    param_idx: int,
) -> tuple[str, list[Any]]:
    """
    Render the page window for a query whose next free parameter is ``param_idx``.

    Returns:
        (sql_fragment, params) to append to an ordered SELECT
    """
    lookahead = options.take + 1
    if options.mode is PaginationMode.LIMIT_OFFSET:
        sql = f"LIMIT ${param_idx} OFFSET ${param_idx + 1}"
        return sql, [lookahead, options.skip]

    sql = f"OFFSET ${param_idx} ROWS FETCH NEXT ${param_idx + 1} ROWS ONLY"
    return sql, [options.skip, lookahead]


async def paginate(
    fetch: Callable[[int, int], Awaitable[Sequence[T]]],
    options: PaginationOptions,
) -> PaginatedResult[T]:
    """
    Paginate any fetcher that accepts ``(limit, offset)``.

    Usage:
        page = await paginate(
            lambda limit, offset: repo.list_people(limit=limit, offset=offset),
            PaginationOptions(take=50, skip=100),
        )
    """
    items = await fetch(options.take + 1, options.skip)
    return pagination_helper(items, options.take)


async def paginated_query(
    executor: Any,
    sql: str,
    params: Sequence[Any],
    options: PaginationOptions,
) -> PaginatedResult[Any]:
    """
    Run an ordered SELECT with a lookahead page window appended.

    Args:
        executor: Anything with an asyncpg-style ``fetch`` (Database or Connection)
        sql: SELECT statement ending in its ORDER BY clause
        params: Positional parameters already referenced by ``sql``
        options: Page window

    Returns:
        Page of raw records
    """
    clause, page_params = pagination_clause(options, len(params) + 1)
    rows = await executor.fetch(f"{sql}\n{clause}", *params, *page_params)
    return pagination_helper(rows, options.take)
