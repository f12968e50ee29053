"""
Split oversized parameter collections across several queries.

PostgreSQL's wire protocol caps a statement at 65535 bind parameters.
Lookups that take a caller-supplied collection of ids are wrapped with
``chunked`` so each call stays under the cap and the per-chunk results
are merged back together.

Usage:
    get_by_ids = chunked_list(repo._get_by_ids)
    assets = await get_by_ids(asset_ids)
"""

import logging
from collections.abc import Awaitable, Callable, Collection, Iterable, Iterator
from itertools import chain, islice
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

# Leaves headroom below the 65535 protocol limit for non-chunked parameters
DATABASE_PARAMETER_CHUNK_SIZE = 65500

R = TypeVar("R")


def chunks(collection: Iterable[Any], size: int) -> Iterator[Any]:
    """
    Yield successive chunks of at most ``size`` items.

    Sets are chunked into sets, everything else into lists.
    """
    if size < 1:
        raise ValueError(f"chunk size must be positive, got {size}")

    as_set = isinstance(collection, (set, frozenset))
    iterator = iter(collection)
    while True:
        batch = list(islice(iterator, size))
        if not batch:
            return
        yield set(batch) if as_set else batch


def concat(results: Iterable[Iterable[Any]]) -> list[Any]:
    """Merge ordered per-chunk results, preserving chunk order."""
    return list(chain.from_iterable(results))


def set_union(results: Iterable[Iterable[Any]]) -> set[Any]:
    """Merge per-chunk set results."""
    merged: set[Any] = set()
    for result in results:
        merged.update(result)
    return merged


def chunked(
    operation: Callable[..., Awaitable[R]],
    merge: Callable[[list[R]], Any],
    chunk_size: int = DATABASE_PARAMETER_CHUNK_SIZE,
) -> Callable[..., Awaitable[Any]]:
    """
    Wrap ``operation`` so its first argument is split into chunks.

    Collections that already fit are passed through untouched with a
    single call. Larger ones are processed one chunk at a time, in order,
    and the list of per-chunk results is handed to ``merge``.

    Args:
        operation: Coroutine function whose first argument is a collection
        merge: Combines the per-chunk results into one value
        chunk_size: Maximum items per call
    """

    async def wrapper(collection: Collection[Any], *args: Any, **kwargs: Any) -> Any:
        if len(collection) <= chunk_size:
            return await operation(collection, *args, **kwargs)

        results = []
        for chunk in chunks(collection, chunk_size):
            results.append(await operation(chunk, *args, **kwargs))

        logger.debug(
            f"Split {len(collection)} parameters into {len(results)} chunks "
            f"for {getattr(operation, '__name__', operation)!s}"
        )
        return merge(results)

    wrapper.__name__ = getattr(operation, "__name__", "chunked")
    wrapper.__doc__ = operation.__doc__
    return wrapper


def chunked_list(
    operation: Callable[..., Awaitable[list[Any]]],
    chunk_size: int = DATABASE_PARAMETER_CHUNK_SIZE,
) -> Callable[..., Awaitable[list[Any]]]:
    """``chunked`` for operations returning ordered sequences."""
    return chunked(operation, concat, chunk_size)


def chunked_set(
    operation: Callable[..., Awaitable[set[Any]]],
    chunk_size: int = DATABASE_PARAMETER_CHUNK_SIZE,
) -> Callable[..., Awaitable[set[Any]]]:
    """``chunked`` for operations returning sets."""
    return chunked(operation, set_union, chunk_size)
