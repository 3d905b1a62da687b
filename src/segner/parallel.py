"""Bounded parallel-for / reduce over contiguous partitions.

Work is split into at most ``num_threads`` contiguous chunks. Results are
always combined in chunk order, so the output does not depend on which
worker finishes first.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")
A = TypeVar("A")


def partition(items: Sequence[T], num_parts: int) -> list[list[T]]:
    """Split items into at most ``num_parts`` contiguous, non-empty chunks.

    Chunk sizes differ by at most one; earlier chunks get the extra item.
    """
    if num_parts < 1:
        raise ValueError(f"num_parts must be >= 1, got {num_parts}")
    n = len(items)
    num_parts = min(num_parts, n)
    if num_parts == 0:
        return []

    base, extra = divmod(n, num_parts)
    chunks = []
    start = 0
    for i in range(num_parts):
        size = base + (1 if i < extra else 0)
        chunks.append(list(items[start:start + size]))
        start += size
    return chunks


def _run_chunks(fn: Callable[[list[T]], R], chunks: list[list[T]], num_threads: int) -> list[R]:
    if num_threads == 1 or len(chunks) <= 1:
        return [fn(chunk) for chunk in chunks]

    with ThreadPoolExecutor(max_workers=num_threads) as executor:
        futures = [executor.submit(fn, chunk) for chunk in chunks]
        # Collected in submission order; result() re-raises worker exceptions.
        return [future.result() for future in futures]


def parallel_map(fn: Callable[[T], R], items: Sequence[T], num_threads: int) -> list[R]:
    """Apply ``fn`` to every item using a bounded pool; results keep input order."""
    chunks = partition(items, num_threads)
    partials = _run_chunks(lambda chunk: [fn(item) for item in chunk], chunks, num_threads)
    return [result for partial in partials for result in partial]


def parallel_reduce(
    map_fn: Callable[[list[T]], R],
    reduce_fn: Callable[[A, R], A],
    items: Sequence[T],
    num_threads: int,
    initial: A,
) -> A:
    """Map each chunk to a partial result, then fold partials in chunk order.

    Args:
        map_fn: Computes a partial result for one contiguous chunk
        reduce_fn: Folds one partial into the accumulator
        items: Work items
        num_threads: Upper bound on concurrently running workers
        initial: Starting accumulator

    Returns:
        The folded accumulator
    """
    chunks = partition(items, num_threads)
    accumulator = initial
    for partial in _run_chunks(map_fn, chunks, num_threads):
        accumulator = reduce_fn(accumulator, partial)
    return accumulator
