"""
parallel.py - Shared-memory map helper.

All parallel work in the project is an embarrassingly-parallel map over
independent items (atlas batches, circuit/branch candidates, population
members). A thread pool is enough: the heavy lifting happens inside numpy.
"""
from __future__ import annotations

from collections.abc import Callable
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from typing import TypeVar

T = TypeVar('T')
R = TypeVar('R')


def parallel_map(fn: Callable[[T], R], items: Iterable[T], n_workers: int | None = None) -> list[R]:
    """
    Map `fn` over `items`, preserving order.

    Runs inline when n_workers is None or 1, or when there is at most one item.
    Exceptions raised by `fn` propagate to the caller.
    """
    items = list(items)
    if n_workers is None or n_workers <= 1 or len(items) <= 1:
        return [fn(item) for item in items]
    with ThreadPoolExecutor(max_workers=min(n_workers, len(items))) as pool:
        return list(pool.map(fn, items))
