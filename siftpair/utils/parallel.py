"""Bounded worker pool for share-nothing image pair tasks."""

from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Sequence, TypeVar

T = TypeVar('T')
R = TypeVar('R')


def parallel_map(func: Callable[[T], R], items: Sequence[T],
                 num_threads: int) -> List[R]:
    """Apply `func` to every item on a pool of `num_threads` workers.

    Results keep the input order. Exceptions raised by a task propagate to
    the caller once all submitted tasks have been collected.
    """
    items = list(items)
    if num_threads <= 1 or len(items) <= 1:
        return [func(item) for item in items]

    with ThreadPoolExecutor(max_workers=min(num_threads, len(items))) as executor:
        return list(executor.map(func, items))
