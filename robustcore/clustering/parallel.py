"""Contiguous chunking and thread-pool fan-out for data-parallel steps."""

import os
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Tuple, TypeVar

T = TypeVar('T')


def resolve_num_workers(num_workers: Optional[int] = None) -> int:
    """Number of workers to use, defaulting to the CPU count."""
    if num_workers is None:
        num_workers = os.cpu_count() or 1
    return max(int(num_workers), 1)


def chunk_bounds(num_items: int, num_chunks: int) -> List[Tuple[int, int]]:
    """
    Split ``range(num_items)`` into equal contiguous chunks.

    Chunks have ``num_items // num_chunks`` items each. The remainder forms
    one extra trailing chunk.
    """
    chunk_size = num_items // max(num_chunks, 1)
    if chunk_size == 0:
        return [(0, num_items)] if num_items else []

    bounds = [(i * chunk_size, (i + 1) * chunk_size) for i in range(num_items // chunk_size)]
    if bounds[-1][1] < num_items:
        bounds.append((bounds[-1][1], num_items))
    return bounds


def map_chunks(func: Callable[[int, int], T], bounds: List[Tuple[int, int]],
               num_workers: int) -> List[T]:
    """Run ``func(start, stop)`` for every chunk. Results keep chunk order."""
    if num_workers <= 1 or len(bounds) <= 1:
        return [func(start, stop) for start, stop in bounds]

    with ThreadPoolExecutor(max_workers=num_workers) as executor:
        futures = [executor.submit(func, start, stop) for start, stop in bounds]
        return [future.result() for future in futures]
