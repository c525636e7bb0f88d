"""
Parallel execution infrastructure for chunked correspondence search.

Provides ChunkParallelExecutor for distributing independent chunks of work
(typically slices of the moving point set) across a pool of worker threads.
Results are always returned in input order.
"""

from __future__ import annotations

import logging
import os
import time
from multiprocessing.pool import ThreadPool
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)


def _worker_wrapper(args: Tuple[int, Any, Callable, Dict[str, Any]]) -> Tuple[int, Any, Optional[BaseException]]:
    """
    Run one chunk and capture its error instead of raising inside the pool.

    Args:
        args: Tuple of (chunk_index, chunk, worker_fn, worker_kwargs)

    Returns:
        Tuple of (chunk_index, result, exception)
    """
    idx, chunk, worker_fn, worker_kwargs = args
    try:
        return (idx, worker_fn(chunk, **worker_kwargs), None)
    except Exception as e:
        return (idx, None, e)


def split_range(n_items: int, chunk_size: int) -> List[slice]:
    """Split ``range(n_items)`` into consecutive slices of at most `chunk_size`."""
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    return [slice(start, min(start + chunk_size, n_items)) for start in range(0, n_items, chunk_size)]


class ChunkParallelExecutor:
    """
    Thread pool executor for chunk-based processing.

    Threads share the read-only point arrays without copying, and NumPy
    releases the GIL inside the distance computations. Work is sequential
    when only one worker or one chunk is involved.

    Example:
        executor = ChunkParallelExecutor(n_workers=4)
        results = executor.map_chunks(
            chunks=split_range(len(moving), 1024),
            worker_fn=nearest_in_chunk,
            worker_kwargs={'fixed': fixed_points},
        )
    """

    def __init__(self, n_workers: Optional[int] = None):
        """
        Initialize parallel executor.

        Args:
            n_workers: Number of worker threads. If None, uses cpu_count - 1
                to leave one core for coordination. Minimum is 1.
        """
        if n_workers is None:
            n_workers = max(1, (os.cpu_count() or 1) - 1)
        else:
            n_workers = max(1, int(n_workers))

        self.n_workers = n_workers

        logger.debug(
            "Initialized ChunkParallelExecutor with %d workers (total CPUs: %s)",
            self.n_workers,
            os.cpu_count(),
        )

    def map_chunks(
        self,
        chunks: Sequence[Any],
        worker_fn: Callable,
        worker_kwargs: Optional[Dict[str, Any]] = None,
    ) -> List[Any]:
        """
        Map worker function over chunks, preserving input order.

        Args:
            chunks: Chunks to process (e.g. slices into the moving points)
            worker_fn: Function with signature worker_fn(chunk, **worker_kwargs) -> result
            worker_kwargs: Fixed keyword arguments passed to each worker call

        Returns:
            List of results in the same order as `chunks`

        Raises:
            Exception: The first (lowest index) exception raised by a worker.
        """
        worker_kwargs = worker_kwargs or {}
        n_chunks = len(chunks)

        if n_chunks == 0:
            return []

        start_time = time.time()

        if self.n_workers == 1 or n_chunks == 1:
            results = [worker_fn(chunk, **worker_kwargs) for chunk in chunks]
            logger.debug(
                "Sequential processing complete: %d chunks in %.4f s",
                n_chunks,
                time.time() - start_time,
            )
            return results

        worker_args = [(i, chunk, worker_fn, worker_kwargs) for i, chunk in enumerate(chunks)]

        results_dict: Dict[int, Any] = {}
        errors: List[Tuple[int, BaseException]] = []
        with ThreadPool(processes=min(self.n_workers, n_chunks)) as pool:
            for idx, result, error in pool.imap_unordered(_worker_wrapper, worker_args):
                if error is not None:
                    errors.append((idx, error))
                else:
                    results_dict[idx] = result

        if errors:
            errors.sort(key=lambda item: item[0])
            logger.debug("%d of %d chunks failed; re-raising the first error", len(errors), n_chunks)
            raise errors[0][1]

        logger.debug(
            "Parallel processing complete: %d chunks on %d workers in %.4f s",
            n_chunks,
            self.n_workers,
            time.time() - start_time,
        )
        return [results_dict[i] for i in range(n_chunks)]
