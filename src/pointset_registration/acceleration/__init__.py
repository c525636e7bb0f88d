"""
Acceleration Module

Thread-based chunk parallelism for the nearest-neighbour correspondence scan.
"""

from .parallel_executor import ChunkParallelExecutor, split_range

__all__ = [
    "ChunkParallelExecutor",
    "split_range",
]
