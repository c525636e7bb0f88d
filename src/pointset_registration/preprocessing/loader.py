"""
Point Set Container and Loader

This module holds the id-addressed point set consumed by the registration
engine and helpers that build point sets from text or NumPy files.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Sequence, Union

import numpy as np

from ..exceptions import DimensionMismatchError, OutOfRangeError

logger = logging.getLogger(__name__)


class PointSet:
    """
    Ordered collection of D-dimensional points addressed by dense ids.

    Ids follow insertion order and are contiguous from 0. Stored points are
    read-only; a point can be replaced by inserting at an existing id.

    Example:
        >>> ps = PointSet(dimension=2)
        >>> ps.insert(0, (0.0, 0.0))
        >>> ps.insert(1, (1.0, 0.0))
        >>> ps.count()
        2
    """

    def __init__(self, dimension: int):
        if int(dimension) < 1:
            raise ValueError(f"Point dimension must be positive, got {dimension}")
        self.dimension = int(dimension)
        self._points: List[np.ndarray] = []
        self._array: Optional[np.ndarray] = None

    @classmethod
    def from_points(
        cls,
        points: Union[np.ndarray, Iterable[Sequence[float]]],
        dimension: Optional[int] = None,
    ) -> "PointSet":
        """
        Build a point set from an iterable of coordinates; order defines ids.

        Args:
            points: Array-like of shape (N, D) or an iterable of D-sequences.
            dimension: Point dimension. Inferred from the data when None.

        Returns:
            PointSet holding the points with ids 0..N-1.
        """
        arr = np.asarray(list(points) if not isinstance(points, np.ndarray) else points, dtype=float)
        if arr.size == 0:
            if dimension is None:
                if arr.ndim == 2 and arr.shape[1] > 0:
                    dimension = arr.shape[1]
                else:
                    raise ValueError("Cannot infer dimension from an empty point list")
            return cls(dimension)
        if arr.ndim != 2:
            raise DimensionMismatchError(f"Expected an (N, D) array of points, got shape {arr.shape}")
        if dimension is None:
            dimension = arr.shape[1]
        point_set = cls(dimension)
        for point_id, point in enumerate(arr):
            point_set.insert(point_id, point)
        return point_set

    def insert(self, point_id: int, point: Sequence[float]) -> None:
        """Add a point at `point_id` (== count) or overwrite an existing one."""
        point_id = int(point_id)
        if point_id < 0 or point_id > len(self._points):
            raise OutOfRangeError(
                f"Point id {point_id} would break the dense id range 0..{len(self._points)}"
            )
        value = np.array(point, dtype=float).reshape(-1)
        if value.shape[0] != self.dimension:
            raise DimensionMismatchError(
                f"Point has {value.shape[0]} coordinates, point set dimension is {self.dimension}"
            )
        value.flags.writeable = False
        if point_id == len(self._points):
            self._points.append(value)
        else:
            self._points[point_id] = value
        self._array = None

    def get(self, point_id: int) -> np.ndarray:
        point_id = int(point_id)
        if point_id < 0 or point_id >= len(self._points):
            raise OutOfRangeError(f"Point id {point_id} not present (count={len(self._points)})")
        return self._points[point_id]

    def count(self) -> int:
        return len(self._points)

    def as_array(self) -> np.ndarray:
        """Return the points as a read-only (N, D) array, cached until the next insert."""
        if self._array is None:
            if self._points:
                arr = np.vstack(self._points)
            else:
                arr = np.empty((0, self.dimension), dtype=float)
            arr.flags.writeable = False
            self._array = arr
        return self._array

    def __len__(self) -> int:
        return len(self._points)

    def __iter__(self) -> Iterator[np.ndarray]:
        return iter(list(self._points))

    def __repr__(self) -> str:
        return f"PointSet(dimension={self.dimension}, count={len(self._points)})"


def read_points(file_path: Union[str, Path], dimension: int) -> np.ndarray:
    """
    Read point coordinates from a text or ``.npy`` file.

    Text files are read as a stream of whitespace separated numbers that is
    grouped into consecutive D-tuples; line breaks carry no meaning and a
    trailing incomplete point is dropped.

    Args:
        file_path: Path to the points file.
        dimension: Number of coordinates per point.

    Returns:
        (N, D) float array.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file content cannot be parsed as numbers.
    """
    file_path = Path(file_path)
    if not file_path.exists():
        raise FileNotFoundError(f"File not found: {file_path}")
    if dimension < 1:
        raise ValueError(f"Point dimension must be positive, got {dimension}")

    if file_path.suffix.lower() == ".npy":
        arr = np.asarray(np.load(file_path), dtype=float)
        if arr.ndim != 2 or arr.shape[1] != dimension:
            raise DimensionMismatchError(
                f"Expected an (N, {dimension}) array in {file_path}, got shape {arr.shape}"
            )
        return arr

    text = file_path.read_text(encoding="utf-8")
    try:
        values = np.array(text.split(), dtype=float)
    except ValueError as e:
        raise ValueError(f"Invalid coordinate in {file_path}: {e}") from e

    n_points = values.size // dimension
    leftover = values.size - n_points * dimension
    if leftover:
        logger.warning(
            "Ignoring %d trailing value(s) in %s that do not form a complete point.",
            leftover,
            file_path,
        )
    return values[: n_points * dimension].reshape(n_points, dimension)


def load_point_set(file_path: Union[str, Path], dimension: int) -> PointSet:
    """Load a points file into a PointSet (ids follow file order)."""
    points = read_points(file_path, dimension)
    logger.info(f"Loaded {len(points)} points from {Path(file_path).name}")
    return PointSet.from_points(points, dimension=dimension)
