"""
Iterative Closest Point Metric

Residual cost function for point set registration. For candidate transform
parameters it pairs every transformed moving point with its nearest fixed
point and reports the stacked residual vectors together with their
derivative with respect to the parameters.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal, Optional, Protocol, Sequence, Tuple, runtime_checkable

import numpy as np
from sklearn.neighbors import NearestNeighbors

from ..acceleration.parallel_executor import ChunkParallelExecutor, split_range
from ..preprocessing.loader import PointSet
from ..exceptions import DimensionMismatchError, EmptyPointSetError
from .transforms import ParametricTransform

logger = logging.getLogger(__name__)


@runtime_checkable
class ResidualCostFunction(Protocol):
    """Capability interface consumed by least-squares solvers."""

    @property
    def number_of_parameters(self) -> int: ...

    @property
    def number_of_values(self) -> int: ...

    def get_value(self, parameters: Sequence[float]) -> np.ndarray: ...

    def get_derivative(self, parameters: Sequence[float]) -> np.ndarray: ...

    def get_value_and_derivative(self, parameters: Sequence[float]) -> Tuple[np.ndarray, np.ndarray]: ...


@dataclass(frozen=True)
class Correspondences:
    """
    Nearest-neighbour pairing for one parameter vector.

    Attributes:
        fixed_indices: Matched fixed point id for each moving point (M,)
        residuals: Transformed moving point minus matched fixed point (M, D)
        distances: Euclidean length of each residual (M,)
    """

    fixed_indices: np.ndarray
    residuals: np.ndarray
    distances: np.ndarray

    @property
    def cost(self) -> float:
        return float(np.sum(self.residuals ** 2))


def nearest_fixed_points(rows: slice, *, moving: np.ndarray, fixed: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Full scan of `fixed` for the moving points in `rows`.

    Returns the index of the closest fixed point and the squared distance.
    ``argmin`` returns the first minimum, so exact ties resolve to the lowest
    fixed id.
    """
    block = moving[rows]
    diff = block[:, np.newaxis, :] - fixed[np.newaxis, :, :]
    sq_dist = np.einsum("ijk,ijk->ij", diff, diff)
    idx = np.argmin(sq_dist, axis=1)
    return idx, sq_dist[np.arange(len(idx)), idx]


class IterativeClosestPointMetric:
    """
    Point-to-point ICP residuals.

    The residual vector stacks, moving point by moving point, the D components
    of ``T(m_i) - f_nn(i)``. Its derivative is the transform Jacobian at each
    moving point, since the matched fixed point is held constant.
    """

    def __init__(
        self,
        fixed: PointSet,
        moving: PointSet,
        transform: ParametricTransform,
        *,
        nn_backend: Literal["brute", "kd_tree"] = "brute",
        n_workers: Optional[int] = 1,
        chunk_size: int = 1024,
    ):
        """
        Args:
            fixed: Reference point set.
            moving: Point set mapped by the transform.
            transform: Transform whose parameters are optimized. The metric sets
                its parameters on every evaluation.
            nn_backend: 'brute' for the reference full scan, 'kd_tree' for a
                scikit-learn KD-tree built once on the fixed set.
            n_workers: Threads used for the brute scan (None = auto).
            chunk_size: Moving points per brute-scan chunk.
        """
        if nn_backend not in ("brute", "kd_tree"):
            raise ValueError(f"Unsupported nn_backend: '{nn_backend}'. Choose 'brute' or 'kd_tree'.")
        self.fixed = fixed
        self.moving = moving
        self.transform = transform
        self.nn_backend = nn_backend
        self.chunk_size = int(chunk_size)
        self.executor = ChunkParallelExecutor(n_workers=n_workers)
        self._nbrs: Optional[NearestNeighbors] = None

    # ----------------------------- Interface -----------------------------
    @property
    def number_of_parameters(self) -> int:
        return self.transform.number_of_parameters

    @property
    def number_of_values(self) -> int:
        return self.moving.count() * self.moving.dimension

    def validate(self) -> None:
        """
        Check the inputs before any evaluation.

        Raises:
            EmptyPointSetError: If either point set is empty.
            DimensionMismatchError: If fixed, moving and transform dimensions differ.
        """
        if self.fixed.count() == 0 or self.moving.count() == 0:
            raise EmptyPointSetError(
                f"Registration needs non-empty point sets (fixed={self.fixed.count()}, "
                f"moving={self.moving.count()})"
            )
        dims = (self.fixed.dimension, self.moving.dimension, self.transform.dimension)
        if len(set(dims)) != 1:
            raise DimensionMismatchError(
                f"Dimension mismatch: fixed={dims[0]}, moving={dims[1]}, transform={dims[2]}"
            )

    def initialize(self) -> None:
        """Validate inputs and (re)build the nearest-neighbour structure."""
        self.validate()
        self._nbrs = None
        if self.nn_backend == "kd_tree":
            self._nbrs = NearestNeighbors(n_neighbors=1, algorithm="kd_tree").fit(self.fixed.as_array())
            logger.debug("Built KD-tree on %d fixed points", self.fixed.count())

    def get_value(self, parameters: Sequence[float]) -> np.ndarray:
        return self.find_correspondences(parameters).residuals.ravel()

    def get_derivative(self, parameters: Sequence[float]) -> np.ndarray:
        self.validate()
        self.transform.set_parameters(parameters)
        return self._stacked_jacobian(self.moving.as_array())

    def get_value_and_derivative(self, parameters: Sequence[float]) -> Tuple[np.ndarray, np.ndarray]:
        corr = self.find_correspondences(parameters)
        return corr.residuals.ravel(), self._stacked_jacobian(self.moving.as_array())

    # ----------------------------- Helpers -----------------------------
    def find_correspondences(self, parameters: Sequence[float]) -> Correspondences:
        """
        Pair each transformed moving point with its nearest fixed point.

        Args:
            parameters: Transform parameters to evaluate at.

        Returns:
            Correspondences for every moving point, in moving id order.
        """
        self.validate()
        self.transform.set_parameters(parameters)
        fixed = self.fixed.as_array()
        moved = self.transform.transform_points(self.moving.as_array())
        if moved.shape[1] != fixed.shape[1]:
            raise DimensionMismatchError(
                f"Transform output has {moved.shape[1]} coordinates, fixed points have {fixed.shape[1]}"
            )

        if self.nn_backend == "kd_tree":
            if self._nbrs is None:
                self.initialize()
            _, indices = self._nbrs.kneighbors(moved)
            fixed_idx = indices.ravel()
        else:
            chunks = split_range(moved.shape[0], self.chunk_size)
            parts = self.executor.map_chunks(
                chunks,
                nearest_fixed_points,
                {"moving": moved, "fixed": fixed},
            )
            fixed_idx = np.concatenate([idx for idx, _ in parts])

        residuals = moved - fixed[fixed_idx]
        return Correspondences(
            fixed_indices=fixed_idx,
            residuals=residuals,
            distances=np.sqrt(np.sum(residuals ** 2, axis=1)),
        )

    def cost(self, parameters: Sequence[float]) -> float:
        """Sum of squared residual components at `parameters`."""
        return self.find_correspondences(parameters).cost

    def _stacked_jacobian(self, moving: np.ndarray) -> np.ndarray:
        # (M, P, D) -> (M*D, P): row i*D + k is d residual_i[k] / d p
        jac = self.transform.jacobians(moving)
        return np.transpose(jac, (0, 2, 1)).reshape(-1, jac.shape[1])
