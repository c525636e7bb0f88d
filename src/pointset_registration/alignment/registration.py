"""
Point Set Registration Driver

Wires the fixed and moving point sets, a parametric transform, the ICP
metric and the Levenberg-Marquardt optimizer into a single registration run.

Typical use:

    result = register_point_sets(fixed_points, moving_points)
    if result.converged:
        print(result.parameters)
"""

from __future__ import annotations

import logging
import time
from typing import Optional, Sequence, Union

import numpy as np

from ..exceptions import DimensionMismatchError, RegistrationError
from ..preprocessing.loader import PointSet
from ..utils.config import RegistrationConfig
from .metric import IterativeClosestPointMetric
from .optimizer import IterationObserver, LeastSquaresSolver, LevenbergMarquardtOptimizer
from .results import RegistrationResult
from .transforms import ParametricTransform, TranslationTransform

logger = logging.getLogger(__name__)

PointsLike = Union[PointSet, np.ndarray, Sequence[Sequence[float]]]


def as_point_set(points: PointsLike, dimension: Optional[int] = None) -> PointSet:
    """Return `points` as a PointSet, converting arrays and nested sequences."""
    if isinstance(points, PointSet):
        return points
    return PointSet.from_points(points, dimension=dimension)


class PointSetRegistration:
    """
    Registration of a moving point set onto a fixed one.

    The driver owns its collaborators for the duration of a run. Every call to
    `run` is an independent attempt: the metric is rebuilt, no correspondences
    are reused and the optimizer starts from the initial parameters.

    On completion the transform holds the final parameters.
    """

    def __init__(
        self,
        fixed: PointSet,
        moving: PointSet,
        transform: ParametricTransform,
        config: Optional[RegistrationConfig] = None,
        optimizer: Optional[LeastSquaresSolver] = None,
    ):
        """
        Args:
            fixed: Reference point set.
            moving: Point set mapped onto `fixed` by the transform.
            transform: Parametric transform to estimate.
            config: Optimizer and metric settings; defaults to RegistrationConfig().
            optimizer: Solver to use; defaults to a LevenbergMarquardtOptimizer
                built from ``config.optimizer``.
        """
        self.fixed = fixed
        self.moving = moving
        self.transform = transform
        self.config = config or RegistrationConfig()
        self.optimizer = optimizer or LevenbergMarquardtOptimizer(self.config.optimizer)
        self._initial_parameters: Optional[np.ndarray] = None

    def set_initial_parameters(self, parameters: Sequence[float]) -> None:
        """Seed the next run with `parameters` instead of the identity transform."""
        self._initial_parameters = np.asarray(parameters, dtype=float).reshape(-1).copy()

    @property
    def initial_parameters(self) -> np.ndarray:
        if self._initial_parameters is not None:
            return self._initial_parameters.copy()
        identity = self.transform.clone()
        identity.set_identity()
        return identity.get_parameters()

    def run(self, observer: Optional[IterationObserver] = None) -> RegistrationResult:
        """
        Run the registration to a terminal state.

        Args:
            observer: Optional callback receiving each accepted iteration record.

        Returns:
            RegistrationResult with the terminal state, final parameters and
            diagnostics. Setup errors (empty point sets, dimension mismatches)
            are reported as FAILED results before any iteration.
        """
        n_fixed = self.fixed.count()
        n_moving = self.moving.count()
        initial = self.initial_parameters
        metric_cfg = self.config.metric

        logger.info(
            "Starting registration with %d fixed points and %d moving points (%s, P=%d).",
            n_fixed,
            n_moving,
            type(self.transform).__name__,
            self.transform.number_of_parameters,
        )

        metric = IterativeClosestPointMetric(
            self.fixed,
            self.moving,
            self.transform,
            nn_backend=metric_cfg.nn_backend,
            n_workers=metric_cfg.n_workers,
            chunk_size=metric_cfg.chunk_size,
        )
        try:
            metric.initialize()
            if initial.size != self.transform.number_of_parameters:
                raise DimensionMismatchError(
                    f"Initial parameters have length {initial.size}, "
                    f"{type(self.transform).__name__} expects {self.transform.number_of_parameters}"
                )
        except RegistrationError as e:
            logger.debug("Registration setup rejected: %s", e)
            return RegistrationResult.failure(
                e,
                initial,
                number_of_fixed_points=n_fixed,
                number_of_moving_points=n_moving,
            )

        start = time.time()
        outcome = self.optimizer.optimize(metric, initial, observer=observer)
        elapsed = time.time() - start

        self.transform.set_parameters(outcome.parameters)

        logger.info(
            "Registration finished in %.4f s: %s after %d iterations (%s). Final cost: %.6e",
            elapsed,
            outcome.state.value,
            outcome.iterations,
            outcome.stop_reason,
            outcome.cost,
        )
        return RegistrationResult.from_optimization(
            outcome,
            initial_parameters=initial,
            number_of_fixed_points=n_fixed,
            number_of_moving_points=n_moving,
        )


def register_point_sets(
    fixed: PointsLike,
    moving: PointsLike,
    transform: Optional[ParametricTransform] = None,
    config: Optional[RegistrationConfig] = None,
    initial_parameters: Optional[Sequence[float]] = None,
    observer: Optional[IterationObserver] = None,
) -> RegistrationResult:
    """
    Register `moving` onto `fixed` in one call.

    Args:
        fixed: Fixed points (PointSet, (N, D) array or nested sequences).
        moving: Moving points, same dimension as `fixed`.
        transform: Transform to estimate; defaults to a TranslationTransform of
            the point dimension.
        config: Optimizer and metric settings.
        initial_parameters: Starting parameters (default: identity).
        observer: Optional per-iteration callback.

    Returns:
        RegistrationResult of the run.
    """
    hint = transform.dimension if transform is not None else _infer_dimension(fixed, moving)
    fixed_set = as_point_set(fixed, dimension=hint if _is_empty(fixed) else None)
    moving_set = as_point_set(moving, dimension=hint if _is_empty(moving) else None)
    if transform is None:
        transform = TranslationTransform(fixed_set.dimension)

    registration = PointSetRegistration(fixed_set, moving_set, transform, config=config)
    if initial_parameters is not None:
        registration.set_initial_parameters(initial_parameters)
    return registration.run(observer=observer)


def _is_empty(points: PointsLike) -> bool:
    if isinstance(points, PointSet):
        return points.count() == 0
    return np.asarray(points, dtype=float).size == 0


def _infer_dimension(*point_lists: PointsLike) -> int:
    for points in point_lists:
        if isinstance(points, PointSet):
            return points.dimension
        arr = np.asarray(points, dtype=float)
        if arr.ndim == 2 and arr.shape[1] > 0:
            return arr.shape[1]
    return 2
