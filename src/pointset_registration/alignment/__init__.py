"""
Spatial Alignment Module

This module provides ICP registration of point sets: parametric transforms,
the closest point residual metric, a Levenberg-Marquardt optimizer and the
registration driver that ties them together.
"""

from .transforms import (
    ParametricTransform,
    TranslationTransform,
    Rigid2DTransform,
    AffineTransform,
    create_transform,
)
from .metric import IterativeClosestPointMetric, ResidualCostFunction, Correspondences
from .optimizer import LevenbergMarquardtOptimizer, LeastSquaresSolver, OptimizerState
from .registration import PointSetRegistration, register_point_sets
from .results import (
    TerminationState,
    IterationRecord,
    OptimizationResult,
    RegistrationResult,
)

__all__ = [
    "ParametricTransform",
    "TranslationTransform",
    "Rigid2DTransform",
    "AffineTransform",
    "create_transform",
    "IterativeClosestPointMetric",
    "ResidualCostFunction",
    "Correspondences",
    "LevenbergMarquardtOptimizer",
    "LeastSquaresSolver",
    "OptimizerState",
    "PointSetRegistration",
    "register_point_sets",
    "TerminationState",
    "IterationRecord",
    "OptimizationResult",
    "RegistrationResult",
]
