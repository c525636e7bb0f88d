"""
Registration Outcomes

Tagged result types returned by the optimizer and the registration driver.
A run never raises for a terminal condition; the state and, on failure, the
structured error kind travel in the result instead.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

import numpy as np

from ..exceptions import ERROR_TYPES, ErrorKind, RegistrationError


class TerminationState(str, Enum):
    IDLE = "idle"
    ITERATING = "iterating"
    CONVERGED = "converged"
    MAX_ITERATIONS_REACHED = "max_iterations_reached"
    FAILED = "failed"


@dataclass(frozen=True)
class IterationRecord:
    """Diagnostics of one accepted optimizer iteration."""

    iteration: int
    cost: float
    gradient_norm: float
    step_norm: float
    damping: float


@dataclass
class OptimizationResult:
    """
    Terminal outcome of a least-squares solve.

    Attributes:
        state: One of CONVERGED, MAX_ITERATIONS_REACHED or FAILED.
        parameters: Best parameters found (the initial ones if nothing was accepted).
        cost: Sum of squared residuals at `parameters`.
        iterations: Number of iterations executed.
        stop_reason: Short tag naming the criterion that ended the run.
        error: Structured error kind when state is FAILED.
        message: Human readable diagnostic.
        history: Accepted iterations, in order.
    """

    state: TerminationState
    parameters: np.ndarray
    cost: float
    iterations: int
    stop_reason: str
    error: Optional[ErrorKind] = None
    message: str = ""
    history: List[IterationRecord] = field(default_factory=list)

    @property
    def converged(self) -> bool:
        return self.state is TerminationState.CONVERGED

    @property
    def failed(self) -> bool:
        return self.state is TerminationState.FAILED


@dataclass
class RegistrationResult(OptimizationResult):
    """Outcome of a point set registration run."""

    initial_parameters: Optional[np.ndarray] = None
    number_of_fixed_points: int = 0
    number_of_moving_points: int = 0

    @classmethod
    def from_optimization(
        cls,
        result: OptimizationResult,
        *,
        initial_parameters: np.ndarray,
        number_of_fixed_points: int,
        number_of_moving_points: int,
    ) -> "RegistrationResult":
        return cls(
            state=result.state,
            parameters=result.parameters,
            cost=result.cost,
            iterations=result.iterations,
            stop_reason=result.stop_reason,
            error=result.error,
            message=result.message,
            history=list(result.history),
            initial_parameters=initial_parameters,
            number_of_fixed_points=number_of_fixed_points,
            number_of_moving_points=number_of_moving_points,
        )

    @classmethod
    def failure(
        cls,
        error: RegistrationError,
        parameters: np.ndarray,
        *,
        number_of_fixed_points: int = 0,
        number_of_moving_points: int = 0,
    ) -> "RegistrationResult":
        """Build a FAILED result for an error detected before any iteration."""
        return cls(
            state=TerminationState.FAILED,
            parameters=parameters,
            cost=float("inf"),
            iterations=0,
            stop_reason="setup",
            error=error.kind,
            message=str(error),
            initial_parameters=parameters,
            number_of_fixed_points=number_of_fixed_points,
            number_of_moving_points=number_of_moving_points,
        )

    def raise_for_failure(self) -> None:
        """Raise the error matching `error` if the run failed; no-op otherwise."""
        if not self.failed:
            return
        exc_type = ERROR_TYPES.get(self.error, RegistrationError)
        raise exc_type(self.message or f"Registration failed ({self.stop_reason})")
