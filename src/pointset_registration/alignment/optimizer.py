"""
Levenberg-Marquardt Optimizer

Generic damped Gauss-Newton solver for nonlinear least-squares problems. It
only talks to a residual cost function (values and Jacobian at a parameter
vector), so it can drive the ICP metric or any other residual model.

Each iteration solves the Marquardt-damped normal equations

    (JsᵗJs + λ·diag(JsᵗJs)) Δs = -Jsᵗr,    Js = J / scales,  Δ = Δs / scales

and accepts the step only if the sum of squared residuals decreases. The
damping λ shrinks after accepted steps (towards Gauss-Newton) and grows after
rejected ones (towards scaled gradient descent).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, Sequence, Tuple

import numpy as np

from ..exceptions import DimensionMismatchError, RegistrationError, SingularSystemError
from ..utils.config import OptimizerConfig
from .metric import ResidualCostFunction
from .results import IterationRecord, OptimizationResult, TerminationState

logger = logging.getLogger(__name__)

IterationObserver = Callable[[IterationRecord], None]

# Lower bound for λ so that repeated decreases never reach exactly zero.
_MIN_DAMPING = 1e-15


class LeastSquaresSolver(Protocol):
    """Capability interface for solvers used by the registration driver."""

    def optimize(
        self,
        cost_function: ResidualCostFunction,
        initial_parameters: Sequence[float],
        observer: Optional[IterationObserver] = None,
    ) -> OptimizationResult: ...


@dataclass
class OptimizerState:
    """Mutable state of one optimizer run."""

    parameters: np.ndarray
    scales: np.ndarray
    damping: float
    iteration: int = 0
    cost: float = float("inf")
    gradient_norm: float = float("inf")
    state: TerminationState = TerminationState.IDLE


class LevenbergMarquardtOptimizer:
    """
    Levenberg-Marquardt solver with per-parameter scaling.

    Terminal conditions:
    - CONVERGED: gradient norm <= gradient_tolerance, relative cost decrease of
      an accepted step <= value_tolerance, or step norm < epsilon_function.
    - MAX_ITERATIONS_REACHED: iteration budget spent; parameters are the best
      found so far.
    - FAILED: singular normal equations (e.g. an all-zero Jacobian) or a
      registration error raised by the cost function. Failures are returned,
      never raised.
    """

    def __init__(self, config: Optional[OptimizerConfig] = None, **overrides):
        """
        Args:
            config: Optimizer settings; defaults to OptimizerConfig().
            **overrides: Individual OptimizerConfig fields to replace,
                e.g. ``max_iterations=1``.
        """
        config = config or OptimizerConfig()
        if overrides:
            config = OptimizerConfig.model_validate({**config.model_dump(), **overrides})
        self.config = config
        self.state = OptimizerState(
            parameters=np.zeros(0),
            scales=np.zeros(0),
            damping=config.initial_damping,
        )

    def optimize(
        self,
        cost_function: ResidualCostFunction,
        initial_parameters: Sequence[float],
        observer: Optional[IterationObserver] = None,
    ) -> OptimizationResult:
        """
        Minimise the sum of squared residuals of `cost_function`.

        Args:
            cost_function: Residual model providing values and derivatives.
            initial_parameters: Starting parameter vector (length P).
            observer: Optional callback invoked with each accepted iteration.

        Returns:
            OptimizationResult carrying the terminal state and final parameters.
        """
        x0 = np.asarray(initial_parameters, dtype=float).reshape(-1).copy()
        self.state = OptimizerState(
            parameters=x0,
            scales=np.ones(x0.size),
            damping=self.config.initial_damping,
        )
        history: list[IterationRecord] = []
        try:
            return self._run(cost_function, history, observer)
        except RegistrationError as e:
            kind = getattr(e, "kind", None)
            self.state.state = TerminationState.FAILED
            logger.debug("Levenberg-Marquardt failed at iteration %d: %s", self.state.iteration, e)
            return OptimizationResult(
                state=TerminationState.FAILED,
                parameters=self.state.parameters.copy(),
                cost=self.state.cost,
                iterations=self.state.iteration,
                stop_reason=kind.value if kind is not None else "error",
                error=kind,
                message=str(e),
                history=history,
            )

    # ------------------------------------------------------------------
    def _run(
        self,
        cost_function: ResidualCostFunction,
        history: list[IterationRecord],
        observer: Optional[IterationObserver],
    ) -> OptimizationResult:
        cfg = self.config
        state = self.state
        n_params = cost_function.number_of_parameters
        if state.parameters.size != n_params:
            raise DimensionMismatchError(
                f"Initial parameters have length {state.parameters.size}, cost function expects {n_params}"
            )
        if cfg.scales is not None:
            if len(cfg.scales) != n_params:
                raise DimensionMismatchError(
                    f"Scales have length {len(cfg.scales)}, cost function expects {n_params}"
                )
            state.scales = np.asarray(cfg.scales, dtype=float)

        state.state = TerminationState.ITERATING
        x = state.parameters
        r, J = self._evaluate(cost_function, x)
        state.cost = float(r @ r)
        state.gradient_norm = float(np.linalg.norm(2.0 * (J.T @ r)))
        logger.debug("Initial cost %.6e, |g|=%.3e", state.cost, state.gradient_norm)

        for iteration in range(cfg.max_iterations):
            if not np.any(J):
                raise SingularSystemError("Jacobian is identically zero; no gradient information")
            if state.gradient_norm <= cfg.gradient_tolerance:
                return self._finish(TerminationState.CONVERGED, "gradient_tolerance", history)

            Js = J / state.scales
            H = Js.T @ Js
            gs = Js.T @ r

            accepted = False
            solved = False
            for _ in range(cfg.max_step_retries):
                A = H + state.damping * np.diag(np.diag(H))
                try:
                    delta_s = np.linalg.solve(A, -gs)
                except np.linalg.LinAlgError:
                    state.damping *= cfg.damping_increase_factor
                    continue
                if not np.all(np.isfinite(delta_s)):
                    state.damping *= cfg.damping_increase_factor
                    continue
                solved = True

                delta = delta_s / state.scales
                step_norm = float(np.linalg.norm(delta))
                if step_norm < cfg.epsilon_function:
                    return self._finish(TerminationState.CONVERGED, "step_tolerance", history)

                x_new = x + delta
                r_new = np.asarray(cost_function.get_value(x_new), dtype=float).reshape(-1)
                cost_new = float(r_new @ r_new)
                if cost_new < state.cost:
                    accepted = True
                    break
                # Rejected: move towards gradient descent and retry
                state.damping *= cfg.damping_increase_factor

            if not solved:
                raise SingularSystemError(
                    f"Damped normal equations singular after {cfg.max_step_retries} attempts "
                    f"(lambda={state.damping:.3e})"
                )

            state.iteration = iteration + 1
            if not accepted:
                logger.debug(
                    "Iteration %d: no cost-reducing step after %d attempts (lambda=%.3e)",
                    state.iteration,
                    cfg.max_step_retries,
                    state.damping,
                )
                continue

            relative_decrease = (state.cost - cost_new) / state.cost
            x = x_new
            state.parameters = x
            state.cost = cost_new
            state.damping = max(state.damping / cfg.damping_decrease_factor, _MIN_DAMPING)

            r, J = self._evaluate(cost_function, x)
            state.gradient_norm = float(np.linalg.norm(2.0 * (J.T @ r)))

            record = IterationRecord(
                iteration=state.iteration,
                cost=state.cost,
                gradient_norm=state.gradient_norm,
                step_norm=step_norm,
                damping=state.damping,
            )
            history.append(record)
            if observer is not None:
                observer(record)
            logger.debug(
                "Iteration %d: cost=%.6e, |g|=%.3e, |Δ|=%.3e, lambda=%.3e",
                record.iteration,
                record.cost,
                record.gradient_norm,
                record.step_norm,
                record.damping,
            )

            if np.any(J) and state.gradient_norm <= cfg.gradient_tolerance:
                return self._finish(TerminationState.CONVERGED, "gradient_tolerance", history)
            if relative_decrease <= cfg.value_tolerance:
                return self._finish(TerminationState.CONVERGED, "value_tolerance", history)

        # Also reached with max_iterations=0 when the start already satisfies the gradient test
        if np.any(J) and state.gradient_norm <= cfg.gradient_tolerance:
            return self._finish(TerminationState.CONVERGED, "gradient_tolerance", history)
        return self._finish(TerminationState.MAX_ITERATIONS_REACHED, "max_iterations", history)

    def _finish(
        self,
        terminal: TerminationState,
        stop_reason: str,
        history: list[IterationRecord],
    ) -> OptimizationResult:
        state = self.state
        state.state = terminal
        logger.debug(
            "Levenberg-Marquardt stopped (%s, %s) after %d iterations, cost=%.6e",
            terminal.value,
            stop_reason,
            state.iteration,
            state.cost,
        )
        return OptimizationResult(
            state=terminal,
            parameters=state.parameters.copy(),
            cost=state.cost,
            iterations=state.iteration,
            stop_reason=stop_reason,
            message=f"{terminal.value}: {stop_reason}",
            history=history,
        )

    def _evaluate(self, cost_function: ResidualCostFunction, x: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Residuals and Jacobian at `x`, analytic or by forward differences."""
        if self.config.use_cost_function_gradient:
            r, J = cost_function.get_value_and_derivative(x)
            r = np.asarray(r, dtype=float).reshape(-1)
        else:
            r = np.asarray(cost_function.get_value(x), dtype=float).reshape(-1)
            J = self._finite_difference_jacobian(cost_function, x, r)
        J = np.asarray(J, dtype=float)
        if J.shape != (r.size, x.size):
            raise DimensionMismatchError(
                f"Jacobian has shape {J.shape}, expected {(r.size, x.size)}"
            )
        return r, J

    def _finite_difference_jacobian(
        self,
        cost_function: ResidualCostFunction,
        x: np.ndarray,
        r: np.ndarray,
    ) -> np.ndarray:
        # Forward differences with step sqrt(epsilon_function) * |x_j|
        eps = np.sqrt(max(self.config.epsilon_function, np.finfo(float).eps))
        J = np.empty((r.size, x.size))
        for j in range(x.size):
            h = eps * abs(x[j])
            if h == 0.0:
                h = eps
            x_h = x.copy()
            x_h[j] += h
            r_h = np.asarray(cost_function.get_value(x_h), dtype=float).reshape(-1)
            J[:, j] = (r_h - r) / h
        return J
