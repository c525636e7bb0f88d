"""
Tests for the Levenberg-Marquardt optimizer on small residual models.

The optimizer only needs a residual cost function, so these tests use
hand-written models rather than point sets.
"""

from pathlib import Path
import sys

import numpy as np
import pytest

# Ensure src is importable
sys.path.append(str(Path(__file__).parent.parent / "src"))

from pointset_registration.alignment.optimizer import LevenbergMarquardtOptimizer
from pointset_registration.alignment.results import TerminationState
from pointset_registration.exceptions import EmptyPointSetError, ErrorKind
from pointset_registration.utils.config import OptimizerConfig


class Rosenbrock:
    """Residuals (10 (x2 - x1^2), 1 - x1) with minimum at (1, 1)."""

    number_of_parameters = 2
    number_of_values = 2

    def get_value(self, parameters):
        x1, x2 = parameters
        return np.array([10.0 * (x2 - x1 ** 2), 1.0 - x1])

    def get_derivative(self, parameters):
        x1, _ = parameters
        return np.array([[-20.0 * x1, 10.0], [-1.0, 0.0]])

    def get_value_and_derivative(self, parameters):
        return self.get_value(parameters), self.get_derivative(parameters)


class LinearModel:
    """Residuals A x - b."""

    def __init__(self, A, b):
        self.A = np.asarray(A, dtype=float)
        self.b = np.asarray(b, dtype=float)
        self.number_of_values, self.number_of_parameters = self.A.shape

    def get_value(self, parameters):
        return self.A @ np.asarray(parameters, dtype=float) - self.b

    def get_derivative(self, parameters):
        return self.A.copy()

    def get_value_and_derivative(self, parameters):
        return self.get_value(parameters), self.get_derivative(parameters)


class ConstantModel:
    """Residuals that do not depend on the parameters."""

    number_of_parameters = 2
    number_of_values = 3

    def get_value(self, parameters):
        return np.array([1.0, -2.0, 0.5])

    def get_derivative(self, parameters):
        return np.zeros((3, 2))

    def get_value_and_derivative(self, parameters):
        return self.get_value(parameters), self.get_derivative(parameters)


class VanishingModel(LinearModel):
    """Linear model whose point sets disappear after a few evaluations."""

    def __init__(self, A, b, fail_after):
        super().__init__(A, b)
        self.calls = 0
        self.fail_after = fail_after

    def get_value(self, parameters):
        self.calls += 1
        if self.calls > self.fail_after:
            raise EmptyPointSetError("moving point set became empty")
        return super().get_value(parameters)


def test_rosenbrock_converges_to_minimum():
    opt = LevenbergMarquardtOptimizer(use_cost_function_gradient=True, value_tolerance=0.0)
    result = opt.optimize(Rosenbrock(), [-1.2, 1.0])

    assert result.state is TerminationState.CONVERGED
    assert result.stop_reason == "gradient_tolerance"
    np.testing.assert_allclose(result.parameters, [1.0, 1.0], atol=1e-4)
    assert result.cost < 1e-8


def test_rosenbrock_with_forward_differences():
    opt = LevenbergMarquardtOptimizer(value_tolerance=0.0, gradient_tolerance=1e-4)
    result = opt.optimize(Rosenbrock(), [-1.2, 1.0])

    assert result.converged
    np.testing.assert_allclose(result.parameters, [1.0, 1.0], atol=1e-3)


def test_accepted_costs_strictly_decrease():
    records = []
    opt = LevenbergMarquardtOptimizer(use_cost_function_gradient=True, value_tolerance=0.0)
    result = opt.optimize(Rosenbrock(), [-1.2, 1.0], observer=records.append)

    costs = [rec.cost for rec in records]
    assert len(costs) == len(result.history) > 1
    assert all(b < a for a, b in zip(costs, costs[1:]))
    assert [rec.iteration for rec in records] == sorted(rec.iteration for rec in records)
    assert costs[-1] == pytest.approx(result.cost)


def test_linear_problem_solved_in_few_iterations():
    model = LinearModel([[2.0, 0.0], [0.0, 4.0], [1.0, 1.0]], [2.0, 4.0, 2.0])
    result = LevenbergMarquardtOptimizer(use_cost_function_gradient=True).optimize(model, [0.0, 0.0])

    assert result.converged
    assert result.iterations <= 5
    np.testing.assert_allclose(result.parameters, [1.0, 1.0], atol=1e-6)


def test_already_optimal_stops_at_iteration_zero():
    model = LinearModel(np.eye(2), [3.0, -1.0])
    result = LevenbergMarquardtOptimizer().optimize(model, [3.0, -1.0])

    assert result.state is TerminationState.CONVERGED
    assert result.iterations == 0
    assert result.history == []
    np.testing.assert_array_equal(result.parameters, [3.0, -1.0])


def test_max_iterations_reached_keeps_best_parameters():
    opt = LevenbergMarquardtOptimizer(max_iterations=1, use_cost_function_gradient=True)
    result = opt.optimize(Rosenbrock(), [-1.2, 1.0])

    assert result.state is TerminationState.MAX_ITERATIONS_REACHED
    assert result.iterations == 1
    initial_cost = float(np.sum(Rosenbrock().get_value([-1.2, 1.0]) ** 2))
    assert result.cost < initial_cost


def test_gradient_met_on_last_iteration_counts_as_converged():
    model = LinearModel(np.eye(2), [1.0, 1.0])
    opt = LevenbergMarquardtOptimizer(max_iterations=2, value_tolerance=0.0, use_cost_function_gradient=True)
    result = opt.optimize(model, [0.0, 0.0])

    assert result.state is TerminationState.CONVERGED
    assert result.stop_reason == "gradient_tolerance"
    assert result.iterations == 2
    assert result.history[-1].gradient_norm <= opt.config.gradient_tolerance


def test_zero_iteration_budget_at_optimum_counts_as_converged():
    model = LinearModel(np.eye(2), [3.0, -1.0])
    result = LevenbergMarquardtOptimizer(max_iterations=0).optimize(model, [3.0, -1.0])

    assert result.state is TerminationState.CONVERGED
    assert result.iterations == 0

    far = LevenbergMarquardtOptimizer(max_iterations=0).optimize(model, [0.0, 0.0])
    assert far.state is TerminationState.MAX_ITERATIONS_REACHED


def test_zero_jacobian_fails_with_singular_system():
    result = LevenbergMarquardtOptimizer(use_cost_function_gradient=True).optimize(ConstantModel(), [0.0, 0.0])

    assert result.state is TerminationState.FAILED
    assert result.error is ErrorKind.SINGULAR_SYSTEM
    assert result.iterations == 0
    np.testing.assert_array_equal(result.parameters, [0.0, 0.0])


def test_zero_jacobian_fails_with_forward_differences():
    result = LevenbergMarquardtOptimizer().optimize(ConstantModel(), [1.0, 2.0])
    assert result.failed
    assert result.error is ErrorKind.SINGULAR_SYSTEM


def test_cost_function_error_returned_as_failure():
    model = VanishingModel([[1.0, 0.0], [0.0, 1.0]], [5.0, 5.0], fail_after=1)
    result = LevenbergMarquardtOptimizer(use_cost_function_gradient=True).optimize(model, [0.0, 0.0])

    assert result.state is TerminationState.FAILED
    assert result.error is ErrorKind.EMPTY_POINT_SET
    assert "empty" in result.message
    np.testing.assert_array_equal(result.parameters, [0.0, 0.0])


def test_wrong_initial_length_fails():
    result = LevenbergMarquardtOptimizer().optimize(Rosenbrock(), [1.0, 2.0, 3.0])
    assert result.failed
    assert result.error is ErrorKind.DIMENSION_MISMATCH


def test_scales_leave_marquardt_steps_unchanged():
    """Marquardt damping is scale invariant, so scaled and unscaled runs take the same steps."""
    model = LinearModel([[1.0, 0.0], [0.0, 100.0], [1.0, 1.0]], [1.0, 100.0, 2.0])

    plain_records, scaled_records = [], []
    plain = LevenbergMarquardtOptimizer(use_cost_function_gradient=True).optimize(
        model, [0.0, 0.0], observer=plain_records.append
    )
    scaled = LevenbergMarquardtOptimizer(scales=[1.0, 100.0], use_cost_function_gradient=True).optimize(
        model, [0.0, 0.0], observer=scaled_records.append
    )

    assert scaled.converged
    assert scaled.iterations == plain.iterations
    np.testing.assert_allclose(scaled.parameters, plain.parameters, rtol=1e-8, atol=1e-12)
    np.testing.assert_allclose(scaled.parameters, [1.0, 1.0], atol=1e-6)
    np.testing.assert_allclose(
        [rec.step_norm for rec in scaled_records],
        [rec.step_norm for rec in plain_records],
        rtol=1e-8,
    )

    bad = LevenbergMarquardtOptimizer(scales=[1.0, 1.0, 1.0]).optimize(model, [0.0, 0.0])
    assert bad.error is ErrorKind.DIMENSION_MISMATCH


def test_overrides_and_defaults():
    opt = LevenbergMarquardtOptimizer()
    assert opt.config == OptimizerConfig()
    assert opt.config.max_iterations == 2000
    assert opt.config.gradient_tolerance == 1e-5
    assert opt.config.use_cost_function_gradient is False

    opt = LevenbergMarquardtOptimizer(OptimizerConfig(max_iterations=50), gradient_tolerance=0.1)
    assert opt.config.max_iterations == 50
    assert opt.config.gradient_tolerance == 0.1

    with pytest.raises(ValueError):
        LevenbergMarquardtOptimizer(scales=[1.0, -1.0])
