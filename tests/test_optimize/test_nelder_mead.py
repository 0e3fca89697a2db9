import numpy as np
import pytest

from numopt.optimize import (
    EvaluationError,
    ExitCondition,
    MaximumIterationsError,
    NelderMeadSimplex,
    ObjectiveFunction,
    nelder_mead,
)
from numopt.optimize.nelder_mead import default_perturbation


def rosen(x: np.ndarray) -> float:
    return float((1 - x[0]) ** 2 + 100 * (x[1] - x[0] ** 2) ** 2)


def test_shifted_quadratic():
    result = nelder_mead(lambda x: float((x - 1) @ (x - 1) + 1), np.array([3.0, 2.0]))
    assert result.exit_condition is ExitCondition.CONVERGED
    assert result.success
    assert np.allclose(result.x, [1.0, 1.0], atol=1e-3)
    assert result.fun == pytest.approx(1.0, abs=1e-6)


def test_rosenbrock():
    result = nelder_mead(lambda x: rosen(x) + 1.0, np.array([-1.2, 1.0]), maxiter=5000)
    assert np.allclose(result.x, [1.0, 1.0], atol=1e-2)
    assert result.nit > 0


def test_starting_at_zero_uses_small_simplex():
    assert np.allclose(default_perturbation([0.0, 2.0]), [0.00025, 0.1])
    result = nelder_mead(lambda x: float((x[0] - 0.5) ** 2 + 1.0), np.array([0.0]))
    assert result.x[0] == pytest.approx(0.5, abs=1e-3)


def test_custom_perturbation():
    objective = ObjectiveFunction(lambda x: float(np.sum((x - 2.0) ** 2) + 1.0))
    result = NelderMeadSimplex().find_minimum(objective, [0.0, 0.0], [1.0, 1.0])
    assert np.allclose(result.x, [2.0, 2.0], atol=1e-3)


def test_evaluation_budget_raises():
    with pytest.raises(MaximumIterationsError):
        nelder_mead(rosen, np.array([-1.2, 1.0]), maxiter=20)


def test_invalid_arguments():
    with pytest.raises(ValueError):
        NelderMeadSimplex(convergence_tolerance=0.0)
    with pytest.raises(ValueError):
        NelderMeadSimplex(maximum_iterations=0)
    with pytest.raises(ValueError):
        nelder_mead(rosen, np.array([]))
    with pytest.raises(ValueError):
        nelder_mead(rosen, np.array([1.0, 1.0]), initial_perturbation=[0.1])


def walled_bowl(x: np.ndarray) -> float:
    if x[0] > 1.0:
        return float("nan")
    return float((x - 3.0) @ (x - 3.0) + 1.0)


def test_nan_in_initial_simplex_raises():
    with pytest.raises(EvaluationError):
        nelder_mead(walled_bowl, np.array([1.0, 1.0]), maxiter=500)


def test_nan_trial_point_raises():
    with pytest.raises(EvaluationError) as excinfo:
        nelder_mead(walled_bowl, np.array([0.0, 0.0]), maxiter=5000)
    assert excinfo.value.evaluation.point[0] > 1.0


def test_shrink_counts_one_evaluation_per_moved_vertex():
    def kinked(x: np.ndarray) -> float:
        t = float(x[0])
        return -5.0 * t if t < 0 else 4.0 * t * (1.0 - t) + t

    # Iteration 1 reflects to -1, contracts to 0.5 and shrinks (3 evaluations);
    # iteration 2 reflects to -0.5 and contracts to 0.25 (2 evaluations).
    objective = ObjectiveFunction(kinked)
    minimizer = NelderMeadSimplex(maximum_iterations=4)
    with pytest.raises(MaximumIterationsError):
        minimizer.find_minimum(objective, [0.0], initial_perturbation=[1.0])
    assert objective.nfev == 2 + 3 + 2
