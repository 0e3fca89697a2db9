import numpy as np
import pytest

from numopt.optimize import (
    EvaluationError,
    ExitCondition,
    MaximumIterationsError,
    ObjectiveFunction,
    PowellMinimizer,
    powell,
)

A = np.array([[3.0, 1.0], [1.0, 2.0]])
CENTRE = np.array([1.0, -2.0])


def coupled_quadratic(x: np.ndarray) -> float:
    d = x - CENTRE
    return float(d @ A @ d + 1.0)


def rosen(x: np.ndarray) -> float:
    return float((1 - x[0]) ** 2 + 100 * (x[1] - x[0] ** 2) ** 2)


def test_coupled_quadratic():
    result = powell(coupled_quadratic, np.zeros(2), xtol=1e-8, ftol=1e-12)
    assert result.exit_condition is ExitCondition.LACK_OF_FUNCTION_IMPROVEMENT
    assert result.success
    assert np.allclose(result.x, CENTRE, atol=1e-4)
    assert result.fun == pytest.approx(1.0, abs=1e-8)
    assert len(result.history) == result.nit + 1


def test_rosenbrock():
    result = powell(lambda x: rosen(x) + 1.0, np.array([-1.2, 1.0]), xtol=1e-8, ftol=1e-10)
    assert np.allclose(result.x, [1.0, 1.0], atol=1e-2)


def test_custom_directions():
    objective = ObjectiveFunction(coupled_quadratic)
    directions = np.array([[1.0, 1.0], [1.0, -1.0]])
    result = PowellMinimizer(1e-8, 1e-12).find_minimum(objective, [3.0, 3.0], directions)
    assert np.allclose(result.x, CENTRE, atol=1e-4)
    assert result.nfev == objective.nfev
    assert np.allclose(directions, [[1.0, 1.0], [1.0, -1.0]])


def test_evaluation_budget_raises():
    with pytest.raises(MaximumIterationsError):
        powell(rosen, np.array([-1.2, 1.0]), ftol=1e-14, maxfev=10)


def test_invalid_arguments():
    with pytest.raises(ValueError):
        PowellMinimizer(x_tolerance=0.0)
    with pytest.raises(ValueError):
        powell(rosen, np.array([]))
    with pytest.raises(ValueError):
        powell(rosen, np.zeros(2), directions=np.eye(3))


def walled_bowl(x: np.ndarray) -> float:
    if x[0] > 1.0:
        return float("nan")
    return float((x - 3.0) @ (x - 3.0) + 1.0)


def test_nan_during_line_search_raises():
    with pytest.raises(EvaluationError) as excinfo:
        powell(walled_bowl, np.zeros(2))
    assert excinfo.value.evaluation.point[0] > 1.0


def test_nan_at_start_raises():
    with pytest.raises(EvaluationError):
        powell(walled_bowl, np.array([2.0, 0.0]))


class StalledExtrapolation(PowellMinimizer):
    """Line minimizer that makes no progress along extrapolated directions."""

    def __init__(self) -> None:
        super().__init__()
        self.seen = []

    def _line_minimize(self, objective, x, direction):
        self.seen.append(np.array(direction))
        if not any(np.allclose(direction, row) for row in np.eye(x.size)):
            return objective.evaluate(x).value, x, np.zeros_like(x)
        return super()._line_minimize(objective, x, direction)


def test_zero_net_step_does_not_replace_a_direction():
    minimizer = StalledExtrapolation()
    result = minimizer.find_minimum(ObjectiveFunction(coupled_quadratic), np.zeros(2))

    extrapolated = [d for d in minimizer.seen if not np.allclose(np.abs(d).sum(), 1.0)]
    assert extrapolated
    assert all(np.any(d) for d in minimizer.seen)
    assert np.allclose(result.x, CENTRE, atol=5e-2)
