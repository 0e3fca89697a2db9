import numpy as np
import pytest

from numopt.optimize import (
    ExitCondition,
    LineSearchError,
    ObjectiveFunction,
    StrongWolfeLineSearch,
    WeakWolfeLineSearch,
)


def quadratic_fun(x: np.ndarray) -> float:
    return float(x.T @ x)


def quadratic_grad(x: np.ndarray) -> np.ndarray:
    return 2 * x


def rosen(x: np.ndarray) -> float:
    return (1 - x[0]) ** 2 + 100 * (x[1] - x[0] ** 2) ** 2


def rosen_grad(x: np.ndarray) -> np.ndarray:
    return np.array(
        [
            -2 * (1 - x[0]) - 400 * x[0] * (x[1] - x[0] ** 2),
            200 * (x[1] - x[0] ** 2),
        ]
    )


def start_at(fun, grad, x):
    objective = ObjectiveFunction(fun, grad)
    objective.evaluate_at(np.asarray(x, dtype=float))
    return objective


def test_weak_wolfe_accepts_initial_step_on_quadratic():
    objective = start_at(quadratic_fun, quadratic_grad, [1.0, -2.0])
    direction = -0.5 * objective.gradient
    result = WeakWolfeLineSearch().find_conforming_step(objective, direction)
    assert result.step == 1.0
    assert result.iterations == 0
    assert result.exit_condition is ExitCondition.WEAK_WOLFE_CRITERIA
    assert np.allclose(result.evaluation.point, 0.0)
    assert np.allclose(objective.point, [1.0, -2.0])


def test_strong_wolfe_conditions_rosenbrock():
    objective = start_at(rosen, rosen_grad, [-1.2, 1.0])
    x = objective.point
    grad = objective.gradient
    direction = -grad
    c1, c2 = 1e-4, 0.9
    result = StrongWolfeLineSearch(c1, c2).find_conforming_step(objective, direction)
    alpha = result.step
    assert result.exit_condition is ExitCondition.STRONG_WOLFE_CRITERIA
    assert rosen(x + alpha * direction) <= rosen(x) + c1 * alpha * (grad @ direction)
    assert abs(rosen_grad(x + alpha * direction) @ direction) <= c2 * abs(grad @ direction)
    assert result.iterations > 0


def test_weak_wolfe_expands_short_steps():
    objective = start_at(quadratic_fun, quadratic_grad, [4.0])
    direction = np.array([-1.0])
    result = WeakWolfeLineSearch(1e-4, 0.9).find_conforming_step(
        objective, direction, initial_step=0.01
    )
    assert result.step > 0.01
    slope = quadratic_grad(result.evaluation.point) @ direction
    assert slope >= 0.9 * (objective.gradient @ direction)


def test_step_never_exceeds_upper_bound():
    objective = start_at(quadratic_fun, quadratic_grad, [4.0])
    result = WeakWolfeLineSearch().find_conforming_step(
        objective, np.array([-1.0]), initial_step=10.0, upper_bound=3.0
    )
    assert result.step <= 3.0


def test_projection_is_applied_to_trial_points():
    seen = []

    def fun(x: np.ndarray) -> float:
        seen.append(x.copy())
        return quadratic_fun(x)

    objective = start_at(fun, quadratic_grad, [2.0, 2.0])
    WeakWolfeLineSearch().find_conforming_step(
        objective,
        np.array([-4.0, -4.0]),
        projection=lambda x: np.clip(x, 0.5, None),
    )
    assert all(np.all(x >= 0.5) for x in seen[1:])


def test_non_descent_direction_raises():
    objective = start_at(quadratic_fun, quadratic_grad, [1.0])
    with pytest.raises(LineSearchError):
        WeakWolfeLineSearch().find_conforming_step(objective, np.array([1.0]))


def test_unbounded_direction_raises():
    objective = start_at(lambda x: float(-x[0]), lambda x: np.array([-1.0]), [0.0])
    with pytest.raises(LineSearchError, match="unbounded"):
        WeakWolfeLineSearch(max_iterations=50).find_conforming_step(
            objective, np.array([1.0])
        )


def test_requires_gradient():
    objective = ObjectiveFunction(quadratic_fun)
    objective.evaluate_at(np.array([1.0]))
    with pytest.raises(LineSearchError):
        WeakWolfeLineSearch().find_conforming_step(objective, np.array([-1.0]))


@pytest.mark.parametrize(
    "kwargs",
    [
        {"c1": 0.5, "c2": 0.4},
        {"c1": 0.0, "c2": 0.9},
        {"c1": 1e-4, "c2": 1.0},
        {"parameter_tolerance": 0.0},
        {"max_iterations": 0},
    ],
)
def test_invalid_parameters_raise(kwargs):
    with pytest.raises(ValueError):
        StrongWolfeLineSearch(**kwargs)


def test_invalid_steps_raise():
    objective = start_at(quadratic_fun, quadratic_grad, [1.0])
    search = WeakWolfeLineSearch()
    with pytest.raises(ValueError):
        search.find_conforming_step(objective, np.array([-1.0]), initial_step=0.0)
    with pytest.raises(ValueError):
        search.find_conforming_step(objective, np.array([-1.0]), upper_bound=-1.0)
