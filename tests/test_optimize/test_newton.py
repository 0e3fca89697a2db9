import numpy as np
import pytest

from numopt.optimize import (
    IncompatibleObjectiveError,
    NewtonMinimizer,
    ObjectiveFunction,
    Problem,
    newton_method,
)


def rosen(x: np.ndarray) -> float:
    return (1 - x[0]) ** 2 + 100 * (x[1] - x[0] ** 2) ** 2


def rosen_grad(x: np.ndarray) -> np.ndarray:
    return np.array(
        [
            -2 * (1 - x[0]) - 400 * x[0] * (x[1] - x[0] ** 2),
            200 * (x[1] - x[0] ** 2),
        ]
    )


def rosen_hess(x: np.ndarray) -> np.ndarray:
    return np.array(
        [
            [1200 * x[0] ** 2 - 400 * x[1] + 2, -400 * x[0]],
            [-400 * x[0], 200],
        ]
    )


def test_newton_solves_quadratic_in_one_step():
    A = np.array([[3.0, 0.5], [0.5, 2.0]])
    b = np.array([1.0, -1.0])

    def fun(x: np.ndarray) -> float:
        return 0.5 * x @ (A @ x) - b @ x

    def grad(x: np.ndarray) -> np.ndarray:
        return A @ x - b

    def hess(_: np.ndarray) -> np.ndarray:
        return A

    problem = Problem(fun=fun, grad=grad, hess=hess, dim=2)
    res = newton_method(problem, np.array([2.0, 2.0]), maxiter=5)
    assert res.success
    assert res.nit == 1
    assert np.allclose(res.x, np.linalg.solve(A, b), atol=1e-10)


def test_newton_rosenbrock():
    problem = Problem(fun=rosen, grad=rosen_grad, hess=rosen_hess, dim=2)
    res = newton_method(problem, np.array([-1.2, 1.0]), maxiter=100)
    assert res.success
    assert res.fun < 1e-10
    assert np.allclose(res.x, np.ones(2), atol=1e-5)
    assert res.nhev > 0


def test_newton_fallback_gradient_and_hessian():
    def fun(x: np.ndarray) -> float:
        return float(np.sum((x - 1.0) ** 2))

    problem = Problem(fun=fun, dim=2)
    res = newton_method(problem, np.array([2.5, -3.0]), maxiter=20)
    assert res.success
    assert res.grad_norm < 1e-5


def test_newton_history_tracking():
    def fun(x: np.ndarray) -> float:
        return float(np.sum((x - 0.5) ** 2))

    def grad(x: np.ndarray) -> np.ndarray:
        return 2 * (x - 0.5)

    def hess(_: np.ndarray) -> np.ndarray:
        return 2 * np.eye(2)

    problem = Problem(fun=fun, grad=grad, hess=hess, dim=2)
    res = newton_method(problem, np.array([2.0, -1.0]), history=True, maxiter=5)
    assert res.success
    assert len(res.history) >= 2


def test_indefinite_hessian_falls_back_to_steepest_descent():
    def fun(x: np.ndarray) -> float:
        return float(x[0] ** 4 - x[0] ** 2 + x[1] ** 2)

    def grad(x: np.ndarray) -> np.ndarray:
        return np.array([4 * x[0] ** 3 - 2 * x[0], 2 * x[1]])

    def hess(x: np.ndarray) -> np.ndarray:
        return np.diag([12 * x[0] ** 2 - 2, 2.0])

    objective = ObjectiveFunction(fun, grad, hess)
    res = NewtonMinimizer().find_minimum(objective, np.array([0.1, 0.0]))
    assert res.success
    assert res.resets >= 1
    assert np.allclose(np.abs(res.x), [np.sqrt(0.5), 0.0], atol=1e-6)


def test_newton_safe_solve_fallback(monkeypatch: pytest.MonkeyPatch):
    original_solve = np.linalg.solve
    calls = {"count": 0}

    def flaky_solve(*args, **kwargs):
        calls["count"] += 1
        if calls["count"] == 1:
            raise np.linalg.LinAlgError
        return original_solve(*args, **kwargs)

    monkeypatch.setattr(np.linalg, "solve", flaky_solve)

    def fun(x: np.ndarray) -> float:
        return float(np.sum((x - 1.0) ** 2))

    def grad(x: np.ndarray) -> np.ndarray:
        return 2 * (x - 1.0)

    def hess(_: np.ndarray) -> np.ndarray:
        return 2 * np.eye(2)

    problem = Problem(fun=fun, grad=grad, hess=hess, dim=2)
    res = newton_method(problem, np.array([3.0, -2.0]), maxiter=20)
    assert res.success
    assert calls["count"] >= 2


def test_newton_zero_iterations_checks_gradient():
    def fun(x: np.ndarray) -> float:
        return float(np.sum(x**2))

    def grad(x: np.ndarray) -> np.ndarray:
        return 2 * x

    def hess(_: np.ndarray) -> np.ndarray:
        return 2 * np.eye(2)

    problem = Problem(fun=fun, grad=grad, hess=hess, dim=2)
    res = newton_method(problem, np.zeros(2), maxiter=0)
    assert res.success
    assert res.nit == 0


def test_newton_requires_hessian():
    objective = ObjectiveFunction(rosen, rosen_grad)
    with pytest.raises(IncompatibleObjectiveError):
        NewtonMinimizer().find_minimum(objective, np.array([-1.2, 1.0]))
