import numpy as np
import pytest

from numopt.optimize.utils import (
    approx_grad,
    approx_hessian,
    approx_jacobian,
    cholesky_solve,
    safe_solve,
)


def test_approx_grad_matches_linear_function():
    def fun(x: np.ndarray) -> float:
        return float(3 * x[0] - 2 * x[1])

    grad = approx_grad(fun, np.array([0.2, -0.1]))
    assert np.allclose(grad, np.array([3.0, -2.0]), atol=1e-6)


def test_approx_grad_counts_evaluations():
    grad, evals = approx_grad(lambda x: float(x @ x), np.ones(3), return_evals=True)
    assert np.allclose(grad, 2 * np.ones(3), atol=1e-6)
    assert evals == 6


def test_approx_hessian_matches_quadratic():
    def fun(x: np.ndarray) -> float:
        return float(x[0] ** 2 + 3 * x[1] ** 2 + x[0] * x[1])

    hess = approx_hessian(fun, np.array([0.5, -1.5]))
    assert np.allclose(hess, np.array([[2.0, 1.0], [1.0, 6.0]]), atol=1e-3)


def test_approx_grad_invalid_eps():
    with pytest.raises(ValueError):
        approx_grad(lambda x: float(x[0]), np.array([0.0]), eps=0.0)


@pytest.mark.parametrize("order", [1, 2, 3, 4, 5, 6])
def test_approx_jacobian_orders(order):
    def fun(p: np.ndarray) -> np.ndarray:
        return np.array([p[0] ** 2 * p[1], np.sin(p[0]) + p[1] ** 3])

    p = np.array([0.7, 1.3])
    expected = np.array(
        [[2 * p[0] * p[1], p[0] ** 2], [np.cos(p[0]), 3 * p[1] ** 2]]
    )
    jac = approx_jacobian(fun, p, order=order)
    tol = 1e-4 if order == 1 else 1e-7
    assert np.allclose(jac, expected, atol=tol)


def test_approx_jacobian_skips_fixed_columns():
    def fun(p: np.ndarray) -> np.ndarray:
        return np.array([p[0] + 2 * p[1], p[0] * p[1]])

    jac = approx_jacobian(fun, np.array([1.0, 2.0]), skip=np.array([False, True]))
    assert np.allclose(jac[:, 1], 0.0)
    assert np.allclose(jac[:, 0], [1.0, 2.0], atol=1e-7)


def test_approx_jacobian_rejects_unknown_order():
    with pytest.raises(ValueError):
        approx_jacobian(lambda p: p, np.ones(2), order=7)


def test_safe_solve_regularizes_singular_matrix():
    mat = np.array([[1.0, 1.0], [1.0, 1.0]])
    vec = np.array([1.0, 1.0])
    solution = safe_solve(mat, vec)
    assert np.allclose(mat @ solution, vec, atol=1e-6)


def test_cholesky_solve_rejects_indefinite_matrix():
    mat = np.array([[4.0, 1.0], [1.0, 3.0]])
    vec = np.array([1.0, 2.0])
    assert np.allclose(cholesky_solve(mat, vec), np.linalg.solve(mat, vec))

    indefinite = np.array([[1.0, 0.0], [0.0, -1.0]])
    with pytest.raises(np.linalg.LinAlgError):
        cholesky_solve(indefinite, vec)
