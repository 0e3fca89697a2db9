"""Finite differences and small linear-algebra helpers.

Everything here is pure NumPy and deterministic; the minimizers use these
routines whenever a user does not supply analytic derivatives.
"""

from __future__ import annotations

from typing import Callable, Optional

import numpy as np

Array = np.ndarray
Objective = Callable[[Array], float]
VectorFunction = Callable[[Array], Array]

SQRT_EPS = float(np.sqrt(np.finfo(float).eps))

# Offsets (in units of h) and weights for first-derivative stencils keyed by
# accuracy order; the derivative is sum(w * f(x + k h)) / (denominator * h).
_STENCILS: dict[int, tuple[tuple[int, ...], tuple[float, ...], float]] = {
    1: ((0, 1), (-1.0, 1.0), 1.0),
    2: ((-1, 1), (-1.0, 1.0), 2.0),
    3: ((0, 1, 2, 3), (-11.0, 18.0, -9.0, 2.0), 6.0),
    4: ((-2, -1, 1, 2), (1.0, -8.0, 8.0, -1.0), 12.0),
    5: ((0, 1, 2, 3, 4, 5), (-137.0, 300.0, -300.0, 200.0, -75.0, 12.0), 60.0),
    6: ((-3, -2, -1, 1, 2, 3), (-1.0, 9.0, -45.0, 45.0, -9.0, 1.0), 60.0),
}


def approx_grad(
    fun: Objective, x: Array, eps: float = 1e-6, return_evals: bool = False
) -> Array | tuple[Array, int]:
    """Compute a central-difference gradient approximation.

    Parameters
    ----------
    fun:
        Objective function returning a scalar given x.
    x:
        Point where the gradient is approximated.
    eps:
        Perturbation size for finite differences.
    """
    if eps <= 0:
        raise ValueError("eps must be positive")
    x = np.asarray(x, dtype=float)
    grad = np.zeros(x.size, dtype=float)
    for i in range(x.size):
        step = np.zeros_like(x)
        step[i] = eps
        grad[i] = (fun(x + step) - fun(x - step)) / (2.0 * eps)
    if return_evals:
        return grad, 2 * x.size
    return grad


def approx_hessian(
    fun: Objective, x: Array, eps: float = 1e-4, return_evals: bool = False
) -> Array | tuple[Array, int]:
    """Approximate the Hessian using second-order central differences."""
    if eps <= 0:
        raise ValueError("eps must be positive")
    x = np.asarray(x, dtype=float)
    n = x.size
    basis = np.eye(n) * eps
    hess = np.zeros((n, n), dtype=float)
    fx = fun(x)
    evals = 1
    for i in range(n):
        ei = basis[i]
        hess[i, i] = (fun(x + ei) - 2.0 * fx + fun(x - ei)) / eps**2
        evals += 2
        for j in range(i + 1, n):
            ej = basis[j]
            value = (
                fun(x + ei + ej) - fun(x + ei - ej) - fun(x - ei + ej) + fun(x - ei - ej)
            ) / (4.0 * eps**2)
            evals += 4
            hess[i, j] = value
            hess[j, i] = value
    if return_evals:
        return hess, evals
    return hess


def approx_jacobian(
    fun: VectorFunction,
    x: Array,
    f0: Optional[Array] = None,
    order: int = 2,
    rel_step: float = 3e-6,
    skip: Optional[Array] = None,
    return_evals: bool = False,
) -> Array | tuple[Array, int]:
    """Finite-difference Jacobian of a vector function.

    The step for column ``j`` is ``rel_step * max(|x_j|, sqrt(eps))``.
    ``order`` selects a stencil of accuracy 1 through 6; ``skip`` marks
    columns that are left at zero (fixed parameters).
    """
    if order not in _STENCILS:
        raise ValueError("order must be an integer between 1 and 6")
    x = np.asarray(x, dtype=float)
    offsets, weights, denominator = _STENCILS[order]
    evals = 0
    if f0 is None and 0 in offsets:
        f0 = np.asarray(fun(x), dtype=float)
        evals += 1
    jac: Optional[Array] = None
    for j in range(x.size):
        if skip is not None and skip[j]:
            continue
        h = rel_step * max(abs(x[j]), SQRT_EPS)
        column = 0.0
        for k, w in zip(offsets, weights):
            if k == 0:
                values = f0
            else:
                shifted = x.copy()
                shifted[j] += k * h
                values = np.asarray(fun(shifted), dtype=float)
                evals += 1
            column = column + w * values
        column = np.asarray(column, dtype=float) / (denominator * h)
        if jac is None:
            jac = np.zeros((column.size, x.size), dtype=float)
        jac[:, j] = column
    if jac is None:
        if f0 is None:
            f0 = np.asarray(fun(x), dtype=float)
            evals += 1
        jac = np.zeros((np.asarray(f0).size, x.size), dtype=float)
    if return_evals:
        return jac, evals
    return jac


def safe_solve(mat: Array, vec: Array, reg: float = 1e-12) -> Array:
    """Solve linear system with ridge fallback for singular matrices."""
    try:
        return np.linalg.solve(mat, vec)
    except np.linalg.LinAlgError:
        eye = np.eye(mat.shape[0], dtype=mat.dtype)
        return np.linalg.solve(mat + reg * eye, vec)


def cholesky_solve(mat: Array, vec: Array) -> Array:
    """Solve ``mat @ x = vec`` for symmetric positive-definite ``mat``.

    Raises ``numpy.linalg.LinAlgError`` when ``mat`` is not positive definite.
    """
    lower = np.linalg.cholesky(mat)
    return np.linalg.solve(lower.T, np.linalg.solve(lower, vec))


__all__ = [
    "Array",
    "Objective",
    "SQRT_EPS",
    "approx_grad",
    "approx_hessian",
    "approx_jacobian",
    "cholesky_solve",
    "safe_solve",
]
