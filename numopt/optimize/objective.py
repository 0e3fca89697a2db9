"""Objective functions with lazily evaluated, cached derivatives.

An :class:`ObjectiveFunction` owns a *current* :class:`Evaluation`. Moving
it with :meth:`ObjectiveFunction.evaluate_at` replaces that evaluation, so
nothing cached at the old point survives. Evaluations themselves are
immutable snapshots: minimizers keep the previous iterate as an
``Evaluation`` while trial points are produced with
:meth:`ObjectiveFunction.evaluate`, which leaves the current point alone.
"""

from __future__ import annotations

import itertools
from enum import Flag
from typing import Callable, Optional, Union

import numpy as np

from .core import (
    Array,
    EvaluationError,
    Gradient,
    Hessian,
    IncompatibleObjectiveError,
    Objective,
    OptimizationError,
    Problem,
)
from .utils import approx_grad, approx_hessian


class Cached(Flag):
    """Which quantities of an evaluation have been realized."""

    NONE = 0
    VALUE = 1
    GRADIENT = 2
    HESSIAN = 4


class _Functions:
    """User callables and the evaluation counters shared by forks."""

    def __init__(
        self,
        fun: Objective,
        grad: Optional[Gradient],
        hess: Optional[Hessian],
        finite_difference: bool,
        eps: float,
        hess_eps: float,
    ) -> None:
        self.fun = fun
        self.grad = grad
        self.hess = hess
        self.finite_difference = finite_difference
        self.eps = eps
        self.hess_eps = hess_eps
        self.nfev = 0
        self.njev = 0
        self.nhev = 0
        self._generations = itertools.count()

    @property
    def gradient_supported(self) -> bool:
        return self.grad is not None or self.finite_difference

    @property
    def hessian_supported(self) -> bool:
        return self.hess is not None or self.finite_difference

    def next_generation(self) -> int:
        return next(self._generations)

    def value(self, x: Array) -> float:
        self.nfev += 1
        return float(self.fun(x))

    def gradient(self, x: Array) -> Array:
        if self.grad is not None:
            self.njev += 1
            return np.asarray(self.grad(x), dtype=float).reshape(x.shape)
        grad, evals = approx_grad(self.fun, x, eps=self.eps, return_evals=True)
        self.nfev += evals
        return grad

    def hessian(self, x: Array) -> Array:
        if self.hess is not None:
            self.nhev += 1
            return np.asarray(self.hess(x), dtype=float).reshape(x.size, x.size)
        hess, evals = approx_hessian(self.fun, x, eps=self.hess_eps, return_evals=True)
        self.nfev += evals
        return hess


class Evaluation:
    """Immutable point with lazily computed value, gradient and Hessian."""

    def __init__(self, functions: _Functions, point: Array) -> None:
        self._functions = functions
        self._point = np.array(point, dtype=float)
        self._point.setflags(write=False)
        self.generation = functions.next_generation()
        self._cached = Cached.NONE
        self._value = 0.0
        self._gradient: Optional[Array] = None
        self._hessian: Optional[Array] = None

    def __repr__(self) -> str:
        return f"Evaluation(point={self._point!r}, cached={self._cached})"

    @property
    def point(self) -> Array:
        return self._point

    @property
    def cached(self) -> Cached:
        return self._cached

    @property
    def gradient_supported(self) -> bool:
        return self._functions.gradient_supported

    @property
    def hessian_supported(self) -> bool:
        return self._functions.hessian_supported

    def _call(self, compute: Callable[[Array], object], what: str):
        try:
            return compute(self._point)
        except OptimizationError:
            raise
        except Exception as exc:
            raise EvaluationError(
                f"{what} evaluation failed at {self._point}: {exc}", self
            ) from exc

    @property
    def value(self) -> float:
        if Cached.VALUE not in self._cached:
            self._value = self._call(self._functions.value, "objective")
            self._cached |= Cached.VALUE
        return self._value

    @property
    def gradient(self) -> Array:
        if not self.gradient_supported:
            raise IncompatibleObjectiveError("objective does not provide a gradient")
        if Cached.GRADIENT not in self._cached:
            gradient = self._call(self._functions.gradient, "gradient")
            gradient.setflags(write=False)
            self._gradient = gradient
            self._cached |= Cached.GRADIENT
        return self._gradient

    @property
    def hessian(self) -> Array:
        if not self.hessian_supported:
            raise IncompatibleObjectiveError("objective does not provide a Hessian")
        if Cached.HESSIAN not in self._cached:
            hessian = self._call(self._functions.hessian, "Hessian")
            hessian.setflags(write=False)
            self._hessian = hessian
            self._cached |= Cached.HESSIAN
        return self._hessian


def validate_evaluation(evaluation: Evaluation) -> None:
    """Raise :class:`EvaluationError` if the value or gradient is not finite."""
    if not np.isfinite(evaluation.value):
        raise EvaluationError(
            f"non-finite objective value at {evaluation.point}", evaluation
        )
    if evaluation.gradient_supported and not np.all(np.isfinite(evaluation.gradient)):
        raise EvaluationError(f"non-finite gradient at {evaluation.point}", evaluation)


class ObjectiveFunction:
    """Scalar objective with an optional gradient and Hessian.

    Parameters
    ----------
    fun:
        Callable returning the objective value at a point.
    grad, hess:
        Optional analytic derivatives.
    finite_difference:
        Approximate missing derivatives with central differences. The
        capability flags are fixed here and never change afterwards.
    eps, hess_eps:
        Finite-difference step sizes for the gradient and the Hessian.
    """

    def __init__(
        self,
        fun: Objective,
        grad: Optional[Gradient] = None,
        hess: Optional[Hessian] = None,
        *,
        finite_difference: bool = False,
        eps: float = 1e-6,
        hess_eps: float = 1e-4,
    ) -> None:
        if not callable(fun):
            raise TypeError("fun must be callable")
        self._functions = _Functions(fun, grad, hess, finite_difference, eps, hess_eps)
        self._current: Optional[Evaluation] = None

    @classmethod
    def from_problem(cls, problem: Problem) -> "ObjectiveFunction":
        """Build an objective from a :class:`Problem`, approximating missing derivatives."""
        return cls(problem.fun, problem.grad, problem.hess, finite_difference=True)

    @property
    def gradient_supported(self) -> bool:
        return self._functions.gradient_supported

    @property
    def hessian_supported(self) -> bool:
        return self._functions.hessian_supported

    @property
    def nfev(self) -> int:
        return self._functions.nfev

    @property
    def njev(self) -> int:
        return self._functions.njev

    @property
    def nhev(self) -> int:
        return self._functions.nhev

    def evaluate(self, point: Array) -> Evaluation:
        """Return a detached evaluation at ``point`` without moving this objective."""
        return Evaluation(self._functions, point)

    def evaluate_at(self, point: Array) -> None:
        """Move the current point, discarding everything cached at the old one."""
        self._current = self.evaluate(point)

    def commit(self, evaluation: Evaluation) -> None:
        """Adopt an evaluation produced by :meth:`evaluate` as the current point."""
        if evaluation._functions is not self._functions:
            raise ValueError("evaluation belongs to a different objective")
        self._current = evaluation

    def fork(self) -> "ObjectiveFunction":
        """Independent objective positioned at the current evaluation."""
        clone = object.__new__(ObjectiveFunction)
        clone._functions = self._functions
        clone._current = self._current
        return clone

    @property
    def current(self) -> Evaluation:
        if self._current is None:
            raise ValueError("objective has not been evaluated; call evaluate_at first")
        return self._current

    @property
    def generation(self) -> int:
        return self.current.generation

    @property
    def point(self) -> Array:
        return self.current.point

    @property
    def value(self) -> float:
        return self.current.value

    @property
    def gradient(self) -> Array:
        return self.current.gradient

    @property
    def hessian(self) -> Array:
        return self.current.hessian


def finite_value(evaluation: Union[Evaluation, "ScalarEvaluation"]) -> float:
    """Value of ``evaluation``; raises :class:`EvaluationError` when it is not finite."""
    value = evaluation.value
    if not np.isfinite(value):
        raise EvaluationError(
            f"Objective function returned non-finite value at {evaluation.point}.",
            evaluation,
        )
    return value


class ScalarEvaluation:
    """Lazily evaluated point of a scalar function."""

    def __init__(self, objective: "ScalarObjectiveFunction", point: float) -> None:
        self._objective = objective
        self.point = float(point)
        self._cached = Cached.NONE
        self._value = 0.0

    def __repr__(self) -> str:
        return f"ScalarEvaluation(point={self.point!r}, cached={self._cached})"

    @property
    def cached(self) -> Cached:
        return self._cached

    @property
    def value(self) -> float:
        if Cached.VALUE not in self._cached:
            self._objective.nfev += 1
            try:
                self._value = float(self._objective.fun(self.point))
            except OptimizationError:
                raise
            except Exception as exc:
                raise EvaluationError(
                    f"objective evaluation failed at {self.point}: {exc}", self
                ) from exc
            self._cached |= Cached.VALUE
        return self._value


class ScalarObjectiveFunction:
    """Function of one variable; counts its evaluations in ``nfev``."""

    def __init__(self, fun: Callable[[float], float]) -> None:
        if not callable(fun):
            raise TypeError("fun must be callable")
        self.fun = fun
        self.nfev = 0

    def evaluate(self, x: float) -> ScalarEvaluation:
        return ScalarEvaluation(self, x)


__all__ = [
    "Cached",
    "Evaluation",
    "ObjectiveFunction",
    "ScalarEvaluation",
    "ScalarObjectiveFunction",
    "finite_value",
    "validate_evaluation",
]
