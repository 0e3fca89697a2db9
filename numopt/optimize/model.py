"""Weighted nonlinear least-squares objective models.

A model ``f(p; x)`` is fitted to observations ``y`` with weights ``W`` by
minimizing the residual sum of squares ``(y - f)' W (y - f)``. The model
exposes the Gauss-Newton quantities

* ``gradient = J' W (f - y)``  (half the gradient of the RSS)
* ``hessian  = J' W J``        (half the Gauss-Newton Hessian of the RSS)

in *internal* coordinates. Box constraints and scales are handled by a smooth
reparameterization, so least-squares minimizers iterate on unconstrained
internal parameters while every external parameter stays inside its bounds:

=================  ==================================  ============================
bounds             internal ``q``                       external ``p``
=================  ==================================  ============================
lower and upper    ``arcsin(2 (p - l) / (u - l) - 1)``  ``l + (u - l)/2 (sin q + 1)``
lower only         ``sqrt(((p - l)/s + 1)^2 - 1)``      ``l + s (sqrt(q^2 + 1) - 1)``
upper only         ``sqrt(((u - p)/s + 1)^2 - 1)``      ``u - s (sqrt(q^2 + 1) - 1)``
none               ``p / s``                            ``s q``
=================  ==================================  ============================
"""

from __future__ import annotations

import copy
from typing import Callable, Optional

import numpy as np

from .core import (
    Array,
    EvaluationError,
    ExitCondition,
    ModelMinimizationResult,
    OptimizationError,
)
from .objective import Cached, ObjectiveFunction
from .utils import approx_jacobian

ModelFunction = Callable[[Array, Array], Array]
ModelJacobian = Callable[[Array, Array], Array]

_FREE, _LOWER, _UPPER, _BOTH = range(4)

_EVALUATION_STATE = (
    "_point",
    "_external",
    "_cached",
    "_model_values",
    "_value",
    "_jacobian",
    "_gradient",
    "_hessian",
)


def _as_vector(values, n: int, name: str, default: float) -> Array:
    if values is None:
        return np.full(n, default, dtype=float)
    vector = np.asarray(values, dtype=float).reshape(-1)
    if vector.size != n:
        raise ValueError(f"{name} must have the same length as the initial guess")
    return vector


class NonlinearObjectiveModel:
    """Least-squares objective for a model ``fun(p, x)``.

    Parameters
    ----------
    fun:
        Model ``fun(p, x)`` returning the predicted values for all
        observations.
    jac:
        Optional analytic Jacobian ``jac(p, x)`` of shape
        ``(n_observations, n_parameters)``.
    accuracy_order:
        Finite-difference accuracy order (1 to 6) used without ``jac``.
    """

    def __init__(
        self,
        fun: ModelFunction,
        jac: Optional[ModelJacobian] = None,
        accuracy_order: int = 2,
    ) -> None:
        if not callable(fun):
            raise TypeError("fun must be callable")
        if accuracy_order not in range(1, 7):
            raise ValueError("accuracy_order must be an integer between 1 and 6")
        self.fun = fun
        self.jac = jac
        self.accuracy_order = accuracy_order
        self._counts = {"nfev": 0, "njev": 0}

        self.observed_x: Optional[Array] = None
        self.observed_y: Optional[Array] = None
        self.weights: Optional[Array] = None

        self.initial_guess: Optional[Array] = None
        self.lower_bound: Optional[Array] = None
        self.upper_bound: Optional[Array] = None
        self.scales: Optional[Array] = None
        self.is_fixed: Optional[Array] = None
        self._kind: Optional[Array] = None

        self._point: Optional[Array] = None
        self._external: Optional[Array] = None
        self._cached = Cached.NONE
        self._model_values: Optional[Array] = None
        self._value = np.nan
        self._jacobian: Optional[Array] = None
        self._gradient: Optional[Array] = None
        self._hessian: Optional[Array] = None

    # -- set up ------------------------------------------------------------

    def set_observed(self, x, y, weights=None) -> None:
        """Set the observations and (optional) per-observation weights."""
        y = np.asarray(y, dtype=float).reshape(-1)
        x = np.asarray(x, dtype=float)
        if x.shape[0] != y.size:
            raise ValueError("x and y must have the same number of observations")
        if weights is None:
            w = np.ones(y.size)
        else:
            w = np.asarray(weights, dtype=float).reshape(-1)
            if w.size != y.size:
                raise ValueError("weights must have the same length as y")
            if not np.all(np.isfinite(w)):
                raise ValueError("weights must be finite")
            if np.all(w == 0):
                raise ValueError("weights must not all be zero")
            w = np.abs(w)
        self.observed_x = x
        self.observed_y = y
        self.weights = w

    def set_parameters(
        self,
        initial_guess,
        lower_bound=None,
        upper_bound=None,
        scales=None,
        is_fixed=None,
    ) -> None:
        """Set the initial guess, box bounds, scales and fixed mask.

        Infinite (or omitted) bounds leave that side of a parameter open.
        """
        guess = np.asarray(initial_guess, dtype=float).reshape(-1)
        n = guess.size
        if n == 0:
            raise ValueError("initial guess must not be empty")
        lower = _as_vector(lower_bound, n, "lower_bound", -np.inf)
        upper = _as_vector(upper_bound, n, "upper_bound", np.inf)
        scale = _as_vector(scales, n, "scales", 1.0)
        if np.any(np.isnan(lower)) or np.any(np.isnan(upper)):
            raise ValueError("bounds must not be NaN")
        if np.any(lower >= upper):
            raise ValueError("lower bound must be smaller than upper bound")
        if not np.all(np.isfinite(scale)) or np.any(scale == 0):
            raise ValueError("scales must be finite and non-zero")
        if np.any(guess < lower) or np.any(guess > upper):
            raise ValueError("initial guess is not in the feasible region")
        if is_fixed is None:
            fixed = np.zeros(n, dtype=bool)
        else:
            fixed = np.asarray(is_fixed, dtype=bool).reshape(-1)
            if fixed.size != n:
                raise ValueError("is_fixed must have the same length as the initial guess")
            if fixed.all():
                raise ValueError("at least one parameter must be free")

        has_lower = np.isfinite(lower)
        has_upper = np.isfinite(upper)
        kind = np.full(n, _FREE)
        kind[has_lower & ~has_upper] = _LOWER
        kind[~has_lower & has_upper] = _UPPER
        kind[has_lower & has_upper] = _BOTH

        self.initial_guess = guess
        self.lower_bound = lower
        self.upper_bound = upper
        self.scales = np.abs(scale)
        self.is_fixed = fixed
        self._kind = kind

    def _require_setup(self) -> None:
        if self.observed_y is None:
            raise OptimizationError("observations are not set; call set_observed first")
        if self.initial_guess is None:
            raise OptimizationError("parameters are not set; call set_parameters first")

    # -- reparameterization ------------------------------------------------

    def to_internal(self, external) -> Array:
        """Map external (bounded) parameters to internal (unbounded) ones."""
        p = np.asarray(external, dtype=float)
        lo, hi, s, kind = self.lower_bound, self.upper_bound, self.scales, self._kind
        q = p / s
        both = kind == _BOTH
        q[both] = np.arcsin(
            np.clip(2.0 * (p[both] - lo[both]) / (hi[both] - lo[both]) - 1.0, -1.0, 1.0)
        )
        low = kind == _LOWER
        q[low] = np.sqrt(np.maximum(((p[low] - lo[low]) / s[low] + 1.0) ** 2 - 1.0, 0.0))
        up = kind == _UPPER
        q[up] = np.sqrt(np.maximum(((hi[up] - p[up]) / s[up] + 1.0) ** 2 - 1.0, 0.0))
        return q

    def to_external(self, internal) -> Array:
        """Map internal parameters back into the box; fixed ones keep their value."""
        q = np.asarray(internal, dtype=float)
        lo, hi, s, kind = self.lower_bound, self.upper_bound, self.scales, self._kind
        p = q * s
        both = kind == _BOTH
        p[both] = lo[both] + 0.5 * (hi[both] - lo[both]) * (np.sin(q[both]) + 1.0)
        low = kind == _LOWER
        p[low] = lo[low] + s[low] * (np.sqrt(q[low] ** 2 + 1.0) - 1.0)
        up = kind == _UPPER
        p[up] = hi[up] - s[up] * (np.sqrt(q[up] ** 2 + 1.0) - 1.0)
        p = np.clip(p, lo, hi)
        p[self.is_fixed] = self.initial_guess[self.is_fixed]
        return p

    def projection_scale(self, internal) -> Array:
        """Derivative ``dp/dq`` of the external map for every parameter."""
        q = np.asarray(internal, dtype=float)
        lo, hi, s, kind = self.lower_bound, self.upper_bound, self.scales, self._kind
        scale = s.copy()
        both = kind == _BOTH
        scale[both] = 0.5 * (hi[both] - lo[both]) * np.cos(q[both])
        low = kind == _LOWER
        scale[low] = s[low] * q[low] / np.sqrt(q[low] ** 2 + 1.0)
        up = kind == _UPPER
        scale[up] = -s[up] * q[up] / np.sqrt(q[up] ** 2 + 1.0)
        return scale

    # -- evaluation --------------------------------------------------------

    @property
    def parameter_count(self) -> int:
        self._require_setup()
        return self.initial_guess.size

    @property
    def degrees_of_freedom(self) -> int:
        self._require_setup()
        return int(self.observed_y.size - self.initial_guess.size + self.is_fixed.sum())

    def evaluate_at(self, internal) -> None:
        """Move to internal parameters ``internal``, discarding cached values."""
        self._require_setup()
        q = np.array(internal, dtype=float).reshape(-1)
        if q.size != self.initial_guess.size:
            raise ValueError("parameter vector has the wrong length")
        self._point = q
        self._external = self.to_external(q)
        self._cached = Cached.NONE

    def fork(self) -> "NonlinearObjectiveModel":
        """Independent copy at the current point; evaluating it leaves this one alone."""
        return copy.copy(self)

    def commit(self, other: "NonlinearObjectiveModel") -> None:
        """Adopt the current point and cached values of a fork."""
        if other._counts is not self._counts:
            raise ValueError("can only commit a fork of this model")
        for name in _EVALUATION_STATE:
            setattr(self, name, getattr(other, name))

    @property
    def nfev(self) -> int:
        return self._counts["nfev"]

    @property
    def njev(self) -> int:
        return self._counts["njev"]

    def _model(self, external: Array) -> Array:
        self._counts["nfev"] += 1
        try:
            values = np.asarray(self.fun(external, self.observed_x), dtype=float)
        except Exception as exc:
            raise EvaluationError(
                f"model evaluation failed at {external}: {exc}", self
            ) from exc
        values = values.reshape(-1)
        if values.size != self.observed_y.size:
            raise EvaluationError(
                f"model returned {values.size} values for {self.observed_y.size} observations",
                self,
            )
        return values

    def _model_jacobian(self, external: Array, values: Array) -> Array:
        if self.jac is not None:
            self._counts["njev"] += 1
            try:
                jac = np.array(self.jac(external, self.observed_x), dtype=float)
            except Exception as exc:
                raise EvaluationError(
                    f"Jacobian evaluation failed at {external}: {exc}", self
                ) from exc
            jac = jac.reshape(self.observed_y.size, external.size)
            jac[:, self.is_fixed] = 0.0
            return jac
        jac, evals = approx_jacobian(
            lambda p: self.fun(p, self.observed_x),
            external,
            f0=values,
            order=self.accuracy_order,
            skip=self.is_fixed,
            return_evals=True,
        )
        self._counts["nfev"] += evals
        return jac

    def _ensure_values(self) -> None:
        if self._point is None:
            raise OptimizationError("model has not been evaluated; call evaluate_at first")
        if Cached.VALUE not in self._cached:
            self._model_values = self._model(self._external)
            residuals = self.observed_y - self._model_values
            self._value = float(np.sum(self.weights * residuals**2))
            self._cached |= Cached.VALUE

    def _ensure_derivatives(self) -> None:
        self._ensure_values()
        if Cached.GRADIENT not in self._cached:
            jac = self._model_jacobian(self._external, self._model_values)
            internal_jac = jac * self.projection_scale(self._point)
            weighted = self.weights[:, None] * internal_jac
            self._jacobian = jac
            self._gradient = weighted.T @ (self._model_values - self.observed_y)
            self._hessian = internal_jac.T @ weighted
            self._cached |= Cached.GRADIENT | Cached.HESSIAN

    @property
    def point(self) -> Array:
        """Current internal parameters."""
        return self._point

    @property
    def parameters(self) -> Array:
        """Current external parameters."""
        return self._external

    @property
    def model_values(self) -> Array:
        self._ensure_values()
        return self._model_values

    @property
    def residuals(self) -> Array:
        return self.observed_y - self.model_values

    @property
    def value(self) -> float:
        """Weighted residual sum of squares."""
        self._ensure_values()
        return self._value

    @property
    def jacobian(self) -> Array:
        """Model Jacobian with respect to the external parameters."""
        self._ensure_derivatives()
        return self._jacobian

    @property
    def gradient(self) -> Array:
        self._ensure_derivatives()
        return self._gradient

    @property
    def hessian(self) -> Array:
        self._ensure_derivatives()
        return self._hessian

    # -- statistics --------------------------------------------------------

    def covariance(self) -> Optional[Array]:
        """Covariance of the external parameters at the current point.

        ``pinv(J'WJ) * RSS / dof``; ``None`` when there are no degrees of
        freedom left.
        """
        dof = self.degrees_of_freedom
        if dof <= 0:
            return None
        jac = self.jacobian
        hessian = jac.T @ (self.weights[:, None] * jac)
        return np.linalg.pinv(hessian) * self.value / dof

    # -- adapters ----------------------------------------------------------

    def to_objective_function(self) -> ObjectiveFunction:
        """RSS of the external parameters as a plain objective function.

        The gradient ``2 J'W(f - y)`` and Hessian ``2 J'WJ`` are those of the
        RSS itself, so general minimizers see consistent derivatives.
        """
        if self.observed_y is None:
            raise OptimizationError("observations are not set; call set_observed first")

        def skip(p: Array) -> Optional[Array]:
            if self.is_fixed is not None and self.is_fixed.size == p.size:
                return self.is_fixed
            return None

        def rss(p: Array) -> float:
            residuals = self.observed_y - self._model(np.asarray(p, dtype=float))
            return float(np.sum(self.weights * residuals**2))

        def derivatives(p: Array) -> tuple[Array, Array]:
            p = np.asarray(p, dtype=float)
            values = self._model(p)
            mask = skip(p)
            if self.jac is not None:
                self._counts["njev"] += 1
                jac = np.array(self.jac(p, self.observed_x), dtype=float)
                jac = jac.reshape(values.size, p.size)
                if mask is not None:
                    jac[:, mask] = 0.0
            else:
                jac, evals = approx_jacobian(
                    lambda v: self.fun(v, self.observed_x),
                    p,
                    f0=values,
                    order=self.accuracy_order,
                    skip=mask,
                    return_evals=True,
                )
                self._counts["nfev"] += evals
            return values, jac

        def grad(p: Array) -> Array:
            values, jac = derivatives(p)
            return 2.0 * jac.T @ (self.weights * (values - self.observed_y))

        def hess(p: Array) -> Array:
            _, jac = derivatives(p)
            return 2.0 * jac.T @ (self.weights[:, None] * jac)

        return ObjectiveFunction(rss, grad, hess)


def fit_result(
    model: NonlinearObjectiveModel, iterations: int, exit_condition: ExitCondition
) -> ModelMinimizationResult:
    """Summarize a least-squares fit at the model's current point."""
    covariance = standard_errors = correlation = None
    if np.isfinite(model.value) and exit_condition is not ExitCondition.INVALID_VALUES:
        covariance = model.covariance()
    if covariance is not None:
        standard_errors = np.sqrt(np.abs(np.diag(covariance)))
        scale = np.outer(standard_errors, standard_errors)
        correlation = np.divide(
            covariance, scale, out=np.zeros_like(covariance), where=scale > 0
        )
    return ModelMinimizationResult(
        x=model.parameters.copy(),
        fun=model.value,
        nit=iterations,
        exit_condition=exit_condition,
        standard_errors=standard_errors,
        covariance=covariance,
        correlation=correlation,
        model_values=model.model_values.copy(),
        residuals=model.residuals,
        degrees_of_freedom=model.degrees_of_freedom,
        nfev=model.nfev,
        njev=model.njev,
    )


def nonlinear_model(
    fun: ModelFunction,
    x,
    y,
    weights=None,
    jac: Optional[ModelJacobian] = None,
    accuracy_order: int = 2,
) -> NonlinearObjectiveModel:
    """Least-squares model with observations already attached."""
    model = NonlinearObjectiveModel(fun, jac, accuracy_order)
    model.set_observed(x, y, weights)
    return model


def nonlinear_function(
    fun: ModelFunction,
    x,
    y,
    weights=None,
    jac: Optional[ModelJacobian] = None,
    accuracy_order: int = 2,
) -> ObjectiveFunction:
    """Objective function of the residual sum of squares of a model fit."""
    return nonlinear_model(fun, x, y, weights, jac, accuracy_order).to_objective_function()


__all__ = [
    "ModelFunction",
    "ModelJacobian",
    "NonlinearObjectiveModel",
    "fit_result",
    "nonlinear_function",
    "nonlinear_model",
]
