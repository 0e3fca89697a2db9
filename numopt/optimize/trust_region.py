"""Trust-region methods for nonlinear least squares.

The quadratic model around the current internal parameters is
``m(p) = RSS/2 + g'p + p'Hp/2`` with the Gauss-Newton gradient and Hessian
of :class:`~numopt.optimize.model.NonlinearObjectiveModel`. A subproblem
solver proposes a step inside the radius; the radius adapts to the ratio of
actual to predicted reduction.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np

from ..logging import get_logger
from .core import Array, ExitCondition, ModelMinimizationResult
from .model import (
    ModelFunction,
    ModelJacobian,
    NonlinearObjectiveModel,
    fit_result,
    nonlinear_model,
)

logger = get_logger(__name__)


@dataclass
class SubproblemResult:
    """Step proposed by a trust-region subproblem solver."""

    step: Array
    hit_boundary: bool
    predicted_reduction: float


def _predicted_reduction(gradient: Array, hessian: Array, step: Array) -> float:
    return -float(gradient @ step + 0.5 * step @ (hessian @ step))


def _boundary_step(start: Array, direction: Array, delta: float) -> Array:
    """Point ``start + tau * direction`` with ``tau >= 0`` on the sphere of radius delta."""
    a = float(direction @ direction)
    b = 2.0 * float(start @ direction)
    c = float(start @ start) - delta**2
    disc = max(b * b - 4.0 * a * c, 0.0)
    tau = (-b + np.sqrt(disc)) / (2.0 * a)
    return start + tau * direction


class DogLegSubproblem:
    """Dog-leg path between the Cauchy point and the Gauss-Newton step."""

    def solve(self, gradient: Array, hessian: Array, delta: float) -> SubproblemResult:
        gauss_newton = -np.linalg.pinv(hessian) @ gradient
        if np.linalg.norm(gauss_newton) <= delta:
            return SubproblemResult(
                gauss_newton, False, _predicted_reduction(gradient, hessian, gauss_newton)
            )

        grad_norm = float(np.linalg.norm(gradient))
        ghg = float(gradient @ (hessian @ gradient))
        if ghg > 0:
            cauchy = -(grad_norm**2 / ghg) * gradient
        else:
            cauchy = None
        if cauchy is None or np.linalg.norm(cauchy) >= delta:
            step = -(delta / grad_norm) * gradient
        else:
            diff = gauss_newton - cauchy
            if float(diff @ diff) <= 0:
                step = -(delta / grad_norm) * gradient
            else:
                step = _boundary_step(cauchy, diff, delta)
        return SubproblemResult(step, True, _predicted_reduction(gradient, hessian, step))


class NewtonCGSubproblem:
    """Steihaug-Toint truncated conjugate gradients."""

    def __init__(self, max_iterations: Optional[int] = None) -> None:
        self.max_iterations = max_iterations

    def solve(self, gradient: Array, hessian: Array, delta: float) -> SubproblemResult:
        n = gradient.size
        grad_norm = float(np.linalg.norm(gradient))
        tolerance = min(0.5, np.sqrt(grad_norm)) * grad_norm
        z = np.zeros(n)
        r = np.array(gradient, dtype=float)
        d = -r
        hit = False
        for _ in range(self.max_iterations or 2 * n + 10):
            hd = hessian @ d
            curvature = float(d @ hd)
            if curvature <= 0:
                z = _boundary_step(z, d, delta)
                hit = True
                break
            rr = float(r @ r)
            alpha = rr / curvature
            z_next = z + alpha * d
            if np.linalg.norm(z_next) >= delta:
                z = _boundary_step(z, d, delta)
                hit = True
                break
            r_next = r + alpha * hd
            z = z_next
            if np.linalg.norm(r_next) < tolerance:
                break
            d = -r_next + (float(r_next @ r_next) / rr) * d
            r = r_next
        return SubproblemResult(z, hit, _predicted_reduction(gradient, hessian, z))


class TrustRegionMinimizer:
    """Trust-region minimizer for least-squares models.

    Parameters
    ----------
    subproblem:
        Solver for the trust-region subproblem (:class:`DogLegSubproblem`
        or :class:`NewtonCGSubproblem`).
    gradient_tolerance:
        Stop when the infinity norm of the gradient is at most this value.
    step_tolerance:
        Stop when a step is small relative to the parameters.
    function_tolerance:
        Stop when the residual sum of squares is at most this value.
    radius_tolerance:
        Stop when the radius shrinks below this value relative to the
        parameters.
    maximum_iterations:
        Iteration budget; negative means ``200 (n + 1)`` and zero returns
        immediately with ``MANUALLY_STOPPED``.
    max_delta:
        Largest trust-region radius.
    eta:
        Steps with an actual-to-predicted reduction ratio above ``eta`` are
        accepted.
    """

    def __init__(
        self,
        subproblem=None,
        gradient_tolerance: float = 1e-8,
        step_tolerance: float = 1e-8,
        function_tolerance: float = 1e-8,
        radius_tolerance: float = 1e-18,
        maximum_iterations: int = -1,
        max_delta: float = 1000.0,
        eta: float = 0.0,
    ) -> None:
        if max_delta <= 0:
            raise ValueError("max_delta must be positive")
        if not (0 <= eta < 0.25):
            raise ValueError("eta must lie in [0, 0.25)")
        self.subproblem = subproblem if subproblem is not None else DogLegSubproblem()
        self.gradient_tolerance = gradient_tolerance
        self.step_tolerance = step_tolerance
        self.function_tolerance = function_tolerance
        self.radius_tolerance = radius_tolerance
        self.maximum_iterations = maximum_iterations
        self.max_delta = max_delta
        self.eta = eta

    def _initial_radius(self, gradient: Array, hessian: Array) -> float:
        ghg = float((hessian @ gradient) @ gradient)
        delta = float(gradient @ gradient) / ghg if ghg > 0 else self.max_delta
        return float(np.clip(delta, 1.0, self.max_delta))

    def find_minimum(
        self,
        model: NonlinearObjectiveModel,
        initial_guess: Array,
        lower_bound: Optional[Array] = None,
        upper_bound: Optional[Array] = None,
        scales: Optional[Array] = None,
        is_fixed: Optional[Array] = None,
    ) -> ModelMinimizationResult:
        """Fit ``model`` starting at ``initial_guess`` (external coordinates)."""
        model.set_parameters(initial_guess, lower_bound, upper_bound, scales, is_fixed)
        n = model.parameter_count
        maximum_iterations = self.maximum_iterations
        if maximum_iterations < 0:
            maximum_iterations = 200 * (n + 1)

        p = model.to_internal(model.initial_guess)
        model.evaluate_at(p)
        iterations = 0
        exit_condition = ExitCondition.NONE
        rss = model.value
        if not np.isfinite(rss):
            exit_condition = ExitCondition.INVALID_VALUES
        elif maximum_iterations == 0:
            exit_condition = ExitCondition.MANUALLY_STOPPED
        elif rss <= self.function_tolerance:
            exit_condition = ExitCondition.CONVERGED
        else:
            gradient, hessian = model.gradient, model.hessian
            if not (np.all(np.isfinite(gradient)) and np.all(np.isfinite(hessian))):
                exit_condition = ExitCondition.INVALID_VALUES
            elif np.max(np.abs(gradient)) <= self.gradient_tolerance:
                exit_condition = ExitCondition.RELATIVE_GRADIENT

        if exit_condition is ExitCondition.NONE:
            delta = self._initial_radius(gradient, hessian)
        while exit_condition is ExitCondition.NONE and iterations < maximum_iterations:
            iterations += 1
            proposal = self.subproblem.solve(gradient, hessian, delta)
            step = proposal.step
            p_norm = float(np.linalg.norm(p))
            if np.linalg.norm(step) <= self.step_tolerance * (self.step_tolerance + p_norm):
                exit_condition = ExitCondition.RELATIVE_POINTS
                break

            trial = model.fork()
            trial.evaluate_at(p + step)
            rss_new = trial.value
            if not np.isfinite(rss_new):
                exit_condition = ExitCondition.INVALID_VALUES
                break
            actual = 0.5 * (rss - rss_new)
            predicted = proposal.predicted_reduction
            rho = actual / predicted if predicted != 0 else 0.0

            if rho > 0.75 and proposal.hit_boundary:
                delta = min(2.0 * delta, self.max_delta)
            elif rho < 0.25:
                delta *= 0.25
                if delta <= self.radius_tolerance * (self.radius_tolerance + p_norm):
                    exit_condition = ExitCondition.RELATIVE_POINTS
                    break

            if rho > self.eta:
                p = trial.point
                model.commit(trial)
                rss = rss_new
                gradient, hessian = model.gradient, model.hessian
                if not (np.all(np.isfinite(gradient)) and np.all(np.isfinite(hessian))):
                    exit_condition = ExitCondition.INVALID_VALUES
                elif np.max(np.abs(gradient)) <= self.gradient_tolerance:
                    exit_condition = ExitCondition.RELATIVE_GRADIENT
                elif rss <= self.function_tolerance:
                    exit_condition = ExitCondition.CONVERGED
            logger.debug(
                "iteration %d: rss=%.6g rho=%.3g delta=%.3g", iterations, rss, rho, delta
            )

        if exit_condition is ExitCondition.NONE:
            exit_condition = ExitCondition.EXCEED_ITERATIONS
        return fit_result(model, iterations, exit_condition)


class TrustRegionDogLegMinimizer(TrustRegionMinimizer):
    """Trust-region minimizer with the dog-leg subproblem."""

    def __init__(self, **kwargs) -> None:
        super().__init__(DogLegSubproblem(), **kwargs)


class TrustRegionNewtonCGMinimizer(TrustRegionMinimizer):
    """Trust-region minimizer with the Steihaug-Toint CG subproblem."""

    def __init__(self, **kwargs) -> None:
        super().__init__(NewtonCGSubproblem(), **kwargs)


def trust_region(
    fun: ModelFunction,
    x,
    y,
    p0,
    weights=None,
    jac: Optional[ModelJacobian] = None,
    lower=None,
    upper=None,
    method: str = "dogleg",
    maxiter: int = -1,
) -> ModelMinimizationResult:
    """Fit ``fun(p, x)`` to ``y`` with a trust-region method.

    ``method`` is ``"dogleg"`` or ``"newton-cg"``.
    """
    subproblems = {"dogleg": DogLegSubproblem, "newton-cg": NewtonCGSubproblem}
    if method not in subproblems:
        raise ValueError(f"unknown trust-region method: {method!r}")
    minimizer = TrustRegionMinimizer(subproblems[method](), maximum_iterations=maxiter)
    return minimizer.find_minimum(nonlinear_model(fun, x, y, weights, jac), p0, lower, upper)


__all__ = [
    "DogLegSubproblem",
    "NewtonCGSubproblem",
    "SubproblemResult",
    "TrustRegionDogLegMinimizer",
    "TrustRegionMinimizer",
    "TrustRegionNewtonCGMinimizer",
    "trust_region",
]
