"""Levenberg-Marquardt minimizer for nonlinear least squares."""

from __future__ import annotations

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
from .utils import safe_solve

logger = get_logger(__name__)


class LevenbergMarquardtMinimizer:
    """Damped Gauss-Newton least squares with an adaptive damping parameter.

    Box constraints are honoured through the model's internal/external
    reparameterization, so the iteration itself is unconstrained.

    Parameters
    ----------
    initial_mu:
        Scale factor ``tau`` of the initial damping ``mu = tau * max(diag(H))``.
    gradient_tolerance:
        Stop when the infinity norm of the gradient is at most this value.
    step_tolerance:
        Stop when ``|dp| <= step_tolerance * (step_tolerance + |p|)``.
    function_tolerance:
        Stop when the residual sum of squares is at most this value.
    maximum_iterations:
        Iteration budget; negative means ``200 (n + 1)``. Exhausting it
        returns ``EXCEED_ITERATIONS``.
    """

    def __init__(
        self,
        initial_mu: float = 1e-3,
        gradient_tolerance: float = 1e-15,
        step_tolerance: float = 1e-15,
        function_tolerance: float = 1e-15,
        maximum_iterations: int = -1,
    ) -> None:
        if initial_mu <= 0:
            raise ValueError("initial_mu must be positive")
        self.initial_mu = initial_mu
        self.gradient_tolerance = gradient_tolerance
        self.step_tolerance = step_tolerance
        self.function_tolerance = function_tolerance
        self.maximum_iterations = maximum_iterations

    def _derivative_exit(self, gradient: Array, hessian: Array, rss: float) -> ExitCondition:
        if not (np.all(np.isfinite(gradient)) and np.all(np.isfinite(hessian))):
            return ExitCondition.INVALID_VALUES
        if np.max(np.abs(gradient)) <= self.gradient_tolerance:
            return ExitCondition.RELATIVE_GRADIENT
        if rss <= self.function_tolerance:
            return ExitCondition.CONVERGED
        return ExitCondition.NONE

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
        rss = model.value
        iterations = 0
        if not np.isfinite(rss):
            return fit_result(model, iterations, ExitCondition.INVALID_VALUES)
        if maximum_iterations == 0:
            return fit_result(model, iterations, ExitCondition.MANUALLY_STOPPED)
        if rss <= self.function_tolerance:
            return fit_result(model, iterations, ExitCondition.CONVERGED)

        gradient = model.gradient
        hessian = np.array(model.hessian)
        exit_condition = self._derivative_exit(gradient, hessian, rss)
        diagonal = hessian.diagonal().copy()
        mu = self.initial_mu * float(np.max(diagonal))
        if not mu > 0:
            mu = self.initial_mu
        nu = 2.0

        while exit_condition is ExitCondition.NONE and iterations < maximum_iterations:
            iterations += 1
            while True:
                np.fill_diagonal(hessian, diagonal + mu)
                step = safe_solve(hessian, -gradient)
                if np.linalg.norm(step) <= self.step_tolerance * (
                    self.step_tolerance + np.linalg.norm(p)
                ):
                    exit_condition = ExitCondition.RELATIVE_POINTS
                    break

                trial = model.fork()
                trial.evaluate_at(p + step)
                rss_new = trial.value
                if not np.isfinite(rss_new):
                    exit_condition = ExitCondition.INVALID_VALUES
                    break

                predicted = float(step @ (mu * step - gradient))
                rho = (rss - rss_new) / predicted if predicted != 0 else 0.0
                if rho > 0:
                    p = trial.point
                    model.commit(trial)
                    rss = rss_new
                    mu *= max(1.0 / 3.0, 1.0 - (2.0 * rho - 1.0) ** 3)
                    nu = 2.0
                    gradient = model.gradient
                    hessian = np.array(model.hessian)
                    diagonal = hessian.diagonal().copy()
                    exit_condition = self._derivative_exit(gradient, hessian, rss)
                    break

                np.fill_diagonal(hessian, diagonal)
                mu *= nu
                nu *= 2.0
            logger.debug("iteration %d: rss=%.6g mu=%.3g", iterations, rss, mu)

        if exit_condition is ExitCondition.NONE:
            exit_condition = ExitCondition.EXCEED_ITERATIONS
        return fit_result(model, iterations, exit_condition)


def levenberg_marquardt(
    fun: ModelFunction,
    x,
    y,
    p0,
    weights=None,
    jac: Optional[ModelJacobian] = None,
    lower=None,
    upper=None,
    maxiter: int = -1,
) -> ModelMinimizationResult:
    """Fit ``fun(p, x)`` to ``y`` with Levenberg-Marquardt."""
    model = nonlinear_model(fun, x, y, weights, jac)
    return LevenbergMarquardtMinimizer(maximum_iterations=maxiter).find_minimum(
        model, p0, lower, upper
    )


__all__ = ["LevenbergMarquardtMinimizer", "levenberg_marquardt"]
