"""Box-constrained BFGS.

Each iteration finds the generalized Cauchy point of the quadratic model,
minimizes the model over the variables left free there, and line searches
from the current point toward the feasible blend of both points.
"""

from __future__ import annotations

from typing import Optional

import numpy as np

from ..logging import get_logger
from .active_set import (
    find_max_step,
    gradient_projection_search,
    projected_gradient,
)
from .core import ATOL, RTOL, Array, MinimizationResult, Problem
from .line_search import StrongWolfeLineSearch
from .minimizer import (
    DirectionStrategy,
    ExitCriteria,
    SearchDirection,
    run_line_search_minimization,
)
from .objective import Evaluation, ObjectiveFunction
from .utils import cholesky_solve

logger = get_logger(__name__)


class BoundedBfgsDirection(DirectionStrategy):
    """Cauchy-point / reduced-Newton directions with a BFGS pseudo-Hessian."""

    def __init__(self, lower: Array, upper: Array) -> None:
        super().__init__()
        self.lower = lower
        self.upper = upper
        self.pseudo_hessian = np.eye(lower.size)
        self.projection = self._clip

    def _clip(self, x: Array) -> Array:
        return np.clip(x, self.lower, self.upper)

    def projected_gradient(self, candidate: Evaluation) -> Array:
        return projected_gradient(
            candidate.point, candidate.gradient, self.lower, self.upper
        )

    def initial(self, candidate: Evaluation) -> Optional[SearchDirection]:
        return self._direction(candidate)

    def update(
        self, previous: Evaluation, candidate: Evaluation, step: Array
    ) -> Optional[SearchDirection]:
        y = candidate.gradient - previous.gradient
        sy = float(step @ y)
        if sy > 0.0:
            bs = self.pseudo_hessian @ step
            self.pseudo_hessian = (
                self.pseudo_hessian + np.outer(y, y) / sy - np.outer(bs, bs) / float(step @ bs)
            )
        else:
            logger.debug("skipping pseudo-Hessian update, curvature s.y = %.3g", sy)
        return self._direction(candidate)

    def _newton_point(
        self, x: Array, gradient: Array, cauchy: Array, free: Array
    ) -> Array:
        """Minimizer of the model over the free variables, fixed ones at ``cauchy``."""
        point = cauchy.copy()
        if not free.any():
            return point
        reduced_hessian = self.pseudo_hessian[np.ix_(free, free)]
        try:
            point[free] = x[free] + cholesky_solve(reduced_hessian, -gradient[free])
        except np.linalg.LinAlgError:
            logger.debug("reduced pseudo-Hessian is not positive definite")
            return cauchy.copy()
        return point

    def _direction(self, candidate: Evaluation) -> Optional[SearchDirection]:
        x = candidate.point
        gradient = candidate.gradient
        projection = gradient_projection_search(
            x, gradient, self.pseudo_hessian, self.lower, self.upper
        )
        cauchy = projection.cauchy_point
        newton = self._newton_point(x, gradient, cauchy, ~projection.is_fixed)

        toward_newton = newton - cauchy
        step_from_cauchy = find_max_step(cauchy, toward_newton, self.lower, self.upper)
        blended = cauchy + min(step_from_cauchy, 1.0) * toward_newton

        direction = blended - x
        max_step = find_max_step(x, direction, self.lower, self.upper)
        if max_step <= 0.0 or not direction @ gradient < 0.0:
            direction = cauchy - x
            max_step = find_max_step(x, direction, self.lower, self.upper)
        if max_step <= 0.0 or not direction @ gradient < 0.0:
            logger.debug("no feasible descent direction at %s", x)
            return None

        curvature = float(direction @ self.pseudo_hessian @ direction)
        estimate = -float(gradient @ direction) / curvature if curvature > 0 else 1.0
        initial_step = min(max(estimate, 1.0), max_step)
        return SearchDirection(direction, initial_step, max_step)


class BfgsBMinimizer:
    """BFGS for bound-constrained problems ``lower <= x <= upper``.

    Every evaluated point, including line-search trials, lies inside the box.
    """

    def __init__(
        self,
        gradient_tolerance: float = RTOL,
        parameter_tolerance: float = ATOL,
        function_progress_tolerance: float = ATOL,
        maximum_iterations: int = 1000,
    ) -> None:
        if maximum_iterations < 0:
            raise ValueError("maximum_iterations must be non-negative")
        self.criteria = ExitCriteria(
            gradient_tolerance, parameter_tolerance, function_progress_tolerance
        )
        self.maximum_iterations = maximum_iterations
        self.line_search = StrongWolfeLineSearch(
            1e-4, 0.9, max(parameter_tolerance, 1e-5), 1000
        )

    def find_minimum(
        self,
        objective: ObjectiveFunction,
        lower_bound: Array,
        upper_bound: Array,
        initial_guess: Array,
        history: bool = False,
    ) -> MinimizationResult:
        """Minimize ``objective`` inside the box, starting at a feasible point."""
        x0 = np.asarray(initial_guess, dtype=float)
        lower = np.asarray(lower_bound, dtype=float)
        upper = np.asarray(upper_bound, dtype=float)
        if lower.shape != x0.shape or upper.shape != x0.shape:
            raise ValueError("lower and upper bounds must match the initial guess")
        if np.any(lower > upper):
            raise ValueError("lower bound must not exceed upper bound")
        if np.any(x0 < lower) or np.any(x0 > upper):
            raise ValueError("initial guess is not in the feasible region")
        return run_line_search_minimization(
            objective,
            x0,
            BoundedBfgsDirection(lower, upper),
            self.line_search,
            self.criteria,
            self.maximum_iterations,
            history=history,
        )


def bfgs_b(
    problem: Problem,
    lower: Array,
    upper: Array,
    x0: Array,
    maxiter: int = 1000,
    tol: float = RTOL,
    history: bool = False,
) -> MinimizationResult:
    """Box-constrained BFGS on a :class:`Problem`.

    A missing gradient is approximated by central differences, which may
    probe up to ``1e-6`` outside the box.
    """
    minimizer = BfgsBMinimizer(gradient_tolerance=tol, maximum_iterations=maxiter)
    return minimizer.find_minimum(
        ObjectiveFunction.from_problem(problem),
        np.asarray(lower, dtype=float),
        np.asarray(upper, dtype=float),
        x0,
        history=history,
    )


__all__ = ["BfgsBMinimizer", "BoundedBfgsDirection", "bfgs_b"]
