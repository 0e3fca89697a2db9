"""Newton's method globalized with a weak Wolfe line search."""

from __future__ import annotations

import numpy as np

from ..logging import get_logger
from .core import (
    ATOL,
    RTOL,
    Array,
    IncompatibleObjectiveError,
    MinimizationResult,
    Problem,
)
from .line_search import WeakWolfeLineSearch
from .minimizer import (
    DirectionStrategy,
    ExitCriteria,
    SearchDirection,
    run_line_search_minimization,
)
from .objective import Evaluation, ObjectiveFunction
from .utils import safe_solve

logger = get_logger(__name__)


class NewtonDirection(DirectionStrategy):
    """Solves ``H p = -g``; falls back to ``-g`` when that is not downhill."""

    def initial(self, candidate: Evaluation) -> SearchDirection:
        gradient = candidate.gradient
        direction = safe_solve(np.array(candidate.hessian), -gradient)
        if not np.all(np.isfinite(direction)) or direction @ gradient >= 0.0:
            self.resets += 1
            logger.debug("Newton direction is not a descent direction, using -g")
            return SearchDirection(-gradient)
        return SearchDirection(direction)

    def update(
        self, previous: Evaluation, candidate: Evaluation, step: Array
    ) -> SearchDirection:
        return self.initial(candidate)


class NewtonMinimizer:
    """Newton minimizer for objectives with gradient and Hessian.

    Every iteration first tries the full Newton step, so on a strictly convex
    quadratic the minimum is reached in a single iteration.
    """

    def __init__(
        self,
        gradient_tolerance: float = RTOL,
        parameter_tolerance: float = ATOL,
        maximum_iterations: int = 100,
    ) -> None:
        if maximum_iterations < 0:
            raise ValueError("maximum_iterations must be non-negative")
        self.criteria = ExitCriteria(gradient_tolerance, parameter_tolerance, ATOL)
        self.maximum_iterations = maximum_iterations
        self.line_search = WeakWolfeLineSearch(
            1e-4, 0.9, max(parameter_tolerance, 1e-10), 1000
        )

    def find_minimum(
        self, objective: ObjectiveFunction, initial_guess: Array, history: bool = False
    ) -> MinimizationResult:
        if not (objective.gradient_supported and objective.hessian_supported):
            raise IncompatibleObjectiveError(
                "Newton's method requires an objective with gradient and Hessian"
            )
        return run_line_search_minimization(
            objective,
            initial_guess,
            NewtonDirection(),
            self.line_search,
            self.criteria,
            self.maximum_iterations,
            history=history,
        )


def newton_method(
    problem: Problem,
    x0: np.ndarray,
    maxiter: int = 100,
    tol: float = RTOL,
    history: bool = False,
) -> MinimizationResult:
    """Newton's method on a :class:`Problem`, approximating missing derivatives."""
    minimizer = NewtonMinimizer(gradient_tolerance=tol, maximum_iterations=maxiter)
    return minimizer.find_minimum(
        ObjectiveFunction.from_problem(problem), x0, history=history
    )


__all__ = ["NewtonDirection", "NewtonMinimizer", "newton_method"]
