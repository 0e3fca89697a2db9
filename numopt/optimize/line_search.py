"""Weak and strong Wolfe line searches by bisection and expansion.

The search keeps a step bracket ``[lower, upper)``, starting from
``(0, upper_bound)``. A trial step failing sufficient decrease becomes the new
upper end; a step failing the curvature condition becomes the new lower end,
after which the step doubles while no finite upper end exists and bisects
otherwise.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np

from .core import Array, ExitCondition, LineSearchError
from .objective import Evaluation, ObjectiveFunction, validate_evaluation


@dataclass
class LineSearchResult:
    """Accepted evaluation plus diagnostics of a line search.

    ``iterations`` counts trial steps beyond the first one, so zero means the
    initial step was accepted as is.
    """

    evaluation: Evaluation
    step: float
    iterations: int
    nfev: int
    exit_condition: ExitCondition


class WolfeLineSearch:
    """Shared bracket search; subclasses define the curvature condition."""

    exit_condition = ExitCondition.NONE

    def __init__(
        self,
        c1: float = 1e-4,
        c2: float = 0.9,
        parameter_tolerance: float = 1e-10,
        max_iterations: int = 1000,
    ) -> None:
        if not (0 < c1 < c2 < 1):
            raise ValueError("Require 0 < c1 < c2 < 1 for Wolfe conditions.")
        if parameter_tolerance <= 0:
            raise ValueError("parameter_tolerance must be positive")
        if max_iterations <= 0:
            raise ValueError("max_iterations must be positive")
        self.c1 = c1
        self.c2 = c2
        self.parameter_tolerance = parameter_tolerance
        self.max_iterations = max_iterations

    def _curvature(self, slope: float, initial_slope: float) -> int:
        """Return -1 if the step is too short, 1 if too long, 0 if acceptable."""
        raise NotImplementedError

    def find_conforming_step(
        self,
        objective: ObjectiveFunction,
        direction: Array,
        initial_step: float = 1.0,
        upper_bound: float = np.inf,
        start: Optional[Evaluation] = None,
        projection: Optional[Callable[[Array], Array]] = None,
    ) -> LineSearchResult:
        """Find a step along ``direction`` satisfying the Wolfe conditions.

        Parameters
        ----------
        objective:
            Objective used to evaluate trial points; its current point is not
            moved.
        direction:
            Search direction, which must be a descent direction.
        initial_step:
            First trial step.
        upper_bound:
            Largest admissible step (for example the largest feasible step
            inside box constraints).
        start:
            Evaluation to search from, defaults to the objective's current one.
        projection:
            Optional map applied to every trial point, used to keep trial
            points exactly inside a feasible set.
        """
        if not objective.gradient_supported:
            raise LineSearchError("line search requires an objective with a gradient")
        if initial_step <= 0:
            raise ValueError("initial_step must be positive")
        if upper_bound <= 0:
            raise ValueError("upper_bound must be positive")
        if start is None:
            start = objective.current
        direction = np.asarray(direction, dtype=float)

        initial_value = start.value
        initial_slope = float(direction @ start.gradient)
        if not np.isfinite(initial_slope) or initial_slope >= 0:
            raise LineSearchError("search direction is not a descent direction")

        lower = 0.0
        upper = float(upper_bound)
        step = min(float(initial_step), upper)
        best = start
        best_step = 0.0
        for iteration in range(self.max_iterations):
            point = start.point + step * direction
            if projection is not None:
                point = projection(point)
            trial = objective.evaluate(point)
            validate_evaluation(trial)
            slope = float(direction @ trial.gradient)

            if trial.value > initial_value + self.c1 * step * initial_slope:
                upper = step
            else:
                verdict = self._curvature(slope, initial_slope)
                if verdict == 0:
                    return LineSearchResult(
                        trial, step, iteration, iteration + 1, self.exit_condition
                    )
                if trial.value <= best.value:
                    best, best_step = trial, step
                if verdict < 0:
                    lower = step
                else:
                    upper = step
            if np.isinf(upper):
                step = 2.0 * lower
                continue
            step = 0.5 * (lower + upper)

            scale = np.maximum(np.abs(trial.point), 1.0)
            relative_change = np.max(np.abs(direction * (upper - lower)) / scale)
            if relative_change < self.parameter_tolerance:
                return LineSearchResult(
                    best, best_step, iteration, iteration + 1, ExitCondition.LACK_OF_PROGRESS
                )

        if np.isinf(upper):
            raise LineSearchError(
                f"Maximum iterations ({self.max_iterations}) reached. "
                "Function appears to be unbounded in search direction."
            )
        raise LineSearchError(f"Maximum iterations ({self.max_iterations}) reached.")


class WeakWolfeLineSearch(WolfeLineSearch):
    """Accepts steps with ``phi'(t) >= c2 phi'(0)``."""

    exit_condition = ExitCondition.WEAK_WOLFE_CRITERIA

    def _curvature(self, slope: float, initial_slope: float) -> int:
        return -1 if slope < self.c2 * initial_slope else 0


class StrongWolfeLineSearch(WolfeLineSearch):
    """Accepts steps with ``|phi'(t)| <= c2 |phi'(0)|``."""

    exit_condition = ExitCondition.STRONG_WOLFE_CRITERIA

    def _curvature(self, slope: float, initial_slope: float) -> int:
        if slope < self.c2 * initial_slope:
            return -1
        if slope > -self.c2 * initial_slope:
            return 1
        return 0


__all__ = [
    "LineSearchResult",
    "StrongWolfeLineSearch",
    "WeakWolfeLineSearch",
    "WolfeLineSearch",
]
