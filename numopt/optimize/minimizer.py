"""Shared driver loop for line-search minimizers.

Concrete minimizers supply a :class:`DirectionStrategy`; the exit criteria,
validation, line-search bookkeeping and budget enforcement live here.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np

from ..logging import get_logger
from .core import (
    Array,
    ExitCondition,
    IncompatibleObjectiveError,
    InnerOptimizationError,
    LineSearchError,
    MaximumIterationsError,
    MinimizationResult,
)
from .line_search import WolfeLineSearch
from .objective import Evaluation, ObjectiveFunction, validate_evaluation

logger = get_logger(__name__)

# Function-improvement stagnation is only considered after this many iterations.
FUNCTION_PROGRESS_ITERATIONS = 500


@dataclass
class SearchDirection:
    """Direction handed to the line search, with its step limits."""

    direction: Array
    initial_step: float = 1.0
    max_step: float = np.inf


class DirectionStrategy:
    """Computes search directions for the shared driver.

    ``initial`` and ``update`` may return ``None`` when no feasible descent
    direction exists; the driver then stops with ``LACK_OF_PROGRESS``.
    """

    projection: Optional[Callable[[Array], Array]] = None

    def __init__(self) -> None:
        self.resets = 0

    def projected_gradient(self, candidate: Evaluation) -> Array:
        return candidate.gradient

    def initial(self, candidate: Evaluation) -> Optional[SearchDirection]:
        raise NotImplementedError

    def update(
        self, previous: Evaluation, candidate: Evaluation, step: Array
    ) -> Optional[SearchDirection]:
        raise NotImplementedError


class ExitCriteria:
    """Relative-gradient, progress and function-improvement tests."""

    def __init__(
        self,
        gradient_tolerance: float,
        parameter_tolerance: float,
        function_progress_tolerance: float,
    ) -> None:
        if gradient_tolerance < 0 or parameter_tolerance < 0 or function_progress_tolerance < 0:
            raise ValueError("tolerances must be non-negative")
        self.gradient_tolerance = gradient_tolerance
        self.parameter_tolerance = parameter_tolerance
        self.function_progress_tolerance = function_progress_tolerance

    def check(
        self,
        candidate: Evaluation,
        previous: Optional[Evaluation],
        iterations: int,
        gradient: Array,
    ) -> ExitCondition:
        x = candidate.point
        normalizer = max(abs(candidate.value), 1.0)
        relative_gradient = np.max(np.abs(gradient) * np.maximum(np.abs(x), 1.0)) / normalizer
        if relative_gradient < self.gradient_tolerance:
            return ExitCondition.RELATIVE_GRADIENT

        if previous is not None:
            x_prev = previous.point
            progress = np.max(np.abs(x - x_prev) / np.maximum(np.abs(x_prev), 1.0))
            if progress < self.parameter_tolerance:
                return ExitCondition.LACK_OF_PROGRESS
            change = candidate.value - previous.value
            if (
                iterations > FUNCTION_PROGRESS_ITERATIONS
                and change < 0
                and abs(change) < self.function_progress_tolerance
            ):
                return ExitCondition.LACK_OF_FUNCTION_IMPROVEMENT
        return ExitCondition.NONE


def run_line_search_minimization(
    objective: ObjectiveFunction,
    initial_guess: Array,
    strategy: DirectionStrategy,
    line_search: WolfeLineSearch,
    criteria: ExitCriteria,
    maximum_iterations: int,
    history: bool = False,
) -> MinimizationResult:
    """Iterate direction, line search and exit checks until convergence.

    Raises:
        IncompatibleObjectiveError: The objective has no gradient.
        InnerOptimizationError: A line search failed.
        MaximumIterationsError: ``maximum_iterations`` passed without an exit.
    """
    if not objective.gradient_supported:
        raise IncompatibleObjectiveError("minimizer requires an objective with a gradient")
    x0 = np.asarray(initial_guess, dtype=float)
    objective.evaluate_at(x0)
    candidate = objective.current
    validate_evaluation(candidate)
    hist: list[Array] = [x0.copy()] if history else []

    iterations = 0
    total_line_search = 0
    nontrivial_line_search = 0
    exit_condition = criteria.check(
        candidate, None, iterations, strategy.projected_gradient(candidate)
    )
    search = strategy.initial(candidate) if exit_condition is ExitCondition.NONE else None

    while exit_condition is ExitCondition.NONE:
        if search is None:
            exit_condition = ExitCondition.LACK_OF_PROGRESS
            break
        if iterations >= maximum_iterations:
            raise MaximumIterationsError(
                f"Maximum iterations ({maximum_iterations}) reached."
            )
        try:
            result = line_search.find_conforming_step(
                objective,
                search.direction,
                search.initial_step,
                upper_bound=search.max_step,
                start=candidate,
                projection=strategy.projection,
            )
        except LineSearchError as exc:
            raise InnerOptimizationError(
                f"Line search failed at iteration {iterations}: {exc}"
            ) from exc
        total_line_search += result.iterations
        if result.iterations > 0:
            nontrivial_line_search += 1

        previous, candidate = candidate, result.evaluation
        step = candidate.point - previous.point
        iterations += 1
        if history:
            hist.append(candidate.point.copy())
        logger.debug(
            "iteration %d: f=%.6g step=%.3g line search trials=%d",
            iterations,
            candidate.value,
            result.step,
            result.iterations + 1,
        )

        exit_condition = criteria.check(
            candidate, previous, iterations, strategy.projected_gradient(candidate)
        )
        if exit_condition is ExitCondition.NONE:
            search = strategy.update(previous, candidate, step)

    objective.commit(candidate)
    logger.debug("stopped after %d iterations: %s", iterations, exit_condition.value)
    return MinimizationResult(
        x=candidate.point.copy(),
        fun=candidate.value,
        nit=iterations,
        exit_condition=exit_condition,
        grad=np.array(candidate.gradient),
        nfev=objective.nfev,
        njev=objective.njev,
        nhev=objective.nhev,
        evaluation=candidate,
        history=hist,
        total_line_search_iterations=total_line_search,
        iterations_with_nontrivial_line_search=nontrivial_line_search,
        resets=strategy.resets,
    )


__all__ = [
    "DirectionStrategy",
    "ExitCriteria",
    "FUNCTION_PROGRESS_ITERATIONS",
    "SearchDirection",
    "run_line_search_minimization",
]
