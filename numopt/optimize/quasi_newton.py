"""Quasi-Newton optimization algorithms (BFGS and L-BFGS)."""

from __future__ import annotations

from collections import deque
from typing import Deque

import numpy as np

from ..logging import get_logger
from .core import (
    ATOL,
    RTOL,
    Array,
    MinimizationResult,
    NonDescentDirectionError,
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

logger = get_logger(__name__)


class BfgsDirection(DirectionStrategy):
    """Explicit inverse-Hessian BFGS update with steepest-descent resets."""

    def __init__(self, n: int) -> None:
        super().__init__()
        self.inverse_hessian = np.eye(n)

    def initial(self, candidate: Evaluation) -> SearchDirection:
        return SearchDirection(-candidate.gradient)

    def _reset(self, gradient: Array) -> SearchDirection:
        self.resets += 1
        self.inverse_hessian = np.eye(gradient.size)
        logger.debug("BFGS direction is not a descent direction, resetting to -g")
        return SearchDirection(-gradient)

    def update(
        self, previous: Evaluation, candidate: Evaluation, step: Array
    ) -> SearchDirection:
        gradient = candidate.gradient
        y = gradient - previous.gradient
        sy = float(step @ y)
        if sy == 0.0 or not np.isfinite(sy):
            return self._reset(gradient)
        h = self.inverse_hessian
        hy = h @ y
        h = (
            h
            + ((sy + y @ hy) / sy**2) * np.outer(step, step)
            - (np.outer(hy, step) + np.outer(step, y @ h)) / sy
        )
        direction = -h @ gradient
        if not np.all(np.isfinite(direction)) or direction @ gradient >= 0.0:
            return self._reset(gradient)
        self.inverse_hessian = h
        return SearchDirection(direction)


class LbfgsDirection(DirectionStrategy):
    """Two-loop recursion over the last ``memory`` curvature pairs."""

    def __init__(self, memory: int) -> None:
        super().__init__()
        self.history: Deque[tuple[Array, Array, float]] = deque(maxlen=memory)

    def initial(self, candidate: Evaluation) -> SearchDirection:
        return SearchDirection(-candidate.gradient)

    def two_loop(self, gradient: Array) -> Array:
        q = np.array(gradient, dtype=float)
        alphas = []
        for s, y, rho in reversed(self.history):
            alpha = rho * float(s @ q)
            q -= alpha * y
            alphas.append(alpha)
        if self.history:
            s, y, _ = self.history[-1]
            q *= float(y @ s) / float(y @ y)
        for (s, y, rho), alpha in zip(self.history, reversed(alphas)):
            beta = rho * float(y @ q)
            q += s * (alpha - beta)
        return -q

    def update(
        self, previous: Evaluation, candidate: Evaluation, step: Array
    ) -> SearchDirection:
        y = candidate.gradient - previous.gradient
        ys = float(y @ step)
        if ys > 0:
            self.history.append((step, y, 1.0 / ys))
        else:
            logger.debug("skipping L-BFGS pair with non-positive curvature %.3g", ys)
        direction = self.two_loop(candidate.gradient)
        if not direction @ candidate.gradient < 0.0:
            raise NonDescentDirectionError(
                "L-BFGS produced a search direction that is not a descent direction"
            )
        return SearchDirection(direction)


class BfgsMinimizer:
    """Broyden-Fletcher-Goldfarb-Shanno minimizer with a weak Wolfe line search.

    Parameters
    ----------
    gradient_tolerance:
        Stop when the relative gradient drops below this value.
    parameter_tolerance:
        Stop when the relative change of the iterate drops below this value.
    function_progress_tolerance:
        Stop (after 500 iterations) when the decrease of the objective is
        smaller than this value.
    maximum_iterations:
        Iteration budget; exhausting it raises ``MaximumIterationsError``.
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
        self.line_search = WeakWolfeLineSearch(
            1e-4, 0.9, max(parameter_tolerance, 1e-10), 1000
        )

    def _strategy(self, n: int) -> DirectionStrategy:
        return BfgsDirection(n)

    def find_minimum(
        self, objective: ObjectiveFunction, initial_guess: Array, history: bool = False
    ) -> MinimizationResult:
        """Minimize ``objective`` starting from ``initial_guess``."""
        x0 = np.asarray(initial_guess, dtype=float)
        return run_line_search_minimization(
            objective,
            x0,
            self._strategy(x0.size),
            self.line_search,
            self.criteria,
            self.maximum_iterations,
            history=history,
        )


class LimitedMemoryBfgsMinimizer(BfgsMinimizer):
    """L-BFGS minimizer keeping the last ``memory`` curvature pairs."""

    def __init__(
        self,
        gradient_tolerance: float = RTOL,
        parameter_tolerance: float = ATOL,
        function_progress_tolerance: float = ATOL,
        maximum_iterations: int = 1000,
        memory: int = 10,
    ) -> None:
        if memory <= 0:
            raise ValueError("Memory parameter must be positive.")
        super().__init__(
            gradient_tolerance,
            parameter_tolerance,
            function_progress_tolerance,
            maximum_iterations,
        )
        self.memory = memory

    def _strategy(self, n: int) -> DirectionStrategy:
        return LbfgsDirection(self.memory)


def bfgs(
    problem: Problem,
    x0: np.ndarray,
    maxiter: int = 1000,
    tol: float = RTOL,
    history: bool = False,
) -> MinimizationResult:
    """Full-memory BFGS on a :class:`Problem`."""
    minimizer = BfgsMinimizer(gradient_tolerance=tol, maximum_iterations=maxiter)
    return minimizer.find_minimum(
        ObjectiveFunction.from_problem(problem), x0, history=history
    )


def lbfgs(
    problem: Problem,
    x0: np.ndarray,
    m: int = 10,
    maxiter: int = 1000,
    tol: float = RTOL,
    history: bool = False,
) -> MinimizationResult:
    """Limited-memory BFGS on a :class:`Problem`."""
    minimizer = LimitedMemoryBfgsMinimizer(
        gradient_tolerance=tol, maximum_iterations=maxiter, memory=m
    )
    return minimizer.find_minimum(
        ObjectiveFunction.from_problem(problem), x0, history=history
    )


__all__ = [
    "BfgsDirection",
    "BfgsMinimizer",
    "LbfgsDirection",
    "LimitedMemoryBfgsMinimizer",
    "bfgs",
    "lbfgs",
]
