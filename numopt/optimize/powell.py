"""Powell's conjugate-direction method."""

from __future__ import annotations

from typing import Optional

import numpy as np

from ..logging import get_logger
from .core import Array, ExitCondition, MaximumIterationsError, MinimizationResult, Objective
from .objective import ObjectiveFunction, finite_value
from .scalar import BrentMinimizer, bracket

logger = get_logger(__name__)

_TINY = 1e-20


class PowellMinimizer:
    """Derivative-free minimization by successive line searches.

    Every cycle runs a Brent line minimization along each direction of the
    set. Afterwards the net displacement of the cycle replaces the direction
    that gave the largest single decrease, provided the extrapolation test
    says the new set stays well conditioned.

    Parameters
    ----------
    x_tolerance:
        Line-search tolerance (relative, passed to Brent).
    function_tolerance:
        Stop when one cycle lowers the objective by less than this fraction
        of its magnitude.
    maximum_iterations, maximum_evaluations:
        Budgets for cycles and objective evaluations, ``1000 n`` when
        ``None``. Exhausting either raises :class:`MaximumIterationsError`.
    """

    def __init__(
        self,
        x_tolerance: float = 1e-4,
        function_tolerance: float = 1e-4,
        maximum_iterations: Optional[int] = None,
        maximum_evaluations: Optional[int] = None,
    ) -> None:
        if x_tolerance <= 0 or function_tolerance <= 0:
            raise ValueError("tolerances must be positive")
        self.x_tolerance = x_tolerance
        self.function_tolerance = function_tolerance
        self.maximum_iterations = maximum_iterations
        self.maximum_evaluations = maximum_evaluations

    def _line_minimize(self, objective: ObjectiveFunction, x: Array, direction: Array):
        def along(alpha: float) -> float:
            return finite_value(objective.evaluate(x + alpha * direction))

        xa, xb, xc, _, _, _, _ = bracket(along, 0.0, 1.0)
        brent = BrentMinimizer(self.x_tolerance)
        alpha, value, _ = brent.minimize_in_bracket(along, xa, xb, xc)
        step = alpha * direction
        return value, x + step, step

    def find_minimum(
        self,
        objective: ObjectiveFunction,
        initial_guess: Array,
        directions: Optional[Array] = None,
    ) -> MinimizationResult:
        x = np.asarray(initial_guess, dtype=float).ravel().copy()
        n = x.size
        if n == 0:
            raise ValueError("initial_guess must not be empty")
        maximum_iterations = self.maximum_iterations or 1000 * n
        maximum_evaluations = self.maximum_evaluations or 1000 * n
        if directions is None:
            directions = np.eye(n)
        else:
            directions = np.array(directions, dtype=float)
            if directions.shape != (n, n):
                raise ValueError("directions must be an n x n array")

        fval = finite_value(objective.evaluate(x))
        start = x.copy()
        iterations = 0
        history = [x.copy()]
        while True:
            fx = fval
            biggest = 0
            delta = 0.0
            for i in range(n):
                before = fval
                fval, x, _ = self._line_minimize(objective, x, directions[i])
                if before - fval > delta:
                    delta = before - fval
                    biggest = i
            iterations += 1
            history.append(x.copy())
            logger.debug("iteration %d: f=%.6g largest decrease=%.3g", iterations, fval, delta)

            if 2.0 * (fx - fval) <= self.function_tolerance * (abs(fx) + abs(fval)) + _TINY:
                break
            if objective.nfev >= maximum_evaluations:
                raise MaximumIterationsError(
                    f"Maximum function evaluations ({maximum_evaluations}) reached."
                )
            if iterations >= maximum_iterations:
                raise MaximumIterationsError(
                    f"Maximum iterations ({maximum_iterations}) reached."
                )

            net = x - start
            extrapolated = 2.0 * x - start
            start = x.copy()
            fx2 = finite_value(objective.evaluate(extrapolated))
            if fx > fx2:
                t = 2.0 * (fx + fx2 - 2.0 * fval) * (fx - fval - delta) ** 2
                t -= delta * (fx - fx2) ** 2
                if t < 0.0:
                    fval, x, net = self._line_minimize(objective, x, net)
                    if np.any(net):
                        directions[biggest] = directions[-1]
                        directions[-1] = net

        objective.evaluate_at(x)
        return MinimizationResult(
            x=objective.point,
            fun=objective.value,
            nit=iterations,
            exit_condition=ExitCondition.LACK_OF_FUNCTION_IMPROVEMENT,
            nfev=objective.nfev,
            evaluation=objective.current,
            history=history,
        )


def powell(
    fun: Objective,
    x0: Array,
    xtol: float = 1e-4,
    ftol: float = 1e-4,
    maxiter: Optional[int] = None,
    maxfev: Optional[int] = None,
    directions: Optional[Array] = None,
) -> MinimizationResult:
    """Minimize ``fun`` with Powell's method."""
    return PowellMinimizer(xtol, ftol, maxiter, maxfev).find_minimum(
        ObjectiveFunction(fun), x0, directions
    )


__all__ = ["PowellMinimizer", "powell"]
