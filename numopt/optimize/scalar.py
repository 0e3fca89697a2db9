"""Minimizers for functions of a single variable."""

from __future__ import annotations

from typing import Callable, Optional, Tuple

import numpy as np

from ..logging import get_logger
from .core import (
    EvaluationError,
    ExitCondition,
    MaximumIterationsError,
    OptimizationError,
    ScalarMinimizationResult,
)
from .objective import ScalarEvaluation, ScalarObjectiveFunction, finite_value

logger = get_logger(__name__)

GOLDEN_RATIO = (1.0 + np.sqrt(5.0)) / 2.0

_GOLD = 1.618034
_CG = 0.3819660
_MINTOL = 1.0e-11
_VERY_SMALL = 1e-21


def _finite(evaluation: ScalarEvaluation) -> ScalarEvaluation:
    finite_value(evaluation)
    return evaluation


def _checked(fun: Callable[[float], float]) -> Callable[[float], float]:
    def checked(x: float) -> float:
        value = fun(x)
        if not np.isfinite(value):
            raise EvaluationError(f"Objective function returned non-finite value at {x}.")
        return value

    return checked


class GoldenSectionMinimizer:
    """Golden-section search inside an interval.

    If the starting interval does not contain a valley (an interior point
    lower than both ends), it is widened around its centre up to
    ``maximum_expansion_steps`` times.
    """

    def __init__(
        self,
        x_tolerance: float = 1e-5,
        maximum_iterations: int = 1000,
        maximum_expansion_steps: int = 10,
        lower_expansion_factor: float = 2.0,
        upper_expansion_factor: float = 2.0,
    ) -> None:
        if x_tolerance <= 0:
            raise ValueError("x_tolerance must be positive")
        if lower_expansion_factor <= 1.0 or upper_expansion_factor <= 1.0:
            raise ValueError("expansion factors must be greater than one")
        self.x_tolerance = x_tolerance
        self.maximum_iterations = maximum_iterations
        self.maximum_expansion_steps = maximum_expansion_steps
        self.lower_expansion_factor = lower_expansion_factor
        self.upper_expansion_factor = upper_expansion_factor

    @staticmethod
    def _middle(lower: float, upper: float) -> float:
        return lower + (upper - lower) / (1.0 + GOLDEN_RATIO)

    def find_minimum(
        self, objective: ScalarObjectiveFunction, lower_bound: float, upper_bound: float
    ) -> ScalarMinimizationResult:
        if upper_bound <= lower_bound:
            raise OptimizationError("Lower bound must be lower than upper bound.")

        lower = _finite(objective.evaluate(lower_bound))
        middle = _finite(objective.evaluate(self._middle(lower_bound, upper_bound)))
        upper = _finite(objective.evaluate(upper_bound))

        steps = 0
        while steps < self.maximum_expansion_steps and (
            upper.value < middle.value or lower.value < middle.value
        ):
            centre = 0.5 * (upper.point + lower.point)
            half_width = 0.5 * (upper.point - lower.point)
            if lower.value < middle.value:
                lower = _finite(
                    objective.evaluate(centre - self.lower_expansion_factor * half_width)
                )
            if upper.value < middle.value:
                upper = _finite(
                    objective.evaluate(centre + self.upper_expansion_factor * half_width)
                )
            middle = _finite(objective.evaluate(self._middle(lower.point, upper.point)))
            steps += 1
            logger.info("expanded bracket to [%g, %g]", lower.point, upper.point)

        if upper.value < middle.value or lower.value < middle.value:
            raise OptimizationError(
                "Lower and upper bounds do not necessarily bound a minimum."
            )

        iterations = 0
        while abs(upper.point - lower.point) > self.x_tolerance:
            if iterations >= self.maximum_iterations:
                raise MaximumIterationsError(
                    f"Maximum iterations ({self.maximum_iterations}) reached."
                )
            test = _finite(objective.evaluate(lower.point + (upper.point - middle.point)))
            if test.point < middle.point:
                if test.value > middle.value:
                    lower = test
                else:
                    upper, middle = middle, test
            else:
                if test.value > middle.value:
                    upper = test
                else:
                    lower, middle = middle, test
            iterations += 1

        return ScalarMinimizationResult(
            x=middle.point,
            fun=middle.value,
            nit=iterations,
            exit_condition=ExitCondition.BOUND_TOLERANCE,
            nfev=objective.nfev,
        )


def bracket(
    fun: Callable[[float], float],
    xa: float = 0.0,
    xb: float = 1.0,
    grow_limit: float = 110.0,
    maximum_iterations: int = 1000,
) -> Tuple[float, float, float, float, float, float, int]:
    """Search downhill from ``xa, xb`` for a triple with ``f(xa) > f(xb) < f(xc)``.

    Returns ``(xa, xb, xc, fa, fb, fc, nfev)``. The triple need not contain
    the starting points. A non-finite function value raises
    :class:`EvaluationError`.
    """
    checked = _checked(fun)
    fa = checked(xa)
    fb = checked(xb)
    if fa < fb:
        xa, xb = xb, xa
        fa, fb = fb, fa
    xc = xb + _GOLD * (xb - xa)
    fc = checked(xc)
    nfev = 3
    iterations = 0
    while fc < fb:
        tmp1 = (xb - xa) * (fb - fc)
        tmp2 = (xb - xc) * (fb - fa)
        val = tmp2 - tmp1
        denom = 2.0 * _VERY_SMALL if abs(val) < _VERY_SMALL else 2.0 * val
        w = xb - ((xb - xc) * tmp2 - (xb - xa) * tmp1) / denom
        wlim = xb + grow_limit * (xc - xb)
        if iterations > maximum_iterations:
            raise MaximumIterationsError("Too many iterations while bracketing.")
        iterations += 1
        if (w - xc) * (xb - w) > 0.0:
            fw = checked(w)
            nfev += 1
            if fw < fc:
                return xb, w, xc, fb, fw, fc, nfev
            if fw > fb:
                return xa, xb, w, fa, fb, fw, nfev
            w = xc + _GOLD * (xc - xb)
            fw = checked(w)
            nfev += 1
        elif (w - wlim) * (wlim - xc) >= 0.0:
            w = wlim
            fw = checked(w)
            nfev += 1
        elif (w - wlim) * (xc - w) > 0.0:
            fw = checked(w)
            nfev += 1
            if fw < fc:
                xb, xc, w = xc, w, w + _GOLD * (w - xc)
                fb, fc = fc, fw
                fw = checked(w)
                nfev += 1
        else:
            w = xc + _GOLD * (xc - xb)
            fw = checked(w)
            nfev += 1
        xa, xb, xc = xb, xc, w
        fa, fb, fc = fb, fc, fw
    return xa, xb, xc, fa, fb, fc, nfev


class BrentMinimizer:
    """Brent's method: golden-section steps accelerated by parabolic interpolation.

    Parameters
    ----------
    tolerance:
        Relative precision of the minimizing point.
    maximum_iterations:
        Budget of Brent iterations; exhausting it raises
        :class:`MaximumIterationsError`.
    """

    def __init__(self, tolerance: float = 1.48e-8, maximum_iterations: int = 500) -> None:
        if tolerance <= 0:
            raise ValueError("tolerance must be positive")
        self.tolerance = tolerance
        self.maximum_iterations = maximum_iterations

    def find_minimum(
        self,
        objective: ScalarObjectiveFunction,
        lower: float = 0.0,
        upper: float = 1.0,
        middle: Optional[float] = None,
    ) -> ScalarMinimizationResult:
        """Minimize ``objective``.

        With ``middle`` given, ``(lower, middle, upper)`` must already bracket
        a minimum. Otherwise ``lower`` and ``upper`` seed a downhill
        :func:`bracket` search and the minimum may lie outside them.
        """

        def fun(x: float) -> float:
            return finite_value(objective.evaluate(x))

        if middle is None:
            xa, xb, xc, _, _, _, _ = bracket(fun, lower, upper)
        else:
            xa, xb, xc = lower, middle, upper
            if xa > xc:
                xa, xc = xc, xa
            if not xa < xb < xc:
                raise ValueError("middle must lie strictly between lower and upper")
            fa, fb, fc = fun(xa), fun(xb), fun(xc)
            if not (fb < fa and fb < fc):
                raise OptimizationError("Not a bracketing interval.")
        x, fx, iterations = self.minimize_in_bracket(fun, xa, xb, xc)
        return ScalarMinimizationResult(
            x=float(x),
            fun=float(fx),
            nit=iterations,
            exit_condition=ExitCondition.BOUND_TOLERANCE,
            nfev=objective.nfev,
        )

    def minimize_in_bracket(
        self, fun: Callable[[float], float], xa: float, xb: float, xc: float
    ) -> Tuple[float, float, int]:
        """Brent iterations on a bracket; returns ``(x, f(x), iterations)``.

        Non-finite values of ``fun`` raise :class:`EvaluationError`.
        """
        fun = _checked(fun)
        x = w = v = xb
        fw = fv = fx = fun(x)
        a, b = (xa, xc) if xa < xc else (xc, xa)
        deltax = 0.0
        rat = 0.0
        iterations = 0
        while True:
            tol1 = self.tolerance * abs(x) + _MINTOL
            tol2 = 2.0 * tol1
            xmid = 0.5 * (a + b)
            if abs(x - xmid) < tol2 - 0.5 * (b - a):
                return x, fx, iterations
            if iterations >= self.maximum_iterations:
                raise MaximumIterationsError(
                    f"Maximum iterations ({self.maximum_iterations}) reached."
                )

            if abs(deltax) <= tol1:
                deltax = a - x if x >= xmid else b - x
                rat = _CG * deltax
            else:
                tmp1 = (x - w) * (fx - fv)
                tmp2 = (x - v) * (fx - fw)
                p = (x - v) * tmp2 - (x - w) * tmp1
                tmp2 = 2.0 * (tmp2 - tmp1)
                if tmp2 > 0.0:
                    p = -p
                tmp2 = abs(tmp2)
                previous = deltax
                deltax = rat
                if tmp2 * (a - x) < p < tmp2 * (b - x) and abs(p) < abs(0.5 * tmp2 * previous):
                    rat = p / tmp2
                    u = x + rat
                    if (u - a) < tol2 or (b - u) < tol2:
                        rat = tol1 if xmid - x >= 0 else -tol1
                else:
                    deltax = a - x if x >= xmid else b - x
                    rat = _CG * deltax

            if abs(rat) < tol1:
                u = x + tol1 if rat >= 0 else x - tol1
            else:
                u = x + rat
            fu = fun(u)

            if fu > fx:
                if u < x:
                    a = u
                else:
                    b = u
                if fu <= fw or w == x:
                    v, w = w, u
                    fv, fw = fw, fu
                elif fu <= fv or v == x or v == w:
                    v = u
                    fv = fu
            else:
                if u >= x:
                    a = x
                else:
                    b = x
                v, w, x = w, x, u
                fv, fw, fx = fw, fx, fu
            iterations += 1


def golden_section(
    fun: Callable[[float], float],
    lower: float,
    upper: float,
    tol: float = 1e-5,
    maxiter: int = 1000,
) -> ScalarMinimizationResult:
    """Minimize ``fun`` on ``[lower, upper]`` by golden-section search."""
    return GoldenSectionMinimizer(tol, maxiter).find_minimum(
        ScalarObjectiveFunction(fun), lower, upper
    )


def brent(
    fun: Callable[[float], float],
    lower: float = 0.0,
    upper: float = 1.0,
    middle: Optional[float] = None,
    tol: float = 1.48e-8,
    maxiter: int = 500,
) -> ScalarMinimizationResult:
    """Minimize ``fun`` with Brent's method."""
    return BrentMinimizer(tol, maxiter).find_minimum(
        ScalarObjectiveFunction(fun), lower, upper, middle
    )


__all__ = [
    "BrentMinimizer",
    "GOLDEN_RATIO",
    "GoldenSectionMinimizer",
    "bracket",
    "brent",
    "golden_section",
]
