"""Nelder-Mead downhill simplex."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np

from ..logging import get_logger
from .core import Array, ExitCondition, MaximumIterationsError, MinimizationResult, Objective
from .objective import ObjectiveFunction, finite_value

logger = get_logger(__name__)

# Guards the relative spread test against a zero denominator.
JITTER = 1e-10

REFLECTION = -1.0
EXPANSION = 2.0
CONTRACTION = 0.5


@dataclass
class _Profile:
    lowest: int
    next_highest: int
    highest: int


def default_perturbation(initial_guess: Array) -> Array:
    """Edge lengths of the starting simplex: 5% of each coordinate, or 0.00025 at zero."""
    x0 = np.asarray(initial_guess, dtype=float)
    return np.where(x0 == 0.0, 0.00025, 0.05 * x0)


def _profile(values: Array) -> _Profile:
    if values[0] > values[1]:
        highest, next_highest = 0, 1
    else:
        highest, next_highest = 1, 0
    lowest = 0
    for index, value in enumerate(values):
        if value <= values[lowest]:
            lowest = index
        if value > values[highest]:
            next_highest = highest
            highest = index
        elif value > values[next_highest] and index != highest:
            next_highest = index
    return _Profile(lowest, next_highest, highest)


class NelderMeadSimplex:
    """Derivative-free minimizer using reflections, expansions and contractions.

    Parameters
    ----------
    convergence_tolerance:
        Bound on the relative spread of the vertex values,
        ``2 |f_high - f_low| / (|f_high| + |f_low| + JITTER)``. The test has to
        pass on two consecutive iterations.
    maximum_iterations:
        Cap on the number of objective evaluations spent on trial points.
        Reaching it raises :class:`MaximumIterationsError`.
    """

    def __init__(self, convergence_tolerance: float = 1e-8, maximum_iterations: int = 1000) -> None:
        if convergence_tolerance <= 0:
            raise ValueError("convergence_tolerance must be positive")
        if maximum_iterations <= 0:
            raise ValueError("maximum_iterations must be positive")
        self.convergence_tolerance = convergence_tolerance
        self.maximum_iterations = maximum_iterations

    def _has_converged(self, values: Array, profile: _Profile) -> bool:
        high = values[profile.highest]
        low = values[profile.lowest]
        spread = 2.0 * abs(high - low) / (abs(high) + abs(low) + JITTER)
        return spread < self.convergence_tolerance

    @staticmethod
    def _scale(
        factor: float,
        profile: _Profile,
        vertices: Array,
        values: Array,
        objective: ObjectiveFunction,
    ) -> float:
        """Try ``centroid + factor (worst - centroid)``; keep it if it beats the worst vertex."""
        others = np.arange(len(vertices)) != profile.highest
        centroid = vertices[others].mean(axis=0)
        trial = centroid + factor * (vertices[profile.highest] - centroid)
        value = finite_value(objective.evaluate(trial))
        if value < values[profile.highest]:
            vertices[profile.highest] = trial
            values[profile.highest] = value
        return value

    @staticmethod
    def _shrink(
        profile: _Profile, vertices: Array, values: Array, objective: ObjectiveFunction
    ) -> None:
        best = vertices[profile.lowest].copy()
        for i in range(len(vertices)):
            if i != profile.lowest:
                vertices[i] = 0.5 * (vertices[i] + best)
                values[i] = finite_value(objective.evaluate(vertices[i]))

    def find_minimum(
        self,
        objective: ObjectiveFunction,
        initial_guess: Array,
        initial_perturbation: Optional[Array] = None,
    ) -> MinimizationResult:
        """Minimize ``objective`` from a simplex spanned around ``initial_guess``."""
        x0 = np.asarray(initial_guess, dtype=float)
        if x0.ndim != 1 or x0.size == 0:
            raise ValueError("initial_guess must be a non-empty vector")
        if initial_perturbation is None:
            perturbation = default_perturbation(x0)
        else:
            perturbation = np.asarray(initial_perturbation, dtype=float)
            if perturbation.shape != x0.shape:
                raise ValueError("initial_perturbation must match the initial guess")

        n = x0.size
        vertices = np.tile(x0, (n + 1, 1))
        vertices[1:] += np.diag(perturbation)
        values = np.array([finite_value(objective.evaluate(v)) for v in vertices])

        evaluations = 0
        iterations = 0
        times_converged = 0
        while True:
            profile = _profile(values)
            if self._has_converged(values, profile):
                times_converged += 1
            else:
                times_converged = 0
            if times_converged == 2:
                break
            iterations += 1

            reflected = self._scale(REFLECTION, profile, vertices, values, objective)
            evaluations += 1
            if reflected <= values[profile.lowest]:
                self._scale(EXPANSION, profile, vertices, values, objective)
                evaluations += 1
            elif reflected >= values[profile.next_highest]:
                worst = values[profile.highest]
                contracted = self._scale(CONTRACTION, profile, vertices, values, objective)
                evaluations += 1
                if contracted >= worst:
                    self._shrink(profile, vertices, values, objective)
                    evaluations += n

            if evaluations >= self.maximum_iterations:
                raise MaximumIterationsError(
                    f"Maximum iterations ({self.maximum_iterations}) reached."
                )
            logger.debug(
                "iteration %d: best=%.6g worst=%.6g", iterations, values.min(), values.max()
            )

        objective.evaluate_at(vertices[profile.lowest])
        return MinimizationResult(
            x=objective.point,
            fun=objective.value,
            nit=evaluations,
            exit_condition=ExitCondition.CONVERGED,
            nfev=objective.nfev,
            evaluation=objective.current,
        )


def nelder_mead(
    fun: Objective,
    x0: Array,
    tol: float = 1e-8,
    maxiter: int = 1000,
    initial_perturbation: Optional[Array] = None,
) -> MinimizationResult:
    """Minimize ``fun`` with the Nelder-Mead simplex."""
    return NelderMeadSimplex(tol, maxiter).find_minimum(
        ObjectiveFunction(fun), x0, initial_perturbation
    )


__all__ = ["JITTER", "NelderMeadSimplex", "default_perturbation", "nelder_mead"]
