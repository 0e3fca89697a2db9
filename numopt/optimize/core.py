"""Core types shared across the minimizers: problems, results, exit reasons
and the exception hierarchy."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, List, Optional

import numpy as np

if TYPE_CHECKING:
    from .objective import Evaluation

Array = np.ndarray
Objective = Callable[[Array], float]
Gradient = Callable[[Array], Array]
Hessian = Callable[[Array], Array]

RTOL = 1e-8
ATOL = 1e-10


class ExitCondition(Enum):
    """Reason a minimizer or line search stopped."""

    NONE = "none"
    INVALID_VALUES = "invalid_values"
    EXCEED_ITERATIONS = "exceed_iterations"
    RELATIVE_POINTS = "relative_points"
    RELATIVE_GRADIENT = "relative_gradient"
    LACK_OF_PROGRESS = "lack_of_progress"
    LACK_OF_FUNCTION_IMPROVEMENT = "lack_of_function_improvement"
    WEAK_WOLFE_CRITERIA = "weak_wolfe_criteria"
    STRONG_WOLFE_CRITERIA = "strong_wolfe_criteria"
    BOUND_TOLERANCE = "bound_tolerance"
    ABSOLUTE_GRADIENT = "absolute_gradient"
    CONVERGED = "converged"
    MANUALLY_STOPPED = "manually_stopped"


_CONVERGED = frozenset(
    {
        ExitCondition.RELATIVE_POINTS,
        ExitCondition.RELATIVE_GRADIENT,
        ExitCondition.LACK_OF_PROGRESS,
        ExitCondition.LACK_OF_FUNCTION_IMPROVEMENT,
        ExitCondition.WEAK_WOLFE_CRITERIA,
        ExitCondition.STRONG_WOLFE_CRITERIA,
        ExitCondition.BOUND_TOLERANCE,
        ExitCondition.ABSOLUTE_GRADIENT,
        ExitCondition.CONVERGED,
    }
)


class OptimizationError(Exception):
    """Error in an optimization routine."""


class IncompatibleObjectiveError(OptimizationError, TypeError):
    """The objective does not provide a capability the minimizer needs."""


class EvaluationError(OptimizationError):
    """A user function failed or produced non-finite values.

    The offending evaluation is available as ``evaluation`` so callers can
    inspect the point that triggered the failure.
    """

    def __init__(self, message: str, evaluation: Optional[Any] = None) -> None:
        super().__init__(message)
        self.evaluation = evaluation


class InnerOptimizationError(OptimizationError):
    """A sub-procedure (line search, subproblem) failed inside a minimizer."""


class LineSearchError(OptimizationError):
    """The line search could not find a conforming step."""


class MaximumIterationsError(OptimizationError):
    """An iteration or evaluation budget was exhausted before convergence."""


class NonDescentDirectionError(OptimizationError):
    """A search direction was not a descent direction."""


@dataclass(frozen=True)
class Problem:
    """Container describing an unconstrained optimization problem."""

    fun: Objective
    grad: Optional[Gradient] = None
    hess: Optional[Hessian] = None
    dim: Optional[int] = None


@dataclass
class MinimizationResult:
    """Result of a vector minimizer.

    Attributes:
        x: Minimizing point.
        fun: Objective value at ``x``.
        nit: Number of outer iterations performed.
        exit_condition: Why the minimizer stopped.
        grad: Gradient at ``x`` (``None`` for derivative-free methods).
        nfev: Function evaluations (including finite-difference ones).
        njev: Analytic gradient evaluations.
        nhev: Analytic Hessian evaluations.
        evaluation: The final :class:`~numopt.optimize.objective.Evaluation`.
        history: Accepted iterates, when requested.
        total_line_search_iterations: Extra trial steps over all line searches.
        iterations_with_nontrivial_line_search: Iterations whose line search
            needed more than the initial step.
        resets: Number of steepest-descent resets of the Hessian approximation.
    """

    x: Array
    fun: float
    nit: int
    exit_condition: ExitCondition
    grad: Optional[Array] = None
    nfev: int = 0
    njev: int = 0
    nhev: int = 0
    evaluation: Optional["Evaluation"] = None
    history: List[Array] = field(default_factory=list)
    total_line_search_iterations: int = 0
    iterations_with_nontrivial_line_search: int = 0
    resets: int = 0

    @property
    def success(self) -> bool:
        return self.exit_condition in _CONVERGED

    @property
    def grad_norm(self) -> float:
        if self.grad is None:
            return float("nan")
        return float(np.linalg.norm(self.grad))


@dataclass
class ScalarMinimizationResult:
    """Result of a scalar (one-dimensional) minimizer."""

    x: float
    fun: float
    nit: int
    exit_condition: ExitCondition
    nfev: int = 0

    @property
    def success(self) -> bool:
        return self.exit_condition in _CONVERGED


@dataclass
class ModelMinimizationResult:
    """Result of a least-squares fit.

    Attributes:
        x: Best-fit parameters (external coordinates).
        fun: Weighted residual sum of squares at ``x``.
        nit: Number of outer iterations.
        exit_condition: Why the minimizer stopped.
        standard_errors: Square roots of the covariance diagonal.
        covariance: Parameter covariance, ``pinv(J'WJ) * RSS / dof``.
        correlation: Correlation matrix derived from ``covariance``.
        model_values: Model prediction at ``x``.
        residuals: ``y - model_values``.
        degrees_of_freedom: Observations minus free parameters.
        nfev: Model evaluations (including numerical Jacobians).
        njev: Analytic Jacobian evaluations.
    """

    x: Array
    fun: float
    nit: int
    exit_condition: ExitCondition
    standard_errors: Optional[Array] = None
    covariance: Optional[Array] = None
    correlation: Optional[Array] = None
    model_values: Optional[Array] = None
    residuals: Optional[Array] = None
    degrees_of_freedom: int = 0
    nfev: int = 0
    njev: int = 0

    @property
    def success(self) -> bool:
        return self.exit_condition in _CONVERGED


__all__ = [
    "ATOL",
    "Array",
    "EvaluationError",
    "ExitCondition",
    "Gradient",
    "Hessian",
    "IncompatibleObjectiveError",
    "InnerOptimizationError",
    "LineSearchError",
    "MaximumIterationsError",
    "MinimizationResult",
    "ModelMinimizationResult",
    "NonDescentDirectionError",
    "Objective",
    "OptimizationError",
    "Problem",
    "RTOL",
    "ScalarMinimizationResult",
]
