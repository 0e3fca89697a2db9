"""Deterministic minimizers for smooth, bounded and least-squares problems.

Example
-------
>>> import numpy as np
>>> from numopt.optimize import Problem, bfgs
>>> def rosen(x):
...     return (1 - x[0])**2 + 100 * (x[1] - x[0]**2)**2
>>> def rosen_grad(x):
...     return np.array([
...         -2 * (1 - x[0]) - 400 * x[0] * (x[1] - x[0] ** 2),
...         200 * (x[1] - x[0] ** 2),
...     ])
>>> problem = Problem(fun=rosen, grad=rosen_grad, dim=2)
>>> res = bfgs(problem, np.array([-1.2, 1.0]))
>>> round(res.fun, 6)
0.0
"""

from .bfgs_b import BfgsBMinimizer, bfgs_b
from .core import (
    ATOL,
    RTOL,
    EvaluationError,
    ExitCondition,
    IncompatibleObjectiveError,
    InnerOptimizationError,
    LineSearchError,
    MaximumIterationsError,
    MinimizationResult,
    ModelMinimizationResult,
    NonDescentDirectionError,
    OptimizationError,
    Problem,
    ScalarMinimizationResult,
)
from .levenberg_marquardt import LevenbergMarquardtMinimizer, levenberg_marquardt
from .line_search import LineSearchResult, StrongWolfeLineSearch, WeakWolfeLineSearch
from .model import NonlinearObjectiveModel, nonlinear_function, nonlinear_model
from .mpfit import MpConfig, MpFitError, MpResult, MpStatus, ParameterConstraint, mpfit
from .nelder_mead import NelderMeadSimplex, nelder_mead
from .newton import NewtonMinimizer, newton_method
from .objective import ObjectiveFunction, ScalarObjectiveFunction
from .powell import PowellMinimizer, powell
from .quasi_newton import BfgsMinimizer, LimitedMemoryBfgsMinimizer, bfgs, lbfgs
from .scalar import BrentMinimizer, GoldenSectionMinimizer, bracket, brent, golden_section
from .trust_region import (
    TrustRegionDogLegMinimizer,
    TrustRegionMinimizer,
    TrustRegionNewtonCGMinimizer,
    trust_region,
)
from .utils import approx_grad, approx_hessian, approx_jacobian, safe_solve

__all__ = [
    "ATOL",
    "BfgsBMinimizer",
    "BfgsMinimizer",
    "BrentMinimizer",
    "EvaluationError",
    "ExitCondition",
    "GoldenSectionMinimizer",
    "IncompatibleObjectiveError",
    "InnerOptimizationError",
    "LevenbergMarquardtMinimizer",
    "LimitedMemoryBfgsMinimizer",
    "LineSearchError",
    "LineSearchResult",
    "MaximumIterationsError",
    "MinimizationResult",
    "ModelMinimizationResult",
    "MpConfig",
    "MpFitError",
    "MpResult",
    "MpStatus",
    "NelderMeadSimplex",
    "NewtonMinimizer",
    "NonDescentDirectionError",
    "NonlinearObjectiveModel",
    "ObjectiveFunction",
    "OptimizationError",
    "ParameterConstraint",
    "PowellMinimizer",
    "Problem",
    "RTOL",
    "ScalarMinimizationResult",
    "ScalarObjectiveFunction",
    "StrongWolfeLineSearch",
    "TrustRegionDogLegMinimizer",
    "TrustRegionMinimizer",
    "TrustRegionNewtonCGMinimizer",
    "WeakWolfeLineSearch",
    "approx_grad",
    "approx_hessian",
    "approx_jacobian",
    "bfgs",
    "bfgs_b",
    "bracket",
    "brent",
    "golden_section",
    "lbfgs",
    "levenberg_marquardt",
    "mpfit",
    "nelder_mead",
    "newton_method",
    "nonlinear_function",
    "nonlinear_model",
    "powell",
    "safe_solve",
    "trust_region",
]
