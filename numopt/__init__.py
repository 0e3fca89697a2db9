"""numopt - numerical optimization on NumPy."""

__version__ = "0.1.0"

from .logging import configure_logging, get_logger, set_log_level

# Minimizers
from .optimize import (
    BfgsBMinimizer,
    BfgsMinimizer,
    BrentMinimizer,
    ExitCondition,
    GoldenSectionMinimizer,
    LevenbergMarquardtMinimizer,
    LimitedMemoryBfgsMinimizer,
    MinimizationResult,
    ModelMinimizationResult,
    NelderMeadSimplex,
    NewtonMinimizer,
    NonlinearObjectiveModel,
    ObjectiveFunction,
    OptimizationError,
    PowellMinimizer,
    Problem,
    ScalarObjectiveFunction,
    TrustRegionDogLegMinimizer,
    TrustRegionNewtonCGMinimizer,
    bfgs,
    bfgs_b,
    brent,
    golden_section,
    lbfgs,
    levenberg_marquardt,
    mpfit,
    nelder_mead,
    newton_method,
    powell,
    trust_region,
)

__all__ = [
    # Version
    "__version__",
    # Logging
    "configure_logging",
    "get_logger",
    "set_log_level",
    # Core
    "ExitCondition",
    "MinimizationResult",
    "ModelMinimizationResult",
    "ObjectiveFunction",
    "OptimizationError",
    "Problem",
    "ScalarObjectiveFunction",
    # Minimizers
    "BfgsBMinimizer",
    "BfgsMinimizer",
    "BrentMinimizer",
    "GoldenSectionMinimizer",
    "LevenbergMarquardtMinimizer",
    "LimitedMemoryBfgsMinimizer",
    "NelderMeadSimplex",
    "NewtonMinimizer",
    "NonlinearObjectiveModel",
    "PowellMinimizer",
    "TrustRegionDogLegMinimizer",
    "TrustRegionNewtonCGMinimizer",
    # Functional wrappers
    "bfgs",
    "bfgs_b",
    "brent",
    "golden_section",
    "lbfgs",
    "levenberg_marquardt",
    "mpfit",
    "nelder_mead",
    "newton_method",
    "powell",
    "trust_region",
]
