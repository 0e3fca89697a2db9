import numpy as np
import pytest

from numopt.optimize import (
    BrentMinimizer,
    EvaluationError,
    ExitCondition,
    GoldenSectionMinimizer,
    MaximumIterationsError,
    OptimizationError,
    ScalarObjectiveFunction,
    bracket,
    brent,
    golden_section,
)


def parabola(x: float) -> float:
    return (x - 2.0) ** 2


def test_golden_section_parabola():
    result = golden_section(parabola, 0.0, 5.0)
    assert result.x == pytest.approx(2.0, abs=1e-4)
    assert result.exit_condition is ExitCondition.BOUND_TOLERANCE
    assert result.success
    assert result.nfev >= result.nit + 3


def test_golden_section_cosine():
    result = golden_section(np.cos, 2.0, 4.0, tol=1e-8)
    assert result.x == pytest.approx(np.pi, abs=1e-6)
    assert result.fun == pytest.approx(-1.0)


def test_golden_section_expands_bracket():
    result = golden_section(lambda x: (x + 3.0) ** 2, 0.0, 1.0)
    assert result.x == pytest.approx(-3.0, abs=1e-4)


def test_golden_section_without_valley():
    with pytest.raises(OptimizationError, match="bound a minimum"):
        golden_section(lambda x: x, 0.0, 1.0)


def test_golden_section_errors():
    with pytest.raises(OptimizationError):
        golden_section(parabola, 1.0, 1.0)
    with pytest.raises(EvaluationError):
        golden_section(lambda x: np.nan, 0.0, 1.0)
    with pytest.raises(MaximumIterationsError):
        golden_section(parabola, 0.0, 5.0, maxiter=2)
    with pytest.raises(ValueError):
        GoldenSectionMinimizer(lower_expansion_factor=1.0)
    with pytest.raises(ValueError):
        GoldenSectionMinimizer(x_tolerance=0.0)


def test_bracket_finds_valley_downhill():
    xa, xb, xc, fa, fb, fc, nfev = bracket(lambda x: (x - 10.0) ** 2, 0.0, 1.0)
    assert fb < fa and fb < fc
    assert min(xa, xc) < 10.0 < max(xa, xc)
    assert nfev >= 3


def test_bracket_turns_around_when_uphill():
    xa, xb, xc, fa, fb, fc, _ = bracket(lambda x: (x + 5.0) ** 2, 0.0, 1.0)
    assert fb < fa and fb < fc
    assert min(xa, xc) < -5.0 < max(xa, xc)


def test_brent_with_bracketing_triple():
    result = brent(parabola, 0.0, 5.0, middle=1.0)
    assert result.x == pytest.approx(2.0, abs=1e-6)
    assert result.fun == pytest.approx(0.0, abs=1e-12)
    assert result.exit_condition is ExitCondition.BOUND_TOLERANCE


def test_brent_reversed_triple():
    result = brent(np.cos, 4.0, 2.0, middle=3.0)
    assert result.x == pytest.approx(np.pi, abs=1e-6)


def test_brent_searches_outside_the_seed_interval():
    result = brent(lambda x: (x - 10.0) ** 2)
    assert result.x == pytest.approx(10.0, abs=1e-6)


def test_brent_quartic_uses_objective_counts():
    objective = ScalarObjectiveFunction(lambda x: (x * x - 2.0) ** 2 + 1.0)
    result = BrentMinimizer().find_minimum(objective, 0.5, 3.0, middle=1.0)
    assert result.x == pytest.approx(np.sqrt(2.0), abs=1e-6)
    assert result.nfev == objective.nfev


def test_brent_errors():
    with pytest.raises(OptimizationError, match="bracketing"):
        brent(parabola, 0.0, 5.0, middle=4.5)
    with pytest.raises(ValueError):
        brent(parabola, 0.0, 5.0, middle=6.0)
    with pytest.raises(MaximumIterationsError):
        brent(parabola, 0.0, 5.0, middle=1.0, maxiter=1)
    with pytest.raises(ValueError):
        BrentMinimizer(tolerance=0.0)


def test_golden_section_on_wide_interval():
    result = golden_section(lambda x: (x - 3.0) ** 2, 0.0, 10.0)
    assert result.x == pytest.approx(3.0, abs=1e-4)


def test_brent_rejects_nan_while_bracketing():
    def fun(x: float) -> float:
        return np.nan if x > 0.6 else (x - 2.0) ** 2

    with pytest.raises(EvaluationError) as excinfo:
        brent(fun, 0.0, 0.5)
    assert excinfo.value.evaluation.point > 0.6


def test_brent_rejects_nan_inside_bracket():
    def fun(x: float) -> float:
        return np.nan if 1.0 < x < 1.5 else (x - 2.0) ** 2

    with pytest.raises(EvaluationError):
        brent(fun, 0.0, 3.0, middle=2.0)


def test_brent_rejects_infinite_start_of_bracket():
    with pytest.raises(EvaluationError):
        BrentMinimizer().minimize_in_bracket(lambda x: np.inf, 0.0, 1.0, 2.0)


def test_bracket_rejects_non_finite_values():
    with pytest.raises(EvaluationError):
        bracket(lambda x: np.inf if x > 2.0 else -x, 0.0, 1.0)
