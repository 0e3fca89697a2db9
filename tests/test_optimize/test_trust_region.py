import numpy as np
import pytest

from numopt.optimize import (
    ExitCondition,
    TrustRegionDogLegMinimizer,
    TrustRegionMinimizer,
    TrustRegionNewtonCGMinimizer,
    nonlinear_model,
    trust_region,
)
from numopt.optimize.trust_region import DogLegSubproblem, NewtonCGSubproblem


@pytest.mark.parametrize(
    "minimizer", [TrustRegionDogLegMinimizer, TrustRegionNewtonCGMinimizer]
)
def test_rat43(rat43_problem, minimizer):
    model = nonlinear_model(rat43_problem.fun, rat43_problem.x, rat43_problem.y, jac=rat43_problem.jac)
    result = minimizer().find_minimum(model, rat43_problem.start2)

    assert result.success
    assert np.allclose(result.x, rat43_problem.best, rtol=1e-2)
    assert np.allclose(result.standard_errors, rat43_problem.std, rtol=1e-2)


@pytest.mark.parametrize("method", ["dogleg", "newton-cg"])
def test_boxbod_with_bounds(boxbod_problem, method):
    result = trust_region(
        boxbod_problem.fun,
        boxbod_problem.x,
        boxbod_problem.y,
        boxbod_problem.start2,
        jac=boxbod_problem.jac,
        lower=boxbod_problem.lower,
        upper=boxbod_problem.upper,
        method=method,
    )
    assert np.allclose(result.x, boxbod_problem.best, rtol=1e-4)


def test_linear_fit_matches_least_squares():
    x = np.linspace(-1.0, 1.0, 7)
    y = 0.5 - 1.5 * x + np.array([0.02, -0.01, 0.03, 0.0, -0.02, 0.01, -0.03])
    result = trust_region(lambda p, x: p[0] + p[1] * x, x, y, [0.0, 0.0])

    design = np.column_stack([np.ones_like(x), x])
    coef, *_ = np.linalg.lstsq(design, y, rcond=None)
    assert np.allclose(result.x, coef, atol=1e-6)
    assert result.degrees_of_freedom == 5


def test_zero_iterations_stops_at_the_start(boxbod_problem):
    result = trust_region(
        boxbod_problem.fun, boxbod_problem.x, boxbod_problem.y, boxbod_problem.start2, maxiter=0
    )
    assert result.exit_condition is ExitCondition.MANUALLY_STOPPED
    assert np.allclose(result.x, boxbod_problem.start2)


def test_iteration_budget_is_reported(rat43_problem):
    result = trust_region(
        rat43_problem.fun, rat43_problem.x, rat43_problem.y, rat43_problem.start1, maxiter=1
    )
    assert result.exit_condition is ExitCondition.EXCEED_ITERATIONS
    assert result.nit == 1


def test_unknown_method():
    with pytest.raises(ValueError, match="unknown trust-region method"):
        trust_region(lambda p, x: p[0] * x, np.arange(3.0), np.arange(3.0), [1.0], method="cauchy")


def test_invalid_parameters():
    with pytest.raises(ValueError):
        TrustRegionMinimizer(max_delta=0.0)
    with pytest.raises(ValueError):
        TrustRegionMinimizer(eta=0.5)


def test_dogleg_takes_gauss_newton_step_inside_region():
    proposal = DogLegSubproblem().solve(np.array([1.0, 0.0]), np.eye(2), 10.0)
    assert np.allclose(proposal.step, [-1.0, 0.0])
    assert not proposal.hit_boundary
    assert proposal.predicted_reduction == pytest.approx(0.5)


def test_dogleg_truncates_steepest_descent():
    proposal = DogLegSubproblem().solve(np.array([1.0, 0.0]), np.eye(2), 0.5)
    assert np.allclose(proposal.step, [-0.5, 0.0])
    assert proposal.hit_boundary


def test_dogleg_interpolates_on_the_boundary():
    gradient = np.array([1.0, 1.0])
    hessian = np.diag([1.0, 10.0])
    proposal = DogLegSubproblem().solve(gradient, hessian, 0.5)
    assert proposal.hit_boundary
    assert np.linalg.norm(proposal.step) == pytest.approx(0.5)
    assert proposal.predicted_reduction > 0


def test_newton_cg_solves_positive_definite_system():
    gradient = np.array([1.0, 1.0])
    hessian = np.diag([1.0, 4.0])
    proposal = NewtonCGSubproblem().solve(gradient, hessian, 10.0)
    assert np.allclose(proposal.step, [-1.0, -0.25])
    assert not proposal.hit_boundary


def test_newton_cg_stops_on_the_boundary():
    gradient = np.array([1.0, 1.0])
    proposal = NewtonCGSubproblem().solve(gradient, np.diag([1.0, 4.0]), 0.5)
    assert proposal.hit_boundary
    assert np.allclose(proposal.step, -0.5 / np.sqrt(2.0) * gradient)


def test_newton_cg_follows_negative_curvature():
    proposal = NewtonCGSubproblem().solve(np.array([1.0, 0.0]), np.diag([-1.0, 1.0]), 2.0)
    assert proposal.hit_boundary
    assert np.allclose(proposal.step, [-2.0, 0.0])
