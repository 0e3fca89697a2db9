import numpy as np
import pytest

from numopt.optimize.active_set import (
    find_max_step,
    gradient_projection_search,
    projected_gradient,
)


def test_projected_gradient_zeroes_outward_components():
    x = np.array([0.0, 1.0, 0.5])
    gradient = np.array([1.0, -1.0, 2.0])
    lower = np.zeros(3)
    upper = np.ones(3)
    assert np.allclose(projected_gradient(x, gradient, lower, upper), [0.0, 0.0, 2.0])
    inward = np.array([-1.0, 1.0, 2.0])
    assert np.allclose(projected_gradient(x, inward, lower, upper), inward)


def test_find_max_step():
    x = np.array([0.5, 0.5])
    lower = np.zeros(2)
    upper = np.ones(2)
    assert find_max_step(x, np.array([1.0, 0.0]), lower, upper) == pytest.approx(0.5)
    assert find_max_step(x, np.array([-0.25, 0.5]), lower, upper) == pytest.approx(1.0)
    assert np.isinf(find_max_step(x, np.zeros(2), lower, upper))


def test_cauchy_point_interior_minimum():
    hessian = np.eye(2)
    gradient = np.array([0.2, -0.1])
    result = gradient_projection_search(
        np.zeros(2), gradient, hessian, -np.ones(2), np.ones(2)
    )
    assert np.allclose(result.cauchy_point, -gradient)
    assert result.fixed_count == 0


def test_cauchy_point_stops_at_bounds():
    hessian = np.eye(2)
    gradient = np.array([4.0, -0.5])
    result = gradient_projection_search(
        np.zeros(2), gradient, hessian, -np.ones(2), np.ones(2)
    )
    assert np.allclose(result.cauchy_point, [-1.0, 0.5])
    assert result.fixed_count == 1
    assert list(result.is_fixed) == [True, False]


def test_variables_on_bound_with_outward_gradient_stay_fixed():
    result = gradient_projection_search(
        np.array([0.0, 0.5]),
        np.array([1.0, -1.0]),
        np.eye(2),
        np.zeros(2),
        np.ones(2),
    )
    assert result.is_fixed[0]
    assert result.cauchy_point[0] == 0.0
    assert np.allclose(result.cauchy_point[1], 1.0)


def test_bounds_shape_mismatch_raises():
    with pytest.raises(ValueError):
        gradient_projection_search(
            np.zeros(2), np.ones(2), np.eye(2), np.zeros(3), np.ones(2)
        )
    with pytest.raises(ValueError):
        gradient_projection_search(
            np.zeros(2), np.ones(2), np.eye(2), np.ones(2), np.zeros(2)
        )
