"""Gradient projection onto box constraints.

The generalized Cauchy point is the first local minimizer of the quadratic
model ``q(x) = g'(x - x0) + 1/2 (x - x0)' B (x - x0)`` along the projected
steepest-descent path ``P(x0 - t g)``. That path is piecewise linear with
kinks at the breakpoints where coordinates reach their bounds.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from .core import Array

# Distance below which a coordinate counts as sitting on its bound.
VERY_SMALL = 1e-15


@dataclass
class GradientProjectionResult:
    """Generalized Cauchy point and the variables fixed at a bound."""

    cauchy_point: Array
    fixed_count: int
    is_fixed: Array


def _check_bounds(x: Array, lower: Array, upper: Array) -> None:
    if lower.shape != x.shape or upper.shape != x.shape:
        raise ValueError("bounds must have the same shape as the point")
    if np.any(lower > upper):
        raise ValueError("lower bound must not exceed upper bound")


def projected_gradient(x: Array, gradient: Array, lower: Array, upper: Array) -> Array:
    """Gradient with components pointing out of an active bound zeroed."""
    at_lower = x - lower < VERY_SMALL
    at_upper = upper - x < VERY_SMALL
    projected = np.array(gradient, dtype=float)
    projected[at_lower] = np.minimum(projected[at_lower], 0.0)
    projected[at_upper] = np.maximum(projected[at_upper], 0.0)
    projected[at_lower & at_upper] = 0.0
    return projected


def find_max_step(x: Array, direction: Array, lower: Array, upper: Array) -> float:
    """Largest ``t`` keeping ``x + t * direction`` inside ``[lower, upper]``."""
    max_step = np.inf
    for xi, di, lo, hi in zip(x, direction, lower, upper):
        if di > 0:
            max_step = min(max_step, (hi - xi) / di)
        elif di < 0:
            max_step = min(max_step, (xi - lo) / -di)
    return float(max_step)


def gradient_projection_search(
    x0: Array, gradient: Array, hessian: Array, lower: Array, upper: Array
) -> GradientProjectionResult:
    """Walk the projected-gradient path to the generalized Cauchy point."""
    x0 = np.asarray(x0, dtype=float)
    gradient = np.asarray(gradient, dtype=float)
    hessian = np.asarray(hessian, dtype=float)
    lower = np.asarray(lower, dtype=float)
    upper = np.asarray(upper, dtype=float)
    _check_bounds(x0, lower, upper)

    breakpoints = np.full(x0.size, np.inf)
    descending = gradient > 0
    ascending = gradient < 0
    breakpoints[descending] = (x0[descending] - lower[descending]) / gradient[descending]
    breakpoints[ascending] = (x0[ascending] - upper[ascending]) / gradient[ascending]
    on_bound = (np.abs(x0 - lower) < VERY_SMALL) | (np.abs(x0 - upper) < VERY_SMALL)
    breakpoints[(gradient == 0) & on_bound] = 0.0

    is_fixed = breakpoints <= 0.0
    direction = np.where(is_fixed, 0.0, -gradient)
    x = x0.copy()
    segment_start = 0.0
    remaining = np.unique(breakpoints[breakpoints > 0.0])

    for breakpoint in remaining:
        if is_fixed.all():
            break
        hd = hessian @ direction
        slope = float(gradient @ direction + hd @ (x - x0))
        curvature = float(direction @ hd)
        if slope >= 0.0:
            break
        if curvature > 0.0:
            local_step = -slope / curvature
            if local_step < breakpoint - segment_start:
                x = x + local_step * direction
                break
        if np.isinf(breakpoint):
            break
        x = x + (breakpoint - segment_start) * direction
        hit = ~is_fixed & (breakpoints <= breakpoint)
        x[hit] = np.where(gradient[hit] > 0, lower[hit], upper[hit])
        is_fixed |= hit
        direction[hit] = 0.0
        segment_start = breakpoint

    x = np.clip(x, lower, upper)
    return GradientProjectionResult(x, int(is_fixed.sum()), is_fixed)


__all__ = [
    "GradientProjectionResult",
    "VERY_SMALL",
    "find_max_step",
    "gradient_projection_search",
    "projected_gradient",
]
