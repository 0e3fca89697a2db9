"""Pytest configuration and shared fixtures for numopt tests.

This module provides:
- A deterministic numpy RNG fixture
- Global seeding so tests that draw from ``np.random`` are reproducible
"""

import os

import numpy as np
import pytest


def _seed() -> int:
    return int(os.environ.get("TEST_RNG_SEED", "0"))


@pytest.fixture(scope="function")
def rng() -> np.random.Generator:
    """Provide a deterministic numpy RNG for tests.

    Uses seed from TEST_RNG_SEED environment variable (default: 0).

    Returns:
        A seeded numpy.random.Generator instance.
    """
    return np.random.default_rng(_seed())


@pytest.fixture(scope="function", autouse=True)
def set_random_seeds() -> None:
    """Seed the numpy global RNG before every test."""
    np.random.seed(_seed())
