"""NIST StRD nonlinear regression problems shared by the least-squares tests."""

from types import SimpleNamespace

import numpy as np
import pytest


def rat43(p, x):
    return p[0] / (1.0 + np.exp(p[1] - p[2] * x)) ** (1.0 / p[3])


def rat43_jac(p, x):
    e = np.exp(p[1] - p[2] * x)
    u = 1.0 + e
    f = u ** (-1.0 / p[3])
    dfdb = -p[0] / p[3] * f / u * e
    return np.column_stack(
        [f, dfdb, -dfdb * x, p[0] * f * np.log(u) / p[3] ** 2]
    )


def boxbod(p, x):
    return p[0] * (1.0 - np.exp(-p[1] * x))


def boxbod_jac(p, x):
    e = np.exp(-p[1] * x)
    return np.column_stack([1.0 - e, p[0] * x * e])


@pytest.fixture
def rat43_problem():
    return SimpleNamespace(
        fun=rat43,
        jac=rat43_jac,
        x=np.arange(1.0, 16.0),
        y=np.array(
            [
                16.08, 33.83, 65.80, 97.20, 191.55, 326.20, 386.87, 520.53,
                590.03, 651.92, 724.93, 699.56, 689.96, 637.56, 717.41,
            ]
        ),
        best=np.array([699.64151270, 5.2771253025, 0.75962938329, 1.2792483859]),
        std=np.array([16.302297817, 2.0828735829, 0.19566123451, 0.68761936385]),
        start1=np.array([100.0, 10.0, 1.0, 1.0]),
        start2=np.array([700.0, 5.0, 0.75, 1.3]),
    )


@pytest.fixture
def boxbod_problem():
    return SimpleNamespace(
        fun=boxbod,
        jac=boxbod_jac,
        x=np.array([1.0, 2.0, 3.0, 5.0, 7.0, 10.0]),
        y=np.array([109.0, 149.0, 149.0, 191.0, 213.0, 224.0]),
        best=np.array([213.80940889, 0.54723748542]),
        std=np.array([12.354515176, 0.10455993237]),
        start1=np.array([1.0, 1.0]),
        start2=np.array([100.0, 0.75]),
        lower=np.array([-1000.0, -100.0]),
        upper=np.array([1000.0, 100.0]),
        scales=np.array([100.0, 0.1]),
    )
