"""MPFIT: bounded Levenberg-Marquardt least squares in the MINPACK tradition.

``mpfit`` minimizes the sum of squares of the deviates returned by a user
function. Parameters can be fixed, bounded on either side, given custom
finite-difference steps, or differentiated analytically. The building
blocks (:func:`qrfac`, :func:`qrsolv`, :func:`lmpar`, :func:`covar`,
:func:`enorm`) follow MINPACK-1 and operate on column-major ``m x n``
Jacobians.

Example
-------
>>> import numpy as np
>>> from numopt.optimize.mpfit import mpfit
>>> x = np.array([0.0, 1.0, 2.0, 3.0])
>>> y = np.array([1.0, 3.1, 4.9, 7.0])
>>> res = mpfit(lambda p: (y - (p[0] + p[1] * x)) / 0.1, [0.0, 0.0])
>>> bool(res.success)
True
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np

from ..logging import get_logger
from .core import Array, OptimizationError

logger = get_logger(__name__)

MP_MACHEP0 = 2.2204460e-16
MP_DWARF = 2.2250739e-308

_FINFO = np.finfo(float)


class MpStatus(IntEnum):
    """MPFIT completion and error codes."""

    ERR_INPUT = 0
    ERR_NAN = -16
    ERR_FUNC = -17
    ERR_NPOINTS = -18
    ERR_NFREE = -19
    ERR_INITBOUNDS = -21
    ERR_BOUNDS = -22
    ERR_PARAM = -23
    ERR_DOF = -24

    OK_CHI = 1
    OK_PAR = 2
    OK_BOTH = 3
    OK_DIR = 4
    MAXITER = 5
    FTOL = 6
    XTOL = 7
    GTOL = 8


_SUCCESS = frozenset(
    {
        MpStatus.OK_CHI,
        MpStatus.OK_PAR,
        MpStatus.OK_BOTH,
        MpStatus.OK_DIR,
        MpStatus.FTOL,
        MpStatus.XTOL,
        MpStatus.GTOL,
    }
)


class MpFitError(OptimizationError):
    """Invalid MPFIT input or a non-finite evaluation; ``status`` holds the code."""

    def __init__(self, status: MpStatus, message: str) -> None:
        super().__init__(f"{message} (status {status.name})")
        self.status = status


@dataclass
class ParameterConstraint:
    """Per-parameter options.

    Attributes:
        fixed: Hold the parameter at its starting value.
        limited: Whether the lower and upper limits apply.
        limits: Lower and upper limit values.
        step: Absolute finite-difference step (0 picks one automatically).
        relstep: Relative finite-difference step, overrides ``step``.
        side: Derivative method: 0 one-sided (away from an upper limit),
            1 forward, -1 backward, 2 two-sided, 3 analytic (``jac``).
        deriv_debug: Compare analytic and numerical derivatives, logging
            mismatches at INFO.
        deriv_reltol, deriv_abstol: Tolerances of that comparison.
    """

    fixed: bool = False
    limited: Tuple[bool, bool] = (False, False)
    limits: Tuple[float, float] = (0.0, 0.0)
    step: float = 0.0
    relstep: float = 0.0
    side: int = 0
    deriv_debug: bool = False
    deriv_reltol: float = 0.0
    deriv_abstol: float = 0.0


@dataclass
class MpConfig:
    """Fit configuration.

    ``ftol`` bounds the relative reduction of the sum of squares, ``xtol``
    the relative change of the parameters and ``gtol`` the cosine between
    the deviates and the Jacobian columns. ``stepfactor`` sets the initial
    step bound. With ``douserscale`` the variables are scaled by ``diag``
    instead of the Jacobian column norms. ``maxfev`` of 0 means unlimited.
    """

    ftol: float = 1e-10
    xtol: float = 1e-10
    gtol: float = 1e-10
    epsfcn: float = MP_MACHEP0
    stepfactor: float = 100.0
    covtol: float = 1e-14
    maxiter: int = 200
    maxfev: int = 0
    douserscale: bool = False
    check_finite: bool = False
    diag: Optional[Sequence[float]] = None


@dataclass
class MpResult:
    """Outcome of :func:`mpfit`."""

    params: Array
    bestnorm: float
    orignorm: float
    niter: int
    nfev: int
    status: MpStatus
    npar: int
    nfree: int
    npegged: int
    resid: Array
    xerror: Array
    covar: Array
    nfunc: int = 0
    njev: int = 0

    @property
    def success(self) -> bool:
        return self.status in _SUCCESS


def enorm(vec: Array) -> float:
    """Euclidean norm guarded against overflow and underflow."""
    vec = np.asarray(vec, dtype=float)
    if vec.size == 0:
        return 0.0
    largest = float(np.max(np.abs(vec)))
    if largest == 0.0 or not np.isfinite(largest):
        return largest
    if largest > np.sqrt(_FINFO.max / vec.size) or largest < np.sqrt(_FINFO.tiny):
        scaled = vec / largest
        return largest * float(np.sqrt(scaled @ scaled))
    return float(np.sqrt(vec @ vec))


def qrfac(a: Array) -> Tuple[Array, Array, Array]:
    """Householder QR with column pivoting, in place: ``a P = Q R``.

    On return the strict upper triangle of ``a`` holds the strict upper
    triangle of R and the lower trapezoid holds the Householder vectors.
    Returns ``(ipvt, rdiag, acnorm)``: the column permutation, the diagonal
    of R and the norms of the original columns.
    """
    m, n = a.shape
    acnorm = np.array([enorm(a[:, j]) for j in range(n)])
    rdiag = acnorm.copy()
    wa = acnorm.copy()
    ipvt = np.arange(n)

    for j in range(min(m, n)):
        kmax = j + int(np.argmax(rdiag[j:]))
        if kmax != j:
            a[:, [j, kmax]] = a[:, [kmax, j]]
            rdiag[kmax] = rdiag[j]
            wa[kmax] = wa[j]
            ipvt[[j, kmax]] = ipvt[[kmax, j]]

        ajnorm = enorm(a[j:, j])
        if ajnorm == 0.0:
            rdiag[j] = 0.0
            continue
        if a[j, j] < 0.0:
            ajnorm = -ajnorm
        a[j:, j] /= ajnorm
        a[j, j] += 1.0

        for k in range(j + 1, n):
            a[j:, k] -= a[j:, j] * (float(a[j:, j] @ a[j:, k]) / a[j, j])
            if rdiag[k] != 0.0:
                temp = a[j, k] / rdiag[k]
                rdiag[k] *= np.sqrt(max(0.0, 1.0 - temp * temp))
                if 0.05 * (rdiag[k] / wa[k]) ** 2 <= MP_MACHEP0:
                    rdiag[k] = enorm(a[j + 1 :, k])
                    wa[k] = rdiag[k]
        rdiag[j] = -ajnorm
    return ipvt, rdiag, acnorm


def qrsolv(r: Array, ipvt: Array, diag: Array, qtb: Array, sdiag: Array) -> Array:
    """Least-squares solution of ``J x = b, D x = 0`` from the QR of ``J``.

    ``r`` holds R in its upper triangle; its strict lower triangle is
    overwritten with S from ``P'(J'J + D D)P = S'S`` whose diagonal goes to
    ``sdiag``.
    """
    n = r.shape[1]
    for j in range(n):
        r[j:n, j] = r[j, j:n]
    x = r.diagonal()[:n].copy()
    wa = np.array(qtb, dtype=float)

    for j in range(n):
        l = ipvt[j]
        if diag[l] != 0.0:
            sdiag[j:] = 0.0
            sdiag[j] = diag[l]
            qtbpj = 0.0
            for k in range(j, n):
                if sdiag[k] == 0.0:
                    continue
                if abs(r[k, k]) < abs(sdiag[k]):
                    cotan = r[k, k] / sdiag[k]
                    sin = 0.5 / np.sqrt(0.25 + 0.25 * cotan * cotan)
                    cos = sin * cotan
                else:
                    tan = sdiag[k] / r[k, k]
                    cos = 0.5 / np.sqrt(0.25 + 0.25 * tan * tan)
                    sin = cos * tan
                r[k, k] = cos * r[k, k] + sin * sdiag[k]
                temp = cos * wa[k] + sin * qtbpj
                qtbpj = -sin * wa[k] + cos * qtbpj
                wa[k] = temp
                if k + 1 < n:
                    column = r[k + 1 : n, k].copy()
                    r[k + 1 : n, k] = cos * column + sin * sdiag[k + 1 : n]
                    sdiag[k + 1 : n] = -sin * column + cos * sdiag[k + 1 : n]
        sdiag[j] = r[j, j]
        r[j, j] = x[j]

    nsing = n
    for j in range(n):
        if sdiag[j] == 0.0 and nsing == n:
            nsing = j
        if nsing < n:
            wa[j] = 0.0
    for j in range(nsing - 1, -1, -1):
        total = float(r[j + 1 : nsing, j] @ wa[j + 1 : nsing])
        wa[j] = (wa[j] - total) / sdiag[j]

    solution = np.empty(n)
    solution[ipvt] = wa
    return solution


def lmpar(
    r: Array, ipvt: Array, diag: Array, qtb: Array, delta: float, par: float
) -> Tuple[float, Array]:
    """Levenberg-Marquardt parameter for the trust radius ``delta``.

    Returns ``(par, x)`` where ``x`` solves the damped system and
    ``|D x|`` is within 10% of ``delta`` (or ``par == 0`` and the
    Gauss-Newton step already fits inside).
    """
    n = r.shape[1]
    nsing = n
    wa1 = np.array(qtb, dtype=float)
    for j in range(n):
        if r[j, j] == 0.0 and nsing == n:
            nsing = j
        if nsing < n:
            wa1[j] = 0.0
    for j in range(nsing - 1, -1, -1):
        wa1[j] /= r[j, j]
        wa1[:j] -= r[:j, j] * wa1[j]
    x = np.empty(n)
    x[ipvt] = wa1

    wa2 = diag * x
    dxnorm = enorm(wa2)
    fp = dxnorm - delta
    if fp <= 0.1 * delta:
        return 0.0, x

    parl = 0.0
    if nsing >= n:
        wa1 = diag[ipvt] * (wa2[ipvt] / dxnorm)
        for j in range(n):
            wa1[j] = (wa1[j] - float(r[:j, j] @ wa1[:j])) / r[j, j]
        temp = enorm(wa1)
        parl = ((fp / delta) / temp) / temp

    for j in range(n):
        wa1[j] = float(r[: j + 1, j] @ qtb[: j + 1]) / diag[ipvt[j]]
    gnorm = enorm(wa1)
    paru = gnorm / delta
    if paru == 0.0:
        paru = MP_DWARF / min(delta, 0.1)

    par = min(max(par, parl), paru)
    if par == 0.0:
        par = gnorm / dxnorm

    sdiag = np.empty(n)
    iterations = 0
    while True:
        iterations += 1
        if par == 0.0:
            par = max(MP_DWARF, 0.001 * paru)
        x = qrsolv(r, ipvt, np.sqrt(par) * diag, qtb, sdiag)
        wa2 = diag * x
        dxnorm = enorm(wa2)
        previous = fp
        fp = dxnorm - delta
        if (
            abs(fp) <= 0.1 * delta
            or (parl == 0.0 and fp <= previous and previous < 0.0)
            or iterations == 10
        ):
            return par, x

        wa1 = diag[ipvt] * (wa2[ipvt] / dxnorm)
        for j in range(n):
            wa1[j] /= sdiag[j]
            wa1[j + 1 : n] -= r[j + 1 : n, j] * wa1[j]
        temp = enorm(wa1)
        parc = ((fp / delta) / temp) / temp
        if fp > 0.0:
            parl = max(parl, par)
        elif fp < 0.0:
            paru = min(paru, par)
        par = max(parl, par + parc)


def covar(r: Array, ipvt: Array, tol: float = 1e-14) -> Array:
    """Covariance ``(J'J)^-1`` from the pivoted R factor of ``J``.

    Columns of R whose diagonal falls below ``tol * |R[0, 0]|`` are treated
    as rank deficient and get zero rows and columns.
    """
    n = r.shape[1]
    r = np.array(r[:n, :n], dtype=float)
    tolr = tol * abs(r[0, 0])
    rank = -1
    for k in range(n):
        if abs(r[k, k]) <= tolr:
            break
        r[k, k] = 1.0 / r[k, k]
        for j in range(k):
            temp = r[k, k] * r[j, k]
            r[j, k] = 0.0
            r[: j + 1, k] -= temp * r[: j + 1, j]
        rank = k

    for k in range(rank + 1):
        for j in range(k):
            r[: j + 1, j] += r[j, k] * r[: j + 1, k]
        r[: k + 1, k] *= r[k, k]

    wa = np.empty(n)
    for j in range(n):
        jj = ipvt[j]
        singular = j > rank
        for i in range(j + 1):
            if singular:
                r[i, j] = 0.0
            ii = ipvt[i]
            if ii > jj:
                r[ii, jj] = r[i, j]
            elif ii < jj:
                r[jj, ii] = r[i, j]
        wa[jj] = r[j, j]

    for j in range(n):
        r[: j + 1, j] = r[j, : j + 1]
        r[j, j] = wa[j]
    return r


@dataclass
class _Setup:
    """Validated per-parameter arrays."""

    ifree: Array
    side: Array
    step: Array
    relstep: Array
    debug: Array
    reltol: Array
    abstol: Array
    qllim: Array
    qulim: Array
    llim: Array
    ulim: Array
    constraints: List[ParameterConstraint] = field(default_factory=list)


class _Fitter:
    def __init__(self, fun, jac, setup: _Setup, config: MpConfig) -> None:
        self.fun = fun
        self.jac = jac
        self.setup = setup
        self.config = config
        self.nfev = 0
        self.njev = 0
        self.m = 0

    def residuals(self, params: Array) -> Array:
        values = np.asarray(self.fun(params.copy()), dtype=float).ravel()
        self.nfev += 1
        if self.m and values.size != self.m:
            raise MpFitError(
                MpStatus.ERR_INPUT,
                f"function returned {values.size} deviates, expected {self.m}",
            )
        if self.config.check_finite and not np.all(np.isfinite(values)):
            raise MpFitError(MpStatus.ERR_NAN, "function produced non-finite values")
        return values

    def _analytic(self, params: Array) -> Array:
        values = np.asarray(self.jac(params.copy()), dtype=float)
        self.njev += 1
        if values.shape != (self.m, params.size):
            raise MpFitError(
                MpStatus.ERR_INPUT,
                f"jacobian has shape {values.shape}, expected {(self.m, params.size)}",
            )
        return values

    def jacobian(self, params: Array, fvec: Array) -> Array:
        """Jacobian of the deviates with respect to the free parameters."""
        s = self.setup
        eps = np.sqrt(max(self.config.epsfcn, MP_MACHEP0))
        fjac = np.zeros((self.m, s.ifree.size))
        free_side = s.side[s.ifree]
        free_debug = s.debug[s.ifree]
        analytic = None
        if np.any(free_side == 3) or np.any(free_debug):
            analytic = self._analytic(params)
        if np.any(free_debug):
            logger.info("FJAC DEBUG BEGIN")
            logger.info("#  IPNT FUNC DERIV_U DERIV_N DIFF_ABS DIFF_REL")

        for j, p in enumerate(s.ifree):
            side = s.side[p]
            if s.debug[p]:
                logger.info("FJAC PARM %d", p)
            if side == 3:
                fjac[:, j] = analytic[:, p]
                continue

            value = params[p]
            h = eps * abs(value)
            if s.step[p] > 0:
                h = s.step[p]
            if s.relstep[p] > 0:
                h = abs(s.relstep[p] * value)
            if h == 0.0:
                h = eps
            if side == -1 or (side == 0 and s.qulim[j] and value > s.ulim[j] - h):
                h = -h

            shifted = params.copy()
            shifted[p] = value + h
            forward = self.residuals(shifted)
            if side <= 1:
                column = (forward - fvec) / h
            else:
                shifted[p] = value - h
                column = (forward - self.residuals(shifted)) / (2.0 * h)
            if s.debug[p]:
                self._report(fvec, analytic[:, p], column, s.reltol[p], s.abstol[p])
            fjac[:, j] = column

        if np.any(free_debug):
            logger.info("FJAC DEBUG END")
        return fjac

    @staticmethod
    def _report(fvec, user, numeric, reltol, abstol) -> None:
        diff = user - numeric
        if reltol == 0 and abstol == 0:
            flagged = (user != 0) | (numeric != 0)
        else:
            flagged = np.abs(diff) > abstol + np.abs(user) * reltol
        for i in np.flatnonzero(flagged):
            relative = 0.0 if user[i] == 0 else diff[i] / user[i]
            logger.info(
                "   %d %.4g %.4g %.4g %.4g %.4g",
                i, fvec[i], user[i], numeric[i], diff[i], relative,
            )

    def solve(self, xall: Array) -> MpResult:
        s = self.setup
        c = self.config
        ifree = s.ifree
        nfree = ifree.size
        any_limits = bool(np.any(s.qllim) or np.any(s.qulim))

        params = xall.copy()
        fvec = self.residuals(params)
        self.m = fvec.size
        if self.m == 0:
            raise MpFitError(MpStatus.ERR_NPOINTS, "no data points")
        if self.m < nfree:
            raise MpFitError(MpStatus.ERR_DOF, "fewer data points than free parameters")

        fnorm = enorm(fvec)
        orignorm = fnorm * fnorm
        x = params[ifree].copy()
        par = 0.0
        niter = 1
        delta = xnorm = 0.0
        qtf = np.zeros(nfree)
        diag = np.ones(nfree)
        if c.douserscale:
            diag = np.asarray(c.diag, dtype=float)[ifree]
        status: Optional[MpStatus] = None

        while status is None:
            params[ifree] = x
            fjac = self.jacobian(params, fvec)

            if any_limits:
                pegged_low = s.qllim & (x == s.llim)
                pegged_high = s.qulim & (x == s.ulim)
                total = fvec @ fjac
                fjac[:, (pegged_low & (total > 0)) | (pegged_high & (total < 0))] = 0.0

            ipvt, rdiag, acnorm = qrfac(fjac)
            if niter == 1:
                if not c.douserscale:
                    diag = np.where(acnorm == 0.0, 1.0, acnorm)
                xnorm = enorm(diag * x)
                delta = c.stepfactor * xnorm
                if delta == 0.0:
                    delta = c.stepfactor

            wa4 = fvec.copy()
            for j in range(nfree):
                if fjac[j, j] != 0.0:
                    total = float(fjac[j:, j] @ wa4[j:])
                    wa4[j:] -= fjac[j:, j] * (total / fjac[j, j])
                fjac[j, j] = rdiag[j]
                qtf[j] = wa4[j]
            r = fjac[:nfree]

            if c.check_finite and not np.all(np.isfinite(r)):
                raise MpFitError(MpStatus.ERR_NAN, "non-finite values in the Jacobian")

            gnorm = 0.0
            if fnorm != 0.0:
                for j in range(nfree):
                    l = ipvt[j]
                    if acnorm[l] != 0.0:
                        total = float(r[: j + 1, j] @ (qtf[: j + 1] / fnorm))
                        gnorm = max(gnorm, abs(total / acnorm[l]))
            if gnorm <= c.gtol:
                status = MpStatus.OK_DIR
                break
            if c.maxiter == 0:
                status = MpStatus.MAXITER
                break
            if not c.douserscale:
                diag = np.maximum(diag, acnorm)

            while True:
                par, step = lmpar(r, ipvt, diag, qtf, delta, par)
                step = -step
                alpha = 1.0
                if not any_limits:
                    trial = x + step
                else:
                    step[s.qllim & (x <= s.llim) & (step < 0)] = 0.0
                    step[s.qulim & (x >= s.ulim) & (step > 0)] = 0.0
                    moving = np.abs(step) > MP_MACHEP0
                    low = moving & s.qllim & (x + step < s.llim)
                    if low.any():
                        alpha = min(alpha, float(np.min((s.llim[low] - x[low]) / step[low])))
                    high = moving & s.qulim & (x + step > s.ulim)
                    if high.any():
                        alpha = min(alpha, float(np.min((s.ulim[high] - x[high]) / step[high])))
                    step *= alpha
                    trial = x + step
                    sign_u = np.where(s.ulim >= 0, 1.0, -1.0)
                    sign_l = np.where(s.llim >= 0, 1.0, -1.0)
                    ulim1 = s.ulim * (1 - sign_u * MP_MACHEP0) - np.where(s.ulim == 0, MP_MACHEP0, 0.0)
                    llim1 = s.llim * (1 + sign_l * MP_MACHEP0) + np.where(s.llim == 0, MP_MACHEP0, 0.0)
                    trial = np.where(s.qulim & (trial >= ulim1), s.ulim, trial)
                    trial = np.where(s.qllim & (trial <= llim1), s.llim, trial)

                pnorm = enorm(diag * step)
                if niter == 1:
                    delta = min(delta, pnorm)

                params[ifree] = trial
                wa4 = self.residuals(params)
                fnorm1 = enorm(wa4)

                actred = -1.0
                if 0.1 * fnorm1 < fnorm:
                    actred = 1.0 - (fnorm1 / fnorm) ** 2

                wa3 = np.zeros(nfree)
                for j in range(nfree):
                    wa3[: j + 1] += r[: j + 1, j] * step[ipvt[j]]
                # alpha is the fraction of the full LM step actually taken
                temp1 = enorm(wa3) * alpha / fnorm
                temp2 = np.sqrt(alpha * par) * pnorm / fnorm
                prered = temp1 * temp1 + temp2 * temp2 / 0.5
                dirder = -(temp1 * temp1 + temp2 * temp2)
                ratio = actred / prered if prered != 0.0 else 0.0

                if ratio <= 0.25:
                    temp = 0.5 if actred >= 0.0 else 0.5 * dirder / (dirder + 0.5 * actred)
                    if 0.1 * fnorm1 >= fnorm or temp < 0.1:
                        temp = 0.1
                    delta = temp * min(delta, pnorm / 0.1)
                    par /= temp
                elif par == 0.0 or ratio >= 0.75:
                    delta = pnorm / 0.5
                    par *= 0.5

                if ratio >= 1e-4:
                    x = trial
                    fvec = wa4
                    xnorm = enorm(diag * x)
                    fnorm = fnorm1
                    niter += 1

                chi_ok = abs(actred) <= c.ftol and prered <= c.ftol and 0.5 * ratio <= 1.0
                par_ok = delta <= c.xtol * xnorm
                if chi_ok and par_ok:
                    status = MpStatus.OK_BOTH
                elif chi_ok:
                    status = MpStatus.OK_CHI
                elif par_ok:
                    status = MpStatus.OK_PAR
                else:
                    if (c.maxfev > 0 and self.nfev >= c.maxfev) or niter >= c.maxiter:
                        status = MpStatus.MAXITER
                    if abs(actred) <= MP_MACHEP0 and prered <= MP_MACHEP0 and 0.5 * ratio <= 1.0:
                        status = MpStatus.FTOL
                    if delta <= MP_MACHEP0 * xnorm:
                        status = MpStatus.XTOL
                    if gnorm <= MP_MACHEP0:
                        status = MpStatus.GTOL
                logger.debug(
                    "iteration %d: chi2=%.6g ratio=%.3g par=%.3g delta=%.3g",
                    niter, fnorm * fnorm, ratio, par, delta,
                )
                if status is not None or ratio >= 1e-4:
                    break

        params[ifree] = x
        resid = self.residuals(params)
        npar = params.size
        npegged = sum(
            1
            for value, con in zip(params, s.constraints)
            if (con.limited[0] and con.limits[0] == value)
            or (con.limited[1] and con.limits[1] == value)
        )

        covariance = np.zeros((npar, npar))
        covariance[np.ix_(ifree, ifree)] = covar(r, ipvt, c.covtol)
        variances = covariance.diagonal()
        xerror = np.where(variances > 0, np.sqrt(np.abs(variances)), 0.0)

        return MpResult(
            params=params,
            bestnorm=float(resid @ resid),
            orignorm=orignorm,
            niter=niter,
            nfev=self.nfev,
            status=status,
            npar=npar,
            nfree=nfree,
            npegged=npegged,
            resid=resid,
            xerror=xerror,
            covar=covariance,
            nfunc=self.m,
            njev=self.njev,
        )


def _setup(xall: Array, pars: List[ParameterConstraint]) -> _Setup:
    fixed = np.array([bool(p.fixed) for p in pars])
    ifree = np.flatnonzero(~fixed)
    if ifree.size == 0:
        raise MpFitError(MpStatus.ERR_NFREE, "no free parameters")

    for i, (value, con) in enumerate(zip(xall, pars)):
        if con.side not in (-1, 0, 1, 2, 3):
            raise MpFitError(MpStatus.ERR_PARAM, f"invalid side {con.side} for parameter {i}")
        if (con.limited[0] and value < con.limits[0]) or (
            con.limited[1] and value > con.limits[1]
        ):
            raise MpFitError(
                MpStatus.ERR_INITBOUNDS, f"parameter {i} starts outside its limits"
            )
        if (
            not con.fixed
            and con.limited[0]
            and con.limited[1]
            and con.limits[0] >= con.limits[1]
        ):
            raise MpFitError(MpStatus.ERR_BOUNDS, f"inconsistent limits for parameter {i}")

    free = [pars[i] for i in ifree]
    return _Setup(
        ifree=ifree,
        side=np.array([p.side for p in pars], dtype=int),
        step=np.array([p.step for p in pars], dtype=float),
        relstep=np.array([p.relstep for p in pars], dtype=float),
        debug=np.array([bool(p.deriv_debug) for p in pars]),
        reltol=np.array([p.deriv_reltol for p in pars], dtype=float),
        abstol=np.array([p.deriv_abstol for p in pars], dtype=float),
        qllim=np.array([bool(p.limited[0]) for p in free]),
        qulim=np.array([bool(p.limited[1]) for p in free]),
        llim=np.array([p.limits[0] for p in free], dtype=float),
        ulim=np.array([p.limits[1] for p in free], dtype=float),
        constraints=list(pars),
    )


def _check_config(config: MpConfig, npar: int) -> None:
    if (
        config.ftol <= 0
        or config.xtol <= 0
        or config.gtol <= 0
        or config.stepfactor <= 0
        or config.maxiter < 0
        or config.maxfev < 0
    ):
        raise MpFitError(MpStatus.ERR_PARAM, "invalid configuration")
    if config.douserscale:
        if config.diag is None or len(config.diag) != npar:
            raise MpFitError(MpStatus.ERR_PARAM, "douserscale needs one diag entry per parameter")
        if np.any(np.asarray(config.diag, dtype=float) <= 0):
            raise MpFitError(MpStatus.ERR_PARAM, "diag entries must be positive")


def mpfit(
    fun: Callable[[Array], Array],
    xall: Sequence[float],
    pars: Optional[Sequence[ParameterConstraint]] = None,
    config: Optional[MpConfig] = None,
    jac: Optional[Callable[[Array], Array]] = None,
) -> MpResult:
    """Fit parameters by minimizing the sum of squared deviates.

    Parameters
    ----------
    fun:
        ``fun(p)`` returns the deviates, typically ``(y - model) / error``.
    xall:
        Starting values of all parameters; fixed parameters keep them.
    pars:
        One :class:`ParameterConstraint` per parameter, or ``None``.
    config:
        :class:`MpConfig`, defaults when ``None``.
    jac:
        ``jac(p)`` returns the ``m x npar`` derivatives of the deviates;
        required for ``side=3`` or ``deriv_debug`` parameters.

    Raises
    ------
    MpFitError
        On invalid input (the negative ``MpStatus`` codes and ``ERR_INPUT``).
    """
    if not callable(fun):
        raise MpFitError(MpStatus.ERR_FUNC, "no user function supplied")
    xall = np.array(xall, dtype=float).ravel()
    if xall.size == 0:
        raise MpFitError(MpStatus.ERR_NFREE, "no parameters")
    if pars is None:
        pars = [ParameterConstraint() for _ in range(xall.size)]
    pars = list(pars)
    if len(pars) != xall.size:
        raise MpFitError(MpStatus.ERR_INPUT, "one constraint per parameter is required")
    if not np.all(np.isfinite(xall)):
        raise MpFitError(MpStatus.ERR_INPUT, "non-finite starting values")
    config = config if config is not None else MpConfig()

    setup = _setup(xall, pars)
    _check_config(config, xall.size)
    needs_jac = any(
        (p.side == 3 or p.deriv_debug) and not p.fixed for p in pars
    )
    if needs_jac and jac is None:
        raise MpFitError(MpStatus.ERR_INPUT, "analytic derivatives requested without jac")

    result = _Fitter(fun, jac, setup, config).solve(xall)
    logger.debug(
        "mpfit finished: status=%s chi2=%.6g niter=%d nfev=%d",
        result.status.name, result.bestnorm, result.niter, result.nfev,
    )
    return result


__all__ = [
    "MP_DWARF",
    "MP_MACHEP0",
    "MpConfig",
    "MpFitError",
    "MpResult",
    "MpStatus",
    "ParameterConstraint",
    "covar",
    "enorm",
    "lmpar",
    "mpfit",
    "qrfac",
    "qrsolv",
]
