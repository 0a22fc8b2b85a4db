"""
Residual correlation structures for time-ordered samples.

- 'ar1', 'ar2': discrete autoregressive errors over the time order of the
  samples (within each group when groups are given). Parameters are passed
  unconstrained and mapped through partial autocorrelations (tanh), so every
  value gives a stationary process.
- 'car1': continuous-time AR(1), corr = phi ** |t_i - t_j| with phi in (0, 1).
"""
from __future__ import annotations

import itertools
from typing import Callable, Optional

import numpy as np
import pandas as pd
from scipy import optimize
from scipy.linalg import toeplitz
from scipy.special import expit, logit
from statsmodels.tsa.arima_process import arma_acf

from ..exceptions import FitFailureError

CORRELATIONS = ("ar1", "ar2", "car1")
BOUND = 6.0          # limit of the unconstrained parameters


def n_params(kind: Optional[str]) -> int:
    if kind is None:
        return 0
    if kind not in CORRELATIONS:
        raise ValueError(f"Unknown correlation '{kind}'. Available: {CORRELATIONS}")
    return 2 if kind == "ar2" else 1


def pacf_to_ar(pacf: np.ndarray) -> np.ndarray:
    """Durbin-Levinson map from partial autocorrelations to AR coefficients."""
    phi = np.zeros(0)
    for k, a in enumerate(np.asarray(pacf, dtype=float), start=1):
        phi = np.concatenate([phi - a * phi[::-1], [a]]) if k > 1 else np.array([a])
    return phi


def natural_params(kind: str, u: np.ndarray) -> np.ndarray:
    """Map unconstrained parameters to AR coefficients (ar1/ar2) or phi (car1)."""
    u = np.atleast_1d(np.asarray(u, dtype=float))
    if kind == "car1":
        return expit(u)
    return pacf_to_ar(np.tanh(u))


def _positions(time: np.ndarray, groups: Optional[np.ndarray]) -> np.ndarray:
    """Rank of each sample in time order within its group (0-based)."""
    pos = np.empty(len(time), dtype=int)
    labels = np.zeros(len(time)) if groups is None else groups
    for g in pd.unique(labels):
        idx = np.flatnonzero(labels == g)
        order = idx[np.argsort(time[idx], kind="stable")]
        pos[order] = np.arange(len(order))
    return pos


def correlation_matrix(kind: Optional[str], u: np.ndarray, time: np.ndarray,
                       groups: Optional[np.ndarray] = None) -> np.ndarray:
    """
    n x n residual correlation for samples at `time`, block diagonal over `groups`.

    Row order follows the input arrays; only time values decide adjacency.
    """
    time = np.asarray(time, dtype=float)
    n = len(time)
    if kind is None:
        return np.eye(n)
    groups = None if groups is None else np.asarray(groups, dtype=object)
    same = np.ones((n, n), dtype=bool) if groups is None else groups[:, None] == groups[None, :]
    if kind == "car1":
        phi = float(natural_params(kind, u)[0])
        R = phi ** np.abs(time[:, None] - time[None, :])
    else:
        ar = natural_params(kind, u)
        acf = arma_acf(np.r_[1.0, -ar], np.array([1.0]), lags=n)
        pos = _positions(time, groups)
        R = toeplitz(acf)[pos[:, None], pos[None, :]]
    return np.where(same, R, 0.0)


def ar_to_pacf(ar: np.ndarray) -> np.ndarray:
    """Inverse of pacf_to_ar (step-down Levinson recursion)."""
    phi = np.asarray(ar, dtype=float).copy()
    pacf = np.zeros(len(phi))
    for m in range(len(phi), 0, -1):
        a = phi[m - 1]
        pacf[m - 1] = a
        if abs(a) >= 1.0:
            break
        if m > 1:
            phi = (phi[:m - 1] + a * phi[:m - 1][::-1]) / (1.0 - a ** 2)
    return pacf


def unconstrained_params(kind: str, values) -> np.ndarray:
    """Inverse of natural_params; rejects non-stationary AR or phi outside (0, 1)."""
    values = np.atleast_1d(np.asarray(values, dtype=float))
    if len(values) != n_params(kind):
        raise ValueError(f"'{kind}' takes {n_params(kind)} parameter(s), got {len(values)}")
    if kind == "car1":
        if not 0.0 < values[0] < 1.0:
            raise ValueError(f"car1 phi must be in (0, 1), got {values[0]}")
        return logit(values)
    pacf = ar_to_pacf(values)
    if np.any(np.abs(pacf) >= 1.0):
        raise ValueError(f"AR coefficients {values.tolist()} are not stationary")
    return np.arctanh(pacf)


def search_axis(kind: str) -> np.ndarray:
    """Starting values along one unconstrained axis, bounds included."""
    if kind == "car1":
        return np.linspace(-BOUND, BOUND, 25)
    size = 21 if kind == "ar1" else 9
    return np.r_[-BOUND, np.arctanh(np.linspace(-0.95, 0.95, size)), BOUND]


def optimise_correlation(objective: Callable[[np.ndarray], float], kind: str):
    """
    Minimise objective(u) over the unconstrained correlation parameters.

    A grid over the parameter space picks the basin and a local search
    refines it. Returns (u, value) for the best point evaluated; points where
    the fit fails count as +inf.
    """
    def safe(u):
        try:
            value = float(objective(np.atleast_1d(np.asarray(u, dtype=float))))
        except FitFailureError:
            return np.inf
        return value if np.isfinite(value) else np.inf

    k = n_params(kind)
    axis = search_axis(kind)
    points = [np.array(p) for p in itertools.product(axis, repeat=k)]
    values = [safe(p) for p in points]
    i = int(np.argmin(values))
    best_u, best_v = points[i], values[i]
    if not np.isfinite(best_v):
        raise FitFailureError(f"No admissible '{kind}' correlation parameters")

    if k == 1:
        j = int(np.searchsorted(axis, best_u[0]))
        lo, hi = axis[max(j - 1, 0)], axis[min(j + 1, len(axis) - 1)]
        opt = optimize.minimize_scalar(safe, bounds=(lo, hi), method="bounded")
        u, v = np.array([opt.x]), float(opt.fun)
    else:
        opt = optimize.minimize(safe, x0=best_u, method="L-BFGS-B", bounds=[(-BOUND, BOUND)] * k)
        u, v = opt.x, float(opt.fun)
    if np.all(np.isfinite(u)) and v < best_v:
        best_u, best_v = u, v
    return best_u, best_v
