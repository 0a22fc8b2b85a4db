"""
Penalised regression spline (P-spline) smooth of a measure against time.

    y = f(time) + e,   f = B(time) beta,   e ~ N(0, sigma^2 R(phi))

B is a cubic B-spline basis with `n_basis` functions on equally spaced
knots, penalised by squared second-order differences of beta. The
smoothing parameter (and the CAR(1) parameter, if any) are chosen by
REML unless a smoothing parameter is supplied. The Bayesian posterior
covariance of beta is kept for confidence intervals and for the
simultaneous bands of the derivative (see derivatives.py).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np
import pandas as pd
from scipy import optimize
from scipy.interpolate import BSpline
from scipy.linalg import solve_triangular

from ..exceptions import FitFailureError
from .correlation import correlation_matrix, natural_params, optimise_correlation

logger = logging.getLogger(__name__)

_DEGREE = 3
_PAD = 1e-3          # knot range padding, as a fraction of the data range
_LOG_SP_BOUNDS = (-20.0, 20.0)


def make_knots(x: np.ndarray, n_basis: int, degree: int = _DEGREE) -> np.ndarray:
    """Equally spaced knots giving `n_basis` B-splines over the (slightly padded) range of x."""
    if n_basis < degree + 1:
        raise ValueError(f"n_basis must be at least {degree + 1}, got {n_basis}")
    lo, hi = float(np.min(x)), float(np.max(x))
    pad = _PAD * (hi - lo)
    lo, hi = lo - pad, hi + pad
    n_seg = n_basis - degree
    h = (hi - lo) / n_seg
    return lo + h * np.arange(-degree, n_seg + degree + 1)


def bspline_basis(x: np.ndarray, knots: np.ndarray, degree: int = _DEGREE) -> np.ndarray:
    x = np.asarray(x, dtype=float)
    lo, hi = knots[degree], knots[-degree - 1]
    if np.any(x < lo) or np.any(x > hi):
        raise ValueError(f"Values outside the basis range [{lo:g}, {hi:g}]")
    return BSpline.design_matrix(x, knots, degree).toarray()


def difference_penalty(n_basis: int, order: int = 2) -> np.ndarray:
    D = np.diff(np.eye(n_basis), n=order, axis=0)
    return D.T @ D


@dataclass
class SmoothTrend:
    """A fitted smooth of `response` on `time`, one row per sample."""
    response: str
    time: str
    knots: np.ndarray
    coef: np.ndarray
    Vb: np.ndarray             # Bayesian covariance of coef
    sigma2: float
    sp: float                  # smoothing parameter (lambda)
    edf: float                 # effective degrees of freedom
    reml: float                # REML criterion (-2 * restricted log-likelihood)
    correlation: Optional[str]
    phi: Optional[float]
    x: pd.Series               # time values, indexed by sample_id
    fitted: pd.Series
    resid: pd.Series
    sp_selected: bool = True   # False when sp was supplied

    @property
    def n_basis(self) -> int:
        return len(self.coef)

    @property
    def range(self) -> tuple:
        return float(self.x.min()), float(self.x.max())

    def basis(self, x: np.ndarray) -> np.ndarray:
        return bspline_basis(x, self.knots)

    def predict(self, new_x: Optional[np.ndarray] = None) -> pd.DataFrame:
        """Fitted smooth with standard errors at new_x (default: the data)."""
        xv = self.x.to_numpy() if new_x is None else np.asarray(new_x, dtype=float)
        Xp = self.basis(xv)
        fit = Xp @ self.coef
        se = np.sqrt(np.einsum("ij,jk,ik->i", Xp, self.Vb, Xp))
        return pd.DataFrame({self.time: xv, "fit": fit, "se": se})

    def __repr__(self):
        corr = f", car1 phi={self.phi:.3f}" if self.correlation else ""
        return (f"SmoothTrend({self.response} ~ s({self.time}, k={self.n_basis}), "
                f"edf={self.edf:.2f}, sp={self.sp:.3g}{corr})")


class _PenalisedFit:
    """Whitened penalised least squares at one (lambda, phi)."""

    def __init__(self, B: np.ndarray, y: np.ndarray, S: np.ndarray, R: Optional[np.ndarray]):
        if R is None:
            self.Xw, self.yw, self.logdet_R = B, y, 0.0
        else:
            try:
                L = np.linalg.cholesky(R)
            except np.linalg.LinAlgError as e:
                raise FitFailureError("Residual correlation matrix is not positive definite") from e
            self.Xw = solve_triangular(L, B, lower=True)
            self.yw = solve_triangular(L, y, lower=True)
            self.logdet_R = 2.0 * float(np.sum(np.log(np.diag(L))))
        self.S = S
        self.XtX = self.Xw.T @ self.Xw
        self.Xty = self.Xw.T @ self.yw
        s_eig = np.linalg.eigvalsh(S)
        tol = s_eig.max() * 1e-10
        self.rank_S = int(np.sum(s_eig > tol))
        self.logdet_S_plus = float(np.sum(np.log(s_eig[s_eig > tol])))
        self.n = len(y)
        self.null_dim = S.shape[0] - self.rank_S

    def solve(self, sp: float):
        A = self.XtX + sp * self.S
        try:
            L = np.linalg.cholesky(A)
        except np.linalg.LinAlgError as e:
            raise FitFailureError(f"Penalised system is singular at sp={sp:g}") from e
        beta = np.linalg.solve(A, self.Xty)
        rss = float(np.sum((self.yw - self.Xw @ beta) ** 2))
        pen = float(sp * beta @ self.S @ beta)
        logdet_A = 2.0 * float(np.sum(np.log(np.diag(L))))
        return beta, rss, pen, logdet_A, A

    def reml(self, sp: float) -> float:
        """-2 x profiled restricted log-likelihood (Wood 2011, Gaussian, sigma profiled out)."""
        try:
            _, rss, pen, logdet_A, _ = self.solve(sp)
        except FitFailureError:
            # numerically singular at this sp: never the optimum
            return np.inf
        m = self.n - self.null_dim
        sigma2 = (rss + pen) / m
        if sigma2 <= 0:
            return np.inf
        logdet_pen = self.rank_S * np.log(sp) + self.logdet_S_plus
        return m * np.log(2.0 * np.pi * sigma2) + m + logdet_A - logdet_pen + self.logdet_R


def fit_smooth_trend(
    data: pd.DataFrame,
    response: str,
    time: str,
    n_basis: int = 10,
    sp: Optional[float] = None,
    correlation: Optional[str] = None,
) -> SmoothTrend:
    """
    Fit response ~ s(time) as a P-spline.

    Args:
        data: one row per sample, indexed by sample_id
        response, time: column names
        n_basis: basis dimension (number of B-spline coefficients)
        sp: fixed smoothing parameter; None selects it by REML
        correlation: None or 'car1' (continuous-time AR(1) on the time values)
    """
    if correlation not in (None, "car1"):
        raise ValueError(f"correlation must be None or 'car1', got {correlation}")
    missing = [c for c in (response, time) if c not in data.columns]
    if missing:
        raise KeyError(f"Columns not found: {missing}")
    frame = data[[time, response]].dropna()
    x = frame[time].to_numpy(dtype=float)
    y = frame[response].to_numpy(dtype=float)
    n = len(y)
    if len(np.unique(x)) < 4:
        raise FitFailureError(f"Need at least 4 distinct {time} values for a smooth, got {len(np.unique(x))}")
    if correlation == "car1" and len(np.unique(x)) < n:
        raise FitFailureError("Duplicate time values make the CAR(1) correlation singular")
    if sp is not None and sp <= 0:
        raise ValueError(f"sp must be positive, got {sp}")

    knots = make_knots(x, n_basis)
    B = bspline_basis(x, knots)
    S = difference_penalty(n_basis)

    def fit_at(u_corr):
        R = None if correlation is None else correlation_matrix("car1", u_corr, x)
        return _PenalisedFit(B, y, S, R)

    if correlation is None:
        pf = fit_at(None)
        if sp is None:
            opt = optimize.minimize_scalar(lambda r: pf.reml(np.exp(r)), bounds=_LOG_SP_BOUNDS, method="bounded")
            sp_hat = float(np.exp(opt.x))
        else:
            sp_hat = float(sp)
        phi = None
    else:
        def profile(pf):
            if sp is not None:
                return float(sp), pf.reml(float(sp))
            opt = optimize.minimize_scalar(lambda r: pf.reml(np.exp(r)), bounds=_LOG_SP_BOUNDS, method="bounded")
            return float(np.exp(opt.x)), float(opt.fun)

        # phi on a grid then refined, sp profiled out at each phi
        u_hat, _ = optimise_correlation(lambda u: profile(fit_at(u))[1], "car1")
        pf = fit_at(u_hat)
        sp_hat = profile(pf)[0]
        phi = float(natural_params("car1", u_hat)[0])

    beta, rss, pen, _, A = pf.solve(sp_hat)
    sigma2 = (rss + pen) / (n - pf.null_dim)
    A_inv = np.linalg.inv(A)
    Vb = sigma2 * A_inv
    edf = float(np.trace(A_inv @ pf.XtX))
    fitted = B @ beta
    logger.info("Smooth %s ~ s(%s, k=%d): edf=%.2f, sp=%.3g%s", response, time, n_basis, edf, sp_hat,
                f", phi={phi:.3f}" if phi is not None else "")
    return SmoothTrend(
        response=response,
        time=time,
        knots=knots,
        coef=beta,
        Vb=Vb,
        sigma2=float(sigma2),
        sp=sp_hat,
        edf=edf,
        reml=float(pf.reml(sp_hat)),
        correlation=correlation,
        phi=phi,
        x=frame[time].astype(float),
        fitted=pd.Series(fitted, index=frame.index, name="fitted"),
        resid=pd.Series(y - fitted, index=frame.index, name="resid"),
        sp_selected=sp is None,
    )


def smooth_with_df(x: np.ndarray, y: np.ndarray, df: Optional[float] = None,
                   n_basis: int = 10, w: Optional[np.ndarray] = None):
    """
    Penalised spline fit of y on x returning (knots, coef).

    With `df` the smoothing parameter is tuned to that effective degrees of
    freedom; otherwise it is chosen by REML. Optional weights `w`.
    """
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    knots = make_knots(x, n_basis)
    B = bspline_basis(x, knots)
    if w is not None:
        sw = np.sqrt(np.asarray(w, dtype=float))
        B, y = B * sw[:, None], y * sw
    S = difference_penalty(n_basis)
    pf = _PenalisedFit(B, y, S, None)

    if df is None:
        opt = optimize.minimize_scalar(lambda r: pf.reml(np.exp(r)), bounds=_LOG_SP_BOUNDS, method="bounded")
        sp = float(np.exp(opt.x))
    else:
        lo_df, hi_df = pf.null_dim, min(n_basis, len(np.unique(x)))
        target = float(np.clip(df, lo_df + 1e-6, hi_df - 1e-6))

        def edf_gap(r):
            A = pf.XtX + np.exp(r) * S
            return float(np.trace(np.linalg.solve(A, pf.XtX))) - target

        a, b = _LOG_SP_BOUNDS
        if edf_gap(a) * edf_gap(b) > 0:
            sp = float(np.exp(a if abs(edf_gap(a)) < abs(edf_gap(b)) else b))
        else:
            sp = float(np.exp(optimize.brentq(edf_gap, a, b, xtol=1e-6)))
    beta = pf.solve(sp)[0]
    return knots, beta
