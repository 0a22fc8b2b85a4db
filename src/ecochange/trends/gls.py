"""
Generalised least squares with autocorrelated residuals.

The mean structure is given by a formula (statsmodels/patsy design). The
residual correlation is AR(1), AR(2) or continuous-time AR(1) in time
order, optionally independent between groups. Correlation parameters are
estimated by restricted maximum likelihood (REML, default) or maximum
likelihood (ML); the coefficients and variance follow by GLS.
Compare correlation structures with REML fits sharing the same fixed
effects, and fixed effects with ML fits.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

import numpy as np
import pandas as pd
import statsmodels.formula.api as smf
from scipy import stats
from scipy.linalg import cho_factor, cho_solve, solve_triangular

from ..exceptions import FitFailureError
from .correlation import (
    correlation_matrix, n_params, natural_params, optimise_correlation, unconstrained_params,
)
from .linear import check_full_rank

logger = logging.getLogger(__name__)

@dataclass
class GLSResult:
    formula: str
    method: str
    correlation: Optional[str]
    params: pd.Series
    bse: pd.Series
    cov_params: pd.DataFrame
    sigma2: float
    llf: float
    corr_params: np.ndarray
    nobs: int
    fitted: pd.Series
    resid: pd.Series
    meta: dict = field(default_factory=dict)
    corr_fixed: bool = False    # correlation held, not estimated

    @property
    def df_modelwc(self) -> int:
        """Estimated parameters: coefficients, variance and correlation parameters."""
        return len(self.params) + 1 + (0 if self.corr_fixed else len(self.corr_params))

    @property
    def aic(self) -> float:
        return -2.0 * self.llf + 2.0 * self.df_modelwc

    @property
    def bic(self) -> float:
        return -2.0 * self.llf + np.log(self.nobs) * self.df_modelwc

    def __repr__(self):
        corr = self.correlation or "independent"
        return (f"GLSResult('{self.formula}', {self.method}, {corr}, "
                f"phi={np.round(self.corr_params, 3).tolist()}, logLik={self.llf:.3f})")


def _gls_solve(X: np.ndarray, y: np.ndarray, R: np.ndarray):
    """Whiten by the Cholesky factor of R and solve; returns pieces for the likelihood."""
    try:
        L = np.linalg.cholesky(R)
    except np.linalg.LinAlgError as e:
        raise FitFailureError("Residual correlation matrix is not positive definite") from e
    Xw = solve_triangular(L, X, lower=True)
    yw = solve_triangular(L, y, lower=True)
    XtX = Xw.T @ Xw
    try:
        c = cho_factor(XtX)
    except np.linalg.LinAlgError as e:
        raise FitFailureError("Whitened design is singular") from e
    beta = cho_solve(c, Xw.T @ yw)
    rss = float(np.sum((yw - Xw @ beta) ** 2))
    logdet_R = 2.0 * float(np.sum(np.log(np.diag(L))))
    logdet_XtX = 2.0 * float(np.sum(np.log(np.diag(c[0]))))
    return beta, rss, logdet_R, logdet_XtX, c


def _loglik(rss: float, logdet_R: float, logdet_XtX: float, n: int, k: int, method: str) -> float:
    if method == "REML":
        m = n - k
        sigma2 = rss / m
        return -0.5 * (m * np.log(2.0 * np.pi * sigma2) + logdet_R + logdet_XtX + m)
    sigma2 = rss / n
    return -0.5 * (n * np.log(2.0 * np.pi * sigma2) + logdet_R + n)


def fit_gls(formula: str, data: pd.DataFrame, time: str,
            correlation: Optional[str] = "ar1",
            group: Optional[str] = None,
            method: str = "REML",
            fixed: Optional[Sequence[float]] = None) -> GLSResult:
    """
    Fit `formula` by GLS with the given residual correlation.

    Args:
        formula: mean structure, e.g. 'dist ~ year * period'
        data: one row per sample
        time: column defining the time order (and lags for 'car1')
        correlation: None, 'ar1', 'ar2' or 'car1'
        group: column whose levels have independent residual series
        method: 'REML' or 'ML'
        fixed: hold the correlation at these values (AR coefficients, or phi
            for 'car1') instead of estimating it
    """
    method = method.upper()
    if method not in ("REML", "ML"):
        raise ValueError(f"method must be 'REML' or 'ML', got {method}")
    model = smf.ols(formula, data=data)
    X = np.asarray(model.exog, dtype=float)
    y = np.asarray(model.endog, dtype=float)
    n, k = X.shape
    if n <= k + n_params(correlation):
        raise FitFailureError(f"'{formula}': {n} observations are too few for {k} coefficients")
    check_full_rank(X, model.exog_names, formula)

    labels = getattr(model.data, "row_labels", None)
    rows = pd.Index(labels) if labels is not None else data.index
    t = data.loc[rows, time].to_numpy(dtype=float)
    g = data.loc[rows, group].to_numpy() if group else None
    if correlation == "car1" and len(set(zip(t, g if g is not None else [None] * n))) < n:
        raise FitFailureError("Duplicate time values make the CAR(1) correlation singular")

    def neg_loglik(u):
        R = correlation_matrix(correlation, u, t, g)
        _, rss, ldR, ldX, _ = _gls_solve(X, y, R)
        return -_loglik(rss, ldR, ldX, n, k, method)

    if fixed is not None:
        if correlation is None:
            raise ValueError("fixed correlation parameters need a correlation structure")
        u_hat = unconstrained_params(correlation, fixed)
    elif n_params(correlation):
        u_hat, _ = optimise_correlation(neg_loglik, correlation)
    else:
        u_hat = np.zeros(0)
    corr_params = natural_params(correlation, u_hat) if correlation else np.zeros(0)

    R = correlation_matrix(correlation, u_hat, t, g)
    beta, rss, ldR, ldX, c = _gls_solve(X, y, R)
    llf = _loglik(rss, ldR, ldX, n, k, method)
    sigma2 = rss / (n - k) if method == "REML" else rss / n
    cov = sigma2 * cho_solve(c, np.eye(k))
    names = list(model.exog_names)
    fitted = X @ beta
    logger.info("GLS %s (%s, %s): logLik=%.3f, phi=%s", formula, method,
                correlation or "independent", llf, np.round(corr_params, 3).tolist())
    return GLSResult(
        formula=formula,
        method=method,
        correlation=correlation,
        params=pd.Series(beta, index=names),
        bse=pd.Series(np.sqrt(np.diag(cov)), index=names),
        cov_params=pd.DataFrame(cov, index=names, columns=names),
        sigma2=float(sigma2),
        llf=float(llf),
        corr_params=np.asarray(corr_params, dtype=float),
        nobs=n,
        fitted=pd.Series(fitted, index=rows),
        resid=pd.Series(y - fitted, index=rows),
        meta={"time": time, "group": group},
        corr_fixed=fixed is not None,
    )


def compare_correlation(null: GLSResult, alt: GLSResult) -> pd.DataFrame:
    """
    Likelihood-ratio test of two nested GLS fits (ANOVA-style table).

    Fits must share fixed effects, method and observations.
    """
    if null.formula != alt.formula or null.method != alt.method or null.nobs != alt.nobs:
        raise ValueError("Models must share formula, method and data to be compared")
    df = alt.df_modelwc - null.df_modelwc
    if df <= 0:
        raise ValueError("The alternative model must have more parameters than the null")
    lr = max(0.0, 2.0 * (alt.llf - null.llf))
    p = float(stats.chi2.sf(lr, df))
    return pd.DataFrame({
        "model": [null.correlation or "independent", alt.correlation or "independent"],
        "df": [null.df_modelwc, alt.df_modelwc],
        "AIC": [null.aic, alt.aic],
        "BIC": [null.bic, alt.bic],
        "logLik": [null.llf, alt.llf],
        "L.Ratio": [np.nan, lr],
        "p-value": [np.nan, p],
    })
