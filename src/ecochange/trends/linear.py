"""Ordinary least squares trend of a distance measure on time (x group)."""
from __future__ import annotations

import logging
from typing import Optional

import numpy as np
import pandas as pd
import statsmodels.formula.api as smf
from statsmodels.tsa.stattools import acf

from ..exceptions import FitFailureError

logger = logging.getLogger(__name__)


def trend_formula(response: str, time: str, group: Optional[str] = None) -> str:
    """'response ~ time * group', or 'response ~ time' without a group."""
    return f"{response} ~ {time} * {group}" if group else f"{response} ~ {time}"


def check_full_rank(exog: np.ndarray, names, formula: str) -> None:
    rank = np.linalg.matrix_rank(exog)
    if rank < exog.shape[1]:
        raise FitFailureError(
            f"Design matrix of '{formula}' is rank deficient ({rank} < {exog.shape[1]}); "
            f"columns: {list(names)}"
        )


def fit_ols(formula: str, data: pd.DataFrame):
    """Fit an OLS model from a formula; singular designs raise FitFailureError."""
    model = smf.ols(formula, data=data)
    if model.exog.shape[0] <= model.exog.shape[1]:
        raise FitFailureError(f"'{formula}': {model.exog.shape[0]} observations for {model.exog.shape[1]} coefficients")
    check_full_rank(model.exog, model.exog_names, formula)
    return model.fit()


def fit_linear_trend(data: pd.DataFrame, response: str, time: str,
                     group: Optional[str] = None):
    """
    OLS of response on time with a time x group interaction.

    Returns the statsmodels results object (params, bse, resid, llf, ...).
    """
    formula = trend_formula(response, time, group)
    result = fit_ols(formula, data)
    logger.info("OLS %s: R2=%.3f, n=%d", formula, result.rsquared, int(result.nobs))
    return result


def residual_acf(result, time: Optional[pd.Series] = None, nlags: int = 10) -> pd.Series:
    """
    Autocorrelation of the residuals, in time order when `time` is given.

    A diagnostic for choosing a correlation structure (see gls.fit_gls).
    """
    resid = pd.Series(np.asarray(result.resid), index=getattr(result.resid, "index", None))
    if time is not None:
        resid = resid.loc[time.loc[resid.index].sort_values(kind="stable").index]
    nlags = min(nlags, len(resid) - 1)
    values = acf(resid.to_numpy(), nlags=nlags, fft=False)
    return pd.Series(values, index=pd.RangeIndex(nlags + 1, name="lag"), name="acf")
