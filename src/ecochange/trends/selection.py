"""
All-subsets model selection by AICc.

Candidate models are the subsets of the full model's terms that respect
marginality (an interaction only appears with all of its lower-order
terms). Every candidate is fit by maximum likelihood so that models with
different fixed effects are comparable.
"""
from __future__ import annotations

import logging
from itertools import combinations
from typing import List, Optional, Tuple

import numpy as np
import pandas as pd

from ..exceptions import FitFailureError
from .gls import fit_gls
from .linear import fit_ols

logger = logging.getLogger(__name__)


def _canonical(term: str) -> str:
    return ":".join(sorted(f.strip() for f in term.split(":")))


def expand_terms(formula: str) -> Tuple[str, List[str]]:
    """
    Split 'y ~ a * b + c' into the response and its terms
    ['a', 'b', 'c', 'a:b'] (main effects first, then by order).
    """
    if "~" not in formula:
        raise ValueError(f"Formula needs a '~': {formula}")
    lhs, rhs = (s.strip() for s in formula.split("~", 1))
    terms = []
    for part in rhs.split("+"):
        part = part.strip()
        if not part or part == "1":
            continue
        if "*" in part:
            factors = [f.strip() for f in part.split("*")]
            for r in range(1, len(factors) + 1):
                terms.extend(":".join(c) for c in combinations(factors, r))
        else:
            terms.append(part)
    seen = []
    for t in map(_canonical, terms):
        if t not in seen:
            seen.append(t)
    return lhs, sorted(seen, key=lambda t: (t.count(":"), seen.index(t)))


def is_marginal(terms) -> bool:
    """True when every interaction's lower-order terms are also present."""
    present = set(terms)
    for t in present:
        factors = t.split(":")
        for r in range(1, len(factors)):
            if any(":".join(c) not in present for c in combinations(factors, r)):
                return False
    return True


def candidate_terms(terms: List[str]) -> List[List[str]]:
    """All marginal subsets of `terms`, from the null model up."""
    out = []
    for r in range(len(terms) + 1):
        for subset in combinations(terms, r):
            if is_marginal(subset):
                out.append(list(subset))
    return out


def _formula(response: str, terms: List[str]) -> str:
    return f"{response} ~ {' + '.join(terms) if terms else '1'}"


def aicc(llf: float, k: int, n: int) -> float:
    if n - k - 1 <= 0:
        return np.inf
    return -2.0 * llf + 2.0 * k + 2.0 * k * (k + 1) / (n - k - 1)


def dredge(
    data: pd.DataFrame,
    formula: str,
    time: Optional[str] = None,
    correlation: Optional[str] = None,
    group: Optional[str] = None,
    margin: float = 2.0,
) -> pd.DataFrame:
    """
    Fit every marginal sub-model of `formula` by ML and rank them by AICc.

    With `correlation` the candidates are GLS fits sharing that residual
    correlation (`time` and optional `group` define it); otherwise OLS.
    Candidates that cannot be fit (singular design, too few samples) stay
    in the table with NaN criteria and the reason in `error`, ranked last.

    Returns one row per model, best first: model, terms, one column per
    coefficient (NaN when absent), df, logLik, AICc, delta, weight,
    equivalent (delta <= margin), error.
    """
    if correlation is not None and time is None:
        raise ValueError("A time column is needed for a residual correlation")
    response, terms = expand_terms(formula)
    rows = []
    for subset in candidate_terms(terms):
        f = _formula(response, subset)
        try:
            if correlation is None:
                res = fit_ols(f, data)
                params, llf, n = res.params, float(res.llf), int(res.nobs)
                k = len(params) + 1
            else:
                res = fit_gls(f, data, time=time, correlation=correlation, group=group, method="ML")
                params, llf, n, k = res.params, res.llf, res.nobs, res.df_modelwc
        except FitFailureError as e:
            logger.warning("Could not fit %s: %s", f, e)
            rows.append({"model": f, "terms": " + ".join(subset) if subset else "1",
                         "df": np.nan, "logLik": np.nan, "AICc": np.nan, "error": str(e)})
            continue
        row = {"model": f, "terms": " + ".join(subset) if subset else "1"}
        row.update(params.to_dict())
        row.update({"df": k, "logLik": llf, "AICc": aicc(llf, k, n), "error": None})
        rows.append(row)
    if all(r["error"] is not None for r in rows):
        raise FitFailureError(f"No sub-model of '{formula}' could be fit")

    table = pd.DataFrame(rows)
    table = table.sort_values("AICc", kind="stable", na_position="last").reset_index(drop=True)
    table["delta"] = table["AICc"] - table["AICc"].iloc[0]
    rel = np.exp(-0.5 * table["delta"])
    table["weight"] = rel / rel.sum()
    table["equivalent"] = table["delta"] <= margin
    table = table[[c for c in table.columns if c != "error"] + ["error"]]
    logger.info("Dredge %s: %d models (%d failed), %d within %.1f AICc of the best",
                formula, len(table), int(table["error"].notna().sum()),
                int(table["equivalent"].sum()), margin)
    return table


def best_models(table: pd.DataFrame) -> pd.DataFrame:
    """The equivalently supported models (delta within the margin)."""
    return table.loc[table["equivalent"]].copy()
