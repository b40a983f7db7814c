"""
Regression and spatial autocorrelation
======================================

* OLS (statsmodels) of access count on percent Asian
* ML spatial lag and ML spatial error models (spreg) on the same pair
* AIC comparison across the three
* global Moran's I (esda) for any column, including OLS residuals

Every fit returns a read-only `FitResult`; `to_rows()` gives the
`[Metric, Group, Sub, Stat, Value]` rows written to the results CSV.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
import statsmodels.api as sm
from esda.moran import Moran
from scipy import stats
from spreg import ML_Error, ML_Lag

from .errors import ModelConvergenceError

log = logging.getLogger(__name__)

logging.getLogger("spreg").setLevel(logging.ERROR)

# |rho| / |lambda| this close to 1 means the bounded search hit its edge
BOUND_TOL = 1e-3


@dataclass(frozen=True)
class FitResult:
    name: str
    n: int
    coefficients: Dict[str, float]
    p_values: Dict[str, float]
    fit: float
    fit_label: str
    aic: float
    log_likelihood: float
    spatial_param: Optional[str] = None
    spatial_coef: float = np.nan
    spatial_z: float = np.nan
    spatial_p: float = np.nan
    residuals: np.ndarray = field(default=None, repr=False, compare=False)

    def to_rows(self) -> List[List[Any]]:
        rows: List[List[Any]] = [
            [self.name, "ModelFit", None, self.fit_label, float(self.fit)],
            [self.name, "ModelFit", None, "AIC", float(self.aic)],
            [self.name, "ModelFit", None, "LogLik", float(self.log_likelihood)],
            [self.name, "ModelFit", None, "N", int(self.n)],
        ]
        for term, coef in self.coefficients.items():
            rows += [[self.name, term, None, "coef", float(coef)],
                     [self.name, term, None, "p_value", float(self.p_values[term])]]
        if self.spatial_param:
            rows += [[self.name, self.spatial_param, None, "coef", float(self.spatial_coef)],
                     [self.name, self.spatial_param, None, "z", float(self.spatial_z)],
                     [self.name, self.spatial_param, None, "p_value", float(self.spatial_p)]]
        return rows


@dataclass(frozen=True)
class MoranResult:
    column: str
    I: float
    expected_I: float
    z: float
    p_norm: float
    p_sim: float
    permutations: int

    def to_rows(self) -> List[List[Any]]:
        return [["Moran_I", self.column, None, "I", float(self.I)],
                ["Moran_I", self.column, None, "EI", float(self.expected_I)],
                ["Moran_I", self.column, None, "z_norm", float(self.z)],
                ["Moran_I", self.column, None, "p_norm", float(self.p_norm)],
                ["Moran_I", self.column, None, "p_sim", float(self.p_sim)]]


# ── helpers ------------------------------------------------------------
def _arrays(frame: pd.DataFrame, y: str, x: str):
    data = frame[[y, x]].apply(pd.to_numeric, errors="coerce")
    if data.isna().any().any():
        raise ValueError(f"Missing values in {y}/{x}; drop them before fitting")
    return data[y].to_numpy(dtype=float).reshape(-1, 1), data[[x]].to_numpy(dtype=float)


def _check_weights(W, n: int) -> None:
    if W.n != n:
        raise ValueError(f"Weights cover {W.n} regions but the model table has {n} rows")


def _check_spatial(name: str, param: str, value: float, betas: np.ndarray) -> None:
    if not np.all(np.isfinite(betas)) or not np.isfinite(value):
        raise ModelConvergenceError(f"{name}: non-finite estimates")
    if abs(value) >= 1.0 - BOUND_TOL:
        raise ModelConvergenceError(f"{name}: {param} = {value:.4f} reached the search bound")


def _spatial_result(name: str, model, x: str, param: str, value: float) -> FitResult:
    betas = np.asarray(model.betas, dtype=float).ravel()
    _check_spatial(name, param, value, betas)
    terms = ["const", x]
    z_stat = list(model.z_stat)
    return FitResult(
        name=name,
        n=int(model.n),
        coefficients={t: float(betas[i]) for i, t in enumerate(terms)},
        p_values={t: float(z_stat[i][1]) for i, t in enumerate(terms)},
        fit=float(model.pr2),
        fit_label="Pseudo_R2",
        aic=float(model.aic),
        log_likelihood=float(model.logll),
        spatial_param=param,
        spatial_coef=float(value),
        spatial_z=float(z_stat[-1][0]),
        spatial_p=float(z_stat[-1][1]),
        residuals=np.asarray(model.u, dtype=float).ravel(),
    )


# ── models -------------------------------------------------------------
def fit_ols(frame: pd.DataFrame, y: str, x: str) -> FitResult:
    """Least-squares fit of `y` on `x` with an intercept."""
    y_arr, x_arr = _arrays(frame, y, x)
    X = sm.add_constant(pd.DataFrame(x_arr, columns=[x]), has_constant="add")
    model = sm.OLS(y_arr.ravel(), X).fit()
    log.info("  OLS: slope = %.4f (p = %.4f), R² = %.3f", model.params[x], model.pvalues[x], model.rsquared)
    return FitResult(
        name="OLS",
        n=int(model.nobs),
        coefficients={t: float(model.params[t]) for t in ("const", x)},
        p_values={t: float(model.pvalues[t]) for t in ("const", x)},
        fit=float(model.rsquared),
        fit_label="R2",
        aic=float(model.aic),
        log_likelihood=float(model.llf),
        residuals=np.asarray(model.resid, dtype=float),
    )


def fit_spatial_lag(frame: pd.DataFrame, y: str, x: str, W) -> FitResult:
    """ML spatial lag model: y = rho·Wy + Xb + e."""
    y_arr, x_arr = _arrays(frame, y, x)
    _check_weights(W, len(y_arr))
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            model = ML_Lag(y_arr, x_arr, w=W, method="full", name_y=y, name_x=[x])
    except (np.linalg.LinAlgError, FloatingPointError, ArithmeticError) as exc:
        raise ModelConvergenceError(f"Spatial lag fit failed: {exc}") from exc
    result = _spatial_result("SAR_Lag", model, x, "rho", float(model.rho))
    log.info("  Spatial lag: rho = %.4f (p = %.4f), slope = %.4f (p = %.4f)", result.spatial_coef,
             result.spatial_p, result.coefficients[x], result.p_values[x])
    return result


def fit_spatial_error(frame: pd.DataFrame, y: str, x: str, W) -> FitResult:
    """ML spatial error model: y = Xb + u, u = lambda·Wu + e."""
    y_arr, x_arr = _arrays(frame, y, x)
    _check_weights(W, len(y_arr))
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            model = ML_Error(y_arr, x_arr, w=W, method="full", name_y=y, name_x=[x])
    except (np.linalg.LinAlgError, FloatingPointError, ArithmeticError) as exc:
        raise ModelConvergenceError(f"Spatial error fit failed: {exc}") from exc
    result = _spatial_result("SEM_Error", model, x, "lambda", float(model.lam))
    log.info("  Spatial error: lambda = %.4f (p = %.4f), slope = %.4f (p = %.4f)", result.spatial_coef,
             result.spatial_p, result.coefficients[x], result.p_values[x])
    return result


def compare_aic(results: Sequence[FitResult]) -> pd.DataFrame:
    """Model / AIC / ΔAIC, best (lowest AIC) first."""
    table = pd.DataFrame({"model": [r.name for r in results], "aic": [r.aic for r in results]})
    table = table.sort_values("aic").reset_index(drop=True)
    table["delta_aic"] = table["aic"] - table["aic"].iloc[0]
    return table


# ── spatial autocorrelation ---------------------------------------------
def morans_i(values, W, column: str = "value", permutations: int = 999,
             seed: Optional[int] = None) -> MoranResult:
    """
    Global Moran's I with analytic and permutation p-values.

    A column with no variance has no autocorrelation to measure; it is
    reported as I = 0 with p = 1 instead of the 0/0 esda would produce.
    """
    y = np.asarray(values, dtype=float).ravel()
    _check_weights(W, len(y))
    expected = -1.0 / (len(y) - 1)
    if np.allclose(y, y[0]):
        log.info("⚠ %s is constant; Moran's I reported as 0", column)
        return MoranResult(column, 0.0, expected, 0.0, 1.0, 1.0, permutations)

    if seed is not None:
        np.random.seed(seed)
    mi = Moran(y, W, permutations=permutations)
    p_sim = float(mi.p_sim) if permutations else np.nan
    log.info("  Moran's I (%s): I = %.4f, z = %.3f, p_norm = %.4f, p_sim = %s",
             column, mi.I, mi.z_norm, mi.p_norm, f"{p_sim:.4f}" if permutations else "n/a")
    return MoranResult(column, float(mi.I), float(mi.EI), float(mi.z_norm),
                       float(mi.p_norm), p_sim, permutations)


# ── descriptives -------------------------------------------------------
def describe(frame: pd.DataFrame, y: str, x: str) -> List[List[Any]]:
    """Descriptives for both columns and their Pearson / Spearman correlation."""
    rows: List[List[Any]] = []
    for col in (y, x):
        s = pd.to_numeric(frame[col], errors="coerce").dropna()
        rows += [["Descriptives", col, None, "N", int(s.size)],
                 ["Descriptives", col, None, "mean", float(s.mean())],
                 ["Descriptives", col, None, "median", float(s.median())],
                 ["Descriptives", col, None, "std", float(s.std())],
                 ["Descriptives", col, None, "min", float(s.min())],
                 ["Descriptives", col, None, "max", float(s.max())]]
    rows.append(["Descriptives", y, None, "share_zero", float((frame[y] == 0).mean())])

    pair = frame[[y, x]].apply(pd.to_numeric, errors="coerce").dropna()
    if len(pair) > 2 and pair[y].nunique() > 1 and pair[x].nunique() > 1:
        r, p = stats.pearsonr(pair[x], pair[y])
        rho, p_s = stats.spearmanr(pair[x], pair[y])
        rows += [["Correlation", x, y, "pearson_r", float(r)],
                 ["Correlation", x, y, "pearson_p", float(p)],
                 ["Correlation", x, y, "spearman_rho", float(rho)],
                 ["Correlation", x, y, "spearman_p", float(p_s)]]
    return rows
