"""
Covariance/correlation estimation and ordinary least squares.

multiple_linear_regression is the single OLS routine in the engine; the
factor models in factors.py all go through it.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Sequence, Union

import numpy as np
import pandas as pd

from .errors import InvalidDomainInput, MathematicallyUndefined
from .utils import ArrayLike, as_vector, require_same_length

logger = logging.getLogger(__name__)

PIVOT_EPS = 1e-10


def _paired(x: ArrayLike, y: ArrayLike):
    xs = as_vector(x, "x")
    ys = as_vector(y, "y")
    require_same_length(xs, ys, names=("x", "y"))
    return xs, ys


def covariance(x: ArrayLike, y: ArrayLike) -> float:
    """Sample covariance (n - 1 denominator)."""
    xs, ys = _paired(x, y)
    if len(xs) < 2:
        raise InvalidDomainInput("Need at least 2 observations for a sample covariance")
    return float(np.sum((xs - xs.mean()) * (ys - ys.mean())) / (len(xs) - 1))


def correlation(x: ArrayLike, y: ArrayLike) -> float:
    """Pearson correlation; 0 when either series is constant."""
    xs, ys = _paired(x, y)
    dx = xs - xs.mean()
    dy = ys - ys.mean()

    denom = math.sqrt(float(np.sum(dx * dx) * np.sum(dy * dy)))
    if denom == 0:
        return 0.0
    return float(np.sum(dx * dy) / denom)


def _asset_rows(returns_matrix) -> np.ndarray:
    if isinstance(returns_matrix, np.ndarray):
        rows = returns_matrix.astype(float)
    else:
        rows = list(returns_matrix)
        if len(rows) == 0:
            raise InvalidDomainInput("returns matrix must not be empty")
        lengths = {len(row) for row in rows}
        if len(lengths) > 1:
            raise InvalidDomainInput(f"All assets need the same number of observations, got {sorted(lengths)}")
        rows = np.asarray(rows, dtype=float)

    if rows.ndim != 2 or rows.shape[0] == 0:
        raise InvalidDomainInput("returns matrix must be 2-D with one row per asset")
    return rows


def _pairwise(returns_matrix, fn) -> Union[np.ndarray, pd.DataFrame]:
    # DataFrame input: columns are assets, rows are observations
    if isinstance(returns_matrix, pd.DataFrame):
        rows = returns_matrix.to_numpy(dtype=float).T
        labels = list(returns_matrix.columns)
    else:
        rows = _asset_rows(returns_matrix)
        labels = None

    n = rows.shape[0]
    out = np.empty((n, n), dtype=float)
    for i in range(n):
        for j in range(i, n):
            out[i, j] = out[j, i] = fn(rows[i], rows[j])

    if labels is not None:
        return pd.DataFrame(out, index=labels, columns=labels)
    return out


def covariance_matrix(returns_matrix) -> Union[np.ndarray, pd.DataFrame]:
    """
    Sample covariance matrix.

    ``returns_matrix`` is either a sequence of per-asset return series (rows =
    assets) or a DataFrame with one column per asset, in which case a labelled
    DataFrame is returned.
    """
    return _pairwise(returns_matrix, covariance)


def correlation_matrix(returns_matrix) -> Union[np.ndarray, pd.DataFrame]:
    return _pairwise(returns_matrix, correlation)


# ---------- Regression ----------

@dataclass(frozen=True)
class SimpleRegressionResult:
    intercept: float
    slope: float
    r_squared: float
    standard_error: float


@dataclass(frozen=True)
class RegressionResult:
    intercept: float
    coefficients: np.ndarray
    r_squared: float
    adjusted_r_squared: float

    def predict(self, x: Sequence[ArrayLike]) -> np.ndarray:
        factors = [as_vector(col, "x") for col in x]
        if len(factors) != len(self.coefficients):
            raise InvalidDomainInput(f"Expected {len(self.coefficients)} factors, got {len(factors)}")
        return self.intercept + np.column_stack(factors) @ self.coefficients


def _r_squared(y: np.ndarray, fitted: np.ndarray) -> float:
    ss_total = float(np.sum((y - y.mean()) ** 2))
    ss_resid = float(np.sum((y - fitted) ** 2))
    if ss_total == 0:
        return 0.0
    return 1.0 - ss_resid / ss_total


def _clamp_unit(value: float) -> float:
    if math.isnan(value):
        return value
    return max(0.0, min(1.0, value))


def simple_linear_regression(x: ArrayLike, y: ArrayLike) -> SimpleRegressionResult:
    """y = a + b x by the closed-form sum-of-products formulas."""
    xs, ys = _paired(x, y)
    n = len(xs)
    if n < 2:
        raise InvalidDomainInput("Need at least 2 observations for a regression")

    sum_x, sum_y = xs.sum(), ys.sum()
    sum_xy = float(xs @ ys)
    sum_xx = float(xs @ xs)

    denom = n * sum_xx - sum_x * sum_x
    if denom == 0:
        raise MathematicallyUndefined("x has zero variance; slope undefined")

    slope = (n * sum_xy - sum_x * sum_y) / denom
    intercept = (sum_y - slope * sum_x) / n

    fitted = intercept + slope * xs
    ss_resid = float(np.sum((ys - fitted) ** 2))
    standard_error = math.sqrt(ss_resid / (n - 2)) if n > 2 else float("nan")

    return SimpleRegressionResult(
        intercept=float(intercept),
        slope=float(slope),
        r_squared=_clamp_unit(_r_squared(ys, fitted)),
        standard_error=standard_error,
    )


def solve_linear_system(A, b) -> np.ndarray:
    """
    Gaussian elimination with partial pivoting, then back substitution.

    Raises MathematicallyUndefined when a pivot falls below 1e-10 in
    magnitude.
    """
    a = np.array(A, dtype=float)
    rhs = np.array(b, dtype=float)
    if a.ndim != 2 or a.shape[0] != a.shape[1] or rhs.shape != (a.shape[0],):
        raise InvalidDomainInput(f"Need an n x n system, got A{a.shape} and b{rhs.shape}")

    n = a.shape[0]
    aug = np.column_stack([a, rhs])

    for col in range(n):
        pivot_row = col + int(np.argmax(np.abs(aug[col:, col])))
        if pivot_row != col:
            aug[[col, pivot_row]] = aug[[pivot_row, col]]

        pivot = aug[col, col]
        if abs(pivot) < PIVOT_EPS:
            raise MathematicallyUndefined("Matrix is singular or nearly singular")

        factors = aug[col + 1:, col] / pivot
        aug[col + 1:, col:] -= np.outer(factors, aug[col, col:])

    x = np.empty(n, dtype=float)
    for i in range(n - 1, -1, -1):
        x[i] = (aug[i, n] - aug[i, i + 1:n] @ x[i + 1:]) / aug[i, i]
    return x


def multiple_linear_regression(y: ArrayLike, x: Sequence[ArrayLike]) -> RegressionResult:
    """
    OLS of y on k factor series plus an intercept, via the normal equations
    (X'X) b = X'y.

    ``x`` holds one series per factor, each the same length as ``y``.
    """
    ys = as_vector(y, "y")
    if len(x) == 0:
        raise InvalidDomainInput("Need at least one explanatory series")
    factors = [as_vector(col, f"x[{i}]") for i, col in enumerate(x)]
    require_same_length(ys, *factors, names=["y"] + [f"x[{i}]" for i in range(len(factors))])

    n, k = len(ys), len(factors)
    if n < k + 1:
        raise InvalidDomainInput(f"Need at least {k + 1} observations for {k} factors, got {n}")

    design = np.column_stack([np.ones(n)] + factors)
    beta = solve_linear_system(design.T @ design, design.T @ ys)

    fitted = design @ beta
    r2 = _r_squared(ys, fitted)
    dof = n - k - 1
    adjusted = 1.0 - (1.0 - r2) * (n - 1) / dof if dof > 0 else float("nan")

    logger.debug("OLS fit: n=%d k=%d r2=%.4f", n, k, r2)
    return RegressionResult(
        intercept=float(beta[0]),
        coefficients=beta[1:],
        r_squared=_clamp_unit(r2),
        adjusted_r_squared=_clamp_unit(adjusted),
    )
