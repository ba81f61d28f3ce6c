"""
Mean-variance building blocks: portfolio return/variance/Sharpe, the weight
constraint model, and holdings arithmetic.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd

from .errors import InvalidDomainInput, MathematicallyUndefined
from .utils import ArrayLike, as_square_matrix, as_vector, require_same_length

WEIGHT_SUM_TOLERANCE = 0.01


def portfolio_expected_return(returns: ArrayLike, weights: ArrayLike) -> float:
    r = as_vector(returns, "returns")
    w = as_vector(weights, "weights")
    require_same_length(r, w, names=("returns", "weights"))
    return float(r @ w)


def portfolio_variance(covariance, weights: ArrayLike) -> float:
    """
    sum_i sum_j w_i * w_j * S_ij, evaluated as the quadratic form w' S w.

    Raises on any dimension mismatch.
    """
    cov = as_square_matrix(covariance, "covariance")
    w = as_vector(weights, "weights")
    if cov.shape[0] != len(w):
        raise InvalidDomainInput(f"covariance is {cov.shape[0]}x{cov.shape[0]} but got {len(w)} weights")
    return float(w @ cov @ w)


def sharpe_ratio(returns: ArrayLike, covariance, weights: ArrayLike, risk_free_rate: float = 0.0) -> float:
    """Excess return per unit of volatility; 0 when volatility is 0."""
    ret = portfolio_expected_return(returns, weights)
    vol = math.sqrt(max(portfolio_variance(covariance, weights), 0.0))
    if vol == 0:
        return 0.0
    return (ret - risk_free_rate) / vol


@dataclass(frozen=True)
class PortfolioResult:
    weights: np.ndarray
    expected_return: float
    variance: float
    volatility: float
    sharpe_ratio: Optional[float] = None
    accepted_moves: int = 0

    def as_series(self, asset_names: Optional[Sequence[str]] = None) -> pd.Series:
        index = list(asset_names) if asset_names is not None else [f"w{i}" for i in range(len(self.weights))]
        return pd.Series(self.weights, index=index, name="weight")


# ---------- Constraints ----------

@dataclass(frozen=True)
class WeightConstraints:
    long_only: bool = False
    min_weight: Optional[float] = None
    max_weight: Optional[float] = None
    min_weights: Optional[Sequence[float]] = None
    max_weights: Optional[Sequence[float]] = None

    def validate_for(self, n_assets: int) -> None:
        for name in ("min_weights", "max_weights"):
            vec = getattr(self, name)
            if vec is not None and len(vec) != n_assets:
                raise InvalidDomainInput(f"{name} has {len(vec)} entries for {n_assets} assets")

    def bounds(self, n_assets: int):
        """Tightest per-asset (lower, upper) arrays implied by all bound settings."""
        self.validate_for(n_assets)
        lo = np.full(n_assets, -np.inf)
        hi = np.full(n_assets, np.inf)

        if self.long_only:
            lo = np.maximum(lo, 0.0)
        if self.min_weight is not None:
            lo = np.maximum(lo, self.min_weight)
        if self.max_weight is not None:
            hi = np.minimum(hi, self.max_weight)
        if self.min_weights is not None:
            lo = np.maximum(lo, np.asarray(self.min_weights, dtype=float))
        if self.max_weights is not None:
            hi = np.minimum(hi, np.asarray(self.max_weights, dtype=float))
        return lo, hi


def check_weight_constraints(
    weights: ArrayLike,
    constraints: Optional[WeightConstraints] = None,
    tolerance: float = WEIGHT_SUM_TOLERANCE,
) -> bool:
    """True iff |sum(w) - 1| <= tolerance and every bound holds."""
    w = as_vector(weights, "weights")
    if abs(w.sum() - 1.0) > tolerance:
        return False
    if constraints is None:
        return True

    lo, hi = constraints.bounds(len(w))
    return bool(np.all(w >= lo) and np.all(w <= hi))


def normalize_weights(weights: ArrayLike) -> np.ndarray:
    w = as_vector(weights, "weights")
    total = w.sum()
    if total == 0:
        raise MathematicallyUndefined("Weights sum to 0; cannot normalize")
    return w / total


def clip_weights(weights: ArrayLike, lower=0.0, upper=1.0) -> np.ndarray:
    """Clip to [lower, upper] (scalars or per-asset arrays) and renormalize."""
    return normalize_weights(np.clip(as_vector(weights, "weights"), lower, upper))


# ---------- Holdings ----------

@dataclass(frozen=True)
class Holding:
    price: float
    quantity: float

    @property
    def value(self) -> float:
        return self.price * self.quantity


def portfolio_value(holdings: Sequence[Holding]) -> float:
    return float(sum(h.value for h in holdings))


def asset_weight(asset_value: float, total_value: float) -> float:
    if total_value == 0:
        raise MathematicallyUndefined("Portfolio value is 0; weight undefined")
    return asset_value / total_value


def holding_weights(holdings: Sequence[Holding]) -> List[float]:
    total = portfolio_value(holdings)
    if total == 0:
        return [0.0 for _ in holdings]
    return [asset_weight(h.value, total) for h in holdings]


def holdings_return(current: Sequence[Holding], previous: Optional[Sequence[Holding]] = None) -> float:
    """Simple return between two snapshots; 0 without a previous snapshot."""
    if not previous:
        return 0.0
    prev_value = portfolio_value(previous)
    if prev_value == 0:
        raise MathematicallyUndefined("Previous portfolio value is 0")
    return (portfolio_value(current) - prev_value) / prev_value


def weighted_return(returns: ArrayLike, weights: ArrayLike) -> float:
    r = as_vector(returns, "returns")
    w = as_vector(weights, "weights")
    require_same_length(r, w, names=("returns", "weights"))
    if abs(w.sum() - 1.0) > WEIGHT_SUM_TOLERANCE:
        raise InvalidDomainInput(f"weights must sum to 1, got {w.sum():.4f}")
    return float(r @ w)
