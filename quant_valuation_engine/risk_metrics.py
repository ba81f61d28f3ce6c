"""
Return-series analytics: returns, volatility, Sharpe, drawdown and
value-at-risk.

Returns are per-period simple returns as decimals. VaR and CVaR are
reported as positive loss fractions.
"""
from __future__ import annotations

import math

import numpy as np
from scipy.stats import norm

from .errors import InvalidDomainInput, MathematicallyUndefined
from .utils import ArrayLike, as_vector, require_open_unit_interval, require_positive


def simple_return(initial: float, final: float) -> float:
    if initial == 0:
        raise MathematicallyUndefined("initial value is 0; return undefined")
    return (final - initial) / initial


def annualized_return(returns: ArrayLike, periods: float) -> float:
    """(1 + mean periodic return) ** periods - 1"""
    r = as_vector(returns, "returns")
    require_positive(periods=periods)
    return float((1.0 + r.mean()) ** periods - 1.0)


def cumulative_return(returns: ArrayLike) -> float:
    r = as_vector(returns, "returns", allow_empty=True)
    if r.size == 0:
        return 0.0
    return float(np.prod(1.0 + r) - 1.0)


def volatility(returns: ArrayLike) -> float:
    """Sample standard deviation; 0 for a single observation."""
    r = as_vector(returns, "returns")
    if r.size == 1:
        return 0.0
    return float(r.std(ddof=1))


def annualized_volatility(returns: ArrayLike, periods: float) -> float:
    require_positive(periods=periods)
    return volatility(returns) * math.sqrt(periods)


def sharpe_ratio(returns: ArrayLike, risk_free_rate: float = 0.0) -> float:
    """(mean - rf) / sample vol, per period; 0 for a flat series."""
    r = as_vector(returns, "returns")
    vol = volatility(r)
    if vol == 0:
        return 0.0
    return float((r.mean() - risk_free_rate) / vol)


def max_drawdown(prices: ArrayLike) -> float:
    """Largest peak-to-trough decline as a fraction of the running peak."""
    p = as_vector(prices, "prices")
    if np.any(p <= 0):
        raise InvalidDomainInput("prices must be positive")
    if p.size == 1:
        return 0.0

    peaks = np.maximum.accumulate(p)
    return float(np.max((peaks - p) / peaks))


def _tail_index(n: int, confidence: float) -> int:
    require_open_unit_interval("confidence", confidence)
    return int(math.floor((1.0 - confidence) * n))


def value_at_risk(returns: ArrayLike, confidence: float = 0.95) -> float:
    """Historical VaR: minus the floor((1 - c) * n)-th smallest return."""
    r = np.sort(as_vector(returns, "returns"))
    idx = _tail_index(r.size, confidence)
    return float(-r[idx])


def conditional_var(returns: ArrayLike, confidence: float = 0.95) -> float:
    """
    Expected shortfall: mean loss over the sorted tail up to and including the
    VaR observation.
    """
    r = np.sort(as_vector(returns, "returns"))
    idx = _tail_index(r.size, confidence)
    return float(-r[: idx + 1].mean())


def parametric_var(returns: ArrayLike, confidence: float = 0.95) -> float:
    """Delta-normal VaR from the sample mean and volatility."""
    r = as_vector(returns, "returns")
    require_open_unit_interval("confidence", confidence)
    return float(-(r.mean() + volatility(r) * norm.ppf(1.0 - confidence)))
