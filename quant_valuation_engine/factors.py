"""
Factor models: CAPM and the Fama-French 3 and 5 factor regressions.

Every regression here is a thin wrapper over
statistics.multiple_linear_regression.
"""
from __future__ import annotations

from dataclasses import dataclass

from .errors import InvalidDomainInput, MathematicallyUndefined
from .statistics import multiple_linear_regression
from .utils import ArrayLike, as_vector, require_same_length


def capm_expected_return(risk_free_rate: float, market_return: float, beta: float) -> float:
    """E[R] = rf + beta * (E[Rm] - rf)"""
    return risk_free_rate + beta * (market_return - risk_free_rate)


def market_risk_premium(market_return: float, risk_free_rate: float) -> float:
    return market_return - risk_free_rate


def jensens_alpha(actual_return: float, expected_return: float) -> float:
    return actual_return - expected_return


def treynor_ratio(portfolio_return: float, risk_free_rate: float, beta: float) -> float:
    if beta == 0:
        raise MathematicallyUndefined("Treynor ratio undefined for beta = 0")
    return (portfolio_return - risk_free_rate) / beta


@dataclass(frozen=True)
class CapmResult:
    alpha: float
    beta: float
    r_squared: float


@dataclass(frozen=True)
class FamaFrench3Result:
    alpha: float
    beta: float
    smb: float
    hml: float
    r_squared: float


@dataclass(frozen=True)
class FamaFrench5Result:
    alpha: float
    beta: float
    smb: float
    hml: float
    rmw: float
    cma: float
    r_squared: float


def _factor_fit(stock_returns: ArrayLike, factors: dict, min_obs: int):
    y = as_vector(stock_returns, "stock_returns")
    cols = [as_vector(v, k) for k, v in factors.items()]
    require_same_length(y, *cols, names=["stock_returns"] + list(factors))
    if len(y) < min_obs:
        raise InvalidDomainInput(f"Need at least {min_obs} observations, got {len(y)}")
    return multiple_linear_regression(y, cols)


def capm_regression(stock_returns: ArrayLike, market_returns: ArrayLike) -> CapmResult:
    """Single-index regression R_i = alpha + beta * R_m."""
    fit = _factor_fit(stock_returns, {"market_returns": market_returns}, 2)
    return CapmResult(alpha=fit.intercept, beta=float(fit.coefficients[0]), r_squared=fit.r_squared)


def beta(stock_returns: ArrayLike, market_returns: ArrayLike) -> float:
    """Cov(R_i, R_m) / Var(R_m). A constant market series is MathematicallyUndefined."""
    return capm_regression(stock_returns, market_returns).beta


def fama_french_3factor(
    stock_returns: ArrayLike,
    market_returns: ArrayLike,
    smb_returns: ArrayLike,
    hml_returns: ArrayLike,
) -> FamaFrench3Result:
    fit = _factor_fit(
        stock_returns,
        {"market_returns": market_returns, "smb_returns": smb_returns, "hml_returns": hml_returns},
        4,
    )
    b_mkt, b_smb, b_hml = (float(c) for c in fit.coefficients)
    return FamaFrench3Result(alpha=fit.intercept, beta=b_mkt, smb=b_smb, hml=b_hml, r_squared=fit.r_squared)


def fama_french_5factor(
    stock_returns: ArrayLike,
    market_returns: ArrayLike,
    smb_returns: ArrayLike,
    hml_returns: ArrayLike,
    rmw_returns: ArrayLike,
    cma_returns: ArrayLike,
) -> FamaFrench5Result:
    fit = _factor_fit(
        stock_returns,
        {
            "market_returns": market_returns,
            "smb_returns": smb_returns,
            "hml_returns": hml_returns,
            "rmw_returns": rmw_returns,
            "cma_returns": cma_returns,
        },
        6,
    )
    b_mkt, b_smb, b_hml, b_rmw, b_cma = (float(c) for c in fit.coefficients)
    return FamaFrench5Result(
        alpha=fit.intercept,
        beta=b_mkt,
        smb=b_smb,
        hml=b_hml,
        rmw=b_rmw,
        cma=b_cma,
        r_squared=fit.r_squared,
    )
