"""
Option pricing: Black-Scholes closed form, Cox-Ross-Rubinstein lattice,
analytic Greeks and implied volatility.

The normal CDF is the Abramowitz-Stegun 7.1.26 approximation (|error| ~ 1e-7),
kept local so prices do not move with a statistics library's implementation.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from .config import OptionConfig
from .errors import InvalidDomainInput, NonConvergence
from .utils import require_positive

logger = logging.getLogger(__name__)

CALL = "call"
PUT = "put"
AMERICAN = "american"
EUROPEAN = "european"

_A1 = 0.254829592
_A2 = -0.284496736
_A3 = 1.421413741
_A4 = -1.453152027
_A5 = 1.061405429
_P = 0.3275911


def norm_cdf(x: float) -> float:
    sign = 1.0 if x >= 0 else -1.0
    z = abs(x) / math.sqrt(2.0)

    t = 1.0 / (1.0 + _P * z)
    y = 1.0 - ((((_A5 * t + _A4) * t + _A3) * t + _A2) * t + _A1) * t * math.exp(-z * z)

    return 0.5 * (1.0 + sign * y)


def norm_pdf(x: float) -> float:
    return math.exp(-0.5 * x * x) / math.sqrt(2.0 * math.pi)


def _option_type(option_type: str) -> str:
    kind = str(option_type).lower()
    if kind not in (CALL, PUT):
        raise InvalidDomainInput(f"option_type must be 'call' or 'put', got {option_type!r}")
    return kind


def _d1_d2(S: float, K: float, T: float, r: float, sigma: float) -> Tuple[float, float]:
    require_positive(S=S, K=K, T=T, sigma=sigma)
    vol_sqrt_t = sigma * math.sqrt(T)
    d1 = (math.log(S / K) + (r + 0.5 * sigma * sigma) * T) / vol_sqrt_t
    return d1, d1 - vol_sqrt_t


def black_scholes_price(S: float, K: float, T: float, r: float, sigma: float, option_type: str = CALL) -> float:
    kind = _option_type(option_type)
    d1, d2 = _d1_d2(S, K, T, r, sigma)
    df = math.exp(-r * T)

    if kind == CALL:
        return S * norm_cdf(d1) - K * df * norm_cdf(d2)
    return K * df * norm_cdf(-d2) - S * norm_cdf(-d1)


# ---------- CRR lattice ----------

def binomial_tree_price(
    S: float,
    K: float,
    T: float,
    r: float,
    sigma: float,
    steps: int = 100,
    option_type: str = CALL,
    exercise: str = AMERICAN,
) -> float:
    """
    Cox-Ross-Rubinstein lattice with backward induction.

    u = exp(sigma*sqrt(dt)), d = 1/u, p = (exp(r*dt) - d)/(u - d).
    exercise="american" compares continuation with intrinsic value at every
    internal node; exercise="european" discounts only. Cost is O(steps^2).
    """
    kind = _option_type(option_type)
    style = str(exercise).lower()
    if style not in (AMERICAN, EUROPEAN):
        raise InvalidDomainInput(f"exercise must be 'american' or 'european', got {exercise!r}")
    require_positive(S=S, K=K, T=T, sigma=sigma, steps=steps)
    steps = int(steps)
    if steps < 1:
        raise InvalidDomainInput(f"steps must be at least 1, got {steps}")

    dt = T / steps
    u = math.exp(sigma * math.sqrt(dt))
    d = 1.0 / u
    p = (math.exp(r * dt) - d) / (u - d)
    discount = math.exp(-r * dt)

    if not 0.0 <= p <= 1.0:
        logger.warning("Risk-neutral probability %.6f outside [0, 1]; increase steps", p)

    def intrinsic(spots: np.ndarray) -> np.ndarray:
        if kind == CALL:
            return np.maximum(spots - K, 0.0)
        return np.maximum(K - spots, 0.0)

    # node i at level n: S * u^(n-i) * d^i, i = 0 is the all-up node
    i = np.arange(steps + 1)
    spots = S * u ** (steps - i) * d ** i
    values = intrinsic(spots)

    for _ in range(steps):
        values = discount * (p * values[:-1] + (1.0 - p) * values[1:])
        if style == AMERICAN:
            spots = spots[:-1] * d
            values = np.maximum(values, intrinsic(spots))

    return float(values[0])


def american_option_price(S, K, T, r, sigma, steps: int = 100, option_type: str = CALL) -> float:
    return binomial_tree_price(S, K, T, r, sigma, steps, option_type, exercise=AMERICAN)


def european_option_price(S, K, T, r, sigma, steps: int = 100, option_type: str = CALL) -> float:
    return binomial_tree_price(S, K, T, r, sigma, steps, option_type, exercise=EUROPEAN)


# ---------- Greeks ----------

@dataclass(frozen=True)
class Greeks:
    delta: float
    gamma: float
    theta: float    # per calendar day
    vega: float     # per 1 vol point
    rho: float      # per 1 rate point


def delta(S, K, T, r, sigma, option_type: str = CALL) -> float:
    kind = _option_type(option_type)
    d1, _ = _d1_d2(S, K, T, r, sigma)
    return norm_cdf(d1) if kind == CALL else norm_cdf(d1) - 1.0


def gamma(S, K, T, r, sigma) -> float:
    d1, _ = _d1_d2(S, K, T, r, sigma)
    return norm_pdf(d1) / (S * sigma * math.sqrt(T))


def theta(S, K, T, r, sigma, option_type: str = CALL) -> float:
    kind = _option_type(option_type)
    d1, d2 = _d1_d2(S, K, T, r, sigma)

    decay = -S * norm_pdf(d1) * sigma / (2.0 * math.sqrt(T))
    carry = r * K * math.exp(-r * T)
    if kind == CALL:
        annual = decay - carry * norm_cdf(d2)
    else:
        annual = decay + carry * norm_cdf(-d2)
    return annual / 365.0


def vega(S, K, T, r, sigma) -> float:
    d1, _ = _d1_d2(S, K, T, r, sigma)
    return S * norm_pdf(d1) * math.sqrt(T) / 100.0


def rho(S, K, T, r, sigma, option_type: str = CALL) -> float:
    kind = _option_type(option_type)
    _, d2 = _d1_d2(S, K, T, r, sigma)
    kt_df = K * T * math.exp(-r * T)
    if kind == CALL:
        return kt_df * norm_cdf(d2) / 100.0
    return -kt_df * norm_cdf(-d2) / 100.0


def compute_greeks(S, K, T, r, sigma, option_type: str = CALL) -> Greeks:
    return Greeks(
        delta=delta(S, K, T, r, sigma, option_type),
        gamma=gamma(S, K, T, r, sigma),
        theta=theta(S, K, T, r, sigma, option_type),
        vega=vega(S, K, T, r, sigma),
        rho=rho(S, K, T, r, sigma, option_type),
    )


# ---------- Implied volatility ----------

@dataclass(frozen=True)
class ImpliedVolResult:
    value: float
    converged: bool
    iterations: int

    def require_converged(self) -> float:
        if not self.converged:
            raise NonConvergence(
                f"Implied volatility did not converge after {self.iterations} iterations "
                f"(last estimate {self.value:.6f})"
            )
        return self.value


def implied_volatility(
    market_price: float,
    S: float,
    K: float,
    T: float,
    r: float,
    option_type: str = CALL,
    tolerance: float = 1e-6,
    max_iterations: int = 100,
    lower: float = 0.001,
    upper: float = 5.0,
) -> ImpliedVolResult:
    """
    Bisection on sigma in [lower, upper].

    Best effort: if max_iterations is exhausted the last midpoint is returned
    with converged=False rather than raising.
    """
    require_positive(market_price=market_price)
    kind = _option_type(option_type)

    low, high = lower, upper
    mid = 0.5 * (low + high)

    for it in range(1, max_iterations + 1):
        mid = 0.5 * (low + high)
        diff = black_scholes_price(S, K, T, r, mid, kind) - market_price

        if abs(diff) < tolerance:
            logger.debug("Implied vol converged to %.8f in %d iterations", mid, it)
            return ImpliedVolResult(mid, True, it)

        if diff > 0:
            high = mid
        else:
            low = mid

    logger.warning(
        "Implied vol bisection exhausted %d iterations (price=%s, last sigma=%.6f)",
        max_iterations, market_price, mid,
    )
    return ImpliedVolResult(mid, False, max_iterations)


@dataclass(frozen=True)
class OptionContract:
    spot: float
    strike: float
    expiry: float           # years
    rate: float
    volatility: float
    option_type: str = CALL

    def __post_init__(self) -> None:
        object.__setattr__(self, "option_type", _option_type(self.option_type))
        require_positive(spot=self.spot, strike=self.strike, expiry=self.expiry, volatility=self.volatility)

    @property
    def args(self) -> Tuple[float, float, float, float, float]:
        return self.spot, self.strike, self.expiry, self.rate, self.volatility

    def price(self, model: str = "black_scholes", config: Optional[OptionConfig] = None) -> float:
        config = config or OptionConfig()
        if model == "black_scholes":
            return black_scholes_price(*self.args, self.option_type)
        if model in (AMERICAN, EUROPEAN):
            return binomial_tree_price(*self.args, config.binomial_steps, self.option_type, exercise=model)
        raise InvalidDomainInput(f"Unknown pricing model: {model!r}")

    def greeks(self) -> Greeks:
        return compute_greeks(*self.args, self.option_type)

    def implied_volatility(self, market_price: float, config: Optional[OptionConfig] = None) -> ImpliedVolResult:
        config = config or OptionConfig()
        return implied_volatility(
            market_price, self.spot, self.strike, self.expiry, self.rate, self.option_type,
            tolerance=config.iv_tolerance,
            max_iterations=config.iv_max_iterations,
            lower=config.iv_lower,
            upper=config.iv_upper,
        )

    def with_market(self, spot: Optional[float] = None, volatility: Optional[float] = None) -> "OptionContract":
        return OptionContract(
            spot=self.spot if spot is None else spot,
            strike=self.strike,
            expiry=self.expiry,
            rate=self.rate,
            volatility=self.volatility if volatility is None else volatility,
            option_type=self.option_type,
        )
