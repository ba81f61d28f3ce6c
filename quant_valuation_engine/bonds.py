from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
import pandas as pd

from .config import BondConfig
from .errors import InvalidDomainInput, MathematicallyUndefined, NonConvergence
from .utils import ArrayLike, as_vector, require_positive, yearfrac

logger = logging.getLogger(__name__)

ZERO_YIELD_EPS = 1e-10


def _period_count(years: float, freq: float) -> float:
    """Periods to maturity. May be fractional for the closed-form pricing paths."""
    return float(years * freq)


def _num_periods(years: float, freq: float) -> int:
    n = _period_count(years, freq)
    if abs(n - round(n)) > 1e-9:
        raise InvalidDomainInput(f"years * freq must be a whole number of periods, got {n}")
    return int(round(n))


def _periodic_yield(yield_rate: float, freq: float) -> float:
    py = yield_rate / freq
    if 1.0 + py <= 0.0:
        raise MathematicallyUndefined(f"Periodic yield {py} <= -100%: discount factor undefined")
    return py


def _cashflows(face: float, coupon_rate: float, years: float, freq: int) -> Tuple[np.ndarray, np.ndarray]:
    """Period index 1..n and the cashflow paid at each period (face added at n)."""
    require_positive(face=face, years=years, freq=freq)
    n = _num_periods(years, freq)

    periods = np.arange(1, n + 1, dtype=float)
    cfs = np.full(n, face * coupon_rate / freq, dtype=float)
    cfs[-1] += face
    return periods, cfs


def _discounted_cashflows(face, coupon_rate, yield_rate, years, freq):
    periods, cfs = _cashflows(face, coupon_rate, years, freq)
    py = _periodic_yield(yield_rate, freq)
    dfs = (1.0 + py) ** -periods
    return periods, cfs, dfs, py


def bond_price(face: float, coupon_rate: float, yield_rate: float, years: float, freq: int = 2) -> float:
    """
    Present value of a fixed-coupon bond at a flat yield.

    Annuity closed form in n = years * freq periods, which need not be
    whole (0.75y semiannual prices as 1.5 periods). Falls back to
    face + n * coupon when the periodic yield is ~0.
    """
    require_positive(face=face, years=years, freq=freq)
    n = _period_count(years, freq)
    coupon = face * coupon_rate / freq
    py = _periodic_yield(yield_rate, freq)

    if abs(py) < ZERO_YIELD_EPS:
        return face + coupon * n

    pv_coupons = coupon * (1.0 - (1.0 + py) ** -n) / py
    pv_face = face / (1.0 + py) ** n
    return pv_coupons + pv_face


def bond_price_derivative(face: float, coupon_rate: float, yield_rate: float, years: float, freq: int = 2) -> float:
    """Analytic dP/dy (per unit of annual yield)."""
    require_positive(face=face, years=years, freq=freq)
    n = _period_count(years, freq)
    coupon = face * coupon_rate / freq
    py = _periodic_yield(yield_rate, freq)

    if abs(py) < ZERO_YIELD_EPS:
        # -sum(i * cf_i) with unit discount factors
        return -(coupon * n * (n + 1) / 2.0 + n * face) / freq

    growth = 1.0 + py
    d_coupons = coupon * (-(1.0 - growth ** -n) / py ** 2 + n * growth ** (-n - 1) / py)
    d_face = -n * face * growth ** (-n - 1)
    return (d_coupons + d_face) / freq


def zero_coupon_bond_price(face: float, yield_rate: float, years: float) -> float:
    require_positive(face=face, years=years)
    if 1.0 + yield_rate <= 0.0:
        raise MathematicallyUndefined(f"Yield {yield_rate} <= -100%")
    return face / (1.0 + yield_rate) ** years


def present_value(cashflows: ArrayLike, discount_rate: float, periods_per_year: int = 1) -> float:
    """PV of cashflows paid at the end of periods 1..n."""
    cfs = as_vector(cashflows, "cashflows")
    if not 0.0 <= discount_rate <= 1.0:
        raise InvalidDomainInput(f"discount_rate must lie in [0, 1], got {discount_rate}")
    require_positive(periods_per_year=periods_per_year)

    rate = discount_rate / periods_per_year
    periods = np.arange(1, len(cfs) + 1, dtype=float)
    return float(np.sum(cfs / (1.0 + rate) ** periods))


# ---------- Yield to maturity ----------

@dataclass(frozen=True)
class YieldResult:
    value: float
    converged: bool
    iterations: int

    def require_converged(self) -> float:
        if not self.converged:
            raise NonConvergence(
                f"YTM did not converge after {self.iterations} iterations (last estimate {self.value:.6f})"
            )
        return self.value


def yield_to_maturity(
    face: float,
    coupon_rate: float,
    price: float,
    years: float,
    freq: int = 2,
    tolerance: float = 1e-6,
    max_iterations: int = 100,
) -> YieldResult:
    """
    Newton-Raphson on the flat yield, starting from the coupon rate.

    Each step is clamped to [-1, 1]. Stops early when |dP/dy| < 1e-10.
    There is no bracketing fallback: a non-converged run comes back with
    converged=False and the last iterate.
    """
    require_positive(face=face, price=price, years=years, freq=freq)

    ytm = coupon_rate
    for it in range(1, max_iterations + 1):
        try:
            error = bond_price(face, coupon_rate, ytm, years, freq) - price
        except MathematicallyUndefined:
            logger.warning("YTM iterate %.6f left the priceable domain after %d iterations", ytm, it)
            return YieldResult(ytm, False, it)

        if abs(error) < tolerance:
            logger.debug("YTM converged to %.8f in %d iterations", ytm, it)
            return YieldResult(ytm, True, it)

        derivative = bond_price_derivative(face, coupon_rate, ytm, years, freq)
        if abs(derivative) < 1e-10:
            logger.warning("YTM derivative vanished at %.6f; stopping", ytm)
            return YieldResult(ytm, False, it)

        ytm = max(-1.0, min(1.0, ytm - error / derivative))

    logger.warning("YTM Newton-Raphson exhausted %d iterations (last %.6f)", max_iterations, ytm)
    return YieldResult(ytm, False, max_iterations)


def current_yield(annual_coupon: float, price: float) -> float:
    require_positive(price=price)
    return annual_coupon / price


def holding_period_return(purchase_price: float, sale_price: float, coupons_received: float) -> float:
    require_positive(purchase_price=purchase_price)
    return (sale_price + coupons_received - purchase_price) / purchase_price


def annualized_holding_period_return(
    purchase_price: float, sale_price: float, coupons_received: float, holding_years: float
) -> float:
    require_positive(holding_years=holding_years)
    hpr = holding_period_return(purchase_price, sale_price, coupons_received)
    return (1.0 + hpr) ** (1.0 / holding_years) - 1.0


# ---------- Accrual ----------

def accrued_interest(
    face: float,
    coupon_rate: float,
    freq: int,
    days_since_last_coupon: float,
    days_in_period: float,
) -> float:
    """Accrued interest in currency units."""
    require_positive(face=face, freq=freq, days_in_period=days_in_period)
    if not 0 <= days_since_last_coupon <= days_in_period:
        raise InvalidDomainInput(
            f"days_since_last_coupon must lie in [0, {days_in_period}], got {days_since_last_coupon}"
        )
    coupon = face * coupon_rate / freq
    return coupon * days_since_last_coupon / days_in_period


def accrued_interest_between(
    last_coupon: pd.Timestamp,
    settle: pd.Timestamp,
    next_coupon: pd.Timestamp,
    face: float,
    coupon_rate: float,
    freq: int = 2,
    day_count: str = "30/360",
) -> float:
    """Accrued interest from coupon dates, accrual fraction under ``day_count``."""
    last_coupon, settle, next_coupon = pd.Timestamp(last_coupon), pd.Timestamp(settle), pd.Timestamp(next_coupon)
    if not last_coupon <= settle <= next_coupon:
        raise InvalidDomainInput("settle must fall within [last_coupon, next_coupon]")

    accrual_num = yearfrac(last_coupon, settle, day_count)
    accrual_den = yearfrac(last_coupon, next_coupon, day_count)
    if accrual_den <= 0:
        raise InvalidDomainInput("Invalid coupon period length from dates/daycount.")

    return accrued_interest(face, coupon_rate, freq, accrual_num, accrual_den)


def clean_price(dirty: float, accrued: float) -> float:
    return dirty - accrued


def dirty_price(clean: float, accrued: float) -> float:
    return clean + accrued


# ---------- Duration / convexity ----------

def cashflow_schedule(face: float, coupon_rate: float, yield_rate: float, years: float, freq: int = 2) -> pd.DataFrame:
    periods, cfs, dfs, _ = _discounted_cashflows(face, coupon_rate, yield_rate, years, freq)
    return pd.DataFrame(
        {
            "period": periods.astype(int),
            "time_years": periods / freq,
            "cashflow": cfs,
            "discount_factor": dfs,
            "pv": cfs * dfs,
        }
    )


def macaulay_duration(face: float, coupon_rate: float, yield_rate: float, years: float, freq: int = 2) -> float:
    """PV-weighted average time to cashflow, in years."""
    periods, cfs, dfs, _ = _discounted_cashflows(face, coupon_rate, yield_rate, years, freq)
    pv = cfs * dfs
    total = pv.sum()
    if total == 0:
        raise MathematicallyUndefined("Bond present value is 0; duration undefined")
    return float(np.sum(pv * periods / freq) / total)


def modified_duration(face: float, coupon_rate: float, yield_rate: float, years: float, freq: int = 2) -> float:
    mac = macaulay_duration(face, coupon_rate, yield_rate, years, freq)
    return mac / (1.0 + yield_rate / freq)


def effective_duration(
    face: float,
    coupon_rate: float,
    yield_rate: float,
    years: float,
    freq: int = 2,
    yield_change: float = 0.01,
) -> float:
    require_positive(yield_change=yield_change)
    p0 = bond_price(face, coupon_rate, yield_rate, years, freq)
    p_up = bond_price(face, coupon_rate, yield_rate + yield_change, years, freq)
    p_down = bond_price(face, coupon_rate, yield_rate - yield_change, years, freq)
    return -(p_up - p_down) / (2.0 * p0 * yield_change)


def convexity(face: float, coupon_rate: float, yield_rate: float, years: float, freq: int = 2) -> float:
    """Analytic convexity in years^2 (cashflows weighted by t(t+1), t in periods)."""
    periods, cfs, dfs, py = _discounted_cashflows(face, coupon_rate, yield_rate, years, freq)
    pv = cfs * dfs
    total = pv.sum()
    if total == 0:
        raise MathematicallyUndefined("Bond present value is 0; convexity undefined")

    weights = periods * (periods + 1.0) / freq ** 2
    return float(np.sum(pv * weights) / (total * (1.0 + py) ** 2))


def effective_convexity(
    face: float,
    coupon_rate: float,
    yield_rate: float,
    years: float,
    freq: int = 2,
    yield_change: float = 0.01,
) -> float:
    require_positive(yield_change=yield_change)
    p0 = bond_price(face, coupon_rate, yield_rate, years, freq)
    p_up = bond_price(face, coupon_rate, yield_rate + yield_change, years, freq)
    p_down = bond_price(face, coupon_rate, yield_rate - yield_change, years, freq)
    return (p_up + p_down - 2.0 * p0) / (p0 * yield_change ** 2)


def estimate_price_change(modified_dur: float, convex: float, yield_change: float) -> float:
    """Second-order estimate of the fractional price change: -D*dy + 0.5*C*dy^2."""
    return -modified_dur * yield_change + 0.5 * convex * yield_change ** 2


@dataclass(frozen=True)
class Bond:
    face: float
    coupon_rate: float
    years_to_maturity: float
    freq: int = 2
    bond_id: str = ""

    def __post_init__(self) -> None:
        require_positive(face=self.face, years_to_maturity=self.years_to_maturity, freq=self.freq)
        _num_periods(self.years_to_maturity, self.freq)

    @property
    def coupon_payment(self) -> float:
        return self.face * self.coupon_rate / self.freq

    @property
    def periods(self) -> int:
        return _num_periods(self.years_to_maturity, self.freq)

    @property
    def _terms(self):
        return self.face, self.coupon_rate

    def price(self, yield_rate: float) -> float:
        return bond_price(*self._terms, yield_rate, self.years_to_maturity, self.freq)

    def ytm(self, price: float, config: Optional[BondConfig] = None) -> YieldResult:
        config = config or BondConfig()
        return yield_to_maturity(
            *self._terms, price, self.years_to_maturity, self.freq,
            tolerance=config.ytm_tolerance,
            max_iterations=config.ytm_max_iterations,
        )

    def cashflow_table(self, yield_rate: float) -> pd.DataFrame:
        return cashflow_schedule(*self._terms, yield_rate, self.years_to_maturity, self.freq)

    def risk_summary(self, yield_rate: float, config: Optional[BondConfig] = None) -> pd.Series:
        config = config or BondConfig()
        args = (*self._terms, yield_rate, self.years_to_maturity, self.freq)
        return pd.Series(
            {
                "price": bond_price(*args),
                "macaulay_duration": macaulay_duration(*args),
                "modified_duration": modified_duration(*args),
                "effective_duration": effective_duration(*args, yield_change=config.yield_bump),
                "convexity": convexity(*args),
                "effective_convexity": effective_convexity(*args, yield_change=config.yield_bump),
            },
            name=self.bond_id or None,
        )
