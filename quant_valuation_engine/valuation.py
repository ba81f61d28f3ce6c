"""
Equity valuation: discounted cash flow, Gordon growth and the dividend
discount model family, the usual per-share and capital-cost helpers, and
relative valuation by market multiples (P/E, P/B, P/S, EV/EBITDA, PEG).

All rates are annual decimals; cash flows are assumed to arrive at the end
of each year.
"""
from __future__ import annotations

from typing import Optional

import numpy as np

from .errors import InvalidDomainInput, MathematicallyUndefined
from .utils import ArrayLike, as_vector, require_open_unit_interval, require_positive


def _require_growth_below(growth_rate: float, discount_rate: float, label: str = "growth rate") -> None:
    if growth_rate >= discount_rate:
        raise MathematicallyUndefined(
            f"{label} ({growth_rate}) must be below the discount rate ({discount_rate})"
        )


def gordon_growth_value(next_cash_flow: float, growth_rate: float, discount_rate: float) -> float:
    """Perpetuity growing at g: CF_1 / (r - g)."""
    if discount_rate <= 0:
        raise InvalidDomainInput(f"discount_rate must be > 0, got {discount_rate!r}")
    _require_growth_below(growth_rate, discount_rate)
    return next_cash_flow / (discount_rate - growth_rate)


def dcf_value(
    free_cash_flows: ArrayLike,
    discount_rate: float,
    terminal_growth_rate: float = 0.0,
    terminal_multiple: Optional[float] = None,
    terminal_year_fcf: Optional[float] = None,
) -> float:
    """
    Enterprise value from explicit free cash flows plus a terminal value.

    The terminal value uses the exit-multiple method when both
    ``terminal_multiple`` and ``terminal_year_fcf`` are given, and otherwise
    grows the last forecast cash flow at ``terminal_growth_rate`` in
    perpetuity. It is discounted from the end of the forecast horizon.
    """
    fcf = as_vector(free_cash_flows, "free_cash_flows")
    require_open_unit_interval("discount_rate", discount_rate)

    n = fcf.size
    discount = (1.0 + discount_rate) ** -np.arange(1, n + 1)
    pv_explicit = float(fcf @ discount)

    if terminal_multiple is not None and terminal_year_fcf is not None:
        terminal_value = terminal_year_fcf * terminal_multiple
    else:
        _require_growth_below(terminal_growth_rate, discount_rate, "terminal growth rate")
        terminal_value = fcf[-1] * (1.0 + terminal_growth_rate) / (discount_rate - terminal_growth_rate)

    return pv_explicit + float(terminal_value * discount[-1])


def equity_value(enterprise_value: float, debt: float, cash: float, minority_interest: float = 0.0) -> float:
    return enterprise_value - debt + cash - minority_interest


def value_per_share(equity: float, shares_outstanding: float) -> float:
    if shares_outstanding <= 0:
        raise MathematicallyUndefined(f"shares_outstanding must be > 0, got {shares_outstanding!r}")
    return equity / shares_outstanding


def wacc(equity: float, debt: float, cost_of_equity: float, cost_of_debt: float, tax_rate: float) -> float:
    """E/V * Re + D/V * Rd * (1 - t)"""
    total = equity + debt
    if total == 0:
        raise MathematicallyUndefined("equity + debt is 0; WACC undefined")
    return (equity / total) * cost_of_equity + (debt / total) * cost_of_debt * (1.0 - tax_rate)


# ---------- Dividend discount models ----------

def zero_growth_ddm(dividend: float, discount_rate: float) -> float:
    require_open_unit_interval("discount_rate", discount_rate)
    require_positive(dividend=dividend)
    return dividend / discount_rate


def constant_growth_ddm(current_dividend: float, growth_rate: float, discount_rate: float) -> float:
    """D0 (1 + g) / (r - g)"""
    require_open_unit_interval("discount_rate", discount_rate)
    _require_growth_below(growth_rate, discount_rate)
    require_positive(current_dividend=current_dividend)
    return current_dividend * (1.0 + growth_rate) / (discount_rate - growth_rate)


def _grow_and_discount(dividend: float, rates, discount_rate: float, start_year: int = 0):
    """Compound ``dividend`` through ``rates`` year by year; returns (pv, final dividend)."""
    pv = 0.0
    for offset, g in enumerate(rates, start=1):
        dividend *= 1.0 + g
        pv += dividend / (1.0 + discount_rate) ** (start_year + offset)
    return pv, dividend


def _terminal_pv(dividend: float, stable_growth_rate: float, discount_rate: float, year: int) -> float:
    terminal = dividend * (1.0 + stable_growth_rate) / (discount_rate - stable_growth_rate)
    return terminal / (1.0 + discount_rate) ** year


def two_stage_ddm(
    current_dividend: float,
    high_growth_rate: float,
    high_growth_years: int,
    stable_growth_rate: float,
    discount_rate: float,
) -> float:
    """High growth for ``high_growth_years``, then a Gordon terminal value."""
    require_open_unit_interval("discount_rate", discount_rate)
    _require_growth_below(high_growth_rate, discount_rate, "high growth rate")
    _require_growth_below(stable_growth_rate, discount_rate, "stable growth rate")
    require_positive(current_dividend=current_dividend, high_growth_years=high_growth_years)

    years = int(high_growth_years)
    pv, dividend = _grow_and_discount(current_dividend, [high_growth_rate] * years, discount_rate)
    return pv + _terminal_pv(dividend, stable_growth_rate, discount_rate, years)


def three_stage_ddm(
    current_dividend: float,
    high_growth_rate: float,
    high_growth_years: int,
    transition_years: int,
    stable_growth_rate: float,
    discount_rate: float,
) -> float:
    """
    High growth, then a linear fade to the stable rate, then a Gordon
    terminal value.

    During the transition the growth rate steps down by
    (high - stable) / (transition_years + 1) each year, so it never quite
    reaches the stable rate before the terminal stage.
    """
    require_open_unit_interval("discount_rate", discount_rate)
    _require_growth_below(stable_growth_rate, discount_rate, "stable growth rate")
    require_positive(
        current_dividend=current_dividend,
        high_growth_years=high_growth_years,
        transition_years=transition_years,
    )

    high_years, fade_years = int(high_growth_years), int(transition_years)
    step = (high_growth_rate - stable_growth_rate) / (fade_years + 1)

    pv_high, dividend = _grow_and_discount(current_dividend, [high_growth_rate] * high_years, discount_rate)
    fade_rates = [high_growth_rate - step * year for year in range(1, fade_years + 1)]
    pv_fade, dividend = _grow_and_discount(dividend, fade_rates, discount_rate, start_year=high_years)

    return pv_high + pv_fade + _terminal_pv(dividend, stable_growth_rate, discount_rate, high_years + fade_years)


def dividend_yield(dividend: float, price: float) -> float:
    require_positive(price=price)
    return dividend / price


def dividend_payout_ratio(dividend: float, earnings_per_share: float) -> float:
    require_positive(earnings_per_share=earnings_per_share)
    return dividend / earnings_per_share


# ---------- Relative valuation ----------

def _multiple(numerator: float, denominator: float, label: str) -> float:
    """numerator / denominator, undefined for a non-positive denominator."""
    if denominator <= 0:
        raise MathematicallyUndefined(f"{label} must be > 0 for this multiple, got {denominator!r}")
    return numerator / denominator


def pe_ratio(price: float, earnings_per_share: float) -> float:
    return _multiple(price, earnings_per_share, "earnings_per_share")


def value_by_pe(earnings_per_share: float, industry_pe: float) -> float:
    require_positive(industry_pe=industry_pe)
    return earnings_per_share * industry_pe


def pb_ratio(price: float, book_value_per_share: float) -> float:
    return _multiple(price, book_value_per_share, "book_value_per_share")


def value_by_pb(book_value_per_share: float, industry_pb: float) -> float:
    require_positive(industry_pb=industry_pb)
    return book_value_per_share * industry_pb


def ps_ratio(price: float, sales_per_share: float) -> float:
    return _multiple(price, sales_per_share, "sales_per_share")


def value_by_ps(sales_per_share: float, industry_ps: float) -> float:
    require_positive(industry_ps=industry_ps)
    return sales_per_share * industry_ps


def enterprise_value(market_cap: float, debt: float, cash: float, minority_interest: float = 0.0) -> float:
    """Market capitalisation plus net debt and minority interest; inverse of ``equity_value``."""
    return market_cap + debt - cash + minority_interest


def ev_ebitda(ev: float, ebitda: float) -> float:
    return _multiple(ev, ebitda, "ebitda")


def value_by_ev_ebitda(
    ebitda: float,
    industry_multiple: float,
    debt: float,
    cash: float,
    shares_outstanding: float,
) -> float:
    """
    Per-share value implied by an EV/EBITDA multiple.

    The implied enterprise value ``ebitda * industry_multiple`` is bridged to
    equity (less debt, plus cash) and spread over the share count.
    """
    require_positive(industry_multiple=industry_multiple)
    implied_ev = ebitda * industry_multiple
    return value_per_share(equity_value(implied_ev, debt, cash), shares_outstanding)


def peg_ratio(pe: float, growth_rate: float) -> float:
    """P/E divided by the earnings growth rate in percent (growth given as a decimal)."""
    return _multiple(pe, growth_rate * 100.0, "growth rate in percent")
