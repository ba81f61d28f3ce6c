import pytest

from quant_valuation_engine.errors import InvalidDomainInput, MathematicallyUndefined
from quant_valuation_engine.valuation import (
    constant_growth_ddm,
    dcf_value,
    dividend_payout_ratio,
    dividend_yield,
    enterprise_value,
    equity_value,
    ev_ebitda,
    gordon_growth_value,
    pb_ratio,
    pe_ratio,
    peg_ratio,
    ps_ratio,
    three_stage_ddm,
    two_stage_ddm,
    value_by_ev_ebitda,
    value_by_pb,
    value_by_pe,
    value_by_ps,
    value_per_share,
    wacc,
    zero_growth_ddm,
)


def test_dcf_flat_cash_flows_equal_perpetuity():
    # 5 explicit years + zero-growth terminal value is just a level perpetuity
    assert dcf_value([100.0] * 5, 0.10) == pytest.approx(1000.0)


def test_dcf_terminal_growth_and_multiple():
    fcf = [50.0, 60.0, 70.0]
    r, g = 0.09, 0.02
    explicit = sum(cf / (1 + r) ** (t + 1) for t, cf in enumerate(fcf))

    gordon = 70.0 * (1 + g) / (r - g) / (1 + r) ** 3
    assert dcf_value(fcf, r, terminal_growth_rate=g) == pytest.approx(explicit + gordon)

    multiple = 80.0 * 12.0 / (1 + r) ** 3
    assert dcf_value(fcf, r, terminal_multiple=12.0, terminal_year_fcf=80.0) == pytest.approx(explicit + multiple)

    # multiple without a terminal-year cash flow falls back to Gordon growth
    assert dcf_value(fcf, r, terminal_growth_rate=g, terminal_multiple=12.0) == pytest.approx(explicit + gordon)


def test_dcf_validation():
    with pytest.raises(InvalidDomainInput):
        dcf_value([], 0.1)
    with pytest.raises(InvalidDomainInput):
        dcf_value([100.0], 1.2)
    with pytest.raises(MathematicallyUndefined):
        dcf_value([100.0], 0.05, terminal_growth_rate=0.05)


def test_enterprise_to_equity_bridge():
    eq = equity_value(1200.0, debt=300.0, cash=50.0, minority_interest=25.0)
    assert eq == pytest.approx(925.0)
    assert value_per_share(eq, 100.0) == pytest.approx(9.25)
    with pytest.raises(MathematicallyUndefined):
        value_per_share(eq, 0.0)


def test_wacc():
    assert wacc(600.0, 400.0, 0.10, 0.05, 0.25) == pytest.approx(0.6 * 0.10 + 0.4 * 0.05 * 0.75)
    with pytest.raises(MathematicallyUndefined):
        wacc(0.0, 0.0, 0.1, 0.05, 0.2)


def test_gordon_growth():
    assert gordon_growth_value(5.0, 0.03, 0.08) == pytest.approx(100.0)
    with pytest.raises(MathematicallyUndefined):
        gordon_growth_value(5.0, 0.08, 0.08)


def test_single_stage_ddm():
    assert zero_growth_ddm(2.0, 0.10) == pytest.approx(20.0)
    assert constant_growth_ddm(2.0, 0.05, 0.10) == pytest.approx(42.0)
    with pytest.raises(InvalidDomainInput):
        zero_growth_ddm(2.0, 0.0)
    with pytest.raises(MathematicallyUndefined):
        constant_growth_ddm(2.0, 0.12, 0.10)


def test_two_stage_ddm():
    d0, g1, n, g2, r = 1.5, 0.08, 4, 0.03, 0.10
    pv, d = 0.0, d0
    for year in range(1, n + 1):
        d *= 1 + g1
        pv += d / (1 + r) ** year
    pv += d * (1 + g2) / (r - g2) / (1 + r) ** n

    assert two_stage_ddm(d0, g1, n, g2, r) == pytest.approx(pv)


def test_multi_stage_collapse_to_constant_growth():
    base = constant_growth_ddm(2.0, 0.04, 0.09)
    assert two_stage_ddm(2.0, 0.04, 5, 0.04, 0.09) == pytest.approx(base)
    assert three_stage_ddm(2.0, 0.04, 5, 3, 0.04, 0.09) == pytest.approx(base)


def test_three_stage_fades_linearly():
    d0, g_hi, n_hi, n_fade, g_st, r = 1.0, 0.12, 2, 3, 0.04, 0.10
    step = (g_hi - g_st) / (n_fade + 1)
    rates = [g_hi] * n_hi + [g_hi - step * k for k in range(1, n_fade + 1)]

    pv, d = 0.0, d0
    for year, g in enumerate(rates, start=1):
        d *= 1 + g
        pv += d / (1 + r) ** year
    pv += d * (1 + g_st) / (r - g_st) / (1 + r) ** (n_hi + n_fade)

    assert three_stage_ddm(d0, g_hi, n_hi, n_fade, g_st, r) == pytest.approx(pv)


def test_dividend_ratios():
    assert dividend_yield(2.0, 50.0) == pytest.approx(0.04)
    assert dividend_payout_ratio(2.0, 5.0) == pytest.approx(0.4)
    with pytest.raises(InvalidDomainInput):
        dividend_yield(2.0, 0.0)
    with pytest.raises(InvalidDomainInput):
        dividend_payout_ratio(2.0, -1.0)


def test_price_multiples_and_implied_values():
    assert pe_ratio(50.0, 2.5) == pytest.approx(20.0)
    assert pb_ratio(50.0, 25.0) == pytest.approx(2.0)
    assert ps_ratio(50.0, 10.0) == pytest.approx(5.0)

    assert value_by_pe(2.5, 18.0) == pytest.approx(45.0)
    assert value_by_pb(25.0, 1.5) == pytest.approx(37.5)
    assert value_by_ps(10.0, 4.0) == pytest.approx(40.0)

    # implied value at the firm's own multiple recovers the price
    assert value_by_pe(2.5, pe_ratio(50.0, 2.5)) == pytest.approx(50.0)


@pytest.mark.parametrize("fn", [pe_ratio, pb_ratio, ps_ratio])
def test_price_multiples_undefined_for_non_positive_base(fn):
    for base in (0.0, -1.5):
        with pytest.raises(MathematicallyUndefined):
            fn(50.0, base)


def test_implied_values_reject_non_positive_multiples():
    with pytest.raises(InvalidDomainInput):
        value_by_pe(2.5, 0.0)
    with pytest.raises(InvalidDomainInput):
        value_by_pb(25.0, -1.0)
    with pytest.raises(InvalidDomainInput):
        value_by_ps(10.0, 0.0)
    with pytest.raises(InvalidDomainInput):
        value_by_ev_ebitda(100.0, 0.0, 50.0, 10.0, 20.0)


def test_enterprise_value_multiples():
    ev = enterprise_value(1000.0, debt=300.0, cash=100.0, minority_interest=20.0)
    assert ev == pytest.approx(1220.0)
    assert equity_value(ev, 300.0, 100.0, 20.0) == pytest.approx(1000.0), "EV and equity bridges invert"

    assert ev_ebitda(ev, 122.0) == pytest.approx(10.0)
    with pytest.raises(MathematicallyUndefined):
        ev_ebitda(ev, 0.0)

    # (150 * 8 - 400 + 100) / 50
    assert value_by_ev_ebitda(150.0, 8.0, debt=400.0, cash=100.0, shares_outstanding=50.0) == pytest.approx(18.0)
    with pytest.raises(MathematicallyUndefined):
        value_by_ev_ebitda(150.0, 8.0, 400.0, 100.0, 0.0)


def test_peg_ratio_uses_percent_growth():
    assert peg_ratio(20.0, 0.10) == pytest.approx(2.0)
    assert peg_ratio(15.0, 0.15) == pytest.approx(1.0)
    with pytest.raises(MathematicallyUndefined):
        peg_ratio(20.0, 0.0)
