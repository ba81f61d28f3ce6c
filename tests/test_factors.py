import numpy as np
import pytest

from quant_valuation_engine.errors import InvalidDomainInput, MathematicallyUndefined
from quant_valuation_engine.factors import (
    beta,
    capm_expected_return,
    capm_regression,
    fama_french_3factor,
    fama_french_5factor,
    jensens_alpha,
    market_risk_premium,
    treynor_ratio,
)
from quant_valuation_engine.statistics import covariance


@pytest.fixture(scope="module")
def factor_returns():
    rng = np.random.default_rng(99)
    mkt, smb, hml, rmw, cma = rng.normal(0.0, 0.03, size=(5, 36))
    return mkt, smb, hml, rmw, cma


def test_capm_formulas():
    assert capm_expected_return(0.03, 0.08, 1.2) == pytest.approx(0.09)
    assert market_risk_premium(0.08, 0.03) == pytest.approx(0.05)
    assert jensens_alpha(0.11, 0.09) == pytest.approx(0.02)
    assert treynor_ratio(0.11, 0.03, 0.8) == pytest.approx(0.1)
    with pytest.raises(MathematicallyUndefined):
        treynor_ratio(0.11, 0.03, 0.0)


def test_beta_is_cov_over_var(factor_returns):
    mkt = factor_returns[0]
    stock = 0.001 + 1.3 * mkt + 0.5 * factor_returns[1]
    assert beta(stock, mkt) == pytest.approx(covariance(stock, mkt) / covariance(mkt, mkt))


def test_capm_regression_recovers_alpha_beta(factor_returns):
    mkt = factor_returns[0]
    res = capm_regression(0.002 + 0.9 * mkt, mkt)
    assert res.alpha == pytest.approx(0.002, abs=1e-10)
    assert res.beta == pytest.approx(0.9)
    assert res.r_squared == pytest.approx(1.0)


def test_flat_market_has_no_beta():
    with pytest.raises(MathematicallyUndefined):
        beta([0.01, 0.02, -0.01, 0.03], [0.0, 0.0, 0.0, 0.0])


def test_fama_french_3factor(factor_returns):
    mkt, smb, hml, _, _ = factor_returns
    stock = 0.001 + 1.1 * mkt + 0.4 * smb - 0.3 * hml
    res = fama_french_3factor(stock, mkt, smb, hml)

    assert res.alpha == pytest.approx(0.001, abs=1e-9)
    assert (res.beta, res.smb, res.hml) == pytest.approx((1.1, 0.4, -0.3))
    assert res.r_squared == pytest.approx(1.0)


def test_fama_french_5factor(factor_returns):
    mkt, smb, hml, rmw, cma = factor_returns
    stock = -0.0005 + 0.95 * mkt + 0.2 * smb + 0.1 * hml + 0.25 * rmw - 0.15 * cma
    res = fama_french_5factor(stock, mkt, smb, hml, rmw, cma)

    assert res.alpha == pytest.approx(-0.0005, abs=1e-9)
    assert (res.beta, res.smb, res.hml, res.rmw, res.cma) == pytest.approx((0.95, 0.2, 0.1, 0.25, -0.15))


def test_minimum_observations(factor_returns):
    mkt, smb, hml, rmw, cma = (f[:5] for f in factor_returns)
    with pytest.raises(InvalidDomainInput):
        fama_french_3factor(mkt[:3], mkt[:3], smb[:3], hml[:3])
    with pytest.raises(InvalidDomainInput):
        fama_french_5factor(mkt, mkt, smb, hml, rmw, cma)
    with pytest.raises(InvalidDomainInput):
        fama_french_3factor(mkt, mkt[:4], smb, hml)
