import numpy as np
import pytest
from scipy.stats import norm

from quant_valuation_engine.errors import InvalidDomainInput, MathematicallyUndefined
from quant_valuation_engine.risk_metrics import (
    annualized_return,
    annualized_volatility,
    conditional_var,
    cumulative_return,
    max_drawdown,
    parametric_var,
    sharpe_ratio,
    simple_return,
    value_at_risk,
    volatility,
)


@pytest.fixture(scope="module")
def sample_returns():
    return np.array([-0.05, -0.03, -0.01, 0.01, 0.02, 0.03, 0.04, 0.05])


def test_returns():
    assert simple_return(100.0, 110.0) == pytest.approx(0.1)
    with pytest.raises(MathematicallyUndefined):
        simple_return(0.0, 10.0)

    assert cumulative_return([0.1, -0.1]) == pytest.approx(1.1 * 0.9 - 1)
    assert cumulative_return([]) == 0.0
    assert annualized_return([0.01, 0.01], 12) == pytest.approx(1.01 ** 12 - 1)


def test_volatility(sample_returns):
    assert volatility(sample_returns) == pytest.approx(np.std(sample_returns, ddof=1))
    assert volatility([0.03]) == 0.0
    assert annualized_volatility(sample_returns, 252) == pytest.approx(np.std(sample_returns, ddof=1) * np.sqrt(252))
    with pytest.raises(InvalidDomainInput):
        volatility([])


def test_sharpe_ratio(sample_returns):
    expected = (sample_returns.mean() - 0.001) / np.std(sample_returns, ddof=1)
    assert sharpe_ratio(sample_returns, 0.001) == pytest.approx(expected)
    assert sharpe_ratio([0.01, 0.01, 0.01]) == 0.0


def test_max_drawdown():
    assert max_drawdown([100, 150, 140, 130, 145, 120]) == pytest.approx(0.2)
    assert max_drawdown([100, 101, 102]) == 0.0
    assert max_drawdown([100]) == 0.0
    with pytest.raises(InvalidDomainInput):
        max_drawdown([100, 0, 50])


def test_historical_var(sample_returns):
    assert value_at_risk(sample_returns, 0.95) == pytest.approx(0.05)
    assert value_at_risk(sample_returns[::-1], 0.95) == pytest.approx(0.05), "input order must not matter"
    assert value_at_risk(sample_returns, 0.75) == pytest.approx(0.01)


def test_conditional_var_is_tail_mean(sample_returns):
    assert conditional_var(sample_returns, 0.95) == pytest.approx(0.05)
    # floor(0.25 * 8) = 2: tail is the three worst returns
    assert conditional_var(sample_returns, 0.75) == pytest.approx(0.03)
    assert conditional_var(sample_returns, 0.75) >= value_at_risk(sample_returns, 0.75)


def test_parametric_var(sample_returns):
    mu, sigma = sample_returns.mean(), np.std(sample_returns, ddof=1)
    assert parametric_var(sample_returns, 0.99) == pytest.approx(-(mu + sigma * norm.ppf(0.01)))


@pytest.mark.parametrize("confidence", [0.0, 1.0, 1.5, -0.2])
def test_confidence_out_of_range(sample_returns, confidence):
    for fn in (value_at_risk, conditional_var, parametric_var):
        with pytest.raises(InvalidDomainInput):
            fn(sample_returns, confidence)
