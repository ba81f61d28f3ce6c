import numpy as np
import pytest

from quant_valuation_engine.config import OptimizerConfig
from quant_valuation_engine.errors import InvalidDomainInput
from quant_valuation_engine.optimization import (
    efficient_frontier,
    frontier_table,
    max_sharpe_portfolio,
    min_variance_portfolio,
    optimize_portfolio,
    target_return_portfolio,
    target_risk_portfolio,
)
from quant_valuation_engine.portfolio import WeightConstraints, check_weight_constraints, sharpe_ratio


@pytest.fixture(scope="module")
def market():
    returns = np.array([0.08, 0.12, 0.05])
    cov = np.array(
        [
            [0.040, 0.006, 0.002],
            [0.006, 0.090, 0.004],
            [0.002, 0.004, 0.010],
        ]
    )
    return returns, cov


@pytest.fixture(scope="module")
def fast():
    return OptimizerConfig(iterations=2000)


@pytest.fixture(scope="module")
def equal_weights():
    return np.full(3, 1.0 / 3.0)


def test_max_sharpe_improves_on_equal_weights(market, fast, equal_weights):
    returns, cov = market
    res = max_sharpe_portfolio(returns, cov, risk_free_rate=0.02, rng=7, config=fast)

    assert abs(res.weights.sum() - 1.0) <= 0.01
    assert res.sharpe_ratio >= sharpe_ratio(returns, cov, equal_weights, 0.02)
    assert res.accepted_moves > 0
    assert res.volatility == pytest.approx(np.sqrt(res.variance))


def test_min_variance_improves_on_equal_weights(market, fast, equal_weights):
    returns, cov = market
    res = min_variance_portfolio(cov, rng=11, config=fast)

    assert res.variance <= float(equal_weights @ cov @ equal_weights)
    assert res.expected_return == 0.0, "no returns supplied"
    assert res.sharpe_ratio is None

    with_returns = min_variance_portfolio(cov, returns=returns, rng=11, config=fast)
    assert with_returns.expected_return == pytest.approx(float(returns @ with_returns.weights))


def test_seeded_runs_are_reproducible(market, fast):
    returns, cov = market
    a = max_sharpe_portfolio(returns, cov, rng=42, config=fast)
    b = max_sharpe_portfolio(returns, cov, rng=np.random.default_rng(42), config=fast)
    np.testing.assert_array_equal(a.weights, b.weights)


def test_constraints_are_respected(market, fast):
    returns, cov = market
    constraints = WeightConstraints(long_only=True, max_weight=0.5)

    for res in (
        max_sharpe_portfolio(returns, cov, constraints=constraints, rng=1, config=fast),
        min_variance_portfolio(cov, constraints=constraints, rng=2, config=fast),
        target_return_portfolio(returns, cov, 0.09, constraints=constraints, rng=3, config=fast),
        target_risk_portfolio(returns, cov, 0.15, constraints=constraints, rng=4, config=fast),
    ):
        assert check_weight_constraints(res.weights, constraints), f"constraint breach: {res.weights}"


def test_infeasible_start_is_repaired(market, fast):
    returns, cov = market
    constraints = WeightConstraints(min_weights=[0.5, 0.0, 0.0], long_only=True)
    res = max_sharpe_portfolio(returns, cov, constraints=constraints, rng=5, config=fast)
    assert check_weight_constraints(res.weights, constraints)


def test_unsatisfiable_constraints_rejected(market, fast):
    returns, cov = market
    with pytest.raises(InvalidDomainInput):
        max_sharpe_portfolio(returns, cov, constraints=WeightConstraints(max_weight=0.2), rng=0, config=fast)


def test_target_return_moves_toward_target(market, fast, equal_weights):
    returns, cov = market
    target = 0.10
    res = target_return_portfolio(returns, cov, target, rng=9, config=fast)
    start_gap = abs(float(returns @ equal_weights) - target)
    assert abs(res.expected_return - target) <= start_gap
    # every accepted move also lowered variance
    assert res.variance <= float(equal_weights @ cov @ equal_weights)


def test_target_risk_moves_toward_target_without_giving_up_return(market, fast, equal_weights):
    returns, cov = market
    target = 0.15
    res = target_risk_portfolio(returns, cov, target, rng=4, config=fast)

    start_gap = abs(float(equal_weights @ cov @ equal_weights) - target ** 2)
    assert abs(res.variance - target ** 2) <= start_gap
    assert res.expected_return >= float(returns @ equal_weights)


def test_per_asset_upper_bounds_hold(market, fast):
    returns, cov = market
    caps = np.array([0.4, 0.5, 0.6])
    constraints = WeightConstraints(max_weights=list(caps))

    for res in (
        max_sharpe_portfolio(returns, cov, constraints=constraints, rng=12, config=fast),
        min_variance_portfolio(cov, constraints=constraints, rng=13, config=fast),
        target_return_portfolio(returns, cov, 0.10, constraints=constraints, rng=14, config=fast),
    ):
        assert np.all(res.weights <= caps), f"upper bound breached: {res.weights}"
        assert abs(res.weights.sum() - 1.0) <= 0.01


def test_target_risk_validation(market):
    returns, cov = market
    with pytest.raises(InvalidDomainInput):
        target_risk_portfolio(returns, cov, -0.1)


def test_optimize_portfolio_dispatch(market, fast):
    returns, cov = market
    default = optimize_portfolio(returns, cov, risk_free_rate=0.01, rng=3, config=fast)
    direct = max_sharpe_portfolio(returns, cov, 0.01, rng=3, config=fast)
    np.testing.assert_array_equal(default.weights, direct.weights)

    with pytest.raises(InvalidDomainInput):
        optimize_portfolio(returns, cov, target_return=0.1, target_risk=0.2)


def test_input_shape_validation(market):
    returns, cov = market
    with pytest.raises(InvalidDomainInput):
        max_sharpe_portfolio(returns[:2], cov)
    with pytest.raises(InvalidDomainInput):
        min_variance_portfolio(cov[:, :2])


def test_efficient_frontier(market):
    returns, cov = market
    cfg = OptimizerConfig(iterations=300)
    frontier = efficient_frontier(returns, cov, num_portfolios=5, rng=21, config=cfg)

    assert len(frontier) == 5
    for p in frontier:
        assert abs(p.weights.sum() - 1.0) <= 0.01

    table = frontier_table(frontier, ["A", "B", "C"])
    assert list(table.columns) == ["expected_return", "volatility", "variance", "A", "B", "C"]
    assert len(table) == 5

    with pytest.raises(InvalidDomainInput):
        efficient_frontier(returns, cov, num_portfolios=1)
