"""
Mean-variance optimizers driven by random local search.

There is no QP solver here. Every variant runs the same loop: start from
equal weights, perturb each weight by U(-step/2, +step/2), renormalize,
drop candidates that break the constraints, and keep a candidate only if it
improves the variant's objective. Results are heuristic, depend on the
random stream, and are not guaranteed optimal. Pass ``rng`` (a seed or a
numpy Generator) for reproducible runs.
"""
from __future__ import annotations

import logging
import math
from typing import Callable, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from .config import OptimizerConfig
from .errors import InvalidDomainInput
from .portfolio import PortfolioResult, WeightConstraints, normalize_weights
from .utils import ArrayLike, as_square_matrix, as_vector

logger = logging.getLogger(__name__)

RngLike = Union[None, int, np.random.Generator]

_REPAIR_ROUNDS = 100


def _resolve_rng(rng: RngLike) -> np.random.Generator:
    if isinstance(rng, np.random.Generator):
        return rng
    return np.random.default_rng(rng)


def _validate_inputs(returns: Optional[ArrayLike], covariance) -> Tuple[Optional[np.ndarray], np.ndarray]:
    cov = as_square_matrix(covariance, "covariance")
    if returns is None:
        return None, cov
    r = as_vector(returns, "returns")
    if len(r) != cov.shape[0]:
        raise InvalidDomainInput(f"{len(r)} expected returns for a {cov.shape[0]}x{cov.shape[0]} covariance matrix")
    return r, cov


def _feasible(w: np.ndarray, lo: np.ndarray, hi: np.ndarray, tol: float) -> bool:
    return abs(w.sum() - 1.0) <= tol and bool(np.all(w >= lo)) and bool(np.all(w <= hi))


def _starting_weights(n: int, lo: np.ndarray, hi: np.ndarray, tol: float) -> np.ndarray:
    """Equal weights, pushed into the bounds by alternating clip and renormalize if needed."""
    w = np.full(n, 1.0 / n)
    for _ in range(_REPAIR_ROUNDS):
        w = np.clip(w, lo, hi)
        if _feasible(w, lo, hi, tol):
            return w
        w = normalize_weights(w)
        if _feasible(w, lo, hi, tol):
            return w
    raise InvalidDomainInput("Constraints admit no feasible starting portfolio")


def _random_search(
    n: int,
    constraints: Optional[WeightConstraints],
    rng: RngLike,
    config: Optional[OptimizerConfig],
    score: Callable[[np.ndarray], tuple],
    improves: Callable[[tuple, tuple], bool],
) -> Tuple[np.ndarray, int]:
    config = config or OptimizerConfig()
    gen = _resolve_rng(rng)

    if constraints is not None:
        lo, hi = constraints.bounds(n)
    else:
        lo, hi = np.full(n, -np.inf), np.full(n, np.inf)
    tol = config.weight_tolerance

    best = _starting_weights(n, lo, hi, tol)
    best_state = score(best)
    accepted = 0

    for _ in range(config.iterations):
        candidate = best + (gen.random(n) - 0.5) * config.step_size
        candidate = candidate / candidate.sum()

        if not _feasible(candidate, lo, hi, tol):
            continue

        state = score(candidate)
        if improves(state, best_state):
            best, best_state = candidate, state
            accepted += 1

    logger.debug("Random search: %d/%d moves accepted", accepted, config.iterations)
    return best, accepted


def _build_result(
    w: np.ndarray,
    returns: Optional[np.ndarray],
    cov: np.ndarray,
    accepted: int,
    risk_free_rate: Optional[float] = None,
) -> PortfolioResult:
    variance = float(w @ cov @ w)
    volatility = math.sqrt(max(variance, 0.0))
    expected = float(returns @ w) if returns is not None else 0.0

    sharpe = None
    if risk_free_rate is not None:
        sharpe = 0.0 if volatility == 0 else (expected - risk_free_rate) / volatility

    return PortfolioResult(
        weights=w,
        expected_return=expected,
        variance=variance,
        volatility=volatility,
        sharpe_ratio=sharpe,
        accepted_moves=accepted,
    )


def max_sharpe_portfolio(
    returns: ArrayLike,
    covariance,
    risk_free_rate: float = 0.0,
    constraints: Optional[WeightConstraints] = None,
    rng: RngLike = None,
    config: Optional[OptimizerConfig] = None,
) -> PortfolioResult:
    r, cov = _validate_inputs(returns, covariance)

    def score(w):
        vol = math.sqrt(max(float(w @ cov @ w), 0.0))
        return (0.0 if vol == 0 else (float(r @ w) - risk_free_rate) / vol,)

    w, accepted = _random_search(len(r), constraints, rng, config, score, lambda new, old: new[0] > old[0])
    return _build_result(w, r, cov, accepted, risk_free_rate)


def min_variance_portfolio(
    covariance,
    constraints: Optional[WeightConstraints] = None,
    returns: Optional[ArrayLike] = None,
    rng: RngLike = None,
    config: Optional[OptimizerConfig] = None,
) -> PortfolioResult:
    """Global minimum variance. ``expected_return`` is 0 unless ``returns`` is given."""
    r, cov = _validate_inputs(returns, covariance)

    w, accepted = _random_search(
        cov.shape[0], constraints, rng, config,
        lambda w: (float(w @ cov @ w),),
        lambda new, old: new[0] < old[0],
    )
    return _build_result(w, r, cov, accepted)


def target_return_portfolio(
    returns: ArrayLike,
    covariance,
    target_return: float,
    constraints: Optional[WeightConstraints] = None,
    rng: RngLike = None,
    config: Optional[OptimizerConfig] = None,
) -> PortfolioResult:
    """
    Minimum variance near ``target_return``.

    A move is kept only if it is strictly closer to the target return AND has
    strictly lower variance. This greedy dual rule can reject moves that trade
    a little of one criterion for a lot of the other.
    """
    r, cov = _validate_inputs(returns, covariance)

    def score(w):
        return abs(float(r @ w) - target_return), float(w @ cov @ w)

    def improves(new, old):
        return new[0] < old[0] and new[1] < old[1]

    w, accepted = _random_search(len(r), constraints, rng, config, score, improves)
    return _build_result(w, r, cov, accepted)


def target_risk_portfolio(
    returns: ArrayLike,
    covariance,
    target_risk: float,
    constraints: Optional[WeightConstraints] = None,
    rng: RngLike = None,
    config: Optional[OptimizerConfig] = None,
) -> PortfolioResult:
    """Maximum return near ``target_risk`` (a volatility; compared as variance)."""
    if target_risk < 0:
        raise InvalidDomainInput(f"target_risk must be non-negative, got {target_risk}")
    r, cov = _validate_inputs(returns, covariance)
    target_variance = target_risk * target_risk

    def score(w):
        return abs(float(w @ cov @ w) - target_variance), float(r @ w)

    def improves(new, old):
        return new[0] < old[0] and new[1] > old[1]

    w, accepted = _random_search(len(r), constraints, rng, config, score, improves)
    return _build_result(w, r, cov, accepted)


def optimize_portfolio(
    returns: ArrayLike,
    covariance,
    target_return: Optional[float] = None,
    target_risk: Optional[float] = None,
    risk_free_rate: float = 0.0,
    constraints: Optional[WeightConstraints] = None,
    rng: RngLike = None,
    config: Optional[OptimizerConfig] = None,
) -> PortfolioResult:
    """Target return, target risk, or (by default) maximum Sharpe."""
    if target_return is not None and target_risk is not None:
        raise InvalidDomainInput("Specify target_return or target_risk, not both")

    if target_return is not None:
        return target_return_portfolio(returns, covariance, target_return, constraints, rng, config)
    if target_risk is not None:
        return target_risk_portfolio(returns, covariance, target_risk, constraints, rng, config)
    return max_sharpe_portfolio(returns, covariance, risk_free_rate, constraints, rng, config)


def efficient_frontier(
    returns: ArrayLike,
    covariance,
    num_portfolios: int = 20,
    constraints: Optional[WeightConstraints] = None,
    rng: RngLike = None,
    config: Optional[OptimizerConfig] = None,
) -> List[PortfolioResult]:
    """Target-return optimizer at equally spaced targets between the lowest and highest asset return."""
    if num_portfolios < 2:
        raise InvalidDomainInput(f"num_portfolios must be at least 2, got {num_portfolios}")
    r, _ = _validate_inputs(returns, covariance)
    gen = _resolve_rng(rng)

    targets = np.linspace(r.min(), r.max(), int(num_portfolios))
    logger.debug("Efficient frontier over %d targets in [%.4f, %.4f]", len(targets), targets[0], targets[-1])

    return [
        target_return_portfolio(r, covariance, float(t), constraints, gen, config)
        for t in targets
    ]


def frontier_table(portfolios: Sequence[PortfolioResult], asset_names: Optional[Sequence[str]] = None) -> pd.DataFrame:
    if not portfolios:
        return pd.DataFrame(columns=["expected_return", "volatility", "variance"])

    n = len(portfolios[0].weights)
    names = list(asset_names) if asset_names is not None else [f"w{i}" for i in range(n)]
    if len(names) != n:
        raise InvalidDomainInput(f"{len(names)} asset names for {n} weights")

    summary = pd.DataFrame(
        {
            "expected_return": [p.expected_return for p in portfolios],
            "volatility": [p.volatility for p in portfolios],
            "variance": [p.variance for p in portfolios],
        }
    )
    weights = pd.DataFrame(np.vstack([p.weights for p in portfolios]), columns=names)
    return pd.concat([summary, weights], axis=1)
