from __future__ import annotations

from typing import Optional, Sequence

import pandas as pd

from .bonds import Bond, convexity, estimate_price_change, modified_duration
from .config import OptionConfig
from .options import OptionContract


def run_yield_scenarios(
    bond: Bond,
    yield_rate: float,
    shifts_bp: Sequence[float] = (-50, -25, 25, 50),
) -> pd.DataFrame:
    """
    Parallel yield shocks on a single bond.

    Each row compares the full reprice at the shocked yield with the
    duration/convexity estimate of the same move.
    """
    args = (bond.face, bond.coupon_rate, yield_rate, bond.years_to_maturity, bond.freq)
    base = bond.price(yield_rate)
    mod_dur = modified_duration(*args)
    convex = convexity(*args)

    rows = []
    for bp in shifts_bp:
        dy = bp / 10000.0
        shocked = bond.price(yield_rate + dy)
        actual = (shocked - base) / base
        estimated = estimate_price_change(mod_dur, convex, dy)

        rows.append(
            {
                "scenario": f"PAR_{bp:+g}bp",
                "shift_bp": bp,
                "base_price": base,
                "shocked_price": shocked,
                "pnl": shocked - base,
                "actual_pct_change": actual,
                "estimated_pct_change": estimated,
                "estimation_error": estimated - actual,
            }
        )

    return pd.DataFrame(rows)


def run_option_spot_vol_grid(
    contract: OptionContract,
    spot_shocks: Sequence[float] = (-0.10, -0.05, 0.0, 0.05, 0.10),
    vol_shocks: Sequence[float] = (-0.05, 0.0, 0.05),
    model: str = "black_scholes",
    config: Optional[OptionConfig] = None,
) -> pd.DataFrame:
    """
    Reprice ``contract`` over a grid of relative spot shocks and absolute
    volatility shocks.

    Returns one row per (spot_shock, vol_shock) pair; pivot on those two
    columns for a P&L surface.
    """
    base = contract.price(model, config)

    rows = []
    for s in spot_shocks:
        for v in vol_shocks:
            shocked = contract.with_market(spot=contract.spot * (1.0 + s), volatility=contract.volatility + v)
            px = shocked.price(model, config)

            rows.append(
                {
                    "spot_shock": s,
                    "vol_shock": v,
                    "spot": shocked.spot,
                    "volatility": shocked.volatility,
                    "base_price": base,
                    "shocked_price": px,
                    "pnl": px - base,
                }
            )

    out = pd.DataFrame(rows)
    return out.sort_values(["spot_shock", "vol_shock"]).reset_index(drop=True)
