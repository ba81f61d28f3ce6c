"""
Technical indicators over price and volume series.

Every indicator comes back aligned to its input: a pandas Series (or a
DataFrame for the multi-line indicators) that is NaN through the warm-up
window. Inputs may be lists, arrays or Series; a Series keeps its index.

Exponential averages are seeded with the simple mean of their first
``period`` values and then follow the recursive update. Wilder smoothing
(RSI, ATR) is the same recursion with alpha = 1 / period.
"""
from __future__ import annotations

import numpy as np
import pandas as pd
from numpy.lib.stride_tricks import sliding_window_view

from .errors import InvalidDomainInput
from .utils import ArrayLike, as_vector, require_positive, require_same_length


def _aligned(*inputs):
    """Coerce (values, name) pairs to equal-length Series sharing the first input's index."""
    arrays = [as_vector(values, name) for values, name in inputs]
    require_same_length(*arrays, names=[name for _, name in inputs])
    first = inputs[0][0]
    index = first.index if isinstance(first, pd.Series) else None
    return [pd.Series(arr, index=index, name=name) for arr, (_, name) in zip(arrays, inputs)]


def _series(values: ArrayLike, name: str) -> pd.Series:
    return _aligned((values, name))[0]


def _check_period(period: int, available: int, label: str = "period") -> int:
    if period < 1 or int(period) != period:
        raise InvalidDomainInput(f"{label} must be a positive integer, got {period!r}")
    if period > available:
        raise InvalidDomainInput(f"{label} {period} needs more than the {available} observations available")
    return int(period)


def _ewm_path(first: float, rest: np.ndarray, alpha: float) -> np.ndarray:
    """x_0 = first, x_t = x_{t-1} + alpha * (rest_t - x_{t-1})."""
    return pd.Series(np.r_[first, rest]).ewm(alpha=alpha, adjust=False).mean().to_numpy()


def _seeded_average(values: pd.Series, period: int, alpha: float) -> pd.Series:
    """
    Recursive average over the non-NaN tail of ``values``, seeded with the
    mean of its first ``period`` valid points.
    """
    arr = values.to_numpy(dtype=float)
    valid = np.flatnonzero(~np.isnan(arr))
    if valid.size < period:
        raise InvalidDomainInput(f"period {period} needs more than the {valid.size} values available")

    out = np.full(arr.shape, np.nan)
    out[valid[period - 1:]] = _ewm_path(arr[valid[:period]].mean(), arr[valid[period:]], alpha)
    return pd.Series(out, index=values.index)


def _smooth_from(values: pd.Series, start: float, alpha: float) -> pd.Series:
    """Recursive average over the non-NaN values, starting from ``start``."""
    arr = values.to_numpy(dtype=float)
    valid = np.flatnonzero(~np.isnan(arr))

    out = np.full(arr.shape, np.nan)
    out[valid] = _ewm_path(start, arr[valid], alpha)[1:]
    return pd.Series(out, index=values.index)


# ---------- Moving averages ----------

def sma(prices: ArrayLike, period: int = 20) -> pd.Series:
    s = _series(prices, "prices")
    period = _check_period(period, len(s))
    return s.rolling(window=period).mean().rename("sma")


def ema(prices: ArrayLike, period: int = 20) -> pd.Series:
    """Exponential moving average, alpha = 2 / (period + 1), SMA-seeded."""
    s = _series(prices, "prices")
    period = _check_period(period, len(s))
    return _seeded_average(s, period, 2.0 / (period + 1)).rename("ema")


def wma(prices: ArrayLike, period: int = 20) -> pd.Series:
    """Linearly weighted moving average; the newest point carries weight ``period``."""
    s = _series(prices, "prices")
    period = _check_period(period, len(s))
    weights = np.arange(1, period + 1, dtype=float)
    return s.rolling(window=period).apply(lambda w: w @ weights / weights.sum(), raw=True).rename("wma")


def dema(prices: ArrayLike, period: int = 20) -> pd.Series:
    """2 * EMA - EMA(EMA). First value at index 2 * (period - 1)."""
    s = _series(prices, "prices")
    period = _check_period(period, len(s))
    alpha = 2.0 / (period + 1)

    first = _seeded_average(s, period, alpha)
    second = _seeded_average(first, period, alpha)
    return (2.0 * first - second).rename("dema")


def macd(prices: ArrayLike, fast_period: int = 12, slow_period: int = 26, signal_period: int = 9) -> pd.DataFrame:
    """
    MACD line (fast EMA - slow EMA), its signal EMA and the histogram.

    The signal line is seeded from the first ``signal_period`` MACD values,
    so it starts ``signal_period - 1`` points after the MACD line.
    """
    s = _series(prices, "prices")
    if fast_period >= slow_period:
        raise InvalidDomainInput(f"fast_period ({fast_period}) must be below slow_period ({slow_period})")
    slow_period = _check_period(slow_period, len(s), "slow_period")
    fast_period = _check_period(fast_period, len(s), "fast_period")
    signal_period = _check_period(signal_period, len(s) - slow_period + 1, "signal_period")

    line = (
        _seeded_average(s, fast_period, 2.0 / (fast_period + 1))
        - _seeded_average(s, slow_period, 2.0 / (slow_period + 1))
    )
    signal = _seeded_average(line, signal_period, 2.0 / (signal_period + 1))
    return pd.DataFrame({"macd": line, "signal": signal, "histogram": line - signal})


# ---------- Oscillators ----------

def rsi(prices: ArrayLike, period: int = 14) -> pd.Series:
    """
    Wilder's relative strength index.

    Average gain and loss start as simple means over the first ``period``
    changes, so the first value sits at index ``period``. RSI is 100 whenever
    the average loss is 0.
    """
    s = _series(prices, "prices")
    period = _check_period(period, len(s) - 1)

    delta = s.diff()
    avg_gain = _seeded_average(delta.clip(lower=0.0), period, 1.0 / period)
    avg_loss = _seeded_average((-delta).clip(lower=0.0), period, 1.0 / period)

    out = 100.0 - 100.0 / (1.0 + avg_gain / avg_loss)
    return out.mask(avg_loss == 0.0, 100.0).rename("rsi")


def kdj(
    high: ArrayLike,
    low: ArrayLike,
    close: ArrayLike,
    period: int = 9,
    k_period: int = 3,
    d_period: int = 3,
) -> pd.DataFrame:
    """
    Stochastic KDJ.

    RSV = (close - lowest low) / (highest high - lowest low) * 100 over
    ``period`` bars, 50 when the range is flat. K and D both start from 50:
    K = (K_prev * (k_period - 1) + RSV) / k_period, D likewise from K,
    and J = 3K - 2D.
    """
    h, l, c = _aligned((high, "high"), (low, "low"), (close, "close"))
    require_positive(k_period=k_period, d_period=d_period)
    period = _check_period(period, len(c))

    lowest = l.rolling(window=period).min()
    spread = h.rolling(window=period).max() - lowest
    rsv = ((c - lowest) / spread * 100.0).where(spread != 0.0, 50.0)

    k = _smooth_from(rsv, 50.0, 1.0 / k_period)
    d = _smooth_from(k, 50.0, 1.0 / d_period)
    return pd.DataFrame({"k": k, "d": d, "j": 3.0 * k - 2.0 * d})


# ---------- Volatility ----------

def bollinger_bands(prices: ArrayLike, period: int = 20, num_std: float = 2.0) -> pd.DataFrame:
    """SMA middle band with bands ``num_std`` population standard deviations away."""
    s = _series(prices, "prices")
    period = _check_period(period, len(s))
    require_positive(num_std=num_std)

    window = s.rolling(window=period)
    middle = window.mean()
    width = num_std * window.std(ddof=0)
    return pd.DataFrame({"upper": middle + width, "middle": middle, "lower": middle - width})


def atr(high: ArrayLike, low: ArrayLike, close: ArrayLike, period: int = 14) -> pd.Series:
    """
    Average true range with Wilder smoothing.

    True range needs the previous close, so it starts at index 1 and the
    first ATR (a simple mean of ``period`` true ranges) sits at ``period``.
    """
    h, l, c = _aligned((high, "high"), (low, "low"), (close, "close"))
    if (h < l).any():
        raise InvalidDomainInput("high must not be below low")
    period = _check_period(period, len(c) - 1)

    prev_close = c.shift(1)
    true_range = pd.concat([h - l, (h - prev_close).abs(), (l - prev_close).abs()], axis=1).max(axis=1)
    true_range.iloc[0] = np.nan
    return _seeded_average(true_range, period, 1.0 / period).rename("atr")


# ---------- Volume ----------

def _check_volumes(v: pd.Series) -> pd.Series:
    if (v < 0).any():
        raise InvalidDomainInput("volumes must be non-negative")
    return v


def obv(prices: ArrayLike, volumes: ArrayLike) -> pd.Series:
    """On-balance volume, starting from the first bar's volume."""
    s, v = _aligned((prices, "prices"), (volumes, "volumes"))
    _check_volumes(v)

    flow = np.sign(s.diff()).fillna(0.0) * v
    flow.iloc[0] = v.iloc[0]
    return flow.cumsum().rename("obv")


def volume_ma(volumes: ArrayLike, period: int = 20) -> pd.Series:
    return sma(_check_volumes(_series(volumes, "volumes")), period).rename("volume_ma")


def volume_rsi(volumes: ArrayLike, period: int = 14) -> pd.Series:
    """RSI computed on volume changes instead of price changes."""
    return rsi(_check_volumes(_series(volumes, "volumes")), period).rename("volume_rsi")


def volume_ratio(prices: ArrayLike, volumes: ArrayLike, period: int = 26) -> pd.Series:
    """
    VR = (up volume + unchanged / 2) / (down volume + unchanged / 2) * 100.

    For the value at index i, each bar in (i - period, i] is classified
    against the single reference price at i - period. VR is 100 when the
    denominator is 0.
    """
    s, v = _aligned((prices, "prices"), (volumes, "volumes"))
    _check_volumes(v)
    period = _check_period(period, len(s) - 1)

    price_windows = sliding_window_view(s.to_numpy(), period + 1)
    vol_windows = sliding_window_view(v.to_numpy(), period + 1)[:, 1:]
    reference, current = price_windows[:, :1], price_windows[:, 1:]

    up = np.where(current > reference, vol_windows, 0.0).sum(axis=1)
    down = np.where(current < reference, vol_windows, 0.0).sum(axis=1)
    half_flat = np.where(current == reference, vol_windows, 0.0).sum(axis=1) / 2.0

    denominator = down + half_flat
    safe = np.where(denominator == 0.0, 1.0, denominator)
    ratio = np.where(denominator == 0.0, 100.0, (up + half_flat) / safe * 100.0)

    out = np.full(len(s), np.nan)
    out[period:] = ratio
    return pd.Series(out, index=s.index, name="volume_ratio")


def accumulation_distribution(
    high: ArrayLike,
    low: ArrayLike,
    close: ArrayLike,
    volumes: ArrayLike,
) -> pd.Series:
    """Running sum of money-flow volume; a bar with high == low adds nothing."""
    h, l, c, v = _aligned((high, "high"), (low, "low"), (close, "close"), (volumes, "volumes"))
    _check_volumes(v)

    spread = h - l
    multiplier = (((c - l) - (h - c)) / spread).where(spread != 0.0, 0.0)
    return (multiplier * v).cumsum().rename("accumulation_distribution")
