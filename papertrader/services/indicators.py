"""Technical indicators over price/volume sequences.

All functions are pure computation and total: on insufficient history they
return a neutral value (RSI 50, momentum 0, range position 0.5) instead of
raising. Callers treat the neutral value as "no signal".
"""

from typing import Sequence

import numpy as np


def _as_array(values: Sequence[float]) -> np.ndarray:
    return np.asarray(values, dtype=float)


# ---------------------------------------------------------------------------
# Trend
# ---------------------------------------------------------------------------

def sma(values: Sequence[float], period: int) -> float:
    """Mean of the last `period` values (or of whatever is available)."""
    arr = _as_array(values)
    if arr.size == 0:
        return 0.0
    window = arr[-max(1, min(period, arr.size)):]
    return float(np.mean(window))


def momentum(values: Sequence[float], periods: int) -> float:
    """Percent change over the last `periods` steps. 0 if history is too short."""
    arr = _as_array(values)
    if periods <= 0 or arr.size < periods + 1:
        return 0.0
    past = arr[-periods - 1]
    if past == 0 or not np.isfinite(past):
        return 0.0
    return float((arr[-1] - past) / past * 100.0)


def price_vs_sma(price: float, values: Sequence[float], period: int) -> str:
    """Classify price as "above", "below" or "at" its SMA."""
    avg = sma(values, period)
    if avg == 0:
        return "at"
    eps = max(0.0001, abs(avg) * 0.0005)
    diff = price - avg
    if abs(diff) <= eps:
        return "at"
    return "above" if diff > 0 else "below"


def recent_high(values: Sequence[float], lookback: int) -> float | None:
    arr = _as_array(values)
    if arr.size == 0:
        return None
    return float(np.max(arr[-max(1, min(lookback, arr.size)):]))


# ---------------------------------------------------------------------------
# Oscillators
# ---------------------------------------------------------------------------

def rsi(values: Sequence[float], period: int = 14) -> float:
    """RSI from summed gains vs. summed losses over the trailing window."""
    arr = _as_array(values)
    if period <= 0 or arr.size <= period:
        return 50.0

    deltas = np.diff(arr[-(period + 1):])
    gains = float(np.sum(np.maximum(deltas, 0.0)))
    losses = float(np.sum(np.maximum(-deltas, 0.0)))

    if losses == 0:
        return 100.0
    rs = gains / losses
    return float(100.0 - 100.0 / (1.0 + rs))


def range_position(price: float, low: float, high: float) -> float:
    """(price - low) / (high - low), clamped to [0, 1]; 0.5 on a degenerate range."""
    span = high - low
    if not np.isfinite(span) or span <= 0:
        return 0.5
    return float(min(1.0, max(0.0, (price - low) / span)))


def volatility(values: Sequence[float]) -> float:
    """Population standard deviation of step returns, as a fraction."""
    arr = _as_array(values)
    if arr.size < 2:
        return 0.0
    prev, nxt = arr[:-1], arr[1:]
    mask = prev != 0
    if not np.any(mask):
        return 0.0
    returns = (nxt[mask] - prev[mask]) / prev[mask]
    return float(np.std(returns))


# ---------------------------------------------------------------------------
# Volume
# ---------------------------------------------------------------------------

def is_volume_spike(current_volume: float, avg_volume: float, threshold: float = 1.5) -> bool:
    if not np.isfinite(current_volume) or not np.isfinite(avg_volume) or avg_volume <= 0:
        return False
    return current_volume >= avg_volume * threshold


def volume_increasing(volumes: Sequence[float], periods: int = 3) -> bool:
    """True when the trailing window averages above the same window one step earlier."""
    arr = _as_array(volumes)
    if periods <= 0 or arr.size < periods + 1:
        return False
    return bool(np.mean(arr[-periods:]) > np.mean(arr[-(periods + 1):-1]))


def volume_stats(volumes: Sequence[float], volume_24h: float) -> tuple[float, float]:
    """(current, average) volume; with no history, 24h volume over 24 hourly buckets."""
    arr = _as_array(volumes)
    if arr.size == 0:
        return float(volume_24h), float(volume_24h) / 24.0
    return float(arr[-1]), float(np.mean(arr))
