"""Order-book momentum formulas.

Pure functions on numpy arrays; no state, no I/O.

Imbalance weighting:
    The grid is split at ``m = floor(P / 2)``. Level ``j`` contributes
    ``|v_j| * (1 + |j - m| / m)`` to buy pressure when ``j < m`` and to
    sell pressure otherwise, so depth far from the middle counts up to
    twice as much as depth at the middle. A one-level grid has ``m = 0``
    and uses a distance factor of 0.

Rounding:
    Signal strengths round half up (``floor(x + 0.5)``), not to even.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np
import pandas as pd

# ──────────────────────────────────────────────────────────────────────
# Imbalance
# ──────────────────────────────────────────────────────────────────────


def distance_weights(n_levels: int) -> np.ndarray:
    """``1 + |j - m| / m`` per level (all ones when ``m == 0``)."""
    middle = n_levels // 2
    j = np.arange(n_levels, dtype=np.float64)
    if middle == 0:
        return np.ones(n_levels, dtype=np.float64)
    return 1.0 + np.abs(j - middle) / middle


def book_imbalance(volumes: np.ndarray) -> np.ndarray:
    """Distance-weighted ``(buy - sell) / (buy + sell)`` per heatmap row.

    Args:
        volumes: ``(T, P)`` signed volumes.

    Returns:
        ``(T,)`` imbalance in ``[-1, 1]``; 0 for rows without volume.
    """
    vols = np.abs(np.asarray(volumes, dtype=np.float64))
    if vols.ndim != 2 or vols.shape[1] == 0:
        return np.zeros(vols.shape[0] if vols.ndim == 2 else 0, dtype=np.float64)
    middle = vols.shape[1] // 2
    weighted = vols * distance_weights(vols.shape[1])
    buy = weighted[:, :middle].sum(axis=1)
    sell = weighted[:, middle:].sum(axis=1)
    total = buy + sell
    with np.errstate(invalid="ignore", divide="ignore"):
        return np.where(total > 0, (buy - sell) / np.where(total > 0, total, 1.0), 0.0)


def imbalance_rate(imbalance: np.ndarray, timestamps: np.ndarray) -> np.ndarray:
    """Per-minute change of *imbalance*, minutes floored at 1; 0 at index 0."""
    imb = np.asarray(imbalance, dtype=np.float64)
    out = np.zeros_like(imb)
    if imb.size < 2:
        return out
    minutes = np.maximum(1.0, np.diff(np.asarray(timestamps, dtype=np.float64)) / 60.0)
    out[1:] = np.diff(imb) / minutes
    return out


# ──────────────────────────────────────────────────────────────────────
# Time-series helpers
# ──────────────────────────────────────────────────────────────────────


def exponential_moving_average(values: Sequence[float] | np.ndarray, alpha: float) -> np.ndarray:
    """EMA seeded with the first value: ``y_t = a x_t + (1 - a) y_{t-1}``."""
    arr = np.asarray(values, dtype=np.float64)
    if arr.size == 0:
        return arr.copy()
    return pd.Series(arr).ewm(alpha=alpha, adjust=False).mean().to_numpy()


def linear_regression_slope(values: Sequence[float] | np.ndarray) -> float:
    """OLS slope of *values* against ``0..n-1``; 0 for fewer than 2 values."""
    y = np.asarray(values, dtype=np.float64)
    n = y.size
    if n <= 1:
        return 0.0
    x = np.arange(n, dtype=np.float64)
    denom = n * float((x * x).sum()) - float(x.sum()) ** 2
    return (n * float((x * y).sum()) - float(x.sum()) * float(y.sum())) / denom


def trailing_slopes(values: np.ndarray, window: int) -> np.ndarray:
    """Slope over the *window* values strictly before each index.

    Indices below *window* (and every index when ``window < 1``) get 0.
    """
    arr = np.asarray(values, dtype=np.float64)
    out = np.zeros_like(arr)
    if window < 1:
        return out
    for i in range(window, arr.size):
        out[i] = linear_regression_slope(arr[i - window:i])
    return out


def lowest_in_range(data: Sequence[float] | np.ndarray, start: int, end: int) -> int:
    """Index of the minimum of ``data[start..end]`` inclusive; first wins."""
    return start + int(np.argmin(np.asarray(data[start:end + 1], dtype=np.float64)))


def highest_in_range(data: Sequence[float] | np.ndarray, start: int, end: int) -> int:
    """Index of the maximum of ``data[start..end]`` inclusive; first wins."""
    return start + int(np.argmax(np.asarray(data[start:end + 1], dtype=np.float64)))


@dataclass(frozen=True)
class Divergences:
    bullish: frozenset[int] = field(default_factory=frozenset)
    bearish: frozenset[int] = field(default_factory=frozenset)


def find_divergences(
    momentum: Sequence[float] | np.ndarray,
    reference: Sequence[float] | np.ndarray,
    lookback: int = 10,
) -> Divergences:
    """Compare two smoothings of the same oscillator over a trailing window.

    Bullish at ``i``: momentum is negative, *reference* makes its window
    low at ``i`` and momentum stays above its own window low. Bearish is
    the mirror. Checked for ``lookback <= i < n - 1``.
    """
    m = np.asarray(momentum, dtype=np.float64)
    ref = np.asarray(reference, dtype=np.float64)
    bullish: set[int] = set()
    bearish: set[int] = set()
    for i in range(lookback, m.size - 1):
        start = i - lookback
        if (
            m[i] < 0
            and lowest_in_range(ref, start, i) == i
            and m[i] > m[lowest_in_range(m, start, i)]
        ):
            bullish.add(i)
        if (
            m[i] > 0
            and highest_in_range(ref, start, i) == i
            and m[i] < m[highest_in_range(m, start, i)]
        ):
            bearish.add(i)
    return Divergences(bullish=frozenset(bullish), bearish=frozenset(bearish))


def round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def signal_strength(
    base: float,
    trend: float,
    momentum: float,
    scale: float,
    trend_scale: float = 10.0,
    momentum_scale: float = 2.0,
) -> int:
    """``min(100, round((base + trend_f + momentum_f) * scale))``.

    ``trend_f = min(1, |trend| * trend_scale)`` and
    ``momentum_f = min(1, |momentum| * momentum_scale)``.
    """
    trend_f = min(1.0, abs(trend) * trend_scale)
    momentum_f = min(1.0, abs(momentum) * momentum_scale)
    return min(100, round_half_up((base + trend_f + momentum_f) * scale))
