"""Volume profile and density-weighted price statistics.

The volume profile is the side pane of the dashboard: total absolute
resting volume per price level across the whole window. The density
statistics give, per timestamp, the volume-weighted mean price of the
book and its weighted standard deviation.
"""
from __future__ import annotations

from typing import Sequence

import numpy as np
import pandas as pd

from .models import Heatmap

STD_FALLBACK: float = 1.0
"""Returned by :func:`weighted_price_std` for an empty book."""


def weighted_average_price(
    prices: Sequence[float] | np.ndarray,
    volumes: Sequence[float] | np.ndarray,
) -> float:
    """Volume-weighted mean price using ``|volume|`` as weight.

    Returns 0.0 when the total volume is zero.
    """
    p = np.asarray(prices, dtype=np.float64)
    w = np.abs(np.asarray(volumes, dtype=np.float64))
    total = float(w.sum())
    if total <= 0.0:
        return 0.0
    return float((p * w).sum() / total)


def weighted_price_std(
    prices: Sequence[float] | np.ndarray,
    volumes: Sequence[float] | np.ndarray,
    avg_price: float,
) -> float:
    """Volume-weighted standard deviation of price around *avg_price*.

    Returns :data:`STD_FALLBACK` when the total volume is zero so callers
    can divide by the result.
    """
    p = np.asarray(prices, dtype=np.float64)
    w = np.abs(np.asarray(volumes, dtype=np.float64))
    total = float(w.sum())
    if total <= 0.0:
        return STD_FALLBACK
    return float(np.sqrt(((p - avg_price) ** 2 * w).sum() / total))


def volume_profile(heatmap: Heatmap) -> pd.DataFrame:
    """Aggregate ``|volume|`` per price level across all timestamps.

    Returns:
        DataFrame with columns ``price`` and ``volume`` (one row per level).
        Empty when the heatmap has no rows.
    """
    if heatmap.is_empty:
        return pd.DataFrame(
            {
                "price": pd.Series([], dtype=np.float64),
                "volume": pd.Series([], dtype=np.float64),
            }
        )
    return pd.DataFrame(
        {
            "price": heatmap.price_levels.copy(),
            "volume": np.abs(heatmap.volumes).sum(axis=0),
        }
    )


def density_bands(heatmap: Heatmap) -> pd.DataFrame:
    """Per-timestamp weighted mean price with a one-sigma band.

    Returns:
        DataFrame with ``timestamp``, ``avg_price``, ``std_price``,
        ``upper`` and ``lower`` columns.
    """
    rows = []
    for ts, vols in zip(heatmap.timestamps, heatmap.volumes):
        avg = weighted_average_price(heatmap.price_levels, vols)
        std = weighted_price_std(heatmap.price_levels, vols, avg)
        rows.append(
            {
                "timestamp": int(ts),
                "avg_price": avg,
                "std_price": std,
                "upper": avg + std,
                "lower": avg - std,
            }
        )
    columns = ["timestamp", "avg_price", "std_price", "upper", "lower"]
    if heatmap.n_levels == 0 or not rows:
        return pd.DataFrame(columns=columns)
    return pd.DataFrame(rows, columns=columns)
