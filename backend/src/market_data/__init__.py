"""Market data value types shared by the optical-path and OBM engines.

Modules:
    models: Candlestick series and price-level heatmap containers.
    profile: Volume profile and density-weighted price statistics.
"""
from __future__ import annotations

from .models import (
    Candlestick,
    Heatmap,
    MarketSnapshot,
    candlesticks_from_records,
    nearest_price_index,
    to_utc_datetime,
)
from .profile import (
    density_bands,
    volume_profile,
    weighted_average_price,
    weighted_price_std,
)

__all__ = [
    "Candlestick",
    "Heatmap",
    "MarketSnapshot",
    "candlesticks_from_records",
    "density_bands",
    "nearest_price_index",
    "to_utc_datetime",
    "volume_profile",
    "weighted_average_price",
    "weighted_price_std",
]
