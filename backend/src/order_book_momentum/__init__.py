"""Order-book momentum (OBM) oscillator with BUY/SELL signal detection.

Measures the distance-weighted buy/sell imbalance of the book around the
middle of the price grid, smooths it, adds a regression trend and a short
autoregressive forecast, and emits stateful crossover, reversal and
divergence signals.

Modules:
    config: Pipeline constants (pydantic).
    formulas: Pure array helpers (EMA, OLS slope, divergences).
    detector: ``detect_obm`` and the ``OBMSeries`` result.
"""
from __future__ import annotations

from .config import OBMConfig
from .detector import (
    SIGNAL_BUY,
    SIGNAL_NONE,
    SIGNAL_SELL,
    SIGNAL_VALUES,
    OBMSeries,
    detect_obm,
)
from .formulas import (
    book_imbalance,
    exponential_moving_average,
    find_divergences,
    linear_regression_slope,
)

__all__ = [
    "OBMConfig",
    "OBMSeries",
    "SIGNAL_BUY",
    "SIGNAL_NONE",
    "SIGNAL_SELL",
    "SIGNAL_VALUES",
    "book_imbalance",
    "detect_obm",
    "exponential_moving_average",
    "find_divergences",
    "linear_regression_slope",
]
