"""Order-book momentum oscillator and BUY/SELL signal detection.

Pipeline (row 0 of the heatmap only seeds the rate of change, so every
output series has ``T - 1`` entries):

    1. distance-weighted book imbalance per row
    2. per-minute rate of change of the imbalance
    3. raw = 0.3 * imbalance + 0.7 * change
    4. ema = EMA(raw, 0.2)
    5. trend = OLS slope over the ``min(10, n // 3)`` raw values before i
    6. forecast = exp-weighted mean of ema[i-1..i-3] + 0.5 * trend (None for i < 3)
    7. obm = ema + 0.3 * trend
    8. signals on EMA(EMA(obm, 0.15), 0.25) double smoothing

Signal state machine:
    BUY fires on a bullish divergence, a bullish reversal or an upward
    zero cross, unless already long or inside the cooldown. SELL is the
    mirror and is only considered when BUY did not fire. Strength uses
    the strongest condition present (divergence > reversal > zero cross).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

import numpy as np
import pandas as pd

from ..market_data import Heatmap
from .config import OBMConfig
from .formulas import (
    book_imbalance,
    exponential_moving_average,
    find_divergences,
    imbalance_rate,
    signal_strength,
    trailing_slopes,
)

logger = logging.getLogger(__name__)

SIGNAL_BUY = "BUY"
SIGNAL_SELL = "SELL"
SIGNAL_NONE = "NONE"
SIGNAL_VALUES = (SIGNAL_BUY, SIGNAL_SELL, SIGNAL_NONE)


@dataclass(frozen=True)
class OBMSeries:
    """Parallel OBM output series, all of equal length."""

    timestamps: np.ndarray
    obm_values: np.ndarray
    trend_strength: np.ndarray
    forecast_values: tuple[Optional[float], ...]
    signals: tuple[str, ...]
    signal_strengths: tuple[int, ...]
    imbalance: np.ndarray
    raw_values: np.ndarray

    @classmethod
    def empty(cls) -> "OBMSeries":
        return cls(
            timestamps=np.zeros(0, dtype=np.int64),
            obm_values=np.zeros(0, dtype=np.float64),
            trend_strength=np.zeros(0, dtype=np.float64),
            forecast_values=(),
            signals=(),
            signal_strengths=(),
            imbalance=np.zeros(0, dtype=np.float64),
            raw_values=np.zeros(0, dtype=np.float64),
        )

    def __len__(self) -> int:
        return int(self.obm_values.size)

    @property
    def is_empty(self) -> bool:
        return len(self) == 0

    def signal_indices(self, kind: str | None = None) -> list[int]:
        """Indices carrying a BUY/SELL (or only *kind*)."""
        return [
            i for i, s in enumerate(self.signals)
            if s != SIGNAL_NONE and (kind is None or s == kind)
        ]

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamps": [int(t) for t in self.timestamps],
            "obmValues": self.obm_values.tolist(),
            "trendStrength": self.trend_strength.tolist(),
            "forecastValues": list(self.forecast_values),
            "signals": list(self.signals),
            "signalStrengths": list(self.signal_strengths),
        }

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            {
                "timestamp": self.timestamps,
                "imbalance": self.imbalance,
                "raw": self.raw_values,
                "obm": self.obm_values,
                "trend": self.trend_strength,
                "forecast": pd.array(list(self.forecast_values), dtype="Float64"),
                "signal": list(self.signals),
                "strength": np.asarray(self.signal_strengths, dtype=np.int64),
            }
        )


def _forecast(ema: np.ndarray, trend: np.ndarray, config: OBMConfig) -> list[Optional[float]]:
    lag = config.forecast_lag
    weights = np.exp(-config.forecast_decay * np.arange(1, lag + 1, dtype=np.float64))
    out: list[Optional[float]] = []
    for i in range(ema.size):
        if i < lag:
            out.append(None)
            continue
        history = ema[i - lag:i][::-1]  # ema[i-1], ema[i-2], ...
        value = float((history * weights).sum() / weights.sum())
        out.append(value + float(trend[i]) * config.forecast_trend_weight)
    return out


def _emit_signals(
    obm: np.ndarray,
    trend: np.ndarray,
    config: OBMConfig,
) -> tuple[list[str], list[int]]:
    n = obm.size
    signals = [SIGNAL_NONE] * n
    strengths = [0] * n
    if n < config.signal_min_values:
        return signals, strengths

    smoothed = exponential_moving_average(obm, config.smoothing_alpha)
    second = exponential_moving_average(smoothed, config.second_smoothing_alpha)
    divergences = find_divergences(smoothed, second, config.divergence_lookback)

    in_long = False
    in_short = False
    last_signal: Optional[int] = None

    for i in range(config.signal_start_index, n):
        cur, prev, prev2 = smoothed[i], smoothed[i - 1], smoothed[i - 2]
        tr = float(trend[i])
        cooled = last_signal is None or i - last_signal > config.signal_cooldown

        bull_cross = prev <= 0 < cur and tr > 0
        bear_cross = prev >= 0 > cur and tr < 0
        bull_reversal = cur > 0 and prev < prev2 and cur > prev and tr > 0
        bear_reversal = cur < 0 and prev > prev2 and cur < prev and tr < 0
        bull_div = i in divergences.bullish
        bear_div = i in divergences.bearish

        if (bull_cross or bull_reversal or bull_div) and not in_long and cooled:
            kind = SIGNAL_BUY
            in_long, in_short = True, False
            divergence, reversal = bull_div, bull_reversal
        elif (bear_cross or bear_reversal or bear_div) and not in_short and cooled:
            kind = SIGNAL_SELL
            in_long, in_short = False, True
            divergence, reversal = bear_div, bear_reversal
        else:
            continue

        if divergence:
            base, scale = config.divergence_factor, config.divergence_scale
        elif reversal:
            base, scale = config.reversal_factor, config.reversal_scale
        else:
            base, scale = config.zero_cross_factor, config.zero_cross_scale

        signals[i] = kind
        strengths[i] = signal_strength(
            base,
            tr,
            float(cur),
            scale,
            trend_scale=config.trend_factor_scale,
            momentum_scale=config.momentum_factor_scale,
        )
        last_signal = i
        logger.debug("OBM %s at %d (strength %d)", kind, i, strengths[i])

    return signals, strengths


def detect_obm(heatmap: Heatmap, config: OBMConfig | None = None) -> OBMSeries:
    """Build the OBM series and signals for *heatmap*.

    Returns an empty series when the heatmap has fewer than
    ``config.min_rows`` rows or no price levels.
    """
    config = config or OBMConfig()
    if heatmap.n_times < config.min_rows or heatmap.n_levels == 0:
        logger.info(
            "OBM needs >= %d heatmap rows with price levels, got %dx%d",
            config.min_rows,
            heatmap.n_times,
            heatmap.n_levels,
        )
        return OBMSeries.empty()

    timestamps = heatmap.timestamps[1:].copy()
    imbalance = book_imbalance(heatmap.volumes[1:])
    change = imbalance_rate(imbalance, timestamps)
    raw = config.imbalance_weight * imbalance + config.change_weight * change

    ema = exponential_moving_average(raw, config.ema_alpha)
    window = min(config.trend_window_max, raw.size // config.trend_window_divisor)
    trend = trailing_slopes(raw, window)
    forecast = _forecast(ema, trend, config)
    obm = ema + trend * config.final_trend_weight

    signals, strengths = _emit_signals(obm, trend, config)
    logger.info(
        "OBM over %d rows: %d BUY, %d SELL",
        obm.size,
        signals.count(SIGNAL_BUY),
        signals.count(SIGNAL_SELL),
    )
    return OBMSeries(
        timestamps=timestamps,
        obm_values=obm,
        trend_strength=trend,
        forecast_values=tuple(forecast),
        signals=tuple(signals),
        signal_strengths=tuple(strengths),
        imbalance=imbalance,
        raw_values=raw,
    )
