"""Order-book momentum pipeline parameters.

Defaults reproduce the dashboard's OBM pane:

    raw      = 0.3 * imbalance + 0.7 * d(imbalance)/dt
    ema      = EMA(raw, 0.2)
    trend    = OLS slope over the preceding min(10, n // 3) raw values
    forecast = exp-weighted mean of the last 3 ema values + 0.5 * trend
    obm      = ema + 0.3 * trend
"""
from __future__ import annotations

from pydantic import BaseModel, Field


class OBMConfig(BaseModel):
    """Order-book momentum pipeline parameters."""

    min_rows: int = Field(default=10, ge=2)
    imbalance_weight: float = 0.3
    change_weight: float = 0.7
    ema_alpha: float = Field(default=0.2, gt=0.0, le=1.0)
    trend_window_max: int = Field(default=10, ge=1)
    trend_window_divisor: int = Field(default=3, ge=1)
    forecast_lag: int = Field(default=3, ge=1)
    forecast_decay: float = 0.5
    forecast_trend_weight: float = 0.5
    final_trend_weight: float = 0.3

    # Signal state machine
    signal_min_values: int = Field(default=5, ge=1)
    signal_start_index: int = Field(default=3, ge=2)
    smoothing_alpha: float = Field(default=0.15, gt=0.0, le=1.0)
    second_smoothing_alpha: float = Field(default=0.25, gt=0.0, le=1.0)
    divergence_lookback: int = Field(default=10, ge=1)
    signal_cooldown: int = Field(default=5, ge=0)

    # Strength = min(100, round((base + trend_f + momentum_f) * scale))
    zero_cross_factor: float = 0.6
    reversal_factor: float = 0.8
    divergence_factor: float = 1.0
    zero_cross_scale: float = 20.0
    reversal_scale: float = 25.0
    divergence_scale: float = 33.0
    trend_factor_scale: float = 10.0
    momentum_factor_scale: float = 2.0
