from __future__ import annotations

import math
import sys
from pathlib import Path

import numpy as np
import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(BACKEND_ROOT))

from src.market_data import Heatmap  # noqa: E402
from src.order_book_momentum import (  # noqa: E402
    SIGNAL_BUY,
    SIGNAL_NONE,
    SIGNAL_SELL,
    SIGNAL_VALUES,
    OBMConfig,
    book_imbalance,
    detect_obm,
    exponential_moving_average,
    find_divergences,
    linear_regression_slope,
)
from src.order_book_momentum.formulas import (  # noqa: E402
    distance_weights,
    imbalance_rate,
    round_half_up,
    signal_strength,
    trailing_slopes,
)

T0 = 1_700_000_000


def _heatmap(volumes: np.ndarray, step: int = 60) -> Heatmap:
    volumes = np.asarray(volumes, dtype=np.float64)
    n_t, n_p = volumes.shape
    return Heatmap(
        timestamps=T0 + step * np.arange(n_t),
        price_levels=100.0 + np.arange(n_p, dtype=np.float64),
        volumes=volumes,
    )


def _random_heatmap(seed: int = 13, n_t: int = 120, n_p: int = 20) -> Heatmap:
    rng = np.random.default_rng(seed)
    # A slow drift of depth between the two halves of the book plus noise.
    phase = np.sin(np.arange(n_t) / 9.0)[:, None]
    side = np.where(np.arange(n_p) < n_p // 2, 1.0, -1.0)[None, :]
    volumes = 50.0 + 30.0 * phase * side + rng.normal(0.0, 8.0, size=(n_t, n_p))
    return _heatmap(np.abs(volumes))


def _linear_raw_heatmap(n_t: int = 60, a: float = -0.1, c: float = 0.005) -> Heatmap:
    """Two-level book whose raw OBM series is exactly ``a + c * k``.

    With levels weighted 2:1, a bid depth ``b`` against unit ask depth gives
    imbalance ``(2b - 1) / (2b + 1)``. Choosing imbalance
    ``p + q k + h 0.7^k`` makes ``0.3 imb_k + 0.7 (imb_k - imb_{k-1})``
    linear in ``k``.
    """
    q = c / 0.3
    p = (a - 0.7 * q) / 0.3
    h = a / 0.3 - p
    k = np.arange(n_t - 1, dtype=np.float64)
    imbalance = p + q * k + h * 0.7 ** k
    bid = (1.0 + imbalance) / (2.0 * (1.0 - imbalance))
    rows = [[1.0, 1.0]] + [[b, 1.0] for b in bid]
    return _heatmap(np.array(rows))


# ── Formulas ──────────────────────────────────────────────────────────


def test_distance_weights() -> None:
    np.testing.assert_allclose(distance_weights(4), [2.0, 1.5, 1.0, 1.5])
    np.testing.assert_allclose(distance_weights(1), [1.0])


def test_book_imbalance_weights_depth_away_from_middle() -> None:
    imbalance = book_imbalance(np.array([[3.0, -1.0, 0.0, 2.0], [0.0, 0.0, 0.0, 0.0]]))
    # buy = 3*2 + 1*1.5 = 7.5, sell = 0*1 + 2*1.5 = 3
    assert imbalance[0] == pytest.approx(4.5 / 10.5)
    assert imbalance[1] == 0.0


def test_single_level_book_is_all_sell_side() -> None:
    imbalance = book_imbalance(np.array([[5.0], [0.0]]))
    np.testing.assert_array_equal(imbalance, [-1.0, 0.0])


def test_imbalance_rate_floors_minutes_at_one() -> None:
    rate = imbalance_rate(np.array([0.0, 0.5, 0.1]), np.array([0, 30, 150]))
    np.testing.assert_allclose(rate, [0.0, 0.5, -0.2])


def test_exponential_moving_average_seeds_with_first_value() -> None:
    np.testing.assert_allclose(exponential_moving_average([1.0, 2.0, 3.0], 0.5), [1.0, 1.5, 2.25])
    assert exponential_moving_average([], 0.5).size == 0


def test_linear_regression_slope() -> None:
    assert linear_regression_slope([1.0, 3.0, 5.0]) == pytest.approx(2.0)
    assert linear_regression_slope([4.0]) == 0.0
    assert linear_regression_slope([]) == 0.0


def test_trailing_slopes_use_values_before_each_index() -> None:
    values = np.array([0.0, 2.0, 4.0, 6.0, 100.0, 10.0])
    slopes = trailing_slopes(values, 3)
    np.testing.assert_allclose(slopes[:3], 0.0)
    assert slopes[3] == pytest.approx(2.0)
    assert slopes[4] == pytest.approx(2.0)
    assert slopes[5] == pytest.approx(48.0)


def test_bullish_divergence() -> None:
    momentum = [-5.0, -1.0, -2.0, 0.0]
    reference = [3.0, 2.0, 1.0, 0.0]
    found = find_divergences(momentum, reference, lookback=2)
    assert found.bullish == frozenset({2})
    assert found.bearish == frozenset()


def test_bearish_divergence() -> None:
    momentum = [5.0, 1.0, 2.0, 0.0]
    reference = [1.0, 2.0, 3.0, 0.0]
    found = find_divergences(momentum, reference, lookback=2)
    assert found.bearish == frozenset({2})
    assert found.bullish == frozenset()


def test_strength_rounds_half_up_and_caps() -> None:
    assert round_half_up(2.5) == 3
    assert round_half_up(0.5) == 1
    assert signal_strength(0.6, 0.05, 0.1, 20.0) == 26
    assert signal_strength(1.0, 1.0, 1.0, 50.0) == 100
    assert signal_strength(0.8, -0.2, -3.0, 25.0) == 70


# ── Detector ──────────────────────────────────────────────────────────


def test_short_heatmap_gives_empty_series() -> None:
    series = detect_obm(_heatmap(np.ones((9, 4))))
    assert series.is_empty
    assert series.to_dict() == {
        "timestamps": [],
        "obmValues": [],
        "trendStrength": [],
        "forecastValues": [],
        "signals": [],
        "signalStrengths": [],
    }


def test_empty_price_grid_gives_empty_series() -> None:
    assert detect_obm(Heatmap.empty()).is_empty


def test_series_lengths_and_value_domains() -> None:
    heatmap = _random_heatmap()
    series = detect_obm(heatmap)
    n = heatmap.n_times - 1

    assert len(series) == n
    assert series.trend_strength.size == n
    assert len(series.forecast_values) == n
    assert len(series.signals) == n
    assert len(series.signal_strengths) == n
    np.testing.assert_array_equal(series.timestamps, heatmap.timestamps[1:])

    assert series.forecast_values[:3] == (None, None, None)
    assert all(isinstance(v, float) for v in series.forecast_values[3:])
    assert set(series.signals) <= set(SIGNAL_VALUES)
    assert series.signals[:3] == (SIGNAL_NONE,) * 3
    for signal, strength in zip(series.signals, series.signal_strengths):
        if signal == SIGNAL_NONE:
            assert strength == 0
        else:
            assert 0 <= strength <= 100


def test_signals_respect_cooldown_and_alternate() -> None:
    for seed in (1, 2, 3, 13):
        series = detect_obm(_random_heatmap(seed=seed, n_t=240))
        fired = series.signal_indices()
        for a, b in zip(fired, fired[1:]):
            assert b - a > 5
            assert series.signals[a] != series.signals[b]


def test_forecast_and_obm_recombine_from_parts() -> None:
    series = detect_obm(_random_heatmap(seed=8))
    ema = exponential_moving_average(series.raw_values, 0.2)
    np.testing.assert_allclose(series.obm_values, ema + 0.3 * series.trend_strength)

    weights = np.exp(-0.5 * np.arange(1, 4))
    i = 7
    history = np.array([ema[i - 1], ema[i - 2], ema[i - 3]])
    expected = (history * weights).sum() / weights.sum() + 0.5 * series.trend_strength[i]
    assert series.forecast_values[i] == pytest.approx(expected)


def test_trend_window_is_capped_by_series_length() -> None:
    # 16 rows -> 15 values -> window min(10, 15 // 3) = 5.
    series = detect_obm(_random_heatmap(seed=4, n_t=16))
    np.testing.assert_array_equal(series.trend_strength[:5], 0.0)
    assert series.trend_strength[5] == pytest.approx(linear_regression_slope(series.raw_values[:5]))


def test_rising_oscillator_emits_single_buy_at_zero_cross() -> None:
    series = detect_obm(_linear_raw_heatmap())
    n = len(series)
    assert n == 59
    np.testing.assert_allclose(series.raw_values, -0.1 + 0.005 * np.arange(n), atol=1e-9)
    np.testing.assert_allclose(series.trend_strength[10:], 0.005, rtol=1e-6)
    assert np.all(np.diff(series.obm_values) > 0)

    smoothed = exponential_moving_average(series.obm_values, 0.15)
    crossing = next(i for i in range(3, n) if smoothed[i - 1] <= 0 < smoothed[i])
    assert crossing >= 10

    assert series.signal_indices() == [crossing]
    assert series.signals[crossing] == SIGNAL_BUY
    assert SIGNAL_SELL not in series.signals
    assert 0 <= series.signal_strengths[crossing] <= 100
    assert all(s == SIGNAL_NONE for s in series.signals[crossing + 1:crossing + 6])


def test_single_level_heatmap_has_finite_output() -> None:
    rng = np.random.default_rng(2)
    series = detect_obm(_heatmap(rng.gamma(2.0, 10.0, size=(30, 1))))
    assert len(series) == 29
    assert np.isfinite(series.obm_values).all()
    assert np.isfinite(series.trend_strength).all()


def test_detection_is_idempotent() -> None:
    heatmap = _random_heatmap(seed=6)
    a = detect_obm(heatmap)
    b = detect_obm(heatmap)
    np.testing.assert_array_equal(a.obm_values, b.obm_values)
    assert a.signals == b.signals
    assert a.signal_strengths == b.signal_strengths


def test_custom_config_is_honoured() -> None:
    heatmap = _random_heatmap(seed=5, n_t=12)
    assert detect_obm(heatmap, OBMConfig(min_rows=20)).is_empty
    quiet = detect_obm(heatmap, OBMConfig(signal_min_values=100))
    assert set(quiet.signals) == {SIGNAL_NONE}


def test_frame_and_wire_shapes() -> None:
    series = detect_obm(_random_heatmap(seed=3, n_t=30))
    frame = series.to_frame()
    assert len(frame) == 29
    assert frame["forecast"].isna().sum() == 3
    payload = series.to_dict()
    assert payload["forecastValues"][:3] == [None, None, None]
    assert isinstance(payload["timestamps"][0], int)
    assert not math.isnan(payload["obmValues"][-1])
