"""Greedy least-resistance path search through the refractive field.

For each entry point the finder walks forward one timestamp at a time.
At step ``i`` it searches a price-index window around the current index
and moves to the candidate with the lowest composite cost:

    cost(j) = n[i, j]                                   optical resistance
            + 0.05 * |j - cur|                          bend penalty
            + 0.3 * |j - actual| / P                    market attraction
            + 0.1 * (gradUp if j > cur else gradDown)   gradient preference
            + sum_k 0.4 * (R - d_k) / R  for d_k < R    repulsion

where ``actual`` is the grid index of the candle close at ``i`` (no
attraction when there is no candle), ``d_k`` the distance to prior path
``k`` at the same timestamp and ``R = max(1, floor(P / (K * 3)))``.
Cells above the impassable cutoff are dropped from the window; when the
whole window is dropped the path stays where it is.

The window arithmetic runs on the configured array backend. Grid indices
and control flow stay on the host.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Sequence

import numpy as np

from ..market_data import to_utc_datetime
from .backends import NumpyBackend
from .config import PathSearchConfig
from .entry_points import EntryPoint
from .field import ResistanceMap

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PathPoint:
    timestamp: int
    price: float
    resistance: float

    @property
    def time(self) -> datetime:
        return to_utc_datetime(self.timestamp)

    def to_dict(self) -> dict[str, Any]:
        return {
            "time": self.time.isoformat(),
            "timestamp": self.timestamp,
            "price": self.price,
            "resistance": self.resistance,
        }


@dataclass(frozen=True)
class Path:
    """A finished trajectory: one point per timestamp from its entry on."""

    points: tuple[PathPoint, ...]
    price_indices: tuple[int, ...]
    start_time_index: int = 0

    def __len__(self) -> int:
        return len(self.points)

    def index_at(self, time_index: int) -> Optional[int]:
        """Grid index occupied at *time_index*, or None if not covered."""
        offset = time_index - self.start_time_index
        if 0 <= offset < len(self.price_indices):
            return self.price_indices[offset]
        return None

    @property
    def prices(self) -> np.ndarray:
        return np.array([p.price for p in self.points], dtype=np.float64)

    @property
    def resistances(self) -> np.ndarray:
        return np.array([p.resistance for p in self.points], dtype=np.float64)

    @property
    def timestamps(self) -> np.ndarray:
        return np.array([p.timestamp for p in self.points], dtype=np.int64)

    def to_records(self) -> list[dict[str, Any]]:
        return [p.to_dict() for p in self.points]


def estimate_volatility(
    closes: Sequence[float] | np.ndarray,
    config: PathSearchConfig | None = None,
) -> float:
    """Clamped population stddev of absolute fractional close changes.

    Changes from a zero close are skipped. With fewer than two closes, or
    no usable change, the configured default is returned.
    """
    config = config or PathSearchConfig()
    prices = np.asarray(closes, dtype=np.float64)
    if prices.size < 2:
        return config.default_volatility
    prev, cur = prices[:-1], prices[1:]
    valid = prev != 0
    if not np.any(valid):
        return config.default_volatility
    changes = np.abs((cur[valid] - prev[valid]) / prev[valid])
    return float(np.clip(changes.std(), config.volatility_floor, config.volatility_cap))


def base_search_radius(n_levels: int, volatility: float, config: PathSearchConfig) -> int:
    scaled = int(math.floor(n_levels * volatility * config.radius_volatility_scale))
    return max(config.min_search_radius, scaled)


def _market_indices(price_levels: np.ndarray, closes: np.ndarray) -> np.ndarray:
    if closes.size == 0 or price_levels.size == 0:
        return np.zeros(0, dtype=np.int64)
    return np.argmin(np.abs(closes[:, None] - price_levels[None, :]), axis=1)


def find_path(
    field: np.ndarray,
    resistance_map: ResistanceMap,
    timestamps: Sequence[int] | np.ndarray,
    closes: Sequence[float] | np.ndarray,
    entry: EntryPoint,
    prior_paths: Sequence[Path] = (),
    path_index: int = 0,
    config: PathSearchConfig | None = None,
    backend: NumpyBackend | None = None,
) -> Path:
    """Trace one path from *entry* to the last timestamp.

    Args:
        field: ``(T, P)`` refractive field.
        resistance_map: Gradients derived from *field*.
        timestamps: ``(T,)`` epoch seconds of the heatmap rows.
        closes: Candlestick closes aligned with the heatmap rows; may be
            shorter than ``T`` (no attraction past its end).
        entry: Starting point.
        prior_paths: Paths already finished in this run, read-only.
        path_index: Position of this path in the run; negative disables
            repulsion.
        config: Cost weights and search-radius parameters.
        backend: Array backend for the window arithmetic.

    Returns:
        Path with ``T - entry.time_index`` points (empty when the field is
        empty or the entry lies past the last timestamp).
    """
    config = config or PathSearchConfig()
    xp = backend or NumpyBackend()
    ts = np.asarray(timestamps, dtype=np.int64)
    n_times = int(field.shape[0]) if field.ndim == 2 else 0
    n_levels = int(field.shape[1]) if field.ndim == 2 else 0
    start = entry.time_index
    if field.size == 0 or start >= n_times:
        return Path(points=(), price_indices=(), start_time_index=start)

    close_arr = np.asarray(closes, dtype=np.float64)
    market_idx = _market_indices(resistance_map.prices, close_arr)
    radius0 = base_search_radius(n_levels, estimate_volatility(close_arr, config), config)

    repel = bool(prior_paths) and path_index >= 0
    repel_distance = (
        max(1, int(math.floor(n_levels / (len(prior_paths) * config.repulsion_divisor))))
        if repel
        else 0
    )

    f = xp.asarray(field)
    grad_up = xp.asarray(resistance_map.gradient_up)
    grad_down = xp.asarray(resistance_map.gradient_down)

    current = int(entry.price_index)
    indices = [current]
    points = [
        PathPoint(int(ts[start]), float(resistance_map.prices[current]), float(field[start, current]))
    ]
    stuck_steps = 0

    for i in range(start + 1, n_times):
        actual = int(market_idx[i]) if i < market_idx.size else -1
        radius = radius0 + (abs(actual - current) if actual >= 0 else 0)
        lo = max(0, current - radius)
        hi = min(n_levels - 1, current + radius)

        row = f[i, lo:hi + 1]
        candidates = xp.arange(lo, hi + 1)
        delta = candidates - current

        cost = row + xp.abs(delta) * config.bend_penalty
        if actual >= 0:
            cost = cost + xp.abs(candidates - actual) * (config.attraction_weight / n_levels)
        directional = xp.where(
            delta > 0,
            grad_up[i, lo:hi + 1],
            xp.where(delta < 0, grad_down[i, lo:hi + 1], 0.0),
        )
        cost = cost + directional * config.gradient_weight

        if repel:
            others = []
            for k, other in enumerate(prior_paths):
                other_idx = other.index_at(i) if k != path_index else None
                if other_idx is not None:
                    others.append(other_idx)
            if others:
                dist = xp.abs(candidates.reshape(-1, 1) - xp.asarray(others).reshape(1, -1))
                push = xp.where(
                    dist < repel_distance,
                    (repel_distance - dist) / repel_distance * config.repulsion_weight,
                    0.0,
                )
                cost = cost + xp.row_sum(push)

        cost = xp.where(row > config.impassable_threshold, math.inf, cost)
        best = xp.argmin(cost)
        if math.isinf(xp.item(cost[best])):
            stuck_steps += 1
        else:
            current = lo + best

        indices.append(current)
        points.append(
            PathPoint(int(ts[i]), float(resistance_map.prices[current]), float(field[i, current]))
        )

    if stuck_steps:
        logger.debug("Path %d held its index on %d impassable step(s)", path_index, stuck_steps)
    return Path(points=tuple(points), price_indices=tuple(indices), start_time_index=start)


def find_paths(
    field: np.ndarray,
    resistance_map: ResistanceMap,
    timestamps: Sequence[int] | np.ndarray,
    closes: Sequence[float] | np.ndarray,
    entries: Sequence[EntryPoint],
    config: PathSearchConfig | None = None,
    backend: NumpyBackend | None = None,
) -> list[Path]:
    """Trace every entry in order; each path is repelled by the ones before it."""
    finished: list[Path] = []
    for k, entry in enumerate(entries):
        path = find_path(
            field,
            resistance_map,
            timestamps,
            closes,
            entry,
            prior_paths=tuple(finished),
            path_index=k,
            config=config,
            backend=backend,
        )
        finished.append(path)
    return finished
