"""Entry-point selection for the multi-path search.

Entry points are spread at evenly spaced *prices* over the grid, pushed
apart by a bounded pairwise relaxation, and finally checked for the
current market price: if no entry sits within ``min_separation`` grid
steps of the first candle's close, the middle entry is replaced by the
market point. Every entry starts at ``time_index = 0``.

A single requested path is always the market-price point.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from typing import Any, Sequence

import numpy as np

from ..market_data import nearest_price_index
from .config import EntryPointConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EntryPoint:
    price: float
    price_index: int
    time_index: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "price": self.price,
            "priceIndex": self.price_index,
            "timeIndex": self.time_index,
        }


def min_separation(n_levels: int, path_count: int, divisor: float = 1.5) -> int:
    """``max(1, floor(P / (path_count * divisor)))``."""
    if path_count <= 0:
        return 1
    return max(1, int(math.floor(n_levels / (path_count * divisor))))


def separation_violation(indices: Sequence[int], min_sep: int) -> int:
    """Total shortfall ``sum(max(0, min_sep - |a - b|))`` over all pairs."""
    total = 0
    for a in range(len(indices)):
        for b in range(a + 1, len(indices)):
            total += max(0, min_sep - abs(int(indices[a]) - int(indices[b])))
    return total


def _pair_shortfall(indices: Sequence[int], touched: tuple[int, int], min_sep: int) -> int:
    """Shortfall of every pair that involves an index in *touched*."""
    total = 0
    for a in touched:
        for b in range(len(indices)):
            if b == a or (b in touched and b < a):
                continue
            total += max(0, min_sep - abs(indices[a] - indices[b]))
    return total


def relax_entry_points(
    points: Sequence[EntryPoint],
    min_sep: int,
    price_levels: np.ndarray,
) -> tuple[tuple[EntryPoint, ...], bool]:
    """One repulsion pass over every pair of entry points.

    Pairs closer than *min_sep* are pushed apart by
    ``max(1, ceil((min_sep - d) / 2))`` each: the lower index moves down
    and the higher one up (the earlier point counts as lower on a tie),
    both clamped to the grid. This fixed half-gap step replaces a push
    scaled by ``(min_sep - d) / min_sep`` so that moves stay on whole grid
    steps and every accepted push closes at least one step of the gap.

    A push that would raise the total :func:`separation_violation` is
    skipped, so on crowded grids (more entries than levels) a pass never
    makes the spacing worse. Moved points take the price of their new
    grid index.

    Returns:
        ``(points', adjusted)``. *adjusted* is True only when the pass
        lowered the total violation; otherwise the input points are
        returned unchanged, either because every pair is far enough apart
        or because no push helps against the grid edges.
    """
    indices = [int(p.price_index) for p in points]
    before = separation_violation(indices, min_sep)
    top = len(price_levels) - 1

    for a in range(len(indices)):
        for b in range(a + 1, len(indices)):
            distance = abs(indices[a] - indices[b])
            if distance >= min_sep:
                continue
            shift = max(1, math.ceil((min_sep - distance) / 2))
            lower, upper = (a, b) if indices[a] <= indices[b] else (b, a)
            trial = list(indices)
            trial[lower] = max(0, indices[lower] - shift)
            trial[upper] = min(top, indices[upper] + shift)
            if trial == indices:
                continue
            touched = (lower, upper)
            if _pair_shortfall(trial, touched, min_sep) > _pair_shortfall(indices, touched, min_sep):
                continue
            indices = trial

    if separation_violation(indices, min_sep) >= before:
        return tuple(points), False

    relaxed = tuple(
        p if idx == p.price_index else replace(p, price_index=idx, price=float(price_levels[idx]))
        for p, idx in zip(points, indices)
    )
    return relaxed, True


def select_entry_points(
    price_levels: Sequence[float] | np.ndarray,
    first_close: float,
    path_count: int,
    config: EntryPointConfig | None = None,
) -> tuple[EntryPoint, ...]:
    """Choose *path_count* starting points for the path search.

    Args:
        price_levels: The heatmap price grid, strictly increasing.
        first_close: Close of the first candlestick (market anchor).
        path_count: Number of paths requested (>= 1).
        config: Separation divisor and relaxation cap.

    Returns:
        Tuple of ``path_count`` entry points, or an empty tuple when the
        grid is empty or ``path_count < 1``.
    """
    config = config or EntryPointConfig()
    levels = np.asarray(price_levels, dtype=np.float64)
    if levels.size == 0 or path_count < 1:
        return ()

    market_index = nearest_price_index(levels, first_close)
    market_point = EntryPoint(price=float(first_close), price_index=market_index)
    if path_count == 1:
        return (market_point,)

    lo, hi = float(levels.min()), float(levels.max())
    targets = lo + (hi - lo) * np.arange(path_count) / (path_count - 1)
    points: tuple[EntryPoint, ...] = tuple(
        EntryPoint(price=float(t), price_index=nearest_price_index(levels, t))
        for t in targets
    )

    min_sep = min_separation(levels.size, path_count, config.separation_divisor)
    passes = 0
    for passes in range(1, config.max_relax_iterations + 1):
        points, adjusted = relax_entry_points(points, min_sep, levels)
        if not adjusted:
            break
    logger.debug(
        "Entry relaxation: %d pass(es), residual violation %d (min_sep=%d)",
        passes,
        separation_violation([p.price_index for p in points], min_sep),
        min_sep,
    )

    if not any(abs(p.price_index - market_index) <= min_sep for p in points):
        middle = path_count // 2
        points = points[:middle] + (market_point,) + points[middle + 1:]
        logger.debug("Market price %.4f substituted at entry %d", first_close, middle)

    return points
