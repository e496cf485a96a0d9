"""Momentum vectors and confidence scores along a finished path.

Interior point ``i`` uses the two adjacent segments (time in hours):

    v1 = (p[i] - p[i-1]) / (dt1 * n[i-1])
    v2 = (p[i+1] - p[i]) / (dt2 * n[i])
    a  = (v2 - v1) / (dt1 + dt2)
    force = a * n[i]

A zero time delta is replaced by ``min_dt_hours`` everywhere it is used.
The drawn vector is ``(1, 20 * v2)``. Confidence blends direction
consistency with the previous interior vector, speed ``1 / n[i]`` and
force stability ``exp(-2 |force|)`` into ``(0.3, 1.0]``.

The first point carries zero momentum and the last repeats the final
interior vector, so there is one vector per path point. Confidence has
one score per interior point plus a repeat of the last one.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import numpy as np

from ..market_data import to_utc_datetime
from .backends import NumpyBackend
from .config import MomentumConfig
from .path_finder import Path

logger = logging.getLogger(__name__)

SECONDS_PER_HOUR = 3600.0


@dataclass(frozen=True)
class MomentumVector:
    timestamp: int
    price: float
    dx: float
    dy: float
    magnitude: float
    direction: float
    force: float

    @property
    def time(self) -> datetime:
        return to_utc_datetime(self.timestamp)

    def to_dict(self) -> dict[str, Any]:
        return {
            "time": self.time.isoformat(),
            "timestamp": self.timestamp,
            "price": self.price,
            "dx": self.dx,
            "dy": self.dy,
            "magnitude": self.magnitude,
            "direction": self.direction,
            "force": self.force,
        }


@dataclass(frozen=True)
class MomentumResult:
    vectors: tuple[MomentumVector, ...] = field(default_factory=tuple)
    confidence: tuple[float, ...] = field(default_factory=tuple)

    @property
    def is_empty(self) -> bool:
        return not self.vectors


def derive_momentum(
    path: Path,
    config: MomentumConfig | None = None,
    backend: NumpyBackend | None = None,
) -> MomentumResult:
    """Finite-difference momentum and confidence for *path*.

    Returns an empty result for paths with fewer than three points.
    """
    config = config or MomentumConfig()
    n = len(path)
    if n < 3:
        return MomentumResult()

    xp = backend or NumpyBackend()
    # Differences are taken in int64 seconds before any float32 device sees them.
    dt = xp.asarray(np.diff(path.timestamps) / SECONDS_PER_HOUR)
    prices = xp.asarray(path.prices)
    resistance = xp.asarray(path.resistances)

    dt = xp.where(dt == 0, config.min_dt_hours, dt)
    segment_velocity = (prices[1:] - prices[:-1]) / (dt * resistance[:-1])

    v1 = segment_velocity[:-1]
    v2 = segment_velocity[1:]
    accel = (v2 - v1) / (dt[:-1] + dt[1:])
    r_mid = resistance[1:-1]
    force = accel * r_mid

    dy = v2 * config.dy_scale
    dx = xp.full(n - 2, 1.0)
    magnitude = xp.sqrt(dx * dx + dy * dy)
    direction = xp.atan2(dy, dx)

    consistency = xp.abs(xp.cos(direction[:-1] - direction[1:]))
    speed = 1.0 / r_mid
    stability = xp.exp(xp.abs(force) * -config.stability_decay)

    dy_h = xp.to_numpy(dy)
    mag_h = xp.to_numpy(magnitude)
    dir_h = xp.to_numpy(direction)
    force_h = xp.to_numpy(force)
    consistency_h = np.concatenate(([config.first_consistency], xp.to_numpy(consistency)))
    blend = (
        config.consistency_weight * consistency_h
        + config.speed_weight * xp.to_numpy(speed)
        + config.stability_weight * xp.to_numpy(stability)
    )
    scores = config.confidence_floor + config.confidence_span * blend

    points = path.points
    vectors = [MomentumVector(points[0].timestamp, points[0].price, 0.0, 0.0, 0.0, 0.0, 0.0)]
    for k in range(n - 2):
        pt = points[k + 1]
        vectors.append(
            MomentumVector(
                timestamp=pt.timestamp,
                price=pt.price,
                dx=1.0,
                dy=float(dy_h[k]),
                magnitude=float(mag_h[k]),
                direction=float(dir_h[k]),
                force=float(force_h[k]),
            )
        )
    last = vectors[-1]
    vectors.append(
        MomentumVector(
            timestamp=points[-1].timestamp,
            price=points[-1].price,
            dx=last.dx,
            dy=last.dy,
            magnitude=last.magnitude,
            direction=last.direction,
            force=last.force,
        )
    )

    confidence = [float(s) for s in scores]
    confidence.append(confidence[-1] if confidence else config.default_confidence)
    return MomentumResult(vectors=tuple(vectors), confidence=tuple(confidence))
