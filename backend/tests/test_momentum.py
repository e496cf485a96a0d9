from __future__ import annotations

import math
import sys
from pathlib import Path as FsPath

import numpy as np
import pytest

BACKEND_ROOT = FsPath(__file__).resolve().parents[1]
sys.path.insert(0, str(BACKEND_ROOT))

from src.market_data import Heatmap  # noqa: E402
from src.optical_path import (  # noqa: E402
    EntryPoint,
    MomentumConfig,
    build_refractive_field,
    build_resistance_map,
    derive_momentum,
    find_path,
)
from src.optical_path.path_finder import Path, PathPoint  # noqa: E402


def _path(timestamps: list[int], prices: list[float], resistance: list[float]) -> Path:
    points = tuple(PathPoint(t, p, r) for t, p, r in zip(timestamps, prices, resistance))
    return Path(points=points, price_indices=tuple(range(len(points))))


def test_short_paths_have_no_momentum() -> None:
    assert derive_momentum(_path([], [], [])).is_empty
    result = derive_momentum(_path([0, 60], [100.0, 101.0], [1.0, 1.0]))
    assert result.is_empty
    assert result.confidence == ()


def test_three_point_path_by_hand() -> None:
    # One-hour steps, unit resistance: v1 = 1, v2 = 2, a = 0.5, force = 0.5.
    path = _path([0, 3600, 7200], [100.0, 101.0, 103.0], [1.0, 1.0, 1.0])
    result = derive_momentum(path)

    assert len(result.vectors) == 3
    assert len(result.confidence) == 2

    first, middle, last = result.vectors
    assert (first.dx, first.dy, first.magnitude, first.force) == (0.0, 0.0, 0.0, 0.0)
    assert middle.dx == 1.0
    assert middle.dy == pytest.approx(40.0)
    assert middle.force == pytest.approx(0.5)
    assert middle.magnitude == pytest.approx(math.sqrt(1601.0))
    assert middle.direction == pytest.approx(math.atan2(40.0, 1.0))

    assert last.timestamp == 7200
    assert last.price == 103.0
    assert (last.dy, last.force, last.direction) == (middle.dy, middle.force, middle.direction)

    blend = 0.4 * 0.5 + 0.3 * 1.0 + 0.3 * math.exp(-1.0)
    expected = 0.3 + 0.7 * blend
    assert result.confidence == pytest.approx((expected, expected))


def test_flat_path_has_level_vectors() -> None:
    path = _path([0, 60, 120, 180], [100.0] * 4, [2.0] * 4)
    result = derive_momentum(path)
    for vector in result.vectors[1:]:
        assert vector.dy == 0.0
        assert vector.direction == 0.0
        assert vector.force == 0.0
    # Interior point 2: consistency 1, speed 1/2, stability 1.
    assert result.confidence[1] == pytest.approx(0.3 + 0.7 * (0.4 + 0.15 + 0.3))


def test_zero_time_delta_is_substituted() -> None:
    path = _path([0, 0, 3600, 3600], [100.0, 101.0, 102.0, 102.0], [1.0, 1.5, 1.2, 1.0])
    result = derive_momentum(path)
    for vector in result.vectors:
        assert np.isfinite([vector.dy, vector.magnitude, vector.direction, vector.force]).all()
    assert all(np.isfinite(result.confidence))

    custom = derive_momentum(path, MomentumConfig(min_dt_hours=0.5))
    assert custom.vectors[1].force != pytest.approx(result.vectors[1].force)


def test_vectors_and_confidence_on_a_traced_path() -> None:
    rng = np.random.default_rng(5)
    volumes = rng.gamma(2.0, 20.0, size=(50, 40))
    heatmap = Heatmap(
        timestamps=1_700_000_000 + 60 * np.arange(50),
        price_levels=100.0 + 0.25 * np.arange(40),
        volumes=volumes,
    )
    field = build_refractive_field(heatmap)
    rmap = build_resistance_map(field, heatmap.price_levels)
    closes = 105.0 + np.cumsum(rng.normal(0.0, 0.1, size=50))
    path = find_path(field, rmap, heatmap.timestamps, closes, EntryPoint(105.0, 20))

    result = derive_momentum(path)
    assert len(result.vectors) == len(path)
    assert len(result.confidence) == len(path) - 1
    assert all(0.3 < c <= 1.0 for c in result.confidence)
    assert [v.timestamp for v in result.vectors] == [p.timestamp for p in path.points]
    assert result.vectors[0].magnitude == 0.0
    for vector in result.vectors[1:]:
        assert vector.magnitude >= 1.0
        assert -math.pi / 2 < vector.direction < math.pi / 2


def test_vector_wire_shape() -> None:
    path = _path([1_700_000_000, 1_700_003_600, 1_700_007_200], [1.0, 2.0, 3.0], [1.0] * 3)
    record = derive_momentum(path).vectors[1].to_dict()
    assert set(record) == {
        "time",
        "timestamp",
        "price",
        "dx",
        "dy",
        "magnitude",
        "direction",
        "force",
    }
    assert record["timestamp"] == 1_700_003_600
    assert record["time"].startswith("2023-11-14T23:13:20")
