from __future__ import annotations

import sys
from pathlib import Path

import numpy as np
import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(BACKEND_ROOT))

from src.market_data import nearest_price_index  # noqa: E402
from src.optical_path import (  # noqa: E402
    EntryPoint,
    EntryPointConfig,
    min_separation,
    relax_entry_points,
    select_entry_points,
    separation_violation,
)

LEVELS = 100.0 + np.arange(100, dtype=np.float64)


def _points(indices: list[int]) -> tuple[EntryPoint, ...]:
    return tuple(EntryPoint(price=float(LEVELS[i]), price_index=i) for i in indices)


def test_min_separation() -> None:
    assert min_separation(100, 10) == 6
    assert min_separation(100, 3) == 22
    assert min_separation(3, 10) == 1
    assert min_separation(1, 3) == 1


def test_relax_step_pushes_crowded_points_apart() -> None:
    points = _points([10, 11, 12])
    first, adjusted = relax_entry_points(points, 5, LEVELS)
    assert adjusted is True
    assert [p.price_index for p in first] == [7, 10, 16]
    assert [p.price for p in first] == [107.0, 110.0, 116.0]

    second, adjusted = relax_entry_points(first, 5, LEVELS)
    assert adjusted is True
    assert [p.price_index for p in second] == [6, 11, 16]

    third, adjusted = relax_entry_points(second, 5, LEVELS)
    assert adjusted is False
    assert third == second


def test_relaxation_violation_does_not_increase() -> None:
    points = _points([10, 11, 12])
    history = [separation_violation([p.price_index for p in points], 5)]
    for _ in range(20):
        points, adjusted = relax_entry_points(points, 5, LEVELS)
        history.append(separation_violation([p.price_index for p in points], 5))
        if not adjusted:
            break
    assert history[:3] == [11, 2, 0]
    assert all(b <= a for a, b in zip(history, history[1:]))


def _evenly_spaced(levels: np.ndarray, count: int) -> tuple[EntryPoint, ...]:
    lo, hi = float(levels.min()), float(levels.max())
    targets = lo + (hi - lo) * np.arange(count) / (count - 1)
    return tuple(EntryPoint(price=float(t), price_index=nearest_price_index(levels, t)) for t in targets)


@pytest.mark.parametrize("n_levels", [1, 2, 3, 5, 8, 13, 21, 40])
def test_relaxation_never_worsens_crowded_grids(n_levels: int) -> None:
    levels = 100.0 + np.arange(n_levels, dtype=np.float64)
    for count in (2, 3, 4, 6, 8, 12, 16, 24):
        min_sep = min_separation(n_levels, count)
        points = _evenly_spaced(levels, count)
        violation = separation_violation([p.price_index for p in points], min_sep)
        for _ in range(20):
            relaxed, adjusted = relax_entry_points(points, min_sep, levels)
            after = separation_violation([p.price_index for p in relaxed], min_sep)
            if adjusted:
                assert after < violation, (n_levels, count)
            else:
                assert relaxed == points
                break
            points, violation = relaxed, after


def test_relax_clamps_at_grid_edges() -> None:
    points = _points([0, 0])
    relaxed, adjusted = relax_entry_points(points, 4, LEVELS)
    assert adjusted is True
    assert [p.price_index for p in relaxed] == [0, 2]
    assert relaxed[0] is points[0]


def test_relax_reports_no_move_when_blocked() -> None:
    levels = np.array([100.0])
    points = (EntryPoint(100.0, 0), EntryPoint(100.0, 0))
    relaxed, adjusted = relax_entry_points(points, 1, levels)
    assert adjusted is False
    assert relaxed == points


def test_relaxed_entries_satisfy_min_separation() -> None:
    entries = select_entry_points(LEVELS, 150.0, 10)
    indices = [e.price_index for e in entries]
    sep = min_separation(len(LEVELS), 10)
    assert separation_violation(indices, sep) == 0
    assert all(e.time_index == 0 for e in entries)


def test_entries_are_evenly_spaced_across_price_range() -> None:
    entries = select_entry_points(LEVELS, 150.0, 4)
    assert [e.price_index for e in entries] == [0, 33, 66, 99]
    assert entries[0].price == pytest.approx(100.0)
    assert entries[-1].price == pytest.approx(199.0)


def test_market_price_replaces_middle_entry_when_far() -> None:
    # Two entries at both ends leave the middle of the grid uncovered.
    entries = select_entry_points(LEVELS, 149.6, 2)
    assert len(entries) == 2
    assert entries[1].price_index == 50
    assert entries[1].price == pytest.approx(149.6)
    assert entries[0].price_index == 0


def test_market_price_kept_when_an_entry_is_close() -> None:
    entries = select_entry_points(LEVELS, 101.0, 2)
    assert [e.price_index for e in entries] == [0, 99]


def test_single_path_is_the_market_point() -> None:
    entries = select_entry_points(LEVELS, 137.2, 1)
    assert entries == (EntryPoint(price=137.2, price_index=37, time_index=0),)


def test_degenerate_inputs() -> None:
    assert select_entry_points([], 100.0, 3) == ()
    assert select_entry_points(LEVELS, 100.0, 0) == ()


def test_relaxation_cap_is_respected() -> None:
    levels = np.array([100.0, 101.0, 102.0, 103.0, 200.0])
    crowded = EntryPointConfig(separation_divisor=0.5, max_relax_iterations=0)
    entries = select_entry_points(levels, 100.0, 3, crowded)
    assert [e.price_index for e in entries] == [0, 3, 4]

    relaxed = select_entry_points(levels, 100.0, 3, EntryPointConfig(separation_divisor=0.5))
    assert len(relaxed) == 3
    assert all(0 <= e.price_index < len(levels) for e in relaxed)
