"""Candlestick and order-book heatmap containers.

Both inputs arrive from the dashboard's fetch layer as JSON:

    candlesticks: [{"timestamp": 1700000000, "close": 101.5, ...}, ...]
    heatmap: {
        "timestamps": [1700000000, ...],            # T, strictly increasing
        "priceLevels": [99.0, 99.5, ...],           # P, strictly increasing
        "heatmap": [{"volumes": [12.0, -3.0, ...]}, ...],   # T rows of P
    }

Volumes are signed (bid / ask side); every consumer uses the magnitude.
Shape violations fail fast at construction. Empty inputs are valid and
propagate as empty results downstream.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)


def to_utc_datetime(ts_seconds: float) -> datetime:
    """Convert integer epoch seconds to an aware UTC datetime."""
    return datetime.fromtimestamp(float(ts_seconds), tz=timezone.utc)


def nearest_price_index(price_levels: Sequence[float] | np.ndarray, target: float) -> int:
    """Return the grid index whose price is closest to *target*.

    Ties resolve to the smallest index.

    Raises:
        ValueError: If *price_levels* is empty.
    """
    levels = np.asarray(price_levels, dtype=np.float64)
    if levels.size == 0:
        raise ValueError("price_levels is empty; cannot map a price to the grid")
    return int(np.argmin(np.abs(levels - float(target))))


def _require_strictly_increasing(values: np.ndarray, name: str) -> None:
    if values.size > 1 and not np.all(np.diff(values) > 0):
        raise ValueError(f"{name} must be strictly increasing")


def _readonly(arr: np.ndarray) -> np.ndarray:
    arr.setflags(write=False)
    return arr


# ──────────────────────────────────────────────────────────────────────
# Candlesticks
# ──────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Candlestick:
    """One OHLCV bar. Only ``timestamp`` and ``close`` feed the engines."""

    timestamp: int
    close: float
    open: Optional[float] = None
    high: Optional[float] = None
    low: Optional[float] = None
    volume: Optional[float] = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Candlestick":
        try:
            timestamp = int(record["timestamp"])
            close = float(record["close"])
        except KeyError as exc:
            raise ValueError(f"Candlestick record missing field {exc.args[0]!r}") from exc

        def _opt(key: str) -> Optional[float]:
            value = record.get(key)
            return None if value is None else float(value)

        return cls(
            timestamp=timestamp,
            close=close,
            open=_opt("open"),
            high=_opt("high"),
            low=_opt("low"),
            volume=_opt("volume"),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"timestamp": self.timestamp, "close": self.close}
        for key in ("open", "high", "low", "volume"):
            value = getattr(self, key)
            if value is not None:
                out[key] = value
        return out


def candlesticks_from_records(
    records: Iterable[Mapping[str, Any]],
) -> tuple[Candlestick, ...]:
    """Parse and validate a candlestick series.

    Raises:
        ValueError: If a record is malformed or timestamps are not
            strictly increasing.
    """
    candles = tuple(Candlestick.from_record(r) for r in records)
    ts = np.array([c.timestamp for c in candles], dtype=np.int64)
    _require_strictly_increasing(ts, "candlestick timestamps")
    return candles


# ──────────────────────────────────────────────────────────────────────
# Heatmap
# ──────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Heatmap:
    """Signed order-book volume on a fixed price grid over time.

    Attributes:
        timestamps: ``(T,)`` int64 epoch seconds, strictly increasing.
        price_levels: ``(P,)`` float64 grid, strictly increasing.
        volumes: ``(T, P)`` float64 signed volume per level.
    """

    timestamps: np.ndarray
    price_levels: np.ndarray
    volumes: np.ndarray = field(repr=False)

    def __post_init__(self) -> None:
        ts = np.array(self.timestamps, dtype=np.int64).reshape(-1)
        levels = np.array(self.price_levels, dtype=np.float64).reshape(-1)
        vols = np.array(self.volumes, dtype=np.float64)
        if vols.size == 0:
            vols = vols.reshape(len(ts), levels.size) if len(ts) == 0 else vols
        if vols.ndim != 2:
            raise ValueError(f"volumes must be 2-D (T, P), got shape {vols.shape}")
        if vols.shape[0] != ts.size:
            raise ValueError(
                f"heatmap has {vols.shape[0]} rows but {ts.size} timestamps"
            )
        if ts.size and vols.shape[1] != levels.size:
            raise ValueError(
                f"every volumes row must have {levels.size} entries, got {vols.shape[1]}"
            )
        if not np.all(np.isfinite(vols)):
            raise ValueError("volumes must be finite")
        _require_strictly_increasing(ts, "heatmap timestamps")
        _require_strictly_increasing(levels, "priceLevels")

        object.__setattr__(self, "timestamps", _readonly(ts))
        object.__setattr__(self, "price_levels", _readonly(levels))
        object.__setattr__(self, "volumes", _readonly(vols))

    # ── Construction ──────────────────────────────────────────────

    @classmethod
    def empty(cls) -> "Heatmap":
        return cls(
            timestamps=np.zeros(0, dtype=np.int64),
            price_levels=np.zeros(0, dtype=np.float64),
            volumes=np.zeros((0, 0), dtype=np.float64),
        )

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Heatmap":
        """Build from the fetch-layer JSON shape.

        Accepts ``priceLevels`` or ``price_levels``; rows may be
        ``{"volumes": [...]}`` objects or bare lists.
        """
        timestamps = payload.get("timestamps", [])
        levels = payload.get("priceLevels", payload.get("price_levels", []))
        rows = payload.get("heatmap", [])

        volumes: list[list[float]] = []
        for i, row in enumerate(rows):
            if isinstance(row, Mapping):
                if "volumes" not in row:
                    raise ValueError(f"heatmap row {i} has no 'volumes'")
                row = row["volumes"]
            volumes.append([float(v) for v in row])

        if len(volumes) == 0:
            vol_arr = np.zeros((0, len(levels)), dtype=np.float64)
        else:
            widths = {len(r) for r in volumes}
            if len(widths) != 1:
                raise ValueError(
                    f"heatmap rows have inconsistent widths: {sorted(widths)}"
                )
            vol_arr = np.array(volumes, dtype=np.float64)

        return cls(
            timestamps=np.asarray(timestamps, dtype=np.int64),
            price_levels=np.asarray(levels, dtype=np.float64),
            volumes=vol_arr,
        )

    # ── Shape helpers ─────────────────────────────────────────────

    @property
    def n_times(self) -> int:
        return int(self.timestamps.size)

    @property
    def n_levels(self) -> int:
        return int(self.price_levels.size)

    @property
    def is_empty(self) -> bool:
        return self.n_times == 0 or self.n_levels == 0

    # ── Export ────────────────────────────────────────────────────

    def to_payload(self) -> dict[str, Any]:
        return {
            "timestamps": [int(t) for t in self.timestamps],
            "priceLevels": [float(p) for p in self.price_levels],
            "heatmap": [{"volumes": row.tolist()} for row in self.volumes],
        }

    def to_frame(self) -> pd.DataFrame:
        """Long-format frame: one row per (timestamp, price level)."""
        if self.is_empty:
            return pd.DataFrame(
                {
                    "timestamp": pd.Series([], dtype=np.int64),
                    "price": pd.Series([], dtype=np.float64),
                    "volume": pd.Series([], dtype=np.float64),
                }
            )
        return pd.DataFrame(
            {
                "timestamp": np.repeat(self.timestamps, self.n_levels),
                "price": np.tile(self.price_levels, self.n_times),
                "volume": self.volumes.reshape(-1),
            }
        )


# ──────────────────────────────────────────────────────────────────────
# Snapshot (both inputs together)
# ──────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class MarketSnapshot:
    """A candlestick series and heatmap fetched for the same window."""

    candlesticks: tuple[Candlestick, ...]
    heatmap: Heatmap

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "MarketSnapshot":
        if not isinstance(payload, Mapping):
            raise ValueError(
                f"Expected a mapping with 'candlesticks' and 'heatmap', got {type(payload).__name__}"
            )
        return cls(
            candlesticks=candlesticks_from_records(payload.get("candlesticks", [])),
            heatmap=Heatmap.from_payload(payload.get("heatmap", {})),
        )

    @classmethod
    def from_json_file(cls, path: Path) -> "MarketSnapshot":
        """Load a ``{"candlesticks": [...], "heatmap": {...}}`` JSON file.

        Raises:
            FileNotFoundError: If *path* does not exist.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Market snapshot not found: {path}")
        logger.info("Loading market snapshot from %s", path)
        snapshot = cls.from_payload(json.loads(path.read_text()))
        logger.info(
            "Snapshot: %d candles, heatmap %dx%d",
            len(snapshot.candlesticks),
            snapshot.heatmap.n_times,
            snapshot.heatmap.n_levels,
        )
        return snapshot

    @property
    def closes(self) -> np.ndarray:
        return np.array([c.close for c in self.candlesticks], dtype=np.float64)
