"""Prediction orchestrator: field, entry points, paths, momentum.

``predict`` builds the refractive field and resistance map once, selects
the entry points, then traces paths strictly in entry order so each path
is repelled only by the paths finished before it. Momentum and
confidence are derived per path as soon as it is finished.

Backend failures (a backend that cannot load, device errors, numeric
faults, exhausted memory) are handled here and nowhere else: the whole
run is repeated on the numpy reference backend and the result records
why.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field, replace
from typing import Any, Optional, Sequence

import numpy as np

from ..market_data import Candlestick, Heatmap, MarketSnapshot
from .backends import NumpyBackend, resolve_backend
from .config import EngineConfig
from .entry_points import EntryPoint, select_entry_points
from .field import ResistanceMap, build_refractive_field, build_resistance_map
from .momentum import MomentumResult, MomentumVector, derive_momentum
from .path_finder import Path, find_path

logger = logging.getLogger(__name__)

# ImportError covers a missing torch install, AssertionError a torch build
# without the requested device (e.g. "Torch not compiled with CUDA enabled").
BACKEND_ERRORS: tuple[type[BaseException], ...] = (
    ImportError,
    AssertionError,
    RuntimeError,
    FloatingPointError,
    MemoryError,
)


@dataclass(frozen=True)
class PredictionResult:
    """Everything the renderer needs for one prediction run."""

    timestamps: np.ndarray
    actual_price: np.ndarray
    refractive_indices: np.ndarray
    resistance_map: Optional[ResistanceMap]
    entry_points: tuple[EntryPoint, ...] = ()
    predicted_paths: tuple[Path, ...] = ()
    momentum: tuple[MomentumResult, ...] = ()
    backend: str = "numpy"
    fallback_reason: Optional[str] = None
    config_version: str = ""
    elapsed_seconds: float = field(default=0.0, compare=False)

    @classmethod
    def empty(cls, backend: str = "numpy", config_version: str = "") -> "PredictionResult":
        return cls(
            timestamps=np.zeros(0, dtype=np.int64),
            actual_price=np.zeros(0, dtype=np.float64),
            refractive_indices=np.zeros((0, 0), dtype=np.float64),
            resistance_map=None,
            backend=backend,
            config_version=config_version,
        )

    @property
    def path_count(self) -> int:
        return len(self.predicted_paths)

    @property
    def momentum_vectors_collection(self) -> list[tuple[MomentumVector, ...]]:
        return [m.vectors for m in self.momentum]

    @property
    def confidence_scores_collection(self) -> list[tuple[float, ...]]:
        return [m.confidence for m in self.momentum]

    def to_dict(self, include_fields: bool = True) -> dict[str, Any]:
        """Wire shape with camelCase keys.

        ``include_fields=False`` drops the two T x P blocks
        (``refractiveIndices`` and ``resistanceMap``).
        """
        out: dict[str, Any] = {
            "timestamps": [int(t) for t in self.timestamps],
            "actualPrice": [float(p) for p in self.actual_price],
            "entryPoints": [e.to_dict() for e in self.entry_points],
            "predictedPaths": [p.to_records() for p in self.predicted_paths],
            "momentumVectorsCollection": [
                [v.to_dict() for v in vectors] for vectors in self.momentum_vectors_collection
            ],
            "confidenceScoresCollection": [
                list(scores) for scores in self.confidence_scores_collection
            ],
            "backend": self.backend,
            "fallbackReason": self.fallback_reason,
            "configVersion": self.config_version,
        }
        if include_fields:
            out["refractiveIndices"] = self.refractive_indices.tolist()
            out["resistanceMap"] = (
                self.resistance_map.to_records() if self.resistance_map is not None else []
            )
        return out


def _run(
    heatmap: Heatmap,
    closes: np.ndarray,
    path_count: int,
    config: EngineConfig,
    xp: NumpyBackend,
) -> PredictionResult:
    started = time.perf_counter()
    refractive = build_refractive_field(heatmap, config.refraction, xp)
    resistance_map = build_resistance_map(refractive, heatmap.price_levels, xp)
    entries = select_entry_points(
        heatmap.price_levels, float(closes[0]), path_count, config.entry_points
    )

    paths: list[Path] = []
    momentum: list[MomentumResult] = []
    for k, entry in enumerate(entries):
        path = find_path(
            refractive,
            resistance_map,
            heatmap.timestamps,
            closes,
            entry,
            prior_paths=tuple(paths),
            path_index=k,
            config=config.path_search,
            backend=xp,
        )
        paths.append(path)
        momentum.append(derive_momentum(path, config.momentum, xp))

    elapsed = time.perf_counter() - started
    logger.info(
        "Predicted %d path(s) over %dx%d grid on %s in %.3fs",
        len(paths),
        heatmap.n_times,
        heatmap.n_levels,
        xp.name,
        elapsed,
    )
    return PredictionResult(
        timestamps=heatmap.timestamps.copy(),
        actual_price=closes.copy(),
        refractive_indices=refractive,
        resistance_map=resistance_map,
        entry_points=entries,
        predicted_paths=tuple(paths),
        momentum=tuple(momentum),
        backend=xp.name,
        config_version=config.config_version,
        elapsed_seconds=elapsed,
    )


def predict(
    heatmap: Heatmap,
    candlesticks: Sequence[Candlestick],
    path_count: int = 10,
    config: EngineConfig | None = None,
    backend: NumpyBackend | None = None,
) -> PredictionResult:
    """Run the multi-path optical prediction.

    Args:
        heatmap: Order-book heatmap.
        candlesticks: Candles aligned with the heatmap rows.
        path_count: Number of paths (>= 1).
        config: Engine parameters; defaults reproduce the dashboard.
        backend: Explicit backend instance; overrides ``config.backend``.

    Returns:
        PredictionResult. Empty when either input is empty.

    Raises:
        ValueError: If *path_count* < 1 or the backend name is unknown.
    """
    config = config or EngineConfig()
    if path_count < 1:
        raise ValueError(f"path_count must be >= 1, got {path_count}")

    if heatmap.is_empty or len(candlesticks) == 0:
        logger.info("Empty heatmap or candlestick series; returning empty prediction")
        name = backend.name if backend is not None else config.backend.name
        return PredictionResult.empty(backend=name, config_version=config.config_version)

    closes = np.array([c.close for c in candlesticks], dtype=np.float64)
    requested = backend.name if backend is not None else config.backend.name
    try:
        xp = backend or resolve_backend(config.backend)
        return _run(heatmap, closes, path_count, config, xp)
    except BACKEND_ERRORS as exc:
        if requested == NumpyBackend.name or not config.backend.fallback_to_reference:
            raise
        reason = f"{type(exc).__name__}: {exc}"
        logger.warning("Backend '%s' failed (%s); rerunning on numpy", requested, reason)
        result = _run(heatmap, closes, path_count, config, NumpyBackend())
        return replace(result, fallback_reason=reason)


def predict_snapshot(
    snapshot: MarketSnapshot,
    path_count: int = 10,
    config: EngineConfig | None = None,
    backend: NumpyBackend | None = None,
) -> PredictionResult:
    return predict(snapshot.heatmap, snapshot.candlesticks, path_count, config, backend)
