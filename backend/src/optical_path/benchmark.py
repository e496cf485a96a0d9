"""Side-by-side timing and agreement check of the two backends."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Sequence

import numpy as np

from ..market_data import Candlestick, Heatmap
from .backends import NumpyBackend, resolve_backend
from .config import BackendConfig, EngineConfig
from .predictor import PredictionResult, predict

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BackendComparison:
    reference_seconds: float
    candidate_seconds: float
    candidate_backend: dict[str, Any]
    max_price_diff: float
    max_resistance_diff: float
    max_confidence_diff: float
    fallback_reason: str | None = None

    @property
    def speedup(self) -> float:
        if self.candidate_seconds <= 0.0:
            return float("inf")
        return self.reference_seconds / self.candidate_seconds

    def to_dict(self) -> dict[str, Any]:
        return {
            "referenceSeconds": self.reference_seconds,
            "candidateSeconds": self.candidate_seconds,
            "speedup": self.speedup,
            "candidateBackend": self.candidate_backend,
            "maxPriceDiff": self.max_price_diff,
            "maxResistanceDiff": self.max_resistance_diff,
            "maxConfidenceDiff": self.max_confidence_diff,
            "fallbackReason": self.fallback_reason,
        }


def _max_abs_diff(a: Sequence[np.ndarray], b: Sequence[np.ndarray]) -> float:
    if len(a) != len(b):
        return float("inf")
    worst = 0.0
    for x, y in zip(a, b):
        x = np.asarray(x, dtype=np.float64)
        y = np.asarray(y, dtype=np.float64)
        if x.shape != y.shape:
            return float("inf")
        if x.size:
            worst = max(worst, float(np.max(np.abs(x - y))))
    return worst


def _timed(fn, *args, **kwargs) -> tuple[PredictionResult, float]:
    started = time.perf_counter()
    result = fn(*args, **kwargs)
    return result, time.perf_counter() - started


def compare_backends(
    heatmap: Heatmap,
    candlesticks: Sequence[Candlestick],
    path_count: int = 10,
    config: EngineConfig | None = None,
    device: str = "auto",
) -> BackendComparison:
    """Run the prediction on numpy and on torch and report the gap.

    Differences are the largest absolute element-wise gap across path
    prices, the refractive field and confidence scores. A shape mismatch
    reports ``inf``.
    """
    config = config or EngineConfig()
    reference, ref_s = _timed(predict, heatmap, candlesticks, path_count, config, NumpyBackend())

    candidate_backend = resolve_backend(BackendConfig(name="torch", device=device))
    candidate, cand_s = _timed(
        predict, heatmap, candlesticks, path_count, config, candidate_backend
    )

    comparison = BackendComparison(
        reference_seconds=ref_s,
        candidate_seconds=cand_s,
        candidate_backend=candidate_backend.describe(),
        max_price_diff=_max_abs_diff(
            [p.prices for p in reference.predicted_paths],
            [p.prices for p in candidate.predicted_paths],
        ),
        max_resistance_diff=_max_abs_diff(
            [reference.refractive_indices], [candidate.refractive_indices]
        ),
        max_confidence_diff=_max_abs_diff(
            [np.array(c) for c in reference.confidence_scores_collection],
            [np.array(c) for c in candidate.confidence_scores_collection],
        ),
        fallback_reason=candidate.fallback_reason,
    )
    logger.info(
        "numpy %.3fs vs torch(%s) %.3fs: speedup %.2fx, max price diff %.3g",
        ref_s,
        comparison.candidate_backend["device"],
        cand_s,
        comparison.speedup,
        comparison.max_price_diff,
    )
    return comparison
