"""Optical-path price predictor.

Treats order-book liquidity as an optical medium: dense levels have a low
refractive index, empty levels a high one. Predicted price paths are
traced greedily through the resulting field from several entry points,
each path repelled by the ones traced before it.

Modules:
    config: Engine parameters (pydantic) with YAML persistence.
    field: Refractive field and resistance map.
    entry_points: Evenly spaced, relaxed, market-anchored entry points.
    path_finder: Stepwise least-resistance search.
    momentum: Finite-difference momentum and confidence.
    predictor: Orchestration with backend fallback.
    backends: numpy reference backend and backend resolution.
    tensor_backend: torch backend (imported lazily, needs torch).
    benchmark: numpy vs torch timing and agreement.
"""
from __future__ import annotations

from .backends import NumpyBackend, backend_names, resolve_backend
from .benchmark import BackendComparison, compare_backends
from .config import (
    BackendConfig,
    EngineConfig,
    EntryPointConfig,
    FieldConfig,
    MomentumConfig,
    PathSearchConfig,
)
from .entry_points import (
    EntryPoint,
    min_separation,
    relax_entry_points,
    select_entry_points,
    separation_violation,
)
from .field import ResistanceMap, build_refractive_field, build_resistance_map
from .momentum import MomentumResult, MomentumVector, derive_momentum
from .path_finder import Path, PathPoint, estimate_volatility, find_path, find_paths
from .predictor import PredictionResult, predict, predict_snapshot

__all__ = [
    "BackendComparison",
    "BackendConfig",
    "EngineConfig",
    "EntryPoint",
    "EntryPointConfig",
    "FieldConfig",
    "MomentumConfig",
    "MomentumResult",
    "MomentumVector",
    "NumpyBackend",
    "Path",
    "PathPoint",
    "PathSearchConfig",
    "PredictionResult",
    "ResistanceMap",
    "backend_names",
    "build_refractive_field",
    "build_resistance_map",
    "compare_backends",
    "derive_momentum",
    "estimate_volatility",
    "find_path",
    "find_paths",
    "min_separation",
    "predict",
    "predict_snapshot",
    "relax_entry_points",
    "resolve_backend",
    "select_entry_points",
    "separation_violation",
]
