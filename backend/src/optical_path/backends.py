"""Array backends for the optical-path engine.

The field builder, path finder and momentum derivator are written once
against the small set of array primitives below. ``NumpyBackend`` is the
reference implementation; ``TorchBackend`` (``tensor_backend.py``) runs the
same primitives on torch tensors, optionally on an accelerator.

Contract for every backend:
    * inputs are numpy arrays / Python scalars;
    * every value handed back to engine callers goes through
      :meth:`NumpyBackend.to_numpy` or :meth:`NumpyBackend.item`, so no
      device handle ever appears in a result;
    * ``argmin`` returns the first index of the minimum.
"""
from __future__ import annotations

import logging
from typing import Any, Sequence

import numpy as np

from .config import BackendConfig

logger = logging.getLogger(__name__)


class NumpyBackend:
    """Reference float64 backend built on numpy."""

    name: str = "numpy"

    # ── Construction ──────────────────────────────────────────────

    def asarray(self, values: Any) -> np.ndarray:
        return np.asarray(values, dtype=np.float64)

    def arange(self, start: int, stop: int) -> np.ndarray:
        return np.arange(start, stop, dtype=np.float64)

    def zeros_like(self, x: np.ndarray) -> np.ndarray:
        return np.zeros_like(x)

    def full(self, n: int, value: float) -> np.ndarray:
        return np.full(n, value, dtype=np.float64)

    # ── Elementwise ───────────────────────────────────────────────

    def abs(self, x: np.ndarray) -> np.ndarray:
        return np.abs(x)

    def exp(self, x: np.ndarray) -> np.ndarray:
        return np.exp(x)

    def sqrt(self, x: np.ndarray) -> np.ndarray:
        return np.sqrt(x)

    def atan2(self, y: np.ndarray, x: np.ndarray) -> np.ndarray:
        return np.arctan2(y, x)

    def cos(self, x: np.ndarray) -> np.ndarray:
        return np.cos(x)

    def where(self, cond: np.ndarray, a: Any, b: Any) -> np.ndarray:
        return np.where(cond, a, b)

    # ── Reductions ────────────────────────────────────────────────

    def row_max(self, x: np.ndarray) -> np.ndarray:
        """Max over the last axis, keeping it for broadcasting."""
        return np.max(x, axis=-1, keepdims=True)

    def row_sum(self, x: np.ndarray) -> np.ndarray:
        return np.sum(x, axis=-1)

    def argmin(self, x: np.ndarray) -> int:
        return int(np.argmin(x))

    def item(self, x: Any) -> float:
        return float(x)

    # ── Export ────────────────────────────────────────────────────

    def to_numpy(self, x: Any) -> np.ndarray:
        return np.asarray(x, dtype=np.float64)

    def describe(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "device": "cpu",
            "dtype": "float64",
            "accelerated": False,
        }


def resolve_backend(config: BackendConfig | None = None) -> NumpyBackend:
    """Instantiate the backend named in *config* (numpy by default)."""
    config = config or BackendConfig()
    if config.name == "numpy":
        return NumpyBackend()
    if config.name == "torch":
        from .tensor_backend import TorchBackend

        return TorchBackend(device=config.device)
    raise ValueError(f"Unknown backend '{config.name}'. Must be one of: numpy, torch")


def backend_names() -> Sequence[str]:
    return ("numpy", "torch")
