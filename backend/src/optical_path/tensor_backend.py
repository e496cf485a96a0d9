"""Torch tensor backend for the optical-path engine.

Implements the :class:`~src.optical_path.backends.NumpyBackend` primitives
with torch so the refractive field, path search and momentum derivation
can run on an accelerator. Tensors never leave this module: ``to_numpy``
and ``item`` copy results back to host memory before the engine stores
them.

Device resolution follows the training scripts: ``"auto"`` picks mps,
then cuda, then cpu. mps has no float64 support, so it runs in float32
and matches the reference backend only within float32 tolerance.
"""
from __future__ import annotations

import logging
from typing import Any

import numpy as np
import torch

from .backends import NumpyBackend

logger = logging.getLogger(__name__)


def _resolve_device(requested: str = "auto") -> torch.device:
    if requested != "auto":
        return torch.device(requested)
    if torch.backends.mps.is_available():
        return torch.device("mps")
    if torch.cuda.is_available():
        return torch.device("cuda")
    return torch.device("cpu")


class TorchBackend(NumpyBackend):
    """Array primitives on torch tensors."""

    name: str = "torch"

    def __init__(self, device: str = "cpu") -> None:
        self.device = _resolve_device(device)
        self.dtype = torch.float32 if self.device.type == "mps" else torch.float64
        logger.info("Torch backend on %s (%s)", self.device, self.dtype)

    def _tensor(self, value: Any) -> torch.Tensor:
        if isinstance(value, torch.Tensor):
            return value
        return torch.as_tensor(value, dtype=self.dtype, device=self.device)

    # ── Construction ──────────────────────────────────────────────

    def asarray(self, values: Any) -> torch.Tensor:
        if isinstance(values, torch.Tensor):
            return values.to(device=self.device, dtype=self.dtype)
        # Copy: engine arrays are read-only and torch cannot share them.
        return torch.as_tensor(
            np.array(values, dtype=np.float64), dtype=self.dtype, device=self.device
        )

    def arange(self, start: int, stop: int) -> torch.Tensor:
        return torch.arange(start, stop, dtype=self.dtype, device=self.device)

    def zeros_like(self, x: torch.Tensor) -> torch.Tensor:
        return torch.zeros_like(x)

    def full(self, n: int, value: float) -> torch.Tensor:
        return torch.full((n,), value, dtype=self.dtype, device=self.device)

    # ── Elementwise ───────────────────────────────────────────────

    def abs(self, x: torch.Tensor) -> torch.Tensor:
        return torch.abs(x)

    def exp(self, x: torch.Tensor) -> torch.Tensor:
        return torch.exp(x)

    def sqrt(self, x: torch.Tensor) -> torch.Tensor:
        return torch.sqrt(x)

    def atan2(self, y: torch.Tensor, x: torch.Tensor) -> torch.Tensor:
        return torch.atan2(self._tensor(y), self._tensor(x))

    def cos(self, x: torch.Tensor) -> torch.Tensor:
        return torch.cos(x)

    def where(self, cond: torch.Tensor, a: Any, b: Any) -> torch.Tensor:
        return torch.where(cond, self._tensor(a), self._tensor(b))

    # ── Reductions ────────────────────────────────────────────────

    def row_max(self, x: torch.Tensor) -> torch.Tensor:
        return torch.amax(x, dim=-1, keepdim=True)

    def row_sum(self, x: torch.Tensor) -> torch.Tensor:
        return torch.sum(x, dim=-1)

    def argmin(self, x: torch.Tensor) -> int:
        return int(torch.argmin(x).item())

    def item(self, x: Any) -> float:
        if isinstance(x, torch.Tensor):
            return float(x.item())
        return float(x)

    # ── Export ────────────────────────────────────────────────────

    def to_numpy(self, x: Any) -> np.ndarray:
        if isinstance(x, torch.Tensor):
            return x.detach().cpu().numpy().astype(np.float64)
        return np.asarray(x, dtype=np.float64)

    def describe(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "device": str(self.device),
            "dtype": str(self.dtype).replace("torch.", ""),
            "accelerated": self.device.type != "cpu",
        }
