r"""Refractive field and resistance map construction.

Liquidity is treated as an optical medium. Each heatmap row is
normalized by its own largest absolute volume and mapped to a refractive
index

.. math::
    n_{t,j} = 1 + 2 \exp\!\left(-5 \frac{|v_{t,j}|}{\max_k |v_{t,k}|}\right)

so the deepest level of a row has ``n = 1 + 2e^{-5} \approx 1.013`` and
an empty level has ``n = 3``. Rows are normalized independently; there is
no cross-timestamp scaling. A row with no volume at all is uniformly 3.

The resistance map adds first differences along the price axis:

    gradient_down[t, j] = n[t, j] - n[t, j-1]    (0 at j = 0)
    gradient_up[t, j]   = n[t, j+1] - n[t, j]    (0 at j = P-1)
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from ..market_data import Heatmap
from .backends import NumpyBackend
from .config import FieldConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResistanceCell:
    price: float
    resistance: float
    gradient_up: float
    gradient_down: float

    def to_dict(self) -> dict[str, float]:
        return {
            "price": self.price,
            "resistance": self.resistance,
            "gradientUp": self.gradient_up,
            "gradientDown": self.gradient_down,
        }


@dataclass(frozen=True)
class ResistanceMap:
    """Column-wise T x P resistance map with price-axis gradients."""

    prices: np.ndarray
    resistance: np.ndarray
    gradient_up: np.ndarray
    gradient_down: np.ndarray

    @property
    def shape(self) -> tuple[int, int]:
        return tuple(self.resistance.shape)  # type: ignore[return-value]

    def cell(self, t: int, j: int) -> ResistanceCell:
        return ResistanceCell(
            price=float(self.prices[j]),
            resistance=float(self.resistance[t, j]),
            gradient_up=float(self.gradient_up[t, j]),
            gradient_down=float(self.gradient_down[t, j]),
        )

    def to_records(self) -> list[list[dict[str, float]]]:
        """Nested ``[t][j]`` records in the renderer's wire shape."""
        n_t, n_p = self.resistance.shape
        return [[self.cell(t, j).to_dict() for j in range(n_p)] for t in range(n_t)]


def _readonly(arr: np.ndarray) -> np.ndarray:
    arr = np.array(arr, dtype=np.float64)
    arr.setflags(write=False)
    return arr


def build_refractive_field(
    heatmap: Heatmap,
    config: FieldConfig | None = None,
    backend: NumpyBackend | None = None,
) -> np.ndarray:
    """Map heatmap volumes to a ``(T, P)`` refractive index matrix.

    Args:
        heatmap: Input heatmap.
        config: Mapping constants (defaults: base 1, decay 5, scale 2).
        backend: Array backend; numpy when omitted.

    Returns:
        Read-only float64 array, values in ``[base, base + scale]``.
        Shape ``(T, P)``; zero-sized for an empty heatmap.
    """
    config = config or FieldConfig()
    if heatmap.is_empty:
        return _readonly(np.zeros((heatmap.n_times, heatmap.n_levels)))

    xp = backend or NumpyBackend()
    magnitude = xp.abs(xp.asarray(heatmap.volumes))
    row_max = xp.row_max(magnitude)
    has_volume = row_max > 0
    safe_max = xp.where(has_volume, row_max, 1.0)
    normalized = xp.where(has_volume, magnitude / safe_max, 0.0)
    field = config.base_index + xp.exp(normalized * -config.exp_decay) * config.exp_scale

    result = _readonly(xp.to_numpy(field))
    logger.debug(
        "Refractive field %dx%d via %s: min=%.4f max=%.4f",
        result.shape[0],
        result.shape[1],
        xp.name,
        float(result.min()),
        float(result.max()),
    )
    return result


def build_resistance_map(
    field: np.ndarray,
    price_levels: np.ndarray,
    backend: NumpyBackend | None = None,
) -> ResistanceMap:
    """Attach forward / backward price-axis gradients to *field*."""
    prices = _readonly(price_levels)
    if field.size == 0:
        empty = _readonly(np.zeros(field.shape))
        return ResistanceMap(prices, empty, empty, empty)

    xp = backend or NumpyBackend()
    f = xp.asarray(field)
    gradient_down = xp.zeros_like(f)
    gradient_up = xp.zeros_like(f)
    if f.shape[1] > 1:
        step = f[:, 1:] - f[:, :-1]
        gradient_down[:, 1:] = step
        gradient_up[:, :-1] = step

    return ResistanceMap(
        prices=prices,
        resistance=_readonly(field),
        gradient_up=_readonly(xp.to_numpy(gradient_up)),
        gradient_down=_readonly(xp.to_numpy(gradient_down)),
    )
