"""Engine configuration for the optical-path predictor and OBM detector.

Every tunable constant of the field builder, entry-point selector, path
finder, momentum derivator and OBM detector lives here with its
production default. ``EngineConfig()`` reproduces the dashboard's
behaviour exactly; YAML files only need to list the keys they override.

Example YAML::

    path_search:
      bend_penalty: 0.08
    entry_points:
      max_relax_iterations: 10
    backend:
      name: torch
      device: auto
"""
from __future__ import annotations

import hashlib
import logging
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field

from ..order_book_momentum.config import OBMConfig

logger: logging.Logger = logging.getLogger(__name__)


class FieldConfig(BaseModel):
    """Refractive index mapping ``n = base + scale * exp(-decay * v_norm)``."""

    base_index: float = 1.0
    exp_decay: float = Field(default=5.0, gt=0.0)
    exp_scale: float = Field(default=2.0, gt=0.0)


class EntryPointConfig(BaseModel):
    """Entry-point spacing and repulsion relaxation."""

    separation_divisor: float = Field(default=1.5, gt=0.0)
    max_relax_iterations: int = Field(default=20, ge=0)


class PathSearchConfig(BaseModel):
    """Composite cost weights for the stepwise least-resistance search."""

    impassable_threshold: float = 3.0
    bend_penalty: float = Field(default=0.05, ge=0.0)
    attraction_weight: float = Field(default=0.3, ge=0.0)
    gradient_weight: float = 0.1
    repulsion_weight: float = Field(default=0.4, ge=0.0)
    repulsion_divisor: float = Field(default=3.0, gt=0.0)
    radius_volatility_scale: float = Field(default=0.2, ge=0.0)
    min_search_radius: int = Field(default=2, ge=0)
    volatility_floor: float = Field(default=0.01, ge=0.0)
    volatility_cap: float = Field(default=0.5, gt=0.0)
    default_volatility: float = Field(default=0.05, ge=0.0)


class MomentumConfig(BaseModel):
    """Finite-difference momentum and confidence blend."""

    min_dt_hours: float = Field(default=0.001, gt=0.0)
    dy_scale: float = 20.0
    confidence_floor: float = 0.3
    confidence_span: float = 0.7
    consistency_weight: float = 0.4
    speed_weight: float = 0.3
    stability_weight: float = 0.3
    stability_decay: float = 2.0
    first_consistency: float = 0.5
    default_confidence: float = 0.5


class BackendConfig(BaseModel):
    """Numeric backend selection."""

    name: Literal["numpy", "torch"] = "numpy"
    device: str = "cpu"
    fallback_to_reference: bool = True


class EngineConfig(BaseModel):
    """Complete parameterization of one prediction / OBM run."""

    refraction: FieldConfig = Field(default_factory=FieldConfig)
    entry_points: EntryPointConfig = Field(default_factory=EntryPointConfig)
    path_search: PathSearchConfig = Field(default_factory=PathSearchConfig)
    momentum: MomentumConfig = Field(default_factory=MomentumConfig)
    obm: OBMConfig = Field(default_factory=OBMConfig)
    backend: BackendConfig = Field(default_factory=BackendConfig)

    @property
    def config_version(self) -> str:
        """Short deterministic hash of every parameter."""
        flat: dict[str, Any] = {}
        for section, values in self.model_dump().items():
            for key, value in values.items():
                flat[f"{section}.{key}"] = value
        raw = "|".join(f"{k}={v}" for k, v in sorted(flat.items()))
        return hashlib.sha256(raw.encode()).hexdigest()[:12]

    # ------------------------------------------------------------------
    # Persistence (YAML)
    # ------------------------------------------------------------------

    @classmethod
    def from_yaml(cls, path: Path) -> "EngineConfig":
        """Load an engine config from a YAML mapping.

        Raises:
            FileNotFoundError: If *path* does not exist.
            ValueError: If the file is empty or not a mapping.
            pydantic.ValidationError: If a value is out of range.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Engine config not found: {path}")
        logger.info("Loading engine config from %s", path)
        raw = yaml.safe_load(path.read_text())
        if raw is None:
            raise ValueError(f"Engine config is empty: {path}")
        if not isinstance(raw, dict):
            raise ValueError(
                f"Expected YAML mapping at top level, got {type(raw).__name__}: {path}"
            )
        return cls.model_validate(raw)

    def to_yaml(self, path: Path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(yaml.safe_dump(self.model_dump(), sort_keys=False))
        logger.info("Wrote engine config %s to %s", self.config_version, path)
        return path
