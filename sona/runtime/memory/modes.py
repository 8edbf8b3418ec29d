"""
Learning Modes - Static per-mode capacity and latency settings

WHAT: Table of mode configurations (real-time, balanced, research, edge, batch)
WHERE: sona/runtime/memory/modes.py - consumed by stores and orchestrator
WHO: Orchestrator when constructing stores or switching modes

Values are read as-is; cross-mode consistency is not validated.
"""

from __future__ import annotations

from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field

from .errors import UnknownModeError

DEFAULT_MODE = "balanced"


class ModeConfig(BaseModel):
    """Capacity, clustering and latency parameters for one learning mode."""

    model_config = ConfigDict(frozen=True)

    mode: str
    trajectory_capacity: int = Field(gt=0)
    pattern_clusters: int = Field(gt=0)
    quality_threshold: float = Field(ge=0.0, le=1.0)
    max_latency_ms: float = Field(gt=0.0)
    memory_budget_mb: float = Field(gt=0.0)
    learning_rate: float = Field(default=0.002, gt=0.0)
    batch_size: int = Field(default=32, gt=0)

    @property
    def num_clusters(self) -> int:
        return self.pattern_clusters


MODE_CONFIGS: Dict[str, ModeConfig] = {
    "real-time": ModeConfig(
        mode="real-time",
        trajectory_capacity=1000,
        pattern_clusters=25,
        quality_threshold=0.7,
        max_latency_ms=0.5,
        memory_budget_mb=25,
        learning_rate=0.001,
        batch_size=32,
    ),
    "balanced": ModeConfig(
        mode="balanced",
        trajectory_capacity=3000,
        pattern_clusters=50,
        quality_threshold=0.5,
        max_latency_ms=18,
        memory_budget_mb=50,
        learning_rate=0.002,
        batch_size=32,
    ),
    "research": ModeConfig(
        mode="research",
        trajectory_capacity=10000,
        pattern_clusters=100,
        quality_threshold=0.2,
        max_latency_ms=100,
        memory_budget_mb=100,
        learning_rate=0.002,
        batch_size=64,
    ),
    "edge": ModeConfig(
        mode="edge",
        trajectory_capacity=200,
        pattern_clusters=15,
        quality_threshold=0.8,
        max_latency_ms=1,
        memory_budget_mb=5,
        learning_rate=0.001,
        batch_size=16,
    ),
    "batch": ModeConfig(
        mode="batch",
        trajectory_capacity=5000,
        pattern_clusters=75,
        quality_threshold=0.4,
        max_latency_ms=50,
        memory_budget_mb=75,
        learning_rate=0.002,
        batch_size=128,
    ),
}


def available_modes() -> List[str]:
    return list(MODE_CONFIGS)


def get_mode_config(mode: str) -> ModeConfig:
    """Return a copy of the configuration registered for ``mode``."""
    try:
        return MODE_CONFIGS[mode].model_copy()
    except KeyError:
        raise UnknownModeError(
            f"Unknown mode '{mode}' (expected one of: {', '.join(MODE_CONFIGS)})"
        ) from None


__all__ = [
    "DEFAULT_MODE",
    "ModeConfig",
    "MODE_CONFIGS",
    "available_modes",
    "get_mode_config",
]
