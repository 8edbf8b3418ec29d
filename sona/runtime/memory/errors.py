"""
Memory Errors - Failure taxonomy for the learning runtime

WHAT: Exception types raised by trajectory, pattern and consolidation code
WHERE: sona/runtime/memory/errors.py - shared by every memory component
WHO: Callers deciding which failures to surface and which to ignore

Soft capacity conditions are not errors (they trigger eviction/pruning), and
below-threshold extraction or distillation returns None instead of raising.
"""

from __future__ import annotations


class SonaMemoryError(RuntimeError):
    """Base class for all memory runtime errors."""


class IncompleteTrajectoryError(SonaMemoryError):
    """Raised when judge/distill is called on a trajectory that is still open."""

    def __init__(self, trajectory_id: str) -> None:
        super().__init__(f"Trajectory {trajectory_id} is incomplete")
        self.trajectory_id = trajectory_id


class UnknownPatternError(SonaMemoryError, KeyError):
    """Raised when evolve/merge/split references a pattern id that does not exist."""

    def __init__(self, pattern_id: str) -> None:
        super().__init__(f"Unknown pattern: {pattern_id}")
        self.pattern_id = pattern_id

    def __str__(self) -> str:
        return f"Unknown pattern: {self.pattern_id}"


class EmbeddingDimensionMismatch(SonaMemoryError, ValueError):
    """Raised by aggregate vector operations on embeddings of different lengths."""


class InvalidDomainError(SonaMemoryError, ValueError):
    """Raised when a trajectory is opened with a malformed domain tag."""


class UnknownModeError(SonaMemoryError, ValueError):
    """Raised when a learning mode name is not registered."""


__all__ = [
    "SonaMemoryError",
    "IncompleteTrajectoryError",
    "UnknownPatternError",
    "EmbeddingDimensionMismatch",
    "InvalidDomainError",
    "UnknownModeError",
]
