"""
Policy Backend Contract - Trajectory consumers for learning cycles

WHAT: Protocol for pluggable policy learners (PPO, DQN, SARSA, ...)
WHERE: sona/runtime/memory/policy.py - boundary to out-of-process learners
WHO: Trajectory store hands quality-filtered trajectories on learning triggers

Backends are opaque to the core: nothing structural is read from the
metrics they return beyond passing them along in ``learning_completed``.
"""

from __future__ import annotations

from typing import Any, Dict, List, Protocol, Sequence, runtime_checkable

import numpy as np

from .models import Trajectory


@runtime_checkable
class PolicyBackend(Protocol):
    def update(self, trajectories: Sequence[Trajectory]) -> Dict[str, Any]:
        """Consume completed trajectories; returns backend-specific metrics."""

    def get_action(self, state_embedding: np.ndarray) -> str:
        """Choose an action for a state embedding."""


class RecordingPolicyBackend(PolicyBackend):
    """Backend that only records what it was handed (useful for dry runs and tests)."""

    def __init__(self, default_action: str = "noop") -> None:
        self.batches: List[List[Trajectory]] = []
        self.default_action = default_action

    def update(self, trajectories: Sequence[Trajectory]) -> Dict[str, Any]:
        batch = list(trajectories)
        self.batches.append(batch)
        avg = sum(t.quality_score for t in batch) / len(batch) if batch else 0.0
        return {"trajectories": len(batch), "avg_quality": avg, "improvement_delta": 0.0}

    def get_action(self, state_embedding: np.ndarray) -> str:
        return self.default_action


__all__ = ["PolicyBackend", "RecordingPolicyBackend"]
