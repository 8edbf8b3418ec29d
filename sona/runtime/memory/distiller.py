"""
Memory Distiller - Condenses judged trajectories into reusable memories

WHAT: Turns a completed trajectory into a DistilledMemory (strategy, learnings, embedding)
WHERE: sona/runtime/memory/distiller.py - between judge and pattern store
WHO: Orchestrator pipeline; callers promoting memories into patterns
TIME: O(steps·d) for the aggregate embedding, target <50ms

Distillation gate:
- Incomplete trajectories raise IncompleteTrajectoryError
- A trajectory without steps, or with quality below
  ``distillation_threshold``, returns None and touches nothing
- Otherwise the trajectory is judged (unless already judged), and both the
  verdict and the resulting memory are attached to the trajectory
"""

from __future__ import annotations

import logging
from typing import List, Optional

import numpy as np

from .config import DistillerConfig
from .errors import IncompleteTrajectoryError
from .judge import Judge
from .models import DistilledMemory, Trajectory, TrajectoryVerdict
from .telemetry import NoOpTelemetryClient, TelemetryClient
from .vector_math import DEFAULT_EMBEDDING_DIM, recency_weighted_embedding

logger = logging.getLogger(__name__)

DISTILL_BUDGET_MS = 50.0
MAX_FULL_STRATEGY_STEPS = 3


def condense_strategy(actions: List[str]) -> str:
    """Full sequence for short runs, else ``first -> second ... last``."""
    if not actions:
        return "empty"
    if len(actions) <= MAX_FULL_STRATEGY_STEPS:
        return " -> ".join(actions)
    return f"{actions[0]} -> {actions[1]} ... {actions[-1]}"


def trajectory_embedding(trajectory: Trajectory, dim: int = DEFAULT_EMBEDDING_DIM) -> np.ndarray:
    """Recency-weighted mean of the step ``state_after`` embeddings.

    Step i of n weighs (i+1)/n. A trajectory without steps maps to zeros(dim).
    """
    return recency_weighted_embedding([s.state_after for s in trajectory.steps], dim)


class Distiller:
    def __init__(
        self,
        config: Optional[DistillerConfig] = None,
        *,
        judge: Optional[Judge] = None,
        telemetry: Optional[TelemetryClient] = None,
    ) -> None:
        self.config = config or DistillerConfig()
        self._telemetry = telemetry or NoOpTelemetryClient()
        self.judge = judge or Judge(telemetry=self._telemetry)

    def distill(self, trajectory: Trajectory) -> Optional[DistilledMemory]:
        """
        Distill a completed trajectory into a memory.

        Args:
            trajectory: Sealed trajectory

        Returns:
            DistilledMemory, or None if no steps were recorded or quality is
            below the threshold

        Raises:
            IncompleteTrajectoryError: If the trajectory is still open
        """
        if not trajectory.is_complete:
            raise IncompleteTrajectoryError(trajectory.trajectory_id)
        if not trajectory.steps:
            logger.debug(f"Skipping distillation of {trajectory.trajectory_id}: no steps recorded")
            return None
        if trajectory.quality_score < self.config.distillation_threshold:
            logger.debug(
                f"Skipping distillation of {trajectory.trajectory_id}: quality "
                f"{trajectory.quality_score:.2f} < {self.config.distillation_threshold}"
            )
            return None

        with self._telemetry.span(
            "memory.distill",
            attributes={"trajectory_id": trajectory.trajectory_id},
            budget_ms=DISTILL_BUDGET_MS,
        ):
            verdict = trajectory.verdict or self.judge.judge(trajectory)
            memory = DistilledMemory(
                trajectory_id=trajectory.trajectory_id,
                domain=trajectory.domain,
                outcome=verdict.label,
                strategy=condense_strategy(trajectory.actions()),
                step_count=trajectory.step_count,
                key_learnings=self.key_learnings(trajectory, verdict),
                embedding=trajectory_embedding(trajectory, self.config.embedding_dim),
                quality=trajectory.quality_score,
            )
            trajectory.verdict = verdict
            trajectory.distilled_memory = memory

        logger.debug(f"Distilled {trajectory.trajectory_id} into {memory.memory_id} ({verdict.label})")
        return memory

    def key_learnings(self, trajectory: Trajectory, verdict: TrajectoryVerdict) -> List[str]:
        """At least one learning: the outcome summary, then effective actions and feedback."""

        learnings = [
            f"{verdict.label} strategy for {trajectory.domain}: "
            f"{condense_strategy(trajectory.actions())}"
        ]

        effective = sorted(
            (s for s in trajectory.steps if s.reward >= self.config.high_reward_threshold),
            key=lambda s: s.reward,
            reverse=True,
        )
        for step in effective[:2]:
            learnings.append(f"Action '{step.action}' was effective (reward {step.reward:.2f})")

        learnings.extend(verdict.strengths[:1])
        learnings.extend(f"Next time: {imp}" for imp in verdict.improvements[:1])

        unique = list(dict.fromkeys(learnings))
        return unique[: max(1, self.config.max_key_learnings)]


__all__ = ["Distiller", "condense_strategy", "trajectory_embedding"]
