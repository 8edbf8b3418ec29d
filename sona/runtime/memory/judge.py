"""
Trajectory Judge - Rule-based verdicts over completed trajectories

WHAT: Labels a trajectory Success/Partial/Failure and explains why
WHERE: sona/runtime/memory/judge.py - between trajectory store and distiller
WHO: Distiller (auto-judging) and callers auditing agent runs
TIME: O(steps), target <10ms

Label rule:
- quality ≥ 0.8 and average reward ≥ 0.7 → Success
- quality < 0.4 or average reward < 0.3 → Failure
- otherwise → Partial

Strengths, weaknesses and improvements are derived from the same thresholds
plus step count and reward trend. No model is involved.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from .errors import IncompleteTrajectoryError
from .models import Trajectory, TrajectoryVerdict, VerdictLabel, clamp_unit
from .telemetry import NoOpTelemetryClient, TelemetryClient

logger = logging.getLogger(__name__)

SUCCESS_QUALITY = 0.8
SUCCESS_REWARD = 0.7
FAILURE_QUALITY = 0.4
FAILURE_REWARD = 0.3
EFFICIENT_STEPS = 10
LONG_TRAJECTORY_STEPS = 20
TREND_DELTA = 0.05
JUDGE_BUDGET_MS = 10.0


def classify(quality: float, avg_reward: float) -> VerdictLabel:
    if quality >= SUCCESS_QUALITY and avg_reward >= SUCCESS_REWARD:
        return "Success"
    if quality < FAILURE_QUALITY or avg_reward < FAILURE_REWARD:
        return "Failure"
    return "Partial"


def _reward_trend(rewards: List[float]) -> float:
    """Mean of the second half minus mean of the first half."""
    if len(rewards) < 2:
        return 0.0
    mid = len(rewards) // 2
    first, second = rewards[:mid], rewards[mid:]
    return sum(second) / len(second) - sum(first) / len(first)


class Judge:
    """Produces a TrajectoryVerdict without mutating the trajectory."""

    def __init__(self, telemetry: Optional[TelemetryClient] = None) -> None:
        self._telemetry = telemetry or NoOpTelemetryClient()

    def judge(self, trajectory: Trajectory) -> TrajectoryVerdict:
        """
        Judge a completed trajectory.

        Args:
            trajectory: Trajectory sealed by the trajectory store

        Returns:
            TrajectoryVerdict with label, evidence and heuristic feedback

        Raises:
            IncompleteTrajectoryError: If the trajectory is still open
        """
        if not trajectory.is_complete:
            raise IncompleteTrajectoryError(trajectory.trajectory_id)

        with self._telemetry.span(
            "memory.judge",
            attributes={"steps": trajectory.step_count},
            budget_ms=JUDGE_BUDGET_MS,
        ) as span:
            quality = trajectory.quality_score
            avg_reward = trajectory.average_reward()
            label = classify(quality, avg_reward)
            strengths, weaknesses, improvements = self._feedback(trajectory, quality, avg_reward)

            verdict = TrajectoryVerdict(
                trajectory_id=trajectory.trajectory_id,
                label=label,
                success=label == "Success",
                confidence=self._confidence(label, quality, avg_reward),
                strengths=strengths,
                weaknesses=weaknesses,
                improvements=improvements,
                relevance_score=clamp_unit(0.7 * quality + 0.3 * clamp_unit(avg_reward)),
                evidence=self._evidence(trajectory, quality, avg_reward),
                reasoning=self._reasoning(trajectory, label),
            )
            span.set_attribute("label", label)

        logger.debug(f"Judged {trajectory.trajectory_id} as {label} (quality={quality:.2f})")
        return verdict

    @staticmethod
    def _confidence(label: VerdictLabel, quality: float, avg_reward: float) -> float:
        support = (clamp_unit(quality) + clamp_unit(avg_reward)) / 2.0
        if label == "Success":
            return clamp_unit(support)
        if label == "Failure":
            return clamp_unit(1.0 - support)
        return 0.5

    @staticmethod
    def _evidence(trajectory: Trajectory, quality: float, avg_reward: float) -> List[str]:
        evidence = [
            f"Quality score: {quality:.2f}",
            f"Average reward: {avg_reward:.2f}",
            f"Step count: {trajectory.step_count}",
        ]
        last = trajectory.final_step()
        if last is not None:
            evidence.append(f"Final action: {last.action}")
            evidence.append(f"Final reward: {last.reward:.2f}")
        return evidence

    @staticmethod
    def _feedback(
        trajectory: Trajectory, quality: float, avg_reward: float
    ) -> Tuple[List[str], List[str], List[str]]:
        strengths: List[str] = []
        weaknesses: List[str] = []
        improvements: List[str] = []
        steps = trajectory.step_count
        rewards = [s.reward for s in trajectory.steps]

        if steps == 0:
            weaknesses.append("No steps were recorded")
            improvements.append("Record each action with its reward before completing")
            return strengths, weaknesses, improvements

        if quality >= SUCCESS_QUALITY:
            strengths.append(f"High overall quality score ({quality:.2f})")
        elif quality < FAILURE_QUALITY:
            weaknesses.append(f"Low overall quality score ({quality:.2f})")
            improvements.append("Revisit the approach; compare with higher-quality patterns for this domain")

        if avg_reward >= SUCCESS_REWARD:
            strengths.append(f"Consistently high rewards (avg {avg_reward:.2f})")
        elif avg_reward < FAILURE_REWARD:
            weaknesses.append(f"Low average reward ({avg_reward:.2f})")
            improvements.append("Favour actions that earned higher rewards in similar tasks")

        if steps <= EFFICIENT_STEPS:
            strengths.append(f"Efficient execution in {steps} steps")
        elif steps > LONG_TRAJECTORY_STEPS:
            weaknesses.append(f"Long trajectory ({steps} steps) accumulates errors")
            improvements.append("Break the task into shorter sub-tasks")

        trend = _reward_trend(rewards)
        if trend > TREND_DELTA:
            strengths.append("Rewards improved over the course of the trajectory")
        elif trend < -TREND_DELTA:
            weaknesses.append("Rewards declined over the course of the trajectory")
            improvements.append("Check the later steps for regressions")

        negative = sum(1 for r in rewards if r < 0)
        if negative:
            weaknesses.append(f"{negative} step(s) received negative reward")
            improvements.append("Avoid the actions that were penalised")

        return strengths, weaknesses, improvements

    @staticmethod
    def _reasoning(trajectory: Trajectory, label: VerdictLabel) -> str:
        parts = [
            f"Trajectory {trajectory.trajectory_id} judged as {label}.",
            f"Domain: {trajectory.domain}, Steps: {trajectory.step_count}.",
        ]
        if label == "Success":
            parts.append("The trajectory achieved high quality scores with positive rewards.")
        elif label == "Failure":
            parts.append("The trajectory had low quality scores or low rewards.")
        else:
            parts.append("The trajectory showed mixed results with room for improvement.")
        return " ".join(parts)


__all__ = [
    "Judge",
    "classify",
    "SUCCESS_QUALITY",
    "SUCCESS_REWARD",
    "FAILURE_QUALITY",
    "FAILURE_REWARD",
]
