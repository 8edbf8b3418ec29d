"""
Trajectory Store - Lifecycle of in-flight and completed trajectories

WHAT: Opens, records, seals and evicts trajectories; fires learning triggers
WHERE: sona/runtime/memory/trajectory_store.py - first stage of the pipeline
WHO: Agents recording task attempts; policy backends consuming them
TIME: begin/record O(1), complete O(n) for the capacity check

Capacity policy:
- When completed trajectories reach 80% of ``capacity`` a learning cycle is
  triggered (``learning_triggered`` → backend.update → ``learning_completed``)
- After every learning cycle, completed trajectories are sorted ascending by
  quality and the lowest are evicted until at most 50% of capacity remain
- In-flight (incomplete) trajectories are never evicted

Boundary Notes:
- Single exclusive-writer lock; events are emitted outside the lock
- record_step on unknown/sealed trajectories is a silent no-op
"""

from __future__ import annotations

import logging
import math
import re
import threading
from typing import Any, Dict, List, Optional

from .errors import InvalidDomainError
from .events import EventBus, EventType
from .models import Trajectory, TrajectoryStep, clamp_unit, generate_id, utcnow
from .modes import ModeConfig
from .policy import PolicyBackend
from .vector_math import VectorLike, as_embedding

logger = logging.getLogger(__name__)

DOMAIN_PATTERN = re.compile(r"^[a-z][a-z0-9_-]{0,63}$")
LEARNING_TRIGGER_UTILIZATION = 0.8
RETAIN_FRACTION = 0.5
CAPACITY_TRIGGER = "capacity_threshold"


def validate_domain(domain: Any) -> str:
    if not isinstance(domain, str) or not DOMAIN_PATTERN.match(domain):
        raise InvalidDomainError(f"Malformed domain tag: {domain!r}")
    return domain


def running_quality(steps: List[TrajectoryStep]) -> float:
    """0.8 * mean reward + 0.2 * min(1, 10 / step_count), clamped to [0, 1]."""
    if not steps:
        return 0.0
    avg_reward = sum(s.reward for s in steps) / len(steps)
    length_factor = min(1.0, 10.0 / len(steps))
    return clamp_unit(avg_reward * 0.8 + length_factor * 0.2)


class TrajectoryStore:
    """Owns Trajectory objects from ``begin`` until eviction."""

    def __init__(
        self,
        *,
        capacity: int = 3000,
        quality_threshold: float = 0.5,
        events: Optional[EventBus] = None,
        policy: Optional[PolicyBackend] = None,
    ) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._capacity = capacity
        self._quality_threshold = quality_threshold
        self._events = events or EventBus()
        self._policy = policy
        self._trajectories: Dict[str, Trajectory] = {}
        self._lock = threading.RLock()
        self._learning = False
        self.learning_cycles = 0

    @classmethod
    def from_mode(
        cls,
        mode: ModeConfig,
        *,
        events: Optional[EventBus] = None,
        policy: Optional[PolicyBackend] = None,
    ) -> "TrajectoryStore":
        return cls(
            capacity=mode.trajectory_capacity,
            quality_threshold=mode.quality_threshold,
            events=events,
            policy=policy,
        )

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def events(self) -> EventBus:
        return self._events

    @property
    def policy(self) -> Optional[PolicyBackend]:
        return self._policy

    @policy.setter
    def policy(self, backend: Optional[PolicyBackend]) -> None:
        self._policy = backend

    def configure(self, *, capacity: Optional[int] = None, quality_threshold: Optional[float] = None) -> None:
        with self._lock:
            if capacity is not None:
                if capacity <= 0:
                    raise ValueError("capacity must be positive")
                self._capacity = capacity
            if quality_threshold is not None:
                self._quality_threshold = quality_threshold

    # ------------------ lifecycle ------------------
    def begin(self, context: str, domain: str = "general") -> str:
        """Open an empty, incomplete trajectory and return its id."""

        validate_domain(domain)
        trajectory = Trajectory(
            trajectory_id=generate_id("traj"),
            context=str(context),
            domain=domain,
        )
        with self._lock:
            self._trajectories[trajectory.trajectory_id] = trajectory
        self._events.emit(
            EventType.TRAJECTORY_STARTED,
            trajectory_id=trajectory.trajectory_id,
            context=trajectory.context,
            domain=domain,
        )
        return trajectory.trajectory_id

    def record_step(
        self,
        trajectory_id: str,
        action: str,
        reward: float,
        state_embedding: VectorLike,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[TrajectoryStep]:
        """Append a step; returns None without side effects on invalid input."""

        with self._lock:
            trajectory = self._trajectories.get(trajectory_id)
            if trajectory is None or trajectory.is_complete:
                return None
            try:
                reward_value = float(reward)
            except (TypeError, ValueError):
                return None
            if not math.isfinite(reward_value):
                return None

            embedding = as_embedding(state_embedding)
            previous = trajectory.final_step()
            if previous is not None and previous.state_after.shape != embedding.shape:
                logger.warning(
                    f"Ignoring step for {trajectory_id}: embedding dimension "
                    f"{embedding.shape[0]} != {previous.state_after.shape[0]}"
                )
                return None
            embedding.setflags(write=False)

            step = TrajectoryStep(
                step_id=f"step_{trajectory.step_count}",
                action=str(action),
                state_before=previous.state_after if previous is not None else embedding,
                state_after=embedding,
                reward=reward_value,
                metadata=dict(metadata or {}),
            )
            trajectory.steps.append(step)
            trajectory.quality_score = running_quality(trajectory.steps)

        logger.debug(f"Recorded {step.step_id} on {trajectory_id} (reward={reward_value:.3f})")
        return step

    def complete(self, trajectory_id: str, final_quality: Optional[float] = None) -> Optional[Trajectory]:
        """Seal a trajectory. Returns None if it is unknown or already complete."""

        with self._lock:
            trajectory = self._trajectories.get(trajectory_id)
            if trajectory is None or trajectory.is_complete:
                return None
            if final_quality is not None:
                trajectory.quality_score = clamp_unit(final_quality)
            else:
                trajectory.quality_score = running_quality(trajectory.steps)
            trajectory.is_complete = True
            trajectory.ended_at = utcnow()
            should_learn = self._utilization_reached()

        self._events.emit(
            EventType.TRAJECTORY_COMPLETED,
            trajectory_id=trajectory_id,
            quality_score=trajectory.quality_score,
        )
        if should_learn:
            self.trigger_learning(CAPACITY_TRIGGER)
        return trajectory

    # ------------------ learning ------------------
    def trigger_learning(self, reason: str = "manual") -> Optional[Dict[str, Any]]:
        """Run one learning cycle over completed trajectories, then evict.

        Returns the backend metrics, or None if there was nothing to learn from.
        A capacity trigger is dropped when another cycle is already running or
        has evicted below the threshold since the trigger was decided.
        """

        with self._lock:
            if reason == CAPACITY_TRIGGER and (self._learning or not self._utilization_reached()):
                logger.debug("Capacity trigger superseded by a concurrent learning cycle")
                return None
            completed = [t for t in self._trajectories.values() if t.is_complete]
            eligible = [t for t in completed if t.quality_score >= self._quality_threshold]
            if not completed:
                return None
            self._learning = True

        try:
            return self._run_learning_cycle(reason, eligible)
        finally:
            with self._lock:
                self._learning = False

    def _run_learning_cycle(self, reason: str, eligible: List[Trajectory]) -> Dict[str, Any]:
        self._events.emit(
            EventType.LEARNING_TRIGGERED,
            reason=reason,
            trajectory_count=len(eligible),
        )

        metrics: Dict[str, Any] = {}
        if self._policy is not None and eligible:
            try:
                metrics = dict(self._policy.update(eligible) or {})
            except Exception as e:
                logger.warning(f"Policy backend update failed: {e}")
                metrics = {"error": str(e)}

        self.learning_cycles += 1
        evicted = self._evict_completed()
        logger.info(
            f"Learning cycle {self.learning_cycles} ({reason}): "
            f"{len(eligible)} trajectories, {evicted} evicted"
        )
        self._events.emit(
            EventType.LEARNING_COMPLETED,
            reason=reason,
            trajectory_count=len(eligible),
            evicted=evicted,
            improvement_delta=float(metrics.get("improvement_delta", 0.0) or 0.0),
            metrics=metrics,
        )
        return metrics

    def _utilization_reached(self) -> bool:
        completed = sum(1 for t in self._trajectories.values() if t.is_complete)
        return completed / self._capacity >= LEARNING_TRIGGER_UTILIZATION

    def _evict_completed(self) -> int:
        with self._lock:
            completed = [t for t in self._trajectories.values() if t.is_complete]
            # sorted() is stable: equal qualities keep insertion order
            completed.sort(key=lambda t: t.quality_score)
            to_remove = len(completed) - math.floor(self._capacity * RETAIN_FRACTION)
            for trajectory in completed[: max(0, to_remove)]:
                del self._trajectories[trajectory.trajectory_id]
        removed = max(0, to_remove)
        if removed:
            logger.debug(f"Evicted {removed} low-quality completed trajectories")
        return removed

    # ------------------ access ------------------
    def get(self, trajectory_id: str) -> Optional[Trajectory]:
        with self._lock:
            return self._trajectories.get(trajectory_id)

    def list(self, *, complete: Optional[bool] = None) -> List[Trajectory]:
        with self._lock:
            items = list(self._trajectories.values())
        if complete is None:
            return items
        return [t for t in items if t.is_complete is complete]

    def __len__(self) -> int:
        return len(self._trajectories)

    def __contains__(self, trajectory_id: object) -> bool:
        return trajectory_id in self._trajectories

    def clear(self) -> None:
        with self._lock:
            self._trajectories.clear()

    def summarize(self) -> Dict[str, Any]:
        """Return counts, utilization and average completed quality."""

        items = self.list()
        completed = [t for t in items if t.is_complete]
        return {
            "total": len(items),
            "active": len(items) - len(completed),
            "completed": len(completed),
            "utilization": len(items) / self._capacity,
            "avg_quality": (
                sum(t.quality_score for t in completed) / len(completed) if completed else 0.0
            ),
            "learning_cycles": self.learning_cycles,
        }

    def estimate_bytes(self) -> int:
        total = 0
        for trajectory in self.list():
            total += 200 + len(trajectory.context) * 2
            for step in trajectory.steps:
                total += 64 + step.state_after.nbytes + step.state_before.nbytes
        return total


__all__ = [
    "TrajectoryStore",
    "running_quality",
    "validate_domain",
    "DOMAIN_PATTERN",
    "LEARNING_TRIGGER_UTILIZATION",
    "RETAIN_FRACTION",
]
