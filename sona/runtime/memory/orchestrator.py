"""
SONA Orchestrator - Central coordination point for the learning memory

WHAT: Facade tying mode config, trajectory/pattern stores, retrieval and consolidation
WHERE: sona/runtime/memory/orchestrator.py - top of the memory stack
WHO: Agent runtimes recording task attempts and asking for relevant patterns
TIME: Per-operation latency tracked; find_matches targets <1ms

Pipeline:
begin → record_step* → complete → learn (judge → distill → extract) →
find_matches for later tasks → maybe_consolidate on volume/time triggers.

Boundary Notes:
- Every component is constructor-injected; nothing here is a module global,
  so independent orchestrators (per test, per tenant) never share state
- All components share one EventBus; listeners registered through
  ``subscribe`` survive ``reset``
"""

from __future__ import annotations

import logging
import time
from dataclasses import replace
from typing import Any, Dict, List, Optional

from .config import MemoryConfig, pattern_config_for_mode
from .consolidation import Consolidator
from .distiller import Distiller
from .events import EventBus, EventType, Listener
from .judge import Judge
from .models import (
    ConsolidationResult,
    DistilledMemory,
    Pattern,
    PatternMatch,
    Trajectory,
    TrajectoryStep,
    TrajectoryVerdict,
)
from .modes import ModeConfig, get_mode_config
from .pattern_store import PatternStore
from .policy import PolicyBackend
from .retriever import Retriever
from .telemetry import NoOpTelemetryClient, TelemetryClient
from .trajectory_store import TrajectoryStore
from .vector_index import VectorIndex
from .vector_math import VectorLike

logger = logging.getLogger(__name__)

BYTES_PER_MB = 1024 * 1024


class SonaOrchestrator:
    """Facade that coordinates trajectories, patterns, retrieval and consolidation."""

    def __init__(
        self,
        *,
        config: MemoryConfig | None = None,
        events: EventBus | None = None,
        telemetry: TelemetryClient | None = None,
        policy: PolicyBackend | None = None,
        vector_index: VectorIndex | None = None,
    ) -> None:
        cfg = replace(config) if config is not None else MemoryConfig()
        self._config = cfg
        self._mode = cfg.mode_config()
        self._events = events or EventBus()
        self._telemetry = telemetry or NoOpTelemetryClient()

        self._trajectories = TrajectoryStore.from_mode(self._mode, events=self._events, policy=policy)
        self._patterns = PatternStore(
            pattern_config_for_mode(cfg.patterns, self._mode),
            events=self._events,
            telemetry=self._telemetry,
            vector_index=vector_index,
        )
        self._retriever = Retriever(self._patterns, cfg.retriever, telemetry=self._telemetry)
        self._judge = Judge(telemetry=self._telemetry)
        self._distiller = Distiller(cfg.distiller, judge=self._judge, telemetry=self._telemetry)
        self._consolidator = Consolidator(
            self._patterns, cfg.consolidation, events=self._events, telemetry=self._telemetry
        )

        self.operation_count = 0
        self.total_latency_ms = 0.0

    # ------------------ components ------------------
    @property
    def config(self) -> MemoryConfig:
        return self._config

    @property
    def mode(self) -> ModeConfig:
        return self._mode

    @property
    def events(self) -> EventBus:
        return self._events

    @property
    def telemetry(self) -> TelemetryClient:
        return self._telemetry

    @property
    def trajectories(self) -> TrajectoryStore:
        return self._trajectories

    @property
    def patterns(self) -> PatternStore:
        return self._patterns

    @property
    def retriever(self) -> Retriever:
        return self._retriever

    @property
    def judge(self) -> Judge:
        return self._judge

    @property
    def distiller(self) -> Distiller:
        return self._distiller

    @property
    def consolidator(self) -> Consolidator:
        return self._consolidator

    def subscribe(self, listener: Listener, event_types=None) -> int:
        return self._events.subscribe(listener, event_types)

    def unsubscribe(self, handle: int) -> bool:
        return self._events.unsubscribe(handle)

    # ------------------ modes ------------------
    def set_mode(self, mode: str) -> bool:
        """Switch learning mode; returns False if ``mode`` is already active.

        Raises:
            UnknownModeError: If ``mode`` is not registered
        """
        if mode == self._mode.mode:
            return False
        new_mode = get_mode_config(mode)
        previous = self._mode.mode

        self._trajectories.configure(
            capacity=new_mode.trajectory_capacity,
            quality_threshold=new_mode.quality_threshold,
        )
        self._patterns.configure(
            quality_threshold=new_mode.quality_threshold,
            num_clusters=new_mode.num_clusters,
        )
        self._mode = new_mode
        self._config.mode = mode

        logger.info(f"Learning mode changed: {previous} -> {mode}")
        self._events.emit(EventType.MODE_CHANGED, from_mode=previous, to_mode=mode)
        return True

    # ------------------ trajectory pipeline ------------------
    def begin_trajectory(self, context: str, domain: str = "general") -> str:
        start = time.perf_counter()
        trajectory_id = self._trajectories.begin(context, domain)
        self._track(start)
        return trajectory_id

    def record_step(
        self,
        trajectory_id: str,
        action: str,
        reward: float,
        state_embedding: VectorLike,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[TrajectoryStep]:
        start = time.perf_counter()
        step = self._trajectories.record_step(trajectory_id, action, reward, state_embedding, metadata)
        self._track(start)
        return step

    def complete_trajectory(self, trajectory_id: str, final_quality: Optional[float] = None) -> Optional[Trajectory]:
        start = time.perf_counter()
        trajectory = self._trajectories.complete(trajectory_id, final_quality)
        self._track(start)
        return trajectory

    def judge_trajectory(self, trajectory: Trajectory) -> TrajectoryVerdict:
        return self._judge.judge(trajectory)

    def distill(self, trajectory: Trajectory) -> Optional[DistilledMemory]:
        return self._distiller.distill(trajectory)

    def learn(self, trajectory: Trajectory) -> Optional[Pattern]:
        """Judge, distill and extract a completed trajectory into the pattern store.

        Returns the new or updated pattern, or None when the trajectory does
        not pass the distillation or extraction thresholds.
        """
        start = time.perf_counter()
        memory = self._distiller.distill(trajectory)
        pattern = self._patterns.extract(trajectory, memory) if memory is not None else None
        self._track(start)
        if pattern is not None:
            self.maybe_consolidate()
        return pattern

    def trigger_learning(self, reason: str = "manual") -> Optional[Dict[str, Any]]:
        return self._trajectories.trigger_learning(reason)

    # ------------------ retrieval ------------------
    def find_matches(self, query: VectorLike, k: Optional[int] = None, **filters: Any) -> List[PatternMatch]:
        start = time.perf_counter()
        matches = self._retriever.find_matches(query, k, **filters)
        self._track(start)
        for match in matches:
            self._events.emit(
                EventType.PATTERN_MATCHED,
                pattern_id=match.pattern.pattern_id,
                similarity=match.similarity,
            )
        return matches

    def find_best_match(self, query: VectorLike, **filters: Any) -> Optional[PatternMatch]:
        matches = self.find_matches(query, 1, **filters)
        return matches[0] if matches else None

    def record_pattern_outcome(self, pattern_id: str, quality: float, context: Optional[str] = None) -> Pattern:
        """Feed back how well a retrieved pattern worked.

        Raises:
            UnknownPatternError: If the pattern no longer exists
        """
        start = time.perf_counter()
        pattern = self._patterns.evolve(pattern_id, quality, context)
        self._track(start)
        return pattern

    # ------------------ consolidation ------------------
    def consolidate(self) -> ConsolidationResult:
        return self._consolidator.consolidate()

    def maybe_consolidate(self, now: Optional[float] = None) -> Optional[ConsolidationResult]:
        """Consolidate if the volume or time trigger is due."""

        if not self._consolidator.is_due(now):
            return None
        return self._consolidator.consolidate()

    # ------------------ statistics ------------------
    def estimate_memory_mb(self) -> float:
        return (self._trajectories.estimate_bytes() + self._patterns.estimate_bytes()) / BYTES_PER_MB

    def stats(self) -> Dict[str, Any]:
        used_mb = self.estimate_memory_mb()
        budget_mb = self._mode.memory_budget_mb
        return {
            "mode": self._mode.mode,
            "trajectories": self._trajectories.summarize(),
            "patterns": self._patterns.stats(),
            "performance": {
                "operations": self.operation_count,
                "avg_latency_ms": (
                    self.total_latency_ms / self.operation_count if self.operation_count else 0.0
                ),
                "learning_cycles": self._trajectories.learning_cycles,
                "consolidations": self._consolidator.runs,
            },
            "memory": {
                "used_mb": used_mb,
                "budget_mb": budget_mb,
                "utilization": used_mb / budget_mb if budget_mb else 0.0,
            },
        }

    def reset(self) -> None:
        """Drop all trajectories and patterns; listeners stay registered."""

        self._trajectories.clear()
        self._trajectories.learning_cycles = 0
        self._patterns.clear()
        self.operation_count = 0
        self.total_latency_ms = 0.0
        self._consolidator.last_run = time.monotonic()
        logger.info("Memory orchestrator reset")

    def _track(self, start: float) -> None:
        self.operation_count += 1
        self.total_latency_ms += (time.perf_counter() - start) * 1000.0


__all__ = ["SonaOrchestrator", "BYTES_PER_MB"]
