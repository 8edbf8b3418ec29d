"""
Memory Models - Data structures for trajectories, verdicts and patterns

WHAT: Runtime dataclasses and pydantic records for the learning memory
WHERE: sona/runtime/memory/models.py - data layer
WHO: Every memory component creating or reading trajectories and patterns
TIME: Model construction <0.1ms (embeddings are not copied twice)

Mutable runtime entities (Trajectory, Pattern) are slotted dataclasses owned
by exactly one store. Judgement outputs and reports (TrajectoryVerdict,
DistilledMemory, ConsolidationResult) are validated pydantic models.

Boundary Notes:
- Embeddings are float32 numpy arrays of a fixed dimension (default 768)
- Pattern histories are ring-bounded (quality ≤100, evolution ≤50)
- Clusters reference patterns by id only; they are defined in cluster_index
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

import numpy as np
from pydantic import BaseModel, ConfigDict, Field

from .history import (
    EVOLUTION_HISTORY_CAPACITY,
    QUALITY_HISTORY_CAPACITY,
    BoundedHistory,
)

VerdictLabel = Literal["Success", "Partial", "Failure"]
EvolutionType = Literal["improvement", "merge", "split", "prune"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_id(prefix: str) -> str:
    """Generate a prefixed identifier like ``pat_3f2a...``."""
    return f"{prefix}_{uuid.uuid4().hex}"


def clamp_unit(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


# ============================================================
# Trajectories
# ============================================================


@dataclass(frozen=True, slots=True)
class TrajectoryStep:
    """A single recorded action with the state embeddings around it."""

    step_id: str
    action: str
    state_before: np.ndarray
    state_after: np.ndarray
    reward: float
    timestamp: datetime = field(default_factory=utcnow)
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class Trajectory:
    """Ordered record of one task attempt.

    Steps are append-only while ``is_complete`` is False; the quality score is
    recomputed after every step and frozen at completion.
    """

    trajectory_id: str
    context: str
    domain: str = "general"
    steps: List[TrajectoryStep] = field(default_factory=list)
    quality_score: float = 0.0
    is_complete: bool = False
    started_at: datetime = field(default_factory=utcnow)
    ended_at: Optional[datetime] = None
    verdict: Optional["TrajectoryVerdict"] = None
    distilled_memory: Optional["DistilledMemory"] = None

    @property
    def step_count(self) -> int:
        return len(self.steps)

    def average_reward(self) -> float:
        if not self.steps:
            return 0.0
        return sum(s.reward for s in self.steps) / len(self.steps)

    def actions(self) -> List[str]:
        return [s.action for s in self.steps]

    def final_step(self) -> Optional[TrajectoryStep]:
        return self.steps[-1] if self.steps else None


class TrajectoryVerdict(BaseModel):
    """Rule-based judgement of a completed trajectory."""

    trajectory_id: str
    label: VerdictLabel
    success: bool
    confidence: float = Field(ge=0.0, le=1.0)
    strengths: List[str] = Field(default_factory=list)
    weaknesses: List[str] = Field(default_factory=list)
    improvements: List[str] = Field(default_factory=list)
    relevance_score: float = Field(ge=0.0, le=1.0)
    evidence: List[str] = Field(default_factory=list)
    reasoning: str = ""
    judged_at: datetime = Field(default_factory=utcnow)


class DistilledMemory(BaseModel):
    """Condensed, reusable lesson extracted from a judged trajectory."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    memory_id: str = Field(default_factory=lambda: generate_id("mem"))
    trajectory_id: str
    domain: str = "general"
    outcome: Optional[VerdictLabel] = None
    strategy: str
    step_count: int = 0
    key_learnings: List[str] = Field(default_factory=list)
    embedding: np.ndarray
    quality: float
    usage_count: int = 0
    last_used: datetime = Field(default_factory=utcnow)
    created_at: datetime = Field(default_factory=utcnow)

    def mark_used(self) -> None:
        self.usage_count += 1
        self.last_used = utcnow()


# ============================================================
# Patterns
# ============================================================


@dataclass(frozen=True, slots=True)
class PatternEvolution:
    """Append-only record of a change to a pattern's quality estimate."""

    type: EvolutionType
    previous_quality: float
    new_quality: float
    description: str
    timestamp: datetime = field(default_factory=utcnow)


def _quality_history() -> BoundedHistory[float]:
    return BoundedHistory(QUALITY_HISTORY_CAPACITY)


def _evolution_history() -> BoundedHistory[PatternEvolution]:
    return BoundedHistory(EVOLUTION_HISTORY_CAPACITY)


@dataclass(slots=True)
class Pattern:
    """Reusable strategy with a running success-rate estimate."""

    pattern_id: str
    name: str
    domain: str
    embedding: np.ndarray
    strategy: str
    success_rate: float
    usage_count: int = 1
    quality_history: BoundedHistory[float] = field(default_factory=_quality_history)
    evolution_history: BoundedHistory[PatternEvolution] = field(default_factory=_evolution_history)
    outcome: Optional[VerdictLabel] = None
    source_trajectory_id: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def confidence(self) -> float:
        """Reliability used by consolidation; mirrors the success-rate estimate."""
        return self.success_rate

    def touch(self) -> None:
        self.updated_at = utcnow()

    def snapshot(self) -> "Pattern":
        """Detached copy safe to hand to readers."""
        return Pattern(
            pattern_id=self.pattern_id,
            name=self.name,
            domain=self.domain,
            embedding=self.embedding.copy(),
            strategy=self.strategy,
            success_rate=self.success_rate,
            usage_count=self.usage_count,
            quality_history=self.quality_history.copy(),
            evolution_history=self.evolution_history.copy(),
            outcome=self.outcome,
            source_trajectory_id=self.source_trajectory_id,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


@dataclass(slots=True)
class PatternMatch:
    """Retrieval hit: a pattern plus its similarity and reliability-adjusted confidence."""

    pattern: Pattern
    similarity: float
    confidence: float
    score: float = 0.0
    latency_ms: float = 0.0


# ============================================================
# Consolidation
# ============================================================


class Contradiction(BaseModel):
    """Two highly similar patterns that recorded different outcomes."""

    pattern_a: str
    pattern_b: str
    similarity: float
    outcome_a: Optional[str] = None
    outcome_b: Optional[str] = None


class ConsolidationResult(BaseModel):
    """Counts produced by one consolidation pass."""

    removed_duplicates: int = 0
    contradictions_detected: int = 0
    pruned_patterns: int = 0
    merged_patterns: int = 0
    items_processed: int = 0
    duration_ms: float = 0.0
    contradictions: List[Contradiction] = Field(default_factory=list)
    removed_ids: List[str] = Field(default_factory=list)


__all__ = [
    "VerdictLabel",
    "EvolutionType",
    "utcnow",
    "generate_id",
    "clamp_unit",
    "TrajectoryStep",
    "Trajectory",
    "TrajectoryVerdict",
    "DistilledMemory",
    "PatternEvolution",
    "Pattern",
    "PatternMatch",
    "Contradiction",
    "ConsolidationResult",
]
