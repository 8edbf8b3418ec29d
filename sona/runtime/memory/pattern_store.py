"""
Pattern Store - Owner of learned patterns and their cluster index

WHAT: Extracts, evolves, merges, splits and prunes reusable patterns
WHERE: sona/runtime/memory/pattern_store.py - core of the learning memory
WHO: Orchestrator (extraction/feedback), retriever (reads), consolidator (removal)
TIME: extract <5ms, evolve <2ms; prune/merge/split trigger a cluster rebuild

Lifecycle:
1. extract(): completed trajectory above ``quality_threshold`` → new pattern,
   or an in-place EMA update of an existing pattern with cosine ≥ 0.95
2. evolve(): EMA of success rate, bounded quality history, evolution record
3. merge()/split(): structural edits followed by a full cluster rebuild
4. prune(): automatic when the store exceeds ``max_patterns``; keeps the
   top 80% by success_rate · ln(usage + 1)

Boundary Notes:
- The store exclusively owns Pattern objects; the cluster index and the
  optional vector index only hold ids
- Embedding arrays are replaced, never written in place, so PatternView
  snapshots handed to readers stay consistent
- The optional vector index is mirrored best-effort; after any failure the
  store stops consulting it and falls back to the in-memory scan
"""

from __future__ import annotations

import logging
import math
import threading
import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from .cluster_index import Cluster, ClusterIndex
from .config import PatternStoreConfig
from .distiller import condense_strategy, trajectory_embedding
from .errors import EmbeddingDimensionMismatch, UnknownPatternError
from .events import EventBus, EventType
from .history import mean
from .models import (
    DistilledMemory,
    EvolutionType,
    Pattern,
    PatternEvolution,
    Trajectory,
    VerdictLabel,
    clamp_unit,
    generate_id,
)
from .telemetry import NoOpTelemetryClient, TelemetryClient
from .vector_index import VectorIndex
from .vector_math import (
    VectorLike,
    as_embedding,
    cosine_similarity,
    normalize_rows,
    weighted_average,
)

logger = logging.getLogger(__name__)

PRUNE_KEEP_FRACTION = 0.8
SPLIT_SUCCESS_DISCOUNT = 0.9
IMPROVEMENT_DELTA = 0.05
PRUNE_DELTA = -0.15
EXTRACT_BUDGET_MS = 5.0
EVOLVE_BUDGET_MS = 2.0


def classify_evolution(previous: float, current: float) -> EvolutionType:
    """Classify a success-rate change.

    Deltas between the prune and improvement thresholds are reported as
    ``improvement`` as well (kept for compatibility with existing histories).
    """
    delta = current - previous
    if delta > IMPROVEMENT_DELTA:
        return "improvement"
    if delta < PRUNE_DELTA:
        return "prune"
    return "improvement"


def generate_pattern_name(domain: str, quality: float, step_count: int) -> str:
    level = "high" if quality > 0.7 else "mid"
    shape = "complex" if step_count > 5 else "simple"
    return f"{domain}_{level}_{shape}_{uuid.uuid4().hex[:4]}"


@dataclass(frozen=True)
class PatternView:
    """Read-only snapshot of the store at one version.

    ``unit`` holds row-normalised embeddings aligned with ``ids``;
    ``success_rates`` and ``usage_counts`` are the reliability figures
    captured under the store lock at ``stats_version``.
    """

    version: int
    ids: Tuple[str, ...]
    patterns: Dict[str, Pattern]
    unit: np.ndarray
    positions: Dict[str, int] = field(default_factory=dict)
    dim: Optional[int] = None
    success_rates: np.ndarray = field(default_factory=lambda: np.zeros(0))
    usage_counts: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.int64))
    stats_version: int = 0

    def __len__(self) -> int:
        return len(self.ids)


class _EmbeddingMap(Mapping[str, np.ndarray]):
    """Live pattern-id → embedding view handed to the cluster index."""

    __slots__ = ("_patterns",)

    def __init__(self, patterns: Dict[str, Pattern]) -> None:
        self._patterns = patterns

    def __getitem__(self, pattern_id: str) -> np.ndarray:
        return self._patterns[pattern_id].embedding

    def __iter__(self) -> Iterator[str]:
        return iter(self._patterns)

    def __len__(self) -> int:
        return len(self._patterns)


class PatternStore:
    """Exclusive owner of Pattern objects plus their approximate cluster index."""

    def __init__(
        self,
        config: Optional[PatternStoreConfig] = None,
        *,
        events: Optional[EventBus] = None,
        telemetry: Optional[TelemetryClient] = None,
        vector_index: Optional[VectorIndex] = None,
    ) -> None:
        self.config = config or PatternStoreConfig()
        self._events = events or EventBus()
        self._telemetry = telemetry or NoOpTelemetryClient()
        self._vector_index = vector_index
        self._index_healthy = vector_index is not None

        self._patterns: Dict[str, Pattern] = {}
        self._embeddings = _EmbeddingMap(self._patterns)
        self._clusters = ClusterIndex(
            num_clusters=self.config.num_clusters,
            join_threshold=self.config.cluster_join_threshold,
            iterations=self.config.kmeans_iterations,
            seed=self.config.seed,
        )
        self._rng = np.random.default_rng(self.config.seed)
        self._lock = threading.RLock()
        self._dim: Optional[int] = None
        self._version = 0
        self._stats_version = 0
        self._view: Optional[PatternView] = None
        self._new_since_consolidation = 0

        # Performance counters
        self.extraction_count = 0
        self.total_extraction_ms = 0.0
        self.evolution_count = 0
        self.total_evolution_ms = 0.0
        self.match_count = 0
        self.total_match_ms = 0.0

    # ------------------ properties ------------------
    @property
    def lock(self) -> threading.RLock:
        """Exclusive writer lock; hold it to plan and apply a multi-step change."""
        return self._lock

    @property
    def events(self) -> EventBus:
        return self._events

    @property
    def cluster_index(self) -> ClusterIndex:
        return self._clusters

    @property
    def clusters(self) -> Tuple[Cluster, ...]:
        with self._lock:
            return self._clusters.clusters

    @property
    def embedding_dim(self) -> Optional[int]:
        return self._dim

    @property
    def version(self) -> int:
        return self._version

    @property
    def new_since_consolidation(self) -> int:
        return self._new_since_consolidation

    def mark_consolidated(self) -> None:
        self._new_since_consolidation = 0

    def configure(
        self,
        *,
        quality_threshold: Optional[float] = None,
        num_clusters: Optional[int] = None,
    ) -> None:
        """Apply mode-level settings; a new cluster count triggers a rebuild."""

        with self._lock:
            if quality_threshold is not None:
                self.config.quality_threshold = quality_threshold
            if num_clusters is not None and num_clusters != self.config.num_clusters:
                self.config.num_clusters = num_clusters
                self._clusters.num_clusters = num_clusters
                if self.config.enable_clustering:
                    self._clusters.rebuild(self._embeddings)

    # ------------------ extraction ------------------
    def extract(self, trajectory: Trajectory, memory: Optional[DistilledMemory] = None) -> Optional[Pattern]:
        """
        Extract a pattern from a completed trajectory.

        Args:
            trajectory: Sealed trajectory
            memory: Optional distilled memory supplying embedding and strategy

        Returns:
            New or updated Pattern, or None if the trajectory does not qualify
            (open, step-less, or below ``quality_threshold``)
        """
        if not trajectory.is_complete or not trajectory.steps:
            return None
        if trajectory.quality_score < self.config.quality_threshold:
            return None

        quality = clamp_unit(trajectory.quality_score)
        created = False
        with self._telemetry.span(
            "memory.extract",
            attributes={"trajectory_id": trajectory.trajectory_id},
            budget_ms=EXTRACT_BUDGET_MS,
        ) as span:
            if memory is not None:
                embedding = as_embedding(memory.embedding)
            else:
                embedding = trajectory_embedding(trajectory, self._dim or self.config.embedding_dim)

            with self._lock:
                pattern = self._find_duplicate(embedding)
                if pattern is not None:
                    self._observe(pattern, quality)
                else:
                    outcome = memory.outcome if memory is not None else None
                    if outcome is None and trajectory.verdict is not None:
                        outcome = trajectory.verdict.label
                    pattern = Pattern(
                        pattern_id=generate_id("pat"),
                        name=generate_pattern_name(trajectory.domain, quality, trajectory.step_count),
                        domain=trajectory.domain,
                        embedding=embedding,
                        strategy=memory.strategy if memory is not None else condense_strategy(trajectory.actions()),
                        success_rate=quality,
                        usage_count=1,
                        outcome=outcome,
                        source_trajectory_id=trajectory.trajectory_id,
                    )
                    pattern.quality_history.append(quality)
                    self._insert(pattern)
                    created = True
            span.set_attribute("created", created)

        self.extraction_count += 1
        self.total_extraction_ms += span.duration_ms
        if created:
            logger.info(f"Created pattern {pattern.name} ({pattern.pattern_id}) from {trajectory.trajectory_id}")
        else:
            logger.debug(f"Updated duplicate pattern {pattern.pattern_id} from {trajectory.trajectory_id}")
        return pattern

    def extract_batch(self, trajectories: Iterable[Trajectory]) -> List[Pattern]:
        """Extract from many trajectories; a batch of more than 10 rebuilds the clusters."""

        patterns = [p for p in (self.extract(t) for t in trajectories) if p is not None]
        if self.config.enable_clustering and len(patterns) > self.config.batch_rebuild_threshold:
            self.rebuild_clusters()
        return patterns

    def promote(self, memory: DistilledMemory, *, name: Optional[str] = None) -> Pattern:
        """Create a pattern directly from a distilled memory."""

        quality = clamp_unit(memory.quality)
        pattern = Pattern(
            pattern_id=generate_id("pat"),
            name=name or generate_pattern_name(memory.domain, quality, memory.step_count),
            domain=memory.domain,
            embedding=as_embedding(memory.embedding),
            strategy=memory.strategy,
            success_rate=quality,
            usage_count=1,
            outcome=memory.outcome,
            source_trajectory_id=memory.trajectory_id,
        )
        pattern.quality_history.append(quality)
        with self._lock:
            self._insert(pattern)
        logger.info(f"Promoted memory {memory.memory_id} to pattern {pattern.pattern_id}")
        return pattern

    def create(
        self,
        embedding: VectorLike,
        strategy: str,
        *,
        domain: str = "general",
        success_rate: float = 0.5,
        usage_count: int = 1,
        name: Optional[str] = None,
        outcome: Optional[VerdictLabel] = None,
    ) -> Pattern:
        """Insert a pattern built by the caller (imports, seeding, tests)."""

        rate = clamp_unit(success_rate)
        pattern = Pattern(
            pattern_id=generate_id("pat"),
            name=name or generate_pattern_name(domain, rate, 0),
            domain=domain,
            embedding=as_embedding(embedding),
            strategy=strategy,
            success_rate=rate,
            usage_count=max(0, int(usage_count)),
            outcome=outcome,
        )
        pattern.quality_history.append(rate)
        with self._lock:
            self._insert(pattern)
        return pattern

    # ------------------ evolution ------------------
    def evolve(self, pattern_id: str, quality: float, context: Optional[str] = None) -> Pattern:
        """
        Fold a new quality observation into a pattern.

        Raises:
            UnknownPatternError: If ``pattern_id`` is not stored
        """
        observed = clamp_unit(quality)
        with self._telemetry.span(
            "memory.evolve", attributes={"pattern_id": pattern_id}, budget_ms=EVOLVE_BUDGET_MS
        ) as span:
            with self._lock:
                pattern = self._require(pattern_id)
                previous = pattern.success_rate
                lr = self.config.evolution_learning_rate

                pattern.quality_history.append(observed)
                pattern.success_rate = clamp_unit(previous * (1 - lr) + observed * lr)
                pattern.usage_count += 1
                pattern.touch()
                self._stats_changed()

                evolution_type = classify_evolution(previous, pattern.success_rate)
                pattern.evolution_history.append(
                    PatternEvolution(
                        type=evolution_type,
                        previous_quality=previous,
                        new_quality=pattern.success_rate,
                        description=context or "Updated from new experience",
                    )
                )
                new_quality = pattern.success_rate
            span.set_attribute("evolution_type", evolution_type)

        self.evolution_count += 1
        self.total_evolution_ms += span.duration_ms
        self._events.emit(
            EventType.PATTERN_EVOLVED,
            pattern_id=pattern_id,
            evolution_type=evolution_type,
            previous_quality=previous,
            new_quality=new_quality,
        )
        return pattern

    def merge(self, pattern_id_a: str, pattern_id_b: str) -> Optional[Pattern]:
        """Fold the lower-success pattern into the higher one; returns the survivor.

        Merging a pattern with itself returns None.
        """
        if pattern_id_a == pattern_id_b:
            return None

        with self._lock:
            first = self._require(pattern_id_a)
            second = self._require(pattern_id_b)
            keep, remove = (first, second) if first.success_rate >= second.success_rate else (second, first)

            weights = (keep.usage_count, remove.usage_count)
            if sum(weights) <= 0:
                weights = (1, 1)
            # Raises on mismatched dimensions before anything is modified
            embedding = weighted_average([keep.embedding, remove.embedding], weights)

            previous = keep.success_rate
            keep.embedding = embedding
            keep.usage_count += remove.usage_count
            keep.quality_history.extend(remove.quality_history)
            keep.success_rate = clamp_unit(mean(keep.quality_history, default=previous))
            keep.evolution_history.append(
                PatternEvolution(
                    type="merge",
                    previous_quality=previous,
                    new_quality=keep.success_rate,
                    description=f"Merged with pattern {remove.pattern_id}",
                )
            )
            keep.touch()

            self._discard(remove.pattern_id)
            self._mirror_insert(keep)
            self._changed()
            if self.config.enable_clustering:
                self._clusters.rebuild(self._embeddings)

        logger.info(f"Merged pattern {remove.pattern_id} into {keep.pattern_id}")
        return keep

    def split(self, pattern_id: str, n: int = 2) -> List[Pattern]:
        """Replace a pattern with ``n`` perturbed copies at 90% of its success rate."""

        with self._lock:
            original = self._require(pattern_id)
            if n < 2:
                return []

            half = self.config.split_noise / 2.0
            new_rate = clamp_unit(original.success_rate * SPLIT_SUCCESS_DISCOUNT)
            splits: List[Pattern] = []
            for i in range(n):
                noise = self._rng.uniform(-half, half, size=original.embedding.shape)
                child = Pattern(
                    pattern_id=generate_id("pat"),
                    name=f"{original.name}_split_{i}",
                    domain=original.domain,
                    embedding=(original.embedding.astype(np.float64) + noise).astype(np.float32),
                    strategy=original.strategy,
                    success_rate=new_rate,
                    usage_count=0,
                    outcome=original.outcome,
                    source_trajectory_id=original.source_trajectory_id,
                )
                child.evolution_history.append(
                    PatternEvolution(
                        type="split",
                        previous_quality=original.success_rate,
                        new_quality=new_rate,
                        description=f"Split from pattern {pattern_id}",
                    )
                )
                splits.append(child)

            self._discard(pattern_id)
            for child in splits:
                self._patterns[child.pattern_id] = child
                self._mirror_insert(child)
            self._new_since_consolidation += len(splits)
            self._changed()
            if self.config.enable_clustering:
                self._clusters.rebuild(self._embeddings)
            self._enforce_capacity()

        logger.info(f"Split pattern {pattern_id} into {len(splits)} patterns")
        return splits

    def prune(self) -> List[str]:
        """Drop the lowest success_rate · ln(usage + 1) patterns down to 80% of max_patterns."""

        with self._lock:
            excess = len(self._patterns) - math.floor(self.config.max_patterns * PRUNE_KEEP_FRACTION)
            if excess <= 0:
                return []
            # sorted() is stable: ties keep insertion order
            ranked = sorted(
                self._patterns.values(),
                key=lambda p: p.success_rate * math.log(p.usage_count + 1),
            )
            removed = [p.pattern_id for p in ranked[:excess]]
            for pid in removed:
                self._discard(pid)
            self._changed()
            if self.config.enable_clustering:
                self._clusters.rebuild(self._embeddings)

        logger.info(f"Pruned {len(removed)} patterns (max_patterns={self.config.max_patterns})")
        return removed

    # ------------------ removal ------------------
    def remove(self, pattern_id: str) -> bool:
        with self._lock:
            if pattern_id not in self._patterns:
                return False
            self._discard(pattern_id)
            self._changed()
        return True

    def remove_many(
        self,
        pattern_ids: Sequence[str],
        *,
        absorbed_into: Optional[Mapping[str, str]] = None,
    ) -> List[str]:
        """Remove several patterns in one step.

        ``absorbed_into`` maps a removed id to the surviving id that takes over
        its usage count and quality history. Survivors must not be removed in
        the same call. Returns the ids actually removed.
        """
        absorbed_into = absorbed_into or {}
        with self._lock:
            doomed = [pid for pid in dict.fromkeys(pattern_ids) if pid in self._patterns]
            doomed_set = set(doomed)
            for loser_id, survivor_id in absorbed_into.items():
                if loser_id not in doomed_set or survivor_id in doomed_set:
                    continue
                survivor = self._patterns.get(survivor_id)
                if survivor is not None:
                    self._absorb(survivor, self._patterns[loser_id])

            for pid in doomed:
                self._discard(pid)
            if doomed:
                self._changed()
        return doomed

    def clear(self) -> None:
        with self._lock:
            for pid in list(self._patterns):
                self._mirror_delete(pid)
            self._patterns.clear()
            self._clusters.clear()
            self._dim = None
            self._new_since_consolidation = 0
            self._changed()

    # ------------------ access ------------------
    def get(self, pattern_id: str) -> Optional[Pattern]:
        with self._lock:
            return self._patterns.get(pattern_id)

    def all(self) -> List[Pattern]:
        with self._lock:
            return list(self._patterns.values())

    def by_domain(self, domain: str) -> List[Pattern]:
        return [p for p in self.all() if p.domain == domain]

    def stable_patterns(self) -> List[Pattern]:
        return [p for p in self.all() if p.usage_count >= self.config.min_usages_for_stable]

    def __len__(self) -> int:
        return len(self._patterns)

    def __contains__(self, pattern_id: object) -> bool:
        return pattern_id in self._patterns

    def view(self) -> PatternView:
        """Cached snapshot for readers; rebuilt only after the store changes.

        An evolve or duplicate update refreshes the reliability arrays and
        reuses the embedding matrix of the cached view.
        """

        with self._lock:
            view = self._view
            if view is not None and view.version == self._version:
                if view.stats_version == self._stats_version:
                    return view
                view = replace(view, stats_version=self._stats_version, **self._stats_arrays(view.ids))
                self._view = view
                return view
            ids = tuple(self._patterns)
            patterns = dict(self._patterns)
            if ids:
                unit = normalize_rows(np.vstack([patterns[pid].embedding for pid in ids]))
            else:
                unit = np.zeros((0, self._dim or 0), dtype=np.float64)
            view = PatternView(
                version=self._version,
                ids=ids,
                patterns=patterns,
                unit=unit,
                positions={pid: i for i, pid in enumerate(ids)},
                dim=self._dim,
                stats_version=self._stats_version,
                **self._stats_arrays(ids),
            )
            self._view = view
            return view

    def _stats_arrays(self, ids: Sequence[str]) -> Dict[str, np.ndarray]:
        return {
            "success_rates": np.array([self._patterns[pid].success_rate for pid in ids], dtype=np.float64),
            "usage_counts": np.array([self._patterns[pid].usage_count for pid in ids], dtype=np.int64),
        }

    def candidate_ids(self, query: np.ndarray, top_n: int) -> Optional[List[str]]:
        """Member ids of the nearest clusters, or None when a full scan is required."""

        if not self.config.enable_clustering:
            return None
        with self._lock:
            if len(self._clusters) == 0:
                return None
            return self._clusters.candidates(query, top_n)

    def rebuild_clusters(self) -> None:
        with self._lock:
            self._clusters.rebuild(self._embeddings)

    def record_match(self, duration_ms: float) -> None:
        self.match_count += 1
        self.total_match_ms += duration_ms

    def stats(self) -> Dict[str, Any]:
        patterns = self.all()
        return {
            "total_patterns": len(patterns),
            "stable_patterns": sum(1 for p in patterns if p.usage_count >= self.config.min_usages_for_stable),
            "avg_success_rate": mean(p.success_rate for p in patterns),
            "avg_usage_count": mean(p.usage_count for p in patterns),
            "num_clusters": len(self._clusters),
            "avg_match_time_ms": self.total_match_ms / self.match_count if self.match_count else 0.0,
            "avg_extraction_time_ms": (
                self.total_extraction_ms / self.extraction_count if self.extraction_count else 0.0
            ),
            "avg_evolution_time_ms": (
                self.total_evolution_ms / self.evolution_count if self.evolution_count else 0.0
            ),
        }

    def estimate_bytes(self) -> int:
        total = 0
        for pattern in self.all():
            total += 100 + (len(pattern.name) + len(pattern.strategy)) * 2
            total += pattern.embedding.nbytes
            total += len(pattern.quality_history) * 8
            total += len(pattern.evolution_history) * 100
        return total

    # ------------------ internals (caller holds the lock) ------------------
    def _require(self, pattern_id: str) -> Pattern:
        pattern = self._patterns.get(pattern_id)
        if pattern is None:
            raise UnknownPatternError(pattern_id)
        return pattern

    def _changed(self) -> None:
        self._version += 1
        self._view = None

    def _stats_changed(self) -> None:
        self._stats_version += 1

    def _check_dim(self, embedding: np.ndarray) -> None:
        if self._dim is None:
            self._dim = int(embedding.shape[0])
        elif embedding.shape[0] != self._dim:
            raise EmbeddingDimensionMismatch(
                f"Pattern embedding has dimension {embedding.shape[0]}, store uses {self._dim}"
            )

    def _insert(self, pattern: Pattern) -> None:
        self._check_dim(pattern.embedding)
        self._patterns[pattern.pattern_id] = pattern
        if self.config.enable_clustering:
            self._clusters.assign(pattern.pattern_id, pattern.embedding, self._embeddings)
        self._mirror_insert(pattern)
        self._new_since_consolidation += 1
        self._changed()
        self._enforce_capacity()

    def _enforce_capacity(self) -> None:
        if len(self._patterns) > self.config.max_patterns:
            self.prune()

    def _discard(self, pattern_id: str) -> None:
        self._patterns.pop(pattern_id, None)
        self._clusters.remove(pattern_id, self._embeddings)
        self._mirror_delete(pattern_id)

    def _observe(self, pattern: Pattern, quality: float) -> None:
        lr = self.config.evolution_learning_rate
        pattern.quality_history.append(quality)
        pattern.success_rate = clamp_unit(pattern.success_rate * (1 - lr) + quality * lr)
        pattern.usage_count += 1
        pattern.touch()
        self._stats_changed()

    def _absorb(self, survivor: Pattern, loser: Pattern) -> None:
        previous = survivor.success_rate
        survivor.usage_count += loser.usage_count
        survivor.quality_history.extend(loser.quality_history)
        survivor.success_rate = clamp_unit(mean(survivor.quality_history, default=previous))
        survivor.evolution_history.append(
            PatternEvolution(
                type="merge",
                previous_quality=previous,
                new_quality=survivor.success_rate,
                description=f"Absorbed duplicate pattern {loser.pattern_id}",
            )
        )
        survivor.touch()
        self._stats_changed()

    def _find_duplicate(self, embedding: np.ndarray) -> Optional[Pattern]:
        threshold = self.config.duplicate_threshold
        if self._index_healthy and self._vector_index is not None:
            try:
                hits = self._vector_index.search(embedding, 1)
            except Exception as e:
                self._index_failed("search", e)
            else:
                for pid in hits:
                    candidate = self._patterns.get(pid)
                    if candidate is not None and cosine_similarity(embedding, candidate.embedding) >= threshold:
                        return candidate
                return None

        view = self.view()
        if not view.ids or view.unit.shape[1] != embedding.shape[0]:
            return None
        norm = float(np.linalg.norm(embedding))
        if norm <= 0.0:
            return None
        scores = view.unit @ (embedding.astype(np.float64) / norm)
        best = int(np.argmax(scores))
        if scores[best] >= threshold:
            return view.patterns[view.ids[best]]
        return None

    def _mirror_insert(self, pattern: Pattern) -> None:
        if not self._index_healthy or self._vector_index is None:
            return
        try:
            self._vector_index.insert(pattern.pattern_id, pattern.embedding)
        except Exception as e:
            self._index_failed("insert", e)

    def _mirror_delete(self, pattern_id: str) -> None:
        if not self._index_healthy or self._vector_index is None:
            return
        try:
            self._vector_index.delete(pattern_id)
        except Exception as e:
            self._index_failed("delete", e)

    def _index_failed(self, operation: str, error: Exception) -> None:
        self._index_healthy = False
        logger.warning(f"Vector index {operation} failed, falling back to in-memory scan: {error}")


__all__ = [
    "PatternStore",
    "PatternView",
    "classify_evolution",
    "generate_pattern_name",
    "PRUNE_KEEP_FRACTION",
    "SPLIT_SUCCESS_DISCOUNT",
]
