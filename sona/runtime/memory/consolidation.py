"""
Memory Consolidation - Deduplicate, flag contradictions, prune stale patterns

WHAT: Periodic maintenance pass over every stored pattern
WHERE: sona/runtime/memory/consolidation.py - maintenance layer over the pattern store
WHO: Orchestrator (volume/time triggered) or operators calling consolidate()
TIME: O(n²·d) pairwise comparison, blockwise; target <100ms at the pattern ceiling

One pass, planned against a single snapshot and applied at the end:
1. Dedup: pairs with similarity ≥ dedup_threshold collapse; the pattern with
   the higher usage_count · confidence survives (earlier pattern on ties)
2. Contradictions: surviving pairs with similarity ≥ contradiction_threshold
   and different outcome labels are logged and reported, never removed
3. Prune: survivors older than prune_age_days with confidence below
   min_confidence_keep and usage below min_usage_keep are removed

Boundary Notes:
- The store's writer lock is held from snapshot to removal, so no other
  mutation interleaves with the plan
- With merge_duplicates on, survivors absorb the usage and quality history of
  the duplicates they replace and are exempt from pruning in the same pass
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

import numpy as np

from .config import ConsolidationConfig
from .events import EventBus, EventType
from .models import ConsolidationResult, Contradiction, Pattern, utcnow
from .pattern_store import PatternStore
from .telemetry import NoOpTelemetryClient, TelemetryClient
from .vector_math import normalize_rows

logger = logging.getLogger(__name__)

PAIR_BLOCK_ROWS = 256


def similar_pairs(unit: np.ndarray, threshold: float) -> List[Tuple[int, int, float]]:
    """Pairs (i, j, sim) with i < j and sim ≥ threshold, in row-major order.

    Rows are compared in blocks so the full n×n matrix is never materialised.
    """
    n = unit.shape[0]
    pairs: List[Tuple[int, int, float]] = []
    for start in range(0, n, PAIR_BLOCK_ROWS):
        block = unit[start:start + PAIR_BLOCK_ROWS] @ unit.T
        rows = np.arange(start, start + block.shape[0])[:, None]
        upper = np.arange(n)[None, :] > rows
        for r, c in np.argwhere(upper & (block >= threshold)):
            pairs.append((int(start + r), int(c), float(block[r, c])))
    return pairs


@dataclass
class ConsolidationPlan:
    """Changes computed before anything is removed."""

    absorbed_into: Dict[str, str]
    pruned: List[str]
    contradictions: List[Contradiction]

    @property
    def removals(self) -> List[str]:
        return list(self.absorbed_into) + self.pruned


class Consolidator:
    """
    Runs consolidation passes over a PatternStore.

    Triggers (checked by ``is_due``):
    1. Volume: new patterns since the last pass ≥ trigger_new_patterns
    2. Time: trigger_interval_s elapsed since the last pass (when configured)
    """

    def __init__(
        self,
        store: PatternStore,
        config: Optional[ConsolidationConfig] = None,
        *,
        events: Optional[EventBus] = None,
        telemetry: Optional[TelemetryClient] = None,
    ) -> None:
        self.store = store
        self.config = config or ConsolidationConfig()
        self._events = events or store.events
        self._telemetry = telemetry or NoOpTelemetryClient()
        self.last_run: float = time.monotonic()
        self.runs = 0

    def is_due(self, now: Optional[float] = None) -> bool:
        if self.store.new_since_consolidation >= self.config.trigger_new_patterns:
            return True
        interval = self.config.trigger_interval_s
        if interval is not None:
            current = time.monotonic() if now is None else now
            return current - self.last_run >= interval
        return False

    def consolidate(self) -> ConsolidationResult:
        """
        Run one consolidation pass.

        Returns:
            ConsolidationResult with counts, flagged contradictions and removed ids
        """
        with self._telemetry.span(
            "memory.consolidate", budget_ms=self.config.latency_budget_ms
        ) as span:
            with self.store.lock:
                patterns = self.store.all()
                plan = self.plan(patterns, now=utcnow())
                removed = self.store.remove_many(
                    plan.removals,
                    absorbed_into=plan.absorbed_into if self.config.merge_duplicates else None,
                )
                self.store.mark_consolidated()
            span.set_attribute("items", len(patterns))

        merged = len(set(plan.absorbed_into.values())) if self.config.merge_duplicates else 0
        result = ConsolidationResult(
            removed_duplicates=len(plan.absorbed_into),
            contradictions_detected=len(plan.contradictions),
            pruned_patterns=len(plan.pruned),
            merged_patterns=merged,
            items_processed=len(patterns),
            duration_ms=span.duration_ms,
            contradictions=plan.contradictions,
            removed_ids=removed,
        )
        self.last_run = time.monotonic()
        self.runs += 1

        for c in plan.contradictions:
            logger.warning(
                f"Contradictory patterns {c.pattern_a} ({c.outcome_a}) and "
                f"{c.pattern_b} ({c.outcome_b}) at similarity {c.similarity:.3f}"
            )
        logger.info(
            f"Consolidated {result.items_processed} patterns: "
            f"{result.removed_duplicates} duplicates, {result.pruned_patterns} pruned, "
            f"{result.contradictions_detected} contradictions ({result.duration_ms:.1f}ms)"
        )
        self._events.emit(
            EventType.MEMORY_CONSOLIDATED,
            removed_duplicates=result.removed_duplicates,
            contradictions_detected=result.contradictions_detected,
            pruned_patterns=result.pruned_patterns,
            merged_patterns=result.merged_patterns,
            duration_ms=result.duration_ms,
        )
        return result

    def plan(self, patterns: List[Pattern], now: Optional[datetime] = None) -> ConsolidationPlan:
        """Decide what to remove without touching the store."""

        now = now or utcnow()
        if not patterns:
            return ConsolidationPlan(absorbed_into={}, pruned=[], contradictions=[])

        unit = normalize_rows(np.vstack([p.embedding for p in patterns]))
        threshold = min(self.config.dedup_threshold, self.config.contradiction_threshold)
        pairs = similar_pairs(unit, threshold)

        # 1. duplicates: loser index -> survivor index
        beaten: Dict[int, int] = {}
        for i, j, sim in pairs:
            if sim < self.config.dedup_threshold or i in beaten or j in beaten:
                continue
            if self._strength(patterns[j]) > self._strength(patterns[i]):
                beaten[i] = j
            else:
                beaten[j] = i

        absorbed_into: Dict[str, str] = {}
        for loser in beaten:
            survivor = beaten[loser]
            while survivor in beaten:
                survivor = beaten[survivor]
            absorbed_into[patterns[loser].pattern_id] = patterns[survivor].pattern_id

        # 2. contradictions among survivors
        contradictions: List[Contradiction] = []
        for i, j, sim in pairs:
            if sim < self.config.contradiction_threshold or i in beaten or j in beaten:
                continue
            a, b = patterns[i], patterns[j]
            if a.outcome is not None and b.outcome is not None and a.outcome != b.outcome:
                contradictions.append(
                    Contradiction(
                        pattern_a=a.pattern_id,
                        pattern_b=b.pattern_id,
                        similarity=sim,
                        outcome_a=a.outcome,
                        outcome_b=b.outcome,
                    )
                )

        # 3. stale, unreliable, rarely used survivors
        absorbing = set(absorbed_into.values()) if self.config.merge_duplicates else set()
        max_age = timedelta(days=self.config.prune_age_days)
        pruned = [
            p.pattern_id
            for idx, p in enumerate(patterns)
            if idx not in beaten
            and p.pattern_id not in absorbing
            and now - p.created_at > max_age
            and p.confidence < self.config.min_confidence_keep
            and p.usage_count < self.config.min_usage_keep
        ]

        return ConsolidationPlan(absorbed_into=absorbed_into, pruned=pruned, contradictions=contradictions)

    @staticmethod
    def _strength(pattern: Pattern) -> float:
        return pattern.usage_count * pattern.confidence


__all__ = ["Consolidator", "ConsolidationPlan", "similar_pairs"]
