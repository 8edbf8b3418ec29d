"""
Pattern Retriever - Cluster-pruned, diversity-aware pattern lookup

WHAT: Ranks stored patterns against a query embedding (top-k or MMR)
WHERE: sona/runtime/memory/retriever.py - read path over the pattern store
WHO: Orchestrator.find_matches and agents asking "what worked before?"
TIME: <1ms target for hundreds to low-thousands of patterns

Pipeline:
1. Candidates: members of the 3 clusters nearest the query (full scan if
   clustering is off or no clusters exist yet)
2. Filter: cosine similarity ≥ match_threshold, optional domain and
   minimum-confidence filters
3. Rank: plain top-k by similarity, or MMR
   ``lambda * relevance - (1 - lambda) * max_similarity_to_selected``
4. Confidence: ``sim * (1 - 0.2u - 0.2q) + 0.1u + 0.1q`` with
   ``u = min(usage / 10, 1)`` and ``q = success_rate``

Boundary Notes:
- Reads a PatternView snapshot; confidences come from the reliability
  figures captured in that snapshot, not from the live Pattern objects
- Never blocks on the vector-index collaborator
- Similarity to a query of a different dimension is 0.0, never an error
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .config import RetrieverConfig
from .models import Pattern, PatternMatch
from .pattern_store import PatternStore, PatternView
from .telemetry import NoOpTelemetryClient, TelemetryClient
from .vector_math import VectorLike, as_embedding

logger = logging.getLogger(__name__)


def match_confidence(pattern: Pattern, similarity: float) -> float:
    """Blend similarity with pattern reliability (usage and success rate)."""
    return blend_confidence(similarity, pattern.usage_count, pattern.success_rate)


def blend_confidence(similarity: float, usage_count: float, success_rate: float) -> float:
    usage_weight = min(float(usage_count) / 10.0, 1.0)
    quality_weight = float(success_rate)
    return (
        similarity * (1.0 - usage_weight * 0.2 - quality_weight * 0.2)
        + usage_weight * 0.1
        + quality_weight * 0.1
    )


def mmr_select(relevance: np.ndarray, unit: np.ndarray, k: int, lam: float) -> List[int]:
    """Maximal Marginal Relevance selection over candidate rows.

    Args:
        relevance: Query similarity per candidate
        unit: Row-normalised candidate embeddings (same order)
        k: Number of rows to select
        lam: 1.0 = pure relevance, 0.0 = pure diversity

    Returns:
        Selected row indices in selection order; the first maximum wins ties
    """
    m = relevance.shape[0]
    selected: List[int] = []
    if m == 0 or k <= 0:
        return selected

    max_sim = np.zeros(m, dtype=np.float64)
    available = np.ones(m, dtype=bool)
    for _ in range(min(k, m)):
        scores = lam * relevance - (1.0 - lam) * max_sim
        scores = np.where(available, scores, -np.inf)
        best = int(np.argmax(scores))
        selected.append(best)
        available[best] = False
        max_sim = np.maximum(max_sim, unit @ unit[best])
    return selected


class Retriever:
    """Answers find_matches queries against a PatternStore."""

    def __init__(
        self,
        store: PatternStore,
        config: Optional[RetrieverConfig] = None,
        *,
        telemetry: Optional[TelemetryClient] = None,
    ) -> None:
        self.store = store
        self.config = config or RetrieverConfig()
        self._telemetry = telemetry or NoOpTelemetryClient()

    def find_matches(
        self,
        query: VectorLike,
        k: Optional[int] = None,
        *,
        use_mmr: Optional[bool] = None,
        mmr_lambda: Optional[float] = None,
        domain: Optional[str] = None,
        min_confidence: float = 0.0,
    ) -> List[PatternMatch]:
        """
        Find the patterns most relevant to ``query``.

        Args:
            query: Query embedding
            k: Maximum number of matches (defaults to config.k)
            use_mmr: Diversity-aware ranking (defaults to config.use_mmr)
            mmr_lambda: MMR relevance weight (defaults to config.mmr_lambda)
            domain: Only consider patterns of this domain
            min_confidence: Only consider patterns whose confidence reaches this value

        Returns:
            Ranked PatternMatch list, never containing the same pattern twice
        """
        k = self.config.k if k is None else k
        if k <= 0:
            return []
        use_mmr = self.config.use_mmr if use_mmr is None else use_mmr
        lam = self.config.mmr_lambda if mmr_lambda is None else mmr_lambda
        embedding = as_embedding(query)

        with self._telemetry.span(
            "memory.find_matches",
            attributes={"k": k, "mmr": use_mmr},
            budget_ms=self.config.latency_budget_ms,
        ) as span:
            view = self.store.view()
            rows, sims = self._score_candidates(view, embedding, domain, min_confidence)
            if use_mmr:
                order = mmr_select(sims, view.unit[rows], k, lam)
            else:
                order = list(np.argsort(-sims, kind="stable")[:k])

            matches: List[PatternMatch] = []
            for i in order:
                row = rows[i]
                pattern = view.patterns[view.ids[row]]
                similarity = float(sims[i])
                matches.append(
                    PatternMatch(
                        pattern=pattern,
                        similarity=similarity,
                        confidence=blend_confidence(
                            similarity, view.usage_counts[row], view.success_rates[row]
                        ),
                        score=similarity,
                    )
                )
            span.set_attribute("candidates", len(rows))
            span.set_attribute("matches", len(matches))

        self.store.record_match(span.duration_ms)
        for match in matches:
            match.latency_ms = span.duration_ms
        return matches

    def find_best_match(self, query: VectorLike, **filters) -> Optional[PatternMatch]:
        matches = self.find_matches(query, 1, **filters)
        return matches[0] if matches else None

    def _score_candidates(
        self,
        view: PatternView,
        query: np.ndarray,
        domain: Optional[str],
        min_confidence: float,
    ) -> Tuple[List[int], np.ndarray]:
        if not view.ids:
            return [], np.zeros(0)

        candidate_ids = self.store.candidate_ids(query, self.config.candidate_clusters)
        if candidate_ids is None:
            rows: Sequence[int] = range(len(view.ids))
        else:
            # clusters may briefly reference ids newer than this snapshot
            rows = [view.positions[pid] for pid in dict.fromkeys(candidate_ids) if pid in view.positions]

        if domain is not None or min_confidence > 0:
            rows = [
                r for r in rows
                if (domain is None or view.patterns[view.ids[r]].domain == domain)
                and view.success_rates[r] >= min_confidence
            ]
        rows = list(rows)
        if not rows:
            return [], np.zeros(0)

        norm = float(np.linalg.norm(query))
        if view.unit.shape[1] != query.shape[0] or norm <= 0.0:
            sims = np.zeros(len(rows), dtype=np.float64)
        else:
            sims = view.unit[rows] @ (query.astype(np.float64) / norm)

        keep = sims >= self.config.match_threshold
        kept_rows = [r for r, ok in zip(rows, keep) if ok]
        return kept_rows, sims[keep]


__all__ = ["Retriever", "blend_confidence", "match_confidence", "mmr_select"]
