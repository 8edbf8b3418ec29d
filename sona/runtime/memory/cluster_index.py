"""
Cluster Index - Approximate k-means index for candidate pruning

WHAT: Groups pattern ids around centroids so retrieval scans a few clusters
WHERE: sona/runtime/memory/cluster_index.py - owned by the pattern store
WHO: Pattern store (maintenance) and retriever (candidate generation)
TIME: assign O(clusters·d + members·d), rebuild O(iterations·n·k·d)

Clusters hold pattern ids only plus a derived centroid; embeddings are looked
up through a mapping supplied by the caller on every operation, so deleting a
pattern never requires more than dropping its id from a cluster.

Maintenance rules:
- Insert: join the most similar cluster, unless its centroid similarity is
  below ``join_threshold`` and fewer than ``num_clusters`` exist, in which
  case a new cluster is seeded at the pattern's embedding
- Centroid = mean of member embeddings, recomputed after every change
- Rebuild: ``iterations`` rounds of cosine k-means with
  k = min(num_clusters, ceil(n / 5)); empty clusters are dropped
"""

from __future__ import annotations

import logging
import math
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Tuple

import numpy as np

from .vector_math import as_embedding, mean_embedding, normalize_rows, similarities

logger = logging.getLogger(__name__)

PATTERNS_PER_CLUSTER = 5


@dataclass(slots=True)
class Cluster:
    cluster_id: int
    centroid: np.ndarray
    # dict used as an insertion-ordered set of pattern ids
    members: Dict[str, None] = field(default_factory=dict)

    @property
    def pattern_ids(self) -> List[str]:
        return list(self.members)

    def __len__(self) -> int:
        return len(self.members)


class ClusterIndex:
    """Id-only cluster structure with centroids derived from caller-held embeddings."""

    def __init__(
        self,
        *,
        num_clusters: int = 50,
        join_threshold: float = 0.7,
        iterations: int = 10,
        seed: Optional[int] = None,
    ) -> None:
        self.num_clusters = num_clusters
        self.join_threshold = join_threshold
        self.iterations = iterations
        self._rng = np.random.default_rng(seed)
        self._clusters: Dict[int, Cluster] = {}
        self._assignment: Dict[str, int] = {}
        self._next_id = 0

    @property
    def clusters(self) -> Tuple[Cluster, ...]:
        return tuple(self._clusters.values())

    def __len__(self) -> int:
        return len(self._clusters)

    def cluster_of(self, pattern_id: str) -> Optional[int]:
        return self._assignment.get(pattern_id)

    def clear(self) -> None:
        self._clusters.clear()
        self._assignment.clear()

    # ------------------ incremental maintenance ------------------
    def assign(self, pattern_id: str, embedding: np.ndarray, embeddings: Mapping[str, np.ndarray]) -> int:
        """Place ``pattern_id`` into a cluster and return the cluster id."""

        if pattern_id in self._assignment:
            self.remove(pattern_id, embeddings)

        if not self._clusters:
            return self._new_cluster(pattern_id, embedding)

        clusters = list(self._clusters.values())
        scores = similarities(embedding, [c.centroid for c in clusters])
        best = int(np.argmax(scores))
        if scores[best] < self.join_threshold and len(clusters) < self.num_clusters:
            return self._new_cluster(pattern_id, embedding)

        cluster = clusters[best]
        cluster.members[pattern_id] = None
        self._assignment[pattern_id] = cluster.cluster_id
        self._update_centroid(cluster, embeddings)
        return cluster.cluster_id

    def remove(self, pattern_id: str, embeddings: Mapping[str, np.ndarray]) -> bool:
        """Drop ``pattern_id``; empty clusters disappear, others get a fresh centroid."""

        cluster_id = self._assignment.pop(pattern_id, None)
        if cluster_id is None:
            return False
        cluster = self._clusters.get(cluster_id)
        if cluster is None:
            return True
        cluster.members.pop(pattern_id, None)
        if not cluster.members:
            del self._clusters[cluster_id]
        else:
            self._update_centroid(cluster, embeddings)
        return True

    def _new_cluster(self, pattern_id: str, embedding: np.ndarray) -> int:
        cluster = Cluster(cluster_id=self._next_id, centroid=as_embedding(embedding))
        self._next_id += 1
        cluster.members[pattern_id] = None
        self._clusters[cluster.cluster_id] = cluster
        self._assignment[pattern_id] = cluster.cluster_id
        return cluster.cluster_id

    def _update_centroid(self, cluster: Cluster, embeddings: Mapping[str, np.ndarray]) -> None:
        vectors = [embeddings[pid] for pid in cluster.members if pid in embeddings]
        if vectors:
            cluster.centroid = mean_embedding(vectors)

    # ------------------ full rebuild ------------------
    def rebuild(self, embeddings: Mapping[str, np.ndarray]) -> None:
        """Recluster every pattern from scratch."""

        self._clusters.clear()
        self._assignment.clear()
        if not embeddings:
            return

        dims = Counter(len(v) for v in embeddings.values())
        dim = dims.most_common(1)[0][0]
        ids = [pid for pid, v in embeddings.items() if len(v) == dim]
        if len(ids) != len(embeddings):
            logger.warning(
                f"Cluster rebuild skipped {len(embeddings) - len(ids)} patterns "
                f"with embedding dimension != {dim}"
            )

        raw = np.vstack([np.asarray(embeddings[pid], dtype=np.float64) for pid in ids])
        unit = normalize_rows(raw)
        n = len(ids)
        k = max(1, min(self.num_clusters, math.ceil(n / PATTERNS_PER_CLUSTER)))

        seeds = np.sort(self._rng.choice(n, size=k, replace=False))
        centroids = raw[seeds].copy()
        labels = np.zeros(n, dtype=np.int64)

        for _ in range(self.iterations):
            sims = unit @ normalize_rows(centroids).T
            labels = np.argmax(sims, axis=1)
            for c in range(k):
                mask = labels == c
                if mask.any():
                    centroids[c] = raw[mask].mean(axis=0)

        for c in range(k):
            member_idx = np.flatnonzero(labels == c)
            if member_idx.size == 0:
                continue
            cluster = Cluster(
                cluster_id=self._next_id,
                centroid=centroids[c].astype(np.float32),
            )
            self._next_id += 1
            for i in member_idx:
                cluster.members[ids[i]] = None
                self._assignment[ids[i]] = cluster.cluster_id
            self._clusters[cluster.cluster_id] = cluster

        logger.debug(f"Rebuilt cluster index: {n} patterns into {len(self._clusters)} clusters")

    # ------------------ retrieval support ------------------
    def nearest_clusters(self, query: np.ndarray, top_n: int = 3) -> List[Cluster]:
        clusters = list(self._clusters.values())
        if not clusters or top_n <= 0:
            return []
        scores = similarities(query, [c.centroid for c in clusters])
        order = np.argsort(-scores, kind="stable")[:top_n]
        return [clusters[i] for i in order]

    def candidates(self, query: np.ndarray, top_n: int = 3) -> List[str]:
        """Member ids of the ``top_n`` clusters closest to ``query``."""

        ids: List[str] = []
        for cluster in self.nearest_clusters(query, top_n):
            ids.extend(cluster.members)
        return ids


__all__ = ["Cluster", "ClusterIndex", "PATTERNS_PER_CLUSTER"]
