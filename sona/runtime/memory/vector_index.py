"""
Vector Index - Optional acceleration collaborator for pattern lookup

WHAT: Protocol for an external {insert, search, delete} vector index
WHERE: sona/runtime/memory/vector_index.py - boundary to persistence/ANN engines
WHO: Pattern store mirroring its writes; extract() duplicate lookup

The core works without an index (brute-force cosine over the in-memory
store). When one is configured, failures are logged and the core falls back
to the in-memory path; retrieval (find_matches) never waits on it.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Protocol, runtime_checkable

import numpy as np

from .vector_math import as_embedding, similarities

logger = logging.getLogger(__name__)


@runtime_checkable
class VectorIndex(Protocol):
    """Abstract interface for an external vector index."""

    def insert(self, item_id: str, embedding: np.ndarray) -> None:
        """Add or replace the vector stored for ``item_id``."""

    def search(self, embedding: np.ndarray, k: int) -> List[str]:
        """Return up to ``k`` ids, most similar first."""

    def delete(self, item_id: str) -> None:
        """Remove ``item_id`` if present (idempotent)."""


class InMemoryVectorIndex(VectorIndex):
    """Exact cosine index kept in a dict; reference implementation of the protocol."""

    def __init__(self) -> None:
        self._vectors: Dict[str, np.ndarray] = {}

    def insert(self, item_id: str, embedding: np.ndarray) -> None:
        self._vectors[item_id] = as_embedding(embedding)

    def search(self, embedding: np.ndarray, k: int) -> List[str]:
        if k <= 0 or not self._vectors:
            return []
        ids = list(self._vectors)
        scores = similarities(embedding, [self._vectors[i] for i in ids])
        order = np.argsort(-scores, kind="stable")[:k]
        return [ids[i] for i in order]

    def delete(self, item_id: str) -> None:
        self._vectors.pop(item_id, None)

    def __len__(self) -> int:
        return len(self._vectors)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._vectors


__all__ = ["VectorIndex", "InMemoryVectorIndex"]
