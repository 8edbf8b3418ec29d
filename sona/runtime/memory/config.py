"""
Memory Configuration - Defaults for every learning component

WHAT: Dataclass configs for pattern store, retriever, distiller, consolidator
WHERE: sona/runtime/memory/config.py - read by component constructors
WHO: Orchestrator and tests constructing independent store instances

Environment overrides (MemoryConfig.from_env):
- SONA_MODE: learning mode name (default "balanced")
- SONA_EMBEDDING_DIM: embedding dimension (default 768)
- SONA_MAX_PATTERNS: pattern store capacity (default 1000)
- SONA_MMR_LAMBDA: relevance/diversity balance for retrieval (default 0.7)
- SONA_DISTILLATION_THRESHOLD: minimum quality to distill (default 0.6)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from typing import Optional

from .modes import DEFAULT_MODE, ModeConfig, get_mode_config
from .vector_math import DEFAULT_EMBEDDING_DIM


@dataclass(slots=True)
class PatternStoreConfig:
    max_patterns: int = 1000
    min_usages_for_stable: int = 5
    quality_threshold: float = 0.5
    enable_clustering: bool = True
    num_clusters: int = 50
    evolution_learning_rate: float = 0.1
    duplicate_threshold: float = 0.95  # extract() updates in place above this
    cluster_join_threshold: float = 0.7
    kmeans_iterations: int = 10
    batch_rebuild_threshold: int = 10
    split_noise: float = 0.1
    seed: Optional[int] = None
    embedding_dim: int = DEFAULT_EMBEDDING_DIM


@dataclass(slots=True)
class RetrieverConfig:
    k: int = 3
    match_threshold: float = 0.7
    use_mmr: bool = True
    mmr_lambda: float = 0.7  # 1.0 = pure relevance, 0.0 = pure diversity
    candidate_clusters: int = 3
    latency_budget_ms: float = 1.0


@dataclass(slots=True)
class DistillerConfig:
    distillation_threshold: float = 0.6
    max_key_learnings: int = 5
    high_reward_threshold: float = 0.7
    embedding_dim: int = DEFAULT_EMBEDDING_DIM


@dataclass(slots=True)
class ConsolidationConfig:
    """Configuration for deduplication, contradiction flagging and pruning."""

    dedup_threshold: float = 0.95
    contradiction_threshold: float = 0.85
    prune_age_days: float = 30.0
    min_confidence_keep: float = 0.3
    min_usage_keep: int = 3
    merge_duplicates: bool = True  # survivor absorbs usage/quality of removed duplicates
    latency_budget_ms: float = 100.0
    trigger_new_patterns: int = 100
    trigger_interval_s: Optional[float] = None


@dataclass(slots=True)
class MemoryConfig:
    mode: str = DEFAULT_MODE
    patterns: PatternStoreConfig = field(default_factory=PatternStoreConfig)
    retriever: RetrieverConfig = field(default_factory=RetrieverConfig)
    distiller: DistillerConfig = field(default_factory=DistillerConfig)
    consolidation: ConsolidationConfig = field(default_factory=ConsolidationConfig)

    def mode_config(self) -> ModeConfig:
        return get_mode_config(self.mode)

    @classmethod
    def from_env(cls, *, mode: Optional[str] = None) -> "MemoryConfig":
        """Create from environment configuration."""
        dim = int(os.environ.get("SONA_EMBEDDING_DIM", DEFAULT_EMBEDDING_DIM))
        patterns = PatternStoreConfig(
            max_patterns=int(os.environ.get("SONA_MAX_PATTERNS", 1000)),
            embedding_dim=dim,
        )
        retriever = RetrieverConfig(
            mmr_lambda=float(os.environ.get("SONA_MMR_LAMBDA", 0.7)),
        )
        distiller = DistillerConfig(
            distillation_threshold=float(os.environ.get("SONA_DISTILLATION_THRESHOLD", 0.6)),
            embedding_dim=dim,
        )
        return cls(
            mode=mode or os.environ.get("SONA_MODE", DEFAULT_MODE),
            patterns=patterns,
            retriever=retriever,
            distiller=distiller,
        )


def pattern_config_for_mode(base: PatternStoreConfig, mode: ModeConfig) -> PatternStoreConfig:
    """Apply a mode's quality threshold and cluster count to a pattern config."""
    return replace(base, quality_threshold=mode.quality_threshold, num_clusters=mode.pattern_clusters)


__all__ = [
    "PatternStoreConfig",
    "RetrieverConfig",
    "DistillerConfig",
    "ConsolidationConfig",
    "MemoryConfig",
    "pattern_config_for_mode",
]
