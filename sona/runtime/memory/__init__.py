"""
Continual-Learning Memory - Trajectories, Patterns & Consolidation

WHAT: In-process library turning agent executions into reusable patterns
WHERE: sona/runtime/memory/ - runtime memory subsystem
WHO: Agents recording task attempts and recalling what worked before
TIME: Pattern match <1ms, extraction <5ms, consolidation <100ms

Components (leaves first):
- vector_math: cosine similarity and embedding averaging
- trajectory_store: lifecycle of in-flight and completed trajectories
- pattern_store + cluster_index: pattern ownership and k-means candidate pruning
- retriever: MMR-based top-k retrieval
- judge / distiller: rule-based verdicts and condensed memories
- consolidation: dedup, contradiction flagging and pruning
- orchestrator: mode-aware facade over all of the above

Boundary Notes:
- Policy backends and vector indexes are external collaborators (Protocols)
- Listeners subscribe to typed events through the shared EventBus
"""

from .cluster_index import Cluster, ClusterIndex  # noqa: F401
from .config import (  # noqa: F401
    ConsolidationConfig,
    DistillerConfig,
    MemoryConfig,
    PatternStoreConfig,
    RetrieverConfig,
)
from .consolidation import Consolidator  # noqa: F401
from .distiller import Distiller  # noqa: F401
from .errors import (  # noqa: F401
    EmbeddingDimensionMismatch,
    IncompleteTrajectoryError,
    InvalidDomainError,
    SonaMemoryError,
    UnknownModeError,
    UnknownPatternError,
)
from .events import EventBus, EventRecorder, EventType, MemoryEvent  # noqa: F401
from .judge import Judge  # noqa: F401
from .models import (  # noqa: F401
    ConsolidationResult,
    Contradiction,
    DistilledMemory,
    Pattern,
    PatternEvolution,
    PatternMatch,
    Trajectory,
    TrajectoryStep,
    TrajectoryVerdict,
)
from .modes import MODE_CONFIGS, ModeConfig, available_modes, get_mode_config  # noqa: F401
from .orchestrator import SonaOrchestrator  # noqa: F401
from .pattern_store import PatternStore, PatternView  # noqa: F401
from .policy import PolicyBackend, RecordingPolicyBackend  # noqa: F401
from .retriever import Retriever  # noqa: F401
from .telemetry import (  # noqa: F401
    LoggingTelemetryClient,
    NoOpTelemetryClient,
    RecordingTelemetryClient,
    TelemetryClient,
    TelemetrySpan,
)
from .trajectory_store import TrajectoryStore  # noqa: F401
from .vector_index import InMemoryVectorIndex, VectorIndex  # noqa: F401
from .vector_math import cosine_similarity  # noqa: F401
