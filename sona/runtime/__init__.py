"""
Runtime Learning Module

WHAT: Runtime subsystem for trajectory capture, pattern learning and recall
WHERE: sona/runtime/ - in-process layer consumed by agent frameworks
WHO: Agents that learn reusable strategies from their own executions
TIME: Pattern match <1ms, extraction <5ms, consolidation <100ms

Provides the execution layer for continual-learning memory: trajectories are
recorded step by step, successful ones are judged and distilled into
patterns, patterns are retrieved with diversity-aware ranking, and a periodic
consolidation pass keeps the pattern store clean.

Memory Architecture:
- trajectories: in-flight and completed task attempts
- patterns: reusable strategies with running success-rate estimates
- clusters: approximate k-means index over pattern embeddings
- events: synchronous observer registry for external listeners

Boundary Notes:
- No blocking I/O anywhere in the runtime
- Persistence and vector acceleration are external collaborators
- Policy-learning backends consume completed trajectories only
"""

__all__ = ["memory"]
