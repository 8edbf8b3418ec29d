"""
Telemetry Collection - Latency spans and budget tracking

WHAT: Lightweight spans around memory operations with latency budgets
WHERE: sona/runtime/memory/telemetry.py - observability layer
WHO: Retriever, pattern store, judge, distiller, consolidator
TIME: Zero-overhead when disabled, <0.01ms overhead when enabled

Every latency-sensitive operation runs inside a span. When the operation
exceeds its budget the span is tagged ``over_budget`` and a warning is logged;
the operation itself is never interrupted.
"""

from __future__ import annotations

import logging
import time
from collections import defaultdict
from contextlib import AbstractContextManager
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


class TelemetrySpan(AbstractContextManager["TelemetrySpan"]):
    """Context manager capturing span metadata and duration."""

    def __init__(
        self,
        client: "TelemetryClient",
        name: str,
        attributes: Optional[Dict[str, Any]] = None,
        budget_ms: Optional[float] = None,
    ) -> None:
        self._client = client
        self.name = name
        self.attributes: Dict[str, Any] = dict(attributes or {})
        self.budget_ms = budget_ms
        self.duration_ms: float = 0.0
        self._start: float = 0.0

    def __enter__(self) -> "TelemetrySpan":
        self._start = time.perf_counter()
        return self

    def set_attribute(self, key: str, value: Any) -> None:
        """Update span attributes while running."""

        self.attributes[key] = value

    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self._start) * 1000.0

    def __exit__(self, exc_type, exc, exc_tb) -> bool:
        self.duration_ms = self.elapsed_ms()
        self.attributes.setdefault("success", exc is None)
        self.attributes["duration_ms"] = self.duration_ms
        if self.budget_ms is not None:
            over = self.duration_ms > self.budget_ms
            self.attributes["over_budget"] = over
            if over:
                logger.warning(
                    f"{self.name} exceeded latency budget: "
                    f"{self.duration_ms:.3f}ms > {self.budget_ms}ms"
                )
        self._client.emit_span(self.name, self.attributes)
        return False


class TelemetryClient:
    """Base telemetry client; override `emit_span` for custom sinks."""

    def span(
        self,
        name: str,
        *,
        attributes: Optional[Dict[str, Any]] = None,
        budget_ms: Optional[float] = None,
    ) -> TelemetrySpan:
        return TelemetrySpan(self, name, attributes, budget_ms)

    def emit_span(self, name: str, attributes: Dict[str, Any]) -> None:
        """Handle span completion. Subclasses override this hook."""

        raise NotImplementedError


@dataclass(slots=True)
class NoOpTelemetryClient(TelemetryClient):
    """Telemetry client that silently discards spans."""

    def emit_span(self, name: str, attributes: Dict[str, Any]) -> None:  # noqa: D401 - intentionally empty
        pass


class LoggingTelemetryClient(TelemetryClient):
    """Writes each span to the module logger at DEBUG level."""

    def emit_span(self, name: str, attributes: Dict[str, Any]) -> None:
        payload = {k: attributes[k] for k in sorted(attributes)}
        logger.debug(f"[telemetry] {name}: {payload}")


class RecordingTelemetryClient(TelemetryClient):
    """Keeps spans in memory and aggregates per-name latency."""

    def __init__(self) -> None:
        self.spans: List[Tuple[str, Dict[str, Any]]] = []
        self._totals: Dict[str, float] = defaultdict(float)
        self._counts: Dict[str, int] = defaultdict(int)

    def emit_span(self, name: str, attributes: Dict[str, Any]) -> None:
        self.spans.append((name, dict(attributes)))
        self._totals[name] += float(attributes.get("duration_ms", 0.0))
        self._counts[name] += 1

    def count(self, name: str) -> int:
        return self._counts.get(name, 0)

    def average_ms(self, name: str) -> float:
        n = self._counts.get(name, 0)
        return self._totals[name] / n if n else 0.0

    def named(self, name: str) -> List[Dict[str, Any]]:
        return [attrs for span_name, attrs in self.spans if span_name == name]


__all__ = [
    "TelemetrySpan",
    "TelemetryClient",
    "NoOpTelemetryClient",
    "LoggingTelemetryClient",
    "RecordingTelemetryClient",
]
