import numpy as np
import pytest

from sona.runtime.memory.config import ConsolidationConfig, MemoryConfig
from sona.runtime.memory.errors import UnknownModeError, UnknownPatternError
from sona.runtime.memory.events import EventRecorder, EventType
from sona.runtime.memory.orchestrator import SonaOrchestrator
from sona.runtime.memory.policy import RecordingPolicyBackend
from sona.runtime.memory.telemetry import RecordingTelemetryClient
from sona.runtime.memory.vector_index import InMemoryVectorIndex

DIM = 16


def basis(i: int) -> np.ndarray:
    v = np.zeros(DIM, dtype=np.float32)
    v[i] = 1.0
    return v


def make_orchestrator(**kwargs):
    orchestrator = SonaOrchestrator(**kwargs)
    recorder = EventRecorder()
    orchestrator.subscribe(recorder)
    return orchestrator, recorder


def run_task(orchestrator, direction: int, quality: float = 0.9, domain: str = "coding"):
    tid = orchestrator.begin_trajectory(f"task along {direction}", domain)
    for action in ("plan", "act"):
        orchestrator.record_step(tid, action, 0.9, basis(direction))
    return orchestrator.complete_trajectory(tid, quality)


def test_learn_then_find_matches():
    orchestrator, recorder = make_orchestrator()
    trajectory = run_task(orchestrator, 0)

    pattern = orchestrator.learn(trajectory)

    assert pattern is not None
    assert pattern.domain == "coding"
    assert pattern.outcome == "Success"
    assert pattern.strategy == "plan -> act"
    assert trajectory.verdict.label == "Success"
    assert trajectory.distilled_memory is not None

    matches = orchestrator.find_matches(basis(0), 3)
    assert [m.pattern.pattern_id for m in matches] == [pattern.pattern_id]
    matched = recorder.of_type(EventType.PATTERN_MATCHED)
    assert matched[0]["pattern_id"] == pattern.pattern_id
    assert matched[0]["similarity"] == pytest.approx(1.0)
    assert orchestrator.find_best_match(basis(1)) is None


def test_learn_skips_low_quality_trajectories():
    orchestrator, _ = make_orchestrator()
    trajectory = run_task(orchestrator, 0, quality=0.3)

    assert orchestrator.learn(trajectory) is None
    assert len(orchestrator.patterns) == 0


def test_repeated_learning_updates_existing_pattern():
    orchestrator, _ = make_orchestrator()
    first = orchestrator.learn(run_task(orchestrator, 0, quality=0.9))
    second = orchestrator.learn(run_task(orchestrator, 0, quality=0.7))

    assert second is first
    assert len(orchestrator.patterns) == 1
    assert first.usage_count == 2


def test_record_pattern_outcome_evolves_pattern():
    orchestrator, recorder = make_orchestrator()
    pattern = orchestrator.learn(run_task(orchestrator, 0, quality=0.8))

    orchestrator.record_pattern_outcome(pattern.pattern_id, 0.6)

    assert pattern.success_rate == pytest.approx(0.78)
    assert recorder.of_type(EventType.PATTERN_EVOLVED)[0]["pattern_id"] == pattern.pattern_id
    with pytest.raises(UnknownPatternError):
        orchestrator.record_pattern_outcome("pat_missing", 0.5)


def test_set_mode_reconfigures_components():
    orchestrator, recorder = make_orchestrator()

    assert orchestrator.set_mode("balanced") is False
    assert orchestrator.set_mode("edge") is True

    assert orchestrator.mode.mode == "edge"
    assert orchestrator.trajectories.capacity == 200
    assert orchestrator.patterns.config.quality_threshold == 0.8
    assert orchestrator.patterns.config.num_clusters == 15
    changed = recorder.of_type(EventType.MODE_CHANGED)
    assert len(changed) == 1
    assert changed[0]["from_mode"] == "balanced"
    assert changed[0]["to_mode"] == "edge"

    with pytest.raises(UnknownModeError):
        orchestrator.set_mode("turbo")
    assert orchestrator.mode.mode == "edge"


def test_learning_consolidates_when_volume_trigger_is_due():
    config = MemoryConfig(consolidation=ConsolidationConfig(trigger_new_patterns=2))
    orchestrator, recorder = make_orchestrator(config=config)

    orchestrator.learn(run_task(orchestrator, 0))
    assert recorder.of_type(EventType.MEMORY_CONSOLIDATED) == []
    orchestrator.learn(run_task(orchestrator, 1))

    assert len(recorder.of_type(EventType.MEMORY_CONSOLIDATED)) == 1
    assert orchestrator.patterns.new_since_consolidation == 0
    assert orchestrator.maybe_consolidate() is None


def test_policy_backend_receives_manual_learning_batch():
    backend = RecordingPolicyBackend()
    orchestrator, recorder = make_orchestrator(policy=backend)
    run_task(orchestrator, 0)

    metrics = orchestrator.trigger_learning()

    assert metrics["trajectories"] == 1
    assert len(backend.batches) == 1
    assert recorder.of_type(EventType.LEARNING_COMPLETED)


def test_vector_index_and_telemetry_are_shared():
    index = InMemoryVectorIndex()
    telemetry = RecordingTelemetryClient()
    orchestrator, _ = make_orchestrator(vector_index=index, telemetry=telemetry)

    pattern = orchestrator.learn(run_task(orchestrator, 0))
    orchestrator.find_matches(basis(0))

    assert pattern.pattern_id in index
    for name in ("memory.judge", "memory.distill", "memory.extract", "memory.find_matches"):
        assert telemetry.count(name) == 1


def test_stats_and_reset():
    orchestrator, recorder = make_orchestrator()
    orchestrator.learn(run_task(orchestrator, 0))
    orchestrator.find_matches(basis(0))

    stats = orchestrator.stats()
    assert stats["mode"] == "balanced"
    assert stats["trajectories"]["completed"] == 1
    assert stats["patterns"]["total_patterns"] == 1
    assert stats["performance"]["operations"] > 0
    assert stats["performance"]["avg_latency_ms"] >= 0.0
    assert stats["memory"]["budget_mb"] == 50
    assert 0.0 < stats["memory"]["used_mb"] < 50

    orchestrator.reset()
    assert len(orchestrator.trajectories) == 0
    assert len(orchestrator.patterns) == 0
    assert orchestrator.stats()["performance"]["operations"] == 0

    run_task(orchestrator, 1)
    assert recorder.of_type(EventType.TRAJECTORY_STARTED)[-1]["domain"] == "coding"


def test_orchestrators_do_not_share_state():
    first, _ = make_orchestrator()
    second, _ = make_orchestrator()
    first.learn(run_task(first, 0))

    assert len(first.patterns) == 1
    assert len(second.patterns) == 0
    assert second.find_matches(basis(0)) == []


def test_unsubscribe_stops_delivery():
    orchestrator = SonaOrchestrator()
    recorder = EventRecorder()
    handle = orchestrator.subscribe(recorder, [EventType.TRAJECTORY_STARTED])

    orchestrator.begin_trajectory("one")
    assert orchestrator.unsubscribe(handle) is True
    orchestrator.begin_trajectory("two")

    assert len(recorder.events) == 1


def test_learning_from_empty_trajectory_adds_nothing():
    orchestrator, _ = make_orchestrator()
    pattern = orchestrator.learn(run_task(orchestrator, 0))

    tid = orchestrator.begin_trajectory("no steps", "coding")
    empty = orchestrator.complete_trajectory(tid, 0.9)

    assert orchestrator.learn(empty) is None
    assert [p.pattern_id for p in orchestrator.patterns.all()] == [pattern.pattern_id]
    assert orchestrator.patterns.embedding_dim == DIM


def test_set_mode_leaves_shared_config_untouched():
    config = MemoryConfig()
    first, _ = make_orchestrator(config=config)
    second, _ = make_orchestrator(config=config)

    first.set_mode("edge")

    assert first.config.mode == "edge"
    assert second.config.mode == "balanced"
    assert second.mode.mode == "balanced"
    assert config.mode == "balanced"
