import logging

import numpy as np
import pytest

from sona.runtime.memory.errors import InvalidDomainError
from sona.runtime.memory.events import EventBus, EventRecorder, EventType
from sona.runtime.memory.modes import get_mode_config
from sona.runtime.memory.policy import RecordingPolicyBackend
from sona.runtime.memory.trajectory_store import TrajectoryStore, running_quality

DIM = 8


def emb(seed: int) -> np.ndarray:
    return np.random.default_rng(seed).normal(size=DIM)


def recorded_store(capacity=10, **kwargs):
    events = EventBus()
    recorder = EventRecorder()
    events.subscribe(recorder)
    return TrajectoryStore(capacity=capacity, events=events, **kwargs), recorder


def test_record_steps_chain_states_and_update_quality():
    store, recorder = recorded_store()
    tid = store.begin("refactor parser", "coding")

    first = store.record_step(tid, "read", 0.5, emb(1))
    second = store.record_step(tid, "write", 1.0, emb(2), metadata={"file": "a.py"})

    assert tid.startswith("traj_")
    assert first.step_id == "step_0"
    assert second.step_id == "step_1"
    np.testing.assert_array_equal(first.state_before, first.state_after)
    np.testing.assert_array_equal(second.state_before, first.state_after)
    assert second.metadata == {"file": "a.py"}

    trajectory = store.get(tid)
    assert trajectory.step_count == 2
    # 0.8 * mean(0.5, 1.0) + 0.2 * min(1, 10 / 2)
    assert trajectory.quality_score == pytest.approx(0.8)
    assert recorder.of_type(EventType.TRAJECTORY_STARTED)[0]["domain"] == "coding"


def test_step_embeddings_are_read_only():
    store = TrajectoryStore(capacity=10)
    tid = store.begin("task")
    step = store.record_step(tid, "act", 0.5, emb(1))

    with pytest.raises(ValueError):
        step.state_after[0] = 1.0


def test_record_step_is_noop_for_unknown_or_sealed_trajectories():
    store = TrajectoryStore(capacity=10)
    assert store.record_step("traj_missing", "act", 1.0, emb(1)) is None

    tid = store.begin("task")
    store.record_step(tid, "act", 1.0, emb(1))
    store.complete(tid)

    assert store.record_step(tid, "late", 1.0, emb(2)) is None
    assert store.get(tid).step_count == 1


def test_record_step_ignores_bad_rewards_and_mismatched_embeddings(caplog):
    store = TrajectoryStore(capacity=10)
    tid = store.begin("task")
    store.record_step(tid, "act", 0.5, emb(1))

    assert store.record_step(tid, "nan", float("nan"), emb(2)) is None
    assert store.record_step(tid, "text", "high", emb(2)) is None
    with caplog.at_level(logging.WARNING, logger="sona.runtime.memory.trajectory_store"):
        assert store.record_step(tid, "short", 0.5, np.ones(4)) is None

    assert store.get(tid).step_count == 1
    assert "embedding dimension" in caplog.text


@pytest.mark.parametrize("domain", ["", "Coding", "9lives", "has space", "a" * 65, None])
def test_begin_rejects_malformed_domain(domain):
    store = TrajectoryStore(capacity=10)
    with pytest.raises(InvalidDomainError):
        store.begin("task", domain)
    assert len(store) == 0


def test_complete_is_idempotent():
    store, recorder = recorded_store()
    tid = store.begin("task")
    store.record_step(tid, "act", 0.5, emb(1))

    trajectory = store.complete(tid)
    assert trajectory.is_complete
    assert trajectory.ended_at is not None
    assert store.complete(tid) is None
    assert store.complete("traj_missing") is None
    assert len(recorder.of_type(EventType.TRAJECTORY_COMPLETED)) == 1


def test_complete_final_quality_is_clamped():
    store = TrajectoryStore(capacity=10)
    tid = store.begin("task")
    assert store.complete(tid, 1.7).quality_score == 1.0

    empty = store.begin("nothing")
    assert store.complete(empty).quality_score == 0.0


def test_running_quality_penalises_long_trajectories():
    store = TrajectoryStore(capacity=10)
    tid = store.begin("long task")
    for i in range(20):
        store.record_step(tid, f"a{i}", 1.0, emb(i))
    steps = store.get(tid).steps

    assert running_quality(steps) == pytest.approx(0.8 + 0.2 * 0.5)


def test_learning_trigger_fires_once_at_capacity_threshold():
    store, recorder = recorded_store(capacity=10)
    for i in range(8):
        tid = store.begin(f"task {i}")
        store.record_step(tid, "act", 0.1 * i, emb(i))
        store.complete(tid)

    triggered = recorder.of_type(EventType.LEARNING_TRIGGERED)
    assert len(triggered) == 1
    assert triggered[0]["reason"] == "capacity_threshold"
    assert len(store.list(complete=True)) <= 5
    assert store.learning_cycles == 1


def test_eviction_keeps_in_flight_and_highest_quality():
    store = TrajectoryStore(capacity=10)
    open_id = store.begin("still running")
    store.record_step(open_id, "act", 0.0, emb(0))

    for i in range(1, 9):
        tid = store.begin(f"task {i}")
        store.complete(tid, i / 10)

    assert open_id in store
    remaining = sorted(t.quality_score for t in store.list(complete=True))
    assert remaining == pytest.approx([0.4, 0.5, 0.6, 0.7, 0.8])
    assert len(store.list(complete=False)) == 1


def test_manual_learning_hands_eligible_trajectories_to_backend():
    backend = RecordingPolicyBackend()
    store, recorder = recorded_store(capacity=100, quality_threshold=0.5, policy=backend)
    good = store.begin("good")
    store.complete(good, 0.9)
    bad = store.begin("bad")
    store.complete(bad, 0.2)

    metrics = store.trigger_learning()

    assert [t.trajectory_id for t in backend.batches[0]] == [good]
    assert metrics["trajectories"] == 1
    triggered = recorder.of_type(EventType.LEARNING_TRIGGERED)[0]
    assert triggered["reason"] == "manual"
    assert triggered["trajectory_count"] == 1
    completed = recorder.of_type(EventType.LEARNING_COMPLETED)[0]
    assert completed["improvement_delta"] == 0.0
    assert completed["evicted"] == 0
    assert len(store) == 2


def test_failing_backend_is_logged_not_raised(caplog):
    class ExplodingBackend:
        def update(self, trajectories):
            raise RuntimeError("backend down")

        def get_action(self, state_embedding):
            return "noop"

    store = TrajectoryStore(capacity=100, policy=ExplodingBackend())
    tid = store.begin("task")
    store.complete(tid, 0.9)

    with caplog.at_level(logging.WARNING, logger="sona.runtime.memory.trajectory_store"):
        metrics = store.trigger_learning()

    assert metrics == {"error": "backend down"}
    assert store.learning_cycles == 1
    assert "Policy backend update failed" in caplog.text


def test_trigger_learning_without_completed_trajectories():
    store, recorder = recorded_store()
    store.begin("open")
    assert store.trigger_learning() is None
    assert recorder.of_type(EventType.LEARNING_TRIGGERED) == []


def test_summarize_and_from_mode():
    store = TrajectoryStore.from_mode(get_mode_config("edge"))
    assert store.capacity == 200

    store.begin("open")
    done = store.begin("done")
    store.complete(done, 0.6)

    summary = store.summarize()
    assert summary["total"] == 2
    assert summary["active"] == 1
    assert summary["completed"] == 1
    assert summary["utilization"] == pytest.approx(2 / 200)
    assert summary["avg_quality"] == pytest.approx(0.6)
    assert store.estimate_bytes() > 0


def test_configure_validates_capacity():
    store = TrajectoryStore(capacity=10)
    store.configure(capacity=50, quality_threshold=0.7)
    assert store.capacity == 50
    with pytest.raises(ValueError):
        store.configure(capacity=0)
    assert store.summarize()["utilization"] == 0.0


def test_completion_from_listener_does_not_trigger_learning_twice():
    store, recorder = recorded_store(capacity=10)
    for i in range(7):
        store.complete(store.begin(f"task {i}"), 0.5)
    eighth = store.begin("eighth")
    ninth = store.begin("ninth")

    def complete_ninth(event):
        if event["trajectory_id"] == eighth:
            store.complete(ninth, 0.9)

    store.events.subscribe(complete_ninth, [EventType.TRAJECTORY_COMPLETED])
    store.complete(eighth, 0.6)

    assert len(recorder.of_type(EventType.LEARNING_TRIGGERED)) == 1
    assert store.learning_cycles == 1
    assert len(store.list(complete=True)) <= 5


def test_capacity_trigger_is_dropped_below_threshold():
    store, recorder = recorded_store(capacity=10)
    store.complete(store.begin("only"), 0.9)

    assert store.trigger_learning("capacity_threshold") is None
    assert recorder.of_type(EventType.LEARNING_TRIGGERED) == []
    assert store.trigger_learning() is not None
