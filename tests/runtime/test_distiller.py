import numpy as np
import pytest

from sona.runtime.memory.config import DistillerConfig
from sona.runtime.memory.distiller import Distiller, condense_strategy, trajectory_embedding
from sona.runtime.memory.errors import IncompleteTrajectoryError
from sona.runtime.memory.judge import Judge
from sona.runtime.memory.models import Trajectory
from sona.runtime.memory.telemetry import RecordingTelemetryClient
from sona.runtime.memory.trajectory_store import TrajectoryStore


def run(actions_rewards, quality, dim=768, domain="general"):
    rng = np.random.default_rng(11)
    store = TrajectoryStore(capacity=1000)
    tid = store.begin("distill me", domain)
    for action, reward in actions_rewards:
        store.record_step(tid, action, reward, rng.normal(size=dim))
    return store.complete(tid, quality)


def test_condense_strategy():
    assert condense_strategy([]) == "empty"
    assert condense_strategy(["plan"]) == "plan"
    assert condense_strategy(["plan", "code", "test"]) == "plan -> code -> test"
    assert condense_strategy(["plan", "code", "test", "ship"]) == "plan -> code ... ship"


def test_trajectory_embedding_weights_recent_steps():
    store = TrajectoryStore(capacity=10)
    tid = store.begin("t")
    store.record_step(tid, "a", 1.0, [1.0, 0.0])
    store.record_step(tid, "b", 1.0, [0.0, 1.0])
    trajectory = store.complete(tid)

    np.testing.assert_allclose(trajectory_embedding(trajectory, 2), [1 / 3, 2 / 3], rtol=1e-5)
    empty = Trajectory(trajectory_id="traj_empty", context="c", is_complete=True)
    np.testing.assert_array_equal(trajectory_embedding(empty, 4), np.zeros(4))


def test_distill_successful_trajectory():
    trajectory = run(
        [("analyze", 0.8), ("implement", 0.9), ("test", 0.95), ("deploy", 1.0)],
        quality=0.92,
        domain="coding",
    )

    memory = Distiller().distill(trajectory)

    assert memory.trajectory_id == trajectory.trajectory_id
    assert memory.domain == "coding"
    assert memory.outcome == "Success"
    assert memory.strategy == "analyze -> implement ... deploy"
    assert memory.step_count == 4
    assert memory.quality == pytest.approx(0.92)
    assert memory.embedding.shape == (768,)
    assert memory.key_learnings[0] == "Success strategy for coding: analyze -> implement ... deploy"
    assert "Action 'deploy' was effective (reward 1.00)" in memory.key_learnings
    assert 1 <= len(memory.key_learnings) <= 5
    assert len(set(memory.key_learnings)) == len(memory.key_learnings)
    assert trajectory.verdict.label == "Success"
    assert trajectory.distilled_memory is memory


def test_distill_below_threshold_has_no_side_effects():
    trajectory = run([("guess", 0.2)], quality=0.3)

    assert Distiller().distill(trajectory) is None
    assert trajectory.verdict is None
    assert trajectory.distilled_memory is None


def test_distill_rejects_open_trajectory():
    store = TrajectoryStore(capacity=10)
    tid = store.begin("open")
    with pytest.raises(IncompleteTrajectoryError):
        Distiller().distill(store.get(tid))


def test_distill_reuses_existing_verdict():
    class CountingJudge(Judge):
        calls = 0

        def judge(self, trajectory):
            CountingJudge.calls += 1
            return super().judge(trajectory)

    trajectory = run([("a", 0.9)], quality=0.9)
    trajectory.verdict = Judge().judge(trajectory)

    Distiller(judge=CountingJudge()).distill(trajectory)

    assert CountingJudge.calls == 0


def test_key_learnings_are_capped():
    trajectory = run([("a", 0.9), ("b", 0.95)], quality=0.9)

    memory = Distiller(DistillerConfig(max_key_learnings=2)).distill(trajectory)
    assert len(memory.key_learnings) == 2

    memory = Distiller(DistillerConfig(max_key_learnings=0)).distill(trajectory)
    assert memory.key_learnings == ["Success strategy for general: a -> b"]


def test_distill_emits_span():
    telemetry = RecordingTelemetryClient()
    trajectory = run([("a", 0.9)], quality=0.9, dim=8)

    Distiller(DistillerConfig(embedding_dim=8), telemetry=telemetry).distill(trajectory)

    assert telemetry.count("memory.distill") == 1
    assert telemetry.count("memory.judge") == 1


def test_five_step_memory_promotes_to_pattern_and_evolves():
    from sona.runtime.memory.pattern_store import PatternStore

    trajectory = run([(f"step_{i}", 0.8) for i in range(5)], quality=0.8)
    store = PatternStore()

    memory = Distiller().distill(trajectory)
    assert memory.embedding.shape == (768,)
    assert memory.quality == pytest.approx(0.8)

    pattern = store.promote(memory)
    assert pattern.success_rate == pytest.approx(0.8)
    assert pattern.usage_count == 1

    store.evolve(pattern.pattern_id, 0.6)
    assert pattern.success_rate == pytest.approx(0.8 * 0.9 + 0.6 * 0.1)

    low = run([("guess", 0.1)], quality=0.2)
    assert Distiller().distill(low) is None
    assert len(store) == 1


def test_distill_skips_trajectory_without_steps():
    trajectory = run([], quality=0.9)

    assert Distiller().distill(trajectory) is None
    assert trajectory.verdict is None
    assert trajectory.distilled_memory is None
