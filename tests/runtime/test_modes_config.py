import pytest
from pydantic import ValidationError

from sona.runtime.memory.config import MemoryConfig, PatternStoreConfig, RetrieverConfig, pattern_config_for_mode
from sona.runtime.memory.errors import UnknownModeError
from sona.runtime.memory.modes import MODE_CONFIGS, available_modes, get_mode_config


def test_builtin_modes():
    assert set(available_modes()) == {"real-time", "balanced", "research", "edge", "batch"}

    balanced = get_mode_config("balanced")
    assert balanced.trajectory_capacity == 3000
    assert balanced.num_clusters == 50
    assert balanced.quality_threshold == 0.5
    assert balanced.memory_budget_mb == 50

    edge = get_mode_config("edge")
    assert edge.trajectory_capacity == 200
    assert edge.quality_threshold == 0.8


def test_get_mode_config_returns_copy():
    assert get_mode_config("edge") is not MODE_CONFIGS["edge"]
    assert get_mode_config("edge") == MODE_CONFIGS["edge"]


def test_mode_config_is_frozen():
    with pytest.raises(ValidationError):
        get_mode_config("balanced").trajectory_capacity = 1


def test_unknown_mode_raises():
    with pytest.raises(UnknownModeError):
        get_mode_config("turbo")
    with pytest.raises(ValueError):
        MemoryConfig(mode="turbo").mode_config()


def test_memory_config_from_env(monkeypatch):
    monkeypatch.setenv("SONA_MODE", "edge")
    monkeypatch.setenv("SONA_EMBEDDING_DIM", "16")
    monkeypatch.setenv("SONA_MMR_LAMBDA", "0.5")
    monkeypatch.setenv("SONA_MAX_PATTERNS", "20")
    monkeypatch.setenv("SONA_DISTILLATION_THRESHOLD", "0.4")

    cfg = MemoryConfig.from_env()

    assert cfg.mode == "edge"
    assert cfg.patterns.embedding_dim == 16
    assert cfg.patterns.max_patterns == 20
    assert cfg.distiller.embedding_dim == 16
    assert cfg.distiller.distillation_threshold == 0.4
    assert cfg.retriever.mmr_lambda == 0.5
    assert cfg.mode_config().trajectory_capacity == 200


def test_memory_config_from_env_defaults(monkeypatch):
    for name in ("SONA_MODE", "SONA_EMBEDDING_DIM", "SONA_MMR_LAMBDA", "SONA_MAX_PATTERNS"):
        monkeypatch.delenv(name, raising=False)

    cfg = MemoryConfig.from_env(mode="research")

    assert cfg.mode == "research"
    assert cfg.patterns.embedding_dim == 768
    assert cfg.consolidation.dedup_threshold == 0.95


def test_pattern_config_for_mode_leaves_base_untouched():
    base = PatternStoreConfig()
    derived = pattern_config_for_mode(base, get_mode_config("edge"))

    assert derived.quality_threshold == 0.8
    assert derived.num_clusters == 15
    assert base.quality_threshold == 0.5
    assert base.num_clusters == 50


def test_match_threshold_is_a_retriever_setting():
    assert RetrieverConfig().match_threshold == 0.7
    with pytest.raises(TypeError):
        PatternStoreConfig(match_threshold=0.5)
