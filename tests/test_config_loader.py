"""Tests for chorus.providers.registry — TOML config loading and leaf registry."""

from pathlib import Path

import pytest

from chorus.errors import ConfigurationError
from chorus.providers.litellm_leaf import LiteLLMLeaf
from chorus.providers.registry import (
    build_leaves,
    leaf_priors,
    load_leaves,
    load_orchestrator_config,
)
from chorus.schemas.config import LeafConfig, OrchestratorConfig
from chorus.schemas.retry import BackoffKind

# Path to the real config files shipped with the package
_CONFIG_DIR = Path(__file__).parent.parent / "chorus" / "config"


def _write(tmp_path: Path, name: str, text: str) -> Path:
    path = tmp_path / name
    path.write_text(text)
    return path


class TestLoadLeaves:
    def test_loads_real_config(self):
        registry = load_leaves(_CONFIG_DIR / "leaves.toml")
        assert {"gpt-4o", "claude-sonnet", "gemini-pro", "gemini-flash"} <= set(registry)

    def test_default_path(self):
        assert load_leaves() == load_leaves(_CONFIG_DIR / "leaves.toml")

    def test_leaf_config_types(self):
        for key, leaf in load_leaves().items():
            assert isinstance(leaf, LeafConfig), f"{key} is not LeafConfig"
            assert leaf.provider != ""
            assert leaf.model != ""
            assert leaf.api_key_env != ""
            assert leaf.cost_input >= 0.0

    def test_identifiers_are_unique(self):
        identifiers = [leaf.identifier for leaf in load_leaves().values()]
        assert len(identifiers) == len(set(identifiers))

    def test_custom_file(self, tmp_path):
        path = _write(tmp_path, "leaves.toml", """
[leaves.local]
provider = "ollama"
model = "llama3"
prior = 0.5
""")
        registry = load_leaves(path)
        assert list(registry) == ["local"]
        assert registry["local"].identifier == "ollama/llama3"
        assert registry["local"].prior == 0.5

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_leaves(tmp_path / "nope.toml")

    def test_missing_section_raises(self, tmp_path):
        path = _write(tmp_path, "leaves.toml", "[models]\nx = 1\n")
        with pytest.raises(ValueError):
            load_leaves(path)


class TestLoadOrchestratorConfig:
    def test_loads_real_config(self):
        config = load_orchestrator_config(_CONFIG_DIR / "defaults.toml")
        assert isinstance(config, OrchestratorConfig)
        assert config.default_deadline == 60.0
        assert config.retry.kind == BackoffKind.EXPONENTIAL
        assert config.consensus.excerpt_leaders == 3
        assert config.cache.capacity == 1000

    def test_partial_file_keeps_defaults(self, tmp_path):
        path = _write(tmp_path, "defaults.toml", """
[orchestrator]
leaf_timeout = 5.0

[orchestrator.retry]
kind = "fixed"
delay = 0.25
""")
        config = load_orchestrator_config(path)
        assert config.leaf_timeout == 5.0
        assert config.retry.kind == BackoffKind.FIXED
        assert config.retry.max_attempts == 3
        assert config.default_deadline == 60.0

    def test_empty_file_is_all_defaults(self, tmp_path):
        path = _write(tmp_path, "defaults.toml", "")
        assert load_orchestrator_config(path) == OrchestratorConfig()

    def test_invalid_retry_rejected(self, tmp_path):
        path = _write(tmp_path, "defaults.toml", "[orchestrator.retry]\nmax_attempts = 0\n")
        with pytest.raises(ConfigurationError):
            load_orchestrator_config(path)

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_orchestrator_config(tmp_path / "nope.toml")


class TestBuildLeaves:
    def test_selected_keys_in_order(self):
        leaves = build_leaves(load_leaves(), ["gemini-flash", "gpt-4o"])
        assert all(isinstance(leaf, LiteLLMLeaf) for leaf in leaves)
        assert [leaf.identifier for leaf in leaves] == ["gemini/gemini-2.5-flash", "openai/gpt-4o"]

    def test_all_keys_when_none(self):
        registry = load_leaves()
        assert len(build_leaves(registry)) == len(registry)

    def test_unknown_key(self):
        with pytest.raises(ConfigurationError) as exc_info:
            build_leaves(load_leaves(), ["gpt-4o", "nope"])
        assert exc_info.value.parameter == "leaves"
        assert "nope" in str(exc_info.value)


def test_leaf_priors_keyed_by_identifier():
    priors = leaf_priors(load_leaves())
    assert priors["gemini/gemini-2.5-flash"] == 0.9
    assert priors["openai/gpt-4o"] == 1.0
