"""Leaf registry and TOML configuration loader.

Loads leaf definitions from leaves.toml and orchestrator defaults from
defaults.toml, and builds LiteLLM leaves for a selection of registry keys.
"""

from __future__ import annotations

import tomllib
from pathlib import Path

from chorus.errors import ConfigurationError
from chorus.providers.litellm_leaf import LiteLLMLeaf
from chorus.schemas.config import LeafConfig, OrchestratorConfig

# Default config directory relative to the chorus package
_CONFIG_DIR = Path(__file__).parent.parent / "config"


def load_leaves(config_path: Path | None = None) -> dict[str, LeafConfig]:
    """Load the leaf registry from a TOML file.

    Args:
        config_path: Path to leaves.toml. Defaults to chorus/config/leaves.toml.

    Returns:
        Dictionary mapping registry keys to LeafConfig instances.

    Raises:
        FileNotFoundError: If the config file does not exist.
        ValueError: If the TOML has no usable [leaves] section.
    """
    path = config_path or _CONFIG_DIR / "leaves.toml"
    if not path.exists():
        raise FileNotFoundError(f"Leaf registry not found: {path}")

    with open(path, "rb") as f:
        raw = tomllib.load(f)

    leaves_section = raw.get("leaves")
    if not leaves_section or not isinstance(leaves_section, dict):
        raise ValueError(f"No [leaves] section found in {path}")

    registry: dict[str, LeafConfig] = {}
    for key, entry in leaves_section.items():
        if not isinstance(entry, dict):
            continue
        registry[key] = LeafConfig(**entry)

    if not registry:
        raise ValueError(f"No [leaves] section found in {path}")
    return registry


def load_orchestrator_config(config_path: Path | None = None) -> OrchestratorConfig:
    """Load orchestrator defaults from a TOML file.

    Args:
        config_path: Path to defaults.toml. Defaults to chorus/config/defaults.toml.

    Returns:
        OrchestratorConfig with values from the [orchestrator] table; any
        key not present keeps its model default.

    Raises:
        FileNotFoundError: If the config file does not exist.
    """
    path = config_path or _CONFIG_DIR / "defaults.toml"
    if not path.exists():
        raise FileNotFoundError(f"Orchestrator config not found: {path}")

    with open(path, "rb") as f:
        raw = tomllib.load(f)

    return OrchestratorConfig(**raw.get("orchestrator", {}))


def build_leaves(
    registry: dict[str, LeafConfig],
    keys: list[str] | None = None,
) -> list[LiteLLMLeaf]:
    """Instantiate LiteLLM leaves for the given registry keys.

    Args:
        registry: Loaded leaf registry.
        keys: Registry keys to build; all keys when None.

    Raises:
        ConfigurationError: If a key is not in the registry.
    """
    selected = keys if keys is not None else sorted(registry)
    unknown = [k for k in selected if k not in registry]
    if unknown:
        raise ConfigurationError(
            f"Unknown leaf key(s): {', '.join(unknown)}. "
            f"Available: {', '.join(sorted(registry))}",
            parameter="leaves",
        )
    return [LiteLLMLeaf(registry[k]) for k in selected]


def leaf_priors(registry: dict[str, LeafConfig]) -> dict[str, float]:
    """Map leaf identifiers to their configured trust priors."""
    return {cfg.identifier: cfg.prior for cfg in registry.values()}
