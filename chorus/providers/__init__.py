"""Chorus provider layer.

Concrete leaves for the orchestration engine. All model calls made by the
CLI go through LiteLLMLeaf via the Leaf interface.
"""

from chorus.providers.litellm_leaf import LiteLLMLeaf, classify_litellm_error
from chorus.providers.registry import (
    build_leaves,
    leaf_priors,
    load_leaves,
    load_orchestrator_config,
)

__all__ = [
    "LiteLLMLeaf",
    "build_leaves",
    "classify_litellm_error",
    "leaf_priors",
    "load_leaves",
    "load_orchestrator_config",
]
