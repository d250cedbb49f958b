"""Chorus — multi-model AI orchestration engine."""

__version__ = "0.1.0"

from chorus.errors import (
    ConfigurationError,
    FusionError,
    LeafError,
    OrchestrationError,
)
from chorus.leaf import Leaf
from chorus.orchestrator import Orchestrator

__all__ = [
    "ConfigurationError",
    "FusionError",
    "Leaf",
    "LeafError",
    "OrchestrationError",
    "Orchestrator",
    "__version__",
]
