"""Chorus schema definitions.

All Pydantic v2 models used across the orchestration engine.
"""

from chorus.schemas.config import (
    AdaptivePolicy,
    CacheConfig,
    ConsensusDefaults,
    FusionConfig,
    LeafConfig,
    OrchestratorConfig,
    ScoringConfig,
)
from chorus.schemas.consensus import ConsensusRun, ConsensusState, Round
from chorus.schemas.messages import (
    ChatMessage,
    LeafCapabilities,
    Query,
    RawResponse,
    Role,
    TokenUsage,
)
from chorus.schemas.outcomes import (
    AttemptOutcome,
    ConfidenceScore,
    FailureOutcome,
    ScoreFactor,
    SuccessOutcome,
)
from chorus.schemas.response import (
    Contribution,
    ContributionRole,
    FusedResponse,
    StrategyReport,
)
from chorus.schemas.retry import BackoffKind, RetryPolicy
from chorus.schemas.strategy import (
    Adaptive,
    Consensus,
    FirstSuccess,
    OrchestrationStrategy,
    StrategyKind,
    Tournament,
    WeightedFusion,
)

__all__ = [
    "Adaptive",
    "AdaptivePolicy",
    "AttemptOutcome",
    "BackoffKind",
    "CacheConfig",
    "ChatMessage",
    "ConfidenceScore",
    "Consensus",
    "ConsensusDefaults",
    "ConsensusRun",
    "ConsensusState",
    "Contribution",
    "ContributionRole",
    "FailureOutcome",
    "FirstSuccess",
    "FusedResponse",
    "FusionConfig",
    "LeafCapabilities",
    "LeafConfig",
    "OrchestrationStrategy",
    "OrchestratorConfig",
    "Query",
    "RawResponse",
    "RetryPolicy",
    "Role",
    "Round",
    "ScoreFactor",
    "ScoringConfig",
    "StrategyKind",
    "StrategyReport",
    "SuccessOutcome",
    "TokenUsage",
    "Tournament",
    "WeightedFusion",
]
