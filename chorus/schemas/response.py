"""Result schemas for an orchestration call.

FusedResponse is the only artifact that leaves an orchestration call. It
records the fused content, how each leaf contributed, which strategy ran,
and the cost and timing of the call.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from chorus.schemas.messages import TokenUsage
from chorus.schemas.outcomes import FailureOutcome
from chorus.schemas.strategy import StrategyKind


class ContributionRole(StrEnum):
    """How a leaf's outcome was used in the fused content."""

    PRIMARY = "primary"
    CORROBORATING = "corroborating"
    CONFLICTING = "conflicting"
    EXCLUDED = "excluded"
    ELIMINATED = "eliminated"


class Contribution(BaseModel):
    """One successful leaf's share of a fused response."""

    model_config = ConfigDict(frozen=True)

    leaf_id: str = Field(description="Leaf that produced the outcome")
    score: float = Field(ge=0.0, le=1.0, description="Normalised weight in the fusion")
    included: bool = Field(description="Whether the outcome appears in the fused content")
    confidence: float = Field(
        default=0.0, ge=0.0, le=1.0, description="Raw confidence before normalisation"
    )
    role: ContributionRole = Field(
        default=ContributionRole.PRIMARY, description="How the outcome was used"
    )


class StrategyReport(BaseModel):
    """Which strategy produced a response and how it terminated."""

    model_config = ConfigDict(frozen=True)

    kind: StrategyKind = Field(description="Strategy that was executed")
    adaptive: bool = Field(
        default=False, description="Whether the strategy was chosen by adaptive selection"
    )
    rounds_run: int | None = Field(
        default=None, ge=0, description="Consensus rounds executed (consensus only)"
    )
    converged: bool | None = Field(
        default=None, description="Whether consensus reached its threshold (consensus only)"
    )


class FusedResponse(BaseModel):
    """Final result of one orchestration call."""

    model_config = ConfigDict(frozen=True)

    content: str = Field(description="Fused answer text")
    primary_leaf: str = Field(description="Leaf whose outcome forms the body of the answer")
    contributions: list[Contribution] = Field(
        default_factory=list, description="Per-leaf contributions, highest weight first"
    )
    confidence: float = Field(ge=0.0, le=1.0, description="Overall confidence of the answer")
    strategy: StrategyReport = Field(description="Strategy that produced this response")
    elapsed_seconds: float = Field(
        default=0.0, ge=0.0, description="Wall-clock duration of the orchestration call"
    )
    token_usage: TokenUsage = Field(
        default_factory=TokenUsage, description="Tokens consumed across all successful leaves"
    )
    cost_estimate: float = Field(
        default=0.0, ge=0.0, description="Estimated USD cost across all successful leaves"
    )
    failures: list[FailureOutcome] = Field(
        default_factory=list, description="Leaves that failed, kept for diagnostics"
    )
    degraded: bool = Field(
        default=False, description="True when at least one leaf failed"
    )
    cache_hit: bool = Field(
        default=False, description="True when served from the response cache"
    )
