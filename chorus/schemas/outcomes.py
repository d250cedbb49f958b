"""Outcome and scoring schemas.

An AttemptOutcome is the immutable result of invoking one leaf: either a
SuccessOutcome carrying content, or a FailureOutcome carrying the error
classification. ConfidenceScore records a scalar score together with the
ordered factors that produced it.
"""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

from chorus.errors import ErrorKind
from chorus.schemas.messages import TokenUsage


class SuccessOutcome(BaseModel):
    """A leaf returned content."""

    model_config = ConfigDict(frozen=True)

    status: Literal["success"] = "success"
    leaf_id: str = Field(description="Identifier of the leaf that produced this outcome")
    content: str = Field(description="Text returned by the leaf")
    token_usage: TokenUsage = Field(
        default_factory=TokenUsage, description="Tokens consumed by the call"
    )
    latency: float = Field(default=0.0, ge=0.0, description="Seconds from launch to completion")
    attempts_made: int = Field(default=1, ge=1, description="Attempts including the successful one")

    @property
    def succeeded(self) -> bool:
        return True


class FailureOutcome(BaseModel):
    """A leaf failed terminally, timed out, or missed the deadline."""

    model_config = ConfigDict(frozen=True)

    status: Literal["failure"] = "failure"
    leaf_id: str = Field(description="Identifier of the leaf that failed")
    error_kind: ErrorKind = Field(description="Classification of the terminal error")
    attempts_made: int = Field(default=1, ge=0, description="Attempts made before giving up")
    message: str = Field(default="", description="Human-readable failure reason")
    latency: float = Field(default=0.0, ge=0.0, description="Seconds from launch to failure")

    @property
    def succeeded(self) -> bool:
        return False


AttemptOutcome = Annotated[
    SuccessOutcome | FailureOutcome,
    Field(discriminator="status"),
]


class ScoreFactor(BaseModel):
    """One named contribution to a confidence score."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(description="Factor name (completeness, specificity, prior, success_rate)")
    value: float = Field(ge=0.0, description="Factor value")


class ConfidenceScore(BaseModel):
    """Scalar confidence plus the ordered factors behind it."""

    model_config = ConfigDict(frozen=True)

    leaf_id: str = Field(description="Leaf whose outcome was scored")
    value: float = Field(ge=0.0, le=1.0, description="Composite confidence in [0, 1]")
    factors: list[ScoreFactor] = Field(
        default_factory=list, description="Contributing factors in evaluation order"
    )

    def factor(self, name: str) -> float | None:
        """Look up a factor value by name."""
        for f in self.factors:
            if f.name == name:
                return f.value
        return None


def successes(outcomes: list[SuccessOutcome | FailureOutcome]) -> list[SuccessOutcome]:
    """Filter the successful outcomes, preserving order."""
    return [o for o in outcomes if isinstance(o, SuccessOutcome)]


def failures(outcomes: list[SuccessOutcome | FailureOutcome]) -> list[FailureOutcome]:
    """Filter the failed outcomes, preserving order."""
    return [o for o in outcomes if isinstance(o, FailureOutcome)]


def total_usage(outcomes: list[SuccessOutcome | FailureOutcome]) -> TokenUsage:
    """Sum the token usage of the successful outcomes."""
    usage = TokenUsage()
    for outcome in successes(outcomes):
        usage = usage + outcome.token_usage
    return usage
