"""Consensus negotiation schemas.

A Round is the full set of outcomes of one negotiation iteration together
with its pairwise agreement matrix. Rounds are appended to an ordered
sequence and never modified afterwards.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from chorus.schemas.outcomes import AttemptOutcome
from chorus.schemas.response import FusedResponse


class ConsensusState(StrEnum):
    """States of the consensus state machine."""

    INITIAL = "initial"
    ROUND_IN_PROGRESS = "round_in_progress"
    CONVERGED = "converged"
    ROUNDS_EXHAUSTED = "rounds_exhausted"


class Round(BaseModel):
    """One negotiation iteration."""

    model_config = ConfigDict(frozen=True)

    number: int = Field(ge=1, description="1-based round number")
    prompt: str = Field(description="Prompt text sent to every leaf in this round")
    outcomes: list[AttemptOutcome] = Field(
        default_factory=list, description="Outcomes in completion order"
    )
    matrix_leaves: list[str] = Field(
        default_factory=list, description="Leaf ids labelling the matrix rows and columns"
    )
    agreement_matrix: list[list[float]] = Field(
        default_factory=list, description="Pairwise similarity between successful outcomes"
    )
    agreement: float = Field(
        ge=0.0, le=1.0, description="Mean pairwise similarity across successes"
    )

    @property
    def has_success(self) -> bool:
        return any(o.succeeded for o in self.outcomes)


class ConsensusRun(BaseModel):
    """Full record of a consensus negotiation."""

    model_config = ConfigDict(frozen=True)

    rounds: list[Round] = Field(default_factory=list, description="Rounds in execution order")
    state: ConsensusState = Field(description="Terminal state")
    response: FusedResponse = Field(description="Fused result of the deciding round")

    @property
    def converged(self) -> bool:
        return self.state == ConsensusState.CONVERGED
