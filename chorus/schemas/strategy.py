"""Orchestration strategy variants.

OrchestrationStrategy is a closed, tagged set of variants. The orchestrator
dispatches on it with an exhaustive match; there is no open-ended strategy
plugin interface. Parameters are validated at construction so an invalid
strategy never reaches execution.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator

from chorus.errors import ConfigurationError

DEFAULT_MAX_ROUNDS = 3
DEFAULT_AGREEMENT_THRESHOLD = 0.7


class StrategyKind(StrEnum):
    """Tags of the strategy variants."""

    FIRST_SUCCESS = "first_success"
    WEIGHTED_FUSION = "weighted_fusion"
    CONSENSUS = "consensus"
    TOURNAMENT = "tournament"
    ADAPTIVE = "adaptive"


class FirstSuccess(BaseModel):
    """Return the first leaf to succeed; cancel the rest."""

    model_config = ConfigDict(frozen=True)

    kind: Literal[StrategyKind.FIRST_SUCCESS] = StrategyKind.FIRST_SUCCESS


class WeightedFusion(BaseModel):
    """Query every leaf and fuse the successes by confidence weight."""

    model_config = ConfigDict(frozen=True)

    kind: Literal[StrategyKind.WEIGHTED_FUSION] = StrategyKind.WEIGHTED_FUSION


class Consensus(BaseModel):
    """Multi-round negotiation until agreement reaches a threshold."""

    model_config = ConfigDict(frozen=True)

    kind: Literal[StrategyKind.CONSENSUS] = StrategyKind.CONSENSUS
    max_rounds: int = Field(
        default=DEFAULT_MAX_ROUNDS, description="Upper bound on negotiation rounds"
    )
    agreement_threshold: float = Field(
        default=DEFAULT_AGREEMENT_THRESHOLD,
        description="Mean pairwise similarity in [0, 1] that counts as convergence",
    )

    @model_validator(mode="after")
    def _check_bounds(self) -> Consensus:
        if self.max_rounds < 1:
            raise ConfigurationError(
                f"max_rounds must be at least 1, got {self.max_rounds}",
                parameter="max_rounds",
            )
        if not 0.0 <= self.agreement_threshold <= 1.0:
            raise ConfigurationError(
                f"agreement_threshold must be within [0.0, 1.0], "
                f"got {self.agreement_threshold}",
                parameter="agreement_threshold",
            )
        return self


class Tournament(BaseModel):
    """Pairwise elimination bracket over successful outcomes."""

    model_config = ConfigDict(frozen=True)

    kind: Literal[StrategyKind.TOURNAMENT] = StrategyKind.TOURNAMENT


class Adaptive(BaseModel):
    """Pick one of the other strategies from the query and leaf count."""

    model_config = ConfigDict(frozen=True)

    kind: Literal[StrategyKind.ADAPTIVE] = StrategyKind.ADAPTIVE


OrchestrationStrategy = Annotated[
    FirstSuccess | WeightedFusion | Consensus | Tournament | Adaptive,
    Field(discriminator="kind"),
]

_STRATEGY_ADAPTER: TypeAdapter[Any] = TypeAdapter(OrchestrationStrategy)


def parse_strategy(name: str, **params: Any) -> OrchestrationStrategy:
    """Build a strategy variant from its tag and parameters.

    Raises:
        ConfigurationError: If the tag is unknown or parameters are invalid.
    """
    try:
        kind = StrategyKind(name)
    except ValueError:
        valid = ", ".join(k.value for k in StrategyKind)
        raise ConfigurationError(
            f"Unknown strategy '{name}'. Valid strategies: {valid}",
            parameter="strategy",
        ) from None

    if kind != StrategyKind.CONSENSUS:
        params = {}
    return _STRATEGY_ADAPTER.validate_python({"kind": kind, **params})
