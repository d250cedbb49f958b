"""Tournament selection: single-elimination bracket over successful outcomes.

Outcomes are paired in completion order. Each pair resolves to one winner
through a comparator; winners advance and an unpaired outcome in an
odd-sized round advances automatically. The last outcome standing becomes
the response; every eliminated outcome is kept as a zero-weight
contribution for audit.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field

from chorus.errors import FusionError, FusionFailure
from chorus.schemas.outcomes import (
    AttemptOutcome,
    ConfidenceScore,
    FailureOutcome,
    SuccessOutcome,
    failures,
    successes,
    total_usage,
)
from chorus.schemas.response import (
    Contribution,
    ContributionRole,
    FusedResponse,
    StrategyReport,
)
from chorus.schemas.strategy import StrategyKind
from chorus.services import CostEstimator

logger = logging.getLogger(__name__)

# (left, right, scores) -> winner
Comparator = Callable[
    [SuccessOutcome, SuccessOutcome, Mapping[str, ConfidenceScore]], SuccessOutcome
]


def _value(leaf_id: str, scores: Mapping[str, ConfidenceScore]) -> float:
    score = scores.get(leaf_id)
    return score.value if score is not None else 0.0


def higher_confidence(
    left: SuccessOutcome,
    right: SuccessOutcome,
    scores: Mapping[str, ConfidenceScore],
) -> SuccessOutcome:
    """Default comparator: higher score wins, exact ties go to the smaller leaf id."""
    lv, rv = _value(left.leaf_id, scores), _value(right.leaf_id, scores)
    if lv != rv:
        return left if lv > rv else right
    return left if left.leaf_id < right.leaf_id else right


@dataclass
class Match:
    """One resolved pairing."""

    bracket: int
    left: str
    right: str
    winner: str


@dataclass
class TournamentResult:
    """Winner, eliminated outcomes in elimination order, and the match log."""

    winner: SuccessOutcome
    eliminated: list[SuccessOutcome] = field(default_factory=list)
    brackets: list[list[Match]] = field(default_factory=list)


class TournamentSelector:
    """Run a bracket and turn its winner into a FusedResponse."""

    def __init__(
        self,
        comparator: Comparator | None = None,
        cost_estimator: CostEstimator | None = None,
    ) -> None:
        self._comparator = comparator or higher_confidence
        self._cost_estimator = cost_estimator

    def select(
        self,
        outcomes: list[AttemptOutcome],
        scores: Mapping[str, ConfidenceScore],
    ) -> TournamentResult:
        """Play the bracket over the successful outcomes.

        A single success wins without a match.

        Raises:
            FusionError: If there is no successful outcome.
        """
        contenders = successes(outcomes)
        if not contenders:
            raise FusionError(FusionFailure.NO_SUCCESSFUL_OUTCOMES, failures(outcomes))

        result = TournamentResult(winner=contenders[0])
        bracket = 1
        while len(contenders) > 1:
            advancing: list[SuccessOutcome] = []
            matches: list[Match] = []
            for i in range(0, len(contenders) - 1, 2):
                left, right = contenders[i], contenders[i + 1]
                winner = self._comparator(left, right, scores)
                loser = right if winner is left else left
                advancing.append(winner)
                result.eliminated.append(loser)
                matches.append(
                    Match(
                        bracket=bracket,
                        left=left.leaf_id,
                        right=right.leaf_id,
                        winner=winner.leaf_id,
                    )
                )
            if len(contenders) % 2 == 1:
                advancing.append(contenders[-1])
            result.brackets.append(matches)
            logger.debug(
                "Bracket %d: %d match(es), %d advancing", bracket, len(matches), len(advancing),
            )
            contenders = advancing
            bracket += 1

        result.winner = contenders[0]
        return result

    def to_response(
        self,
        result: TournamentResult,
        scores: Mapping[str, ConfidenceScore],
        failed: list[FailureOutcome] | None = None,
    ) -> FusedResponse:
        """Winner at weight 1.0, every eliminated outcome at 0.0."""
        winner = result.winner
        contributions = [
            Contribution(
                leaf_id=winner.leaf_id,
                score=1.0,
                included=True,
                confidence=_value(winner.leaf_id, scores),
                role=ContributionRole.PRIMARY,
            )
        ]
        contributions.extend(
            Contribution(
                leaf_id=o.leaf_id,
                score=0.0,
                included=False,
                confidence=_value(o.leaf_id, scores),
                role=ContributionRole.ELIMINATED,
            )
            for o in sorted(result.eliminated, key=lambda o: o.leaf_id)
        )

        played = [winner, *result.eliminated]
        cost = 0.0
        if self._cost_estimator is not None:
            cost = sum(self._cost_estimator(o.token_usage, o.leaf_id) for o in played)

        failed = list(failed or [])
        return FusedResponse(
            content=winner.content,
            primary_leaf=winner.leaf_id,
            contributions=contributions,
            confidence=_value(winner.leaf_id, scores),
            strategy=StrategyReport(kind=StrategyKind.TOURNAMENT),
            token_usage=total_usage(played),
            cost_estimate=cost,
            failures=failed,
            degraded=bool(failed),
        )
