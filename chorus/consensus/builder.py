"""Multi-round consensus negotiation.

Runs the fan-out repeatedly. From round 2 onward every leaf sees an
excerpt of the previous round's leading answers and may revise its own.
The loop stops when the mean pairwise agreement of a round reaches the
threshold (converged) or the round cap is hit (rounds exhausted). All
rounds draw from one shared deadline.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from chorus.consensus.similarity import (
    Similarity,
    agreement_matrix,
    mean_agreement,
    token_overlap,
)
from chorus.errors import ConfigurationError, FusionError, FusionFailure
from chorus.fanout import FanOutCoordinator
from chorus.leaf import Leaf
from chorus.prompts import render_prompt
from chorus.schemas.config import check_priors
from chorus.schemas.consensus import ConsensusRun, ConsensusState, Round
from chorus.schemas.messages import ChatMessage, Query, Role, query_text
from chorus.schemas.outcomes import (
    AttemptOutcome,
    ConfidenceScore,
    SuccessOutcome,
    failures,
    successes,
    total_usage,
)
from chorus.schemas.response import StrategyReport
from chorus.schemas.strategy import Consensus, StrategyKind
from chorus.scoring import ConfidenceScorer

if TYPE_CHECKING:
    from chorus.fusion import ResponseFusionEngine

logger = logging.getLogger(__name__)


def _excerpt(text: str, limit: int) -> str:
    flat = " ".join(text.split())
    if len(flat) <= limit:
        return flat
    return flat[: limit - 3].rstrip() + "..."


def _with_prompt(query: Query, text: str) -> Query:
    """Replace the last user turn of ``query`` with ``text``."""
    if isinstance(query, str):
        return text
    messages = list(query)
    for i in range(len(messages) - 1, -1, -1):
        if messages[i].role == Role.USER:
            messages[i] = ChatMessage(role=Role.USER, content=text)
            return messages
    messages.append(ChatMessage(role=Role.USER, content=text))
    return messages


class ConsensusBuilder:
    """Drive the consensus state machine over a sequence of Rounds."""

    def __init__(
        self,
        coordinator: FanOutCoordinator,
        scorer: ConfidenceScorer,
        fusion: ResponseFusionEngine,
        *,
        similarity: Similarity = token_overlap,
        excerpt_leaders: int = 3,
        excerpt_chars: int = 400,
        leaf_priors: dict[str, float] | None = None,
    ) -> None:
        check_priors(leaf_priors)
        self._coordinator = coordinator
        self._scorer = scorer
        self._fusion = fusion
        self._similarity = similarity
        self._excerpt_leaders = excerpt_leaders
        self._excerpt_chars = excerpt_chars
        self._leaf_priors = leaf_priors

    async def run(
        self,
        leaves: list[Leaf],
        query: Query,
        strategy: Consensus,
        deadline: float,
    ) -> ConsensusRun:
        """Negotiate until convergence, the round cap, or the deadline.

        Raises:
            ConfigurationError: If the deadline is not positive.
            FusionError: If no round produced a single success.
        """
        if deadline <= 0:
            raise ConfigurationError(
                f"deadline must be positive, got {deadline}", parameter="deadline",
            )

        loop = asyncio.get_running_loop()
        expires_at = loop.time() + deadline
        rounds: list[Round] = []
        state = ConsensusState.INITIAL

        for number in range(1, strategy.max_rounds + 1):
            remaining = expires_at - loop.time()
            if remaining <= 0:
                logger.warning(
                    "Consensus deadline elapsed after %d of %d round(s)",
                    len(rounds), strategy.max_rounds,
                )
                break

            state = ConsensusState.ROUND_IN_PROGRESS
            round_query = self._round_query(query, rounds)
            outcomes = await self._coordinator.run(leaves, round_query, remaining)
            current = self._build_round(number, round_query, outcomes)
            rounds.append(current)

            logger.info(
                "Consensus round %d/%d: agreement %.2f (threshold %.2f, %d success(es))",
                number, strategy.max_rounds, current.agreement,
                strategy.agreement_threshold, len(successes(outcomes)),
            )

            if self._converged(current, len(leaves), strategy.agreement_threshold):
                state = ConsensusState.CONVERGED
                break

        if state != ConsensusState.CONVERGED:
            state = ConsensusState.ROUNDS_EXHAUSTED

        deciding = next((r for r in reversed(rounds) if r.has_success), None)
        if deciding is None:
            last_failures = failures(rounds[-1].outcomes) if rounds else []
            raise FusionError(FusionFailure.NO_SUCCESSFUL_OUTCOMES, last_failures)

        scores = self._scorer.score_all(deciding.outcomes, self._leaf_priors)
        response = self._fusion.fuse(
            deciding.outcomes,
            scores,
            strategy=StrategyReport(
                kind=StrategyKind.CONSENSUS,
                rounds_run=len(rounds),
                converged=state == ConsensusState.CONVERGED,
            ),
        )
        # Every round was paid for, not only the deciding one
        spent = [o for r in rounds for o in successes(r.outcomes)]
        response = response.model_copy(
            update={
                "token_usage": total_usage(spent),
                "cost_estimate": self._fusion.estimate_cost(spent),
            }
        )
        return ConsensusRun(rounds=rounds, state=state, response=response)

    @staticmethod
    def _converged(current: Round, leaf_count: int, threshold: float) -> bool:
        """Agreement reached the threshold among at least two answers.

        A lone answer agrees with itself, so it only counts when a single
        leaf was asked or the threshold is 0.0.
        """
        if not current.has_success or current.agreement < threshold:
            return False
        if threshold == 0.0 or leaf_count == 1:
            return True
        return len(current.matrix_leaves) >= 2

    def _build_round(
        self, number: int, round_query: Query, outcomes: list[AttemptOutcome],
    ) -> Round:
        succeeded = successes(outcomes)
        matrix = agreement_matrix([o.content for o in succeeded], self._similarity)
        return Round(
            number=number,
            prompt=query_text(round_query),
            outcomes=outcomes,
            matrix_leaves=[o.leaf_id for o in succeeded],
            agreement_matrix=matrix,
            agreement=mean_agreement(matrix),
        )

    def _round_query(self, query: Query, rounds: list[Round]) -> Query:
        """The original query for round 1; afterwards, with prior answers."""
        previous = next((r for r in reversed(rounds) if r.has_success), None)
        if previous is None:
            return query

        scores = self._scorer.score_all(previous.outcomes, self._leaf_priors)
        leaders = self._leaders(previous.outcomes, scores)
        text = render_prompt(
            "consensus_round",
            question=query_text(query),
            previous_round=previous.number,
            answers=[
                {"leaf_id": o.leaf_id, "excerpt": _excerpt(o.content, self._excerpt_chars)}
                for o in leaders
            ],
        )
        return _with_prompt(query, text)

    def _leaders(
        self, outcomes: list[AttemptOutcome], scores: dict[str, ConfidenceScore],
    ) -> list[SuccessOutcome]:
        ranked = sorted(
            successes(outcomes),
            key=lambda o: (-scores[o.leaf_id].value, o.leaf_id),
        )
        return ranked[: self._excerpt_leaders]
