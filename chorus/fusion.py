"""Response fusion: combine successful outcomes into one weighted answer.

Scores are normalised to sum to 1 across the successful outcomes. The
highest-weighted outcome becomes the primary body of the answer; every
other outcome whose weight exceeds the inclusion threshold is appended
as a corroborating or conflicting note. Ties at the top are broken by
leaf identifier, so identical inputs always fuse to identical output.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

from chorus.consensus.similarity import token_overlap
from chorus.errors import FusionError, FusionFailure
from chorus.schemas.config import FusionConfig
from chorus.schemas.outcomes import (
    AttemptOutcome,
    ConfidenceScore,
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


def normalize_weights(
    outcomes: list[SuccessOutcome], scores: Mapping[str, ConfidenceScore],
) -> dict[str, float]:
    """Map each successful leaf to its share of the total score.

    When every score is zero the outcomes share the weight equally.
    """
    raw = {o.leaf_id: _raw_score(o.leaf_id, scores) for o in outcomes}
    total = sum(raw.values())
    if total <= 0:
        return {leaf_id: 1.0 / len(raw) for leaf_id in raw}
    return {leaf_id: value / total for leaf_id, value in raw.items()}


def _raw_score(leaf_id: str, scores: Mapping[str, ConfidenceScore]) -> float:
    score = scores.get(leaf_id)
    return score.value if score is not None else 0.0


def _excerpt(text: str, limit: int) -> str:
    flat = " ".join(text.split())
    if len(flat) <= limit:
        return flat
    return flat[: limit - 3].rstrip() + "..."


class ResponseFusionEngine:
    """Fuse a set of AttemptOutcomes into a FusedResponse."""

    def __init__(
        self,
        config: FusionConfig | None = None,
        cost_estimator: CostEstimator | None = None,
    ) -> None:
        self._config = config or FusionConfig()
        self._cost_estimator = cost_estimator

    @property
    def config(self) -> FusionConfig:
        return self._config

    def fuse(
        self,
        outcomes: list[AttemptOutcome],
        scores: Mapping[str, ConfidenceScore],
        *,
        strategy: StrategyReport | None = None,
    ) -> FusedResponse:
        """Combine outcomes by normalised confidence weight.

        Args:
            outcomes: Outcomes of one fan-out, successes and failures mixed.
            scores: Confidence scores keyed by leaf id. A success with no
                score counts as 0.0.
            strategy: Report recorded on the response; defaults to
                weighted fusion.

        Raises:
            FusionError: If no outcome succeeded. Carries every failure.
        """
        succeeded = successes(outcomes)
        failed = failures(outcomes)
        if not succeeded:
            raise FusionError(FusionFailure.NO_SUCCESSFUL_OUTCOMES, failed)

        cfg = self._config
        weights = normalize_weights(succeeded, scores)
        ranked = sorted(succeeded, key=lambda o: (-weights[o.leaf_id], o.leaf_id))
        primary = ranked[0]

        contributions = [
            Contribution(
                leaf_id=primary.leaf_id,
                score=weights[primary.leaf_id],
                included=True,
                confidence=_raw_score(primary.leaf_id, scores),
                role=ContributionRole.PRIMARY,
            )
        ]
        corroborating: list[SuccessOutcome] = []
        conflicting: list[SuccessOutcome] = []

        for outcome in ranked[1:]:
            weight = weights[outcome.leaf_id]
            included = weight > cfg.inclusion_threshold
            if not included:
                role = ContributionRole.EXCLUDED
            elif token_overlap(primary.content, outcome.content) >= cfg.corroboration_threshold:
                role = ContributionRole.CORROBORATING
                corroborating.append(outcome)
            else:
                role = ContributionRole.CONFLICTING
                conflicting.append(outcome)
            contributions.append(
                Contribution(
                    leaf_id=outcome.leaf_id,
                    score=weight,
                    included=included,
                    confidence=_raw_score(outcome.leaf_id, scores),
                    role=role,
                )
            )

        content = self._compose(primary, corroborating, conflicting)
        confidence = self._overall_confidence(contributions)

        logger.debug(
            "Fused %d success(es), %d failure(s); primary=%s weight=%.2f",
            len(succeeded), len(failed), primary.leaf_id, weights[primary.leaf_id],
        )

        return FusedResponse(
            content=content,
            primary_leaf=primary.leaf_id,
            contributions=contributions,
            confidence=confidence,
            strategy=strategy or StrategyReport(kind=StrategyKind.WEIGHTED_FUSION),
            token_usage=total_usage(succeeded),
            cost_estimate=self.estimate_cost(succeeded),
            failures=failed,
            degraded=bool(failed),
        )

    def _compose(
        self,
        primary: SuccessOutcome,
        corroborating: list[SuccessOutcome],
        conflicting: list[SuccessOutcome],
    ) -> str:
        limit = self._config.excerpt_chars
        parts = [primary.content.rstrip()]
        if corroborating:
            parts.append("Corroborating notes:")
            parts.extend(f"- [{o.leaf_id}] {_excerpt(o.content, limit)}" for o in corroborating)
        if conflicting:
            parts.append("Conflicting notes:")
            parts.extend(f"- [{o.leaf_id}] {_excerpt(o.content, limit)}" for o in conflicting)
        if len(parts) == 1:
            return parts[0]
        return parts[0] + "\n\n---\n" + "\n".join(parts[1:])

    @staticmethod
    def _overall_confidence(contributions: list[Contribution]) -> float:
        included = [c for c in contributions if c.included]
        weight_sum = sum(c.score for c in included)
        if weight_sum <= 0:
            return 0.0
        value = sum(c.score * c.confidence for c in included) / weight_sum
        return max(0.0, min(1.0, value))

    def estimate_cost(self, outcomes: list[SuccessOutcome]) -> float:
        """Sum the cost estimator over ``outcomes``; 0.0 without an estimator."""
        if self._cost_estimator is None:
            return 0.0
        return sum(self._cost_estimator(o.token_usage, o.leaf_id) for o in outcomes)
