"""Confidence scoring for leaf outcomes.

A score multiplies a content heuristic (completeness and length-normalised
specificity) by the leaf's static prior and its historical success rate
in this process. Failures always score 0.0.

SuccessRateRegistry is the only mutable state shared between concurrent
leaf calls. Writes take a lock that is never held across an await;
reads take no lock and may observe a slightly stale snapshot.
"""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass

from chorus.schemas.config import ScoringConfig
from chorus.schemas.outcomes import (
    AttemptOutcome,
    ConfidenceScore,
    ScoreFactor,
    SuccessOutcome,
)

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"\w+")

# Endings that mark an answer as finished rather than cut off
_TERMINAL_ENDINGS = (".", "!", "?", "```", ")", '"', "'", "]")


def tokenize(text: str) -> list[str]:
    """Lowercase word tokens of ``text``."""
    return _TOKEN_RE.findall(text.lower())


@dataclass(frozen=True)
class _Tally:
    successes: int = 0
    total: int = 0


class SuccessRateRegistry:
    """Per-leaf success counters for the lifetime of the owning process.

    A leaf with no recorded history has a success rate of 1.0. Counters
    are never persisted; ``reset`` exists for tests.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._tallies: dict[str, _Tally] = {}

    def record(self, leaf_id: str, succeeded: bool) -> None:
        with self._lock:
            current = self._tallies.get(leaf_id, _Tally())
            # Replace rather than mutate so lock-free readers see a whole tally
            self._tallies[leaf_id] = _Tally(
                successes=current.successes + (1 if succeeded else 0),
                total=current.total + 1,
            )

    def success_rate(self, leaf_id: str) -> float:
        tally = self._tallies.get(leaf_id)
        if tally is None or tally.total == 0:
            return 1.0
        return tally.successes / tally.total

    def snapshot(self) -> dict[str, tuple[int, int]]:
        """Map of leaf id to (successes, total)."""
        return {k: (t.successes, t.total) for k, t in dict(self._tallies).items()}

    def reset(self) -> None:
        with self._lock:
            self._tallies = {}


class ConfidenceScorer:
    """Assign a confidence in [0, 1] to an AttemptOutcome."""

    def __init__(
        self,
        config: ScoringConfig | None = None,
        history: SuccessRateRegistry | None = None,
    ) -> None:
        self._config = config or ScoringConfig()
        self._history = history or SuccessRateRegistry()

    @property
    def history(self) -> SuccessRateRegistry:
        return self._history

    def score(
        self,
        outcome: AttemptOutcome,
        leaf_priors: dict[str, float] | None = None,
    ) -> ConfidenceScore:
        """Score one outcome.

        ``leaf_priors`` overrides the configured priors for this call;
        a leaf absent from both has prior 1.0.
        """
        if not isinstance(outcome, SuccessOutcome):
            return ConfidenceScore(leaf_id=outcome.leaf_id, value=0.0)

        cfg = self._config
        completeness = self._completeness(outcome.content)
        specificity = self._specificity(outcome.content)
        prior = self._prior(outcome.leaf_id, leaf_priors)
        success_rate = self._history.success_rate(outcome.leaf_id)

        weight_sum = cfg.completeness_weight + cfg.specificity_weight
        heuristic = (
            cfg.completeness_weight * completeness + cfg.specificity_weight * specificity
        ) / weight_sum
        value = max(0.0, min(1.0, heuristic * prior * success_rate))

        return ConfidenceScore(
            leaf_id=outcome.leaf_id,
            value=value,
            factors=[
                ScoreFactor(name="completeness", value=completeness),
                ScoreFactor(name="specificity", value=specificity),
                ScoreFactor(name="prior", value=prior),
                ScoreFactor(name="success_rate", value=success_rate),
            ],
        )

    def score_all(
        self,
        outcomes: list[AttemptOutcome],
        leaf_priors: dict[str, float] | None = None,
    ) -> dict[str, ConfidenceScore]:
        """Score every outcome, keyed by leaf id."""
        return {o.leaf_id: self.score(o, leaf_priors) for o in outcomes}

    @staticmethod
    def _completeness(content: str) -> float:
        text = content.strip()
        if not text:
            return 0.0
        return 1.0 if text.endswith(_TERMINAL_ENDINGS) else 0.5

    def _specificity(self, content: str) -> float:
        tokens = tokenize(content)
        if not tokens:
            return 0.0
        cap = self._config.specificity_cap
        length = min(len(tokens), cap) / cap
        diversity = len(set(tokens)) / len(tokens)
        return length * diversity

    def _prior(self, leaf_id: str, overrides: dict[str, float] | None) -> float:
        if overrides and leaf_id in overrides:
            return overrides[leaf_id]
        return self._config.leaf_priors.get(leaf_id, 1.0)
