"""Orchestration engine for Chorus.

The Orchestrator is the single entry point of the engine. One call takes
a set of leaves, a query, a strategy and a deadline, and returns one
FusedResponse or raises an OrchestrationError that lists every leaf's
terminal failure.

Strategies dispatch by exhaustive match over the closed variant set:
FirstSuccess cancels the rest at the first success, WeightedFusion fuses
every success by confidence, Consensus negotiates over several rounds,
Tournament runs a pairwise bracket, and Adaptive picks one of these from
the query and leaf count. Responses are looked up in and stored to the
response cache when one is configured.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import Counter
from collections.abc import Awaitable, Callable, Iterable
from typing import assert_never

from chorus.adaptive import select_strategy
from chorus.consensus import ConsensusBuilder, Similarity, token_overlap
from chorus.errors import (
    ConfigurationError,
    ErrorKind,
    FusionError,
    OrchestrationError,
    OrchestrationFailure,
)
from chorus.fanout import FanOutCoordinator, first_success
from chorus.fusion import ResponseFusionEngine
from chorus.leaf import Leaf
from chorus.schemas.config import OrchestratorConfig, check_priors
from chorus.schemas.messages import Query
from chorus.schemas.outcomes import FailureOutcome, failures
from chorus.schemas.response import FusedResponse, StrategyReport
from chorus.schemas.strategy import (
    Adaptive,
    Consensus,
    FirstSuccess,
    OrchestrationStrategy,
    StrategyKind,
    Tournament,
    WeightedFusion,
)
from chorus.scoring import ConfidenceScorer, SuccessRateRegistry
from chorus.services import CostEstimator, InMemoryResponseCache, ResponseCache, cache_key
from chorus.tournament import TournamentSelector

logger = logging.getLogger(__name__)


class Orchestrator:
    """Top-level facade over the orchestration engine.

    The orchestrator owns the success-rate history for its lifetime and
    shares it between the coordinator (which records outcomes) and the
    scorer (which reads them). Leaves are borrowed per call and never
    retained.
    """

    def __init__(
        self,
        config: OrchestratorConfig | None = None,
        *,
        cost_estimator: CostEstimator | None = None,
        cache: ResponseCache | None = None,
        history: SuccessRateRegistry | None = None,
        leaf_priors: dict[str, float] | None = None,
        similarity: Similarity = token_overlap,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        check_priors(leaf_priors)
        self._config = config or OrchestratorConfig()
        cfg = self._config

        self._history = history or SuccessRateRegistry()
        self._leaf_priors = leaf_priors
        if cache is None and cfg.cache.enabled:
            cache = InMemoryResponseCache(cfg.cache.capacity, cfg.cache.ttl_seconds)
        self._cache = cache

        self._coordinator = FanOutCoordinator(
            policy=cfg.retry,
            leaf_timeout=cfg.leaf_timeout,
            history=self._history,
            sleep=sleep,
        )
        self._scorer = ConfidenceScorer(cfg.scoring, self._history)
        self._fusion = ResponseFusionEngine(cfg.fusion, cost_estimator)
        self._tournament = TournamentSelector(cost_estimator=cost_estimator)
        self._consensus = ConsensusBuilder(
            self._coordinator,
            self._scorer,
            self._fusion,
            similarity=similarity,
            excerpt_leaders=cfg.consensus.excerpt_leaders,
            excerpt_chars=cfg.consensus.excerpt_chars,
            leaf_priors=leaf_priors,
        )

    @property
    def config(self) -> OrchestratorConfig:
        return self._config

    @property
    def history(self) -> SuccessRateRegistry:
        return self._history

    @property
    def cache(self) -> ResponseCache | None:
        return self._cache

    async def orchestrate(
        self,
        leaves: Iterable[Leaf],
        query: Query,
        strategy: OrchestrationStrategy | None = None,
        deadline: float | None = None,
    ) -> FusedResponse:
        """Run one orchestration call.

        Args:
            leaves: Leaves to consult. Identifiers must be unique.
            query: Prompt or conversation.
            strategy: Strategy variant; Adaptive when omitted.
            deadline: Seconds for the whole call, shared by every leaf
                and every consensus round. Config default when omitted.

        Returns:
            The fused response. ``degraded`` is set when some leaves
            failed but at least one succeeded.

        Raises:
            ConfigurationError: Duplicate leaf identifiers or a
                non-positive deadline.
            OrchestrationError: No leaves, or no leaf succeeded.
        """
        leaves = list(leaves)
        if not leaves:
            raise OrchestrationError(OrchestrationFailure.NO_LEAVES)

        leaf_ids = [leaf.identifier for leaf in leaves]
        duplicates = sorted(k for k, n in Counter(leaf_ids).items() if n > 1)
        if duplicates:
            raise ConfigurationError(
                f"Duplicate leaf identifiers: {', '.join(duplicates)}", parameter="leaves",
            )

        if deadline is None:
            deadline = self._config.default_deadline
        if deadline <= 0:
            raise ConfigurationError(
                f"deadline must be positive, got {deadline}", parameter="deadline",
            )

        requested = strategy if strategy is not None else Adaptive()
        start = time.monotonic()

        key = None
        if self._cache is not None:
            key = cache_key(query, requested, leaf_ids)
            cached = self._cache.get(key)
            if cached is not None:
                logger.info("Serving cached response (%s)", key[:12])
                return cached.model_copy(
                    update={"cache_hit": True, "elapsed_seconds": time.monotonic() - start},
                )

        resolved = requested
        if isinstance(requested, Adaptive):
            resolved = select_strategy(
                query, len(leaves), self._config.adaptive, self._config.consensus,
            )
            logger.info(
                "Adaptive selection chose %s for %d leaves", resolved.kind.value, len(leaves),
            )

        logger.info(
            "Orchestrating %d leaves with %s (deadline %.1fs)",
            len(leaves), resolved.kind.value, deadline,
        )

        try:
            response = await self._execute(resolved, leaves, query, deadline)
        except FusionError as err:
            raise self._failure(err.failures) from err

        update: dict[str, object] = {"elapsed_seconds": time.monotonic() - start}
        if resolved is not requested:
            update["strategy"] = response.strategy.model_copy(update={"adaptive": True})
        response = response.model_copy(update=update)

        if response.degraded:
            logger.warning(
                "Degraded response: %d of %d leaves failed",
                len(response.failures), len(leaves),
            )
        elif key is not None:
            self._cache.put(key, response)

        return response

    async def _execute(
        self,
        strategy: OrchestrationStrategy,
        leaves: list[Leaf],
        query: Query,
        deadline: float,
    ) -> FusedResponse:
        match strategy:
            case FirstSuccess():
                outcomes = await self._coordinator.run(
                    leaves, query, deadline, early_exit=first_success,
                )
                scores = self._scorer.score_all(outcomes, self._leaf_priors)
                return self._fusion.fuse(
                    outcomes, scores, strategy=StrategyReport(kind=StrategyKind.FIRST_SUCCESS),
                )
            case WeightedFusion():
                outcomes = await self._coordinator.run(leaves, query, deadline)
                scores = self._scorer.score_all(outcomes, self._leaf_priors)
                return self._fusion.fuse(outcomes, scores)
            case Consensus():
                run = await self._consensus.run(leaves, query, strategy, deadline)
                return run.response
            case Tournament():
                outcomes = await self._coordinator.run(leaves, query, deadline)
                scores = self._scorer.score_all(outcomes, self._leaf_priors)
                result = self._tournament.select(outcomes, scores)
                return self._tournament.to_response(result, scores, failures(outcomes))
            case Adaptive():
                raise ConfigurationError(
                    "Adaptive must be resolved before execution", parameter="strategy",
                )
            case _:
                assert_never(strategy)

    @staticmethod
    def _failure(failed: list[FailureOutcome]) -> OrchestrationError:
        if any(f.error_kind == ErrorKind.DEADLINE_EXCEEDED for f in failed):
            reason = OrchestrationFailure.DEADLINE_ELAPSED
        else:
            reason = OrchestrationFailure.ALL_LEAVES_FAILED
        logger.error("All %d leaves failed (%s)", len(failed), reason.value)
        return OrchestrationError(reason, failed)
