"""Tests for chorus.orchestrator — end-to-end orchestration over scripted leaves."""

from __future__ import annotations

import logging

import pytest

from chorus.errors import (
    ConfigurationError,
    ErrorKind,
    LeafError,
    OrchestrationError,
    OrchestrationFailure,
)
from chorus.orchestrator import Orchestrator
from chorus.retry import RetryPolicy
from chorus.schemas.config import CacheConfig, OrchestratorConfig, ScoringConfig
from chorus.schemas.messages import ChatMessage, Role
from chorus.schemas.strategy import (
    Adaptive,
    Consensus,
    FirstSuccess,
    StrategyKind,
    Tournament,
    WeightedFusion,
)
from chorus.scoring import SuccessRateRegistry
from chorus.services import InMemoryResponseCache


# ── Factories ──────────────────────────────────────────────────────

def _make_orchestrator(
    *,
    retry: RetryPolicy | None = None,
    cache_enabled: bool = True,
    **kwargs,
) -> Orchestrator:
    config = OrchestratorConfig(
        retry=retry or RetryPolicy.fixed(0.0, max_attempts=1),
        leaf_timeout=2.0,
        cache=CacheConfig(enabled=cache_enabled),
    )
    return Orchestrator(config, **kwargs)


_CONTESTED = "Is it true that water boils at 100 degrees at sea level?"
_NEUTRAL = "Write a short poem about rivers."


# ── Validation ─────────────────────────────────────────────────────

class TestValidation:
    async def test_no_leaves(self):
        with pytest.raises(OrchestrationError) as exc_info:
            await _make_orchestrator().orchestrate([], "q")
        assert exc_info.value.reason == OrchestrationFailure.NO_LEAVES

    async def test_duplicate_identifiers_rejected_before_any_call(self, make_leaf):
        first, second = make_leaf("a/one"), make_leaf("a/one")

        with pytest.raises(ConfigurationError) as exc_info:
            await _make_orchestrator().orchestrate([first, second], "q")

        assert exc_info.value.parameter == "leaves"
        assert first.calls == second.calls == 0

    @pytest.mark.parametrize("deadline", [0.0, -1.0])
    async def test_non_positive_deadline(self, make_leaf, deadline):
        leaf = make_leaf()
        with pytest.raises(ConfigurationError):
            await _make_orchestrator().orchestrate([leaf], "q", deadline=deadline)
        assert leaf.calls == 0

    @pytest.mark.parametrize("prior", [-1.0, float("inf"), float("nan")])
    def test_invalid_prior_rejected_at_construction(self, prior):
        with pytest.raises(ConfigurationError) as exc_info:
            _make_orchestrator(leaf_priors={"a/one": prior})
        assert exc_info.value.parameter == "leaf_priors"

    def test_invalid_configured_prior_rejected(self):
        with pytest.raises(ConfigurationError):
            OrchestratorConfig(scoring=ScoringConfig(leaf_priors={"a/one": -0.1}))


# ── Strategies ─────────────────────────────────────────────────────

class TestStrategies:
    async def test_weighted_fusion(self, make_leaf):
        leaves = [make_leaf("a/one", "Rivers run to the sea."), make_leaf("b/two", "Water flows.")]
        orchestrator = _make_orchestrator(leaf_priors={"a/one": 1.0, "b/two": 0.2})

        response = await orchestrator.orchestrate(leaves, _NEUTRAL, WeightedFusion())

        assert response.strategy.kind == StrategyKind.WEIGHTED_FUSION
        assert response.strategy.adaptive is False
        assert response.primary_leaf == "a/one"
        assert response.content.startswith("Rivers run to the sea.")
        assert sum(c.score for c in response.contributions) == pytest.approx(1.0)
        assert response.elapsed_seconds >= 0.0
        assert response.degraded is False
        assert response.cache_hit is False

    async def test_first_success_returns_fastest(self, make_leaf):
        fast = make_leaf("a/fast", "Quick answer.")
        slow = make_leaf("b/slow", "Slow answer.", delay=1.0)

        response = await _make_orchestrator().orchestrate([slow, fast], "q", FirstSuccess())

        assert response.strategy.kind == StrategyKind.FIRST_SUCCESS
        assert response.primary_leaf == "a/fast"
        assert response.content == "Quick answer."
        assert [c.leaf_id for c in response.contributions] == ["a/fast"]
        assert response.elapsed_seconds < 1.0
        assert slow.completed == 0

    async def test_first_success_skips_failures(self, make_leaf):
        broken = make_leaf("a/broken", LeafError(ErrorKind.AUTHENTICATION, "bad key"))
        working = make_leaf("b/works", "Answer.", delay=0.05)

        response = await _make_orchestrator().orchestrate([broken, working], "q", FirstSuccess())

        assert response.primary_leaf == "b/works"
        assert [f.leaf_id for f in response.failures] == ["a/broken"]
        assert response.degraded is True

    async def test_consensus(self, make_leaf):
        leaves = [make_leaf(f"p/m{i}", f"Answer {i}.") for i in range(3)]
        orchestrator = _make_orchestrator(similarity=lambda a, b: 1.0)

        response = await orchestrator.orchestrate(
            leaves, "q", Consensus(max_rounds=3, agreement_threshold=0.9),
        )

        assert response.strategy.kind == StrategyKind.CONSENSUS
        assert response.strategy.rounds_run == 1
        assert response.strategy.converged is True
        assert all(leaf.calls == 1 for leaf in leaves)

    async def test_tournament_winner_follows_priors(self, make_leaf):
        leaves = [make_leaf(f"p/m{i}", "The same solid answer.") for i in range(4)]
        priors = {"p/m0": 0.2, "p/m1": 0.4, "p/m2": 0.9, "p/m3": 0.1}

        response = await _make_orchestrator(leaf_priors=priors).orchestrate(
            leaves, "q", Tournament(),
        )

        assert response.strategy.kind == StrategyKind.TOURNAMENT
        assert response.primary_leaf == "p/m2"
        assert response.contributions[0].score == 1.0
        assert all(c.score == 0.0 for c in response.contributions[1:])

    async def test_retries_flow_through(self, make_leaf, recorded_sleep):
        leaf = make_leaf("a/one", LeafError(ErrorKind.NETWORK, "reset"), "Recovered.")
        orchestrator = _make_orchestrator(
            retry=RetryPolicy.fixed(0.5, max_attempts=3), sleep=recorded_sleep,
        )

        response = await orchestrator.orchestrate([leaf], "q", WeightedFusion())

        assert response.content == "Recovered."
        assert leaf.calls == 2
        assert recorded_sleep.delays == [0.5]

    async def test_conversation_query(self, make_leaf):
        leaf = make_leaf("a/one", "Hello there.")
        conversation = [
            ChatMessage(role=Role.SYSTEM, content="Be polite."),
            ChatMessage(role=Role.USER, content="Greet me."),
        ]

        response = await _make_orchestrator().orchestrate([leaf], conversation, WeightedFusion())

        assert response.content == "Hello there."
        assert leaf.queries == [conversation]


# ── Adaptive selection ─────────────────────────────────────────────

class TestAdaptive:
    async def test_single_leaf_uses_first_success(self, make_leaf):
        response = await _make_orchestrator().orchestrate(
            [make_leaf("a/one", "Fine.")], _CONTESTED, Adaptive(),
        )

        assert response.strategy.kind == StrategyKind.FIRST_SUCCESS
        assert response.strategy.adaptive is True

    async def test_contested_prompt_uses_consensus(self, make_leaf):
        leaves = [make_leaf(f"p/m{i}", "Yes, at standard pressure.") for i in range(3)]

        response = await _make_orchestrator().orchestrate(leaves, _CONTESTED)

        assert response.strategy.kind == StrategyKind.CONSENSUS
        assert response.strategy.adaptive is True
        assert response.strategy.converged is True

    async def test_omitted_strategy_is_adaptive(self, make_leaf):
        leaves = [make_leaf("a/one", "A poem."), make_leaf("b/two", "Another poem.")]

        response = await _make_orchestrator().orchestrate(leaves, _NEUTRAL)

        assert response.strategy.kind == StrategyKind.WEIGHTED_FUSION
        assert response.strategy.adaptive is True


# ── Failure reporting ──────────────────────────────────────────────

class TestFailures:
    async def test_all_leaves_failed_lists_every_leaf(self, make_leaf):
        leaves = [
            make_leaf("a/one", LeafError(ErrorKind.AUTHENTICATION, "bad key")),
            make_leaf("b/two", LeafError(ErrorKind.BAD_REQUEST, "too long")),
        ]

        with pytest.raises(OrchestrationError) as exc_info:
            await _make_orchestrator().orchestrate(leaves, "q", WeightedFusion())

        err = exc_info.value
        assert err.reason == OrchestrationFailure.ALL_LEAVES_FAILED
        assert sorted(f.leaf_id for f in err.failures) == ["a/one", "b/two"]
        message = str(err)
        assert "a/one: authentication" in message
        assert "b/two: bad_request" in message

    @pytest.mark.parametrize("strategy", [FirstSuccess(), Tournament(), Consensus(max_rounds=2)])
    async def test_every_strategy_reports_total_failure(self, make_leaf, strategy):
        leaves = [make_leaf("a/one", ValueError("boom")), make_leaf("b/two", ValueError("boom"))]

        with pytest.raises(OrchestrationError) as exc_info:
            await _make_orchestrator().orchestrate(leaves, "q", strategy)

        assert exc_info.value.reason == OrchestrationFailure.ALL_LEAVES_FAILED

    async def test_deadline_elapsed(self, make_leaf):
        # Each leaf fails once, then waits out a long backoff past the deadline
        leaves = [
            make_leaf("a/one", LeafError(ErrorKind.NETWORK, "reset")),
            make_leaf("b/two", LeafError(ErrorKind.NETWORK, "reset")),
        ]
        orchestrator = _make_orchestrator(retry=RetryPolicy.fixed(10.0, max_attempts=3))

        with pytest.raises(OrchestrationError) as exc_info:
            await orchestrator.orchestrate(leaves, "q", WeightedFusion(), deadline=0.2)

        err = exc_info.value
        assert err.reason == OrchestrationFailure.DEADLINE_ELAPSED
        assert [f.error_kind for f in err.failures] == [ErrorKind.DEADLINE_EXCEEDED] * 2
        assert [f.attempts_made for f in err.failures] == [1, 1]

    async def test_degraded_response_is_logged(self, make_leaf, caplog):
        leaves = [make_leaf("a/one", "Fine."), make_leaf("b/two", ValueError("boom"))]

        with caplog.at_level(logging.WARNING, logger="chorus.orchestrator"):
            response = await _make_orchestrator().orchestrate(leaves, "q", WeightedFusion())

        assert response.degraded is True
        assert "Degraded response: 1 of 2 leaves failed" in caplog.text


# ── Cache ──────────────────────────────────────────────────────────

class TestCache:
    async def test_repeat_call_is_served_from_cache(self, make_leaf):
        leaf = make_leaf("a/one", "Cached answer.")
        orchestrator = _make_orchestrator()

        first = await orchestrator.orchestrate([leaf], "q", WeightedFusion())
        second = await orchestrator.orchestrate([leaf], "q", WeightedFusion())

        assert first.cache_hit is False
        assert second.cache_hit is True
        assert second.content == first.content
        assert leaf.calls == 1

    async def test_cache_hit_reports_its_own_elapsed_time(self, make_leaf):
        leaf = make_leaf("a/one", "Slow answer.", delay=0.2)
        orchestrator = _make_orchestrator()

        first = await orchestrator.orchestrate([leaf], "q", WeightedFusion())
        second = await orchestrator.orchestrate([leaf], "q", WeightedFusion())

        assert first.elapsed_seconds >= 0.2
        assert second.cache_hit is True
        assert second.elapsed_seconds < 0.1

    async def test_different_strategy_misses(self, make_leaf):
        leaf = make_leaf("a/one", "Answer.")
        orchestrator = _make_orchestrator()

        await orchestrator.orchestrate([leaf], "q", WeightedFusion())
        await orchestrator.orchestrate([leaf], "q", Tournament())

        assert leaf.calls == 2

    async def test_degraded_response_is_not_cached(self, make_leaf):
        good = make_leaf("a/one", "Fine.")
        bad = make_leaf("b/two", ValueError("boom"))
        orchestrator = _make_orchestrator()

        await orchestrator.orchestrate([good, bad], "q", WeightedFusion())
        second = await orchestrator.orchestrate([good, bad], "q", WeightedFusion())

        assert second.cache_hit is False
        assert good.calls == 2
        assert len(orchestrator.cache) == 0

    async def test_cache_disabled(self, make_leaf):
        leaf = make_leaf("a/one", "Answer.")
        orchestrator = _make_orchestrator(cache_enabled=False)

        await orchestrator.orchestrate([leaf], "q", WeightedFusion())
        await orchestrator.orchestrate([leaf], "q", WeightedFusion())

        assert orchestrator.cache is None
        assert leaf.calls == 2

    async def test_injected_cache_is_used(self, make_leaf):
        cache = InMemoryResponseCache(capacity=4)
        orchestrator = _make_orchestrator(cache=cache)

        await orchestrator.orchestrate([make_leaf("a/one", "Answer.")], "q", WeightedFusion())

        assert orchestrator.cache is cache
        assert len(cache) == 1


# ── Accounting and history ─────────────────────────────────────────

class TestAccounting:
    async def test_cost_estimator_applies_to_every_success(self, make_leaf):
        leaves = [make_leaf("a/one", "One."), make_leaf("b/two", "Two.")]
        orchestrator = _make_orchestrator(cost_estimator=lambda usage, leaf_id: 0.25)

        response = await orchestrator.orchestrate(leaves, "q", WeightedFusion())

        assert response.cost_estimate == pytest.approx(0.5)
        assert response.token_usage.prompt_tokens == 20

    async def test_history_records_every_outcome(self, make_leaf):
        leaves = [make_leaf("a/one", "Fine."), make_leaf("b/two", ValueError("boom"))]
        orchestrator = _make_orchestrator()

        await orchestrator.orchestrate(leaves, "q", WeightedFusion())

        assert orchestrator.history.snapshot() == {"a/one": (1, 1), "b/two": (0, 1)}

    async def test_injected_history_is_shared(self, make_leaf):
        history = SuccessRateRegistry()
        history.record("a/one", False)
        orchestrator = _make_orchestrator(history=history)

        await orchestrator.orchestrate([make_leaf("a/one", "Fine.")], "q", WeightedFusion())

        assert orchestrator.history is history
        assert history.snapshot() == {"a/one": (1, 2)}

    async def test_instances_do_not_share_history(self, make_leaf):
        first, second = _make_orchestrator(), _make_orchestrator()

        await first.orchestrate([make_leaf("a/one", "Fine.")], "q", WeightedFusion())

        assert first.history.snapshot() == {"a/one": (1, 1)}
        assert second.history.snapshot() == {}
