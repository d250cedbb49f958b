"""Fan-out coordinator: run every leaf concurrently under one deadline.

All leaf calls start together and share a single deadline measured from
the start of ``run``. The coordinator returns as soon as every call has
resolved, the early-exit predicate fires, or the deadline elapses. Calls
still pending at that point are cancelled through the shared token; a
call that cannot be interrupted is left to finish on its own and its
result is dropped. The coordinator never awaits a cancelled call.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from chorus.cancellation import CancellationToken
from chorus.errors import (
    ConfigurationError,
    ErrorKind,
    OrchestrationError,
    OrchestrationFailure,
)
from chorus.invoker import LeafInvoker
from chorus.leaf import Leaf
from chorus.schemas.messages import Query
from chorus.schemas.outcomes import AttemptOutcome, FailureOutcome
from chorus.schemas.retry import RetryPolicy
from chorus.scoring import SuccessRateRegistry

logger = logging.getLogger(__name__)

__all__ = ["CancellationToken", "EarlyExit", "FanOutCoordinator", "first_success"]

EarlyExit = Callable[[AttemptOutcome], bool]


def first_success(outcome: AttemptOutcome) -> bool:
    """Early-exit predicate: stop at the first successful outcome."""
    return outcome.succeeded


class FanOutCoordinator:
    """Launch one LeafInvoker per leaf and collect their outcomes."""

    def __init__(
        self,
        *,
        policy: RetryPolicy,
        leaf_timeout: float,
        history: SuccessRateRegistry | None = None,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        if leaf_timeout <= 0:
            raise ConfigurationError(
                f"leaf_timeout must be positive, got {leaf_timeout}",
                parameter="leaf_timeout",
            )
        self._policy = policy
        self._leaf_timeout = leaf_timeout
        self._history = history
        self._sleep = sleep

    async def run(
        self,
        leaves: list[Leaf],
        query: Query,
        deadline: float,
        early_exit: EarlyExit | None = None,
    ) -> list[AttemptOutcome]:
        """Invoke every leaf and return outcomes in completion order.

        Args:
            leaves: Leaves to call, one concurrent task each.
            query: Prompt or conversation sent to every leaf.
            deadline: Seconds from now after which pending calls are
                abandoned and reported as deadline_exceeded.
            early_exit: Predicate checked on each outcome as it arrives;
                when it returns True, outcomes that resolved in the same
                wake-up are kept and the still-pending calls are cancelled.

        Returns:
            Between 1 and len(leaves) outcomes. Never empty: if nothing
            completes, every leaf is reported as a failure.
        """
        if not leaves:
            raise OrchestrationError(OrchestrationFailure.NO_LEAVES)
        if deadline <= 0:
            raise ConfigurationError(
                f"deadline must be positive, got {deadline}", parameter="deadline",
            )

        loop = asyncio.get_running_loop()
        started = loop.time()
        expires_at = started + deadline
        token = CancellationToken()
        timeout = min(self._leaf_timeout, deadline)

        invokers: dict[asyncio.Task, LeafInvoker] = {}
        for leaf in leaves:
            invoker = LeafInvoker(
                leaf, policy=self._policy, timeout=timeout, token=token, sleep=self._sleep,
            )
            task = asyncio.create_task(
                invoker.invoke(query), name=f"chorus-leaf:{leaf.identifier}",
            )
            invokers[task] = invoker

        logger.debug("Fan-out to %d leaves with %.1fs deadline", len(leaves), deadline)

        outcomes: list[AttemptOutcome] = []
        pending: set[asyncio.Task] = set(invokers)
        exited_early = False

        try:
            while pending and not exited_early:
                remaining = expires_at - loop.time()
                if remaining <= 0:
                    break
                done, pending = await asyncio.wait(
                    pending, timeout=remaining, return_when=asyncio.FIRST_COMPLETED,
                )
                # Calls resolved in the same wake-up are ordered by latency
                batch = sorted(
                    (task.result() for task in done),
                    key=lambda o: (o.latency, o.leaf_id),
                )
                # The whole batch has already completed, so keep all of it
                for outcome in batch:
                    outcomes.append(outcome)
                    self._record(outcome)
                    if early_exit is not None and early_exit(outcome):
                        exited_early = True
        except asyncio.CancelledError:
            self._abandon(pending, token, "Fan-out cancelled")
            raise

        if pending:
            reason = "Early exit" if exited_early else "Deadline elapsed"
            self._abandon(pending, token, reason)
            if exited_early:
                logger.debug("Early exit: dropped %d pending leaf call(s)", len(pending))
            else:
                elapsed = loop.time() - started
                for task in sorted(pending, key=lambda t: invokers[t].leaf.identifier):
                    invoker = invokers[task]
                    failure = FailureOutcome(
                        leaf_id=invoker.leaf.identifier,
                        error_kind=ErrorKind.DEADLINE_EXCEEDED,
                        attempts_made=invoker.attempts_made,
                        message=f"No result within the {deadline:.1f}s deadline",
                        latency=elapsed,
                    )
                    outcomes.append(failure)
                    self._record(failure)
                logger.warning(
                    "Deadline of %.1fs elapsed with %d leaf call(s) pending",
                    deadline, len(pending),
                )

        return outcomes

    def _record(self, outcome: AttemptOutcome) -> None:
        if self._history is not None:
            self._history.record(outcome.leaf_id, outcome.succeeded)

    @staticmethod
    def _abandon(
        pending: set[asyncio.Task], token: CancellationToken, reason: str,
    ) -> None:
        token.cancel(reason)
        for task in pending:
            task.cancel()
