"""Leaf invoker: one leaf call under retry, timeout and cancellation.

Every invocation resolves to exactly one AttemptOutcome. Leaf errors,
timeouts and token cancellation become FailureOutcomes; nothing but the
cancellation of the invoker's own task escapes.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

from chorus.cancellation import CancellationToken
from chorus.errors import ErrorKind, LeafError
from chorus.leaf import Leaf
from chorus.retry import RetryExecutor
from chorus.schemas.messages import Query, RawResponse
from chorus.schemas.outcomes import AttemptOutcome, FailureOutcome, SuccessOutcome
from chorus.schemas.retry import RetryPolicy

logger = logging.getLogger(__name__)

# Leaf calls that could not be cancelled; held until they finish so the
# event loop does not drop them mid-flight.
_DETACHED: set[asyncio.Future] = set()


def _discard_late_result(call: asyncio.Future) -> None:
    _DETACHED.discard(call)
    if call.cancelled():
        return
    exc = call.exception()
    if exc is not None:
        logger.debug("Discarded late failure from abandoned leaf call: %s", exc)
    else:
        logger.debug("Discarded late result from abandoned leaf call")


class LeafInvoker:
    """Call one leaf through RetryExecutor with a per-attempt timeout."""

    def __init__(
        self,
        leaf: Leaf,
        *,
        policy: RetryPolicy,
        timeout: float,
        token: CancellationToken | None = None,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self._leaf = leaf
        self._timeout = timeout
        self._token = token
        self._attempts = 0
        self._executor = RetryExecutor(
            policy,
            sleep=sleep,
            on_attempt=self._record_attempt,
            label=leaf.identifier,
        )

    @property
    def leaf(self) -> Leaf:
        return self._leaf

    @property
    def attempts_made(self) -> int:
        """Attempts started so far, readable while the call is in flight."""
        return self._attempts

    async def invoke(self, query: Query) -> AttemptOutcome:
        """Run the leaf call and normalise its result."""
        start = time.monotonic()
        leaf_id = self._leaf.identifier

        try:
            raw = await self._executor.execute(lambda: self._attempt(query))
        except LeafError as err:
            logger.debug(
                "Leaf %s failed (%s) after %d attempt(s): %s",
                leaf_id, err.kind.value, err.attempts, err.message,
            )
            return FailureOutcome(
                leaf_id=leaf_id,
                error_kind=err.kind,
                attempts_made=err.attempts,
                message=err.message,
                latency=time.monotonic() - start,
            )

        return SuccessOutcome(
            leaf_id=leaf_id,
            content=raw.content,
            token_usage=raw.token_usage,
            latency=time.monotonic() - start,
            attempts_made=self._attempts,
        )

    def _record_attempt(self, attempt: int) -> None:
        self._attempts = attempt

    async def _attempt(self, query: Query) -> RawResponse:
        """One attempt, raced against the timeout and the cancellation token."""
        leaf_id = self._leaf.identifier
        if self._token is not None and self._token.cancelled:
            raise LeafError(ErrorKind.CANCELLED, "Cancelled before attempt", leaf_id=leaf_id)

        call = asyncio.ensure_future(self._leaf.invoke(query))
        waiters: set[asyncio.Future] = {call}
        cancel_wait: asyncio.Future | None = None
        if self._token is not None:
            cancel_wait = asyncio.ensure_future(self._token.wait())
            waiters.add(cancel_wait)

        try:
            done, _ = await asyncio.wait(
                waiters, timeout=self._timeout, return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            self._abandon(call)
            raise
        finally:
            if cancel_wait is not None:
                cancel_wait.cancel()

        if call in done:
            raw = call.result()
            if not isinstance(raw, RawResponse):
                raise LeafError(
                    ErrorKind.MALFORMED_RESPONSE,
                    f"Leaf returned {type(raw).__name__}, expected RawResponse",
                    leaf_id=leaf_id,
                )
            return raw

        self._abandon(call)
        if cancel_wait is not None and cancel_wait in done:
            raise LeafError(
                ErrorKind.CANCELLED,
                self._token.reason or "Cancelled by coordinator",
                leaf_id=leaf_id,
            )
        logger.warning("Leaf %s timed out after %.1fs", leaf_id, self._timeout)
        raise LeafError(
            ErrorKind.TIMEOUT,
            f"Attempt timed out after {self._timeout:.1f}s",
            leaf_id=leaf_id,
        )

    def _abandon(self, call: asyncio.Future) -> None:
        """Stop waiting for an in-flight leaf call."""
        if call.done():
            return
        if self._leaf.supports_cancellation:
            call.cancel()
        _DETACHED.add(call)
        call.add_done_callback(_discard_late_result)
