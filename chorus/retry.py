"""Retry executor with configurable backoff.

Wraps one fallible async operation. Retryable LeafErrors (network,
timeout, rate limit, server error) are retried with the policy's delay
until the attempt budget is spent; anything else is raised at once.
The executor knows nothing about models or prompts.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

from chorus.errors import LeafError, classify_error
from chorus.schemas.retry import BackoffKind, RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")

__all__ = ["BackoffKind", "RetryExecutor", "RetryPolicy"]


class RetryExecutor:
    """Run an operation under a RetryPolicy.

    ``sleep`` is injectable so tests can observe delays without waiting.
    ``on_attempt`` is called with the 1-based number of each attempt just
    before it starts.
    """

    def __init__(
        self,
        policy: RetryPolicy,
        *,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
        on_attempt: Callable[[int], None] | None = None,
        label: str = "",
    ) -> None:
        self._policy = policy
        self._sleep = sleep
        self._on_attempt = on_attempt
        self._label = label

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Call ``operation`` until it succeeds or the policy gives up.

        Returns:
            Whatever the first successful attempt returned.

        Raises:
            LeafError: The last observed error, carrying the total number
                of attempts made. Non-LeafError exceptions are classified
                first; only retryable kinds are attempted again.
        """
        max_attempts = self._policy.max_attempts
        last_error: LeafError | None = None

        for attempt in range(1, max_attempts + 1):
            if attempt > 1:
                delay = self._backoff(attempt)
                logger.warning(
                    "Retry %d/%d for %s (%s, backoff: %.1fs)",
                    attempt - 1,
                    max_attempts - 1,
                    self._label or "operation",
                    last_error.kind.value if last_error else "error",
                    delay,
                )
                if delay > 0:
                    await self._sleep(delay)

            if self._on_attempt is not None:
                self._on_attempt(attempt)

            try:
                return await operation()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                last_error = classify_error(exc, self._label).with_attempts(attempt)

            if not last_error.retryable:
                logger.debug(
                    "Non-retryable %s for %s: %s",
                    last_error.kind.value, self._label or "operation", last_error.message,
                )
                raise last_error

        assert last_error is not None
        logger.warning(
            "All %d attempts exhausted for %s: %s",
            max_attempts, self._label or "operation", last_error.message,
        )
        raise last_error

    def _backoff(self, attempt: int) -> float:
        delay = self._policy.delay_before(attempt)
        if self._policy.jitter and delay > 0:
            delay *= 1.0 + random.uniform(0.0, self._policy.jitter)
        return delay
