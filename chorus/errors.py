"""Exception hierarchy for Chorus.

Configuration problems are rejected at construction time, leaf failures
carry a classification that decides whether they are retried, and the
orchestration-level errors always carry every leaf's terminal failure.
"""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from chorus.schemas.outcomes import FailureOutcome


class ChorusError(Exception):
    """Base class for all errors raised by Chorus."""


class ConfigurationError(ChorusError):
    """Invalid policy, strategy, or configuration parameter."""

    def __init__(self, message: str, parameter: str | None = None) -> None:
        self.message = message
        self.parameter = parameter
        if parameter:
            super().__init__(f"Configuration error ({parameter}): {message}")
        else:
            super().__init__(f"Configuration error: {message}")


class ErrorKind(StrEnum):
    """Classification of a single leaf failure."""

    NETWORK = "network"
    TIMEOUT = "timeout"
    RATE_LIMIT = "rate_limit"
    SERVER_ERROR = "server_error"
    AUTHENTICATION = "authentication"
    BAD_REQUEST = "bad_request"
    MALFORMED_RESPONSE = "malformed_response"
    DEADLINE_EXCEEDED = "deadline_exceeded"
    CANCELLED = "cancelled"
    OTHER = "other"


# Transient failures worth another attempt
_RETRYABLE_KINDS: frozenset[ErrorKind] = frozenset({
    ErrorKind.NETWORK,
    ErrorKind.TIMEOUT,
    ErrorKind.RATE_LIMIT,
    ErrorKind.SERVER_ERROR,
})


class LeafError(ChorusError):
    """A failure of one leaf invocation.

    ``attempts`` is the number of attempts that had been made when the
    error surfaced; RetryExecutor sets it to the total on exhaustion.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        leaf_id: str = "",
        attempts: int = 1,
    ) -> None:
        self.kind = kind
        self.message = message
        self.leaf_id = leaf_id
        self.attempts = attempts
        super().__init__(self._render())

    @property
    def retryable(self) -> bool:
        """Whether another attempt could plausibly succeed."""
        return self.kind in _RETRYABLE_KINDS

    def with_attempts(self, attempts: int) -> LeafError:
        """Return a copy carrying a different attempt count."""
        err = LeafError(
            self.kind, self.message, leaf_id=self.leaf_id, attempts=attempts,
        )
        err.__cause__ = self.__cause__
        return err

    def _render(self) -> str:
        prefix = f"{self.leaf_id}: " if self.leaf_id else ""
        plural = "attempt" if self.attempts == 1 else "attempts"
        return f"{prefix}{self.kind.value} after {self.attempts} {plural}: {self.message}"


def classify_error(exc: BaseException, leaf_id: str = "") -> LeafError:
    """Normalise an arbitrary exception into a LeafError."""
    if isinstance(exc, LeafError):
        if leaf_id and not exc.leaf_id:
            err = LeafError(exc.kind, exc.message, leaf_id=leaf_id, attempts=exc.attempts)
            err.__cause__ = exc.__cause__
            return err
        return exc
    if isinstance(exc, TimeoutError):
        kind = ErrorKind.TIMEOUT
    elif isinstance(exc, ConnectionError):
        kind = ErrorKind.NETWORK
    else:
        kind = ErrorKind.OTHER
    message = str(exc) or type(exc).__name__
    err = LeafError(kind, message, leaf_id=leaf_id)
    err.__cause__ = exc
    return err


class FusionFailure(StrEnum):
    """Why fusion could not produce a response."""

    NO_SUCCESSFUL_OUTCOMES = "no_successful_outcomes"


class FusionError(ChorusError):
    """Fusion was asked to combine outcomes that contain no success."""

    def __init__(
        self,
        reason: FusionFailure,
        failures: list[FailureOutcome] | None = None,
    ) -> None:
        self.reason = reason
        self.failures = list(failures or [])
        super().__init__(
            f"Fusion failed ({reason.value}): {len(self.failures)} leaf failure(s)"
        )


class OrchestrationFailure(StrEnum):
    """Why an orchestration call produced no response."""

    NO_LEAVES = "no_leaves"
    ALL_LEAVES_FAILED = "all_leaves_failed"
    DEADLINE_ELAPSED = "deadline_elapsed"


class OrchestrationError(ChorusError):
    """Top-level failure of an orchestration call.

    The message lists every leaf's terminal failure so the caller never
    sees a bare failure without leaf-level detail.
    """

    def __init__(
        self,
        reason: OrchestrationFailure,
        failures: list[FailureOutcome] | None = None,
    ) -> None:
        self.reason = reason
        self.failures = list(failures or [])
        super().__init__(self._render())

    def _render(self) -> str:
        if self.reason == OrchestrationFailure.NO_LEAVES:
            return "Orchestration failed: no leaves supplied"
        lines = [f"Orchestration failed ({self.reason.value}):"]
        for failure in self.failures:
            lines.append(
                f"  - {failure.leaf_id}: {failure.error_kind.value} "
                f"after {failure.attempts_made} attempt(s): {failure.message}"
            )
        return "\n".join(lines)
