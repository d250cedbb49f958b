"""Retry policy schema.

A RetryPolicy is a backoff shape (fixed, linear, exponential) plus a
maximum attempt count. An attempt count below one is rejected when the
policy is built, so a misconfigured policy can never reach execution.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from chorus.errors import ConfigurationError


class BackoffKind(StrEnum):
    """Shape of the delay between attempts."""

    FIXED = "fixed"
    LINEAR = "linear"
    EXPONENTIAL = "exponential"


class RetryPolicy(BaseModel):
    """Backoff policy for RetryExecutor.

    Delay before attempt k (k >= 2):
      fixed        delay
      linear       delay * (k - 1)
      exponential  delay * 2 ** (k - 2)
    """

    model_config = ConfigDict(frozen=True)

    kind: BackoffKind = Field(default=BackoffKind.EXPONENTIAL, description="Backoff shape")
    delay: float = Field(default=1.0, description="Base delay in seconds")
    max_attempts: int = Field(default=3, description="Total attempts including the first")
    jitter: float = Field(
        default=0.0,
        description="Upper bound of the random fraction added to each delay (0 disables)",
    )

    @model_validator(mode="after")
    def _check_bounds(self) -> RetryPolicy:
        if self.max_attempts < 1:
            raise ConfigurationError(
                f"max_attempts must be at least 1, got {self.max_attempts}",
                parameter="max_attempts",
            )
        if self.delay < 0:
            raise ConfigurationError(
                f"delay must not be negative, got {self.delay}",
                parameter="delay",
            )
        if not 0.0 <= self.jitter <= 1.0:
            raise ConfigurationError(
                f"jitter must be within [0.0, 1.0], got {self.jitter}",
                parameter="jitter",
            )
        return self

    @classmethod
    def fixed(cls, delay: float, max_attempts: int = 3) -> RetryPolicy:
        return cls(kind=BackoffKind.FIXED, delay=delay, max_attempts=max_attempts)

    @classmethod
    def linear(cls, delay: float, max_attempts: int = 3) -> RetryPolicy:
        return cls(kind=BackoffKind.LINEAR, delay=delay, max_attempts=max_attempts)

    @classmethod
    def exponential(
        cls, delay: float, max_attempts: int = 3, jitter: float = 0.0,
    ) -> RetryPolicy:
        return cls(
            kind=BackoffKind.EXPONENTIAL,
            delay=delay,
            max_attempts=max_attempts,
            jitter=jitter,
        )

    def delay_before(self, attempt: int) -> float:
        """Delay in seconds before the given 1-based attempt, without jitter."""
        if attempt < 2:
            return 0.0
        match self.kind:
            case BackoffKind.FIXED:
                return self.delay
            case BackoffKind.LINEAR:
                return self.delay * (attempt - 1)
            case BackoffKind.EXPONENTIAL:
                return self.delay * 2 ** (attempt - 2)
