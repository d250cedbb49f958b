"""Abstract base class for leaves.

A leaf is one externally owned AI client taking part in an orchestration
call. The engine only borrows leaves for the duration of a call and
interacts with them exclusively through this interface; it never builds
provider requests itself.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from chorus.schemas.messages import LeafCapabilities, Query, RawResponse


class Leaf(ABC):
    """Interface every AI client adapter implements.

    Implementations must be safe to invoke concurrently and must tolerate
    having a call cancelled or its result discarded.
    """

    @property
    @abstractmethod
    def identifier(self) -> str:
        """Stable provider+model identifier, e.g. 'openai/gpt-4o'."""

    @property
    def capabilities(self) -> LeafCapabilities:
        """Declared capability flags."""
        return LeafCapabilities()

    @property
    def supports_cancellation(self) -> bool:
        """Whether an in-flight invoke() may be cancelled.

        Leaves returning False have their late results discarded instead.
        """
        return True

    @abstractmethod
    async def invoke(self, query: Query) -> RawResponse:
        """Send a prompt or conversation and return the model's response.

        Raises:
            LeafError: Classified failure. Other exceptions are classified
                by the caller (TimeoutError -> timeout, ConnectionError ->
                network, anything else -> other).
        """

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.identifier}>"
