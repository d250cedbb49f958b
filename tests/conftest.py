"""Shared fixtures: scripted in-memory leaves."""

from __future__ import annotations

import asyncio

import pytest

from chorus.leaf import Leaf
from chorus.schemas.messages import LeafCapabilities, Query, RawResponse, TokenUsage


class ScriptedLeaf(Leaf):
    """Leaf that replays a script, one step per call.

    A step is a string (returned as content), a RawResponse, or an
    exception instance (raised). The last step repeats once the script
    runs out. ``delay`` is slept before every step.
    """

    def __init__(
        self,
        identifier: str,
        script: list | None = None,
        *,
        delay: float = 0.0,
        cancellable: bool = True,
    ) -> None:
        self._identifier = identifier
        self._script = list(script) if script else ["OK."]
        self._delay = delay
        self._cancellable = cancellable
        self.calls = 0
        self.completed = 0
        self.queries: list[Query] = []

    @property
    def identifier(self) -> str:
        return self._identifier

    @property
    def capabilities(self) -> LeafCapabilities:
        return LeafCapabilities(max_tokens=512)

    @property
    def supports_cancellation(self) -> bool:
        return self._cancellable

    async def invoke(self, query: Query) -> RawResponse:
        self.calls += 1
        self.queries.append(query)
        step = self._script[min(self.calls, len(self._script)) - 1]
        if self._delay:
            await asyncio.sleep(self._delay)
        self.completed += 1
        if isinstance(step, BaseException):
            raise step
        if isinstance(step, RawResponse):
            return step
        return RawResponse(
            content=step,
            token_usage=TokenUsage(prompt_tokens=10, completion_tokens=len(step.split())),
        )


@pytest.fixture()
def make_leaf():
    """Factory for ScriptedLeaf instances."""

    def _make(
        identifier: str = "test/leaf",
        *script,
        delay: float = 0.0,
        cancellable: bool = True,
    ) -> ScriptedLeaf:
        return ScriptedLeaf(identifier, list(script), delay=delay, cancellable=cancellable)

    return _make


@pytest.fixture()
def recorded_sleep():
    """A sleep replacement that records delays instead of waiting."""
    delays: list[float] = []

    async def _sleep(delay: float) -> None:
        delays.append(delay)

    _sleep.delays = delays
    return _sleep
