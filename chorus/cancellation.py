"""Cooperative cancellation token shared by the leaf calls of one fan-out."""

from __future__ import annotations

import asyncio


class CancellationToken:
    """One-shot signal telling in-flight leaf calls to stop.

    A leaf call that honours the token is cancelled; one that cannot be
    interrupted keeps running and has its result dropped.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason = ""

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    def cancel(self, reason: str = "") -> None:
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    async def wait(self) -> None:
        """Suspend until the token is cancelled."""
        await self._event.wait()
