"""Collaborator services consumed by the orchestrator: cost and cache.

Both are protocols so callers can swap in their own pricing or storage
without touching orchestration logic. The stock implementations price
tokens from the leaf registry and keep responses in a bounded in-memory
LRU with a time-to-live.
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from chorus.schemas.messages import Query, TokenUsage, as_messages

if TYPE_CHECKING:
    from chorus.schemas.config import LeafConfig
    from chorus.schemas.response import FusedResponse
    from chorus.schemas.strategy import OrchestrationStrategy

logger = logging.getLogger(__name__)


@runtime_checkable
class CostEstimator(Protocol):
    """Estimate the USD cost of one leaf call."""

    def __call__(self, token_usage: TokenUsage, leaf_id: str) -> float: ...


class RateTableCostEstimator:
    """Price calls from per-1M-token input and output rates.

    Leaves missing from the table cost 0.0.
    """

    def __init__(self, rates: dict[str, tuple[float, float]] | None = None) -> None:
        self._rates = dict(rates or {})

    @classmethod
    def from_leaf_configs(cls, configs: Iterable[LeafConfig]) -> RateTableCostEstimator:
        return cls({c.identifier: (c.cost_input, c.cost_output) for c in configs})

    def __call__(self, token_usage: TokenUsage, leaf_id: str) -> float:
        rate = self._rates.get(leaf_id)
        if rate is None:
            return 0.0
        cost_input, cost_output = rate
        return (
            token_usage.prompt_tokens * cost_input
            + token_usage.completion_tokens * cost_output
        ) / 1_000_000


@runtime_checkable
class ResponseCache(Protocol):
    """Get/put store for fused responses."""

    def get(self, key: str) -> FusedResponse | None: ...

    def put(self, key: str, response: FusedResponse) -> None: ...


class InMemoryResponseCache:
    """Bounded LRU cache whose entries expire after ``ttl_seconds``."""

    def __init__(
        self,
        capacity: int = 1000,
        ttl_seconds: float = 3600.0,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be at least 1, got {capacity}")
        self._capacity = capacity
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float, FusedResponse]] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> FusedResponse | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            stored_at, response = entry
            if self._clock() - stored_at >= self._ttl:
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return response

    def put(self, key: str, response: FusedResponse) -> None:
        with self._lock:
            self._entries[key] = (self._clock(), response)
            self._entries.move_to_end(key)
            while len(self._entries) > self._capacity:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Evicted cached response %s", evicted[:12])

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


def cache_key(query: Query, strategy: OrchestrationStrategy, leaf_ids: Iterable[str]) -> str:
    """SHA-256 over a canonical JSON encoding of the call's inputs."""
    payload = {
        "messages": [m.model_dump(mode="json") for m in as_messages(query)],
        "strategy": strategy.model_dump(mode="json"),
        "leaves": sorted(leaf_ids),
    }
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()
