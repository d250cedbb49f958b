"""Adaptive strategy selection.

A pure decision over the prompt and the number of available leaves.
First match wins:

1. fewer than 2 leaves: FirstSuccess
2. a factual or contested prompt with enough leaves: Consensus
3. anything else: WeightedFusion
"""

from __future__ import annotations

import re

from chorus.schemas.config import AdaptivePolicy, ConsensusDefaults
from chorus.schemas.messages import Query, query_text
from chorus.schemas.strategy import (
    Consensus,
    FirstSuccess,
    OrchestrationStrategy,
    WeightedFusion,
)


def is_contested(text: str, policy: AdaptivePolicy | None = None) -> bool:
    """Whether ``text`` reads as a factual or contested question.

    Keywords match on word boundaries, case-insensitively. Prompts longer
    than ``max_consensus_prompt_chars`` are never flagged.
    """
    policy = policy or AdaptivePolicy()
    if not text or len(text) > policy.max_consensus_prompt_chars:
        return False
    for keyword in policy.contested_keywords:
        pattern = r"\b" + r"\s+".join(re.escape(w) for w in keyword.split()) + r"\b"
        if re.search(pattern, text, re.IGNORECASE):
            return True
    return False


def select_strategy(
    query: Query,
    leaf_count: int,
    policy: AdaptivePolicy | None = None,
    consensus: ConsensusDefaults | None = None,
) -> OrchestrationStrategy:
    """Pick a concrete strategy. Always returns one; never has side effects."""
    policy = policy or AdaptivePolicy()
    if leaf_count < 2:
        return FirstSuccess()
    if leaf_count >= policy.min_consensus_leaves and is_contested(query_text(query), policy):
        defaults = consensus or ConsensusDefaults()
        return Consensus(
            max_rounds=defaults.max_rounds,
            agreement_threshold=defaults.agreement_threshold,
        )
    return WeightedFusion()
