"""Consensus negotiation: iterative rounds until the leaves agree."""

from chorus.consensus.builder import ConsensusBuilder
from chorus.consensus.similarity import (
    Similarity,
    agreement_matrix,
    mean_agreement,
    token_overlap,
)

__all__ = [
    "ConsensusBuilder",
    "Similarity",
    "agreement_matrix",
    "mean_agreement",
    "token_overlap",
]
