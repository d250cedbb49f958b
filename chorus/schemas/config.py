"""Configuration schemas for the orchestrator and the leaf registry.

Loaded from defaults.toml and leaves.toml and overridden by CLI flags.
Every threshold and keyword list the engine uses lives here rather than
as a constant buried in the algorithm.
"""

from __future__ import annotations

import math

from pydantic import BaseModel, Field, model_validator

from chorus.errors import ConfigurationError
from chorus.schemas.retry import RetryPolicy
from chorus.schemas.strategy import DEFAULT_AGREEMENT_THRESHOLD, DEFAULT_MAX_ROUNDS

# Words that mark a prompt as factual or contested
DEFAULT_CONTESTED_KEYWORDS: tuple[str, ...] = (
    "fact",
    "facts",
    "factual",
    "true",
    "false",
    "accurate",
    "correct",
    "verify",
    "evidence",
    "proof",
    "prove",
    "controversial",
    "contested",
    "disputed",
    "debate",
    "versus",
    "vs",
    "should",
    "best",
    "compare",
    "statistics",
    "calculate",
    "how many",
    "when did",
    "who was",
    "is it true",
)


def check_priors(priors: dict[str, float] | None, parameter: str = "leaf_priors") -> None:
    """Reject negative or non-finite leaf priors.

    Raises:
        ConfigurationError: Naming the first offending leaf.
    """
    for leaf_id, prior in (priors or {}).items():
        if not math.isfinite(prior) or prior < 0:
            raise ConfigurationError(
                f"prior for {leaf_id} must be a finite number >= 0, got {prior}",
                parameter=parameter,
            )


class LeafConfig(BaseModel):
    """Configuration for one leaf in the registry.

    Loaded from leaves.toml. Provides the LiteLLM routing information,
    capability flags, token prices, and the static trust prior.
    """

    provider: str = Field(description="Provider identifier (e.g. 'anthropic', 'openai')")
    model: str = Field(description="LiteLLM model identifier")
    display_name: str = Field(default="", description="Human-friendly name for CLI output")
    api_key_env: str = Field(default="", description="Environment variable holding the API key")
    api_base: str = Field(default="", description="Custom API base URL (empty = provider default)")
    max_tokens: int = Field(default=1024, gt=0, description="Maximum output tokens per call")
    supports_streaming: bool = Field(default=False, description="Whether streaming is available")
    cost_input: float = Field(default=0.0, ge=0.0, description="USD per 1M input tokens")
    cost_output: float = Field(default=0.0, ge=0.0, description="USD per 1M output tokens")
    prior: float = Field(
        default=1.0, ge=0.0, allow_inf_nan=False,
        description="Static trust multiplier for scoring",
    )

    @property
    def identifier(self) -> str:
        """Stable leaf identifier.

        LiteLLM model strings that already carry a route prefix
        ('anthropic/claude-...', 'gemini/gemini-...') are used as-is;
        bare model names are prefixed with the provider.
        """
        if "/" in self.model:
            return self.model
        return f"{self.provider}/{self.model}"


class ScoringConfig(BaseModel):
    """Parameters of the confidence scorer."""

    specificity_cap: int = Field(
        default=200, gt=0, description="Token count beyond which length stops adding score"
    )
    completeness_weight: float = Field(default=0.4, ge=0.0, description="Weight of completeness")
    specificity_weight: float = Field(default=0.6, ge=0.0, description="Weight of specificity")
    leaf_priors: dict[str, float] = Field(
        default_factory=dict, description="Leaf id -> static trust multiplier (default 1.0)"
    )

    @model_validator(mode="after")
    def _check_weights(self) -> ScoringConfig:
        if self.completeness_weight + self.specificity_weight <= 0:
            raise ConfigurationError(
                "completeness_weight and specificity_weight must not both be zero",
                parameter="scoring",
            )
        check_priors(self.leaf_priors)
        return self


class FusionConfig(BaseModel):
    """Parameters of the response fusion engine."""

    inclusion_threshold: float = Field(
        default=0.15, ge=0.0, le=1.0,
        description="Minimum normalised weight for a non-primary outcome to be included",
    )
    corroboration_threshold: float = Field(
        default=0.5, ge=0.0, le=1.0,
        description="Similarity to the primary at or above which a note corroborates",
    )
    excerpt_chars: int = Field(
        default=280, gt=0, description="Maximum characters quoted from a non-primary outcome"
    )


class ConsensusDefaults(BaseModel):
    """Defaults used when the consensus strategy is chosen implicitly."""

    max_rounds: int = Field(default=DEFAULT_MAX_ROUNDS, ge=1, description="Default round cap")
    agreement_threshold: float = Field(
        default=DEFAULT_AGREEMENT_THRESHOLD, ge=0.0, le=1.0,
        description="Default convergence threshold",
    )
    excerpt_leaders: int = Field(
        default=3, ge=1, description="Leading answers quoted into the next round's prompt"
    )
    excerpt_chars: int = Field(
        default=400, gt=0, description="Maximum characters quoted per leading answer"
    )


class AdaptivePolicy(BaseModel):
    """Inputs of the adaptive strategy decision."""

    contested_keywords: list[str] = Field(
        default_factory=lambda: list(DEFAULT_CONTESTED_KEYWORDS),
        description="Keywords flagging a factual or contested prompt",
    )
    max_consensus_prompt_chars: int = Field(
        default=4000, gt=0,
        description="Prompts longer than this are never routed to consensus",
    )
    min_consensus_leaves: int = Field(
        default=3, ge=2, description="Leaves needed before consensus is considered"
    )


class CacheConfig(BaseModel):
    """Parameters of the in-memory response cache."""

    enabled: bool = Field(default=True, description="Whether responses are cached")
    capacity: int = Field(default=1000, gt=0, description="Maximum cached responses")
    ttl_seconds: float = Field(default=3600.0, gt=0, description="Entry lifetime in seconds")


class OrchestratorConfig(BaseModel):
    """Top-level configuration of an Orchestrator."""

    default_deadline: float = Field(
        default=60.0, gt=0, description="Deadline in seconds when the caller gives none"
    )
    leaf_timeout: float = Field(
        default=30.0, gt=0, description="Timeout in seconds for a single leaf attempt"
    )
    retry: RetryPolicy = Field(default_factory=RetryPolicy, description="Backoff for leaf calls")
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    fusion: FusionConfig = Field(default_factory=FusionConfig)
    consensus: ConsensusDefaults = Field(default_factory=ConsensusDefaults)
    adaptive: AdaptivePolicy = Field(default_factory=AdaptivePolicy)
    cache: CacheConfig = Field(default_factory=CacheConfig)
