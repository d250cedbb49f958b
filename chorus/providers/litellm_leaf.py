"""LiteLLM-backed leaf implementing the Leaf interface.

Routes a prompt or conversation to any provider through litellm's unified
acompletion API. Each invoke() is a single call: retries, timeouts and
cancellation are handled by the engine, so this adapter only translates
the response and classifies provider exceptions into LeafError kinds.
"""

from __future__ import annotations

import logging
import os

import litellm

# Suppress LiteLLM's "Give Feedback / Get Help" and "Provider List" banners
litellm.suppress_debug_info = True

from chorus.errors import ErrorKind, LeafError
from chorus.leaf import Leaf
from chorus.schemas.config import LeafConfig
from chorus.schemas.messages import (
    LeafCapabilities,
    Query,
    RawResponse,
    TokenUsage,
    as_messages,
)

logger = logging.getLogger(__name__)


def _short_error_reason(error: Exception) -> str:
    """Extract a short reason from a LiteLLM error instead of a JSON dump."""
    text = str(error).strip().splitlines()
    first = text[0] if text else type(error).__name__
    return first[:160]


def classify_litellm_error(error: Exception) -> ErrorKind:
    """Map a litellm exception to a LeafError kind.

    litellm.Timeout derives from APIConnectionError, so it is checked first.
    """
    if isinstance(error, litellm.Timeout | TimeoutError):
        return ErrorKind.TIMEOUT
    if isinstance(error, litellm.AuthenticationError):
        return ErrorKind.AUTHENTICATION
    if isinstance(error, litellm.RateLimitError):
        return ErrorKind.RATE_LIMIT
    if isinstance(error, litellm.BadRequestError | litellm.NotFoundError):
        return ErrorKind.BAD_REQUEST
    if isinstance(error, litellm.ServiceUnavailableError | litellm.InternalServerError):
        return ErrorKind.SERVER_ERROR
    if isinstance(error, litellm.APIConnectionError | ConnectionError):
        return ErrorKind.NETWORK
    return ErrorKind.OTHER


class LiteLLMLeaf(Leaf):
    """Leaf adapter powered by LiteLLM."""

    def __init__(self, config: LeafConfig) -> None:
        self._config = config
        # Resolve API key from environment
        self._api_key = os.environ.get(config.api_key_env, "") if config.api_key_env else ""

    @property
    def identifier(self) -> str:
        return self._config.identifier

    @property
    def capabilities(self) -> LeafCapabilities:
        return LeafCapabilities(
            supports_streaming=self._config.supports_streaming,
            max_tokens=self._config.max_tokens,
        )

    @property
    def config(self) -> LeafConfig:
        """The LeafConfig backing this leaf."""
        return self._config

    async def invoke(self, query: Query) -> RawResponse:
        """Send one completion request via LiteLLM.

        Raises:
            LeafError: Classified provider failure, or malformed_response
                when the provider returned no choices.
        """
        kwargs = self._build_completion_kwargs(query)
        try:
            response = await litellm.acompletion(**kwargs)
        except Exception as exc:
            kind = classify_litellm_error(exc)
            raise LeafError(
                kind, _short_error_reason(exc), leaf_id=self.identifier,
            ) from exc

        if not getattr(response, "choices", None):
            raise LeafError(
                ErrorKind.MALFORMED_RESPONSE,
                "Response contained no choices",
                leaf_id=self.identifier,
            )

        message = response.choices[0].message
        content = (message.content or "") if message else ""
        return RawResponse(content=content, token_usage=self._build_token_usage(response))

    def _build_completion_kwargs(self, query: Query) -> dict:
        """Build the kwargs dict for litellm.acompletion."""
        kwargs: dict = {
            "model": self._config.model,
            "messages": [
                {"role": m.role.value, "content": m.content} for m in as_messages(query)
            ],
            "max_tokens": self._config.max_tokens,
        }

        if self._api_key:
            kwargs["api_key"] = self._api_key

        if self._config.api_base:
            kwargs["api_base"] = self._config.api_base

        return kwargs

    def _build_token_usage(self, response: object) -> TokenUsage:
        """Build TokenUsage from the LiteLLM response usage data."""
        usage = getattr(response, "usage", None)
        prompt_tokens = getattr(usage, "prompt_tokens", 0) or 0
        completion_tokens = getattr(usage, "completion_tokens", 0) or 0
        return TokenUsage(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens)
