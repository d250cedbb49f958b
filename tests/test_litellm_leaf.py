"""Tests for chorus.providers.litellm_leaf — LiteLLM adapter."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import litellm
import pytest

from chorus.errors import ErrorKind, LeafError
from chorus.providers.litellm_leaf import LiteLLMLeaf, classify_litellm_error
from chorus.schemas.config import LeafConfig
from chorus.schemas.messages import ChatMessage, RawResponse, Role

# Shorthand for the mock target
_ACOMP = "chorus.providers.litellm_leaf.litellm.acompletion"


# ── Helpers ───────────────────────────────────────────────────


def _make_config(**overrides) -> LeafConfig:
    """Create a LeafConfig with sensible defaults."""
    defaults = {
        "provider": "anthropic",
        "model": "anthropic/claude-sonnet-4-5-20250929",
        "display_name": "Claude Sonnet 4.5",
        "api_key_env": "ANTHROPIC_API_KEY",
        "max_tokens": 2048,
        "cost_input": 3.00,
        "cost_output": 15.00,
    }
    defaults.update(overrides)
    return LeafConfig(**defaults)


def _make_response(
    content: str | None = "Hello",
    prompt_tokens: int = 100,
    completion_tokens: int = 50,
) -> SimpleNamespace:
    """Build a mock LiteLLM ModelResponse-like object."""
    message = SimpleNamespace(content=content, tool_calls=None)
    choice = SimpleNamespace(message=message, finish_reason="stop", index=0)
    usage = SimpleNamespace(
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        total_tokens=prompt_tokens + completion_tokens,
    )
    return SimpleNamespace(choices=[choice], usage=usage, model="claude-sonnet-4-5-20250929")


def _provider_error(cls: type[Exception]) -> Exception:
    return cls(message="provider said no", llm_provider="anthropic", model="claude")


# ── Properties ────────────────────────────────────────────────


class TestProperties:
    def test_identifier_from_routed_model(self):
        assert LiteLLMLeaf(_make_config()).identifier == "anthropic/claude-sonnet-4-5-20250929"

    def test_identifier_from_bare_model(self):
        leaf = LiteLLMLeaf(_make_config(provider="openai", model="gpt-4o"))
        assert leaf.identifier == "openai/gpt-4o"

    def test_capabilities(self):
        leaf = LiteLLMLeaf(_make_config(max_tokens=512, supports_streaming=True))
        assert leaf.capabilities.max_tokens == 512
        assert leaf.capabilities.supports_streaming is True

    def test_supports_cancellation(self):
        assert LiteLLMLeaf(_make_config()).supports_cancellation is True


# ── Invoke ────────────────────────────────────────────────────


class TestInvoke:
    async def test_prompt_is_sent_as_user_message(self):
        leaf = LiteLLMLeaf(_make_config())
        mock = AsyncMock(return_value=_make_response("Hi there."))

        with patch(_ACOMP, mock):
            raw = await leaf.invoke("Say hi")

        assert isinstance(raw, RawResponse)
        assert raw.content == "Hi there."
        assert raw.token_usage.prompt_tokens == 100
        assert raw.token_usage.completion_tokens == 50
        kwargs = mock.call_args.kwargs
        assert kwargs["model"] == "anthropic/claude-sonnet-4-5-20250929"
        assert kwargs["messages"] == [{"role": "user", "content": "Say hi"}]
        assert kwargs["max_tokens"] == 2048

    async def test_conversation_is_forwarded(self):
        leaf = LiteLLMLeaf(_make_config())
        mock = AsyncMock(return_value=_make_response())
        conversation = [
            ChatMessage(role=Role.SYSTEM, content="Be brief."),
            ChatMessage(role=Role.USER, content="Hi"),
        ]

        with patch(_ACOMP, mock):
            await leaf.invoke(conversation)

        assert mock.call_args.kwargs["messages"] == [
            {"role": "system", "content": "Be brief."},
            {"role": "user", "content": "Hi"},
        ]

    async def test_api_key_from_environment(self):
        mock = AsyncMock(return_value=_make_response())
        with patch.dict("os.environ", {"ANTHROPIC_API_KEY": "sk-test"}):
            leaf = LiteLLMLeaf(_make_config())

        with patch(_ACOMP, mock):
            await leaf.invoke("q")

        assert mock.call_args.kwargs["api_key"] == "sk-test"

    async def test_no_api_key_when_env_missing(self):
        mock = AsyncMock(return_value=_make_response())
        leaf = LiteLLMLeaf(_make_config(api_key_env="CHORUS_TEST_UNSET_KEY"))

        with patch(_ACOMP, mock):
            await leaf.invoke("q")

        assert "api_key" not in mock.call_args.kwargs

    async def test_api_base_forwarded(self):
        mock = AsyncMock(return_value=_make_response())
        leaf = LiteLLMLeaf(_make_config(api_base="http://localhost:4000"))

        with patch(_ACOMP, mock):
            await leaf.invoke("q")

        assert mock.call_args.kwargs["api_base"] == "http://localhost:4000"

    async def test_null_content_becomes_empty(self):
        leaf = LiteLLMLeaf(_make_config())
        with patch(_ACOMP, AsyncMock(return_value=_make_response(content=None))):
            raw = await leaf.invoke("q")
        assert raw.content == ""

    async def test_missing_usage_counts_zero(self):
        leaf = LiteLLMLeaf(_make_config())
        response = _make_response()
        response.usage = None
        with patch(_ACOMP, AsyncMock(return_value=response)):
            raw = await leaf.invoke("q")
        assert raw.token_usage.total_tokens == 0

    async def test_empty_choices_is_malformed(self):
        leaf = LiteLLMLeaf(_make_config())
        response = SimpleNamespace(choices=[], usage=None)

        with patch(_ACOMP, AsyncMock(return_value=response)), pytest.raises(LeafError) as exc_info:
            await leaf.invoke("q")

        assert exc_info.value.kind == ErrorKind.MALFORMED_RESPONSE
        assert exc_info.value.leaf_id == leaf.identifier

    async def test_provider_error_is_classified(self):
        leaf = LiteLLMLeaf(_make_config())
        error = _provider_error(litellm.RateLimitError)

        with patch(_ACOMP, AsyncMock(side_effect=error)), pytest.raises(LeafError) as exc_info:
            await leaf.invoke("q")

        assert exc_info.value.kind == ErrorKind.RATE_LIMIT
        assert exc_info.value.retryable is True
        assert exc_info.value.__cause__ is error


# ── Error classification ──────────────────────────────────────


class TestClassifyLiteLLMError:
    @pytest.mark.parametrize(
        ("cls", "kind"),
        [
            (litellm.AuthenticationError, ErrorKind.AUTHENTICATION),
            (litellm.RateLimitError, ErrorKind.RATE_LIMIT),
            (litellm.BadRequestError, ErrorKind.BAD_REQUEST),
            (litellm.ServiceUnavailableError, ErrorKind.SERVER_ERROR),
            (litellm.APIConnectionError, ErrorKind.NETWORK),
            (litellm.Timeout, ErrorKind.TIMEOUT),
        ],
    )
    def test_provider_exceptions(self, cls, kind):
        assert classify_litellm_error(_provider_error(cls)) == kind

    def test_builtin_exceptions(self):
        assert classify_litellm_error(TimeoutError()) == ErrorKind.TIMEOUT
        assert classify_litellm_error(ConnectionRefusedError()) == ErrorKind.NETWORK
        assert classify_litellm_error(RuntimeError("odd")) == ErrorKind.OTHER
