"""Message schemas exchanged with leaves.

Defines the query shapes a leaf accepts (a bare prompt or a conversation),
the raw response a leaf returns, token accounting, and the capability
flags a leaf declares.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class Role(StrEnum):
    """Conversation roles in OpenAI message format."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ChatMessage(BaseModel):
    """A single turn of a conversation."""

    model_config = ConfigDict(frozen=True)

    role: Role = Field(description="Who authored this turn")
    content: str = Field(description="Text of the turn")


# A leaf is invoked with either a single prompt or a full conversation
Query = str | list[ChatMessage]


class TokenUsage(BaseModel):
    """Token consumption for one leaf call, or a sum over several."""

    model_config = ConfigDict(frozen=True)

    prompt_tokens: int = Field(default=0, ge=0, description="Input tokens consumed")
    completion_tokens: int = Field(default=0, ge=0, description="Output tokens generated")

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    def __add__(self, other: TokenUsage) -> TokenUsage:
        return TokenUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
        )


class RawResponse(BaseModel):
    """What a leaf returns from a successful invocation."""

    content: str = Field(description="Text produced by the model")
    token_usage: TokenUsage = Field(
        default_factory=TokenUsage, description="Token consumption for the call"
    )


class LeafCapabilities(BaseModel):
    """Capability flags a leaf declares."""

    model_config = ConfigDict(frozen=True)

    supports_streaming: bool = Field(default=False, description="Whether streaming is available")
    max_tokens: int = Field(default=1024, gt=0, description="Maximum output tokens per call")


def query_text(query: Query) -> str:
    """Return the text a query is about.

    For a conversation that is the last user turn, falling back to the
    last turn of any role.
    """
    if isinstance(query, str):
        return query
    for message in reversed(query):
        if message.role == Role.USER:
            return message.content
    return query[-1].content if query else ""


def as_messages(query: Query) -> list[ChatMessage]:
    """Normalise a query into conversation form."""
    if isinstance(query, str):
        return [ChatMessage(role=Role.USER, content=query)]
    return list(query)
