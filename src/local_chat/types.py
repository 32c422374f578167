"""Shared data types for local-chat."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------

class ChatRole(enum.Enum):
    """Author of a chat message."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"

    @classmethod
    def parse(cls, value: str | ChatRole) -> ChatRole:
        """Return the role for *value*, ignoring case."""
        if isinstance(value, ChatRole):
            return value
        return cls(str(value).strip().lower())


@dataclass(frozen=True)
class ChatMessage:
    """A single immutable chat message."""

    role: ChatRole
    text: str = ""

    @classmethod
    def system(cls, text: str) -> ChatMessage:
        return cls(ChatRole.SYSTEM, text)

    @classmethod
    def user(cls, text: str) -> ChatMessage:
        return cls(ChatRole.USER, text)

    @classmethod
    def assistant(cls, text: str) -> ChatMessage:
        return cls(ChatRole.ASSISTANT, text)


# ---------------------------------------------------------------------------
# Options / responses
# ---------------------------------------------------------------------------

DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_OUTPUT_TOKENS = 1000


@dataclass(frozen=True)
class ChatOptions:
    """Generation parameters passed through to the backend."""

    temperature: float = DEFAULT_TEMPERATURE
    max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS


@dataclass(frozen=True)
class ChatResponse:
    """Result of a chat call: an ordered tuple of messages."""

    messages: tuple[ChatMessage, ...] = field(default_factory=tuple)

    @classmethod
    def from_text(cls, text: str) -> ChatResponse:
        return cls((ChatMessage.assistant(text),))

    @property
    def text(self) -> str:
        """Text of the final message, or ``""`` for an empty response."""
        if not self.messages:
            return ""
        return self.messages[-1].text

    def __str__(self) -> str:
        return self.text


@dataclass(frozen=True)
class ChatResponseUpdate:
    """One fragment of a streamed response."""

    text: str
    role: ChatRole = ChatRole.ASSISTANT
