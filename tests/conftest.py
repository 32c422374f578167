"""Shared fakes for local-chat tests."""

from __future__ import annotations

from typing import Any, Sequence

import pytest

from local_chat.errors import BackendError
from local_chat.types import ChatMessage, ChatOptions, ChatResponse


class FakeBackend:
    """Capability that records calls and returns a canned reply (or raises)."""

    def __init__(
        self,
        reply: str = "default response",
        error: Exception | None = None,
    ) -> None:
        self.reply = reply
        self.error = error
        self.calls: list[tuple[tuple[ChatMessage, ...], ChatOptions | None]] = []

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def invoke(
        self,
        messages: Sequence[ChatMessage],
        options: ChatOptions | None = None,
    ) -> ChatResponse:
        self.calls.append((tuple(messages), options))
        if self.error is not None:
            raise self.error
        return ChatResponse.from_text(self.reply)


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def server_error() -> BackendError:
    return BackendError.from_status(500, "oops")


class RecordingCollector:
    """ObservabilityCollector that keeps every event in a list."""

    def __init__(self) -> None:
        self.events: list[tuple[Any, ...]] = []

    def start_span(self, name, tags):
        self.events.append(("start", name, dict(tags)))
        return name

    def end_span(self, span, tags, error=None):
        self.events.append(("end", span, dict(tags), error))

    def add_counter(self, name, value, tags):
        self.events.append(("counter", name, value, dict(tags)))

    def record_histogram(self, name, value, tags):
        self.events.append(("histogram", name, value, dict(tags)))

    def of_kind(self, kind: str) -> list[tuple[Any, ...]]:
        return [e for e in self.events if e[0] == kind]
