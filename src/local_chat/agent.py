"""Console assistant: system instructions plus one user turn per call."""

from __future__ import annotations

import logging
from typing import Any

from local_chat.config import ChatConfig
from local_chat.llm.backend import OpenAIChatBackend
from local_chat.llm.cache import CacheMiddleware
from local_chat.llm.guardrail import GuardrailMiddleware
from local_chat.llm.middleware import Capability, ChatPipeline, ChatRequest, ComposedChat
from local_chat.llm.telemetry import ObservabilityCollector, TelemetryMiddleware
from local_chat.types import ChatMessage, ChatOptions

_logger = logging.getLogger(__name__)


class ChatAgent:
    """Sends each user turn, prefixed by the agent's instructions, through
    the composed chat capability.  Turns are independent; no history is kept.
    """

    def __init__(
        self,
        chat: ComposedChat,
        instructions: str = "",
        name: str = "Assistant",
        options: ChatOptions | None = None,
    ) -> None:
        self.chat = chat
        self.instructions = instructions
        self.name = name
        self.options = options
        self.last_metadata: dict[str, Any] = {}

    def build_messages(self, user_input: str) -> list[ChatMessage]:
        messages: list[ChatMessage] = []
        if self.instructions:
            messages.append(ChatMessage.system(self.instructions))
        messages.append(ChatMessage.user(user_input))
        return messages

    async def run(self, user_input: str) -> str:
        """Run one turn and return the assistant text."""
        request = ChatRequest(
            messages=self.build_messages(user_input),
            options=self.options,
        )
        _logger.debug("%s: running turn (%d chars)", self.name, len(user_input))
        response = await self.chat.execute(request)
        self.last_metadata = request.metadata
        return response.text

    async def close(self) -> None:
        """Close the innermost capability if it owns resources."""
        inner: Any = self.chat
        while isinstance(inner, ComposedChat):
            inner = inner.inner
        close = getattr(inner, "close", None)
        if close is not None:
            await close()


def build_agent(
    config: ChatConfig,
    backend: Capability | None = None,
    collector: ObservabilityCollector | None = None,
) -> ChatAgent:
    """Assemble backend and middleware from *config*.

    Order, outermost first: telemetry, guardrail, cache.  Telemetry therefore
    also times blocked and cached turns.
    """
    if backend is None:
        config.endpoint.validate()
        backend = OpenAIChatBackend(config.endpoint)

    pipeline = ChatPipeline(backend)
    if collector is not None:
        pipeline.use(TelemetryMiddleware(
            collector, tags={"model": config.endpoint.model},
        ))
    if config.guardrail.enabled:
        pipeline.use(GuardrailMiddleware(
            keywords=list(config.guardrail.keywords),
            redaction=config.guardrail.redaction,
        ))
    if config.cache.enabled:
        pipeline.use(CacheMiddleware(max_entries=config.cache.max_entries))

    return ChatAgent(
        pipeline.build(),
        instructions=config.agent.instructions,
        name=config.agent.name,
        options=config.agent.options,
    )
