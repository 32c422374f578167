"""Chat backend and middleware for local-chat."""

from local_chat.llm.backend import OpenAIChatBackend
from local_chat.llm.cache import CacheMiddleware
from local_chat.llm.guardrail import GuardrailMiddleware
from local_chat.llm.middleware import (
    Capability,
    ChatPipeline,
    ChatRequest,
    ComposedChat,
    Middleware,
)
from local_chat.llm.telemetry import (
    ObservabilityCollector,
    OpenTelemetryCollector,
    TelemetryMiddleware,
)

__all__ = [
    "CacheMiddleware",
    "Capability",
    "ChatPipeline",
    "ChatRequest",
    "ComposedChat",
    "GuardrailMiddleware",
    "Middleware",
    "ObservabilityCollector",
    "OpenAIChatBackend",
    "OpenTelemetryCollector",
    "TelemetryMiddleware",
]
