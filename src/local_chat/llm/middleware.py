"""Middleware pipeline for composable chat request/response processing.

The pipeline chains middleware around a chat capability (a backend or another
composed pipeline), allowing concerns like content filtering, caching and
telemetry to be stacked declaratively without touching the backend.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Protocol, Sequence

from local_chat.types import (
    ChatMessage,
    ChatOptions,
    ChatResponse,
    ChatResponseUpdate,
    ChatRole,
)

_logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Capability protocol
# ---------------------------------------------------------------------------

class Capability(Protocol):
    """Anything that turns chat messages into a ``ChatResponse``."""

    async def invoke(
        self,
        messages: Sequence[ChatMessage],
        options: ChatOptions | None = None,
    ) -> ChatResponse:
        ...


# ---------------------------------------------------------------------------
# Request type
# ---------------------------------------------------------------------------

@dataclass
class ChatRequest:
    """Encapsulates everything needed for a single chat call.

    ``metadata`` is the out-of-band context: middleware records side-channel
    information there (guardrail verdicts, cache hits, timings) instead of
    changing the response shape.
    """

    messages: Sequence[ChatMessage]
    options: ChatOptions | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def last_user_message(self) -> ChatMessage | None:
        for msg in reversed(self.messages):
            if msg.role is ChatRole.USER:
                return msg
        return None


# ---------------------------------------------------------------------------
# Middleware protocol
# ---------------------------------------------------------------------------

# The "next" function a middleware calls to continue the chain
NextFn = Callable[[ChatRequest], Awaitable[ChatResponse]]


class Middleware(Protocol):
    """Protocol that all middleware must implement."""

    async def process(
        self,
        request: ChatRequest,
        next_fn: NextFn,
    ) -> ChatResponse:
        """Process the request, optionally modifying it, call *next_fn*, and
        optionally modify the response.

        Not calling *next_fn* short-circuits the rest of the chain.
        """
        ...


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

class ChatPipeline:
    """Builder for an ordered chain of middleware around a capability.

    Usage::

        backend = OpenAIChatBackend(config.endpoint)
        chat = (
            ChatPipeline(backend)
            .use(TelemetryMiddleware(collector))
            .use(GuardrailMiddleware(keywords))
            .build()
        )
        response = await chat.invoke([ChatMessage.user("Hello")])

    Middleware is executed in the order registered (first added = outermost).
    """

    def __init__(self, inner: Capability) -> None:
        self._inner = inner
        self._middlewares: list[Middleware] = []

    def use(self, middleware: Middleware) -> ChatPipeline:
        """Register a middleware.  Returns ``self`` for chaining."""
        self._middlewares.append(middleware)
        return self

    @property
    def middlewares(self) -> list[Middleware]:
        return list(self._middlewares)

    def build(self) -> ComposedChat:
        """Fold the registered middleware around the inner capability."""
        inner = self._inner

        async def _core(req: ChatRequest) -> ChatResponse:
            """The innermost call: delegates to the wrapped capability."""
            if isinstance(inner, ComposedChat):
                # Nested pipeline shares the caller's request and metadata
                return await inner.execute(req)
            return await inner.invoke(req.messages, req.options)

        # Build the chain from inside out (last middleware wraps the core)
        chain: NextFn = _core
        for mw in reversed(self._middlewares):
            chain = _wrap(mw, chain)

        _logger.debug(
            "Built chat pipeline: %s -> %s",
            " -> ".join(type(mw).__name__ for mw in self._middlewares) or "(empty)",
            type(inner).__name__,
        )
        return ComposedChat(chain, inner)


class ComposedChat:
    """A built pipeline.  Itself a ``Capability``, so pipelines can nest."""

    def __init__(self, chain: NextFn, inner: Capability) -> None:
        self._chain = chain
        self._inner = inner

    @property
    def inner(self) -> Capability:
        return self._inner

    async def execute(self, request: ChatRequest) -> ChatResponse:
        """Run the full middleware chain and return the final response."""
        return await self._chain(request)

    async def invoke(
        self,
        messages: Sequence[ChatMessage],
        options: ChatOptions | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> ChatResponse:
        request = ChatRequest(
            messages=tuple(messages),
            options=options,
            metadata=metadata if metadata is not None else {},
        )
        return await self.execute(request)

    async def stream(
        self,
        messages: Sequence[ChatMessage],
        options: ChatOptions | None = None,
    ) -> AsyncIterator[ChatResponseUpdate]:
        """Yield the final response as a single update.

        The whole chain runs first, so middleware sees and may rewrite the
        complete response; there is no incremental delivery.
        """
        response = await self.invoke(messages, options)
        yield ChatResponseUpdate(response.text)


def _wrap(middleware: Middleware, next_fn: NextFn) -> NextFn:
    """Create a link: a closure that calls ``middleware.process(req, next_fn)``."""

    async def _handler(request: ChatRequest) -> ChatResponse:
        return await middleware.process(request, next_fn)

    return _handler
