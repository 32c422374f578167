"""Async OpenAI-compatible chat backend for local LLM servers.

Issues exactly one non-streaming ``POST`` per call against the configured
chat-completions URL (LM Studio, Ollama's ``/v1`` API, llama.cpp server, ...).
There is no retry or backoff here; a middleware owns that if it is wanted.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import AsyncIterator, Sequence

import httpx

from local_chat.config import EndpointSpec
from local_chat.errors import BackendError
from local_chat.types import ChatMessage, ChatOptions, ChatResponse, ChatResponseUpdate

from .wire import build_payload, parse_completion

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BackendMetadata:
    """Describes the backend for logs and telemetry tags."""

    provider: str
    url: str
    model: str


class OpenAIChatBackend:
    """Leaf capability: one chat turn in, one assistant message out."""

    def __init__(
        self,
        endpoint: EndpointSpec,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.endpoint = endpoint
        self.metadata = BackendMetadata("LocalLLM", endpoint.url, endpoint.model)

        headers = {
            "Authorization": f"Bearer {endpoint.api_key}",
            "Content-Type": "application/json",
        }
        read_timeout = timeout or endpoint.timeout
        self._client = httpx.AsyncClient(
            headers=headers,
            timeout=httpx.Timeout(read_timeout, connect=min(30, read_timeout)),
            transport=transport,
        )

    # ------------------------------------------------------------------
    # Capability
    # ------------------------------------------------------------------

    async def invoke(
        self,
        messages: Sequence[ChatMessage],
        options: ChatOptions | None = None,
    ) -> ChatResponse:
        """Send a non-streaming chat completion request."""
        # Raises InvalidRequest before any network activity
        payload = build_payload(self.endpoint.model, messages, options)

        start = time.monotonic()
        try:
            resp = await self._client.post(self.endpoint.url, json=payload)
        except httpx.TransportError as e:
            _logger.warning("LLM endpoint %s unreachable: %s", self.endpoint.url, e)
            raise BackendError.transport(e) from e

        latency = (time.monotonic() - start) * 1000
        body = resp.text
        if not resp.is_success:
            _logger.warning(
                "LLM API returned %d after %.0fms", resp.status_code, latency,
            )
            raise BackendError.from_status(resp.status_code, body)

        content = parse_completion(body)
        _logger.debug(
            "LLM completion: %d chars in %.0fms (model=%s)",
            len(content), latency, self.endpoint.model,
        )
        return ChatResponse.from_text(content)

    async def stream(
        self,
        messages: Sequence[ChatMessage],
        options: ChatOptions | None = None,
    ) -> AsyncIterator[ChatResponseUpdate]:
        """Yield the full completion as a single update.

        Compatibility shim for streaming-shaped callers: the text comes from
        :meth:`invoke`, so there is never more than one update.
        """
        response = await self.invoke(messages, options)
        yield ChatResponseUpdate(response.text)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> OpenAIChatBackend:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
