"""Response cache middleware.

Identical requests (same roles, texts and options) are served from an
in-memory LRU map without calling the inner capability.  Failures are never
cached.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
from collections import OrderedDict
from typing import Sequence

from local_chat.types import ChatMessage, ChatOptions, ChatResponse

from .middleware import ChatRequest, NextFn

_logger = logging.getLogger(__name__)


def fingerprint(
    messages: Sequence[ChatMessage],
    options: ChatOptions | None,
) -> str:
    """Stable SHA-256 key for a request."""
    opts = options or ChatOptions()
    canonical = json.dumps(
        {
            "messages": [[m.role.value, m.text] for m in messages],
            "temperature": opts.temperature,
            "max_tokens": opts.max_output_tokens,
        },
        sort_keys=True,
        ensure_ascii=False,
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class CacheMiddleware:
    """Middleware that memoizes responses in a bounded LRU map."""

    def __init__(self, max_entries: int = 128) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.max_entries = max_entries
        self._entries: OrderedDict[str, ChatResponse] = OrderedDict()
        self._lock = asyncio.Lock()
        self.hits = 0
        self.misses = 0

    async def process(
        self,
        request: ChatRequest,
        next_fn: NextFn,
    ) -> ChatResponse:
        key = fingerprint(request.messages, request.options)

        async with self._lock:
            cached = self._entries.get(key)
            if cached is not None:
                self._entries.move_to_end(key)
                self.hits += 1
        if cached is not None:
            _logger.debug("Cache hit %s", key[:12])
            request.metadata["cache"] = "hit"
            return cached

        request.metadata["cache"] = "miss"
        response = await next_fn(request)

        async with self._lock:
            self.misses += 1
            self._entries[key] = response
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                _logger.debug("Cache evicted %s", evicted[:12])
        return response

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()
