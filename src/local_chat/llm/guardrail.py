"""Keyword guardrail middleware.

Blocks requests whose latest user message contains a forbidden keyword
(without calling the model) and redacts model output that contains one.
A blocked turn is a normal response carrying the redaction text, not an error.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from local_chat.config import DEFAULT_FORBIDDEN_KEYWORDS, DEFAULT_REDACTION
from local_chat.types import ChatResponse

from .middleware import ChatRequest, NextFn

_logger = logging.getLogger(__name__)


def find_keyword(text: str, keywords: list[str]) -> str | None:
    """Return the first keyword found in *text* (case-insensitive), if any."""
    lower = text.lower()
    for kw in keywords:
        if kw and kw.lower() in lower:
            return kw
    return None


@dataclass
class GuardrailMiddleware:
    """Middleware that filters forbidden content on the way in and out.

    Parameters
    ----------
    keywords:
        Forbidden substrings, matched case-insensitively; first match wins.
    redaction:
        Text returned in place of blocked or redacted content.
    """

    keywords: list[str] = field(
        default_factory=lambda: list(DEFAULT_FORBIDDEN_KEYWORDS),
    )
    redaction: str = DEFAULT_REDACTION

    async def process(
        self,
        request: ChatRequest,
        next_fn: NextFn,
    ) -> ChatResponse:
        """Short-circuit on a forbidden prompt, otherwise redact the reply."""
        user_msg = request.last_user_message()
        if user_msg is not None:
            hit = find_keyword(user_msg.text, self.keywords)
            if hit is not None:
                _logger.warning("Guardrail blocked request (keyword=%r)", hit)
                request.metadata["guardrail"] = {"stage": "input", "keyword": hit}
                return ChatResponse.from_text(self.redaction)

        response = await next_fn(request)

        hit = find_keyword(response.text, self.keywords)
        if hit is not None:
            _logger.warning("Guardrail redacted response (keyword=%r)", hit)
            request.metadata["guardrail"] = {"stage": "output", "keyword": hit}
            return ChatResponse.from_text(self.redaction)
        return response
