"""JSON wire format for OpenAI-compatible chat completions.

Request body::

    {"model": str, "messages": [{"role": str, "content": str}, ...],
     "temperature": float, "max_tokens": int}

Only ``choices[0].message.content`` is read from the response.
"""

from __future__ import annotations

import json
from typing import Any, Sequence

from local_chat.errors import BackendError, InvalidRequest
from local_chat.types import ChatMessage, ChatOptions, ChatRole


def encode_messages(messages: Sequence[ChatMessage]) -> list[dict[str, str]]:
    """Convert messages to ``[{"role", "content"}]`` with lower-case roles."""
    if not messages:
        raise InvalidRequest("At least one chat message is required")
    encoded: list[dict[str, str]] = []
    for msg in messages:
        if not isinstance(msg, ChatMessage):
            raise InvalidRequest(
                f"Expected ChatMessage, got {type(msg).__name__}",
            )
        encoded.append({"role": msg.role.value.lower(), "content": msg.text})
    return encoded


def build_payload(
    model: str,
    messages: Sequence[ChatMessage],
    options: ChatOptions | None = None,
) -> dict[str, Any]:
    """Build the request body for ``/v1/chat/completions``."""
    opts = options or ChatOptions()
    return {
        "model": model,
        "messages": encode_messages(messages),
        "temperature": opts.temperature,
        "max_tokens": opts.max_output_tokens,
    }


def decode_messages(raw: Sequence[dict[str, Any]]) -> list[ChatMessage]:
    """Parse a wire ``messages`` array back into ``ChatMessage`` objects.

    This is the server-side view of :func:`encode_messages`; fake servers in
    tests use it to inspect what the backend sent.
    """
    return [
        ChatMessage(ChatRole.parse(item["role"]), item.get("content") or "")
        for item in raw
    ]


def parse_completion(body: str) -> str:
    """Extract the assistant text from a chat-completions response body.

    A missing or null ``content`` is treated as an empty string.  Anything
    else that is not ``{"choices": [{"message": {...}}, ...]}`` raises
    ``BackendError(kind="parse")``.
    """
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, TypeError) as e:
        raise BackendError.parse(f"invalid JSON ({e})", body=body) from e

    if not isinstance(data, dict):
        raise BackendError.parse("expected a JSON object", body=body)

    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        raise BackendError.parse("missing 'choices'", body=body)
    choice = choices[0]
    if not isinstance(choice, dict):
        raise BackendError.parse("'choices[0]' is not an object", body=body)
    message = choice.get("message")
    if not isinstance(message, dict):
        raise BackendError.parse("missing 'choices[0].message'", body=body)
    content = message.get("content")
    return content if isinstance(content, str) else ""
