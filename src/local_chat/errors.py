"""Exception hierarchy for local-chat."""

from __future__ import annotations


class ChatError(RuntimeError):
    """Base exception for chat failures."""


class InvalidRequest(ChatError):
    """The caller supplied an empty or malformed message sequence."""


class ConfigError(ChatError):
    """Required startup configuration is missing."""


class BackendError(ChatError):
    """The language-model server could not produce a completion.

    ``kind`` is one of:
      transport - the endpoint could not be reached (timeout, refused, DNS)
      status    - the server answered with a non-2xx status
      parse     - a 2xx body that is not the expected JSON structure
    """

    TRANSPORT = "transport"
    STATUS = "status"
    PARSE = "parse"

    def __init__(
        self,
        kind: str,
        message: str,
        *,
        status: int | None = None,
        body: str | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.status = status
        self.body = body

    @classmethod
    def from_status(cls, status: int, body: str) -> BackendError:
        return cls(
            cls.STATUS,
            f"LLM request failed: {status} - {body}",
            status=status,
            body=body,
        )

    @classmethod
    def transport(cls, exc: Exception) -> BackendError:
        return cls(cls.TRANSPORT, f"LLM endpoint unreachable: {exc}")

    @classmethod
    def parse(cls, detail: str, body: str | None = None) -> BackendError:
        return cls(cls.PARSE, f"LLM response could not be parsed: {detail}", body=body)
