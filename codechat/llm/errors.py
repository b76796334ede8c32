"""Exception types raised by the completion transport."""

from __future__ import annotations

__all__ = [
    "ChunkDecodeError",
    "LLMError",
    "MalformedResponseError",
    "StreamUnavailableError",
    "TransportError",
]


class LLMError(RuntimeError):
    """Base class for failures talking to the completion service."""


class TransportError(LLMError):
    """Raised when the service answers with a non-success status or is unreachable."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        detail: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


class StreamUnavailableError(LLMError):
    """Raised when a streaming response carries no readable body."""


class MalformedResponseError(LLMError):
    """Raised when a complete JSON response lacks the expected content field."""


class ChunkDecodeError(LLMError):
    """A single stream line could not be parsed as JSON.

    The transport logs and skips such lines; this type never escapes a stream.
    """

    def __init__(self, line: str, cause: Exception | None = None) -> None:
        super().__init__(f"Failed to decode stream chunk: {line[:120]!r}")
        self.line = line
        self.cause = cause
