"""Extract assistant text from complete responses and stream events."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from .errors import MalformedResponseError

__all__ = [
    "extract_error_detail",
    "extract_stream_fragment",
    "is_stream_stop",
    "parse_completion",
]


def _first(value: Any) -> Any:
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes)) and value:
        return value[0]
    return None


def _get(mapping: Any, key: str) -> Any:
    if isinstance(mapping, Mapping):
        return mapping.get(key)
    return None


def extract_stream_fragment(event: Any, message_format: str) -> str | None:
    """Return the incremental text carried by one decoded stream *event*.

    OpenAI-style chunks carry it in ``choices[0].delta.content``; Anthropic
    events in ``delta.text`` of ``content_block_delta`` events.  Any other
    shape yields ``None``.
    """
    if message_format == "anthropic":
        if _get(event, "type") != "content_block_delta":
            return None
        text = _get(_get(event, "delta"), "text")
    else:
        choice = _first(_get(event, "choices"))
        text = _get(_get(choice, "delta"), "content")
    return text if isinstance(text, str) and text else None


def is_stream_stop(event: Any, message_format: str) -> bool:
    """Return ``True`` when *event* marks the end of an Anthropic stream."""
    return message_format == "anthropic" and _get(event, "type") == "message_stop"


def parse_completion(data: Any, message_format: str) -> str:
    """Return the content of a complete, non-streamed response document."""
    if message_format == "anthropic":
        text = _get(_first(_get(data, "content")), "text")
    else:
        message = _get(_first(_get(data, "choices")), "message")
        text = _get(message, "content")
    if not isinstance(text, str) or not text:
        raise MalformedResponseError("Invalid response format from API")
    return text


def extract_error_detail(data: Any) -> str | None:
    """Return the structured ``error`` description of an error body, if any."""
    error = _get(data, "error")
    if isinstance(error, Mapping):
        detail = error.get("message") or error.get("type") or error.get("code")
        return str(detail) if detail else None
    if error:
        return str(error)
    return None
