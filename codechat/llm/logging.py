"""Logging helpers for LLM interactions."""

from __future__ import annotations

import hashlib
from collections.abc import Mapping
from copy import deepcopy
from typing import Any

from ..telemetry import log_debug_payload, log_event
from .tokenizer import count_message_tokens

__all__ = ["log_request", "log_response", "log_stream_event"]

_PROMPT_PLACEHOLDER_TEXT = (
    "System prompt was elided by the logging system because it was logged "
    "before, but was sent to the LLM unchanged."
)


class _PromptLogState:
    """Remember system prompts already emitted to the logs."""

    def __init__(self) -> None:
        self._seen: set[str] = set()

    def register(self, text: str) -> bool:
        """Return ``True`` when *text* was logged before."""
        digest = hashlib.sha256(text.encode("utf-8")).hexdigest()
        if digest in self._seen:
            return True
        self._seen.add(digest)
        return False

    def reset(self) -> None:
        """Forget previously seen prompts (testing helper)."""
        self._seen.clear()


_PROMPT_STATE = _PromptLogState()


def _reset_prompt_log_state() -> None:
    """Reset internal cache used to de-duplicate prompt logging."""
    _PROMPT_STATE.reset()


def log_request(payload: Mapping[str, Any]) -> None:
    """Record telemetry for an outbound LLM request."""
    prepared = _prepare_request_payload(payload)
    log_debug_payload("LLM_REQUEST", prepared)
    log_event("LLM_REQUEST", prepared)


def log_response(
    payload: Mapping[str, Any], *, start_time: float | None = None, direction: str = "inbound"
) -> None:
    """Record telemetry for an inbound LLM response."""
    log_event("LLM_RESPONSE", payload, start_time=start_time)
    log_debug_payload("LLM_RESPONSE", {"direction": direction, **payload})


def log_stream_event(event: str, payload: Mapping[str, Any]) -> None:
    """Record a debug-level diagnostic about an in-flight stream."""
    log_debug_payload(event, payload)


def _prepare_request_payload(payload: Mapping[str, Any]) -> dict[str, Any]:
    """Return a deep-copied payload with repeated system prompts collapsed."""
    sanitized = deepcopy(dict(payload))
    messages = sanitized.get("messages")
    if isinstance(messages, list):
        estimate = count_message_tokens(
            [m for m in messages if isinstance(m, Mapping)],
            model=str(sanitized.get("model") or "") or None,
        )
        sanitized["estimated_prompt_tokens"] = estimate.to_dict()
        for message in messages:
            if not isinstance(message, dict) or message.get("role") != "system":
                continue
            content = message.get("content")
            if isinstance(content, str) and _PROMPT_STATE.register(content):
                message["content"] = _PROMPT_PLACEHOLDER_TEXT
    system = sanitized.get("system")
    if isinstance(system, str) and _PROMPT_STATE.register(system):
        sanitized["system"] = _PROMPT_PLACEHOLDER_TEXT
    return sanitized
