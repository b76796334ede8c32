"""Helpers responsible for preparing LLM request payloads."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

from .constants import ANTHROPIC_API_VERSION, UNKNOWN_LANGUAGE
from .prompts import system_prompt_for

if TYPE_CHECKING:  # pragma: no cover - import for type checking only
    from ..chat.chat_entry import ChatEntry
    from ..settings import LLMSettings

__all__ = [
    "LLMRequestBuilder",
    "build_messages",
    "format_user_message",
    "window_history",
]

Message = dict[str, str]


def window_history(
    history: Sequence[ChatEntry], window_size: int
) -> list[ChatEntry]:
    """Return the last *window_size* entries of *history*, oldest first."""
    if window_size <= 0:
        return []
    return list(history[-window_size:])


def format_user_message(
    request: str,
    current_code: str | None,
    *,
    language: str | None = None,
    include_code_context: bool = True,
) -> str:
    """Return the final user message, embedding the code when requested."""
    if current_code is None or not include_code_context:
        return request
    lang = language or UNKNOWN_LANGUAGE
    return (
        f"The current file is in {lang}.\n"
        "\n"
        "Current code:\n"
        f"```{lang}\n"
        f"{current_code}\n"
        "```\n"
        "\n"
        f"User request: {request}\n"
        "\n"
        "Please analyze the code and respond to the request."
    )


def build_messages(
    request: str,
    current_code: str | None,
    history: Sequence[ChatEntry],
    window_size: int,
    *,
    language: str | None = None,
    include_code_context: bool = True,
) -> list[Message]:
    """Assemble the ordered message list sent upstream for *request*.

    The list starts with a system message chosen by *language*, replays the
    last *window_size* history pairs as user/assistant messages and ends with
    the current user message. Older history is dropped.
    """
    messages: list[Message] = [
        {"role": "system", "content": system_prompt_for(language)}
    ]
    for entry in window_history(history, window_size):
        messages.append({"role": "user", "content": entry.prompt})
        messages.append({"role": "assistant", "content": entry.response})
    messages.append(
        {
            "role": "user",
            "content": format_user_message(
                request,
                current_code,
                language=language,
                include_code_context=include_code_context,
            ),
        }
    )
    return messages


class LLMRequestBuilder:
    """Prepare request bodies for the configured completion endpoint."""

    def __init__(self, settings: LLMSettings) -> None:
        """Bind the request builder to explicit LLM settings."""
        from ..settings import LLMSettings  # local import to avoid cycles

        if not isinstance(settings, LLMSettings):  # pragma: no cover - defensive
            raise TypeError("settings must be an instance of LLMSettings")
        self.settings = settings

    # ------------------------------------------------------------------
    def build_payload(
        self,
        messages: Sequence[Mapping[str, Any]],
        *,
        stream: bool,
    ) -> dict[str, Any]:
        """Return the JSON body for *messages* with generation parameters."""
        if self.settings.message_format == "anthropic":
            return self._build_anthropic_payload(messages, stream=stream)
        return {
            "model": self.settings.model,
            "messages": [dict(message) for message in messages],
            "temperature": self.settings.temperature,
            "max_tokens": self.settings.max_tokens,
            "stream": stream,
        }

    def build_headers(self) -> dict[str, str]:
        """Return HTTP headers for the configured provider."""
        headers = {"Accept": "application/json, text/event-stream"}
        api_key = self.settings.api_key
        if self.settings.message_format == "anthropic":
            headers["anthropic-version"] = ANTHROPIC_API_VERSION
            if api_key:
                headers["x-api-key"] = api_key
        elif api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        return headers

    # ------------------------------------------------------------------
    def _build_anthropic_payload(
        self,
        messages: Sequence[Mapping[str, Any]],
        *,
        stream: bool,
    ) -> dict[str, Any]:
        # The Messages API takes the system prompt as a top-level field.
        system_parts = [
            str(message.get("content", ""))
            for message in messages
            if message.get("role") == "system"
        ]
        conversation = [
            dict(message) for message in messages if message.get("role") != "system"
        ]
        payload: dict[str, Any] = {
            "model": self.settings.model,
            "messages": conversation,
            "temperature": self.settings.temperature,
            "max_tokens": self.settings.max_tokens,
            "stream": stream,
        }
        if system_parts:
            payload["system"] = "\n\n".join(system_parts)
        return payload
