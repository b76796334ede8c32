"""Data structures describing one conversation turn."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

__all__ = ["ChatEntry"]


def _coerce_text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


@dataclass(slots=True)
class ChatEntry:
    """A user prompt and the (possibly still streaming) assistant response."""

    prompt: str
    response: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"prompt": self.prompt, "response": self.response}

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> ChatEntry:
        return cls(
            prompt=_coerce_text(payload.get("prompt")),
            response=_coerce_text(payload.get("response")),
        )
