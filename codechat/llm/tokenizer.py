"""Token estimates attached to prompt log events.

:mod:`tiktoken` is optional (``pip install codechat[tokens]``). Without it,
or when an encoding cannot be loaded, counts degrade to a whitespace split
and are flagged as approximate.
"""

from __future__ import annotations

import importlib
import importlib.util
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Protocol

from ..log import logger

_FALLBACK_ENCODING = "cl100k_base"
_WHITESPACE_REASON = "fallback_whitespace"


class _Encoding(Protocol):
    def encode(self, text: str, *, disallowed_special: Any = ...) -> list[int]: ...


@dataclass(frozen=True)
class TokenCountResult:
    """A token count, exact or estimated."""

    tokens: int
    approximate: bool = False
    model: str | None = None
    reason: str | None = None

    @classmethod
    def exact(cls, tokens: int, *, model: str | None = None) -> TokenCountResult:
        return cls(max(tokens, 0), False, model)

    @classmethod
    def approximate_result(
        cls, tokens: int, *, model: str | None = None, reason: str | None = None
    ) -> TokenCountResult:
        return cls(max(tokens, 0), True, model, reason)

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {"tokens": self.tokens, "approximate": self.approximate}
        for key in ("model", "reason"):
            value = getattr(self, key)
            if value:
                data[key] = value
        return data


@lru_cache(maxsize=8)
def _encoding(model: str | None) -> _Encoding | None:
    """Return the tiktoken encoding for *model*, or ``None`` if unavailable."""
    if importlib.util.find_spec("tiktoken") is None:
        return None
    tiktoken = importlib.import_module("tiktoken")
    if model:
        try:
            return tiktoken.encoding_for_model(model)
        except KeyError:
            pass
    try:
        return tiktoken.get_encoding(_FALLBACK_ENCODING)
    except (OSError, ValueError) as exc:
        # encodings are downloaded on first use
        logger.warning("tiktoken encoding unavailable: %s", exc)
        return None


def count_text_tokens(text: object, *, model: str | None = None) -> TokenCountResult:
    """Count the tokens in *text* for *model*."""
    value = "" if text is None else str(text)
    if not value:
        return TokenCountResult.exact(0, model=model)
    encoding = _encoding(model)
    if encoding is None:
        return TokenCountResult.approximate_result(
            len(value.split()), model=model, reason=_WHITESPACE_REASON
        )
    return TokenCountResult.exact(
        len(encoding.encode(value, disallowed_special=())), model=model
    )


def count_message_tokens(
    messages: Iterable[Mapping[str, Any]], *, model: str | None = None
) -> TokenCountResult:
    """Sum :func:`count_text_tokens` over the ``content`` of *messages*."""
    results = [count_text_tokens(m.get("content"), model=model) for m in messages]
    estimated = [r for r in results if r.approximate]
    return TokenCountResult(
        tokens=sum(r.tokens for r in results),
        approximate=bool(estimated),
        model=model,
        reason=estimated[-1].reason if estimated else None,
    )


__all__ = ["TokenCountResult", "count_message_tokens", "count_text_tokens"]
