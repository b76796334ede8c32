"""JSON serialisation helpers."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

_TRUNCATION_SUFFIX = "... (truncated)"


def truncate_text(text: str, limit: int | None) -> str:
    """Return *text* clipped to *limit* characters with a visible marker."""
    if limit is None or limit <= 0 or len(text) <= limit:
        return text
    return text[:limit] + _TRUNCATION_SUFFIX


def make_json_safe(
    value: Any,
    *,
    default: Callable[[Any], str] | None = None,
    max_string_length: int | None = None,
) -> Any:
    """Return a structure compatible with :func:`json.dumps`.

    Mappings get string keys, tuples and sets become lists and anything else
    that JSON cannot represent is rendered through *default* (``repr`` unless
    given).  Strings longer than *max_string_length* are truncated.
    """

    if default is None:
        default = repr

    def _convert(item: Any) -> Any:
        if isinstance(item, Mapping):
            return {
                key if isinstance(key, str) else str(key): _convert(val)
                for key, val in item.items()
            }
        if isinstance(item, (list, tuple)):
            return [_convert(val) for val in item]
        if isinstance(item, (set, frozenset)):
            converted = [_convert(val) for val in item]
            try:
                converted.sort()
            except TypeError:
                pass
            return converted
        if isinstance(item, str):
            return truncate_text(item, max_string_length)
        if isinstance(item, (int, float, bool)) or item is None:
            return item
        if isinstance(item, (bytes, bytearray)):
            return truncate_text(
                bytes(item).decode("utf-8", errors="replace"), max_string_length
            )
        try:
            text = default(item)
        except Exception:
            text = f"<unserialisable {type(item).__name__}>"
        return truncate_text(str(text), max_string_length)

    return _convert(value)


__all__ = ["make_json_safe", "truncate_text"]
