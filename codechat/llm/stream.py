"""Incremental decoding of server-sent-event style completion streams."""

from __future__ import annotations

import codecs
import re

__all__ = [
    "DATA_PREFIX",
    "DONE_SENTINEL",
    "SSELineDecoder",
    "parse_data_line",
]

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"
_LINE_BREAK = re.compile(r"\r\n|\r|\n")


class SSELineDecoder:
    """Turn raw body chunks into complete, non-blank text lines.

    The UTF-8 decoder keeps its state between :meth:`feed` calls so a
    multi-byte character split across two chunks decodes correctly.  A line
    cut by a chunk boundary is held back until its line break arrives.
    Lines may end in CRLF, LF or a bare CR; a CRLF cut between two chunks
    only yields an extra blank line, which is dropped.
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._pending = ""

    def feed(self, chunk: bytes) -> list[str]:
        """Decode *chunk* and return the lines it completes."""
        return self._split(self._decoder.decode(chunk))

    def flush(self) -> list[str]:
        """Return whatever is left once the body has ended."""
        lines = self._split(self._decoder.decode(b"", final=True))
        tail, self._pending = self._pending, ""
        if tail.strip():
            lines.append(tail)
        return lines

    def _split(self, text: str) -> list[str]:
        if not text:
            return []
        parts = _LINE_BREAK.split(self._pending + text)
        self._pending = parts.pop()
        return [line for line in parts if line.strip()]


def parse_data_line(line: str) -> str | None:
    """Return the trimmed payload of a ``data:`` line, ``None`` for other lines."""
    if not line.startswith(DATA_PREFIX):
        return None
    return line[len(DATA_PREFIX):].strip()
