"""Split assistant responses into prose and fenced code segments."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass

logger = logging.getLogger(__name__)

__all__ = [
    "FENCE",
    "CodeBlockActions",
    "CodeSegment",
    "Segment",
    "TextSegment",
    "extract_code_block",
    "join_segments",
    "segment_response",
]

FENCE = "```"

_CODE_BLOCK_RE = re.compile(r"```(?:[\w-]*\n)?([\s\S]*?)```")


@dataclass(frozen=True, slots=True)
class TextSegment:
    """Prose between code blocks."""

    value: str

    kind = "text"


@dataclass(frozen=True, slots=True)
class CodeSegment:
    """A fenced code block.

    ``value`` is the body without the language tag and surrounding blank
    lines. ``raw`` keeps the exact text found between the fences and
    ``terminated`` is ``False`` while the closing fence has not arrived yet.
    """

    language: str
    value: str
    raw: str = ""
    terminated: bool = True

    kind = "code"


Segment = TextSegment | CodeSegment


def _trim_blank_lines(text: str) -> str:
    lines = text.split("\n")
    while lines and not lines[0].strip():
        lines.pop(0)
    while lines and not lines[-1].strip():
        lines.pop()
    return "\n".join(lines)


def _code_segment(part: str, *, terminated: bool) -> CodeSegment:
    language, newline, body = part.partition("\n")
    if not newline:
        # Only the tag line has streamed in so far.
        return CodeSegment(language.strip(), "", part, terminated)
    return CodeSegment(language.strip(), _trim_blank_lines(body), part, terminated)


def segment_response(text: str) -> list[Segment]:
    """Return prose and code segments of *text* in order.

    Parts at even positions of the fence split are prose, odd ones are code.
    Empty prose parts are omitted. A trailing fence without its closing
    counterpart still yields a code segment so partial responses render.
    """
    parts = text.split(FENCE)
    last = len(parts) - 1
    segments: list[Segment] = []
    for index, part in enumerate(parts):
        if index % 2 == 0:
            if part:
                segments.append(TextSegment(part))
            continue
        segments.append(_code_segment(part, terminated=index < last))
    return segments


def join_segments(segments: Sequence[Segment]) -> str:
    """Rebuild the response text from *segments*."""
    chunks: list[str] = []
    for segment in segments:
        if isinstance(segment, CodeSegment):
            raw = segment.raw
            if not raw:
                tag = segment.language
                raw = f"{tag}\n{segment.value}\n" if segment.value else tag
            chunks.append(FENCE + raw)
            if segment.terminated:
                chunks.append(FENCE)
        else:
            chunks.append(segment.value)
    return "".join(chunks)


def extract_code_block(text: str) -> str:
    """Return the body of the first fenced block, or *text* when none exists."""
    match = _CODE_BLOCK_RE.search(text)
    return match.group(1).strip() if match else text


class CodeBlockActions:
    """Copy and apply actions for the code segments of one response.

    Actions are addressed by the position of the segment in *segments*.
    """

    def __init__(
        self,
        segments: Sequence[Segment],
        *,
        clipboard: Callable[[str], None] | None = None,
        apply_code: Callable[[str], None] | None = None,
    ) -> None:
        self._segments = list(segments)
        self._clipboard = clipboard
        self._apply_code = apply_code

    @classmethod
    def for_text(
        cls,
        text: str,
        *,
        clipboard: Callable[[str], None] | None = None,
        apply_code: Callable[[str], None] | None = None,
    ) -> CodeBlockActions:
        return cls(segment_response(text), clipboard=clipboard, apply_code=apply_code)

    @property
    def segments(self) -> list[Segment]:
        return list(self._segments)

    def code_indices(self) -> list[int]:
        """Return positions of the code segments."""
        return [
            index
            for index, segment in enumerate(self._segments)
            if isinstance(segment, CodeSegment)
        ]

    def _code_at(self, index: int) -> CodeSegment | None:
        if not 0 <= index < len(self._segments):
            return None
        segment = self._segments[index]
        return segment if isinstance(segment, CodeSegment) else None

    def copy(self, index: int) -> bool:
        """Place the code of segment *index* on the clipboard.

        Returns ``False`` without raising when nothing was copied.
        """
        segment = self._code_at(index)
        if segment is None or self._clipboard is None:
            return False
        try:
            self._clipboard(segment.value)
        except Exception:  # pragma: no cover - depends on the platform clipboard
            logger.warning("Failed to copy code block %s", index, exc_info=True)
            return False
        return True

    def apply(self, index: int) -> bool:
        """Hand the stripped code of segment *index* to the editor.

        Blank code bodies are ignored.
        """
        segment = self._code_at(index)
        if segment is None or self._apply_code is None:
            return False
        code = segment.value.strip()
        if not code:
            return False
        self._apply_code(code)
        return True
