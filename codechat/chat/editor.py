"""Editor collaborator used as the source of code context."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)

__all__ = [
    "EXTENSION_LANGUAGES",
    "EditorBridge",
    "FileEditor",
    "FileLanguage",
    "detect_language",
]


@dataclass(frozen=True, slots=True)
class FileLanguage:
    """Language reported by the editor for the current file."""

    name: str


EXTENSION_LANGUAGES: dict[str, str] = {
    ".rs": "Rust",
    ".c": "C",
    ".h": "C",
    ".cc": "C++",
    ".cpp": "C++",
    ".hpp": "C++",
    ".go": "Go",
    ".zig": "Zig",
    ".move": "Move",
    ".ts": "TypeScript",
    ".tsx": "TypeScript",
    ".js": "JavaScript",
    ".jsx": "JavaScript",
    ".mjs": "JavaScript",
    ".py": "Python",
}


@runtime_checkable
class EditorBridge(Protocol):
    """Operations the chat engine needs from the hosting editor."""

    def get_current_code(self) -> str:  # pragma: no cover - protocol
        """Return the full text of the current file."""

    def get_current_file_language(self) -> FileLanguage | None:  # pragma: no cover - protocol
        """Return the language of the current file when known."""

    def replace_code(self, code: str) -> None:  # pragma: no cover - protocol
        """Replace the whole text of the current file with *code*."""


def detect_language(path: Path | str) -> FileLanguage | None:
    """Guess the language of *path* from its extension."""
    name = EXTENSION_LANGUAGES.get(Path(path).suffix.lower())
    if name is None:
        return None
    return FileLanguage(name)


class FileEditor:
    """Expose a file on disk through the :class:`EditorBridge` protocol."""

    def __init__(self, path: Path | str, *, encoding: str = "utf-8") -> None:
        self.path = Path(path).expanduser()
        self.encoding = encoding

    def get_current_code(self) -> str:
        """Return the file contents, or an empty string for a missing file."""
        try:
            return self.path.read_text(encoding=self.encoding)
        except FileNotFoundError:
            return ""

    def get_current_file_language(self) -> FileLanguage | None:
        return detect_language(self.path)

    def replace_code(self, code: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(code, encoding=self.encoding)
        logger.info("Replaced contents of %s (%d chars)", self.path, len(code))
