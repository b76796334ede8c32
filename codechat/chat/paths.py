"""History path helpers for the chat engine."""

from __future__ import annotations

from pathlib import Path


def _default_history_path() -> Path:
    """Return default location for persisted chat history."""
    return Path.home() / ".codechat" / "chat_history.sqlite"


def _normalize_history_path(path: Path | str) -> Path:
    """Expand user references and coerce *path* into :class:`Path`."""
    return Path(path).expanduser()


def normalize_context_id(context_id: Path | str) -> str:
    """Return the storage key used for *context_id* (usually a file path)."""
    if isinstance(context_id, Path):
        return context_id.expanduser().resolve().as_posix()
    return str(context_id)


__all__ = [
    "_default_history_path",
    "_normalize_history_path",
    "normalize_context_id",
]
