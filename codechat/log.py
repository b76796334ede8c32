"""Logging setup for the chat engine and its command-line front end.

Everything is routed through the ``codechat`` logger. :func:`configure_logging`
attaches three handlers to it: a console handler on stderr, a rotating
plain-text file and a rotating JSON-lines file. Structured events (see
:mod:`codechat.telemetry`) carry a ``json`` attribute on their records which
the JSON formatter writes out verbatim.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

from .util.time import utc_now_iso

LOG_DIR_ENV = "CODECHAT_LOG_DIR"
_MAX_BYTES = 5 * 1024 * 1024
_BACKUPS = 5
_TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

logger = logging.getLogger("codechat")


@dataclass(frozen=True, slots=True)
class LogFiles:
    """Locations of the files written by the configured handlers."""

    directory: Path

    @property
    def text(self) -> Path:
        return self.directory / "codechat.log"

    @property
    def jsonl(self) -> Path:
        return self.directory / "codechat.jsonl"


_files: LogFiles | None = None


def _structured(record: logging.LogRecord) -> dict[str, Any] | None:
    data = getattr(record, "json", None)
    return data if isinstance(data, dict) else None


class ConsoleFormatter(logging.Formatter):
    """Short console lines.

    Records whose message is just an event name get their payload appended,
    otherwise a bare ``LLM_REQUEST`` would tell the reader nothing.
    """

    def __init__(self) -> None:
        super().__init__("%(levelname)s: %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        data = _structured(record)
        if data is None or "payload" not in data:
            return line
        if str(record.msg).strip() != str(data.get("event", "")).strip():
            return line
        return f"{line} {json.dumps(data['payload'], ensure_ascii=False, default=str)}"


class JsonFormatter(logging.Formatter):
    """Render each record as one JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": utc_now_iso(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        data = _structured(record)
        if data is not None:
            entry.update(data)
        elif getattr(record, "json", None) is not None:
            entry["data"] = record.json  # type: ignore[attr-defined]
        if record.exc_info:
            entry.setdefault("exc_info", self.formatException(record.exc_info))
        return json.dumps(entry, ensure_ascii=False, default=str)


class JsonlHandler(RotatingFileHandler):
    """Append JSON lines to *filename*, rotating at ``max_bytes``."""

    def __init__(
        self,
        filename: Path | str,
        *,
        max_bytes: int = _MAX_BYTES,
        backup_count: int = _BACKUPS,
    ) -> None:
        path = Path(filename)
        path.parent.mkdir(parents=True, exist_ok=True)
        super().__init__(
            path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        )
        self.setFormatter(JsonFormatter())


def _log_directory(log_dir: str | Path | None) -> Path:
    if log_dir is None:
        log_dir = os.environ.get(LOG_DIR_ENV) or Path.home() / ".codechat" / "logs"
    path = Path(log_dir).expanduser()
    path.mkdir(parents=True, exist_ok=True)
    return path.resolve()


def _build_handlers(
    files: LogFiles, level: int, *, console: bool
) -> list[logging.Handler]:
    handlers: list[logging.Handler] = []
    if console and sys.stderr is not None:
        stream = logging.StreamHandler()
        stream.setLevel(level)
        stream.setFormatter(ConsoleFormatter())
        handlers.append(stream)

    text = RotatingFileHandler(
        files.text, maxBytes=_MAX_BYTES, backupCount=_BACKUPS, encoding="utf-8"
    )
    text.setFormatter(logging.Formatter(_TEXT_FORMAT))
    handlers.append(text)
    handlers.append(JsonlHandler(files.jsonl))
    return handlers


def configure_logging(
    level: int = logging.INFO,
    *,
    log_dir: str | Path | None = None,
    console: bool = True,
) -> LogFiles:
    """Attach handlers to the ``codechat`` logger unless already done.

    *level* applies to the console only; files always receive debug output.
    """
    global _files

    if _files is not None and logger.handlers:
        return _files
    files = LogFiles(_log_directory(log_dir))
    for handler in _build_handlers(files, level, console=console):
        logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    _files = files
    return files


def reset_logging() -> None:
    """Detach and close the handlers installed by :func:`configure_logging`."""
    global _files

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)
    _files = None


__all__ = [
    "LOG_DIR_ENV",
    "ConsoleFormatter",
    "JsonFormatter",
    "JsonlHandler",
    "LogFiles",
    "configure_logging",
    "logger",
    "reset_logging",
]
