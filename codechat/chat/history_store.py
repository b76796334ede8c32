"""Persistence service for per-context chat histories."""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Iterable
from contextlib import closing
from pathlib import Path

from ..util.time import utc_now_iso
from .chat_entry import ChatEntry
from .paths import _default_history_path, _normalize_history_path, normalize_context_id

logger = logging.getLogger(__name__)


_SCHEMA_VERSION = 1


class HistoryStore:
    """Save and load ordered chat entries keyed by a context identifier.

    Storage failures never propagate: they are logged, ``load`` returns an
    empty list and ``save``/``clear`` become no-ops.
    """

    def __init__(self, path: Path | str | None = None) -> None:
        """Initialise store using *path* or the default persistent location."""
        self._path = self._normalize(path)

    # ------------------------------------------------------------------
    @staticmethod
    def _normalize(path: Path | str | None) -> Path:
        if path is None:
            return _default_history_path()
        return _normalize_history_path(path)

    # ------------------------------------------------------------------
    @property
    def path(self) -> Path:
        """Return the SQLite database path."""
        return self._path

    # ------------------------------------------------------------------
    def load(self, context_id: Path | str) -> list[ChatEntry]:
        """Return the entries stored for *context_id* in transcript order."""
        key = normalize_context_id(context_id)
        try:
            with closing(self._connect()) as conn:
                self._ensure_schema(conn)
                rows = conn.execute(
                    """
                    SELECT position, payload
                    FROM entries
                    WHERE context_id = ?
                    ORDER BY position
                    """,
                    (key,),
                ).fetchall()
        except (sqlite3.Error, OSError):
            logger.exception("Failed to load chat history for %s from %s", key, self._path)
            return []

        entries: list[ChatEntry] = []
        for row in rows:
            payload_raw = row["payload"]
            try:
                payload = json.loads(payload_raw)
            except (TypeError, json.JSONDecodeError):
                logger.error(
                    "Skipping corrupted chat entry for %s at position %s in %s",
                    key,
                    row["position"],
                    self._path,
                )
                continue
            if not isinstance(payload, dict):
                continue
            entries.append(ChatEntry.from_dict(payload))
        return entries

    # ------------------------------------------------------------------
    def save(self, context_id: Path | str, entries: Iterable[ChatEntry]) -> None:
        """Replace the stored history of *context_id* with *entries*."""
        key = normalize_context_id(context_id)
        payloads = [
            (key, position, json.dumps(entry.to_dict(), ensure_ascii=False))
            for position, entry in enumerate(entries)
        ]
        try:
            with closing(self._connect()) as conn:
                self._ensure_schema(conn)
                with conn:
                    conn.execute(
                        """
                        INSERT INTO histories (context_id, updated_at)
                        VALUES (?, ?)
                        ON CONFLICT(context_id) DO UPDATE SET
                            updated_at = excluded.updated_at
                        """,
                        (key, utc_now_iso()),
                    )
                    conn.execute("DELETE FROM entries WHERE context_id = ?", (key,))
                    conn.executemany(
                        """
                        INSERT INTO entries (context_id, position, payload)
                        VALUES (?, ?, ?)
                        """,
                        payloads,
                    )
        except (sqlite3.Error, OSError):
            logger.exception("Failed to persist chat history for %s to %s", key, self._path)

    # ------------------------------------------------------------------
    def clear(self, context_id: Path | str) -> None:
        """Forget the stored history of *context_id*."""
        key = normalize_context_id(context_id)
        try:
            with closing(self._connect()) as conn:
                self._ensure_schema(conn)
                with conn:
                    conn.execute("DELETE FROM histories WHERE context_id = ?", (key,))
        except (sqlite3.Error, OSError):
            logger.exception("Failed to clear chat history for %s in %s", key, self._path)

    # ------------------------------------------------------------------
    def clear_all(self) -> None:
        """Forget every stored history."""
        try:
            with closing(self._connect()) as conn:
                self._ensure_schema(conn)
                with conn:
                    conn.execute("DELETE FROM histories")
        except (sqlite3.Error, OSError):
            logger.exception("Failed to clear chat histories in %s", self._path)

    # ------------------------------------------------------------------
    def contexts(self) -> list[str]:
        """Return stored context identifiers, most recently updated first."""
        try:
            with closing(self._connect()) as conn:
                self._ensure_schema(conn)
                rows = conn.execute(
                    "SELECT context_id FROM histories ORDER BY updated_at DESC, context_id"
                ).fetchall()
        except (sqlite3.Error, OSError):
            logger.exception("Failed to list chat histories in %s", self._path)
            return []
        return [row["context_id"] for row in rows]

    # ------------------------------------------------------------------
    def _connect(self) -> sqlite3.Connection:
        path = self._path
        path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(path))
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    # ------------------------------------------------------------------
    def _ensure_schema(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS metadata (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS histories (
                context_id TEXT PRIMARY KEY,
                updated_at TEXT NOT NULL
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS entries (
                context_id TEXT NOT NULL,
                position INTEGER NOT NULL,
                payload TEXT NOT NULL,
                PRIMARY KEY (context_id, position),
                FOREIGN KEY (context_id) REFERENCES histories(context_id)
                    ON DELETE CASCADE
            )
            """
        )
        row = conn.execute(
            "SELECT value FROM metadata WHERE key = ?", ("schema_version",)
        ).fetchone()
        if row is None:
            with conn:
                conn.execute(
                    "INSERT INTO metadata (key, value) VALUES (?, ?)",
                    ("schema_version", str(_SCHEMA_VERSION)),
                )
        elif row["value"] != str(_SCHEMA_VERSION):
            raise sqlite3.DatabaseError(
                f"Unsupported chat history schema version: {row['value']!r}"
            )


__all__ = ["HistoryStore"]
