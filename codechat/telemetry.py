"""Structured events with secrets redacted.

Events are ordinary records on the ``codechat`` logger whose ``json``
attribute holds ``{"event", "payload", "size_bytes"[, "duration_ms"]}``.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Mapping
from typing import Any

from .log import logger
from .util.json import make_json_safe

SENSITIVE_KEYS = frozenset(
    {
        "api_key",
        "authorization",
        "cookie",
        "password",
        "secret",
        "token",
        "x-api-key",
    }
)

REDACTED = "[REDACTED]"


def _is_sensitive(key: Any) -> bool:
    return isinstance(key, str) and key.lower() in SENSITIVE_KEYS


def _redact(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {
            key: REDACTED if _is_sensitive(key) else _redact(item)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return type(value)(_redact(item) for item in value)
    return value


def sanitize(data: Mapping[str, Any]) -> dict[str, Any]:
    """Return a copy of *data* with sensitive keys replaced by ``[REDACTED]``."""
    return _redact(dict(data))


def _prepare(payload: Any) -> Any:
    if payload is None:
        return {}
    return make_json_safe(_redact(payload))


def log_event(
    event: str,
    payload: Mapping[str, Any] | None = None,
    *,
    start_time: float | None = None,
    level: int = logging.INFO,
) -> None:
    """Emit *event* with a redacted *payload*.

    ``size_bytes`` is the UTF-8 size of the serialised payload. When
    *start_time* (a :func:`time.monotonic` value) is given the elapsed time
    is added as ``duration_ms``.
    """
    safe = _prepare(payload)
    record: dict[str, Any] = {
        "event": event,
        "payload": safe,
        "size_bytes": len(json.dumps(safe, ensure_ascii=False).encode("utf-8")) if safe else 0,
    }
    if start_time is not None:
        record["duration_ms"] = int((time.monotonic() - start_time) * 1000)
    logger.log(level, event, extra={"json": record})


def log_debug_payload(event: str, payload: Any = None) -> None:
    """Emit *event* at debug level with its full payload in the message."""
    if not logger.isEnabledFor(logging.DEBUG):
        return
    record: dict[str, Any] = {"event": event, "level": "DEBUG"}
    message = event
    if payload is not None:
        safe = _prepare(payload)
        record["payload"] = safe
        message = f"{event} {json.dumps(safe, ensure_ascii=False)}"
    logger.debug(message, extra={"json": record})


__all__ = ["REDACTED", "SENSITIVE_KEYS", "log_debug_payload", "log_event", "sanitize"]
