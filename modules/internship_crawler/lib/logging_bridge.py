"""
Structured crawl events -> the service JSONL sink.

Every record carries "component" and "op". When the crawler runs outside the
service package the records go to stdlib logging instead.
"""
from __future__ import annotations

import logging
from typing import Any

try:
    from service import logging_utils as _sink
except ImportError:
    _sink = None

log = logging.getLogger("internship_crawler")

MASK = "***REDACTED***"
MAX_FIELD_CHARS = 2000

_SECRET_HINTS = ("password", "token", "secret", "apikey", "api_key", "app_key", "authorization", "bearer")


def _is_secret(key: Any) -> bool:
    k = str(key).lower()
    return k == "auth" or any(h in k for h in _SECRET_HINTS)


def _scrub(record: dict[str, Any]) -> dict[str, Any]:
    """Top-level pass only: mask secret-looking keys, clip very long strings."""
    out: dict[str, Any] = {}
    for key, value in record.items():
        if _is_secret(key):
            out[key] = MASK
        elif isinstance(value, str) and len(value) > MAX_FIELD_CHARS:
            out[key] = value[:MAX_FIELD_CHARS] + "..."
        else:
            out[key] = value
    return out


def _emit(writer: str, level: int, record: dict[str, Any]) -> None:
    payload = _scrub(record)
    write = getattr(_sink, writer, None)
    if write is not None:
        try:
            write(payload)
            return
        except OSError as e:
            log.warning("%s failed (%s); falling back to logging", writer, e)
    log.log(level, "%s", payload)


def activity(record: dict[str, Any]) -> None:
    _emit("write_activity_log", logging.INFO, record)


def error(record: dict[str, Any]) -> None:
    _emit("write_error_log", logging.ERROR, record)
