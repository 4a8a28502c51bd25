# service/logging_utils.py
"""
Daily JSONL logs for the crawler service.

Two streams, activity and error, each written to
LOG_DIR/<prefix>-YYYY-MM-DD.jsonl. Every line is a redacted copy of the
caller's record plus a `_meta` block (host, pid). Lines are appended with a
single O_APPEND write so the scheduler pool, the HTTP trigger and the CLI can
share a file.

Environment, read at write time:
  LOG_DIR                 default /app/local/logs
  ACTIVITY_LOG_PREFIX     default "activity"
  ERROR_LOG_PREFIX        default "error"
  ACTIVITY_LOG_MAX_BYTES  rotate a file once it reaches this size (0 = never)
"""

from __future__ import annotations

import datetime as _dt
import json
import os
import re
import socket
from typing import Any

REDACTED = "***REDACTED***"

_SECRET_KEY_RE = re.compile(r"password|token|(?:api|app)_?key|secret|authorization|cookie", re.IGNORECASE)
_BEARER_RE = re.compile(r"\b(bearer)\s+\S+", re.IGNORECASE)

_STREAMS = {
    "activity": ("ACTIVITY_LOG_PREFIX", "activity"),
    "error": ("ERROR_LOG_PREFIX", "error"),
}

_HOST_META = {"host": socket.gethostname(), "pid": os.getpid()}


def write_activity_log(record: dict[str, Any]) -> None:
    """Append one activity record. Raises OSError/TypeError on failure; `record` is not mutated."""
    _append("activity", record)


def write_error_log(record: dict[str, Any]) -> None:
    _append("error", record)


def get_activity_log_path() -> str:
    return _path_for("activity")


def get_error_log_path() -> str:
    return _path_for("error")


def redact(record: Any) -> Any:
    """
    Deep copy of `record` with secret-looking keys masked and bearer tokens
    in string values replaced. Dicts, lists and tuples are walked.
    """
    if isinstance(record, dict):
        return {
            k: REDACTED if isinstance(k, str) and _SECRET_KEY_RE.search(k) else redact(v)
            for k, v in record.items()
        }
    if isinstance(record, (list, tuple)):
        return [redact(v) for v in record]
    if isinstance(record, str):
        return _BEARER_RE.sub(rf"\1 {REDACTED}", record)
    return record


def _path_for(stream: str) -> str:
    env_name, default_prefix = _STREAMS[stream]
    prefix = os.getenv(env_name, default_prefix)
    day = _dt.date.today().isoformat()
    return os.path.join(os.getenv("LOG_DIR", "/app/local/logs"), f"{prefix}-{day}.jsonl")


def _rotation_limit() -> int:
    raw = os.getenv("ACTIVITY_LOG_MAX_BYTES", "")
    return int(raw) if raw.strip().isdigit() else 0


def _maybe_rotate(path: str) -> None:
    """Size rotation: move the full file aside as <path>.<timestamp>."""
    limit = _rotation_limit()
    if not limit or not os.path.exists(path) or os.path.getsize(path) < limit:
        return
    stamp = _dt.datetime.now().strftime("%Y%m%d-%H%M%S")
    try:
        os.replace(path, f"{path}.{stamp}")
    except FileNotFoundError:
        pass  # another writer rotated it first


def _append(stream: str, record: dict[str, Any]) -> None:
    clean = redact(record)
    caller_meta = clean.get("_meta") if isinstance(clean.get("_meta"), dict) else {}
    clean["_meta"] = {**caller_meta, **_HOST_META}
    # default=str: enums and datetimes in records
    line = json.dumps(clean, ensure_ascii=False, separators=(",", ":"), default=str) + "\n"

    path = _path_for(stream)
    os.makedirs(os.path.dirname(path), exist_ok=True)
    _maybe_rotate(path)
    fd = os.open(path, os.O_CREAT | os.O_APPEND | os.O_WRONLY, 0o644)
    try:
        os.write(fd, line.encode("utf-8"))
    finally:
        os.close(fd)
