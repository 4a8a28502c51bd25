from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any
from urllib.parse import urlsplit

_WS_RE = re.compile(r"\s+")
_TRUE = frozenset({"1", "true", "t", "yes", "y", "on"})


def truthy(v: Any) -> bool:
    """Strings are matched against common yes-words; everything else uses bool()."""
    if isinstance(v, str):
        return v.strip().lower() in _TRUE
    return bool(v)


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(dt: datetime) -> str:
    """UTC ISO-8601 with a 'Z' suffix, e.g. 2025-01-01T00:00:00Z."""
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def now_iso() -> str:
    return to_iso(now_utc())


def collapse_whitespace(text: str | None) -> str:
    if not text:
        return ""
    return _WS_RE.sub(" ", text).strip()


def origin_of(url: str) -> str:
    """'https://acme.com/careers?x=1' -> 'https://acme.com'"""
    scheme, netloc, *_ = urlsplit(url)
    return f"{scheme}://{netloc}"
