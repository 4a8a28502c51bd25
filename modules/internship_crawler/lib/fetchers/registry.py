from __future__ import annotations

from .base import BaseFetcher

_FETCHERS: dict[str, type[BaseFetcher]] = {}


def _normalize(kind: object) -> str:
    return kind.strip().lower() if isinstance(kind, str) else ""


def register(cls: type[BaseFetcher]) -> type[BaseFetcher]:
    """Class decorator; the class's `kind` becomes its lookup key."""
    key = _normalize(getattr(cls, "kind", None))
    if not key:
        raise ValueError(f"{cls.__name__} has no fetcher kind")
    existing = _FETCHERS.setdefault(key, cls)
    if existing is not cls:
        raise ValueError(f"fetcher kind {key!r} is taken by {existing.__name__}")
    return cls


def get(kind: str) -> type[BaseFetcher]:
    try:
        return _FETCHERS[_normalize(kind)]
    except KeyError:
        raise KeyError(f"unknown fetcher kind {kind!r}; known: {sorted(_FETCHERS)}") from None


def all_kinds() -> dict[str, type[BaseFetcher]]:
    return dict(_FETCHERS)
