# internship_crawler/fetchers/__init__.py
from __future__ import annotations

from .base import BaseFetcher, FetchError
from .browser import BrowserFetcher
from .registry import all_kinds, get, register
from .static import StaticFetcher
from .stub import StubFetcher

__all__ = [
    "BaseFetcher",
    "BrowserFetcher",
    "FetchError",
    "StaticFetcher",
    "StubFetcher",
    "all_kinds",
    "get",
    "register",
]
