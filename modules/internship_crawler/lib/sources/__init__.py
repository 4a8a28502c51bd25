# internship_crawler/sources/__init__.py
from __future__ import annotations

from .adzuna import AdzunaSource
from .base import API_INDUSTRY, ApiSource, SourceError, title_is_relevant
from .jooble import JoobleSource

SOURCES: dict[str, type[ApiSource]] = {
    AdzunaSource.name: AdzunaSource,
    JoobleSource.name: JoobleSource,
}

__all__ = [
    "API_INDUSTRY",
    "SOURCES",
    "AdzunaSource",
    "ApiSource",
    "JoobleSource",
    "SourceError",
    "title_is_relevant",
]
