# modules/internship_crawler/lib/__init__.py
from __future__ import annotations

# Importing the fetchers package registers the built-in fetcher kinds.
from . import fetchers as _fetchers  # noqa: F401
from .api_sync import sync_once
from .classifier import classify, is_internship
from .config import ApiSettings, ConfigError, Settings
from .engine import run_once
from .extractor import ExtractionError, SelectorRule, extract_postings
from .models import ClassifiedPosting, CompanyTarget, ExtractedPosting, RunStatistics

__all__ = [
    "ApiSettings",
    "ClassifiedPosting",
    "CompanyTarget",
    "ConfigError",
    "ExtractedPosting",
    "ExtractionError",
    "RunStatistics",
    "SelectorRule",
    "Settings",
    "classify",
    "extract_postings",
    "is_internship",
    "run_once",
    "sync_once",
]
