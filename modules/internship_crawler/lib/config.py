from __future__ import annotations

import json
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import soupsieve

from .extractor import DEFAULT_RULES, SelectorRule
from .models import CompanyTarget
from .utils import truthy

# Shipped as package data next to main.py.
DEFAULT_COMPANIES_PATH = str(Path(__file__).resolve().parent.parent / "companies.json")
DEFAULT_SQLITE_PATH = "/app/local/state/internships.db"
DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; InternshipCrawler/1.0; +https://internship.sg/bot)"
MAX_FETCH_RETRIES = 5
API_FULL_PAGES = 5
API_TEST_PAGES = 1
MAX_API_PAGES = 10


# -----------------------------
# Exceptions
# -----------------------------
class ConfigError(ValueError):
    """Raised when provided kwargs/env cannot form a valid Settings."""


# -----------------------------
# Settings
# -----------------------------
@dataclass
class Settings:
    """
    Canonical configuration for one crawl run.

    Companies are loaded from a JSON directory file (``companies_path``),
    either ``{"companies": [...]}`` or a bare list. Test mode keeps only the
    first ``test_limit`` enabled companies.
    """

    companies_path: str = DEFAULT_COMPANIES_PATH
    _companies: list[CompanyTarget] = field(default_factory=list, repr=False)

    # Storage
    sqlite_path: str = DEFAULT_SQLITE_PATH

    # Scope
    test_mode: bool = False
    test_limit: int = 3

    # Politeness / fetching
    delay_seconds: float = 3.0
    page_timeout_s: float = 30.0
    settle_ms: int = 2000
    fetcher: str = "browser"
    user_agent: str = DEFAULT_USER_AGENT
    respect_robots: bool = True
    fetch_retries: int = 0
    backoff_seconds: float = 2.0

    # Extraction
    selector_rules: tuple[SelectorRule, ...] = DEFAULT_RULES

    # Zero-network pages for the stub fetcher: {url: html}
    stub_pages: dict[str, Any] = field(default_factory=dict, repr=False)

    # ------------- convenience -------------
    def companies(self) -> list[CompanyTarget]:
        """All companies in the directory file (enabled or not), in file order."""
        if self._companies:
            return self._companies
        self._companies = load_companies(self.companies_path)
        return self._companies

    def selected_companies(self) -> list[CompanyTarget]:
        """Enabled companies for this run, honoring test mode."""
        enabled = [c for c in self.companies() if c.enabled]
        if self.test_mode:
            return enabled[: self.test_limit]
        return enabled

    def fetcher_for(self, company: CompanyTarget) -> str:
        return (company.fetcher or self.fetcher).strip().lower()

    # ------------- constructors -------------
    @classmethod
    def from_env_and_kwargs(cls, kwargs: Mapping[str, Any] | None) -> Settings:
        """
        Build Settings from kwargs with validation.

        Expected kwargs (all optional):

            companies_path: str   # env CRAWLER_COMPANIES_PATH
            sqlite_path: str      # env SQLITE_PATH
            test_mode: bool = false
            test_limit: int = 3
            delay_seconds: float = 3.0
            page_timeout_s: float = 30
            settle_ms: int = 2000
            fetcher: "browser" | "static" | "stub"   # env CRAWLER_FETCHER
            user_agent: str
            respect_robots: bool = true
            fetch_retries: int = 0
            backoff_seconds: float = 2.0
            selector_rules: list[{selector, confidence?, label?}] | path to such a JSON file
            stub_pages: {url: html}
        """
        kw = dict(kwargs or {})

        companies_path = str(
            kw.get("companies_path") or os.getenv("CRAWLER_COMPANIES_PATH") or DEFAULT_COMPANIES_PATH
        ).strip()
        sqlite_path = str(kw.get("sqlite_path") or os.getenv("SQLITE_PATH") or DEFAULT_SQLITE_PATH)
        fetcher = str(kw.get("fetcher") or os.getenv("CRAWLER_FETCHER") or "browser").strip().lower()

        try:
            test_limit = int(kw["test_limit"]) if kw.get("test_limit") is not None else 3
            delay_seconds = float(kw["delay_seconds"]) if kw.get("delay_seconds") is not None else 3.0
            page_timeout_s = float(kw.get("page_timeout_s") or 30.0)
            settle_ms = int(kw["settle_ms"]) if kw.get("settle_ms") is not None else 2000
            fetch_retries = int(kw["fetch_retries"]) if kw.get("fetch_retries") is not None else 0
            backoff_seconds = float(kw["backoff_seconds"]) if kw.get("backoff_seconds") is not None else 2.0
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid numeric setting: {e}") from e

        respect_robots = truthy(kw["respect_robots"]) if "respect_robots" in kw else True

        stub_pages = kw.get("stub_pages") or {}
        if not isinstance(stub_pages, dict):
            raise ConfigError("'stub_pages' must be an object of {url: html}.")

        settings = cls(
            companies_path=companies_path,
            sqlite_path=sqlite_path,
            test_mode=truthy(kw.get("test_mode")),
            test_limit=test_limit,
            delay_seconds=delay_seconds,
            page_timeout_s=page_timeout_s,
            settle_ms=settle_ms,
            fetcher=fetcher,
            user_agent=str(kw.get("user_agent") or DEFAULT_USER_AGENT),
            respect_robots=respect_robots,
            fetch_retries=fetch_retries,
            backoff_seconds=backoff_seconds,
            selector_rules=_load_selector_rules(kw.get("selector_rules")),
            stub_pages=dict(stub_pages),
        )
        _validate_settings(settings)
        return settings


@dataclass
class ApiSettings:
    """
    Configuration for one job-board API sync (Adzuna, Jooble).

    A provider whose credentials are missing is skipped with a warning;
    the others still run.
    """

    sqlite_path: str = DEFAULT_SQLITE_PATH
    test_mode: bool = False
    pages: int = API_FULL_PAGES
    request_delay_s: float = 1.0
    timeout_s: float = 30.0
    user_agent: str = DEFAULT_USER_AGENT
    sources: tuple[str, ...] = ("adzuna", "jooble")

    adzuna_app_id: str | None = field(default=None, repr=False)
    adzuna_app_key: str | None = field(default=None, repr=False)
    jooble_api_key: str | None = field(default=None, repr=False)

    @classmethod
    def from_env_and_kwargs(cls, kwargs: Mapping[str, Any] | None) -> ApiSettings:
        """
        Keys (env fallback in brackets):
            sqlite_path       [SQLITE_PATH]
            test_mode: bool   -> pages defaults to 1 instead of 5
            pages: int        result pages per keyword, 1..10
            request_delay_s   pause after every API request (default 1.0)
            timeout_s         per-request timeout (default 30)
            sources           list or comma string; default adzuna,jooble
            adzuna_app_id     [ADZUNA_APP_ID]
            adzuna_app_key    [ADZUNA_APP_KEY]
            jooble_api_key    [JOOBLE_API_KEY]
        """
        kw = dict(kwargs or {})
        test_mode = truthy(kw.get("test_mode"))
        default_pages = API_TEST_PAGES if test_mode else API_FULL_PAGES
        try:
            pages = int(kw["pages"]) if kw.get("pages") is not None else default_pages
            request_delay_s = float(kw["request_delay_s"]) if kw.get("request_delay_s") is not None else 1.0
            timeout_s = float(kw.get("timeout_s") or 30.0)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid numeric setting: {e}") from e

        sources = kw["sources"] if kw.get("sources") is not None else cls.sources
        if isinstance(sources, str):
            sources = [s for s in sources.split(",") if s.strip()]
        if not isinstance(sources, (list, tuple)) or not sources:
            raise ConfigError("'sources' must be a non-empty list of provider names.")

        settings = cls(
            sqlite_path=str(kw.get("sqlite_path") or os.getenv("SQLITE_PATH") or DEFAULT_SQLITE_PATH),
            test_mode=test_mode,
            pages=pages,
            request_delay_s=request_delay_s,
            timeout_s=timeout_s,
            user_agent=str(kw.get("user_agent") or DEFAULT_USER_AGENT),
            sources=tuple(str(s).strip().lower() for s in sources),
            adzuna_app_id=_opt_str(kw.get("adzuna_app_id") or os.getenv("ADZUNA_APP_ID")),
            adzuna_app_key=_opt_str(kw.get("adzuna_app_key") or os.getenv("ADZUNA_APP_KEY")),
            jooble_api_key=_opt_str(kw.get("jooble_api_key") or os.getenv("JOOBLE_API_KEY")),
        )
        _validate_api_settings(settings)
        return settings


# -----------------------------
# Helpers
# -----------------------------
def load_companies(path: str) -> list[CompanyTarget]:
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"company directory file not found: {path}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"company directory file is invalid JSON: {path}") from e

    if isinstance(data, dict):
        data = data.get("companies")
    return _parse_companies_list(data)


def _parse_companies_list(value: Any) -> list[CompanyTarget]:
    """
    Parse a flat list into CompanyTarget objects.
    Accepts: [{"name": "...", "careers_url": "...", ...}, ...]
    camelCase keys (careersUrl, logoUrl, isActive) are accepted as well.
    """
    if not value:
        return []
    if not isinstance(value, list):
        raise ConfigError("Expected a list of company objects.")
    out: list[CompanyTarget] = []
    seen: set[str] = set()
    for i, item in enumerate(value):
        if not isinstance(item, dict):
            raise ConfigError(f"Company[{i}] must be an object.")
        name = str(item.get("name") or "").strip()
        careers_url = str(item.get("careers_url") or item.get("careersUrl") or "").strip()
        if not name or not careers_url:
            raise ConfigError(f"Company[{i}] requires 'name' and 'careers_url'.")
        if not careers_url.lower().startswith(("http://", "https://")):
            raise ConfigError(f"Company[{i}] ({name}): careers_url must be an absolute http(s) URL.")
        if name in seen:
            raise ConfigError(f"Duplicate company name {name!r}.")
        seen.add(name)

        enabled_raw = item.get("enabled", item.get("isActive", True))
        fetcher = item.get("fetcher")
        out.append(
            CompanyTarget(
                name=name,
                careers_url=careers_url,
                website=_opt_str(item.get("website")),
                industry=_opt_str(item.get("industry")),
                size=_opt_str(item.get("size")),
                logo_url=_opt_str(item.get("logo_url") or item.get("logoUrl")),
                enabled=truthy(enabled_raw),
                fetcher=str(fetcher).strip().lower() if fetcher else None,
            )
        )
    return out


def _load_selector_rules(value: Any) -> tuple[SelectorRule, ...]:
    if value is None or value == "":
        return DEFAULT_RULES
    if isinstance(value, str):
        try:
            with open(value, encoding="utf-8") as f:
                value = json.load(f)
        except FileNotFoundError as e:
            raise ConfigError(f"selector_rules file not found: {value}") from e
        except json.JSONDecodeError as e:
            raise ConfigError(f"selector_rules file is invalid JSON: {value}") from e
    if not isinstance(value, list) or not value:
        raise ConfigError("'selector_rules' must be a non-empty list.")

    rules: list[SelectorRule] = []
    for i, item in enumerate(value):
        if isinstance(item, str):
            item = {"selector": item}
        if not isinstance(item, dict) or not str(item.get("selector") or "").strip():
            raise ConfigError(f"selector_rules[{i}] requires a 'selector'.")
        selector = str(item["selector"]).strip()
        try:
            confidence = float(item.get("confidence", 0.5))
        except (TypeError, ValueError) as e:
            raise ConfigError(f"selector_rules[{i}].confidence must be a number.") from e
        rules.append(SelectorRule(selector=selector, confidence=confidence, label=str(item.get("label") or selector)))
    return tuple(rules)


def _opt_str(v: Any) -> str | None:
    s = str(v).strip() if v is not None else ""
    return s or None


def _validate_settings(s: Settings) -> None:
    from .fetchers.registry import all_kinds

    if not s.sqlite_path.strip():
        raise ConfigError("'sqlite_path' cannot be empty.")
    if not s.companies_path:
        raise ConfigError("'companies_path' cannot be empty.")
    if s.test_limit <= 0:
        raise ConfigError("'test_limit' must be >= 1.")
    if s.delay_seconds < 0:
        raise ConfigError("'delay_seconds' must be >= 0.")
    if s.page_timeout_s <= 0:
        raise ConfigError("'page_timeout_s' must be > 0.")
    if s.settle_ms < 0:
        raise ConfigError("'settle_ms' must be >= 0.")
    if not 0 <= s.fetch_retries <= MAX_FETCH_RETRIES:
        raise ConfigError(f"'fetch_retries' must be between 0 and {MAX_FETCH_RETRIES}.")
    if s.backoff_seconds < 0:
        raise ConfigError("'backoff_seconds' must be >= 0.")

    for rule in s.selector_rules:
        try:
            soupsieve.compile(rule.selector)
        except soupsieve.SelectorSyntaxError as e:
            raise ConfigError(f"Invalid CSS selector {rule.selector!r}: {e}") from e

    kinds = all_kinds()
    if s.fetcher not in kinds:
        raise ConfigError(f"Unknown fetcher {s.fetcher!r}; expected one of {sorted(kinds)}.")

    # Ensure there is at least one company to visit
    selected = s.selected_companies()
    if not selected:
        raise ConfigError(f"No enabled companies in {s.companies_path}")
    for c in selected:
        if s.fetcher_for(c) not in kinds:
            raise ConfigError(f"Company {c.name!r}: unknown fetcher {c.fetcher!r}.")


def _validate_api_settings(s: ApiSettings) -> None:
    from .sources import SOURCES

    if not s.sqlite_path.strip():
        raise ConfigError("'sqlite_path' cannot be empty.")
    if not 1 <= s.pages <= MAX_API_PAGES:
        raise ConfigError(f"'pages' must be between 1 and {MAX_API_PAGES}.")
    if s.request_delay_s < 0:
        raise ConfigError("'request_delay_s' must be >= 0.")
    if s.timeout_s <= 0:
        raise ConfigError("'timeout_s' must be > 0.")
    unknown = [name for name in s.sources if name not in SOURCES]
    if unknown:
        raise ConfigError(f"Unknown API source(s) {unknown}; known: {sorted(SOURCES)}")
