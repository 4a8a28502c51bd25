"""
Crawl orchestrator: one sequential pass over the enabled companies.

Per company: robots.txt gate -> company upsert -> fetch -> extract ->
classify -> persist. Any failure is recorded against that company and the
run moves on; only configuration problems (raised before this point) stop
a run.

Features:
  - Politeness delay between consecutive companies (robots Crawl-delay wins if larger)
  - Optional bounded exponential backoff per fetch
  - Fetchers resolved per kind via the registry, shared across companies, closed at run end
  - Dependency injection for testability (`get_fetcher`, `store`, `robots`, `sleep`)
  - Run-log row in scraper_logs plus a structured summary via `logging_bridge`
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from . import logging_bridge
from .classifier import classify
from .config import Settings
from .db import StorageError, Store
from .extractor import ExtractionError, extract_postings
from .fetchers.base import BaseFetcher, FetchError
from .http_client import HttpClient
from .models import CompanyOutcome, CompanyState, CompanyTarget, RunState, RunStatistics
from .persister import ADDED, SKIPPED, persist_posting
from .robots import ROBOTS_TIMEOUT_S, RobotsPolicy
from .utils import now_iso

log = logging.getLogger(__name__)

ROBOTS_DISALLOWED = "robots.txt disallows scraping"


# =============================================================================
# DEFAULT FETCHER LOOKUP (PRODUCTION)
# =============================================================================
def _default_get_fetcher(kind: str) -> type[BaseFetcher]:
    from .fetchers.registry import get as get_fetcher_class

    return get_fetcher_class(kind)


# =============================================================================
# MAIN ORCHESTRATOR
# =============================================================================
def run_once(
    settings: Settings,
    get_fetcher: Callable[[str], type[BaseFetcher]] | None = None,
    store: Store | None = None,
    robots: RobotsPolicy | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> RunStatistics:
    """
    Crawl every selected company once and return the run's statistics.

    Args:
        settings: validated Settings (companies, DB path, timing).
        get_fetcher: optional override to inject fetcher classes (for testing).
        store: optional pre-built Store; by default one is opened on settings.sqlite_path.
        robots: optional RobotsPolicy; by default one is built when respect_robots is on.
        sleep: delay function (tests pass a recorder).

    Raises:
        StorageError: if the store cannot be opened at all.
    """
    start_ns = time.perf_counter_ns()
    get_fetcher_func = get_fetcher or _default_get_fetcher
    companies = settings.selected_companies()

    stats = RunStatistics(state=RunState.RUNNING, started_at=now_iso())

    own_store = store is None
    store = store or Store(settings.sqlite_path)
    store.open()

    robots_client: HttpClient | None = None
    if robots is None and settings.respect_robots:
        robots_client = HttpClient(timeout=ROBOTS_TIMEOUT_S, user_agent=settings.user_agent, retries=0)
        robots = RobotsPolicy(robots_client, settings.user_agent)

    fetchers: dict[str, BaseFetcher] = {}
    durations_us: dict[str, int] = {}

    try:
        for i, company in enumerate(companies):
            if i > 0:
                _polite_pause(settings, company, robots, sleep)

            t0 = time.perf_counter_ns()
            try:
                outcome = _crawl_company(company, settings, store, robots, fetchers, get_fetcher_func, stats, sleep)
            except Exception as e:
                # Bugs or unexpected library errors stay scoped to this company.
                log.exception("unexpected error crawling %s", company.name)
                outcome = _skip(stats, CompanyOutcome(company=company.name), f"unexpected error: {e!r}")
            stats.outcomes.append(outcome)
            durations_us[company.name] = int((time.perf_counter_ns() - t0) // 1000)
    finally:
        for kind, fetcher in fetchers.items():
            try:
                fetcher.close()
            except Exception:
                log.warning("closing %s fetcher failed", kind, exc_info=True)
        if robots_client is not None:
            robots_client.close()

        stats.state = RunState.COMPLETE
        stats.completed_at = now_iso()
        try:
            store.record_run(stats)
        except StorageError as e:
            log.warning("could not write run log: %s", e)
        if own_store:
            store.close()

    total_us = int((time.perf_counter_ns() - start_ns) // 1000)

    # -------------------------------------------------------------------------
    # SUMMARY LOG (always emitted)
    # -------------------------------------------------------------------------
    logging_bridge.activity({
        "component": "internship_crawler.engine",
        "op": "summary",
        **stats.to_record(),
        "test_mode": settings.test_mode,
        "companies_planned": len(companies),
        "durations_us": durations_us,
        "total_us": total_us,
    })
    return stats


# =============================================================================
# PER-COMPANY PIPELINE
# =============================================================================
def _crawl_company(
    company: CompanyTarget,
    settings: Settings,
    store: Store,
    robots: RobotsPolicy | None,
    fetchers: dict[str, BaseFetcher],
    get_fetcher: Callable[[str], type[BaseFetcher]],
    stats: RunStatistics,
    sleep: Callable[[float], None],
) -> CompanyOutcome:
    outcome = CompanyOutcome(company=company.name)

    if robots is not None and not robots.allowed(company.careers_url):
        return _skip(stats, outcome, ROBOTS_DISALLOWED)

    try:
        company_id = store.upsert_company(company)
    except StorageError as e:
        return _skip(stats, outcome, str(e))

    # ---- fetch ----
    outcome.state = CompanyState.FETCHING
    kind = settings.fetcher_for(company)
    try:
        fetcher = fetchers.get(kind)
        if fetcher is None:
            fetcher = fetchers[kind] = get_fetcher(kind)(settings)
        html = _fetch_with_backoff(fetcher, company, settings, sleep)
    except KeyError as e:
        return _skip(stats, outcome, f"no fetcher for kind {kind!r}: {e}")
    except FetchError as e:
        return _skip(stats, outcome, str(e))

    # ---- extract ----
    outcome.state = CompanyState.EXTRACTING
    try:
        candidates = extract_postings(html, company.careers_url, settings.selector_rules)
    except ExtractionError as e:
        log.warning("extraction failed for %s: %s", company.name, e)
        stats.record_error(company.name, str(e))
        outcome.error = str(e)
        candidates = []
    stats.jobs_found += len(candidates)
    outcome.found = len(candidates)

    # ---- classify ----
    outcome.state = CompanyState.CLASSIFYING
    classified = [classify(c) for c in candidates]
    accepted = [c for c in classified if c.is_internship]
    outcome.rejected = len(classified) - len(accepted)
    stats.jobs_rejected += outcome.rejected

    # ---- persist ----
    outcome.state = CompanyState.PERSISTING
    for c in accepted:
        result = persist_posting(store, company_id, c, stats, company=company.name)
        if result == ADDED:
            outcome.added += 1
        elif result == SKIPPED:
            outcome.skipped += 1

    outcome.state = CompanyState.DONE
    stats.companies_processed += 1
    logging_bridge.activity({
        "component": "internship_crawler.engine",
        "op": "company_done",
        "company": company.name,
        "fetcher": kind,
        "found": outcome.found,
        "added": outcome.added,
        "skipped": outcome.skipped,
        "rejected": outcome.rejected,
    })
    return outcome


def _fetch_with_backoff(
    fetcher: BaseFetcher,
    company: CompanyTarget,
    settings: Settings,
    sleep: Callable[[float], None],
) -> str:
    """One attempt plus up to fetch_retries more, doubling the wait each time."""
    attempts = settings.fetch_retries + 1
    for attempt in range(attempts):
        try:
            return fetcher.fetch(company.careers_url)
        except FetchError as e:
            if attempt + 1 >= attempts:
                raise
            wait = settings.backoff_seconds * (2**attempt)
            log.info("fetch %s failed (%s); retry %d/%d in %.1fs", company.name, e, attempt + 1, attempts - 1, wait)
            sleep(wait)
    raise FetchError(f"no fetch attempts made for {company.careers_url}")  # pragma: no cover


def _polite_pause(
    settings: Settings,
    company: CompanyTarget,
    robots: RobotsPolicy | None,
    sleep: Callable[[float], None],
) -> None:
    delay = settings.delay_seconds
    if robots is not None:
        crawl_delay = robots.crawl_delay(company.careers_url)
        if crawl_delay is not None and crawl_delay > delay:
            delay = crawl_delay
    if delay > 0:
        sleep(delay)


def _skip(stats: RunStatistics, outcome: CompanyOutcome, message: str) -> CompanyOutcome:
    outcome.state = CompanyState.SKIPPED
    outcome.error = message
    stats.record_error(outcome.company, message)
    logging_bridge.activity({
        "component": "internship_crawler.engine",
        "op": "company_skipped",
        "company": outcome.company,
        "error": message,
    })
    return outcome
