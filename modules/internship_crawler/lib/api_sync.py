"""
Job-board API sync: pull internship listings from Adzuna and Jooble and
store them next to the crawled ones.

Per provider: credentials check -> keyword x page searches -> title gate
-> classify -> company get-or-create -> persist (source = provider name).
A failed request is recorded and the sync moves to the next page. In the
run log a "company" is a provider.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable

from . import logging_bridge
from .classifier import classify
from .config import ApiSettings
from .db import StorageError, Store
from .http_client import HttpClient
from .models import ApiListing, CompanyOutcome, CompanyState, CompanyTarget, RunState, RunStatistics
from .persister import ADDED, SKIPPED, persist_posting
from .sources import API_INDUSTRY, SOURCES, ApiSource, SourceError, title_is_relevant
from .utils import now_iso

log = logging.getLogger(__name__)

NOT_CONFIGURED = "credentials not configured"


def sync_once(
    settings: ApiSettings,
    sources: Iterable[ApiSource] | None = None,
    store: Store | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> RunStatistics:
    """
    Run every configured provider once and return the run's statistics.

    Args:
        settings: validated ApiSettings.
        sources: optional pre-built sources (tests); by default built from settings.sources.
        store: optional pre-built Store; by default one is opened on settings.sqlite_path.
        sleep: delay function, called with request_delay_s after every request.

    Raises:
        StorageError: if the store cannot be opened at all.
    """
    start_ns = time.perf_counter_ns()
    stats = RunStatistics(state=RunState.RUNNING, started_at=now_iso())

    own_store = store is None
    store = store or Store(settings.sqlite_path)
    store.open()

    client: HttpClient | None = None
    if sources is None:
        client = HttpClient(timeout=settings.timeout_s, user_agent=settings.user_agent, retries=2)
        sources = [SOURCES[name](settings, client) for name in settings.sources]

    company_ids: dict[str, int] = {}
    try:
        for source in sources:
            try:
                outcome = _sync_source(source, settings, store, stats, company_ids, sleep)
            except Exception as e:
                # Bugs or unexpected library errors stay scoped to this provider.
                log.exception("unexpected error syncing %s", source.name)
                message = f"unexpected error: {e!r}"
                outcome = CompanyOutcome(company=source.name, state=CompanyState.SKIPPED, error=message)
                stats.record_error(source.name, message)
            stats.outcomes.append(outcome)
    finally:
        if client is not None:
            client.close()
        stats.state = RunState.COMPLETE
        stats.completed_at = now_iso()
        try:
            store.record_run(stats)
        except StorageError as e:
            log.warning("could not write run log: %s", e)
        if own_store:
            store.close()

    logging_bridge.activity({
        "component": "internship_crawler.api_sync",
        "op": "summary",
        **stats.to_record(),
        "test_mode": settings.test_mode,
        "pages": settings.pages,
        "sources": [o.company for o in stats.outcomes],
        "total_us": int((time.perf_counter_ns() - start_ns) // 1000),
    })
    return stats


def _sync_source(
    source: ApiSource,
    settings: ApiSettings,
    store: Store,
    stats: RunStatistics,
    company_ids: dict[str, int],
    sleep: Callable[[float], None],
) -> CompanyOutcome:
    outcome = CompanyOutcome(company=source.name)
    if not source.configured():
        log.warning("%s API %s; skipping", source.name, NOT_CONFIGURED)
        outcome.state = CompanyState.SKIPPED
        outcome.error = NOT_CONFIGURED
        logging_bridge.activity({
            "component": "internship_crawler.api_sync",
            "op": "source_skipped",
            "source": source.name,
            "error": NOT_CONFIGURED,
        })
        return outcome

    outcome.state = CompanyState.FETCHING
    for keyword in source.keywords:
        for page in range(1, settings.pages + 1):
            try:
                listings = source.fetch_page(keyword, page)
            except SourceError as e:
                log.warning("%s %r page %d failed: %s", source.name, keyword, page, e)
                stats.record_error(source.name, str(e))
                outcome.error = str(e)
                listings = []
            finally:
                sleep(settings.request_delay_s)
            log.info("%s %r page %d: %d listing(s)", source.name, keyword, page, len(listings))
            for listing in listings:
                _ingest(listing, source.name, store, stats, outcome, company_ids)

    outcome.state = CompanyState.DONE
    stats.companies_processed += 1
    logging_bridge.activity({
        "component": "internship_crawler.api_sync",
        "op": "source_done",
        "source": source.name,
        "found": outcome.found,
        "added": outcome.added,
        "skipped": outcome.skipped,
        "rejected": outcome.rejected,
    })
    return outcome


def _ingest(
    listing: ApiListing,
    source: str,
    store: Store,
    stats: RunStatistics,
    outcome: CompanyOutcome,
    company_ids: dict[str, int],
) -> None:
    if not title_is_relevant(listing.posting.title):
        return
    stats.jobs_found += 1
    outcome.found += 1

    classified = classify(listing.posting)
    # jobs rows need a company; anonymous listings cannot be stored
    if not classified.is_internship or not listing.company:
        stats.jobs_rejected += 1
        outcome.rejected += 1
        return

    company_id = company_ids.get(listing.company)
    if company_id is None:
        try:
            company_id = store.upsert_company(
                CompanyTarget(name=listing.company, careers_url="", industry=API_INDUSTRY)
            )
        except StorageError as e:
            stats.record_error(listing.company, str(e))
            return
        company_ids[listing.company] = company_id

    result = persist_posting(store, company_id, classified, stats, company=listing.company, source=source)
    if result == ADDED:
        outcome.added += 1
    elif result == SKIPPED:
        outcome.skipped += 1
