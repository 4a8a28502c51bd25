# tests/test_engine.py
import contextlib
import sqlite3
from unittest import mock

import pytest

from modules.internship_crawler.lib import engine
from modules.internship_crawler.lib.config import Settings
from modules.internship_crawler.lib.db import count_rows
from modules.internship_crawler.lib.extractor import ExtractionError
from modules.internship_crawler.lib.fetchers.stub import StubFetcher
from modules.internship_crawler.lib.models import CompanyState, RunState

ACME_URL = "https://acme.example/careers"
GLOBEX_URL = "https://globex.example/jobs"
INITECH_URL = "https://initech.example/careers"

ACME_SPEC_HTML = """
<html><body>
  <a href="/jobs/se-intern">Software Engineering Intern</a>
  <a href="/jobs/pm">Product Manager</a>
</body></html>
"""


class SleepRecorder:
    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)


def _settings(crawl_kwargs, **overrides):
    return Settings.from_env_and_kwargs({**crawl_kwargs, **overrides})


# ----------------------------------------------------------------------
# 1. Single-company happy path
# ----------------------------------------------------------------------
def test_acme_end_to_end(make_companies, crawl_kwargs):
    companies = make_companies("acme.json", [{"name": "Acme", "careersUrl": "https://acme.com/careers"}])
    settings = _settings(
        crawl_kwargs,
        companies_path=str(companies),
        stub_pages={"https://acme.com/careers": ACME_SPEC_HTML},
    )

    stats = engine.run_once(settings, sleep=SleepRecorder())

    assert stats.jobs_found == 1
    assert stats.jobs_added == 1
    assert stats.jobs_rejected == 0
    assert stats.companies_processed == 1
    assert stats.errors == []
    with contextlib.closing(sqlite3.connect(settings.sqlite_path)) as conn:
        row = conn.execute("SELECT title, application_url, job_type, expires_at > created_at FROM jobs").fetchone()
    assert row == ("Software Engineering Intern", "https://acme.com/jobs/se-intern", "internship", 1)


def test_three_companies_counts(settings):
    stats = engine.run_once(settings, sleep=SleepRecorder())

    # Acme: 1 intern (+1 non-keyword anchor dropped at pre-filter)
    # Globex: internship + "Graduate Analyst" (pre-filter yes, classifier no)
    # Initech: 1 trainee
    assert stats.jobs_found == 4
    assert stats.jobs_added == 3
    assert stats.jobs_rejected == 1
    assert stats.jobs_skipped == 0
    assert stats.companies_processed == 3
    assert stats.state is RunState.COMPLETE
    assert stats.status == "completed"
    assert stats.started_at and stats.completed_at
    assert [o.company for o in stats.outcomes] == ["Acme", "Globex", "Initech"]  # disabled Umbrella not visited
    assert all(o.state is CompanyState.DONE for o in stats.outcomes)
    assert count_rows(settings.sqlite_path) == 3
    assert count_rows(settings.sqlite_path, "companies") == 3
    assert count_rows(settings.sqlite_path, "scraper_logs") == 1


def test_stored_rows_are_enriched_and_sanitized(settings):
    engine.run_once(settings, sleep=SleepRecorder())
    with contextlib.closing(sqlite3.connect(settings.sqlite_path)) as conn:
        desc, loc, arrangement, smin, smax = conn.execute(
            "SELECT description, location, work_arrangement, salary_min, salary_max FROM jobs WHERE title = ?",
            ("Software Engineering Intern",),
        ).fetchone()
    assert "hr@acme.example" not in desc
    assert "John" not in desc
    assert "S$1,000" in desc
    assert loc == "Singapore (Hybrid)"
    assert arrangement == "hybrid"
    assert (smin, smax) == (1000, 1500)


# ----------------------------------------------------------------------
# 2. Duplicates across runs
# ----------------------------------------------------------------------
def test_second_run_skips_everything(settings):
    engine.run_once(settings, sleep=SleepRecorder())
    again = engine.run_once(settings, sleep=SleepRecorder())

    assert again.jobs_added == 0
    assert again.jobs_skipped == 3
    assert again.jobs_found == 4
    assert count_rows(settings.sqlite_path) == 3
    assert count_rows(settings.sqlite_path, "companies") == 3
    assert count_rows(settings.sqlite_path, "scraper_logs") == 2


def test_duplicate_single_posting(make_companies, crawl_kwargs):
    companies = make_companies("acme.json", [{"name": "Acme", "careers_url": "https://acme.com/careers"}])
    settings = _settings(
        crawl_kwargs,
        companies_path=str(companies),
        stub_pages={"https://acme.com/careers": ACME_SPEC_HTML},
    )
    engine.run_once(settings, sleep=SleepRecorder())
    stats = engine.run_once(settings, sleep=SleepRecorder())
    assert (stats.jobs_added, stats.jobs_skipped) == (0, 1)


# ----------------------------------------------------------------------
# 3. Error isolation
# ----------------------------------------------------------------------
def test_fetch_timeout_on_one_company_does_not_stop_run(crawl_kwargs, stub_pages):
    pages = {**stub_pages, GLOBEX_URL: TimeoutError("navigation timed out")}
    settings = _settings(crawl_kwargs, stub_pages=pages)

    stats = engine.run_once(settings, sleep=SleepRecorder())

    assert stats.companies_processed == 2
    assert [(e.company, e.error) for e in stats.errors] == [("Globex", "navigation timed out")]
    states = {o.company: o.state for o in stats.outcomes}
    assert states == {"Acme": CompanyState.DONE, "Globex": CompanyState.SKIPPED, "Initech": CompanyState.DONE}
    assert stats.jobs_added == 2


def test_unexpected_fetcher_exception_is_scoped_to_company(crawl_kwargs):
    class Flaky(StubFetcher):
        def fetch(self, url):
            if url == ACME_URL:
                raise RuntimeError("renderer crashed")
            return super().fetch(url)

    stats = engine.run_once(_settings(crawl_kwargs), get_fetcher=lambda kind: Flaky, sleep=SleepRecorder())

    assert stats.companies_processed == 2
    assert len(stats.errors) == 1
    assert stats.errors[0].company == "Acme"
    assert "renderer crashed" in stats.errors[0].error


def test_extraction_error_counts_company_as_processed(crawl_kwargs, monkeypatch):
    real = engine.extract_postings

    def fake(html, page_url, rules):
        if page_url == INITECH_URL:
            raise ExtractionError("selector blew up")
        return real(html, page_url, rules)

    monkeypatch.setattr(engine, "extract_postings", fake)
    stats = engine.run_once(_settings(crawl_kwargs), sleep=SleepRecorder())

    assert stats.companies_processed == 3
    assert [(e.company, e.error) for e in stats.errors] == [("Initech", "selector blew up")]
    assert stats.jobs_added == 2


def test_unknown_fetcher_kind_skips_company(crawl_kwargs):
    def get_fetcher(kind):
        raise KeyError(kind)

    stats = engine.run_once(_settings(crawl_kwargs), get_fetcher=get_fetcher, sleep=SleepRecorder())
    assert stats.companies_processed == 0
    assert len(stats.errors) == 3
    assert stats.status == "completed"


# ----------------------------------------------------------------------
# 4. Politeness: delay, backoff, robots
# ----------------------------------------------------------------------
def test_delay_between_companies_only(crawl_kwargs):
    sleep = SleepRecorder()
    engine.run_once(_settings(crawl_kwargs, delay_seconds=1.5), sleep=sleep)
    assert sleep.calls == [1.5, 1.5]


def test_fetch_backoff_doubles(crawl_kwargs, stub_pages):
    pages = {**stub_pages, GLOBEX_URL: TimeoutError("slow")}
    sleep = SleepRecorder()
    settings = _settings(crawl_kwargs, stub_pages=pages, fetch_retries=2, backoff_seconds=1)

    stats = engine.run_once(settings, sleep=sleep)

    assert sleep.calls == [1.0, 2.0]
    assert len(stats.errors) == 1


def test_backoff_recovers_on_retry(crawl_kwargs, stub_pages):
    attempts = {"n": 0}

    class RecoversOnce(StubFetcher):
        def fetch(self, url):
            if url == GLOBEX_URL and attempts["n"] == 0:
                attempts["n"] += 1
                self.calls.append(url)
                raise engine.FetchError("reset by peer")
            return super().fetch(url)

    settings = _settings(crawl_kwargs, fetch_retries=1, backoff_seconds=0.5)
    stats = engine.run_once(settings, get_fetcher=lambda kind: RecoversOnce, sleep=SleepRecorder())

    assert stats.errors == []
    assert stats.companies_processed == 3


def test_robots_disallow_skips_company_and_crawl_delay_wins(crawl_kwargs):
    robots = mock.Mock()
    robots.allowed.side_effect = lambda url: url != INITECH_URL
    robots.crawl_delay.side_effect = lambda url: 10.0 if url == GLOBEX_URL else None
    sleep = SleepRecorder()

    stats = engine.run_once(_settings(crawl_kwargs, delay_seconds=2), robots=robots, sleep=sleep)

    assert sleep.calls == [10.0, 2.0]
    assert stats.companies_processed == 2
    assert [(e.company, e.error) for e in stats.errors] == [("Initech", engine.ROBOTS_DISALLOWED)]


# ----------------------------------------------------------------------
# 5. Scope and lifecycle
# ----------------------------------------------------------------------
def test_test_mode_limits_companies(crawl_kwargs):
    stats = engine.run_once(_settings(crawl_kwargs, test_mode=True, test_limit=2), sleep=SleepRecorder())
    assert [o.company for o in stats.outcomes] == ["Acme", "Globex"]


def test_fetchers_are_shared_and_closed(crawl_kwargs):
    created = []

    class Tracking(StubFetcher):
        closed = False

        def __init__(self, settings):
            super().__init__(settings)
            created.append(self)

        def close(self):
            self.closed = True

    engine.run_once(_settings(crawl_kwargs), get_fetcher=lambda kind: Tracking, sleep=SleepRecorder())

    assert len(created) == 1
    assert created[0].calls == [ACME_URL, GLOBEX_URL, INITECH_URL]
    assert created[0].closed is True


def test_injected_store_is_left_open(settings):
    from modules.internship_crawler.lib.db import Store

    store = Store(settings.sqlite_path).open()
    engine.run_once(settings, store=store, sleep=SleepRecorder())
    (n,) = store.conn.execute("SELECT COUNT(*) FROM jobs").fetchone()
    assert n == 3
    store.close()


@pytest.mark.parametrize("test_mode", [False, True])
def test_summary_activity_is_logged(crawl_kwargs, test_mode, monkeypatch):
    records = []
    monkeypatch.setattr(engine.logging_bridge, "activity", records.append)

    engine.run_once(_settings(crawl_kwargs, test_mode=test_mode), sleep=SleepRecorder())

    summary = [r for r in records if r.get("op") == "summary"]
    assert len(summary) == 1
    assert summary[0]["test_mode"] is test_mode
    assert summary[0]["status"] == "completed"
