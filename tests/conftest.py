# tests/conftest.py
import json
import os
import pathlib
import tempfile

import pytest
from freezegun import freeze_time

from modules.internship_crawler.lib import config as ic_config


# ---------------------------------------------------------------------
# Live tests are opt-in: use --live or RUN_LIVE_TESTS=1
# ---------------------------------------------------------------------
def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--live",
        action="store_true",
        default=False,
        help="Run tests marked as 'live' (network calls or a real headless browser).",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "live: marks tests that perform live network calls or launch a browser (skipped by default).",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    run_live = config.getoption("--live") or os.getenv("RUN_LIVE_TESTS") == "1"
    if run_live:
        return
    skip_live = pytest.mark.skip(reason="live tests disabled (use --live or RUN_LIVE_TESTS=1)")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


# ---------------------------------------------------------------------
# Test-wide env defaults (autouse, function-scoped)
# ---------------------------------------------------------------------
@pytest.fixture(autouse=True)
def _env_defaults(monkeypatch):
    # Write logs to a throwaway dir so real logs stay clean (per test)
    tmp_logs = tempfile.mkdtemp(prefix="ic-pytest-logs-")
    monkeypatch.setenv("LOG_DIR", tmp_logs)
    monkeypatch.setenv("ACTIVITY_LOG_PREFIX", "activity-test")
    monkeypatch.setenv("ERROR_LOG_PREFIX", "error-test")
    for name in (
        "CRAWLER_COMPANIES_PATH",
        "CRAWLER_FETCHER",
        "SQLITE_PATH",
        "CRON_SECRET",
        "CONFIG_PATH",
        "ADZUNA_APP_ID",
        "ADZUNA_APP_KEY",
        "JOOBLE_API_KEY",
    ):
        monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture
def frozen_utc():
    with freeze_time("2025-01-01T00:00:00Z"):
        yield


# ---------------------------------------------------------------------
# Crawler fixtures
# ---------------------------------------------------------------------
ACME_URL = "https://acme.example/careers"
GLOBEX_URL = "https://globex.example/jobs"
INITECH_URL = "https://initech.example/careers"

ACME_HTML = """
<html><body>
  <ul class="openings">
    <li class="job-card">
      <a href="/jobs/123">Software Engineering Intern</a>
      <span class="job-location">Singapore (Hybrid)</span>
      <p>Stipend S$1,000 - S$1,500 per month. Contact Mr John Tan at hr@acme.example.</p>
    </li>
    <li class="job-card">
      <a href="/jobs/124">Senior Backend Engineer</a>
    </li>
  </ul>
</body></html>
"""

GLOBEX_HTML = """
<html><body>
  <div class="results">
    <h3><a href="https://globex.example/apply/77">Data Analyst Internship</a></h3>
    <h3><a href="https://globex.example/apply/78">Graduate Analyst</a></h3>
  </div>
</body></html>
"""

INITECH_HTML = """
<html><body>
  <article class="position">
    <h2><a href="/careers/ops-trainee">Operations Trainee</a></h2>
  </article>
</body></html>
"""


def write_companies(path: pathlib.Path, companies: list[dict]) -> pathlib.Path:
    path.write_text(json.dumps({"companies": companies}), encoding="utf-8")
    return path


@pytest.fixture
def companies_json(tmp_path: pathlib.Path) -> pathlib.Path:
    """Three enabled companies plus one disabled, all served by the stub fetcher."""
    return write_companies(
        tmp_path / "companies.json",
        [
            {"name": "Acme", "careers_url": ACME_URL, "industry": "Tech"},
            {"name": "Globex", "careers_url": GLOBEX_URL},
            {"name": "Initech", "careers_url": INITECH_URL},
            {"name": "Umbrella", "careers_url": "https://umbrella.example/careers", "enabled": False},
        ],
    )


@pytest.fixture
def stub_pages() -> dict[str, str]:
    return {ACME_URL: ACME_HTML, GLOBEX_URL: GLOBEX_HTML, INITECH_URL: INITECH_HTML}


@pytest.fixture
def crawl_kwargs(companies_json, stub_pages, tmp_path) -> dict:
    """Zero-network run kwargs; tests override what they need."""
    return {
        "companies_path": str(companies_json),
        "sqlite_path": str(tmp_path / "internships.db"),
        "fetcher": "stub",
        "respect_robots": False,
        "delay_seconds": 0,
        "stub_pages": stub_pages,
    }


@pytest.fixture
def settings(crawl_kwargs):
    """A brand-new Settings instance for each test."""
    return ic_config.Settings.from_env_and_kwargs(crawl_kwargs)


@pytest.fixture
def write_min_config(tmp_path, monkeypatch, companies_json):
    cfg = {
        "timezone": "Asia/Singapore",
        "http_trigger": {"enabled": True, "host": "127.0.0.1", "port": 0},
        "jobs": [
            {
                "id": "crawl-never",
                "module": "modules.internship_crawler",
                "trigger": {"date": "2099-01-01T00:00:00Z"},
                "kwargs": {"companies_path": str(companies_json), "fetcher": "stub"},
                "summary": "pytest config",
            }
        ],
    }
    p = tmp_path / "config.json"
    p.write_text(json.dumps(cfg), encoding="utf-8")
    monkeypatch.setenv("CONFIG_PATH", str(p))
    return p


@pytest.fixture
def make_companies(tmp_path: pathlib.Path):
    """Write a company directory file under tmp_path and return its path."""

    def _make(name: str, companies: list[dict]) -> pathlib.Path:
        return write_companies(tmp_path / name, companies)

    return _make
