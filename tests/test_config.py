# tests/test_config.py
import json
from pathlib import Path

import pytest

from modules.internship_crawler.lib.config import (
    DEFAULT_COMPANIES_PATH,
    MAX_FETCH_RETRIES,
    ConfigError,
    Settings,
    load_companies,
)
from modules.internship_crawler.lib.extractor import DEFAULT_RULES


def test_defaults_from_kwargs(crawl_kwargs):
    s = Settings.from_env_and_kwargs({"companies_path": crawl_kwargs["companies_path"]})

    assert s.fetcher == "browser"
    assert s.delay_seconds == 3.0
    assert s.test_limit == 3
    assert s.respect_robots is True
    assert s.fetch_retries == 0
    assert s.selector_rules == DEFAULT_RULES
    assert [c.name for c in s.selected_companies()] == ["Acme", "Globex", "Initech"]


def test_env_fallbacks(crawl_kwargs, monkeypatch, tmp_path):
    monkeypatch.setenv("CRAWLER_COMPANIES_PATH", crawl_kwargs["companies_path"])
    monkeypatch.setenv("SQLITE_PATH", str(tmp_path / "env.db"))
    monkeypatch.setenv("CRAWLER_FETCHER", "STATIC")

    s = Settings.from_env_and_kwargs({})

    assert s.sqlite_path == str(tmp_path / "env.db")
    assert s.fetcher == "static"


def test_test_mode_takes_first_enabled(crawl_kwargs):
    s = Settings.from_env_and_kwargs({**crawl_kwargs, "test_mode": "true", "test_limit": 1})
    assert [c.name for c in s.selected_companies()] == ["Acme"]


def test_per_company_fetcher_override(make_companies, crawl_kwargs):
    path = make_companies("c.json", [
        {"name": "A", "careers_url": "https://a.example/jobs", "fetcher": "Static"},
        {"name": "B", "careers_url": "https://b.example/jobs"},
    ])
    s = Settings.from_env_and_kwargs({**crawl_kwargs, "companies_path": str(path)})
    a, b = s.selected_companies()
    assert s.fetcher_for(a) == "static"
    assert s.fetcher_for(b) == "stub"


def test_load_companies_accepts_bare_list_and_camel_case(tmp_path):
    p = tmp_path / "list.json"
    p.write_text(json.dumps([
        {"name": "Acme", "careersUrl": "https://acme.com/careers", "logoUrl": "https://acme.com/logo.png",
         "isActive": False},
    ]), encoding="utf-8")

    (c,) = load_companies(str(p))

    assert c.careers_url == "https://acme.com/careers"
    assert c.logo_url == "https://acme.com/logo.png"
    assert c.enabled is False


@pytest.mark.parametrize(
    "companies,match",
    [
        ([{"name": "Acme"}], "careers_url"),
        ([{"name": "Acme", "careers_url": "acme.com/careers"}], "absolute"),
        ([{"name": "Acme", "careers_url": "https://a.com"}, {"name": "Acme", "careers_url": "https://b.com"}],
         "Duplicate"),
        (["Acme"], "object"),
    ],
)
def test_bad_company_entries(make_companies, companies, match):
    path = make_companies("bad.json", companies)
    with pytest.raises(ConfigError, match=match):
        load_companies(str(path))


def test_missing_and_invalid_company_files(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_companies(str(tmp_path / "nope.json"))
    bad = tmp_path / "bad.json"
    bad.write_text("{not json", encoding="utf-8")
    with pytest.raises(ConfigError, match="invalid JSON"):
        load_companies(str(bad))


def test_no_enabled_companies_is_fatal(make_companies, crawl_kwargs):
    path = make_companies("off.json", [{"name": "A", "careers_url": "https://a.example/jobs", "enabled": False}])
    with pytest.raises(ConfigError, match="No enabled companies"):
        Settings.from_env_and_kwargs({**crawl_kwargs, "companies_path": str(path)})


@pytest.mark.parametrize(
    "override,match",
    [
        ({"sqlite_path": "   "}, "sqlite_path"),
        ({"fetcher": "telepathy"}, "Unknown fetcher"),
        ({"delay_seconds": -1}, "delay_seconds"),
        ({"test_limit": "x"}, "numeric"),
        ({"fetch_retries": -2}, "fetch_retries"),
        ({"selector_rules": ["a[href*="]}, "Invalid CSS selector"),
        ({"selector_rules": []}, "non-empty"),
        ({"stub_pages": ["x"]}, "stub_pages"),
    ],
)
def test_invalid_settings_raise_config_error(crawl_kwargs, override, match):
    with pytest.raises(ConfigError, match=match):
        Settings.from_env_and_kwargs({**crawl_kwargs, **override})


def test_selector_rules_from_file(crawl_kwargs, tmp_path):
    rules = tmp_path / "rules.json"
    rules.write_text(json.dumps([{"selector": ".opening a", "confidence": 0.8, "label": "opening"}, "h5 a"]),
                     encoding="utf-8")
    s = Settings.from_env_and_kwargs({**crawl_kwargs, "selector_rules": str(rules)})

    assert [(r.selector, r.confidence, r.label) for r in s.selector_rules] == [
        (".opening a", 0.8, "opening"),
        ("h5 a", 0.5, "h5 a"),
    ]


def test_default_companies_path_is_packaged_file(monkeypatch, tmp_path):
    monkeypatch.delenv("CRAWLER_COMPANIES_PATH", raising=False)
    s = Settings.from_env_and_kwargs({"sqlite_path": str(tmp_path / "t.db")})

    assert s.companies_path == DEFAULT_COMPANIES_PATH
    assert Path(DEFAULT_COMPANIES_PATH).is_file()
    assert s.selected_companies()


@pytest.mark.parametrize("override", [{"test_limit": 0}, {"test_limit": "0"}, {"test_limit": -1}])
def test_explicit_zero_test_limit_is_rejected(crawl_kwargs, override):
    with pytest.raises(ConfigError, match="test_limit"):
        Settings.from_env_and_kwargs({**crawl_kwargs, **override})


def test_fetch_retries_is_capped(crawl_kwargs):
    s = Settings.from_env_and_kwargs({**crawl_kwargs, "fetch_retries": MAX_FETCH_RETRIES})
    assert s.fetch_retries == MAX_FETCH_RETRIES

    with pytest.raises(ConfigError, match="fetch_retries"):
        Settings.from_env_and_kwargs({**crawl_kwargs, "fetch_retries": MAX_FETCH_RETRIES + 1})
