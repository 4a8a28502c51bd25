import json

import pytest

from service import config_schema


def test_load_and_validate_min_config(write_min_config):
    cfg = config_schema.load_config()  # CONFIG_PATH set by fixture
    jobs = cfg["jobs"]
    assert isinstance(jobs, list) and jobs, "expected at least one job"
    assert jobs[0]["id"] == "crawl-never"
    assert cfg["timezone"] == "Asia/Singapore"
    config_schema.validate(cfg)


def test_empty_default_config(monkeypatch):
    monkeypatch.setenv("TZ", "Asia/Singapore")
    cfg = config_schema.load_config()
    assert cfg["jobs"] == []
    assert cfg["timezone"] == "Asia/Singapore"
    assert cfg["http_trigger"] == {"enabled": True, "module": "modules.internship_crawler"}
    config_schema.validate(cfg)


def test_yaml_config(tmp_path):
    p = tmp_path / "config.yaml"
    p.write_text(
        "timezone: UTC\n"
        "http_trigger:\n  port: 9090\n"
        "jobs:\n"
        "  - module: modules.internship_crawler\n"
        "    trigger:\n      daily_time: ['02:00', '14:30']\n"
        "    timeout_sec: '3600'\n",
        encoding="utf-8",
    )
    cfg = config_schema.load_config(str(p))
    config_schema.validate(cfg)

    (job,) = cfg["jobs"]
    assert job["id"] == "modules.internship_crawler"
    assert job["timeout_sec"] == 3600
    assert cfg["http_trigger"]["port"] == 9090


@pytest.mark.parametrize(
    "job,match",
    [
        ({"trigger": {"cron": "0 2 * * *"}}, "module"),
        ({"module": "m"}, "trigger"),
        ({"module": "m", "trigger": {"cron": "0 2 * * *", "interval": {"hours": 1}}}, "exactly one"),
        ({"module": "m", "trigger": {"daily_time": "25:00"}}, "out of range"),
        ({"module": "m", "trigger": {"daily_time": "noon"}}, "HH:MM"),
        ({"module": "m", "trigger": {"interval": {"hours": "x"}}}, "integer"),
        ({"module": "m", "trigger": {"date": {}}}, "run_at"),
        ({"module": "m", "trigger": {"cron": "0 2 * * *"}, "kwargs": []}, "kwargs"),
    ],
)
def test_invalid_jobs(job, match):
    with pytest.raises(config_schema.ConfigError, match=match):
        config_schema.validate({"jobs": [job]})


def test_duplicate_job_ids():
    job = {"id": "crawl", "module": "m", "trigger": {"cron": "0 2 * * *"}}
    with pytest.raises(config_schema.ConfigError, match="Duplicate"):
        config_schema.validate({"jobs": [job, dict(job)]})


@pytest.mark.parametrize(
    "trig,match",
    [
        ("yes", "object"),
        ({"port": 70000}, "65535"),
        ({"enabled": "maybe"}, "boolean"),
        ({"host": ""}, "host"),
    ],
)
def test_invalid_http_trigger(trig, match):
    with pytest.raises(config_schema.ConfigError, match=match):
        config_schema.validate({"jobs": [], "http_trigger": trig})


def test_unreadable_files(tmp_path):
    with pytest.raises(config_schema.ConfigError, match="not found"):
        config_schema.load_config(str(tmp_path / "missing.json"))
    bad = tmp_path / "bad.json"
    bad.write_text("{", encoding="utf-8")
    with pytest.raises(config_schema.ConfigError, match="Invalid JSON"):
        config_schema.load_config(str(bad))
    top = tmp_path / "list.json"
    top.write_text(json.dumps([1, 2]), encoding="utf-8")
    with pytest.raises(config_schema.ConfigError, match="must be an object"):
        config_schema.load_config(str(top))
