# service/config_schema.py
"""
Service configuration (CONFIG_PATH, JSON or YAML): scheduled jobs plus the
HTTP trigger settings.

    {
      "timezone": "Asia/Singapore",
      "http_trigger": {"enabled": true, "host": "0.0.0.0", "port": 8080,
                       "module": "modules.internship_crawler"},
      "jobs": [
        {"id": "crawl-daily", "module": "modules.internship_crawler",
         "trigger": {"cron": {"hour": 2, "minute": 0}},
         "kwargs": {"companies_path": "/app/local/config/companies.json"},
         "timeout_sec": 3600}
      ]
    }

load_config() fills defaults and coerces numeric/boolean job fields;
validate() only checks and raises ConfigError.
"""

from __future__ import annotations

import json
import logging
import os
import re
from collections.abc import Callable
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

DEFAULT_HTTP_MODULE = "modules.internship_crawler"


class ConfigError(ValueError):
    """Raised when the config is invalid."""


_HHMM_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")
_INTERVAL_UNITS = {"weeks", "days", "hours", "minutes", "seconds", "jitter"}

# field -> minimum allowed value
_JOB_INT_FIELDS = {"timeout_sec": 0, "max_instances": 1, "misfire_grace_time": 0}
_JOB_BOOL_FIELDS = ("coalesce",)
_JOB_STR_FIELDS = ("summary", "description")


# ---- coercion ---------------------------------------------------------------


def as_bool(value: Any, where: str) -> bool:
    if isinstance(value, bool):
        return value
    word = str(value).strip().lower() if isinstance(value, str) else None
    if word in {"1", "true", "yes", "on"}:
        return True
    if word in {"0", "false", "no", "off"}:
        return False
    raise ConfigError(f"{where} must be a boolean (got {value!r}).")


def as_int(value: Any, where: str, minimum: int = 0) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{where} must be an integer, not a boolean.")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{where} must be an integer (got {value!r}).") from None
    if number < minimum:
        raise ConfigError(f"{where} must be >= {minimum} (got {number}).")
    return number


# ---- loading ----------------------------------------------------------------


def load_config(path: str | None = None) -> dict[str, Any]:
    """
    Read the config from `path`, else $CONFIG_PATH, else start from an empty
    job list. Always returns a dict with "jobs", "timezone" and "http_trigger".
    """
    source = path or os.environ.get("CONFIG_PATH")
    if source:
        cfg = _parse_file(Path(source))
        if not isinstance(cfg, dict):
            raise ConfigError(f"Top-level config in {source} must be an object.")
    else:
        logger.info("No CONFIG_PATH; starting with no scheduled jobs.")
        cfg = {}

    if not isinstance(cfg.get("timezone"), str) or not cfg["timezone"].strip():
        cfg["timezone"] = os.environ.get("TZ", "UTC")
    http = cfg.get("http_trigger")
    cfg["http_trigger"] = {"enabled": True, "module": DEFAULT_HTTP_MODULE, **(http if isinstance(http, dict) else {})}
    raw_jobs = cfg.get("jobs")
    cfg["jobs"] = [_normalize_job(j, i) for i, j in enumerate(raw_jobs if isinstance(raw_jobs, list) else [])]
    return cfg


def _parse_file(path: Path) -> Any:
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ConfigError(f"Config file not found: {path}") from None
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e

    if path.suffix.lower() in (".yml", ".yaml"):
        try:
            return yaml.safe_load(text) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {path}: {e}") from e


def _normalize_job(job: Any, idx: int) -> dict[str, Any]:
    if not isinstance(job, dict):
        raise ConfigError(f"Job at index {idx} must be an object.")
    out = dict(job, id=job_id_for(job, idx))
    for name in _JOB_BOOL_FIELDS:
        if name in out:
            out[name] = as_bool(out[name], f"Job '{out['id']}': '{name}'")
    for name, minimum in _JOB_INT_FIELDS.items():
        if name in out:
            out[name] = as_int(out[name], f"Job '{out['id']}': '{name}'", minimum)
    return out


def job_id_for(job: dict[str, Any], idx: int) -> str:
    """First non-blank of id, name, module; else job_<idx>."""
    for key in ("id", "name", "module"):
        value = job.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return f"job_{idx}"


# ---- validation -------------------------------------------------------------


def validate(cfg: dict[str, Any]) -> None:
    """Raise ConfigError on the first problem found."""
    if not isinstance(cfg, dict):
        raise ConfigError("Config must be a dict.")
    jobs = cfg.get("jobs")
    if not isinstance(jobs, list):
        raise ConfigError("Top-level 'jobs' must be a list.")
    if "timezone" in cfg and not isinstance(cfg["timezone"], str):
        raise ConfigError("'timezone' must be a string.")
    _check_http_trigger(cfg.get("http_trigger"))

    seen: set[str] = set()
    for idx, job in enumerate(jobs):
        if not isinstance(job, dict):
            raise ConfigError(f"Job at index {idx} must be an object.")
        jid = job_id_for(job, idx)
        if jid in seen:
            raise ConfigError(f"Duplicate job id '{jid}'.")
        seen.add(jid)
        _check_job(job, jid)


def _check_job(job: dict[str, Any], jid: str) -> None:
    module = job.get("module")
    if not isinstance(module, str) or not module.strip():
        raise ConfigError(f"Job '{jid}': 'module' must be a non-empty string.")

    trigger = job.get("trigger")
    if not isinstance(trigger, dict):
        raise ConfigError(f"Job '{jid}': a 'trigger' object is required.")
    kinds = [k for k in _TRIGGER_CHECKS if trigger.get(k) is not None]
    if len(kinds) != 1:
        raise ConfigError(f"Job '{jid}': exactly one trigger required among {', '.join(_TRIGGER_CHECKS)}.")
    _TRIGGER_CHECKS[kinds[0]](trigger[kinds[0]], jid)

    for name in _JOB_BOOL_FIELDS:
        if name in job:
            as_bool(job[name], f"Job '{jid}': '{name}'")
    for name, minimum in _JOB_INT_FIELDS.items():
        if name in job:
            as_int(job[name], f"Job '{jid}': '{name}'", minimum)
    if not isinstance(job.get("kwargs", {}), dict):
        raise ConfigError(f"Job '{jid}': 'kwargs' must be an object.")
    for name in _JOB_STR_FIELDS:
        if name in job and not isinstance(job[name], str):
            raise ConfigError(f"Job '{jid}': '{name}' must be a string.")


def _check_interval(value: Any, jid: str) -> None:
    if not isinstance(value, dict):
        raise ConfigError(f"Job '{jid}': interval must be an object like {{'hours': 6}}.")
    for unit in _INTERVAL_UNITS.intersection(value):
        as_int(value[unit], f"Job '{jid}': interval.{unit}")


def _check_cron(value: Any, jid: str) -> None:
    if not isinstance(value, (str, dict)):
        raise ConfigError(f"Job '{jid}': cron must be a crontab string or an object.")


def _check_date(value: Any, jid: str) -> None:
    run_at = value.get("run_at") if isinstance(value, dict) else value
    if not run_at or (isinstance(run_at, str) and not run_at.strip()):
        raise ConfigError(f"Job '{jid}': date requires a non-empty run_at.")


def _check_daily_time(value: Any, jid: str) -> None:
    times = value.get("time") if isinstance(value, dict) else value
    if isinstance(times, str):
        times = [times]
    if not isinstance(times, list) or not times:
        raise ConfigError(f"Job '{jid}': daily_time needs 'HH:MM' or a list of them.")
    for t in times:
        match = _HHMM_RE.match(t.strip()) if isinstance(t, str) else None
        if match is None:
            raise ConfigError(f"Job '{jid}': daily_time {t!r} must look like HH:MM[:SS] (24h).")
        hour, minute, second = (int(g or 0) for g in match.groups())
        if hour > 23 or minute > 59 or second > 59:
            raise ConfigError(f"Job '{jid}': daily_time {t!r} out of range (00:00..23:59).")


_TRIGGER_CHECKS: dict[str, Callable[[Any, str], None]] = {
    "cron": _check_cron,
    "interval": _check_interval,
    "date": _check_date,
    "daily_time": _check_daily_time,
}


def _check_http_trigger(http: Any) -> None:
    if http is None:
        return
    if not isinstance(http, dict):
        raise ConfigError("'http_trigger' must be an object.")
    if "enabled" in http:
        as_bool(http["enabled"], "http_trigger.enabled")
    if "port" in http and as_int(http["port"], "http_trigger.port") > 65535:
        raise ConfigError("http_trigger.port must be <= 65535.")
    for name in ("host", "module"):
        if name in http and not (isinstance(http[name], str) and http[name].strip()):
            raise ConfigError(f"http_trigger.{name} must be a non-empty string.")
