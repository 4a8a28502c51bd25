# service/scheduler.py
"""
APScheduler wiring for the crawler service.

Each configured job becomes one APScheduler job whose callable hands off to
runner.run_module_once(trigger_type="scheduled"). Jobs never overlap
(max_instances=1) and missed runs collapse into one (coalesce=True) unless
the job says otherwise.

Trigger blocks (exactly one key):
    {"interval": {"hours": 6, "jitter": 60}}
    {"cron": "0 2 * * *"}  or  {"cron": {"hour": 2, "day_of_week": "mon-fri"}}
    {"date": "2025-01-01T02:00:00+08:00"}  or  {"date": {"run_at": ..., "timezone": ...}}
    {"daily_time": "02:00"}  or  {"daily_time": {"time": ["02:00", "14:30"], "day_of_week": "mon-sat"}}

A block's own "timezone" overrides the service timezone.
"""
from __future__ import annotations

import logging
import os
import threading
import time as _time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta, timezone, tzinfo
from typing import Any
from zoneinfo import ZoneInfo

import pytz
from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.combining import OrTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from . import config_schema, runner
from .logging_utils import write_activity_log

LOG = logging.getLogger(__name__)

JOB_DEFAULTS = {"coalesce": True, "max_instances": 1}
DEFAULT_WORKERS = 4

_INTERVAL_UNITS = ("weeks", "days", "hours", "minutes", "seconds")
_CRON_KEYS = {"second", "minute", "hour", "day", "day_of_week", "month", "start_date", "end_date", "jitter", "timezone"}


@dataclass(frozen=True)
class ScheduledJob:
    id: str
    module: str
    trigger: BaseTrigger
    kwargs: dict[str, Any] = field(default_factory=dict)
    timeout_sec: int | None = None
    max_instances: int = 1
    coalesce: bool = True
    misfire_grace_time: int | None = None
    summary: str | None = None

    @classmethod
    def from_config(cls, raw: dict[str, Any], tz: tzinfo | str | None) -> ScheduledJob:
        """Raises ValueError when module or trigger is missing or malformed."""
        module = raw.get("module")
        if not module:
            raise ValueError("job needs a 'module'")
        if not raw.get("trigger"):
            raise ValueError(f"job {module!r} needs a 'trigger'")
        return cls(
            id=str(raw.get("id") or raw.get("name") or module),
            module=module,
            trigger=build_trigger(raw["trigger"], tz),
            kwargs=dict(raw.get("kwargs") or {}),
            timeout_sec=_opt_int(raw.get("timeout_sec")),
            max_instances=_opt_int(raw.get("max_instances")) or JOB_DEFAULTS["max_instances"],
            coalesce=bool(raw.get("coalesce", JOB_DEFAULTS["coalesce"])),
            misfire_grace_time=_opt_int(raw.get("misfire_grace_time")),
            summary=raw.get("summary") or raw.get("description"),
        )


class SchedulerController:
    """Handle returned by start(); the CLI uses it to wait on and stop the scheduler."""

    def __init__(self, scheduler: BackgroundScheduler) -> None:
        self._scheduler = scheduler
        self._stopped = threading.Event()

    def stop(self) -> None:
        if self._scheduler.running:
            LOG.info("Stopping scheduler (running crawls finish on their own).")
            self._scheduler.shutdown(wait=False)
        self._stopped.set()

    def join(self, timeout: float | None = None) -> bool:
        return self._stopped.wait(timeout=timeout)

    def get_job_ids(self) -> Iterable[str]:
        return [job.id for job in self._scheduler.get_jobs()]


def start(config_path: str | None = None, cfg: dict[str, Any] | None = None) -> SchedulerController:
    """Build a BackgroundScheduler from config, register its jobs and start it."""
    if cfg is None:
        cfg = config_schema.load_config(config_path)
    tz = service_timezone(cfg)
    workers = _opt_int(cfg.get("executor_workers")) or DEFAULT_WORKERS
    scheduler = BackgroundScheduler(
        timezone=tz,
        job_defaults=dict(JOB_DEFAULTS),
        executors={"default": ThreadPoolExecutor(workers)},
        jobstores={"default": MemoryJobStore()},
    )

    for raw in cfg.get("jobs", []):
        try:
            job = ScheduledJob.from_config(raw, tz)
        except ValueError as e:
            LOG.error("Job %r not scheduled: %s", raw.get("id") or raw.get("module"), e)
            continue
        register(scheduler, job)

    scheduler.start()
    LOG.info("Scheduler running in %s with %d job(s).", tz, len(scheduler.get_jobs()))
    return SchedulerController(scheduler)


def service_timezone(cfg: dict[str, Any]):
    """pytz zone for config['timezone'], then $TZ, then UTC."""
    name = cfg.get("timezone") or os.getenv("TZ") or "UTC"
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError:
        LOG.warning("Unknown timezone %r; using UTC", name)
        return pytz.UTC


# ---- triggers ---------------------------------------------------------------


def build_trigger(block: dict[str, Any], tz: tzinfo | str | None) -> BaseTrigger:
    if not isinstance(block, dict):
        raise ValueError("trigger must be an object")
    kinds = [k for k in _TRIGGER_BUILDERS if block.get(k) is not None]
    if len(kinds) != 1:
        raise ValueError(f"trigger needs exactly one of {sorted(_TRIGGER_BUILDERS)}, got {sorted(block)}")
    kind = kinds[0]
    return _TRIGGER_BUILDERS[kind](block[kind], _zone(tz))


def _zone(value: tzinfo | str | None) -> tzinfo | None:
    if value is None or value == "":
        return None
    return value if isinstance(value, tzinfo) else ZoneInfo(str(value))


def _block_zone(spec: dict[str, Any], fallback: tzinfo | None) -> tzinfo | None:
    return _zone(spec.get("timezone")) or fallback


def _interval(spec: Any, tz: tzinfo | None) -> IntervalTrigger:
    if not isinstance(spec, dict):
        raise ValueError("interval must be an object like {'minutes': 30}")
    extra = set(spec) - set(_INTERVAL_UNITS) - {"jitter", "timezone", "start_date", "end_date"}
    if extra:
        raise ValueError(f"interval: unknown field(s) {sorted(extra)}")

    amounts = {unit: _non_negative(spec, unit) for unit in _INTERVAL_UNITS if unit in spec}
    amounts = {unit: n for unit, n in amounts.items() if n}
    if not amounts:
        raise ValueError("interval must be longer than zero")
    options = {k: spec[k] for k in ("start_date", "end_date") if k in spec}
    if spec.get("jitter"):
        options["jitter"] = _non_negative(spec, "jitter")
    return IntervalTrigger(timezone=_block_zone(spec, tz), **amounts, **options)


def _cron(spec: Any, tz: tzinfo | None) -> CronTrigger:
    if isinstance(spec, str):
        if len(spec.split()) != 5:
            raise ValueError(f"crontab needs 5 fields: {spec!r}")
        return CronTrigger.from_crontab(spec, timezone=tz)
    if not isinstance(spec, dict):
        raise ValueError("cron must be a crontab string or an object")
    extra = set(spec) - _CRON_KEYS
    if extra:
        raise ValueError(f"cron: unknown field(s) {sorted(extra)}")
    fields = {k: v for k, v in spec.items() if k != "timezone"}
    # Unset time-of-day fields mean 0, not "every".
    for unit in ("second", "minute", "hour"):
        fields.setdefault(unit, 0)
    return CronTrigger(timezone=_block_zone(spec, tz), **fields)


def _date(spec: Any, tz: tzinfo | None) -> DateTrigger:
    if isinstance(spec, dict):
        run_at, tz = spec.get("run_at"), _block_zone(spec, tz)
    else:
        run_at = spec
    if run_at is None or run_at == "":
        raise ValueError("date trigger needs a run_at")

    if isinstance(run_at, datetime):
        when = run_at
    elif isinstance(run_at, (int, float)):
        when = datetime.fromtimestamp(run_at, tz=tz or timezone.utc)
    else:
        try:
            when = datetime.fromisoformat(str(run_at).replace("Z", "+00:00"))
        except ValueError:
            raise ValueError(f"date.run_at is not ISO-8601: {run_at!r}") from None
    if when.tzinfo is None:
        when = when.replace(tzinfo=tz)
    return DateTrigger(run_date=when, timezone=when.tzinfo or tz)


def _daily_time(spec: Any, tz: tzinfo | None) -> BaseTrigger:
    if isinstance(spec, str):
        spec = {"time": spec}
    if not isinstance(spec, dict):
        raise ValueError("daily_time must be 'HH:MM' or an object")
    extra = set(spec) - {"time", "day_of_week", "timezone"}
    if extra:
        raise ValueError(f"daily_time: unknown field(s) {sorted(extra)}")
    raw_times = spec.get("time")
    if not raw_times:
        raise ValueError("daily_time needs at least one time")
    if isinstance(raw_times, str):
        raw_times = [raw_times]

    zone = _block_zone(spec, tz)
    # One exact CronTrigger per time so hours and minutes never cross-multiply.
    triggers = [
        CronTrigger(hour=t.hour, minute=t.minute, second=t.second, day_of_week=spec.get("day_of_week"), timezone=zone)
        for t in sorted({_clock(str(s)) for s in raw_times})
    ]
    return triggers[0] if len(triggers) == 1 else OrTrigger(triggers)


def _clock(text: str) -> time:
    """'07:30' or '07:30:15' -> datetime.time; ValueError otherwise."""
    parts = text.strip().split(":")
    if len(parts) not in (2, 3) or not all(p.isdigit() for p in parts):
        raise ValueError(f"daily_time must be HH:MM or HH:MM:SS, got {text!r}")
    return time(*(int(p) for p in parts))


_TRIGGER_BUILDERS: dict[str, Callable[[Any, tzinfo | None], BaseTrigger]] = {
    "interval": _interval,
    "cron": _cron,
    "date": _date,
    "daily_time": _daily_time,
}


def preview_fire_times(trigger: BaseTrigger, tz, count: int = 6, start: datetime | None = None) -> list[datetime]:
    """The next `count` fire times strictly after `start` (default: now)."""
    cursor = start or datetime.now(tz=tz)
    previous = cursor
    out: list[datetime] = []
    while len(out) < count:
        nxt = trigger.get_next_fire_time(previous, cursor)
        if nxt is None:
            break
        out.append(nxt)
        previous, cursor = nxt, nxt + timedelta(microseconds=1)
    return out


# ---- jobs -------------------------------------------------------------------


def register(scheduler: BackgroundScheduler, job: ScheduledJob) -> None:
    """Add `job` to `scheduler`; SCHEDULER_PREVIEW=1 logs its upcoming fire times."""
    if os.getenv("SCHEDULER_PREVIEW") == "1":
        upcoming = preview_fire_times(job.trigger, scheduler.timezone, count=int(os.getenv("SCHEDULER_PREVIEW_COUNT", "6")))
        LOG.info("PREVIEW[%s]: %s", job.id, ", ".join(t.isoformat() for t in upcoming) or "(never)")

    scheduler.add_job(
        func=_job_callable(job),
        trigger=job.trigger,
        id=job.id,
        max_instances=job.max_instances,
        coalesce=job.coalesce,
        misfire_grace_time=job.misfire_grace_time,
        replace_existing=True,
    )
    LOG.debug("Registered %s -> %s (%s)", job.id, job.module, job.summary or job.trigger)


def _job_callable(job: ScheduledJob) -> Callable[[], None]:
    def fire() -> None:
        t0 = _time.monotonic()
        context = {"job_id": job.id, "module": job.module, "now_iso": datetime.now(timezone.utc).isoformat()}
        try:
            result, _ = runner.run_module_once(
                job.module,
                kwargs=dict(job.kwargs),
                timeout_sec=job.timeout_sec,
                trigger_type="scheduled",
                job_context=context,
            )
        except Exception:
            # A failed crawl must not take the scheduler thread down with it.
            LOG.exception("Job %s failed", job.id)
            _record_job_run(job, "error", _time.monotonic() - t0)
            return
        elapsed = _time.monotonic() - t0
        LOG.info("Job %s done in %.1fs: %s", job.id, elapsed, result.message)
        _record_job_run(job, "ok", elapsed, result.message)

    return fire


def _record_job_run(job: ScheduledJob, status: str, elapsed_s: float, message: str | None = None) -> None:
    try:
        write_activity_log({
            "ts": datetime.now().isoformat(timespec="seconds"),
            "component": "scheduler",
            "op": "job_run",
            "job_id": job.id,
            "module": job.module,
            "status": status,
            "duration_ms": int(elapsed_s * 1000),
            "summary": job.summary,
            "message": message,
        })
    except OSError as e:
        LOG.warning("job_run record for %s not written: %s", job.id, e)


def _non_negative(spec: dict[str, Any], key: str) -> int:
    try:
        n = int(spec[key])
    except (TypeError, ValueError):
        raise ValueError(f"{key} must be an integer, got {spec[key]!r}") from None
    if n < 0:
        raise ValueError(f"{key} must be >= 0, got {n}")
    return n


def _opt_int(value: Any) -> int | None:
    try:
        return None if value is None else int(value)
    except (TypeError, ValueError):
        return None
