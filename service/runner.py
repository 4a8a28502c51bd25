# service/runner.py
"""
Run one module's `run(**kwargs)` once, from any trigger (scheduler, HTTP,
CLI), and leave one activity record behind.

Modules return None, a plain-text report, or a meta dict that may carry
'message', 'subject' and 'report'. Exceptions from the module propagate to
the caller after the activity record is written.
"""

from __future__ import annotations

import importlib
import json
import logging
import os
import time
import uuid
from collections.abc import Callable, Mapping
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from service.logging_utils import write_activity_log

log = logging.getLogger(__name__)

_TRUE_WORDS = {"true", "t", "yes", "y", "on"}
_FALSE_WORDS = {"false", "f", "no", "n", "off"}


@dataclass
class RunResult:
    ok: bool
    message: str
    report: str | None = None
    meta: dict[str, Any] | None = None
    subject: str | None = None

    @classmethod
    def from_value(cls, value: Any) -> RunResult:
        if value is None:
            return cls(ok=True, message="OK")
        if isinstance(value, str):
            return cls(ok=True, message="OK", report=value)
        if isinstance(value, dict):
            report = value.get("report")
            return cls(
                ok=True,
                message=str(value.get("message", "OK")),
                report=report if isinstance(report, str) else None,
                meta=value,
                subject=value.get("subject"),
            )
        raise TypeError(f"module returned {type(value).__name__}; expected None, str or dict")

    def public_meta(self) -> dict[str, Any]:
        """meta without the bulky plain-text report (for logs and HTTP bodies)."""
        return {k: v for k, v in (self.meta or {}).items() if k != "report"}


# ---- kwargs normalization ---------------------------------------------------


def _coerce(value: str) -> Any:
    """'true' -> True, '3' -> 3, '1.5' -> 1.5, '{...}'/'[...]' -> parsed JSON, else the stripped string."""
    s = value.strip()
    if s[:1] in ("{", "[") and s[-1:] in ("}", "]"):
        try:
            return json.loads(s)
        except json.JSONDecodeError:
            return s
    low = s.lower()
    if low in _TRUE_WORDS:
        return True
    if low in _FALSE_WORDS:
        return False
    for number in (int, float):
        try:
            return number(s)
        except ValueError:
            continue
    return s


def normalize_kwargs(kwargs: Mapping[str, Any] | None) -> dict[str, Any]:
    """
    Prepare config/CLI/HTTP kwargs for module.run(**kwargs).

    - `<name>_env: "VAR"` becomes `<name>: os.environ["VAR"]` (skipped when
      VAR is unset), so secrets and paths can stay out of config files.
    - Other string values are coerced with _coerce(); non-strings pass through.
    """
    out: dict[str, Any] = {}
    from_env: dict[str, Any] = {}
    for key, value in (kwargs or {}).items():
        if key.endswith("_env") and isinstance(value, str):
            resolved = os.getenv(value.strip())
            if resolved is not None:
                from_env[key[: -len("_env")]] = _coerce(resolved)
            continue
        out[key] = _coerce(value) if isinstance(value, str) else value
    # Explicit values win over env-resolved ones.
    return {**from_env, **out}


def _resolve_callable(module_path: str) -> Callable[..., Any]:
    """Import module and return its `run` callable."""
    mod = importlib.import_module(module_path)
    run = getattr(mod, "run", None)
    if not callable(run):
        raise AttributeError(f"Module {module_path!r} does not define a callable `run(**kwargs)`.")
    return run


def _call_with_timeout(fn: Callable[..., Any], kwargs: dict[str, Any], timeout_sec: int | None) -> Any:
    """
    Run fn(**kwargs) on a worker thread. On timeout the worker is abandoned,
    not killed, and TimeoutError is raised.
    """
    pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="runner")
    try:
        fut = pool.submit(fn, **kwargs)
        try:
            return fut.result(timeout=timeout_sec or None)
        except FutureTimeout:
            raise TimeoutError(f"Module run timed out after {timeout_sec}s") from None
    finally:
        pool.shutdown(wait=False)


# ---- Public API -------------------------------------------------------------


def run_module_once(
    module: str,
    kwargs: dict[str, object] | None = None,
    trigger_type: str = "scheduled",
    job_context: dict[str, object] | None = None,  # e.g. {"job_id": ..., "now_iso": ...}
    timeout_sec: int | None = None,
) -> tuple[RunResult, str]:
    """
    Execute `module.run(**kwargs)` once and write one activity record.

    Returns:
        (RunResult, run_id)
    Raises:
        Whatever the module raised (ConfigError, TimeoutError, ...), after
        logging; callers map that to an exit code or HTTP status.
    """
    run_id = uuid.uuid4().hex
    started_at = datetime.now(timezone.utc).astimezone().isoformat(timespec="seconds")
    kw = normalize_kwargs(kwargs)
    run_callable = _resolve_callable(module)

    error: Exception | None = None
    t0 = time.monotonic()
    try:
        result = RunResult.from_value(_call_with_timeout(run_callable, kw, timeout_sec))
    except Exception as e:
        error = e
        result = RunResult(ok=False, message=str(e) or type(e).__name__, meta={"exception_type": type(e).__name__})
    duration_ms = int((time.monotonic() - t0) * 1000)

    record = {
        "ts": datetime.now(timezone.utc).astimezone().isoformat(timespec="seconds"),
        "run_id": run_id,
        "module": module,
        "trigger_type": trigger_type,
        "ok": result.ok,
        "message": result.message,
        "duration_ms": duration_ms,
        "context": {**(job_context or {}), "started_at": started_at},
        "kwargs": {k: v for k, v in kw.items() if k != "stub_pages"},
        "meta": result.public_meta(),
    }
    try:
        write_activity_log(record)
    except OSError as e:
        log.error("write_activity_log failed: %s", e)

    if error is not None:
        raise error
    return result, run_id
