# service/cli.py
"""
User-facing command-line entrypoints for the container.

Subcommands
-----------
crawl [--test] [--companies PATH] [--db PATH] [--fetcher KIND] [--kwargs k=v ...]
    - Runs the internship crawler once via runner.run_module_once(...)
    - Prints the plain-text run report; exit 2 on a configuration error

sync-apis [--test] [--db PATH] [--sources adzuna,jooble] [--kwargs k=v ...]
    - Pulls internship listings from the job-board APIs once (keys from env)

serve
    - Starts the APScheduler service loop via service.scheduler.start()
    - Starts the HTTP trigger (POST /api/scraper) via service.trigger_server.start()
    - Registers signal handlers for graceful shutdown of both components

run MODULE [--kwargs k=v ...] [--print-report]
    - Executes any module ad-hoc via runner.run_module_once(...)

list-companies [--companies PATH]
    - Prints the company directory (name, fetcher, enabled, careers URL)

list-jobs
    - Loads config via config_schema.load_config() and prints configured jobs

validate-config [--companies PATH]
    - Validates the service config (and optionally a company directory);
      returns nonzero on error
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import signal
import sys
import threading
import time
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from modules.internship_crawler.lib.config import DEFAULT_COMPANIES_PATH
from modules.internship_crawler.lib.config import ConfigError as CrawlConfigError
from modules.internship_crawler.lib.config import load_companies
from service import config_schema as _config_schema
from service import logging_utils as L
from service import runner as _runner
from service import scheduler as _scheduler
from service import trigger_server as _trigger_server

LOG = logging.getLogger("service.cli")

CRAWLER_MODULE = "modules.internship_crawler"
API_SYNC_MODULE = "modules.internship_crawler.apis"

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG = 2


# ----------------------------- Logging setup ---------------------------------
def _ensure_logging() -> None:
    """Initialize a reasonable logging setup if none exists yet."""
    root = logging.getLogger()
    if not root.handlers:
        level = os.getenv("LOG_LEVEL", "INFO").upper()
        logging.basicConfig(
            level=getattr(logging, level, logging.INFO),
            format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        )


# ------------------------------- Helpers -------------------------------------
def _kv_pairs(pairs: Iterable[str]) -> dict[str, str]:
    """['a=1', 'b=x'] -> {'a': '1', 'b': 'x'}; the runner coerces the values."""
    out: dict[str, str] = {}
    for item in pairs:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise argparse.ArgumentTypeError(f"--kwargs items look like key=value, got {item!r}")
        out[key.strip()] = value.strip()
    return out


def _print_table(rows: Iterable[tuple[str, ...]], headers: tuple[str, ...]) -> None:
    rows = list(rows)
    widths = [max(len(str(cell)) for cell in column) for column in zip(headers, *rows)]
    rule = "+" + "+".join("-" * (w + 2) for w in widths) + "+"

    def line(cells: tuple[str, ...]) -> str:
        return "| " + " | ".join(str(c).ljust(w) for c, w in zip(cells, widths)) + " |"

    print("\n".join([rule, line(headers), rule, *(line(r) for r in rows), rule]))


def _job_rows(cfg: dict[str, Any]) -> list[tuple[str, str]]:
    rows = []
    for idx, job in enumerate(cfg.get("jobs") or []):
        what = job.get("summary") or job.get("description") or json.dumps(job.get("trigger"), default=str)
        rows.append((_config_schema.job_id_for(job, idx), f"{job.get('module')}: {what}"))
    return rows


def _stamp() -> str:
    return datetime.now().astimezone().isoformat(timespec="seconds")


def _run_module(module: str, kwargs: dict[str, Any], where: str, print_report: bool) -> int:
    """Shared body of `crawl` and `run`: one runner call, report on stdout, errors on stderr."""
    t0 = time.monotonic()
    try:
        result, run_id = _runner.run_module_once(module, kwargs=kwargs, trigger_type="adhoc")
    except KeyboardInterrupt:
        return 130
    except CrawlConfigError as e:
        print(f"ERROR: configuration invalid: {e}", file=sys.stderr)
        L.write_error_log({"ts": _stamp(), "component": where, "op": "config", "error": str(e)})
        return EXIT_CONFIG
    except Exception as e:
        LOG.exception("%s failed", module)
        print(f"FAILURE: {e}", file=sys.stderr)
        L.write_error_log({
            "ts": _stamp(),
            "component": where,
            "op": "run",
            "module": module,
            "kwargs": kwargs,
            "error": repr(e),
            "duration_ms": int((time.monotonic() - t0) * 1000),
        })
        return EXIT_FAILURE

    if print_report and result.report:
        print(result.report)
    print(f"DONE: {result.message} (run_id={run_id})")
    return EXIT_OK


# ------------------------------ Subcommands ----------------------------------
def cmd_crawl(args: argparse.Namespace) -> int:
    try:
        kwargs: dict[str, Any] = _kv_pairs(args.kwargs or [])
    except argparse.ArgumentTypeError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_CONFIG
    # Explicit flags win over --kwargs pairs.
    flags = {"companies_path": args.companies, "sqlite_path": args.db, "fetcher": args.fetcher}
    kwargs.update({k: v for k, v in flags.items() if v})
    if args.test:
        kwargs["test_mode"] = True
    return _run_module(CRAWLER_MODULE, kwargs, "cli.crawl", print_report=True)


def cmd_sync_apis(args: argparse.Namespace) -> int:
    try:
        kwargs: dict[str, Any] = _kv_pairs(args.kwargs or [])
    except argparse.ArgumentTypeError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_CONFIG
    if args.db:
        kwargs["sqlite_path"] = args.db
    if args.sources:
        kwargs["sources"] = args.sources
    if args.test:
        kwargs["test_mode"] = True
    return _run_module(API_SYNC_MODULE, kwargs, "cli.sync_apis", print_report=True)


def cmd_run(args: argparse.Namespace) -> int:
    try:
        kwargs = _kv_pairs(args.kwargs or [])
    except argparse.ArgumentTypeError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_CONFIG
    return _run_module(args.module, kwargs, "cli.run", print_report=args.print_report)


def cmd_list_companies(args: argparse.Namespace) -> int:
    path = args.companies or os.getenv("CRAWLER_COMPANIES_PATH") or DEFAULT_COMPANIES_PATH
    try:
        companies = load_companies(path)
    except CrawlConfigError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_CONFIG
    if not companies:
        print(f"No companies found in {path}.")
        return EXIT_OK
    _print_table(
        ((c.name, c.fetcher or "(default)", "yes" if c.enabled else "no", c.careers_url) for c in companies),
        headers=("COMPANY", "FETCHER", "ENABLED", "CAREERS URL"),
    )
    return EXIT_OK


def cmd_list_jobs(args: argparse.Namespace) -> int:
    try:
        cfg = _config_schema.load_config(args.config)
    except _config_schema.ConfigError as e:
        print(f"ERROR: failed to list jobs: {e}", file=sys.stderr)
        return EXIT_CONFIG
    rows = _job_rows(cfg)
    if not rows:
        print("No jobs found in config.")
        return EXIT_OK
    _print_table(rows, headers=("JOB", "DETAILS"))
    return EXIT_OK


def cmd_validate_config(args: argparse.Namespace) -> int:
    try:
        cfg = _config_schema.load_config(args.config)
        _config_schema.validate(cfg)
        if args.companies:
            companies = load_companies(args.companies)
            if not any(c.enabled for c in companies):
                raise CrawlConfigError(f"No enabled companies in {args.companies}")
    except (_config_schema.ConfigError, CrawlConfigError) as e:
        LOG.error("Configuration validation failed: %s", e)
        print(f"ERROR: configuration invalid: {e}", file=sys.stderr)
        return EXIT_CONFIG
    print("OK: configuration is valid.")
    return EXIT_OK


def cmd_serve(args: argparse.Namespace) -> int:
    """
    Scheduler plus HTTP trigger, until SIGINT/SIGTERM. Config problems exit
    with 2 before anything starts.
    """
    try:
        cfg = _config_schema.load_config(args.config)
        _config_schema.validate(cfg)
    except _config_schema.ConfigError as e:
        print(f"ERROR: configuration invalid: {e}", file=sys.stderr)
        return EXIT_CONFIG

    stop_requested = threading.Event()
    services: dict[str, Any] = {}

    def _on_signal(signum, _frame) -> None:
        LOG.info("Signal %s received; stopping.", signum)
        stop_requested.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        signal.signal(sig, _on_signal)

    L.write_activity_log({"ts": _stamp(), "component": "cli.serve", "op": "start"})
    rc = EXIT_OK
    try:
        services["scheduler"] = _scheduler.start(cfg=cfg)
        LOG.info("Scheduled jobs: %s", ", ".join(services["scheduler"].get_job_ids()) or "(none)")

        http_cfg = cfg["http_trigger"]
        if http_cfg.get("enabled", True):
            module = http_cfg.get("module") or CRAWLER_MODULE
            base_kwargs = _kwargs_for_module(cfg, module)
            services["trigger_server"] = _trigger_server.start(
                host=http_cfg.get("host"),
                port=http_cfg.get("port"),
                module=module,
                kwargs_getter=lambda: dict(base_kwargs),
            )

        while not stop_requested.wait(timeout=0.5):
            pass
    except KeyboardInterrupt:
        rc = 130
    except Exception:
        LOG.exception("serve crashed")
        rc = EXIT_FAILURE
    finally:
        # Stop intake first, then the scheduler.
        for name in ("trigger_server", "scheduler"):
            _safe_stop(name, services.get(name))
        L.write_activity_log({"ts": _stamp(), "component": "cli.serve", "op": "stop", "exit_code": rc})
    return rc


def _kwargs_for_module(cfg: dict[str, Any], module: str) -> dict[str, Any]:
    """HTTP-triggered runs reuse the kwargs of the first scheduled job for the same module."""
    job = next((j for j in cfg.get("jobs") or [] if j.get("module") == module), {})
    return dict(job.get("kwargs") or {})


def _safe_stop(name: str, handle: Any) -> None:
    if handle is None:
        return
    try:
        handle.stop()
        handle.join(timeout=10.0)
    except Exception:  # pragma: no cover
        LOG.exception("Could not stop %s cleanly", name)


# ------------------------------- Argparse ------------------------------------
def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="python -m service.cli",
        description="Internship crawler service tools",
    )
    p.add_argument(
        "--config",
        help="Path to service config file (fallbacks to CONFIG_PATH env or an empty default).",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    # crawl
    sp = sub.add_parser("crawl", help="Run the internship crawler once.")
    sp.add_argument("--test", action="store_true", help="Test mode: only the first few enabled companies.")
    sp.add_argument("--companies", help="Path to the company directory JSON file.")
    sp.add_argument("--db", help="Path to the SQLite job store.")
    sp.add_argument("--fetcher", help="Default fetcher kind (browser, static, stub).")
    sp.add_argument("--kwargs", metavar="k=v", nargs="*", help="Extra crawler settings (JSON values supported).")
    sp.set_defaults(func=cmd_crawl)

    # sync-apis
    sp = sub.add_parser("sync-apis", help="Pull internship listings from the Adzuna and Jooble APIs once.")
    sp.add_argument("--test", action="store_true", help="Test mode: one result page per keyword.")
    sp.add_argument("--db", help="Path to the SQLite job store.")
    sp.add_argument("--sources", help="Comma-separated providers (default: adzuna,jooble).")
    sp.add_argument("--kwargs", metavar="k=v", nargs="*", help="Extra sync settings (JSON values supported).")
    sp.set_defaults(func=cmd_sync_apis)

    # serve
    sp = sub.add_parser("serve", help="Run the scheduler loop and the HTTP trigger.")
    sp.set_defaults(func=cmd_serve)

    # run
    sp = sub.add_parser("run", help="Execute a module ad-hoc via runner.run_module_once().")
    sp.add_argument("module", help="Dotted module path to run (e.g., modules.internship_crawler).")
    sp.add_argument("--kwargs", metavar="k=v", nargs="*", help="Extra keyword arguments for the module.")
    sp.add_argument("--print-report", action="store_true", help="Print the plain-text report, if any.")
    sp.set_defaults(func=cmd_run)

    # list-companies
    sp = sub.add_parser("list-companies", help="Print the company directory.")
    sp.add_argument("--companies", help="Path to the company directory JSON file.")
    sp.set_defaults(func=cmd_list_companies)

    # list-jobs
    sp = sub.add_parser("list-jobs", help="Print all scheduled jobs from config.")
    sp.set_defaults(func=cmd_list_jobs)

    # validate-config
    sp = sub.add_parser("validate-config", help="Verify configuration correctness.")
    sp.add_argument("--companies", help="Also validate this company directory JSON file.")
    sp.set_defaults(func=cmd_validate_config)

    return p


# --------------------------------- Main --------------------------------------
def main(argv: Iterable[str] | None = None) -> int:
    _ensure_logging()
    parser = _build_parser()
    args = parser.parse_args(args=list(argv) if argv is not None else None)
    return args.func(args)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
