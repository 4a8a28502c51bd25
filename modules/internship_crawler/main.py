from __future__ import annotations

from typing import Any

from .lib import render
from .lib.config import Settings
from .lib.engine import run_once as _run_engine
from .lib.logging_bridge import activity as log_activity


def run(**kwargs: Any) -> dict[str, Any]:
    """
    Entry point for the 'internship_crawler' module.

    Accepts kwargs (from scheduler/runner/CLI/HTTP trigger), including:
      companies_path: str = <package>/companies.json
      sqlite_path: str = "/app/local/state/internships.db"
      test_mode: bool = False        # only the first `test_limit` (3) companies
      fetcher: str = "browser"       # default kind; companies may override
      delay_seconds: float = 3.0
      respect_robots: bool = True
      fetch_retries: int = 0        # 0..5

    Returns a meta-only dict (no HTML): the run-log record plus 'message',
    'subject' and a plain-text 'report'.

    Raises:
      ConfigError: before any company is visited, if the settings are invalid.
    """
    # Build validated settings from env + kwargs
    settings = Settings.from_env_and_kwargs(kwargs)

    log_activity({
        "component": "internship_crawler.main",
        "op": "start",
        "companies_path": settings.companies_path,
        "companies": [c.name for c in settings.selected_companies()],
        "flags": {
            "test_mode": settings.test_mode,
            "fetcher": settings.fetcher,
            "respect_robots": settings.respect_robots,
        },
    })

    stats = _run_engine(settings)

    message = render.summary_message(stats)
    return {
        **stats.to_record(),
        "message": message,
        "subject": f"Internship crawl: {message}",
        "report": render.render_text(stats),
    }
