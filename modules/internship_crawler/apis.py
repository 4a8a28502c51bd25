from __future__ import annotations

from typing import Any

from .lib import render
from .lib.api_sync import sync_once
from .lib.config import ApiSettings
from .lib.logging_bridge import activity as log_activity


def run(**kwargs: Any) -> dict[str, Any]:
    """
    Entry point for 'modules.internship_crawler.apis' (job-board API sync).

    Accepts kwargs, including:
      sqlite_path: str = "/app/local/state/internships.db"
      test_mode: bool = False        # 1 page per keyword instead of 5
      pages: int                     # explicit page count, 1..10
      sources: list[str] = ["adzuna", "jooble"]
      adzuna_app_id / adzuna_app_key / jooble_api_key   # else ADZUNA_APP_ID, ADZUNA_APP_KEY, JOOBLE_API_KEY

    Returns the same meta-only shape as the crawler's run().
    """
    settings = ApiSettings.from_env_and_kwargs(kwargs)

    log_activity({
        "component": "internship_crawler.apis",
        "op": "start",
        "sources": list(settings.sources),
        "pages": settings.pages,
        "test_mode": settings.test_mode,
    })

    stats = sync_once(settings)

    message = render.summary_message(stats, unit="sources")
    return {
        **stats.to_record(),
        "message": message,
        "subject": f"Internship API sync: {message}",
        "report": render.render_text(stats, heading="INTERNSHIP API SYNC SUMMARY", unit="Sources"),
    }
