from __future__ import annotations

import math
from typing import Any

from ..extractor import extract_work_arrangement
from ..models import ApiListing, ExtractedPosting
from .base import RESULTS_PER_PAGE, ApiSource, plain_text

API_BASE = "https://api.adzuna.com/v1/api/jobs"
COUNTRY = "sg"


class AdzunaSource(ApiSource):
    """
    GET /jobs/sg/search/{page}. Salaries are reported per year and stored
    per month.
    """

    name = "adzuna"
    keywords = ("intern", "internship", "trainee", "graduate program")

    def configured(self) -> bool:
        return bool(self.settings.adzuna_app_id and self.settings.adzuna_app_key)

    def fetch_page(self, keyword: str, page: int) -> list[ApiListing]:
        params = {
            "app_id": self.settings.adzuna_app_id,
            "app_key": self.settings.adzuna_app_key,
            "results_per_page": RESULTS_PER_PAGE,
            "what": keyword,
            "content-type": "application/json",
        }
        body = self._json(lambda: self.client.get(
            f"{API_BASE}/{COUNTRY}/search/{page}",
            params=params,
            headers={"Accept": "application/json"},
            timeout=self.settings.timeout_s,
        ))
        results = body.get("results") or []
        return [listing for item in results if (listing := _listing(item)) is not None]


def _listing(item: Any) -> ApiListing | None:
    if not isinstance(item, dict):
        return None
    title = plain_text(item.get("title"))
    url = str(item.get("redirect_url") or "").strip()
    if not title or not url:
        return None
    description = plain_text(item.get("description"))
    return ApiListing(
        company=plain_text(_display_name(item.get("company"))),
        posting=ExtractedPosting(
            title=title,
            url=url,
            location=plain_text(_display_name(item.get("location"))) or None,
            description=description or None,
            salary_min=monthly(item.get("salary_min")),
            salary_max=monthly(item.get("salary_max")),
            work_arrangement=extract_work_arrangement(f"{title} {description}"),
            rule="api:adzuna",
            confidence=1.0,
        ),
    )


def _display_name(value: Any) -> Any:
    return value.get("display_name") if isinstance(value, dict) else None


def monthly(annual: Any) -> int | None:
    """Annual figure -> whole monthly figure, halves rounded up."""
    if isinstance(annual, bool):
        return None
    try:
        value = float(annual)
    except (TypeError, ValueError):
        return None
    if value <= 0 or math.isnan(value):
        return None
    return int(math.floor(value / 12 + 0.5))
