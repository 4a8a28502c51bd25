from __future__ import annotations

from typing import Any

from ..extractor import extract_work_arrangement
from ..models import DEFAULT_LOCATION, ApiListing, ExtractedPosting
from .base import RESULTS_PER_PAGE, ApiSource, plain_text, salary_range

API_BASE = "https://jooble.org/api"


class JoobleSource(ApiSource):
    """POST /api/{key} with a JSON search body. The salary arrives as free text."""

    name = "jooble"
    keywords = ("internship", "intern", "trainee")

    def configured(self) -> bool:
        return bool(self.settings.jooble_api_key)

    def fetch_page(self, keyword: str, page: int) -> list[ApiListing]:
        payload = {
            "keywords": keyword,
            "location": DEFAULT_LOCATION,
            "page": page,
            "ResultOnPage": RESULTS_PER_PAGE,
        }
        body = self._json(lambda: self.client.post_json(
            f"{API_BASE}/{self.settings.jooble_api_key}",
            payload,
            headers={"Accept": "application/json"},
            timeout=self.settings.timeout_s,
        ))
        jobs = body.get("jobs") or []
        return [listing for item in jobs if (listing := _listing(item)) is not None]


def _listing(item: Any) -> ApiListing | None:
    if not isinstance(item, dict):
        return None
    title = plain_text(item.get("title"))
    url = str(item.get("link") or "").strip()
    if not title or not url:
        return None
    snippet = plain_text(item.get("snippet"))
    salary_min, salary_max = salary_range(item.get("salary"))
    return ApiListing(
        company=plain_text(item.get("company")),
        posting=ExtractedPosting(
            title=title,
            url=url,
            location=plain_text(item.get("location")) or None,
            description=snippet or None,
            salary_min=salary_min,
            salary_max=salary_max,
            work_arrangement=extract_work_arrangement(f"{title} {snippet} {item.get('type') or ''}"),
            rule="api:jooble",
            confidence=1.0,
        ),
    )
