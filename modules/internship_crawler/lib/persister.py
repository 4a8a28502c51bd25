from __future__ import annotations

import logging
from datetime import datetime, timedelta

from . import logging_bridge
from .db import StorageError, Store
from .models import DEFAULT_LOCATION, ClassifiedPosting, PersistedJob, RunStatistics
from .sanitize import strip_personal_data
from .utils import now_utc, to_iso

log = logging.getLogger(__name__)

JOB_TTL = timedelta(days=30)
DEFAULT_DESCRIPTION = "See job posting for full details."
SCRAPED = "scraped"

ADDED = "added"
SKIPPED = "skipped"
ERROR = "error"


def build_job(
    company_id: int,
    classified: ClassifiedPosting,
    *,
    source: str = SCRAPED,
    now: datetime | None = None,
) -> PersistedJob:
    """Sanitize text fields and apply insert-time defaults (location, type, 30-day expiry)."""
    p = classified.posting
    created = now or now_utc()
    return PersistedJob(
        company_id=company_id,
        title=strip_personal_data(p.title, identifiers_only=True) or p.title,
        description=strip_personal_data(p.description or DEFAULT_DESCRIPTION) or DEFAULT_DESCRIPTION,
        location=strip_personal_data(p.location or DEFAULT_LOCATION) or DEFAULT_LOCATION,
        work_arrangement=p.work_arrangement or "onsite",
        salary_min=p.salary_min,
        salary_max=p.salary_max,
        application_url=p.url,
        source=source,
        created_at=to_iso(created),
        expires_at=to_iso(created + JOB_TTL),
    )


def persist_posting(
    store: Store,
    company_id: int,
    classified: ClassifiedPosting,
    stats: RunStatistics,
    *,
    company: str,
    source: str = SCRAPED,
    now: datetime | None = None,
) -> str:
    """
    Insert a classified internship unless (company_id, title) already exists.

    Returns "added", "skipped" (duplicate) or "error" (storage failure,
    recorded on stats.errors). Raises ValueError for a posting the
    classifier rejected; those must never reach storage.
    """
    if not classified.is_internship:
        raise ValueError(f"refusing to persist non-internship posting {classified.posting.title!r}")

    job = build_job(company_id, classified, source=source, now=now)
    try:
        if store.job_exists(company_id, job.title):
            stats.jobs_skipped += 1
            return SKIPPED
        if not store.insert_job(job):
            # Lost a race with a concurrent run; the row is there either way.
            stats.jobs_skipped += 1
            return SKIPPED
    except StorageError as e:
        log.warning("storage error for %s / %r: %s", company, job.title, e)
        logging_bridge.error({
            "component": "internship_crawler.persister",
            "op": "persist_posting",
            "company": company,
            "title": job.title,
            "error": str(e),
        })
        stats.record_error(company, str(e))
        return ERROR

    stats.jobs_added += 1
    return ADDED
