from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

DEFAULT_LOCATION = "Singapore"


@dataclass(frozen=True)
class CompanyTarget:
    """
    One company to crawl, as listed in the company directory file.
    - fetcher: optional per-company fetcher kind ("browser" for JS-heavy sites,
               "static" for plain HTML). None means "use the run default".
    """

    name: str
    careers_url: str
    website: str | None = None
    industry: str | None = None
    size: str | None = None
    logo_url: str | None = None
    enabled: bool = True
    fetcher: str | None = None


@dataclass(frozen=True)
class ExtractedPosting:
    """
    A candidate posting pulled off one careers page (pre-classification).
    Never persisted directly.
    """

    title: str
    url: str
    location: str | None = None
    description: str | None = None
    salary_min: int | None = None
    salary_max: int | None = None
    work_arrangement: str | None = None
    rule: str = ""
    confidence: float = 0.0


@dataclass(frozen=True)
class ClassifiedPosting:
    posting: ExtractedPosting
    is_internship: bool
    matched_keyword: str | None = None


@dataclass(frozen=True)
class ApiListing:
    """One job returned by a job-board API, with the employer name it was listed under."""

    company: str
    posting: ExtractedPosting


@dataclass(frozen=True)
class PersistedJob:
    """
    Row written to the jobs table. Dedupe key: (company_id, title).
    """

    company_id: int
    title: str
    description: str
    application_url: str
    created_at: str
    expires_at: str
    location: str = DEFAULT_LOCATION
    job_type: str = "internship"
    work_arrangement: str = "onsite"
    salary_min: int | None = None
    salary_max: int | None = None
    source: str = "scraped"
    status: str = "active"
    is_active: bool = True


@dataclass(frozen=True)
class CompanyError:
    company: str
    error: str


class CompanyState(str, Enum):
    PENDING = "pending"
    FETCHING = "fetching"
    EXTRACTING = "extracting"
    CLASSIFYING = "classifying"
    PERSISTING = "persisting"
    DONE = "done"
    SKIPPED = "skipped"


class RunState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETE = "complete"


@dataclass
class CompanyOutcome:
    company: str
    state: CompanyState = CompanyState.PENDING
    found: int = 0
    added: int = 0
    skipped: int = 0
    rejected: int = 0
    error: str | None = None


@dataclass
class RunStatistics:
    """
    Counters for one crawl run. Created by the engine at run start and
    returned to the caller; never shared between runs.
    """

    companies_processed: int = 0
    jobs_found: int = 0
    jobs_added: int = 0
    jobs_skipped: int = 0
    jobs_rejected: int = 0
    errors: list[CompanyError] = field(default_factory=list)
    outcomes: list[CompanyOutcome] = field(default_factory=list)
    state: RunState = RunState.IDLE
    started_at: str | None = None
    completed_at: str | None = None

    def record_error(self, company: str, error: str) -> None:
        self.errors.append(CompanyError(company=company, error=error))

    @property
    def status(self) -> str:
        """Run-log status: 'running' until finished, then 'completed'."""
        return "completed" if self.state is RunState.COMPLETE else "running"

    def to_record(self) -> dict[str, Any]:
        """Flat run-log record (what goes into scraper_logs / the activity log)."""
        return {
            "status": self.status,
            "companies_processed": self.companies_processed,
            "jobs_found": self.jobs_found,
            "jobs_added": self.jobs_added,
            "jobs_skipped": self.jobs_skipped,
            "jobs_rejected": self.jobs_rejected,
            "errors": [asdict(e) for e in self.errors],
            "started_at": self.started_at,
            "completed_at": self.completed_at,
        }
