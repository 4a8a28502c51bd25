from __future__ import annotations

import contextlib
import json
import os
import sqlite3

from .logging_bridge import error as log_error
from .models import DEFAULT_LOCATION, CompanyTarget, PersistedJob, RunStatistics


class StorageError(Exception):
    """A storage read/write failed (locked DB, constraint, I/O)."""


# ---- Store -------------------------------------------------------------------


class Store:
    """
    SQLite-backed company store, job store and run log.

    One connection per run, shared across companies. Writes are autocommit;
    each company's rows are independent so no transaction spans companies.
    Uniqueness (companies.name, jobs(company_id, title)) is enforced by the
    schema, so overlapping runs cannot create duplicates.
    """

    def __init__(self, sqlite_path: str) -> None:
        self.sqlite_path = sqlite_path
        self._conn: sqlite3.Connection | None = None

    # ---- lifecycle ----
    def open(self) -> Store:
        if self._conn is None:
            try:
                _ensure_dir(self.sqlite_path)
                conn = _connect(self.sqlite_path)
                _apply_pragmas(conn)
                _ensure_schema(conn)
            except (sqlite3.Error, OSError) as e:
                raise StorageError(f"cannot open {self.sqlite_path}: {e}") from e
            self._conn = conn
        return self

    def close(self) -> None:
        if self._conn is not None:
            with contextlib.suppress(sqlite3.Error):
                self._conn.close()
            self._conn = None

    def __enter__(self) -> Store:
        return self.open()

    def __exit__(self, *exc: object) -> None:
        self.close()

    @property
    def conn(self) -> sqlite3.Connection:
        return self.open()._conn  # type: ignore[return-value]

    # ---- companies ----
    def upsert_company(self, company: CompanyTarget) -> int:
        """
        Create the company if absent (keyed by exact name) and return its id.
        Existing rows are left untouched.
        """
        try:
            self.conn.execute(
                """
                INSERT INTO companies (name, website, careers_url, industry, size, logo_url, location, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
                ON CONFLICT(name) DO NOTHING
                """,
                (
                    company.name,
                    company.website,
                    company.careers_url or None,
                    company.industry,
                    company.size,
                    company.logo_url,
                    DEFAULT_LOCATION,
                ),
            )
            row = self.conn.execute("SELECT id FROM companies WHERE name = ?", (company.name,)).fetchone()
        except sqlite3.Error as e:
            self._log("upsert_company", e, company=company.name)
            raise StorageError(f"upsert_company({company.name!r}) failed: {e}") from e
        if row is None:
            raise StorageError(f"company {company.name!r} missing after upsert")
        return int(row[0])

    # ---- jobs ----
    def job_exists(self, company_id: int, title: str) -> bool:
        try:
            row = self.conn.execute(
                "SELECT 1 FROM jobs WHERE company_id = ? AND title = ? LIMIT 1",
                (company_id, title),
            ).fetchone()
        except sqlite3.Error as e:
            self._log("job_exists", e, company_id=company_id)
            raise StorageError(f"job_exists failed: {e}") from e
        return row is not None

    def insert_job(self, job: PersistedJob) -> bool:
        """
        INSERT OR IGNORE against UNIQUE(company_id, title).
        Returns True if a row was written, False if it already existed.
        """
        try:
            cur = self.conn.execute(
                """
                INSERT OR IGNORE INTO jobs (
                  company_id, title, description, location, job_type, work_arrangement,
                  salary_min, salary_max, application_url, source, status, is_active,
                  created_at, expires_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    job.company_id,
                    job.title,
                    job.description,
                    job.location,
                    job.job_type,
                    job.work_arrangement,
                    job.salary_min,
                    job.salary_max,
                    job.application_url,
                    job.source,
                    job.status,
                    1 if job.is_active else 0,
                    job.created_at,
                    job.expires_at,
                ),
            )
        except sqlite3.Error as e:
            self._log("insert_job", e, company_id=job.company_id)
            raise StorageError(f"insert_job failed: {e}") from e
        return cur.rowcount == 1

    # ---- run log ----
    def record_run(self, stats: RunStatistics) -> int:
        """Append one scraper_logs row for a finished run; returns its id."""
        rec = stats.to_record()
        try:
            cur = self.conn.execute(
                """
                INSERT INTO scraper_logs (
                  started_at, completed_at, status, companies_processed,
                  jobs_found, jobs_added, jobs_skipped, jobs_rejected, errors
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    rec["started_at"],
                    rec["completed_at"],
                    rec["status"],
                    rec["companies_processed"],
                    rec["jobs_found"],
                    rec["jobs_added"],
                    rec["jobs_skipped"],
                    rec["jobs_rejected"],
                    json.dumps(rec["errors"], ensure_ascii=False),
                ),
            )
        except sqlite3.Error as e:
            self._log("record_run", e)
            raise StorageError(f"record_run failed: {e}") from e
        return int(cur.lastrowid)

    # ---- internals ----
    def _log(self, op: str, e: BaseException, **extra: object) -> None:
        log_error({
            "component": "internship_crawler.db",
            "op": op,
            "sqlite_path": self.sqlite_path,
            "error": repr(e),
            **extra,
        })


# ---- Nice-to-have helpers for tests & diagnostics --------------------------


def init_db(sqlite_path: str) -> None:
    """
    Ensure the SQLite database and schema exist.
    Safe to call multiple times.
    """
    with Store(sqlite_path):
        pass


def count_rows(sqlite_path: str, table: str = "jobs") -> int:
    """Return total rows in a table; 0 if DB missing/empty."""
    if table not in {"companies", "jobs", "scraper_logs"}:
        raise ValueError(f"unknown table {table!r}")
    if not os.path.exists(sqlite_path):
        return 0
    with Store(sqlite_path) as store:
        (n,) = store.conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()
    return int(n or 0)


def reset_db(sqlite_path: str) -> None:
    """
    Remove the DB file entirely (for pytest fixtures).
    Safe if it doesn't exist.
    """
    for suffix in ("", "-wal", "-shm"):
        with contextlib.suppress(FileNotFoundError):
            os.remove(sqlite_path + suffix)


# ---- Internal utilities -----------------------------------------------------


def _ensure_dir(sqlite_path: str) -> None:
    d = os.path.dirname(os.path.abspath(sqlite_path)) or "."
    os.makedirs(d, exist_ok=True)


def _connect(sqlite_path: str) -> sqlite3.Connection:
    # isolation_level=None gives autocommit mode
    return sqlite3.connect(sqlite_path, timeout=30.0, isolation_level=None, check_same_thread=False)


def _apply_pragmas(conn: sqlite3.Connection) -> None:
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute("PRAGMA foreign_keys=ON;")
    conn.execute("PRAGMA temp_store=MEMORY;")
    conn.execute("PRAGMA cache_size=-8000;")  # approx 8MB cache


def _ensure_schema(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS companies (
          id INTEGER PRIMARY KEY,
          name TEXT NOT NULL UNIQUE,
          website TEXT,
          careers_url TEXT,
          industry TEXT,
          size TEXT,
          logo_url TEXT,
          location TEXT NOT NULL,
          created_at TEXT NOT NULL
        );
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS jobs (
          id INTEGER PRIMARY KEY,
          company_id INTEGER NOT NULL REFERENCES companies(id),
          title TEXT NOT NULL,
          description TEXT,
          location TEXT NOT NULL,
          job_type TEXT NOT NULL,
          work_arrangement TEXT NOT NULL,
          salary_min INTEGER,
          salary_max INTEGER,
          application_url TEXT NOT NULL,
          source TEXT NOT NULL,
          status TEXT NOT NULL,
          is_active INTEGER NOT NULL,
          created_at TEXT NOT NULL,
          expires_at TEXT NOT NULL
        );
        """
    )
    conn.execute(
        """
        CREATE UNIQUE INDEX IF NOT EXISTS ux_jobs_dedupe
          ON jobs (company_id, title);
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS scraper_logs (
          id INTEGER PRIMARY KEY,
          started_at TEXT,
          completed_at TEXT,
          status TEXT NOT NULL,
          companies_processed INTEGER NOT NULL,
          jobs_found INTEGER NOT NULL,
          jobs_added INTEGER NOT NULL,
          jobs_skipped INTEGER NOT NULL,
          jobs_rejected INTEGER NOT NULL,
          errors TEXT NOT NULL
        );
        """
    )
