#!/usr/bin/env python3

import os
import sqlite3
import sys
from datetime import datetime

DEFAULT_DB = os.getenv("SQLITE_PATH", "/app/local/state/internships.db")


def get_latest_jobs(db_path: str, limit: int = 15) -> list[tuple[str, str, str, str]]:
    """
    Fetch the latest `limit` jobs, newest first.
    Returns list of (company, title, application_url, created_at)
    """
    try:
        conn = sqlite3.connect(f"file:{db_path}?mode=ro", uri=True)
    except sqlite3.Error as e:
        print(f"Error opening {db_path}: {e}", file=sys.stderr)
        return []
    try:
        return conn.execute(
            """
            SELECT c.name, j.title, j.application_url, j.created_at
            FROM jobs j JOIN companies c ON c.id = j.company_id
            ORDER BY j.created_at DESC, j.id DESC
            LIMIT ?
            """,
            (limit,),
        ).fetchall()
    except sqlite3.Error as e:
        print(f"Error reading {db_path}: {e}", file=sys.stderr)
        return []
    finally:
        conn.close()


def get_last_run(db_path: str) -> tuple | None:
    try:
        conn = sqlite3.connect(f"file:{db_path}?mode=ro", uri=True)
    except sqlite3.Error:
        return None
    try:
        return conn.execute(
            """
            SELECT completed_at, companies_processed, jobs_found, jobs_added, jobs_skipped, jobs_rejected
            FROM scraper_logs ORDER BY id DESC LIMIT 1
            """
        ).fetchone()
    except sqlite3.Error:
        return None
    finally:
        conn.close()


def format_timestamp(iso_str: str) -> str:
    """Convert ISO timestamp to readable local format."""
    try:
        dt = datetime.fromisoformat(iso_str.replace("Z", "+00:00"))
        return dt.astimezone().strftime("%Y-%m-%d %H:%M:%S %Z")
    except (TypeError, ValueError):
        return str(iso_str)


def main():
    db_path = DEFAULT_DB
    limit = 15
    args = sys.argv[1:]
    if args and not args[0].isdigit():
        db_path = args.pop(0)
    if args:
        try:
            limit = int(args[0])
            if limit <= 0:
                raise ValueError
        except ValueError:
            print(f"Invalid limit: {args[0]}. Using default (15).", file=sys.stderr)
            limit = 15

    if not os.path.exists(db_path):
        print(f"Database not found: {db_path}")
        sys.exit(1)

    print("=" * 80)
    print(f"DATABASE: {db_path}")
    last = get_last_run(db_path)
    if last:
        completed, processed, found, added, skipped, rejected = last
        print(
            f"LAST RUN: {format_timestamp(completed)}  companies={processed} found={found} "
            f"added={added} duplicate={skipped} rejected={rejected}"
        )
    print("-" * 80)

    entries = get_latest_jobs(db_path, limit)
    if not entries:
        print("  No jobs found or error accessing database.")
        return

    for i, (company, title, url, ts) in enumerate(entries, 1):
        print(f"{i:2d}. [{format_timestamp(ts)}] {company}")
        print(f"     Title: {title}")
        print(f"     URL:   {url}")
        print()


if __name__ == "__main__":
    main()
