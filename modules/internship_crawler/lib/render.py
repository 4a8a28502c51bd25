from __future__ import annotations

from .models import RunStatistics


def summary_message(stats: RunStatistics, unit: str = "companies") -> str:
    """One-line summary, e.g. '3 added, 1 duplicate, 2 rejected from 4 companies (1 error)'."""
    msg = (
        f"{stats.jobs_added} added, {stats.jobs_skipped} duplicate, {stats.jobs_rejected} rejected "
        f"from {stats.companies_processed} {unit}"
    )
    if stats.errors:
        msg += f" ({len(stats.errors)} error{'s' if len(stats.errors) != 1 else ''})"
    return msg


def render_text(stats: RunStatistics, heading: str = "INTERNSHIP CRAWL SUMMARY", unit: str = "Companies") -> str:
    """Plain-text run report for the CLI and the HTTP trigger."""
    lines = [
        "=" * 60,
        heading,
        "=" * 60,
        f"{unit + ' processed:':<21}{stats.companies_processed}",
        f"Postings found:      {stats.jobs_found}",
        f"Postings added:      {stats.jobs_added}",
        f"Duplicates skipped:  {stats.jobs_skipped}",
        f"Non-internships:     {stats.jobs_rejected}",
        f"Errors:              {len(stats.errors)}",
    ]
    if stats.outcomes:
        lines.append("-" * 60)
        for o in stats.outcomes:
            detail = f"found={o.found} added={o.added} skipped={o.skipped} rejected={o.rejected}"
            if o.error:
                detail += f" error={o.error}"
            lines.append(f"  [{o.state.value:<7}] {o.company}: {detail}")
    if stats.errors:
        lines.append("-" * 60)
        lines.append("Errors:")
        for e in stats.errors:
            lines.append(f"  - {e.company}: {e.error}")
    lines.append("=" * 60)
    return "\n".join(lines)
