"""
Heuristic posting extraction from arbitrary careers-page HTML.

The page is parsed with BeautifulSoup and walked with an ordered list of CSS
selector rules (broad to narrow). Every matched anchor becomes a candidate if
its text passes the title pre-filter, its href resolves to an absolute
http(s) URL, and its length is within bounds. The first anchor wins when
the same title shows up more than once on a page.

Rules are plain data (SelectorRule) so new site layouts can be handled from
configuration without touching this module.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from urllib.parse import urlsplit

from bs4 import BeautifulSoup
from bs4.element import Tag

from .models import ExtractedPosting
from .utils import collapse_whitespace, origin_of

log = logging.getLogger(__name__)

TITLE_MIN_LEN = 5
TITLE_MAX_LEN = 200
DESCRIPTION_MAX_LEN = 500

# Title-only gate applied before classification.
PREFILTER_KEYWORDS: tuple[str, ...] = ("intern", "trainee", "graduate", "student", "apprentice")


class ExtractionError(Exception):
    """The page could not be parsed or walked."""


@dataclass(frozen=True)
class SelectorRule:
    selector: str
    confidence: float = 0.5
    label: str = ""


DEFAULT_RULES: tuple[SelectorRule, ...] = (
    SelectorRule('a[href*="intern" i]', 0.9, "href:intern"),
    SelectorRule('a[href*="job" i]', 0.6, "href:job"),
    SelectorRule('a[href*="position" i]', 0.6, "href:position"),
    SelectorRule('a[href*="career" i]', 0.4, "href:career"),
    SelectorRule('[class*="job"] a', 0.6, "class:job"),
    SelectorRule('[class*="position"] a', 0.6, "class:position"),
    SelectorRule('[class*="opening"] a', 0.6, "class:opening"),
    SelectorRule('[class*="listing"] a', 0.5, "class:listing"),
    SelectorRule('[class*="vacancy"] a', 0.6, "class:vacancy"),
    SelectorRule(".job-title a", 0.8, "title:job"),
    SelectorRule(".position-title a", 0.8, "title:position"),
    SelectorRule("h2 a", 0.3, "heading:h2"),
    SelectorRule("h3 a", 0.3, "heading:h3"),
    SelectorRule("h4 a", 0.3, "heading:h4"),
)

_CONTEXT_CLASS_HINTS = ("job", "position", "listing")
_CONTEXT_TAGS = ("article", "li")

_K_RANGE_RE = re.compile(
    r"\$?\s*(\d+(?:\.\d+)?)\s*k\s*(?:-|–|to)\s*(?:s?\$|sgd)?\s*(\d+(?:\.\d+)?)\s*k\b",
    re.IGNORECASE,
)
_CURRENCY_RANGE_RE = re.compile(
    r"(?:s\$|sgd|\$)\s*(\d[\d,]*(?:\.\d+)?)\s*(?:-|–|to)\s*(?:s\$|sgd|\$)?\s*(\d[\d,]*(?:\.\d+)?)",
    re.IGNORECASE,
)
_REMOTE_RE = re.compile(r"\b(remote|work from home|wfh)\b", re.IGNORECASE)
_HYBRID_RE = re.compile(r"\bhybrid\b", re.IGNORECASE)
_ONSITE_RE = re.compile(r"\b(on-?site|on site|office)\b", re.IGNORECASE)


# =============================================================================
# Public API
# =============================================================================
def extract_postings(
    html: str,
    page_url: str,
    rules: Sequence[SelectorRule] = DEFAULT_RULES,
) -> list[ExtractedPosting]:
    """
    Return within-page-deduplicated candidates, in rule order then document order.
    An empty list is a normal result.

    Raises:
        ExtractionError: if the document cannot be parsed or a selector fails.
    """
    if not isinstance(html, str):
        raise ExtractionError(f"expected HTML text, got {type(html).__name__}")
    try:
        soup = BeautifulSoup(html, "html.parser")
    except Exception as e:
        raise ExtractionError(f"HTML parse failed: {e!r}") from e

    out: list[ExtractedPosting] = []
    seen_titles: set[str] = set()

    for rule in rules:
        try:
            matches = soup.select(rule.selector)
        except Exception as e:
            raise ExtractionError(f"selector {rule.selector!r} failed: {e!r}") from e

        for anchor in _anchors(matches):
            title = collapse_whitespace(anchor.get_text(" "))
            if not passes_prefilter(title):
                continue
            url = resolve_url(anchor.get("href"), page_url)
            if url is None:
                continue
            if not title_in_bounds(title):
                continue
            if title in seen_titles:
                continue
            seen_titles.add(title)
            out.append(_build_posting(anchor, title, url, rule))

    log.debug("extracted %d candidate(s) from %s", len(out), page_url)
    return out


def passes_prefilter(title: str) -> bool:
    low = (title or "").lower()
    return any(k in low for k in PREFILTER_KEYWORDS)


def title_in_bounds(title: str) -> bool:
    return TITLE_MIN_LEN <= len(title) <= TITLE_MAX_LEN


def resolve_url(href: str | None, page_url: str) -> str | None:
    """
    Absolute http(s) hrefs are kept as-is, root-relative hrefs ('/x') are
    appended to the page origin. Anything else (relative paths, mailto:,
    javascript:, fragments) yields None and the candidate is dropped.
    """
    href = (href or "").strip()
    if not href:
        return None
    if href.lower().startswith(("http://", "https://")):
        return href if urlsplit(href).netloc else None
    if href.startswith("/"):
        if not urlsplit(page_url).netloc:
            return None
        # "//host/x" stays on the page origin as a path
        return origin_of(page_url) + href
    return None


def extract_salary(text: str | None) -> tuple[int | None, int | None]:
    """'$1,000 - $1,500' -> (1000, 1500); 'S$1.5k to 2k' -> (1500, 2000)."""
    if not text:
        return (None, None)
    m = _K_RANGE_RE.search(text)
    scale = 1000
    if not m:
        m = _CURRENCY_RANGE_RE.search(text)
        scale = 1
    if not m:
        return (None, None)
    try:
        lo = round(float(m.group(1).replace(",", "")) * scale)
        hi = round(float(m.group(2).replace(",", "")) * scale)
    except ValueError:
        return (None, None)
    if lo <= 0 or hi <= 0:
        return (None, None)
    return (min(lo, hi), max(lo, hi))


def extract_work_arrangement(text: str | None) -> str | None:
    if not text:
        return None
    if _REMOTE_RE.search(text):
        return "remote"
    if _HYBRID_RE.search(text):
        return "hybrid"
    if _ONSITE_RE.search(text):
        return "onsite"
    return None


# =============================================================================
# Internals
# =============================================================================
def _anchors(matches: Iterable[Tag]) -> Iterable[Tag]:
    """Selectors normally hit <a> directly; for container rules use the first link inside."""
    for el in matches:
        if el.name == "a":
            yield el
        else:
            a = el.find("a", href=True)
            if a is not None:
                yield a


def _context_container(anchor: Tag) -> Tag | None:
    for parent in anchor.parents:
        if parent.name in ("body", "html", "[document]"):
            return None
        if parent.name in _CONTEXT_TAGS:
            return parent
        classes = " ".join(parent.get("class") or []).lower()
        if any(h in classes for h in _CONTEXT_CLASS_HINTS):
            return parent
    return None


def _build_posting(anchor: Tag, title: str, url: str, rule: SelectorRule) -> ExtractedPosting:
    container = _context_container(anchor)
    description = None
    location = None
    context_text = ""
    if container is not None:
        context_text = collapse_whitespace(container.get_text(" "))
        if context_text and context_text != title:
            description = context_text[:DESCRIPTION_MAX_LEN]
        loc_el = container.select_one('[class*="location" i]')
        if loc_el is not None:
            location = collapse_whitespace(loc_el.get_text(" ")) or None

    salary_min, salary_max = extract_salary(context_text)
    return ExtractedPosting(
        title=title,
        url=url,
        location=location,
        description=description,
        salary_min=salary_min,
        salary_max=salary_max,
        work_arrangement=extract_work_arrangement(context_text),
        rule=rule.label or rule.selector,
        confidence=rule.confidence,
    )
