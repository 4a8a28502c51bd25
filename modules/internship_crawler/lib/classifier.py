from __future__ import annotations

from .models import ClassifiedPosting, ExtractedPosting

# Hard admission rule: a posting is an internship iff one of these appears
# (case-insensitive substring) in its title or description. No overrides.
INTERNSHIP_KEYWORDS: tuple[str, ...] = (
    "intern",
    "internship",
    "trainee",
    "graduate program",
    "student",
    "co-op",
    "placement",
    "industrial attachment",
)


def matched_keyword(title: str | None, description: str | None = None) -> str | None:
    """First keyword found in the title, then in the description; None if neither matches."""
    for text in (title, description):
        low = (text or "").lower()
        if not low:
            continue
        for kw in INTERNSHIP_KEYWORDS:
            if kw in low:
                return kw
    return None


def is_internship(title: str | None, description: str | None = None) -> bool:
    return matched_keyword(title, description) is not None


def classify(posting: ExtractedPosting) -> ClassifiedPosting:
    kw = matched_keyword(posting.title, posting.description)
    return ClassifiedPosting(posting=posting, is_internship=kw is not None, matched_keyword=kw)
