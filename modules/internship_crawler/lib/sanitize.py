"""
Strip personal data (PDPA) from scraped text before it is stored.
"""

from __future__ import annotations

import re

REDACTED = "[REDACTED]"

_EMAIL_RE = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
_SG_PHONE_RE = re.compile(r"(?:(?:\+65|\b65)[\s-]?)?\b[689]\d{3}[\s-]?\d{4}\b")
_NRIC_RE = re.compile(r"\b[STFG]\d{7}[A-Z]\b", re.IGNORECASE)
_HONORIFIC_NAME_RE = re.compile(r"\b(?:Mr|Ms|Mrs|Miss|Dr)\.?\s+[A-Z][a-z]+(?:\s+[A-Z][a-z]+)*")
_CONTACT_PHRASE_RE = re.compile(r"\b(?:contact|email|call|reach|phone|tel|mobile)[\s:]+[^\n,]+", re.IGNORECASE)

# Order matters: identifiers first so a phone inside a contact phrase is caught either way.
_IDENTIFIER_PATTERNS = (_EMAIL_RE, _SG_PHONE_RE, _NRIC_RE)
_ALL_PATTERNS = (*_IDENTIFIER_PATTERNS, _HONORIFIC_NAME_RE, _CONTACT_PHRASE_RE)

_REPEATED_RE = re.compile(r"\[REDACTED\](?:\s*\[REDACTED\])+")


def strip_personal_data(text: str | None, *, identifiers_only: bool = False) -> str | None:
    """
    Replace emails, Singapore phone numbers, NRIC/FIN numbers and (unless
    identifiers_only) honorific names and contact phrases with [REDACTED].
    Adjacent markers are collapsed into one.

    Titles use identifiers_only=True so 'Contact Centre Intern' survives.
    """
    if not text:
        return text
    cleaned = text
    for pattern in _IDENTIFIER_PATTERNS if identifiers_only else _ALL_PATTERNS:
        cleaned = pattern.sub(REDACTED, cleaned)
    return _REPEATED_RE.sub(REDACTED, cleaned).strip()
