from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

import requests
from bs4 import BeautifulSoup

from ..http_client import HttpClient
from ..models import ApiListing
from ..utils import collapse_whitespace

if TYPE_CHECKING:
    from ..config import ApiSettings

# API keyword searches are loose; only listings whose title carries one of these are kept.
TITLE_TERMS: tuple[str, ...] = ("intern", "trainee", "graduate")
RESULTS_PER_PAGE = 50
API_INDUSTRY = "Various"

_NUMBER_RE = re.compile(r"\d[\d,]*")


class SourceError(Exception):
    """One API request failed (transport error, HTTP error status, malformed body)."""


class ApiSource(ABC):
    """
    A job-board search API.

    Contract:
      - configured() is False when credentials are missing; the sync skips the source.
      - fetch_page(keyword, page) returns the listings of one result page (page >= 1).
      - Any failure is raised as SourceError. Messages never carry credentials.
    """

    name: str = ""
    keywords: tuple[str, ...] = ()

    def __init__(self, settings: ApiSettings, client: HttpClient) -> None:
        self.settings = settings
        self.client = client

    @abstractmethod
    def configured(self) -> bool:
        raise NotImplementedError

    @abstractmethod
    def fetch_page(self, keyword: str, page: int) -> list[ApiListing]:
        raise NotImplementedError

    def _json(self, send) -> dict[str, Any]:
        """Run one request callable and return its JSON object body."""
        try:
            resp: requests.Response = send()
        except requests.RequestException as e:
            # str(e) can include the request URL, and with it the API key
            raise SourceError(f"{self.name} request failed: {type(e).__name__}") from None
        if resp.status_code >= 400:
            raise SourceError(f"{self.name} API error: {resp.status_code}")
        try:
            body = resp.json()
        except ValueError:
            raise SourceError(f"{self.name} API returned invalid JSON") from None
        if not isinstance(body, dict):
            raise SourceError(f"{self.name} API returned {type(body).__name__}, expected an object")
        return body


def title_is_relevant(title: str | None) -> bool:
    low = (title or "").lower()
    return any(term in low for term in TITLE_TERMS)


def plain_text(value: Any) -> str:
    """API titles and snippets carry highlight markup (<b>, <strong>); keep the text."""
    if not isinstance(value, str) or not value.strip():
        return ""
    return collapse_whitespace(BeautifulSoup(value, "html.parser").get_text(" "))


def salary_range(text: Any) -> tuple[int | None, int | None]:
    """'$1,500 - $2,000 per month' -> (1500, 2000); a single figure fills only the minimum."""
    if not isinstance(text, str):
        return None, None
    numbers = [int(n.replace(",", "")) for n in _NUMBER_RE.findall(text)]
    if len(numbers) >= 2:
        return min(numbers), max(numbers)
    if numbers:
        return numbers[0], None
    return None, None
