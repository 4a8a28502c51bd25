from __future__ import annotations

import logging

import requests

from ..http_client import HttpClient
from .base import BaseFetcher, FetchError
from .registry import register

log = logging.getLogger(__name__)


@register
class StaticFetcher(BaseFetcher):
    """
    Plain HTTP GET for careers pages that render server-side.

    Uses the shared HttpClient (urllib3 Retry on 429/5xx). No JavaScript runs,
    so pick "browser" for SPA-style job boards.
    """

    kind = "static"

    def __init__(self, settings, client: HttpClient | None = None) -> None:
        super().__init__(settings)
        self._client = client

    def open(self) -> None:
        if self._client is None:
            self._client = HttpClient(timeout=self.settings.page_timeout_s, user_agent=self.settings.user_agent)

    def fetch(self, url: str) -> str:
        self.open()
        try:
            return self._client.get_text(url)
        except requests.RequestException as e:
            log.debug("static fetch failed for %s", url, exc_info=True)
            raise FetchError(f"GET {url} failed: {e}") from e

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
