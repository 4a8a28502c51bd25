from __future__ import annotations

import logging
from typing import Any

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

LOG = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "InternshipCrawler/1.0 (+https://internship.sg/bot)"
RETRY_STATUSES = (429, 500, 502, 503, 504)


def _build_session(user_agent: str, retries: int) -> requests.Session:
    session = requests.Session()
    session.headers["User-Agent"] = user_agent
    session.headers["Accept"] = "text/html,application/xhtml+xml;q=0.9,*/*;q=0.8"
    session.headers["Accept-Language"] = "en-SG,en;q=0.8"
    adapter = HTTPAdapter(
        max_retries=Retry(
            total=retries,
            backoff_factor=0.5,
            status_forcelist=RETRY_STATUSES,
            allowed_methods=frozenset({"GET", "HEAD"}),
            raise_on_status=False,
        )
    )
    for scheme in ("http://", "https://"):
        session.mount(scheme, adapter)
    return session


class HttpClient:
    """
    One requests.Session per crawl run. Transport retries (429/5xx, connect
    errors) happen inside urllib3; anything left over surfaces to the caller.
    """

    def __init__(self, timeout: float = 30.0, user_agent: str = DEFAULT_USER_AGENT, retries: int = 3):
        self.timeout = float(timeout)
        self.session = _build_session(user_agent, retries)

    def __enter__(self) -> HttpClient:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def get(self, url: str, *, timeout: float | None = None, **kwargs: Any) -> requests.Response:
        """Plain GET; status handling is up to the caller (robots.txt treats 404 as allow-all)."""
        return self.session.get(url, timeout=timeout or self.timeout, **kwargs)

    def post_json(self, url: str, payload: Any, *, timeout: float | None = None, **kwargs: Any) -> requests.Response:
        """JSON POST for job-board APIs. The retry adapter only covers GET/HEAD."""
        return self.session.post(url, json=payload, timeout=timeout or self.timeout, **kwargs)

    def get_text(self, url: str, *, timeout: float | None = None, **kwargs: Any) -> str:
        """GET a page and return its decoded body. HTTP errors raise requests.HTTPError."""
        resp = self.get(url, timeout=timeout, **kwargs)
        resp.raise_for_status()
        # requests falls back to ISO-8859-1 for text/* without a charset
        if resp.encoding is None or resp.encoding.lower() == "iso-8859-1":
            resp.encoding = resp.apparent_encoding or resp.encoding
        return resp.text

    def close(self) -> None:
        self.session.close()
        LOG.debug("http session closed")
