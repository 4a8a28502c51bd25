from __future__ import annotations

import logging
import re
from urllib import robotparser

import requests

from .http_client import HttpClient
from .utils import origin_of

log = logging.getLogger(__name__)

ROBOTS_TIMEOUT_S = 5.0

_COMPATIBLE_RE = re.compile(r"compatible;\s*([^/;\s)]+)", re.IGNORECASE)


def product_token(user_agent: str) -> str:
    """
    Crawler name that robots.txt groups are matched against.

    "Mozilla/5.0 (compatible; InternshipCrawler/1.0; +url)" -> "InternshipCrawler".
    robotparser only compares the text before the first "/", which for a
    browser-style string is "Mozilla" and would match no crawler group.
    """
    m = _COMPATIBLE_RE.search(user_agent)
    if m:
        return m.group(1)
    return user_agent.split("/", 1)[0].strip() or user_agent


class RobotsPolicy:
    """
    robots.txt gate, one fetch per origin per run.

    A missing robots.txt (4xx/5xx, empty body) or one that cannot be fetched
    at all is treated as "allow everything".
    """

    def __init__(self, client: HttpClient, user_agent: str, timeout: float = ROBOTS_TIMEOUT_S) -> None:
        self._client = client
        self._agent = product_token(user_agent)
        self._timeout = float(timeout)
        self._cache: dict[str, robotparser.RobotFileParser] = {}

    def allowed(self, url: str) -> bool:
        return self._parser_for(url).can_fetch(self._agent, url)

    def crawl_delay(self, url: str) -> float | None:
        delay = self._parser_for(url).crawl_delay(self._agent)
        return float(delay) if delay is not None else None

    def _parser_for(self, url: str) -> robotparser.RobotFileParser:
        origin = origin_of(url)
        rp = self._cache.get(origin)
        if rp is not None:
            return rp

        robots_url = f"{origin}/robots.txt"
        rp = robotparser.RobotFileParser(robots_url)
        try:
            resp = self._client.get(robots_url, timeout=self._timeout)
            if resp.status_code >= 400 or not resp.text:
                rp.parse([])
            else:
                rp.parse(resp.text.splitlines())
        except requests.RequestException as e:
            log.debug("robots.txt fetch failed for %s: %r; allowing", robots_url, e)
            rp.parse([])
        self._cache[origin] = rp
        return rp
