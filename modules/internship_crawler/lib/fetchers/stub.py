from __future__ import annotations

from .base import BaseFetcher, FetchError
from .registry import register


@register
class StubFetcher(BaseFetcher):
    """
    A zero-network fetcher used for tests and dry-runs.

    Serves HTML from settings.stub_pages ({url: html}). A missing URL, or a
    value that is an exception instance, is raised as FetchError so failure
    paths can be exercised without a network.
    """

    kind = "stub"

    def __init__(self, settings, pages: dict | None = None) -> None:
        super().__init__(settings)
        self.pages = dict(pages if pages is not None else (settings.stub_pages or {}))
        self.calls: list[str] = []

    def fetch(self, url: str) -> str:
        self.calls.append(url)
        if url not in self.pages:
            raise FetchError(f"no stub page for {url}")
        value = self.pages[url]
        if isinstance(value, BaseException):
            raise FetchError(str(value)) from value
        return str(value)
