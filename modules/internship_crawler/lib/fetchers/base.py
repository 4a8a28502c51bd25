from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..config import Settings


class FetchError(Exception):
    """A page could not be loaded (timeout, DNS, navigation or render failure)."""


class BaseFetcher(ABC):
    """
    Abstract page fetcher.

    The engine creates at most one instance per kind per run and calls
    fetch() once per company, sequentially.

    Contract:
      - fetch(url) returns the rendered HTML document as text.
      - Any failure is raised as FetchError; nothing else escapes.
      - Per-page resources (tabs, responses) are released before fetch() returns.
      - close() releases run-scoped resources (browser, session). Idempotent.
    """

    # Concrete subclasses MUST set this to a stable string, e.g. "browser", "static", "stub"
    kind: str = ""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def open(self) -> None:
        """Acquire run-scoped resources. Optional; fetch() may open lazily."""

    @abstractmethod
    def fetch(self, url: str) -> str:
        raise NotImplementedError

    def close(self) -> None:
        """Release run-scoped resources."""

    def __enter__(self) -> BaseFetcher:
        self.open()
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
