from __future__ import annotations

import logging

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import sync_playwright

from .base import BaseFetcher, FetchError
from .registry import register

log = logging.getLogger(__name__)

_LAUNCH_ARGS = ["--no-sandbox", "--disable-setuid-sandbox", "--disable-dev-shm-usage"]


@register
class BrowserFetcher(BaseFetcher):
    """
    Headless Chromium via Playwright (sync API).

    - One browser per run, launched lazily on the first fetch.
    - One page per company; the page is closed on every exit path.
    - Navigation waits for network idle (bounded by page_timeout_s), then a
      fixed settle delay so late XHR-rendered listings make it into the DOM.
    """

    kind = "browser"

    def __init__(self, settings) -> None:
        super().__init__(settings)
        self._pw = None
        self._browser = None

    def open(self) -> None:
        if self._browser is not None:
            return
        try:
            self._pw = sync_playwright().start()
            self._browser = self._pw.chromium.launch(headless=True, args=_LAUNCH_ARGS)
        except PlaywrightError as e:
            self.close()
            raise FetchError(f"could not launch headless browser: {e}") from e

    def fetch(self, url: str) -> str:
        self.open()
        timeout_ms = int(self.settings.page_timeout_s * 1000)
        page = None
        try:
            page = self._browser.new_page(user_agent=self.settings.user_agent)
            page.set_default_timeout(timeout_ms)
            response = page.goto(url, wait_until="networkidle", timeout=timeout_ms)
            if response is not None and response.status >= 400:
                raise FetchError(f"GET {url} returned HTTP {response.status}")
            if self.settings.settle_ms:
                page.wait_for_timeout(self.settings.settle_ms)
            return page.content()
        except PlaywrightError as e:
            # TimeoutError is a subclass of Error
            raise FetchError(f"browser fetch of {url} failed: {e}") from e
        finally:
            if page is not None:
                try:
                    page.close()
                except PlaywrightError:
                    log.debug("page.close() failed for %s", url, exc_info=True)

    def close(self) -> None:
        browser, pw = self._browser, self._pw
        self._browser = None
        self._pw = None
        if browser is not None:
            try:
                browser.close()
            except PlaywrightError:
                log.debug("browser.close() failed", exc_info=True)
        if pw is not None:
            try:
                pw.stop()
            except PlaywrightError:
                log.debug("playwright.stop() failed", exc_info=True)
