"""
Page driver: one Chromium per run, one isolated BrowserContext per attempt.

Every Playwright failure is translated into the package's error taxonomy
here, so the activation flow never has to know about Playwright types:

  goto timeout / network error      -> NavigationError
  selector never resolved           -> ElementNotFoundError
  browser launch / new_context fail -> SessionOpenError

Marker waits do not raise on timeout; they report "not seen" instead.
"""

import asyncio
import logging
import random
from contextlib import asynccontextmanager

from playwright.async_api import (
    async_playwright,
    Error as PlaywrightError,
    TimeoutError as PlaywrightTimeout,
)

from iccid_activator.errors import ElementNotFoundError, NavigationError, SessionOpenError
from iccid_activator.utils import capture_diagnostics, get_logger, random_delay_ms

# The activation form is a plain page, domcontentloaded is enough.
WAIT_STRATEGY = "domcontentloaded"

LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    # Prevent navigator.webdriver from returning true (bot detection)
    "--disable-blink-features=AutomationControlled",
]

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/126.0.0.0 Safari/537.36"
)
VIEWPORT = {"width": 1920, "height": 1080}


class BrowserSession:
    """A single isolated browsing context and its page."""

    def __init__(self, page, *, logger: logging.Logger = None):
        self.page = page
        self._logger = logger or get_logger()

    async def navigate(self, url: str, timeout: int) -> None:
        try:
            await self.page.goto(url, wait_until=WAIT_STRATEGY, timeout=timeout)
        except PlaywrightError as e:
            raise NavigationError(f"Navigation to {url} failed: {e}") from e
        try:
            title = await self.page.title()
        except PlaywrightError:
            title = "<unavailable>"
        self._logger.info(f"  Page title: {title}, URL: {self.page.url}")

    async def fill(self, selector: str, value: str, timeout: int) -> None:
        try:
            await self.page.wait_for_selector(selector, state="visible", timeout=timeout)
            await self.page.fill(selector, value, timeout=timeout)
        except PlaywrightError as e:
            raise ElementNotFoundError(f"Could not fill '{selector}': {e}") from e

    async def click(self, selector: str, timeout: int) -> None:
        try:
            await self.page.wait_for_selector(selector, state="visible", timeout=timeout)
            await self.page.click(selector, timeout=timeout)
        except PlaywrightError as e:
            raise ElementNotFoundError(f"Could not click '{selector}': {e}") from e

    async def wait_for_text(self, text: str, timeout: int) -> bool:
        """Return True if `text` becomes visible within `timeout` ms."""
        try:
            await self.page.get_by_text(text).first.wait_for(state="visible", timeout=timeout)
            return True
        except PlaywrightTimeout:
            return False
        except PlaywrightError as e:
            raise ElementNotFoundError(f"Waiting for text '{text}' failed: {e}") from e

    async def wait_for_any_text(self, texts: list, timeout: int) -> int | None:
        """
        Race all `texts` against one timeout budget.

        Returns the index of whichever text shows up first in wall-clock
        time, or None if none appeared.  When several land in the same
        loop iteration the lowest index wins.
        """
        if not texts:
            return None
        tasks = {
            asyncio.ensure_future(self.wait_for_text(text, timeout)): index
            for index, text in enumerate(texts)
        }
        pending = set(tasks)
        try:
            while pending:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                hits = sorted(tasks[t] for t in done if t.result())
                if hits:
                    return hits[0]
            return None
        finally:
            for t in pending:
                t.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

    async def humanize(self, delay_range_ms) -> None:
        """Scroll, wiggle the pointer and pause briefly.  Affects timing only."""
        try:
            await self.page.evaluate("() => window.scrollTo(0, document.body.scrollHeight)")
            await self.page.mouse.move(
                random.randint(0, VIEWPORT["width"] // 2),
                random.randint(0, VIEWPORT["height"] // 2),
                steps=random.randint(3, 8),
            )
        except PlaywrightError as e:
            self._logger.debug(f"  Humanize step skipped: {e}")
        await asyncio.sleep(random_delay_ms(delay_range_ms) / 1000)

    async def capture_diagnostics(self, label: str) -> str | None:
        return await capture_diagnostics(self.page, label, logger=self._logger)


class PageDriver:
    """
    Owns the Playwright instance and the Chromium process for one run.

    Usage:
        async with PageDriver(config) as driver:
            async with driver.open_session() as session:
                await session.navigate(url, timeout)
    """

    def __init__(self, config: dict, *, logger: logging.Logger = None):
        self._headless = bool(config.get("headless", True))
        self._logger = logger or get_logger()
        self._playwright = None
        self._browser = None

    async def __aenter__(self) -> "PageDriver":
        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self._headless,
                args=LAUNCH_ARGS,
            )
        except PlaywrightError as e:
            await self._shutdown()
            raise SessionOpenError(f"Browser launch failed: {e}") from e
        self._logger.info(f"Browser launched (headless={self._headless})")
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self._shutdown()

    async def _shutdown(self) -> None:
        if self._browser is not None:
            try:
                await self._browser.close()
            except PlaywrightError as e:
                self._logger.debug(f"Browser close failed: {e}")
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None

    @asynccontextmanager
    async def open_session(self):
        """Yield a fresh BrowserSession; its context is closed on every exit path."""
        if self._browser is None:
            raise SessionOpenError("Browser is not running")

        context = None
        try:
            context = await self._browser.new_context(
                ignore_https_errors=True,
                viewport=VIEWPORT,
                user_agent=USER_AGENT,
            )
            page = await context.new_page()
        except PlaywrightError as e:
            if context is not None:
                await self._close_context(context)
            raise SessionOpenError(f"Could not open browsing context: {e}") from e

        try:
            yield BrowserSession(page, logger=self._logger)
        finally:
            await self._close_context(context)

    async def _close_context(self, context) -> None:
        try:
            await context.close()
        except PlaywrightError as e:
            self._logger.debug(f"Context close failed: {e}")
