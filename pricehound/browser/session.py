"""Browser session management using patchright.

One browser process per session, one isolated context per page. The session
also owns the rotation counters the worker consults.

Restart is a barrier: it waits for in-flight pages to be released and no new
page is handed out until the new process is up.
"""

import asyncio
import json
import logging
import re
import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from types import TracebackType
from typing import Any

from patchright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright

from pricehound.core.config import BrowserConfig
from pricehound.core.errors import BrowserLaunchError, NotStartedError

logger = logging.getLogger(__name__)


class BrowserSession:
    """Owns one patchright browser and hands out isolated pages.

    Usage::

        async with BrowserSession(config) as session:
            async with session.acquire_page() as page:
                await page.goto("https://...")
    """

    def __init__(
        self,
        config: BrowserConfig,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config
        self._clock = clock
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._cookies = _load_cookies(config.cookies_path) if config.cookies_path else []
        self._cond = asyncio.Condition()
        self._restarting = False
        self._in_flight = 0
        self._generation = 0
        self._started_at = clock()
        self._searches_since_restart = 0
        self._jobs_since_restart = 0

    # --- State ---

    @property
    def is_running(self) -> bool:
        return self._browser is not None

    @property
    def generation(self) -> int:
        """Number of successful starts. Changes on every restart."""
        return self._generation

    @property
    def age_seconds(self) -> float:
        return self._clock() - self._started_at

    @property
    def searches_since_restart(self) -> int:
        return self._searches_since_restart

    @property
    def jobs_since_restart(self) -> int:
        return self._jobs_since_restart

    @property
    def in_flight(self) -> int:
        return self._in_flight

    def record_search(self) -> None:
        self._searches_since_restart += 1

    def record_job(self) -> None:
        self._jobs_since_restart += 1

    # --- Lifecycle ---

    async def start(self) -> None:
        """Launch the browser. No-op if already running."""
        if self._browser is not None:
            return

        launch_kwargs: dict[str, Any] = {"headless": self._config.headless}
        if self._config.proxy is not None:
            launch_kwargs["proxy"] = self._config.proxy.to_launch_option()
            logger.info("Using proxy %s", self._config.proxy.server)

        pw: Playwright | None = None
        try:
            pw = await async_playwright().start()
            self._browser = await pw.chromium.launch(**launch_kwargs)
        except Exception as e:
            if pw is not None:
                await pw.stop()
            msg = f"Failed to launch browser: {e}"
            raise BrowserLaunchError(msg) from e

        self._playwright = pw
        self._generation += 1
        self._started_at = self._clock()
        self._searches_since_restart = 0
        self._jobs_since_restart = 0
        logger.info(
            "Browser started (generation %d, headless=%s)",
            self._generation, self._config.headless,
        )

    async def stop(self) -> None:
        """Close the browser and driver. Idempotent."""
        browser, pw = self._browser, self._playwright
        self._browser = None
        self._playwright = None
        if browser is not None:
            try:
                await browser.close()
            except Exception:
                logger.warning("Browser close failed, continuing shutdown", exc_info=True)
        if pw is not None:
            try:
                await pw.stop()
            except Exception:
                logger.warning("Driver stop failed, continuing shutdown", exc_info=True)
        if browser is not None:
            logger.info("Browser stopped")

    async def restart(self, reason: str = "", *, expected_generation: int | None = None) -> bool:
        """Stop then start, draining in-flight pages first.

        When ``expected_generation`` is given and the session has already
        been restarted past it, nothing happens. Returns True if a restart
        took place.
        """
        async with self._cond:
            await self._cond.wait_for(lambda: not self._restarting)
            if expected_generation is not None and expected_generation != self._generation:
                logger.debug(
                    "Skipping restart (%s): already at generation %d",
                    reason or "requested", self._generation,
                )
                return False

            self._restarting = True
            try:
                await self._cond.wait_for(lambda: self._in_flight == 0)
                logger.info("Restarting browser: %s", reason or "requested")
                await self.stop()
                await self.start()
            finally:
                self._restarting = False
                self._cond.notify_all()
        return True

    async def __aenter__(self) -> "BrowserSession":
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.stop()

    # --- Pages ---

    @asynccontextmanager
    async def acquire_page(self) -> AsyncIterator[Page]:
        """Yield a page in a fresh context; the context is always closed."""
        async with self._cond:
            await self._cond.wait_for(lambda: not self._restarting)
            if self._browser is None:
                msg = "Browser not started"
                raise NotStartedError(msg)
            browser = self._browser
            self._in_flight += 1

        context: BrowserContext | None = None
        try:
            context = await browser.new_context(
                viewport={
                    "width": self._config.viewport_width,
                    "height": self._config.viewport_height,
                },
                user_agent=self._config.user_agent,
                locale=self._config.locale,
                timezone_id=self._config.timezone_id,
            )
            if self._cookies:
                await context.add_cookies(self._cookies)
            page = await context.new_page()
            page.set_default_timeout(self._config.timeout_ms)
            page.set_default_navigation_timeout(self._config.navigation_timeout_ms)
            yield page
        finally:
            if context is not None:
                await self.release_page(context)
            async with self._cond:
                self._in_flight -= 1
                self._cond.notify_all()

    async def release_page(self, context: BrowserContext) -> None:
        """Close a page context. Errors are logged, never raised."""
        try:
            await context.close()
        except Exception:
            logger.debug("Failed to close page context", exc_info=True)

    async def capture_screenshot(self, page: Page, name: str) -> str:
        """Save a PNG of the page into the screenshots directory."""
        directory = Path(self._config.screenshots_dir)
        directory.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y-%m-%dT%H-%M-%S")
        path = directory / f"{_safe_filename(name)}_{timestamp}.png"
        await page.screenshot(path=str(path))
        return str(path)


def _safe_filename(name: str) -> str:
    return re.sub(r"[^0-9A-Za-z가-힣_-]", "_", name)


def _load_cookies(path: str) -> list[Any]:
    """Load cookies from a JSON file. Returns empty list on any failure."""
    cookie_path = Path(path)
    if not cookie_path.exists():
        logger.debug("Cookie file not found: %s", path)
        return []
    try:
        data = json.loads(cookie_path.read_text())
        if isinstance(data, list):
            logger.info("Loaded %d cookies from %s", len(data), path)
            return data
        logger.warning("Cookie file is not a JSON array: %s", path)
        return []
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("Failed to load cookies from %s: %s", path, e)
        return []
