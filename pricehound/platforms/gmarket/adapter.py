"""Gmarket adapter: drives one search through a fresh page context.

Sequence: entry page → type query → submit → apply sort/category filter →
wait for the result list → extract the top cards. The page context is
released whatever happens.
"""

import logging
from typing import Any

from pricehound.browser.actions import wait_for_any
from pricehound.browser.session import BrowserSession
from pricehound.core.config import MarketplaceConfig
from pricehound.core.errors import SEARCH_UI_NOT_FOUND, NotStartedError
from pricehound.core.schemas import SearchOutcome
from pricehound.platforms.base import MarketplaceAdapter
from pricehound.platforms.gmarket.parser import GmarketParser
from pricehound.platforms.gmarket.searcher import build_filtered_url, is_filter_applied
from pricehound.platforms.gmarket.selectors import CONTAINER_SELECTORS, SEARCH_INPUT_SELECTORS

logger = logging.getLogger(__name__)

# Settle waits (ms) after each navigation step
ENTRY_SETTLE_MS = 3000
TYPING_PAUSE_MS = 500
SUBMIT_SETTLE_MS = 5000
FILTER_SETTLE_MS = 3000
RESULTS_SETTLE_MS = 2000
SEARCH_INPUT_TIMEOUT_MS = 10000


class GmarketAdapter(MarketplaceAdapter):
    """Gmarket search adapter.

    Requires a BrowserSession (or anything with ``acquire_page``) injected
    via constructor; a page is acquired per search.
    """

    def __init__(
        self,
        session: BrowserSession,
        config: MarketplaceConfig,
        *,
        parser: GmarketParser | None = None,
        take_screenshot: bool = False,
    ) -> None:
        self._session = session
        self._config = config
        self._parser = parser or GmarketParser(config.base_url, config.max_listings)
        self._take_screenshot = take_screenshot

    @property
    def marketplace_id(self) -> str:
        return "gmarket"

    async def search(self, query: str) -> SearchOutcome:
        """Search Gmarket for one model name."""
        logger.info("Searching '%s'", query)
        try:
            async with self._session.acquire_page() as page:
                return await self._search_on_page(page, query)
        except NotStartedError:
            raise
        except Exception as e:
            logger.warning("Search '%s' failed: %s", query, e)
            return SearchOutcome(query=query, error=str(e) or type(e).__name__)

    async def _search_on_page(self, page: Any, query: str) -> SearchOutcome:
        logger.debug("Opening entry page %s", self._config.base_url)
        await page.goto(self._config.base_url, wait_until="domcontentloaded")
        await page.wait_for_timeout(ENTRY_SETTLE_MS)

        matched = await wait_for_any(
            page, SEARCH_INPUT_SELECTORS, timeout_ms=SEARCH_INPUT_TIMEOUT_MS,
        )
        search_input = await page.query_selector(matched) if matched else None
        if search_input is None:
            logger.warning("Search input not found for '%s'", query)
            return SearchOutcome(query=query, error=SEARCH_UI_NOT_FOUND)

        await search_input.click()
        await page.wait_for_timeout(TYPING_PAUSE_MS)
        await search_input.fill(query)
        await page.wait_for_timeout(TYPING_PAUSE_MS)
        await search_input.press("Enter")
        await page.wait_for_timeout(SUBMIT_SETTLE_MS)

        filtered_url = build_filtered_url(page.url, self._config.category_code)
        if not is_filter_applied(page.url, self._config.category_code):
            logger.debug("Applying filter: %s", filtered_url)
            await page.goto(filtered_url, wait_until="domcontentloaded")
            await page.wait_for_timeout(FILTER_SETTLE_MS)

        container = await wait_for_any(
            page, CONTAINER_SELECTORS, timeout_ms=self._config.container_timeout_ms,
        )
        if container is None:
            logger.warning("No listing container appeared for '%s'", query)
        else:
            await page.wait_for_timeout(RESULTS_SETTLE_MS)

        screenshot_path = None
        if self._take_screenshot:
            screenshot_path = await self._session.capture_screenshot(page, query)
            logger.info("Screenshot saved: %s", screenshot_path)

        listings = await self._parser.extract_listings(
            page, query=query, search_url=filtered_url,
        )
        logger.info("Parsed %d listings for '%s'", len(listings), query)
        return SearchOutcome(
            query=query,
            listings=listings,
            search_url=filtered_url,
            screenshot_path=screenshot_path,
        )
