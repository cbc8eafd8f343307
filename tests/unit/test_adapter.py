"""Tests for the Gmarket adapter: navigation sequence and error reporting."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any
from unittest.mock import AsyncMock

import pytest

from pricehound.core.config import MarketplaceConfig
from pricehound.core.errors import SEARCH_UI_NOT_FOUND, ErrorKind, NotStartedError, classify_error
from pricehound.core.schemas import Listing
from pricehound.platforms.gmarket.adapter import GmarketAdapter
from pricehound.platforms.gmarket.searcher import build_filtered_url

BASE = "https://www.gmarket.co.kr"
RESULTS_URL = "https://www.gmarket.co.kr/n/search?keyword=SL-M2030"
CATEGORY = "100000076"


class FakeSession:
    """Stands in for BrowserSession: hands out one mock page."""

    def __init__(self, page: Any, error: Exception | None = None) -> None:
        self.page = page
        self.error = error
        self.capture_screenshot = AsyncMock(return_value="data/screenshots/x.png")

    @asynccontextmanager
    async def acquire_page(self) -> AsyncIterator[Any]:
        if self.error is not None:
            raise self.error
        yield self.page


def _make_page(*, url: str = RESULTS_URL, has_input: bool = True) -> AsyncMock:
    page = AsyncMock()
    page.url = url
    search_input = AsyncMock()

    async def _wait_for_selector(selector: str, timeout: int) -> object:
        if "keyword" in selector and not has_input:
            raise TimeoutError(f"Timeout {timeout}ms exceeded")
        return object()

    page.wait_for_selector = AsyncMock(side_effect=_wait_for_selector)
    page.query_selector = AsyncMock(return_value=search_input if has_input else None)
    page.search_input = search_input
    return page


def _make_parser(listings: list[Listing] | None = None) -> AsyncMock:
    parser = AsyncMock()
    parser.extract_listings = AsyncMock(return_value=listings or [])
    return parser


def _listing(rank: int = 1, price: int = 10000) -> Listing:
    return Listing(rank=rank, query="SL-M2030", name=f"item {rank}", list_price=price)


def _adapter(session: FakeSession, parser: AsyncMock, **kwargs: Any) -> GmarketAdapter:
    return GmarketAdapter(session, MarketplaceConfig(), parser=parser, **kwargs)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# TestGmarketAdapterSearch
# ---------------------------------------------------------------------------


class TestGmarketAdapterSearch:
    """Happy path and navigation sequence."""

    async def test_marketplace_id(self) -> None:
        adapter = _adapter(FakeSession(_make_page()), _make_parser())
        assert adapter.marketplace_id == "gmarket"

    async def test_returns_listings(self) -> None:
        listings = [_listing(1), _listing(2, 11000)]
        page = _make_page()
        parser = _make_parser(listings)
        outcome = await _adapter(FakeSession(page), parser).search("SL-M2030")

        assert outcome.error is None
        assert outcome.query == "SL-M2030"
        assert outcome.listings == listings
        assert outcome.search_url == build_filtered_url(RESULTS_URL, CATEGORY)
        parser.extract_listings.assert_awaited_once_with(
            page, query="SL-M2030", search_url=outcome.search_url,
        )

    async def test_types_and_submits_query(self) -> None:
        page = _make_page()
        await _adapter(FakeSession(page), _make_parser()).search("SL-M2030")
        page.search_input.click.assert_awaited_once()
        page.search_input.fill.assert_awaited_once_with("SL-M2030")
        page.search_input.press.assert_awaited_once_with("Enter")

    async def test_navigates_to_filtered_url(self) -> None:
        page = _make_page()
        await _adapter(FakeSession(page), _make_parser()).search("SL-M2030")
        urls = [c.args[0] for c in page.goto.await_args_list]
        assert urls == [BASE, build_filtered_url(RESULTS_URL, CATEGORY)]

    async def test_filter_already_applied(self) -> None:
        page = _make_page(url=build_filtered_url(RESULTS_URL, CATEGORY))
        await _adapter(FakeSession(page), _make_parser()).search("SL-M2030")
        urls = [c.args[0] for c in page.goto.await_args_list]
        assert urls == [BASE]

    async def test_screenshot_optional(self) -> None:
        session = FakeSession(_make_page())
        outcome = await _adapter(session, _make_parser()).search("SL-M2030")
        assert outcome.screenshot_path is None
        session.capture_screenshot.assert_not_awaited()

    async def test_screenshot_taken(self) -> None:
        session = FakeSession(_make_page())
        outcome = await _adapter(session, _make_parser(), take_screenshot=True).search("SL-M2030")
        assert outcome.screenshot_path == "data/screenshots/x.png"

    async def test_empty_results_are_not_an_error(self) -> None:
        outcome = await _adapter(FakeSession(_make_page()), _make_parser([])).search("zzz")
        assert outcome.error is None
        assert outcome.listings == []


# ---------------------------------------------------------------------------
# TestGmarketAdapterErrors
# ---------------------------------------------------------------------------


class TestGmarketAdapterErrors:
    """Failures become SearchOutcome.error; only NotStartedError escapes."""

    async def test_search_input_missing(self) -> None:
        parser = _make_parser()
        page = _make_page(has_input=False)
        outcome = await _adapter(FakeSession(page), parser).search("SL-M2030")
        assert outcome.error == SEARCH_UI_NOT_FOUND
        assert classify_error(outcome.error) is ErrorKind.TRANSIENT
        parser.extract_listings.assert_not_awaited()

    async def test_navigation_error_reported(self) -> None:
        page = _make_page()
        page.goto = AsyncMock(side_effect=RuntimeError("Target closed"))
        outcome = await _adapter(FakeSession(page), _make_parser()).search("SL-M2030")
        assert outcome.error == "Target closed"
        assert outcome.listings == []

    async def test_blank_exception_message_uses_type(self) -> None:
        page = _make_page()
        page.goto = AsyncMock(side_effect=TimeoutError())
        outcome = await _adapter(FakeSession(page), _make_parser()).search("SL-M2030")
        assert outcome.error == "TimeoutError"

    async def test_not_started_propagates(self) -> None:
        session = FakeSession(_make_page(), error=NotStartedError("Browser not started"))
        with pytest.raises(NotStartedError):
            await _adapter(session, _make_parser()).search("SL-M2030")
