"""Tests for ad-hoc searches: run_searches, summary and JSON export."""

import json
from collections.abc import Iterator
from unittest.mock import AsyncMock, patch

import pytest

from pricehound.core.schemas import Listing, SearchOutcome
from pricehound.pipeline.price_selector import select_lowest_price
from pricehound.pipeline.search_runner import (
    SearchResult,
    export_results_json,
    format_summary,
    run_searches,
)
from pricehound.platforms.base import MarketplaceAdapter


class MockAdapter(MarketplaceAdapter):
    """Returns pre-configured outcomes per query."""

    def __init__(self, outcomes: dict[str, SearchOutcome]) -> None:
        self._outcomes = outcomes
        self.calls: list[str] = []

    @property
    def marketplace_id(self) -> str:
        return "gmarket"

    async def search(self, query: str) -> SearchOutcome:
        self.calls.append(query)
        return self._outcomes[query]


def _listing(rank: int, price: int, *, shipping: int = 0, query: str = "토너") -> Listing:
    return Listing(
        rank=rank,
        query=query,
        name=f"{query} 정품 #{rank}",
        seller="printshop",
        list_price=price,
        shipping_fee=shipping,
        url=f"https://item.gmarket.co.kr/Item?goodscode={rank}",
    )


@pytest.fixture(autouse=True)
def sleep_mock() -> Iterator[AsyncMock]:
    with patch("pricehound.pipeline.search_runner.random_sleep", new_callable=AsyncMock) as mock_rs:
        yield mock_rs


def _outcomes() -> dict[str, SearchOutcome]:
    return {
        "토너": SearchOutcome(
            query="토너",
            listings=[_listing(1, 10000, shipping=2500), _listing(2, 12000), _listing(3, 12500)],
            search_url="https://www.gmarket.co.kr/n/search?keyword=x&s=1",
        ),
        "없음": SearchOutcome(query="없음", error="Timeout 30000ms exceeded."),
    }


class TestRunSearches:
    async def test_searches_in_order(self, sleep_mock: AsyncMock) -> None:
        adapter = MockAdapter(_outcomes())
        results = await run_searches(["토너", "없음"], adapter, delay_min_s=2.0, delay_max_s=5.0)
        assert adapter.calls == ["토너", "없음"]
        assert [r.query for r in results] == ["토너", "없음"]
        sleep_mock.assert_awaited_once_with(2.0, 5.0)

    async def test_selection_attached(self) -> None:
        results = await run_searches(["토너"], MockAdapter(_outcomes()))
        r = results[0]
        assert r.succeeded is True
        assert r.selection is not None
        assert r.selection.listing.total_price == 12000
        assert r.selection.confidence == 3

    async def test_failed_search(self) -> None:
        results = await run_searches(["없음"], MockAdapter(_outcomes()))
        assert results[0].succeeded is False
        assert results[0].selection is None


class TestFormatSummary:
    def _results(self) -> list[SearchResult]:
        return [
            SearchResult(outcome, select_lowest_price(outcome.listings))
            for outcome in _outcomes().values()
        ]

    def test_summary(self) -> None:
        text = format_summary(self._results())
        assert "Searches succeeded: 1/2" in text
        assert "12,000 KRW" in text
        assert "confidence 3/5" in text
        assert "Timeout 30000ms exceeded." in text

    def test_export_json(self) -> None:
        raw = export_results_json(self._results())
        assert "토너" in raw
        data = json.loads(raw)
        assert len(data) == 2
        first = data[0]
        assert first["query"] == "토너"
        assert first["selected_rank"] == 2
        assert first["confidence"] == 3
        assert [x["total_price"] for x in first["listings"]] == [12500, 12000, 12500]
        assert data[1]["error"] == "Timeout 30000ms exceeded."
        assert data[1]["listings"] == []
