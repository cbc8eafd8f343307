"""Gmarket DOM parser: converts result cards into Listing objects.

Design rules:
  - Every field is read through an ordered list of strategies; the first
    non-empty result wins.
  - Prices: the analytics payload on the card link is tried before the
    visible price text.
  - A card without a name is skipped; any other missing field is None or a
    default, never a crash.
"""

import json
import logging
import re
from collections.abc import Awaitable, Callable, Sequence
from typing import Protocol, runtime_checkable
from urllib.parse import unquote

from pydantic import BaseModel, ConfigDict

from pricehound.core.schemas import Listing
from pricehound.platforms.gmarket.searcher import normalize_listing_url
from pricehound.platforms.gmarket.selectors import (
    ANALYTICS_ATTR,
    ANALYTICS_LINK_SELECTOR,
    CARD_SELECTORS,
    COUPON_PRICE_SELECTORS,
    LINK_SELECTORS,
    NAME_SELECTORS,
    ORIGINAL_PRICE_SELECTORS,
    SELLER_PRICE_SELECTORS,
    SELLER_SELECTORS,
)

logger = logging.getLogger(__name__)

MAX_LISTINGS = 5

_UT_LOG_MAP = re.compile(r"utLogMap=([^&]+)")
_FREE_SHIPPING = re.compile(r"무료배송")
_SHIPPING_FEE = re.compile(r"배송비\s*([\d,]+)")


@runtime_checkable
class ElementLike(Protocol):
    """Minimal element interface so tests can use AsyncMock instead of patchright."""

    async def query_selector(self, selector: str) -> "ElementLike | None": ...
    async def get_attribute(self, name: str) -> str | None: ...
    async def inner_text(self) -> str: ...


class PriceFields(BaseModel):
    """List price and the strictly lower discounted price, if any."""

    model_config = ConfigDict(frozen=True)

    list_price: int | None = None
    discounted_price: int | None = None


PriceStrategy = Callable[[ElementLike], Awaitable[PriceFields | None]]


# --- Pure helpers ---


def parse_price_text(text: str | None) -> int | None:
    """Keep the digits of a price label ("12,900원" → 12900)."""
    if not text:
        return None
    digits = re.sub(r"[^\d]", "", text)
    return int(digits) if digits else None


def parse_analytics_prices(data_params: str | None) -> PriceFields | None:
    """Read origin/promotion/coupon prices from a ``data-params-exp`` value.

    Coupon price wins over promotion price, and either only counts when it
    is strictly below the origin price. Without an origin price the
    promotion price stands in as list price. Returns None when no list
    price can be derived.
    """
    if not data_params:
        return None
    match = _UT_LOG_MAP.search(data_params)
    if match is None:
        return None
    try:
        log_map = json.loads(unquote(match.group(1)))
    except json.JSONDecodeError:
        logger.debug("Malformed utLogMap payload", exc_info=True)
        return None
    if not isinstance(log_map, dict):
        return None

    origin = _as_int(log_map.get("origin_price"))
    promotion = _as_int(log_map.get("promotion_price"))
    coupon = _as_int(log_map.get("coupon_price"))

    discounted: int | None = None
    if coupon and origin and coupon < origin:
        discounted = coupon
    elif promotion and origin and promotion < origin:
        discounted = promotion

    list_price = origin or promotion
    if not list_price:
        return None
    return PriceFields(list_price=list_price, discounted_price=discounted)


def parse_shipping_fee(text: str | None) -> int | None:
    """Return 0 for free shipping, the fee for "배송비 N", else None.

    When both markers appear, the one earliest in the text wins.
    """
    if not text:
        return None
    free = _FREE_SHIPPING.search(text)
    fee = _SHIPPING_FEE.search(text)
    if free and (fee is None or free.start() < fee.start()):
        return 0
    if fee:
        return int(fee.group(1).replace(",", ""))
    return None


def compute_discount_percent(list_price: int | None, discounted_price: int | None) -> int | None:
    """Rounded discount in percent when a strictly lower discounted price exists."""
    if not list_price or discounted_price is None or discounted_price >= list_price:
        return None
    return round((1 - discounted_price / list_price) * 100)


def _as_int(value: object) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(str(value))
    except ValueError:
        return None


# --- Parser ---


class GmarketParser:
    """Parses the top search-result cards of a Gmarket result page."""

    def __init__(self, base_url: str, max_listings: int = MAX_LISTINGS) -> None:
        self._base_url = base_url
        self._max_listings = min(max_listings, MAX_LISTINGS)
        self._price_strategies: tuple[PriceStrategy, ...] = (
            self._structured_prices,
            self._visible_prices,
        )

    async def extract_listings(
        self,
        page: ElementLike,
        *,
        query: str,
        search_url: str | None = None,
    ) -> list[Listing]:
        """Parse at most ``max_listings`` top cards, skipping any that fail."""
        cards = await self._find_cards(page)
        results: list[Listing] = []
        for rank, card in enumerate(cards[: self._max_listings], start=1):
            try:
                listing = await self.parse_card(card, rank=rank, query=query, search_url=search_url)
                if listing is not None:
                    results.append(listing)
            except Exception:
                logger.debug("Failed to parse card %d, skipping", rank, exc_info=True)
        return results

    async def parse_card(
        self,
        card: ElementLike,
        *,
        rank: int,
        query: str = "",
        search_url: str | None = None,
    ) -> Listing | None:
        """Parse a single card. Returns None if the name is missing."""
        name = await self._text_fallback(card, NAME_SELECTORS)
        if not name:
            logger.debug("Card %d missing name, skipping", rank)
            return None

        prices = await self._first_result(self._price_strategies, card) or PriceFields()
        shipping_fee = await self._shipping_fee(card)
        seller = await self._text_fallback(card, SELLER_SELECTORS) or "Unknown"
        href = await self._href_fallback(card, LINK_SELECTORS)

        return Listing(
            rank=rank,
            query=query,
            name=name,
            seller=seller,
            list_price=prices.list_price,
            discounted_price=prices.discounted_price,
            shipping_fee=shipping_fee,
            discount_percent=compute_discount_percent(prices.list_price, prices.discounted_price),
            url=normalize_listing_url(href, self._base_url),
            search_url=search_url,
        )

    # --- Price strategies ---

    async def _structured_prices(self, card: ElementLike) -> PriceFields | None:
        link = await card.query_selector(ANALYTICS_LINK_SELECTOR)
        if link is None:
            return None
        return parse_analytics_prices(await link.get_attribute(ANALYTICS_ATTR))

    async def _visible_prices(self, card: ElementLike) -> PriceFields | None:
        list_price = parse_price_text(await self._text_fallback(card, ORIGINAL_PRICE_SELECTORS))
        if list_price is None:
            list_price = parse_price_text(await self._text_fallback(card, SELLER_PRICE_SELECTORS))
        if list_price is None:
            return None
        coupon = parse_price_text(await self._text_fallback(card, COUPON_PRICE_SELECTORS))
        discounted = coupon if coupon is not None and coupon < list_price else None
        return PriceFields(list_price=list_price, discounted_price=discounted)

    # --- Private helpers ---

    async def _first_result(
        self, strategies: Sequence[PriceStrategy], card: ElementLike,
    ) -> PriceFields | None:
        """Run strategies in order and return the first non-None result."""
        for strategy in strategies:
            try:
                result = await strategy(card)
            except Exception:
                logger.debug("Price strategy %s raised, trying next", strategy.__name__, exc_info=True)
                continue
            if result is not None:
                return result
        return None

    async def _shipping_fee(self, card: ElementLike) -> int | None:
        try:
            return parse_shipping_fee(await card.inner_text())
        except Exception:
            logger.debug("Error reading card text for shipping fee", exc_info=True)
            return None

    async def _text_fallback(self, card: ElementLike, selectors: tuple[str, ...]) -> str:
        """Try selectors in order, return first non-empty text or ""."""
        for selector in selectors:
            try:
                el = await card.query_selector(selector)
                if el is None:
                    continue
                text = await el.inner_text()
                if text and text.strip():
                    return text.strip()
            except Exception:
                logger.debug("Selector '%s' raised, trying next", selector, exc_info=True)
        return ""

    async def _href_fallback(self, card: ElementLike, selectors: tuple[str, ...]) -> str | None:
        for selector in selectors:
            try:
                el = await card.query_selector(selector)
                if el is None:
                    continue
                href = await el.get_attribute("href")
                if href:
                    return href
            except Exception:
                logger.debug("Selector '%s' raised, trying next", selector, exc_info=True)
        return None

    async def _find_cards(self, page: ElementLike) -> list[ElementLike]:
        """Find listing cards using fallback selectors."""
        for selector in CARD_SELECTORS:
            cards = await page.query_selector_all(selector)  # type: ignore[attr-defined]
            if cards:
                logger.debug("Found %d cards with selector '%s'", len(cards), selector)
                return cards  # type: ignore[no-any-return]
        logger.warning("No listing cards found with any selector")
        return []
