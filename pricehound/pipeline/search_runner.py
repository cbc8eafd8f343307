"""Ad-hoc searches outside the queue: search, select, report.

Used by the ``search`` CLI command to look up a handful of models directly.
"""

import json
import logging

from pricehound.browser.actions import random_sleep
from pricehound.core.schemas import SearchOutcome, SelectionResult
from pricehound.pipeline.price_selector import select_lowest_price
from pricehound.platforms.base import MarketplaceAdapter

logger = logging.getLogger(__name__)


class SearchResult:
    """One model's search outcome and its selected listing."""

    def __init__(self, outcome: SearchOutcome, selection: SelectionResult | None) -> None:
        self.outcome = outcome
        self.selection = selection

    @property
    def query(self) -> str:
        return self.outcome.query

    @property
    def succeeded(self) -> bool:
        return self.outcome.error is None and bool(self.outcome.listings)


async def run_searches(
    models: list[str],
    adapter: MarketplaceAdapter,
    *,
    delay_min_s: float = 2.0,
    delay_max_s: float = 5.0,
) -> list[SearchResult]:
    """Search each model in turn with a random delay between searches."""
    results: list[SearchResult] = []
    for index, model in enumerate(models):
        if index > 0:
            await random_sleep(delay_min_s, delay_max_s)
        logger.info("[%d/%d] %s", index + 1, len(models), model)
        outcome = await adapter.search(model)
        selection = select_lowest_price(outcome.listings)
        results.append(SearchResult(outcome, selection))
    return results


def format_summary(results: list[SearchResult]) -> str:
    """Human-readable one-line-per-model summary."""
    lines: list[str] = []
    succeeded = sum(1 for r in results if r.succeeded)
    lines.append(f"Searches succeeded: {succeeded}/{len(results)}")
    for r in results:
        if r.selection is not None:
            listing = r.selection.listing
            shipping = "free" if not listing.shipping_fee else f"{listing.shipping_fee:,}"
            lines.append(
                f"  '{r.query}': {listing.total_price:,} KRW (#{listing.rank}, "
                f"shipping {shipping}, confidence {r.selection.confidence}/5) "
                f"{listing.seller} {listing.url}",
            )
        else:
            lines.append(f"  '{r.query}': {r.outcome.error or 'no listings'}")
    return "\n".join(lines)


def export_results_json(results: list[SearchResult]) -> str:
    """Export every listing with its model's selection as a JSON string."""
    data = []
    for r in results:
        selected_rank = r.selection.listing.rank if r.selection else None
        data.append({
            "query": r.query,
            "search_url": r.outcome.search_url,
            "error": r.outcome.error,
            "selected_rank": selected_rank,
            "confidence": r.selection.confidence if r.selection else None,
            "listings": [listing.model_dump(mode="json") for listing in r.outcome.listings],
        })
    return json.dumps(data, indent=2, ensure_ascii=False)
