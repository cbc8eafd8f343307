"""Price selection by clustering: the cheapest listing of the consensus group.

Listings are sorted by total price and split wherever the next price is more
than 30% above the previous one. A listing for a different product that
shares the query string lands in its own cluster and is ignored.

Selection rules:
  1. 0 priced listings → None.
  2. 1 priced listing  → that listing, confidence 1.
  3. Otherwise the largest cluster with at least 3 members, else the
     largest cluster overall. Equal sizes resolve to the cheaper cluster.
     The representative is the cluster's cheapest member; confidence is
     the cluster size.

Pure and deterministic: the input order never affects the result.
"""

import logging

from pricehound.core.schemas import Listing, SelectionResult

logger = logging.getLogger(__name__)

MAX_STEP_PERCENT = 30
MIN_CONSENSUS_SIZE = 3


def _sort_key(listing: Listing) -> tuple[int, int, str, str, str]:
    # total_price is non-None for every listing reaching this key
    return (listing.total_price or 0, listing.rank, listing.name, listing.seller, listing.url)


def cluster_by_price(listings: list[Listing]) -> list[list[Listing]]:
    """Split priced listings into contiguous clusters of ascending price.

    Listings without a total price are dropped. Each listing lands in
    exactly one cluster; clusters are returned cheapest first.
    """
    priced = sorted((item for item in listings if item.total_price is not None), key=_sort_key)
    if not priced:
        return []

    clusters: list[list[Listing]] = [[priced[0]]]
    for prev, curr in zip(priced, priced[1:]):
        prev_price = prev.total_price or 0
        curr_price = curr.total_price or 0
        if _step_exceeds(prev_price, curr_price):
            clusters.append([curr])
        else:
            clusters[-1].append(curr)
    return clusters


def select_lowest_price(listings: list[Listing]) -> SelectionResult | None:
    """Pick the most trustworthy lowest-price listing, or None."""
    clusters = cluster_by_price(listings)
    if not clusters:
        return None

    consensus = [c for c in clusters if len(c) >= MIN_CONSENSUS_SIZE]
    chosen = _largest(consensus) if consensus else _largest(clusters)

    logger.debug(
        "Clusters %s → chose size %d",
        [len(c) for c in clusters], len(chosen),
    )
    return SelectionResult(listing=chosen[0], confidence=len(chosen))


def _largest(clusters: list[list[Listing]]) -> list[Listing]:
    # max() keeps the first of equal maxima, i.e. the cheapest cluster
    return max(clusters, key=len)


def _step_exceeds(prev_price: int, curr_price: int) -> bool:
    """True if curr is more than 30% above prev.

    Integer arithmetic so the boundary (exactly 30%) is exact.
    """
    if prev_price <= 0:
        return curr_price > prev_price
    return (curr_price - prev_price) * 100 > prev_price * MAX_STEP_PERCENT
