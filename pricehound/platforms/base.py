"""Abstract base class for marketplace adapters."""

from abc import ABC, abstractmethod

from pricehound.core.schemas import SearchOutcome


class MarketplaceAdapter(ABC):
    """Base class that every marketplace adapter must implement."""

    @property
    @abstractmethod
    def marketplace_id(self) -> str:
        """Unique identifier for this marketplace (e.g. 'gmarket')."""

    @abstractmethod
    async def search(self, query: str) -> SearchOutcome:
        """Run one search and return its listings or an error message.

        Never raises for search-level failures; they are reported in
        ``SearchOutcome.error`` and classified by the caller.
        """
