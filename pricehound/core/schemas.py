"""Core data models: queue rows, listings and selection results."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field

JobStatus = Literal["pending", "running", "completed", "failed", "cancelled"]
JobItemStatus = Literal["pending", "processing", "completed", "failed"]


class Job(BaseModel):
    """A batch of price lookups submitted together. Owned by the queue store."""

    id: str
    status: JobStatus = "pending"
    total_models: int = Field(default=0, ge=0)
    completed_models: int = Field(default=0, ge=0)
    failed_models: int = Field(default=0, ge=0)
    created_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error_message: str | None = None

    @property
    def processed_models(self) -> int:
        return self.completed_models + self.failed_models

    @property
    def all_processed(self) -> bool:
        return self.processed_models >= self.total_models


class JobItem(BaseModel):
    """One model-name lookup within a job."""

    id: str
    job_id: str
    model_name: str
    status: JobItemStatus = "pending"
    sequence: int = 0
    result: dict[str, Any] | None = None
    error_message: str | None = None
    processed_at: datetime | None = None


class Listing(BaseModel):
    """One extracted search-result entry.

    Frozen. ``total_price`` is computed and serialized alongside the raw
    fields so consumers can re-run the selection from stored data.
    """

    model_config = ConfigDict(frozen=True)

    rank: int = Field(ge=1, le=5)
    query: str = ""
    name: str
    seller: str = "Unknown"
    list_price: int | None = None
    discounted_price: int | None = None
    shipping_fee: int | None = None
    discount_percent: int | None = None
    url: str = ""
    search_url: str | None = None
    captured_at: datetime = Field(default_factory=datetime.now)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_price(self) -> int | None:
        base = self.list_price
        if self.discounted_price is not None and (base is None or self.discounted_price < base):
            base = self.discounted_price
        if base is None:
            return None
        return base + (self.shipping_fee or 0)


class SelectionResult(BaseModel):
    """The representative listing and the size of the cluster backing it."""

    model_config = ConfigDict(frozen=True)

    listing: Listing
    confidence: int = Field(ge=1)


class SearchOutcome(BaseModel):
    """Result of one marketplace search: listings, or an error message."""

    query: str
    listings: list[Listing] = Field(default_factory=list)
    search_url: str | None = None
    error: str | None = None
    screenshot_path: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ItemResult(BaseModel):
    """Payload persisted on a completed job item."""

    search_url: str | None = None
    listings: list[Listing] = Field(default_factory=list)
    selected_rank: int | None = None
    confidence: int | None = None
