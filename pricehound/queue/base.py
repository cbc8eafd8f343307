"""Abstract job queue: the CRUD/RPC surface the worker consumes."""

from abc import ABC, abstractmethod

from pricehound.core.schemas import ItemResult, Job, JobItem


class JobQueue(ABC):
    """Base class every queue store must implement.

    All methods raise QueueIOError when the store cannot be reached.
    """

    @property
    @abstractmethod
    def backend_id(self) -> str:
        """Unique identifier for this backend (e.g. 'sqlite')."""

    @abstractmethod
    async def check_connection(self) -> None:
        """Fail with QueueIOError if the store is unreachable."""

    @abstractmethod
    async def fetch_oldest_pending_job(self) -> Job | None:
        """Return the oldest job with status 'pending', or None."""

    @abstractmethod
    async def fetch_oldest_running_job(self) -> Job | None:
        """Return the oldest job still in 'running', or None."""

    @abstractmethod
    async def fetch_pending_items(self, job_id: str) -> list[JobItem]:
        """Return the job's pending items ordered by sequence ascending."""

    @abstractmethod
    async def get_job(self, job_id: str) -> Job | None:
        """Re-read a job row, including its aggregate counters."""

    @abstractmethod
    async def mark_job_running(self, job_id: str) -> None:
        """Set status 'running' and stamp started_at."""

    @abstractmethod
    async def mark_job_failed(self, job_id: str, message: str) -> None:
        """Set status 'failed' with an error message."""

    @abstractmethod
    async def complete_job_if_done(self, job_id: str) -> bool:
        """Transition to 'completed' when all items are counted.

        Idempotent. Returns True only when this call made the transition.
        """

    @abstractmethod
    async def sync_job_counters(self, job_id: str) -> None:
        """Recompute completed/failed counters from item statuses."""

    @abstractmethod
    async def requeue_processing_items(self, job_id: str) -> int:
        """Move items stuck in 'processing' back to 'pending'. Returns how many."""

    @abstractmethod
    async def mark_item_processing(self, item_id: str) -> None:
        """Set an item's status to 'processing'."""

    @abstractmethod
    async def complete_item(self, item_id: str, result: ItemResult) -> None:
        """Persist the listing set and mark the item 'completed'."""

    @abstractmethod
    async def fail_item(self, item_id: str, message: str) -> None:
        """Mark the item 'failed' with an error message."""

    @abstractmethod
    async def increment_completed(self, job_id: str) -> None:
        """Atomically add one to the job's completed counter."""

    @abstractmethod
    async def increment_failed(self, job_id: str) -> None:
        """Atomically add one to the job's failed counter."""
