"""Job worker: polls the queue and drains jobs item by item.

Data flow per job:
  1. Claim: job → running
  2. Fetch: pending items in sequence order
  3. Batches: `concurrency` items at a time, random pacing between batches
  4. Rotate: restart the browser when the search cadence is due
  5. Search: adapter search, restart + retry on transient browser errors
  6. Persist: item completed/failed, atomic job counter increment
  7. Finish: job → completed once every item is counted (idempotent)

Queue writes are retried with backoff. A job left 'running' by a lost write
or an interrupted worker is resumed on a later poll: counters are recounted
from item statuses and unfinished items are searched again.

Item-level failures never leave this module; only a fatal browser error
(launch failure, session misuse) propagates to the caller.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from pricehound.browser.actions import random_sleep
from pricehound.browser.rotation import RotationPolicy
from pricehound.browser.session import BrowserSession
from pricehound.core.config import Settings
from pricehound.core.errors import (
    BrowserLaunchError,
    ErrorKind,
    ExtractionFailure,
    NotStartedError,
    QueueIOError,
    classify_error,
)
from pricehound.core.schemas import ItemResult, Job, JobItem, SearchOutcome
from pricehound.pipeline.price_selector import select_lowest_price
from pricehound.platforms.base import MarketplaceAdapter
from pricehound.queue.base import JobQueue

logger = logging.getLogger(__name__)

NO_LISTINGS_MESSAGE = "no listings found"


class JobWorker:
    """Single-process queue consumer.

    Usage::

        worker = JobWorker(settings, queue, session, adapter)
        await worker.run()          # until worker.stop()
    """

    def __init__(
        self,
        settings: Settings,
        queue: JobQueue,
        session: BrowserSession,
        adapter: MarketplaceAdapter,
    ) -> None:
        self._settings = settings
        self._queue = queue
        self._session = session
        self._adapter = adapter
        self._policy = RotationPolicy(settings.rotation)
        self._rotation_lock = asyncio.Lock()
        self._stop_event = asyncio.Event()
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def stop(self) -> None:
        """Ask the loop to exit at the next iteration boundary."""
        if self._running:
            logger.info("Stop requested, finishing current iteration")
        self._running = False
        self._stop_event.set()

    async def run(self) -> None:
        """Poll for jobs until stop() is called."""
        cfg = self._settings.worker
        logger.info(
            "Worker started: concurrency %d, delay %.1f-%.1fs, poll every %.1fs",
            cfg.concurrency, cfg.delay_min_s, cfg.delay_max_s, cfg.poll_interval_s,
        )
        self._running = True
        self._stop_event.clear()

        while self._running:
            await self._rotate_if_scheduled()
            try:
                await self.poll_once()
            except QueueIOError as e:
                logger.error("Queue unavailable, retrying next cycle: %s", e)

            if not self._running:
                break
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=cfg.poll_interval_s)
            except asyncio.TimeoutError:
                pass

        logger.info("Worker stopped")

    async def poll_once(self) -> Job | None:
        """Process the oldest pending job, else resume a stalled running one.

        Returns the job handled, or None when there was nothing to do.
        """
        job = await self._queue.fetch_oldest_pending_job()
        if job is not None:
            await self.process_job(job)
            return job
        job = await self._queue.fetch_oldest_running_job()
        if job is not None:
            await self.resume_job(job)
            return job
        logger.debug("No pending jobs")
        return None

    async def process_job(self, job: Job) -> None:
        """Drain every pending item of a job, then derive its completion."""
        logger.info("Job %s started (%d models)", job.id, job.total_models)
        await self._queue.mark_job_running(job.id)
        await self._drain_job(job)

    async def resume_job(self, job: Job) -> None:
        """Finish a job left 'running' by a lost queue write or a crash."""
        logger.info("Resuming job %s", job.id)
        await self._queue.sync_job_counters(job.id)
        if await self.finish_job(job.id):
            return
        requeued = await self._queue.requeue_processing_items(job.id)
        if requeued:
            logger.info("Job %s: %d unfinished items requeued", job.id, requeued)
        await self._drain_job(job)

    async def _drain_job(self, job: Job) -> None:
        try:
            items = await self._queue.fetch_pending_items(job.id)
        except QueueIOError as e:
            logger.error("Job %s: failed to fetch items: %s", job.id, e)
            await self._queue.mark_job_failed(job.id, f"failed to fetch job items: {e}")
            return

        size = self._settings.worker.concurrency
        batches = [items[i : i + size] for i in range(0, len(items), size)]
        for index, batch in enumerate(batches):
            if index > 0:
                delay = await random_sleep(
                    self._settings.worker.delay_min_s, self._settings.worker.delay_max_s,
                )
                logger.debug("Paced %.1fs before next batch", delay)
            logger.debug("Batch %d/%d: %s", index + 1, len(batches), [i.model_name for i in batch])
            await asyncio.gather(*(self.process_item(item) for item in batch))

        self._session.record_job()
        await self.finish_job(job.id)

    async def finish_job(self, job_id: str) -> bool:
        """Mark the job completed if all items are counted. Safe to repeat."""
        try:
            completed = await self._queue.complete_job_if_done(job_id)
        except QueueIOError as e:
            logger.error("Job %s: completion check failed: %s", job_id, e)
            return False
        if completed:
            job = await self._queue.get_job(job_id)
            if job is not None:
                logger.info(
                    "Job %s completed: %d succeeded, %d failed",
                    job_id, job.completed_models, job.failed_models,
                )
        return completed

    async def process_item(self, item: JobItem) -> bool:
        """Search one item and persist its outcome. Returns True on success.

        Never raises except for fatal browser errors.
        """
        logger.info("[%d] %s", item.sequence, item.model_name)
        try:
            await self._queue.mark_item_processing(item.id)
            outcome = await self._search_with_retry(item.model_name)
            if outcome.error is not None:
                await self._record_failure(item, outcome.error)
                return False
            if not outcome.listings:
                raise ExtractionFailure(NO_LISTINGS_MESSAGE)
            result = self._build_result(outcome)
        except (BrowserLaunchError, NotStartedError):
            raise
        except Exception as e:
            await self._record_failure(item, str(e) or type(e).__name__)
            return False

        # The counter moves only once the item row is written
        try:
            await self._persist(
                f"saving result of '{item.model_name}'",
                lambda: self._queue.complete_item(item.id, result),
            )
            await self._persist(
                f"counting result of '{item.model_name}'",
                lambda: self._queue.increment_completed(item.job_id),
            )
        except QueueIOError as e:
            logger.error("Could not record result of item %s, left for resume: %s", item.id, e)
            return False
        return True

    def _build_result(self, outcome: SearchOutcome) -> ItemResult:
        """Keep every listing; the selection is stored for convenience only."""
        selection = select_lowest_price(outcome.listings)
        if selection is not None:
            logger.info(
                "  lowest %s KRW (#%d, confidence %d/%d)",
                f"{selection.listing.total_price:,}", selection.listing.rank,
                selection.confidence, len(outcome.listings),
            )
        return ItemResult(
            search_url=outcome.search_url,
            listings=outcome.listings,
            selected_rank=selection.listing.rank if selection else None,
            confidence=selection.confidence if selection else None,
        )

    async def _search_with_retry(self, query: str) -> SearchOutcome:
        """Run the search, restarting the browser on transient failures."""
        max_retries = self._settings.worker.max_retries
        attempt = 0
        while True:
            await self._before_search()
            generation = self._session.generation
            outcome = await self._adapter.search(query)
            if outcome.error is None:
                return outcome
            if classify_error(outcome.error) is not ErrorKind.TRANSIENT:
                return outcome
            if attempt >= max_retries:
                logger.warning("'%s': giving up after %d attempts", query, attempt + 1)
                return outcome
            attempt += 1
            logger.info(
                "'%s': browser error (%s), restarting and retrying (%d/%d)",
                query, outcome.error, attempt, max_retries,
            )
            await self._session.restart(
                f"transient error on '{query}'", expected_generation=generation,
            )

    async def _before_search(self) -> None:
        """Apply the age and search-cadence rotation, then count the search."""
        async with self._rotation_lock:
            reason = self._policy.age_reason(self._session)
            if reason is None and self._policy.search_rotation_due(self._session):
                reason = f"{self._session.searches_since_restart} searches since last restart"
            if reason is not None:
                await self._session.restart(reason)
            self._session.record_search()

    async def _rotate_if_scheduled(self) -> None:
        reason = self._policy.restart_reason(self._session)
        if reason is not None:
            async with self._rotation_lock:
                await self._session.restart(reason)

    async def _record_failure(self, item: JobItem, message: str) -> None:
        logger.warning("  failed '%s': %s", item.model_name, message)
        try:
            await self._persist(
                f"saving failure of '{item.model_name}'",
                lambda: self._queue.fail_item(item.id, message),
            )
            await self._persist(
                f"counting failure of '{item.model_name}'",
                lambda: self._queue.increment_failed(item.job_id),
            )
        except QueueIOError as e:
            logger.error("Could not record failure of item %s, left for resume: %s", item.id, e)

    async def _persist(self, what: str, write: Callable[[], Awaitable[None]]) -> None:
        """Run one queue write, retrying with exponential backoff.

        Raises the last QueueIOError once the attempts are used up.
        """
        cfg = self._settings.worker
        for attempt in range(1, cfg.persist_attempts + 1):
            try:
                await write()
                return
            except QueueIOError as e:
                if attempt == cfg.persist_attempts:
                    raise
                delay = cfg.persist_backoff_s * 2 ** (attempt - 1)
                logger.warning(
                    "Queue write failed (%s): %s, retrying in %.1fs (%d/%d)",
                    what, e, delay, attempt, cfg.persist_attempts,
                )
                await asyncio.sleep(delay)
