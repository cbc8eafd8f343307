"""Supabase-backed job queue (PostgREST tables + RPC counters).

Tables ``jobs`` and ``job_items`` are shared with the dashboard that creates
jobs. Counter increments go through the ``increment_job_completed`` and
``increment_job_failed`` database functions so concurrent items never race a
read-modify-write.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

from supabase import Client, create_client

from pricehound.core.config import QueueConfig
from pricehound.core.errors import QueueIOError
from pricehound.core.schemas import ItemResult, Job, JobItem
from pricehound.queue.base import JobQueue

logger = logging.getLogger(__name__)

JOBS_TABLE = "jobs"
ITEMS_TABLE = "job_items"


class SupabaseJobQueue(JobQueue):
    """Job queue over a Supabase project using the service-role key.

    supabase-py is synchronous; each call is moved to a worker thread so the
    event loop keeps driving in-flight browser pages.
    """

    def __init__(self, client: Client) -> None:
        self._client = client

    @classmethod
    def from_config(cls, config: QueueConfig) -> "SupabaseJobQueue":
        url = config.resolve_supabase_url()
        key = config.resolve_supabase_key()
        return cls(create_client(url, key))

    @property
    def backend_id(self) -> str:
        return "supabase"

    async def check_connection(self) -> None:
        await self._run(
            lambda: self._client.table(JOBS_TABLE).select("id").limit(1).execute(),
        )

    async def fetch_oldest_pending_job(self) -> Job | None:
        return await self._oldest_job("pending")

    async def fetch_oldest_running_job(self) -> Job | None:
        return await self._oldest_job("running")

    async def fetch_pending_items(self, job_id: str) -> list[JobItem]:
        response = await self._run(
            lambda: self._client.table(ITEMS_TABLE)
            .select("*")
            .eq("job_id", job_id)
            .eq("status", "pending")
            .order("sequence", desc=False)
            .execute(),
        )
        return [JobItem.model_validate(row) for row in response.data or []]

    async def get_job(self, job_id: str) -> Job | None:
        response = await self._run(
            lambda: self._client.table(JOBS_TABLE).select("*").eq("id", job_id).limit(1).execute(),
        )
        rows = response.data or []
        return Job.model_validate(rows[0]) if rows else None

    async def mark_job_running(self, job_id: str) -> None:
        await self._update(JOBS_TABLE, job_id, {"status": "running", "started_at": _now()})

    async def mark_job_failed(self, job_id: str, message: str) -> None:
        await self._update(JOBS_TABLE, job_id, {"status": "failed", "error_message": message})

    async def complete_job_if_done(self, job_id: str) -> bool:
        job = await self.get_job(job_id)
        if job is None or job.status == "completed" or not job.all_processed:
            return False
        response = await self._run(
            lambda: self._client.table(JOBS_TABLE)
            .update({"status": "completed", "completed_at": _now()})
            .eq("id", job_id)
            .neq("status", "completed")
            .execute(),
        )
        return bool(response.data)

    async def sync_job_counters(self, job_id: str) -> None:
        response = await self._run(
            lambda: self._client.table(ITEMS_TABLE).select("status").eq("job_id", job_id).execute(),
        )
        statuses = [row["status"] for row in response.data or []]
        await self._update(
            JOBS_TABLE,
            job_id,
            {
                "completed_models": statuses.count("completed"),
                "failed_models": statuses.count("failed"),
            },
        )

    async def requeue_processing_items(self, job_id: str) -> int:
        response = await self._run(
            lambda: self._client.table(ITEMS_TABLE)
            .update({"status": "pending"})
            .eq("job_id", job_id)
            .eq("status", "processing")
            .execute(),
        )
        return len(response.data or [])

    async def mark_item_processing(self, item_id: str) -> None:
        await self._update(ITEMS_TABLE, item_id, {"status": "processing"})

    async def complete_item(self, item_id: str, result: ItemResult) -> None:
        await self._update(
            ITEMS_TABLE,
            item_id,
            {
                "status": "completed",
                "result": result.model_dump(mode="json"),
                "processed_at": _now(),
            },
        )

    async def fail_item(self, item_id: str, message: str) -> None:
        await self._update(
            ITEMS_TABLE,
            item_id,
            {"status": "failed", "error_message": message, "processed_at": _now()},
        )

    async def increment_completed(self, job_id: str) -> None:
        await self._run(
            lambda: self._client.rpc("increment_job_completed", {"job_id": job_id}).execute(),
        )

    async def increment_failed(self, job_id: str) -> None:
        await self._run(
            lambda: self._client.rpc("increment_job_failed", {"job_id": job_id}).execute(),
        )

    async def _oldest_job(self, status: str) -> Job | None:
        response = await self._run(
            lambda: self._client.table(JOBS_TABLE)
            .select("*")
            .eq("status", status)
            .order("created_at", desc=False)
            .limit(1)
            .execute(),
        )
        rows = response.data or []
        return Job.model_validate(rows[0]) if rows else None

    async def _update(self, table: str, row_id: str, values: dict[str, Any]) -> None:
        await self._run(
            lambda: self._client.table(table).update(values).eq("id", row_id).execute(),
        )

    @staticmethod
    async def _run(call: Any) -> Any:
        try:
            return await asyncio.to_thread(call)
        except Exception as e:
            msg = f"Supabase queue error: {e}"
            raise QueueIOError(msg) from e


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()
