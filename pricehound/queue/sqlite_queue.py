"""Local SQLite-backed job queue."""

import logging
import sqlite3
from datetime import datetime
from pathlib import Path

from pricehound.core import db
from pricehound.core.errors import QueueIOError
from pricehound.core.schemas import ItemResult, Job, JobItem
from pricehound.queue.base import JobQueue

logger = logging.getLogger(__name__)


class SqliteJobQueue(JobQueue):
    """Job queue over a local SQLite file.

    Calls are synchronous and short; they run on the event loop thread, so
    concurrent batch members never interleave inside one statement.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    @classmethod
    def open(cls, path: str | Path) -> "SqliteJobQueue":
        try:
            return cls(db.init_db(path))
        except sqlite3.Error as e:
            msg = f"Cannot open queue database {path}: {e}"
            raise QueueIOError(msg) from e

    @property
    def backend_id(self) -> str:
        return "sqlite"

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    def close(self) -> None:
        self._conn.close()

    def create_job(self, models: list[str]) -> Job:
        """Create a pending job for the given model names."""
        job_id = self._call(db.create_job, self._conn, models)
        job = self._call(db.get_job, self._conn, job_id)
        logger.info("Created job %s with %d items", job_id, len(models))
        return job  # type: ignore[no-any-return]

    async def check_connection(self) -> None:
        self._call(self._conn.execute, "SELECT 1")

    async def fetch_oldest_pending_job(self) -> Job | None:
        return self._call(db.fetch_oldest_pending_job, self._conn)  # type: ignore[no-any-return]

    async def fetch_oldest_running_job(self) -> Job | None:
        return self._call(db.fetch_oldest_running_job, self._conn)  # type: ignore[no-any-return]

    async def fetch_pending_items(self, job_id: str) -> list[JobItem]:
        return self._call(db.fetch_pending_items, self._conn, job_id)  # type: ignore[no-any-return]

    async def get_job(self, job_id: str) -> Job | None:
        return self._call(db.get_job, self._conn, job_id)  # type: ignore[no-any-return]

    async def mark_job_running(self, job_id: str) -> None:
        self._call(db.update_job, self._conn, job_id, status="running", started_at=datetime.now())

    async def mark_job_failed(self, job_id: str, message: str) -> None:
        self._call(db.update_job, self._conn, job_id, status="failed", error_message=message)

    async def complete_job_if_done(self, job_id: str) -> bool:
        return self._call(db.complete_job_if_done, self._conn, job_id)  # type: ignore[no-any-return]

    async def sync_job_counters(self, job_id: str) -> None:
        self._call(db.sync_job_counters, self._conn, job_id)

    async def requeue_processing_items(self, job_id: str) -> int:
        return self._call(db.requeue_processing_items, self._conn, job_id)  # type: ignore[no-any-return]

    async def mark_item_processing(self, item_id: str) -> None:
        self._call(db.update_item, self._conn, item_id, status="processing")

    async def complete_item(self, item_id: str, result: ItemResult) -> None:
        self._call(
            db.update_item,
            self._conn,
            item_id,
            status="completed",
            result=result.model_dump(mode="json"),
            error_message=None,
            processed_at=datetime.now(),
        )

    async def fail_item(self, item_id: str, message: str) -> None:
        self._call(
            db.update_item,
            self._conn,
            item_id,
            status="failed",
            error_message=message,
            processed_at=datetime.now(),
        )

    async def increment_completed(self, job_id: str) -> None:
        self._call(db.increment_job_counter, self._conn, job_id, "completed_models")

    async def increment_failed(self, job_id: str) -> None:
        self._call(db.increment_job_counter, self._conn, job_id, "failed_models")

    @staticmethod
    def _call(fn, *args, **kwargs):  # type: ignore[no-untyped-def]
        try:
            return fn(*args, **kwargs)
        except sqlite3.Error as e:
            msg = f"SQLite queue error: {e}"
            raise QueueIOError(msg) from e
