"""SQLite job queue store: jobs, job items, atomic counters.

Mirrors the remote queue's row layout so the worker behaves the same against
either store. Counter increments are single UPDATE statements; the worker
never reads-then-writes a counter.
"""

import json
import sqlite3
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any

from pricehound.core.schemas import Job, JobItem

_JOBS_TABLE = """
CREATE TABLE IF NOT EXISTS jobs (
    id                TEXT    PRIMARY KEY,
    status            TEXT    NOT NULL DEFAULT 'pending',
    total_models      INTEGER NOT NULL DEFAULT 0,
    completed_models  INTEGER NOT NULL DEFAULT 0,
    failed_models     INTEGER NOT NULL DEFAULT 0,
    created_at        TEXT    NOT NULL,
    started_at        TEXT,
    completed_at      TEXT,
    error_message     TEXT
);
"""

_JOB_ITEMS_TABLE = """
CREATE TABLE IF NOT EXISTS job_items (
    id             TEXT    PRIMARY KEY,
    job_id         TEXT    NOT NULL REFERENCES jobs(id),
    model_name     TEXT    NOT NULL,
    status         TEXT    NOT NULL DEFAULT 'pending',
    sequence       INTEGER NOT NULL,
    result         TEXT,
    error_message  TEXT,
    processed_at   TEXT
);
"""

_JOB_ITEMS_INDEX = """
CREATE INDEX IF NOT EXISTS idx_job_items_job_status
    ON job_items (job_id, status, sequence);
"""


def init_db(path: str | Path) -> sqlite3.Connection:
    """Create the database and tables, returning a connection."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute(_JOBS_TABLE)
    conn.execute(_JOB_ITEMS_TABLE)
    conn.execute(_JOB_ITEMS_INDEX)
    conn.commit()
    return conn


def create_job(
    conn: sqlite3.Connection,
    models: list[str],
    created_at: datetime | None = None,
) -> str:
    """Insert a pending job with one pending item per model. Returns the job ID."""
    job_id = uuid.uuid4().hex
    created = (created_at or datetime.now()).isoformat()
    conn.execute(
        "INSERT INTO jobs (id, status, total_models, created_at) VALUES (?, 'pending', ?, ?)",
        (job_id, len(models), created),
    )
    conn.executemany(
        """
        INSERT INTO job_items (id, job_id, model_name, status, sequence)
        VALUES (?, ?, ?, 'pending', ?)
        """,
        [(uuid.uuid4().hex, job_id, model, seq) for seq, model in enumerate(models, start=1)],
    )
    conn.commit()
    return job_id


def get_job(conn: sqlite3.Connection, job_id: str) -> Job | None:
    row = conn.execute("SELECT * FROM jobs WHERE id = ?", (job_id,)).fetchone()
    return _row_to_job(row) if row is not None else None


def fetch_oldest_pending_job(conn: sqlite3.Connection) -> Job | None:
    """Return the oldest job with status 'pending', or None."""
    row = conn.execute(
        """
        SELECT * FROM jobs
        WHERE status = 'pending'
        ORDER BY created_at ASC, rowid ASC
        LIMIT 1
        """,
    ).fetchone()
    return _row_to_job(row) if row is not None else None


def fetch_oldest_running_job(conn: sqlite3.Connection) -> Job | None:
    """Return the oldest job left in status 'running', or None."""
    row = conn.execute(
        """
        SELECT * FROM jobs
        WHERE status = 'running'
        ORDER BY created_at ASC, rowid ASC
        LIMIT 1
        """,
    ).fetchone()
    return _row_to_job(row) if row is not None else None


def fetch_pending_items(conn: sqlite3.Connection, job_id: str) -> list[JobItem]:
    """Return the job's pending items ordered by sequence."""
    rows = conn.execute(
        """
        SELECT * FROM job_items
        WHERE job_id = ? AND status = 'pending'
        ORDER BY sequence ASC
        """,
        (job_id,),
    ).fetchall()
    return [_row_to_item(r) for r in rows]


def get_items(conn: sqlite3.Connection, job_id: str) -> list[JobItem]:
    """Return every item of a job ordered by sequence, whatever its status."""
    rows = conn.execute(
        "SELECT * FROM job_items WHERE job_id = ? ORDER BY sequence ASC",
        (job_id,),
    ).fetchall()
    return [_row_to_item(r) for r in rows]


def update_job(conn: sqlite3.Connection, job_id: str, **fields: Any) -> None:
    """Set the given columns on a job row."""
    _update_row(conn, "jobs", job_id, fields)


def update_item(conn: sqlite3.Connection, item_id: str, **fields: Any) -> None:
    """Set the given columns on a job item row. ``result`` is stored as JSON."""
    if "result" in fields and fields["result"] is not None:
        fields["result"] = json.dumps(fields["result"], ensure_ascii=False)
    _update_row(conn, "job_items", item_id, fields)


def increment_job_counter(conn: sqlite3.Connection, job_id: str, column: str) -> None:
    """Atomically add one to completed_models or failed_models."""
    if column not in ("completed_models", "failed_models"):
        msg = f"Unknown job counter: {column}"
        raise ValueError(msg)
    conn.execute(f"UPDATE jobs SET {column} = {column} + 1 WHERE id = ?", (job_id,))
    conn.commit()


def sync_job_counters(conn: sqlite3.Connection, job_id: str) -> None:
    """Recompute both job counters from the statuses of its items."""
    conn.execute(
        """
        UPDATE jobs SET
            completed_models = (
                SELECT COUNT(*) FROM job_items WHERE job_id = :id AND status = 'completed'
            ),
            failed_models = (
                SELECT COUNT(*) FROM job_items WHERE job_id = :id AND status = 'failed'
            )
        WHERE id = :id
        """,
        {"id": job_id},
    )
    conn.commit()


def requeue_processing_items(conn: sqlite3.Connection, job_id: str) -> int:
    """Put items stuck in 'processing' back to 'pending'. Returns how many."""
    cursor = conn.execute(
        "UPDATE job_items SET status = 'pending' WHERE job_id = ? AND status = 'processing'",
        (job_id,),
    )
    conn.commit()
    return cursor.rowcount


def complete_job_if_done(
    conn: sqlite3.Connection,
    job_id: str,
    completed_at: datetime | None = None,
) -> bool:
    """Mark the job completed once every item is accounted for.

    Conditional on the job not already being completed, so repeated calls
    never re-stamp completed_at. Returns True only on the transition.
    """
    cursor = conn.execute(
        """
        UPDATE jobs
        SET status = 'completed', completed_at = ?
        WHERE id = ?
          AND status != 'completed'
          AND completed_models + failed_models >= total_models
        """,
        ((completed_at or datetime.now()).isoformat(), job_id),
    )
    conn.commit()
    return cursor.rowcount == 1


def _update_row(
    conn: sqlite3.Connection, table: str, row_id: str, fields: dict[str, Any],
) -> None:
    if not fields:
        return
    values = [v.isoformat() if isinstance(v, datetime) else v for v in fields.values()]
    assignments = ", ".join(f"{name} = ?" for name in fields)
    conn.execute(f"UPDATE {table} SET {assignments} WHERE id = ?", (*values, row_id))
    conn.commit()


def _row_to_job(row: sqlite3.Row) -> Job:
    return Job.model_validate(dict(row))


def _row_to_item(row: sqlite3.Row) -> JobItem:
    data = dict(row)
    if data.get("result"):
        data["result"] = json.loads(data["result"])
    return JobItem.model_validate(data)
