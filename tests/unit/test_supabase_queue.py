"""Tests for the Supabase job queue backend (client mocked)."""

from unittest.mock import MagicMock, patch

import pytest

from pricehound.core.config import QueueConfig
from pricehound.core.errors import QueueIOError
from pricehound.core.schemas import ItemResult, Listing
from pricehound.queue.supabase_queue import SupabaseJobQueue


def _response(data: object) -> MagicMock:
    return MagicMock(data=data)


def _make_client(*responses: object) -> tuple[MagicMock, MagicMock]:
    """Client whose query builder chains to itself; execute() yields responses in order."""
    query = MagicMock()
    for name in ("select", "eq", "neq", "order", "limit", "update"):
        getattr(query, name).return_value = query
    if responses:
        query.execute.side_effect = [_response(r) for r in responses]
    else:
        query.execute.return_value = _response([])
    client = MagicMock()
    client.table.return_value = query
    return client, query


def _job_row(**overrides: object) -> dict[str, object]:
    row: dict[str, object] = {
        "id": "j1",
        "status": "running",
        "total_models": 2,
        "completed_models": 0,
        "failed_models": 0,
        "created_at": "2026-10-01T09:00:00+00:00",
    }
    row.update(overrides)
    return row


class TestFetch:
    async def test_oldest_pending(self) -> None:
        client, query = _make_client([_job_row(status="pending")])
        job = await SupabaseJobQueue(client).fetch_oldest_pending_job()
        assert job is not None
        assert job.id == "j1"
        client.table.assert_called_with("jobs")
        query.eq.assert_called_with("status", "pending")
        query.order.assert_called_with("created_at", desc=False)
        query.limit.assert_called_with(1)

    async def test_no_pending(self) -> None:
        client, _ = _make_client([])
        assert await SupabaseJobQueue(client).fetch_oldest_pending_job() is None

    async def test_pending_items(self) -> None:
        rows = [
            {"id": "i1", "job_id": "j1", "model_name": "A", "status": "pending", "sequence": 1},
            {"id": "i2", "job_id": "j1", "model_name": "B", "status": "pending", "sequence": 2},
        ]
        client, query = _make_client(rows)
        items = await SupabaseJobQueue(client).fetch_pending_items("j1")
        assert [i.model_name for i in items] == ["A", "B"]
        client.table.assert_called_with("job_items")
        query.order.assert_called_with("sequence", desc=False)


class TestUpdates:
    async def test_mark_running(self) -> None:
        client, query = _make_client()
        await SupabaseJobQueue(client).mark_job_running("j1")
        values = query.update.call_args[0][0]
        assert values["status"] == "running"
        assert "started_at" in values
        query.eq.assert_called_with("id", "j1")

    async def test_complete_item(self) -> None:
        client, query = _make_client()
        listing = Listing(rank=1, name="x", list_price=9000, shipping_fee=3000)
        await SupabaseJobQueue(client).complete_item("i1", ItemResult(listings=[listing]))
        values = query.update.call_args[0][0]
        assert values["status"] == "completed"
        assert values["result"]["listings"][0]["total_price"] == 12000

    async def test_fail_item(self) -> None:
        client, query = _make_client()
        await SupabaseJobQueue(client).fail_item("i1", "Target closed")
        values = query.update.call_args[0][0]
        assert values["status"] == "failed"
        assert values["error_message"] == "Target closed"

    async def test_counters_use_rpc(self) -> None:
        client, _ = _make_client()
        queue = SupabaseJobQueue(client)
        await queue.increment_completed("j1")
        await queue.increment_failed("j1")
        assert [c.args for c in client.rpc.call_args_list] == [
            ("increment_job_completed", {"job_id": "j1"}),
            ("increment_job_failed", {"job_id": "j1"}),
        ]


class TestRecovery:
    async def test_oldest_running(self) -> None:
        client, query = _make_client([_job_row()])
        job = await SupabaseJobQueue(client).fetch_oldest_running_job()
        assert job is not None
        assert job.status == "running"
        query.eq.assert_called_with("status", "running")

    async def test_sync_counters(self) -> None:
        statuses = [{"status": s} for s in ("completed", "failed", "processing", "completed")]
        client, query = _make_client(statuses, [])
        await SupabaseJobQueue(client).sync_job_counters("j1")
        assert query.update.call_args[0][0] == {"completed_models": 2, "failed_models": 1}
        query.eq.assert_called_with("id", "j1")

    async def test_requeue_processing(self) -> None:
        client, query = _make_client([{"id": "i1"}, {"id": "i2"}])
        assert await SupabaseJobQueue(client).requeue_processing_items("j1") == 2
        assert query.update.call_args[0][0] == {"status": "pending"}
        query.eq.assert_called_with("status", "processing")


class TestCompleteJobIfDone:
    async def test_not_all_processed(self) -> None:
        client, query = _make_client([_job_row(completed_models=1)])
        assert await SupabaseJobQueue(client).complete_job_if_done("j1") is False
        query.update.assert_not_called()

    async def test_transition(self) -> None:
        done = _job_row(completed_models=1, failed_models=1)
        client, query = _make_client([done], [{**done, "status": "completed"}])
        assert await SupabaseJobQueue(client).complete_job_if_done("j1") is True
        query.neq.assert_called_with("status", "completed")
        assert query.update.call_args[0][0]["status"] == "completed"

    async def test_already_completed(self) -> None:
        client, query = _make_client([_job_row(status="completed", completed_models=2)])
        assert await SupabaseJobQueue(client).complete_job_if_done("j1") is False
        query.update.assert_not_called()

    async def test_lost_race(self) -> None:
        """Another writer completed it between the read and the update."""
        done = _job_row(completed_models=2)
        client, _ = _make_client([done], [])
        assert await SupabaseJobQueue(client).complete_job_if_done("j1") is False


class TestErrors:
    async def test_client_error_wrapped(self) -> None:
        client, query = _make_client()
        query.execute.side_effect = RuntimeError("connection refused")
        with pytest.raises(QueueIOError, match="connection refused"):
            await SupabaseJobQueue(client).check_connection()

    def test_from_config(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SUPABASE_URL", "https://abc.supabase.co")
        monkeypatch.setenv("SUPABASE_SERVICE_KEY", "service-key")
        with patch("pricehound.queue.supabase_queue.create_client") as mock_create:
            queue = SupabaseJobQueue.from_config(QueueConfig(backend="supabase"))
        mock_create.assert_called_once_with("https://abc.supabase.co", "service-key")
        assert queue.backend_id == "supabase"

    def test_from_config_missing_key(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SUPABASE_URL", "https://abc.supabase.co")
        monkeypatch.delenv("SUPABASE_SERVICE_KEY", raising=False)
        with pytest.raises(ValueError, match="SUPABASE_SERVICE_KEY"):
            SupabaseJobQueue.from_config(QueueConfig(backend="supabase"))
