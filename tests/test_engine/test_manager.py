"""Tests for TransactionManager submission, cancellation and queries.

Auto-processing is not started here; see test_processing.py for execution.
"""

from __future__ import annotations

import pytest

from tx_manager.config.settings import QueueConfig
from tx_manager.engine.manager import TransactionManager
from tx_manager.engine.models import (
    BulkTransactionInput,
    TransactionJob,
    TransactionMetadata,
    TransactionStatus,
)
from tx_manager.errors.tx_errors import TxManagerError
from tx_manager.utils.clock import ManualClock
from tx_manager.utils.ids import is_valid_transaction_id


async def _noop(payload):
    return None


# ---------------------------------------------------------------------------
# queue_transaction
# ---------------------------------------------------------------------------


class TestQueueTransaction:
    async def test_returns_queued_record(self, manager, job) -> None:
        tx_id = await manager.queue_transaction(*job(amount=5), "high")
        assert is_valid_transaction_id(tx_id)

        record = manager.get_transaction(tx_id)
        assert record.status is TransactionStatus.QUEUED
        assert record.priority == "high"
        assert record.payload == {"amount": 5}
        assert record.retry_count == 0
        assert record.max_retries == 3
        assert record.retry_delay_ms == 10
        assert record.progress == 10
        assert record.created_at == record.updated_at

    async def test_ids_are_unique(self, manager, job) -> None:
        ids = {await manager.queue_transaction(*job()) for _ in range(50)}
        assert len(ids) == 50

    async def test_medium_priority_alias(self, manager, job) -> None:
        tx_id = await manager.queue_transaction(*job(), "medium")
        assert manager.get_transaction(tx_id).priority == "normal"

    async def test_per_job_retry_overrides(self, manager, job) -> None:
        tx_id = await manager.queue_transaction(*job(), max_retries=0, retry_delay_ms=1)
        record = manager.get_transaction(tx_id)
        assert record.max_retries == 0
        assert record.retry_delay_ms == 1

    async def test_metadata_is_kept(self, manager) -> None:
        tx_id = await manager.queue_transaction(
            TransactionJob("echo", {}),
            TransactionMetadata(user_id="42", description="Deploy $MEME", extra={"chain": 1}),
        )
        record = manager.get_transaction(tx_id)
        assert record.user_id == "42"
        assert record.description == "Deploy $MEME"
        assert record.metadata == {"chain": 1}

    @pytest.mark.parametrize(
        ("kwargs", "code"),
        [
            ({"tx_type": "bridge"}, "unknown-transaction-type"),
            ({"tx_type": ""}, "invalid-transaction"),
        ],
    )
    async def test_configuration_errors(self, manager, job, kwargs, code) -> None:
        with pytest.raises(TxManagerError) as exc_info:
            await manager.queue_transaction(*job(**kwargs))
        assert exc_info.value.code == code
        assert manager.get_transaction_stats().total == 0

    async def test_invalid_priority(self, manager, job) -> None:
        with pytest.raises(TxManagerError) as exc_info:
            await manager.queue_transaction(*job(), "urgent")
        assert exc_info.value.code == "invalid-priority"
        assert manager.get_transaction_stats().total == 0

    async def test_negative_retry_settings(self, manager, job) -> None:
        with pytest.raises(TxManagerError) as exc_info:
            await manager.queue_transaction(*job(), max_retries=-1)
        assert exc_info.value.code == "invalid-argument"

    async def test_non_mapping_payload(self, manager) -> None:
        with pytest.raises(TxManagerError) as exc_info:
            await manager.queue_transaction(
                TransactionJob("echo", "raw"),  # type: ignore[arg-type]
                TransactionMetadata(user_id="u1"),
            )
        assert exc_info.value.code == "invalid-argument"
        assert manager.get_transaction_stats().total == 0

    async def test_queue_full(self, job) -> None:
        mgr = TransactionManager({"echo": _noop}, queue_config=QueueConfig(max_queue_size=1))
        await mgr.queue_transaction(*job())
        with pytest.raises(TxManagerError) as exc_info:
            await mgr.queue_transaction(*job())
        assert exc_info.value.status_code == 503
        assert mgr.get_transaction_stats().total == 1
        await mgr.close()


# ---------------------------------------------------------------------------
# bulk operations
# ---------------------------------------------------------------------------


class TestBulkQueue:
    async def test_one_bad_entry_does_not_block_others(self, manager) -> None:
        meta = TransactionMetadata(user_id="u1")
        results = await manager.bulk_queue_transactions(
            [
                BulkTransactionInput(TransactionJob("echo", {"n": 1}), meta),
                BulkTransactionInput(TransactionJob("bridge", {}), meta),
                BulkTransactionInput(TransactionJob("echo", {"n": 3}), meta, "low"),
            ]
        )
        assert [r.success for r in results] == [True, False, True]
        assert "bridge" in results[1].error
        assert results[1].tx_id is None
        assert manager.get_transaction(results[2].tx_id).priority == "low"

    async def test_malformed_entry_is_reported_per_item(self, manager) -> None:
        meta = TransactionMetadata(user_id="u1")
        results = await manager.bulk_queue_transactions(
            [
                BulkTransactionInput(TransactionJob("echo", {}), meta),
                BulkTransactionInput(TransactionJob("echo", ["bad"]), meta),  # type: ignore[arg-type]
                BulkTransactionInput(
                    TransactionJob("echo", {}),
                    TransactionMetadata(user_id="u1", extra=["x"]),  # type: ignore[arg-type]
                ),
                BulkTransactionInput(TransactionJob("echo", {}), meta),
            ]
        )
        assert [r.success for r in results] == [True, False, False, True]
        assert "payload must be a mapping" in results[1].error
        assert "extra fields" in results[2].error
        assert manager.get_transaction_stats().total == 2

    async def test_empty(self, manager) -> None:
        assert await manager.bulk_queue_transactions([]) == []


class TestCancel:
    async def test_cancel_queued(self, manager, job) -> None:
        tx_id = await manager.queue_transaction(*job())
        assert await manager.cancel_transaction(tx_id) is True

        record = manager.get_transaction(tx_id)
        assert record.status is TransactionStatus.CANCELLED
        assert record.completed_at is not None
        assert manager.get_metrics().queued == 0

    async def test_cancel_terminal_returns_false(self, manager, job) -> None:
        tx_id = await manager.queue_transaction(*job())
        await manager.cancel_transaction(tx_id)
        assert await manager.cancel_transaction(tx_id) is False
        assert manager.get_transaction(tx_id).status is TransactionStatus.CANCELLED

    async def test_cancel_unknown(self, manager) -> None:
        with pytest.raises(TxManagerError) as exc_info:
            await manager.cancel_transaction("tx_doesnotexist")
        assert exc_info.value.status_code == 404

    async def test_bulk_cancel(self, manager, job) -> None:
        tx_id = await manager.queue_transaction(*job())
        results = await manager.bulk_cancel_transactions([tx_id, "tx_doesnotexist", tx_id])
        assert [r.success for r in results] == [True, False, False]
        assert results[1].error is not None
        assert results[2].error is None


# ---------------------------------------------------------------------------
# queries
# ---------------------------------------------------------------------------


class TestHistory:
    async def test_newest_first_and_filters(self, manager, job) -> None:
        first = await manager.queue_transaction(*job(user_id="alice"))
        second = await manager.queue_transaction(*job(user_id="alice"))
        await manager.queue_transaction(*job(user_id="bob"))
        await manager.cancel_transaction(first)

        history = manager.get_user_transaction_history("alice")
        assert [r.id for r in history] == [second, first]

        cancelled = manager.get_user_transaction_history("alice", status="cancelled")
        assert [r.id for r in cancelled] == [first]
        assert manager.get_user_transaction_history("alice", tx_type="other") == []

    async def test_pagination(self, manager, job) -> None:
        ids = [await manager.queue_transaction(*job(user_id="carol")) for _ in range(5)]
        page = manager.get_user_transaction_history("carol", limit=2, offset=1)
        assert [r.id for r in page] == [ids[3], ids[2]]

    def test_unknown_user(self, manager) -> None:
        assert manager.get_user_transaction_history("nobody") == []

    def test_bad_filters(self, manager) -> None:
        with pytest.raises(TxManagerError):
            manager.get_user_transaction_history("u", status="lost")
        with pytest.raises(TxManagerError):
            manager.get_user_transaction_history("u", offset=-1)

    async def test_returns_snapshots(self, manager, job) -> None:
        tx_id = await manager.queue_transaction(*job())
        manager.get_user_transaction_history("user-1")[0].payload["x"] = 1
        assert manager.get_transaction(tx_id).payload == {}


class TestMetricsAndStats:
    async def test_metrics_snapshot(self, manager, job) -> None:
        low = await manager.queue_transaction(*job(), "low")
        await manager.queue_transaction(*job(), "high")
        cancelled = await manager.queue_transaction(*job())
        await manager.cancel_transaction(cancelled)

        snap = manager.get_metrics()
        assert snap.total_submitted == 3
        assert snap.queued == 2
        assert snap.processing == 0
        assert snap.cancelled == 1
        assert snap.queue_depth == {"high": 1, "normal": 0, "low": 1}
        assert snap.oldest_queued_id == low
        assert snap.worker_pool_size == 1
        assert snap.processing_time.average == 0.0

    def test_empty_metrics(self, manager) -> None:
        snap = manager.get_metrics()
        assert snap.total_submitted == 0
        assert snap.oldest_queued_id is None

    async def test_stats(self, manager, job) -> None:
        await manager.queue_transaction(*job(), "high")
        tx_id = await manager.queue_transaction(*job())
        await manager.cancel_transaction(tx_id)

        stats = manager.get_transaction_stats()
        assert stats.total == 2
        assert stats.by_type == {"echo": 2}
        assert stats.by_status["queued"] == 1
        assert stats.by_status["cancelled"] == 1
        assert stats.by_priority == {"high": 1, "normal": 1, "low": 0}


class TestSubscribeValidation:
    def test_unknown_id(self, manager) -> None:
        with pytest.raises(TxManagerError) as exc_info:
            manager.subscribe_to_transaction("tx_doesnotexist", lambda event: None)
        assert exc_info.value.code == "transaction-not-found"


# ---------------------------------------------------------------------------
# cleanup
# ---------------------------------------------------------------------------


class TestCleanup:
    async def test_removes_old_terminal_records(self, job) -> None:
        clock = ManualClock()
        mgr = TransactionManager({"echo": _noop}, clock=clock)
        old = await mgr.queue_transaction(*job())
        await mgr.cancel_transaction(old)
        pending = await mgr.queue_transaction(*job())
        clock.advance(seconds=120)
        recent = await mgr.queue_transaction(*job())
        await mgr.cancel_transaction(recent)

        assert mgr.cleanup_old_transactions(60_000) == 1
        with pytest.raises(TxManagerError):
            mgr.get_transaction(old)
        assert mgr.get_transaction(pending).status is TransactionStatus.QUEUED
        assert mgr.get_transaction(recent).status is TransactionStatus.CANCELLED
        # Lifetime counters survive cleanup
        assert mgr.get_metrics().cancelled == 2
        await mgr.close()

    def test_negative_age(self, manager) -> None:
        with pytest.raises(TxManagerError):
            manager.cleanup_old_transactions(-1)
