"""TransactionManager — the facade callers submit work to.

Composes the record store, priority queue, retry schedule, processor
registry, subscription hub, metrics and the auto-processing loop.  All state
lives in one asyncio event loop; mutations are synchronous sections between
``await`` points, which is what makes claims and cancellations atomic.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from tx_manager.engine.models import (
    BulkCancelResult,
    BulkQueueResult,
    TransactionJob,
    TransactionMetadata,
    TransactionPriority,
    TransactionRecord,
    TransactionStatus,
)
from tx_manager.engine.processing import AutoProcessingLoop
from tx_manager.engine.queue import PriorityQueue, RetrySchedule
from tx_manager.engine.registry import ProcessorRegistry
from tx_manager.engine.store import TransactionStore
from tx_manager.errors.definitions import (
    ErrInvalidArgument,
    ErrInvalidTransaction,
)
from tx_manager.errors.tx_errors import TxManagerError
from tx_manager.metrics.collector import MetricsSnapshot, TransactionMetrics, TransactionStats
from tx_manager.notifications.events import StatusUpdateEvent
from tx_manager.notifications.hub import SubscriptionHub
from tx_manager.utils.clock import SystemClock
from tx_manager.utils.ids import new_transaction_id

if TYPE_CHECKING:
    from collections.abc import Iterable

    from tx_manager.config.settings import ManagerConfig, QueueConfig
    from tx_manager.engine.models import BulkTransactionInput
    from tx_manager.notifications.hub import StatusCallback, Unsubscribe
    from tx_manager.utils.clock import Clock

logger = logging.getLogger(__name__)

_DEFAULT_MAX_RETRIES = 5
_DEFAULT_RETRY_DELAY_MS = 5000
_DEFAULT_POOL_SIZE = 3


class TransactionManager:
    """Accepts transaction jobs, runs them by priority and tracks their status.

    Usage::

        manager = TransactionManager({"token_deployment": deploy_processor})
        await manager.start_auto_processing()
        tx_id = await manager.queue_transaction(
            TransactionJob("token_deployment", payload),
            TransactionMetadata(user_id="42", description="Deploy $MEME"),
            "high",
        )
        unsubscribe = manager.subscribe_to_transaction(tx_id, on_update)
        ...
        await manager.close()
    """

    def __init__(
        self,
        processors: ProcessorRegistry | Mapping[str, Any],
        *,
        config: ManagerConfig | None = None,
        queue_config: QueueConfig | None = None,
        hub: SubscriptionHub | None = None,
        metrics: TransactionMetrics | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._registry = (
            processors
            if isinstance(processors, ProcessorRegistry)
            else ProcessorRegistry(processors)
        )
        self._max_retries = config.max_retries if config else _DEFAULT_MAX_RETRIES
        self._retry_delay_ms = config.retry_delay_ms if config else _DEFAULT_RETRY_DELAY_MS
        pool_size = config.worker_pool_size if config else _DEFAULT_POOL_SIZE
        execute_timeout = config.execute_timeout_ms / 1000 if config else None

        self._clock = clock or SystemClock()
        self._store = TransactionStore(self._clock)
        self._queue = PriorityQueue(
            max_size=queue_config.max_queue_size if queue_config else 0,
            max_per_priority=queue_config.max_per_priority if queue_config else None,
        )
        self._retries = RetrySchedule()
        self._hub = hub or SubscriptionHub()
        self._metrics = metrics or TransactionMetrics()
        self._loop = AutoProcessingLoop(
            store=self._store,
            queue=self._queue,
            retries=self._retries,
            registry=self._registry,
            metrics=self._metrics,
            clock=self._clock,
            on_transition=self._publish,
            pool_size=pool_size,
            execute_timeout=execute_timeout,
        )

    # -- properties --

    @property
    def registry(self) -> ProcessorRegistry:
        return self._registry

    @property
    def hub(self) -> SubscriptionHub:
        return self._hub

    @property
    def metrics(self) -> TransactionMetrics:
        return self._metrics

    @property
    def is_processing(self) -> bool:
        """Whether the auto-processing worker pool is running."""
        return self._loop.is_running

    # -- submission --

    async def queue_transaction(
        self,
        job: TransactionJob,
        metadata: TransactionMetadata,
        priority: str | TransactionPriority = TransactionPriority.NORMAL,
        *,
        max_retries: int | None = None,
        retry_delay_ms: int | None = None,
    ) -> str:
        """Create a record for *job*, enqueue it and return its id.

        Configuration problems are raised here and no record is created.

        Raises:
            TxManagerError: ``ErrInvalidTransaction`` (no type),
                ``ErrUnknownTransactionType``, ``ErrInvalidPriority``,
                ``ErrInvalidArgument`` (negative retry settings) or
                ``ErrQueueFull``.
        """
        tx_id = self._create(
            job,
            metadata,
            priority,
            max_retries=max_retries,
            retry_delay_ms=retry_delay_ms,
        )
        await self._loop.wake()
        return tx_id

    async def bulk_queue_transactions(
        self, items: Iterable[BulkTransactionInput]
    ) -> list[BulkQueueResult]:
        """Queue each entry independently; one failure never blocks the rest."""
        results: list[BulkQueueResult] = []
        for item in items:
            try:
                tx_id = self._create(
                    item.job,
                    item.metadata,
                    item.priority,
                    max_retries=item.max_retries,
                    retry_delay_ms=item.retry_delay_ms,
                )
            except TxManagerError as exc:
                results.append(BulkQueueResult(error=exc.message))
            else:
                results.append(BulkQueueResult(tx_id=tx_id))
        if any(r.success for r in results):
            await self._loop.wake()
        return results

    def _create(
        self,
        job: TransactionJob,
        metadata: TransactionMetadata,
        priority: str | TransactionPriority,
        *,
        max_retries: int | None,
        retry_delay_ms: int | None,
    ) -> str:
        if not isinstance(job, TransactionJob) or not job.type:
            raise ErrInvalidTransaction
        if not isinstance(job.payload, Mapping):
            raise ErrInvalidArgument.with_detail("payload must be a mapping")
        if not isinstance(metadata, TransactionMetadata) or not isinstance(
            metadata.extra, Mapping
        ):
            raise ErrInvalidArgument.with_detail("metadata must carry a mapping of extra fields")
        if not isinstance(metadata.user_id, str | int) or metadata.user_id == "":
            raise ErrInvalidArgument.with_detail("user_id must be a non-empty string")
        self._registry.get(job.type)
        tier = TransactionPriority.parse(priority)
        retries = self._max_retries if max_retries is None else max_retries
        delay = self._retry_delay_ms if retry_delay_ms is None else retry_delay_ms
        if retries < 0 or delay < 0:
            raise ErrInvalidArgument.with_detail("max_retries and retry_delay_ms must be >= 0")
        self._queue.check_capacity(tier)

        now = self._clock.now()
        record = TransactionRecord(
            id=new_transaction_id(),
            type=job.type,
            payload=dict(job.payload),
            priority=tier,
            user_id=str(metadata.user_id),
            description=metadata.description,
            metadata=dict(metadata.extra),
            max_retries=retries,
            retry_delay_ms=delay,
            created_at=now,
            updated_at=now,
        )
        self._store.add(record)
        self._queue.push(record.id, tier)
        self._metrics.record_submitted(record.type, tier.value)
        logger.info(
            "Queued transaction %s (%s, %s priority) for user %s",
            record.id,
            record.type,
            tier,
            record.user_id,
        )
        self._publish(record)
        return record.id

    # -- cancellation --

    async def cancel_transaction(self, tx_id: str) -> bool:
        """Cancel *tx_id* if it hasn't started.

        Returns ``True`` when a queued or retrying job was cancelled (it will
        never run).  Returns ``False`` for terminal jobs and for jobs already
        processing; for the latter the intent is recorded and the job ends
        ``cancelled`` instead of retrying if the in-flight attempt fails.

        Raises:
            TxManagerError: ``ErrTransactionNotFound`` for unknown ids.
        """
        record = self._store.get(tx_id)
        if record.status is TransactionStatus.PROCESSING:
            record.cancel_requested = True
            logger.info("Cancellation requested for in-flight transaction %s", tx_id)
            return False
        if record.is_terminal:
            return False

        self._queue.remove(tx_id)
        self._retries.discard(tx_id)
        self._store.transition(record, TransactionStatus.CANCELLED, next_retry_at=None)
        logger.info("Transaction %s cancelled", tx_id)
        self._publish(record)
        return True

    async def bulk_cancel_transactions(self, tx_ids: Iterable[str]) -> list[BulkCancelResult]:
        """Cancel each id independently, reporting per-id success or error."""
        results: list[BulkCancelResult] = []
        for tx_id in tx_ids:
            try:
                cancelled = await self.cancel_transaction(tx_id)
            except TxManagerError as exc:
                results.append(BulkCancelResult(tx_id=tx_id, success=False, error=exc.message))
            else:
                results.append(BulkCancelResult(tx_id=tx_id, success=cancelled))
        return results

    # -- queries --

    def get_transaction(self, tx_id: str) -> TransactionRecord:
        """Snapshot of one record.

        Raises:
            TxManagerError: ``ErrTransactionNotFound`` for unknown ids.
        """
        return self._store.get(tx_id).snapshot()

    def get_user_transaction_history(
        self,
        user_id: str,
        *,
        status: str | TransactionStatus | None = None,
        tx_type: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[TransactionRecord]:
        """All records owned by *user_id*, newest first, optionally filtered."""
        if offset < 0 or (limit is not None and limit < 0):
            raise ErrInvalidArgument.with_detail("limit and offset must be >= 0")
        try:
            wanted = TransactionStatus(status) if status is not None else None
        except ValueError:
            raise ErrInvalidArgument.with_detail(f"unknown status {status!r}") from None
        records = [
            r
            for r in self._store.for_user(str(user_id))
            if (wanted is None or r.status is wanted) and (tx_type is None or r.type == tx_type)
        ]
        end = None if limit is None else offset + limit
        return [r.snapshot() for r in records[offset:end]]

    def get_metrics(self) -> MetricsSnapshot:
        """Counters as of now; a snapshot, not a stream."""
        current = dict.fromkeys(
            (TransactionStatus.QUEUED, TransactionStatus.PROCESSING, TransactionStatus.RETRYING), 0
        )
        for record in self._store:
            if record.status in current:
                current[record.status] += 1
        depth = self._queue.depth_by_priority()
        self._metrics.set_queue_depth(depth)
        queued_ids = self._queue.ids()
        return MetricsSnapshot(
            total_submitted=self._metrics.total_submitted,
            queued=current[TransactionStatus.QUEUED],
            processing=current[TransactionStatus.PROCESSING],
            retrying=current[TransactionStatus.RETRYING],
            confirmed=self._metrics.confirmed,
            failed=self._metrics.failed,
            cancelled=self._metrics.cancelled,
            retries=self._metrics.retries,
            active_workers=self._loop.active_workers,
            worker_pool_size=self._loop.pool_size,
            queue_depth=depth,
            oldest_queued_id=self._oldest(queued_ids),
            processing_time=self._metrics.processing_time(),
        )

    def _oldest(self, tx_ids: list[str]) -> str | None:
        records = [self._store.get(i) for i in tx_ids]
        if not records:
            return None
        return min(records, key=lambda r: (r.created_at, r.sequence)).id

    def get_transaction_stats(self) -> TransactionStats:
        """Counts of retained records by type, status and priority."""
        by_type: dict[str, int] = {}
        by_status = {s.value: 0 for s in TransactionStatus}
        by_priority = {p.value: 0 for p in TransactionPriority}
        total = 0
        for record in self._store:
            by_type[record.type] = by_type.get(record.type, 0) + 1
            by_status[record.status.value] += 1
            by_priority[record.priority.value] += 1
            total += 1
        return TransactionStats(
            by_type=by_type, by_status=by_status, by_priority=by_priority, total=total
        )

    # -- subscriptions --

    def subscribe_to_transaction(self, tx_id: str, callback: StatusCallback) -> Unsubscribe:
        """Deliver the current status of *tx_id*, then every later transition.

        Raises:
            TxManagerError: ``ErrTransactionNotFound`` for unknown ids.
        """
        record = self._store.get(tx_id)
        return self._hub.subscribe(
            tx_id, callback, current=StatusUpdateEvent.from_record(record)
        )

    # -- maintenance --

    def cleanup_old_transactions(self, max_age_ms: int) -> int:
        """Remove terminal records not updated for *max_age_ms*; return how many."""
        if max_age_ms < 0:
            raise ErrInvalidArgument.with_detail("max_age_ms must be >= 0")
        cutoff = self._clock.now() - timedelta(milliseconds=max_age_ms)
        removed = self._store.remove_terminal_before(cutoff)
        for tx_id in removed:
            self._hub.drop(tx_id)
        if removed:
            logger.info("Cleaned up %d old transactions", len(removed))
        return len(removed)

    # -- lifecycle --

    async def start_auto_processing(self) -> None:
        """Start the worker pool; calling it again while running does nothing."""
        await self._loop.start()

    async def stop_auto_processing(self) -> None:
        """Let workers finish their current job, then stop them."""
        await self._loop.stop()

    async def close(self) -> None:
        """Stop processing and close every subscription."""
        await self._loop.stop()
        await self._hub.close()

    def _publish(self, record: TransactionRecord) -> None:
        if record.status.is_terminal:
            self._metrics.record_terminal(record.type, record.status.value)
        self._hub.publish(StatusUpdateEvent.from_record(record))
