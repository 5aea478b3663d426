"""Auto-processing loop — a fixed pool of asyncio workers draining the queue.

Each worker repeatedly claims the highest-priority oldest job, runs its
processor, and records the outcome.  Claiming never awaits between popping
the id and marking the record ``processing``, so two workers can't claim the
same job and a cancellation either lands before the claim or is refused.

Idle workers wait on an ``asyncio.Condition``: a push wakes them, and the
wait times out exactly when the next retry becomes due.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from tx_manager.engine import retry
from tx_manager.engine.models import TransactionStatus
from tx_manager.engine.registry import ProcessorResult
from tx_manager.errors.processor_errors import RecoverableProcessorError

if TYPE_CHECKING:
    from collections.abc import Callable

    from tx_manager.engine.models import TransactionRecord
    from tx_manager.engine.queue import PriorityQueue, RetrySchedule
    from tx_manager.engine.registry import Processor, ProcessorRegistry
    from tx_manager.engine.store import TransactionStore
    from tx_manager.metrics.collector import TransactionMetrics
    from tx_manager.utils.clock import Clock

logger = logging.getLogger(__name__)


class AutoProcessingLoop:
    """Bounded worker pool over a ``PriorityQueue``.

    ``on_transition`` is called after every committed status change; it must
    not block (the manager uses it to publish events and count outcomes).
    """

    def __init__(
        self,
        *,
        store: TransactionStore,
        queue: PriorityQueue,
        retries: RetrySchedule,
        registry: ProcessorRegistry,
        metrics: TransactionMetrics,
        clock: Clock,
        on_transition: Callable[[TransactionRecord], None],
        pool_size: int = 3,
        execute_timeout: float | None = None,
    ) -> None:
        if pool_size < 1:
            msg = "worker pool size must be at least 1"
            raise ValueError(msg)
        self._store = store
        self._queue = queue
        self._retries = retries
        self._registry = registry
        self._metrics = metrics
        self._clock = clock
        self._on_transition = on_transition
        self._pool_size = pool_size
        self._execute_timeout = execute_timeout or None
        self._wakeup = asyncio.Condition()
        self._workers: list[asyncio.Task[None]] = []
        self._running = False
        self._stopping: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def pool_size(self) -> int:
        return self._pool_size

    @property
    def active_workers(self) -> int:
        """Workers currently inside a processor call."""
        return self._metrics.active_workers

    async def start(self) -> None:
        """Spawn the worker pool.  A no-op while already running.

        If a ``stop()`` is still draining the previous pool, waits for it
        first so two pools never overlap.
        """
        while self._stopping is not None:
            await asyncio.shield(self._stopping)
        if self._running:
            return
        self._running = True
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"tx-worker-{i}")
            for i in range(self._pool_size)
        ]
        logger.info("Auto-processing started with %d workers", self._pool_size)

    async def stop(self) -> None:
        """Stop claiming new jobs and wait for in-flight ones to finish.

        Safe to call when never started.  Concurrent callers share one drain.
        """
        if self._stopping is None:
            if not self._running and not self._workers:
                return
            self._running = False
            workers, self._workers = self._workers, []
            self._stopping = asyncio.create_task(self._drain(workers), name="tx-workers-stop")
        await asyncio.shield(self._stopping)

    async def _drain(self, workers: list[asyncio.Task[None]]) -> None:
        try:
            async with self._wakeup:
                self._wakeup.notify_all()
            results = await asyncio.gather(*workers, return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    logger.error("Worker error during shutdown: %s", result)
            logger.info("Auto-processing stopped")
        finally:
            self._stopping = None

    async def wake(self) -> None:
        """Tell idle workers that the queue or retry schedule changed."""
        async with self._wakeup:
            self._wakeup.notify_all()

    def promote_due_retries(self) -> int:
        """Move retrying jobs whose delay has elapsed back into the queue."""
        promoted = 0
        for tx_id in self._retries.pop_due(self._clock.monotonic()):
            record = self._store.find(tx_id)
            if record is None or record.status is not TransactionStatus.RETRYING:
                continue
            self._store.transition(record, TransactionStatus.QUEUED, next_retry_at=None)
            self._queue.push(record.id, record.priority, enforce_limits=False)
            self._on_transition(record)
            promoted += 1
        return promoted

    # -- workers --

    async def _worker(self, index: int) -> None:
        logger.debug("Worker %d started", index)
        while self._running:
            record = await self._next_job()
            if record is None:
                break
            try:
                await self._run(record)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Worker %d failed handling %s", index, record.id)
        logger.debug("Worker %d exited", index)

    async def _next_job(self) -> TransactionRecord | None:
        async with self._wakeup:
            while self._running:
                self.promote_due_retries()
                record = self._claim()
                if record is not None:
                    return record
                timeout = self._retries.seconds_until_next(self._clock.monotonic())
                try:
                    await asyncio.wait_for(self._wakeup.wait(), timeout)
                except TimeoutError:
                    pass
        return None

    def _claim(self) -> TransactionRecord | None:
        while (tx_id := self._queue.pop()) is not None:
            record = self._store.find(tx_id)
            # Cancelled or cleaned up after being queued.
            if record is None or record.status is not TransactionStatus.QUEUED:
                continue
            self._store.transition(record, TransactionStatus.PROCESSING)
            self._on_transition(record)
            return record
        return None

    async def _run(self, record: TransactionRecord) -> None:
        try:
            processor = self._registry.get(record.type)
            with self._metrics.track_execution(record.type):
                outcome = await self._execute(processor, record.payload)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            self._attempt_failed(record, exc)
        else:
            self._store.transition(record, TransactionStatus.CONFIRMED, result=outcome)
            logger.info("Transaction %s confirmed", record.id)
            self._on_transition(record)

    async def _execute(self, processor: Processor, payload: dict[str, Any]) -> Any:
        call = processor.execute(dict(payload))
        if self._execute_timeout is not None:
            outcome = await asyncio.wait_for(call, self._execute_timeout)
        else:
            outcome = await call
        if isinstance(outcome, ProcessorResult):
            if not outcome.success:
                raise RecoverableProcessorError(outcome.error or "Processing failed")
            return outcome.result
        return outcome

    def _attempt_failed(self, record: TransactionRecord, exc: BaseException) -> None:
        decision = retry.decide(record, exc)
        message = retry.describe(exc)

        if decision.action is retry.RetryAction.FAIL:
            logger.warning("Transaction %s failed: %s", record.id, decision.error)
            self._store.transition(
                record, TransactionStatus.FAILED, error=decision.error, last_error=message
            )
        elif record.cancel_requested:
            logger.info("Transaction %s cancelled instead of retrying", record.id)
            self._store.transition(record, TransactionStatus.CANCELLED, last_error=message)
        else:
            attempt = record.retry_count + 1
            logger.warning(
                "Transaction %s attempt failed (%s); retry %d/%d in %.3fs",
                record.id,
                message,
                attempt,
                record.max_retries,
                decision.delay_seconds,
            )
            self._store.transition(
                record,
                TransactionStatus.RETRYING,
                retry_count=attempt,
                last_error=message,
                next_retry_at=self._clock.now() + timedelta(seconds=decision.delay_seconds),
            )
            self._retries.schedule(record.id, self._clock.monotonic() + decision.delay_seconds)
            self._metrics.record_retry(record.type)
        self._on_transition(record)
