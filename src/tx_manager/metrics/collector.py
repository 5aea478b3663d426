"""Metrics collector — lifecycle counters and Prometheus instruments.

- ``txm_transactions_submitted_total`` counter-vec (type, priority)
- ``txm_transactions_finished_total`` counter-vec (type, status)
- ``txm_transaction_retries_total`` counter-vec (type)
- ``txm_queue_depth`` gauge-vec (priority)
- ``txm_active_workers`` gauge
- ``txm_processing_seconds`` histogram-vec (type)
- ``txm_cron_histogram`` / ``txm_cron_last_execution_gauge`` (job_name)
"""

from __future__ import annotations

import math
import time
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping

_PREFIX = "txm"

# Durations kept for the average / percentile figures in snapshots
_DURATION_WINDOW = 1000


class MetricsCollector:
    """Low-level Prometheus collector that owns the registry.

    Use :class:`TransactionMetrics` for the high-level tracking interface.
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self._registry = registry or CollectorRegistry()

    @property
    def registry(self) -> CollectorRegistry:
        """Return the underlying Prometheus registry."""
        return self._registry

    def gauge(self, name: str, doc: str, labels: tuple[str, ...] = ()) -> Gauge:
        """Register and return a Gauge."""
        return Gauge(name, doc, labels, registry=self._registry)

    def histogram(self, name: str, doc: str, labels: tuple[str, ...] = ()) -> Histogram:
        """Register and return a Histogram."""
        return Histogram(name, doc, labels, registry=self._registry)

    def counter(self, name: str, doc: str, labels: tuple[str, ...] = ()) -> Counter:
        """Register and return a Counter."""
        return Counter(name, doc, labels, registry=self._registry)


@dataclass(frozen=True)
class ProcessingTime:
    """Processor call durations in milliseconds over the recent window."""

    average: float = 0.0
    p95: float = 0.0
    p99: float = 0.0


@dataclass(frozen=True)
class MetricsSnapshot:
    """Point-in-time view of the manager.

    ``queued``, ``processing`` and ``retrying`` count records currently in
    that state.  ``confirmed``, ``failed``, ``cancelled`` and ``retries`` are
    lifetime totals and survive record cleanup.
    """

    total_submitted: int = 0
    queued: int = 0
    processing: int = 0
    retrying: int = 0
    confirmed: int = 0
    failed: int = 0
    cancelled: int = 0
    retries: int = 0
    active_workers: int = 0
    worker_pool_size: int = 0
    queue_depth: dict[str, int] = field(default_factory=dict)
    oldest_queued_id: str | None = None
    processing_time: ProcessingTime = field(default_factory=ProcessingTime)


@dataclass(frozen=True)
class TransactionStats:
    """Counts of retained records, for dashboards."""

    by_type: dict[str, int] = field(default_factory=dict)
    by_status: dict[str, int] = field(default_factory=dict)
    by_priority: dict[str, int] = field(default_factory=dict)
    total: int = 0


def _percentile(ordered: list[float], fraction: float) -> float:
    """Nearest-rank percentile of an already sorted list."""
    if not ordered:
        return 0.0
    rank = max(1, math.ceil(fraction * len(ordered)))
    return ordered[rank - 1]


class TransactionMetrics:
    """Running lifecycle counters mirrored into Prometheus instruments."""

    def __init__(self, collector: MetricsCollector | None = None) -> None:
        self._collector = collector or MetricsCollector()

        self.total_submitted = 0
        self.confirmed = 0
        self.failed = 0
        self.cancelled = 0
        self.retries = 0
        self.active_workers = 0
        self._durations: deque[float] = deque(maxlen=_DURATION_WINDOW)

        self._submitted = self._collector.counter(
            f"{_PREFIX}_transactions_submitted",
            "Transactions accepted by the manager",
            ("type", "priority"),
        )
        self._finished = self._collector.counter(
            f"{_PREFIX}_transactions_finished",
            "Transactions that reached a terminal status",
            ("type", "status"),
        )
        self._retries = self._collector.counter(
            f"{_PREFIX}_transaction_retries",
            "Retry attempts scheduled",
            ("type",),
        )
        self._queue_depth = self._collector.gauge(
            f"{_PREFIX}_queue_depth",
            "Transactions waiting in the priority queue",
            ("priority",),
        )
        self._active = self._collector.gauge(
            f"{_PREFIX}_active_workers",
            "Workers currently executing a processor",
        )
        self._processing = self._collector.histogram(
            f"{_PREFIX}_processing_seconds",
            "Duration of processor calls",
            ("type",),
        )
        self._cron_histogram = self._collector.histogram(
            f"{_PREFIX}_cron_histogram",
            "Duration of maintenance job executions",
            ("job_name",),
        )
        self._cron_last = self._collector.gauge(
            f"{_PREFIX}_cron_last_execution_gauge",
            "Timestamp of last maintenance job execution",
            ("job_name",),
        )

    @property
    def registry(self) -> CollectorRegistry:
        """Return the underlying Prometheus registry."""
        return self._collector.registry

    # -- Lifecycle events --

    def record_submitted(self, tx_type: str, priority: str) -> None:
        self.total_submitted += 1
        self._submitted.labels(type=tx_type, priority=priority).inc()

    def record_retry(self, tx_type: str) -> None:
        self.retries += 1
        self._retries.labels(type=tx_type).inc()

    def record_terminal(self, tx_type: str, status: str) -> None:
        """Count a transaction entering confirmed, failed or cancelled."""
        if status == "confirmed":
            self.confirmed += 1
        elif status == "failed":
            self.failed += 1
        elif status == "cancelled":
            self.cancelled += 1
        else:
            msg = f"{status!r} is not a terminal status"
            raise ValueError(msg)
        self._finished.labels(type=tx_type, status=status).inc()

    def set_queue_depth(self, depth: Mapping[str, int]) -> None:
        for priority, count in depth.items():
            self._queue_depth.labels(priority=priority).set(count)

    def processing_time(self) -> ProcessingTime:
        ordered = sorted(self._durations)
        if not ordered:
            return ProcessingTime()
        return ProcessingTime(
            average=sum(ordered) / len(ordered),
            p95=_percentile(ordered, 0.95),
            p99=_percentile(ordered, 0.99),
        )

    # -- Operation trackers (context managers) --

    @contextmanager
    def track_execution(self, tx_type: str) -> Iterator[None]:
        """Count an active worker and time one processor call."""
        self.active_workers += 1
        self._active.inc()
        start = time.monotonic()
        try:
            yield
        finally:
            elapsed = time.monotonic() - start
            self.active_workers -= 1
            self._active.dec()
            self._durations.append(elapsed * 1000)
            self._processing.labels(type=tx_type).observe(elapsed)

    @contextmanager
    def track_cron(self, job_name: str) -> Iterator[None]:
        """Track the duration of a maintenance job and record last execution time."""
        start = time.monotonic()
        try:
            yield
        finally:
            self._cron_histogram.labels(job_name=job_name).observe(time.monotonic() - start)
            self._cron_last.labels(job_name=job_name).set(time.time())
