"""Metrics — lifecycle counters, snapshots and Prometheus exposure."""

from __future__ import annotations

from tx_manager.metrics.collector import (
    MetricsCollector,
    MetricsSnapshot,
    ProcessingTime,
    TransactionMetrics,
    TransactionStats,
)

__all__ = [
    "MetricsCollector",
    "MetricsSnapshot",
    "ProcessingTime",
    "TransactionMetrics",
    "TransactionStats",
]
