"""Maintenance job handlers.

- ``cleanup_old_transactions`` (hourly) — drop terminal records past retention
- ``refresh_queue_gauges`` (15 s) — push queue depth to Prometheus gauges
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from tx_manager.engine.manager import TransactionManager

logger = logging.getLogger(__name__)

REFRESH_GAUGES_PERIOD = 15


async def task_cleanup_old_transactions(manager: TransactionManager, max_age_ms: int) -> None:
    """Remove confirmed, failed and cancelled records older than *max_age_ms*."""
    removed = manager.cleanup_old_transactions(max_age_ms)
    if removed:
        logger.info("Retention cleanup removed %d transactions", removed)


async def task_refresh_queue_gauges(manager: TransactionManager) -> None:
    """Take a metrics snapshot, which refreshes the queue depth gauges."""
    snapshot = manager.get_metrics()
    logger.debug(
        "Queue depth %s, %d active workers", snapshot.queue_depth, snapshot.active_workers
    )
