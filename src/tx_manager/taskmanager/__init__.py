"""Task manager — periodic maintenance jobs.

Provides ``TaskManager`` for recurring background work such as:
- Old transaction cleanup (terminal records past the retention age)
- Queue depth gauges refresh (Prometheus)

Uses ``asyncio`` tasks for scheduling; one process owns all jobs.
"""

from __future__ import annotations

from tx_manager.taskmanager.manager import CronJob, TaskManager

__all__ = ["CronJob", "TaskManager"]
