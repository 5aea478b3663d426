"""TransactionEngine — application lifecycle around the transaction manager."""

from __future__ import annotations

import logging
from functools import partial
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Mapping

    from tx_manager.config.settings import AppConfig
    from tx_manager.engine.manager import TransactionManager
    from tx_manager.engine.registry import ProcessorRegistry
    from tx_manager.metrics.collector import TransactionMetrics
    from tx_manager.notifications.hub import SubscriptionHub
    from tx_manager.taskmanager.manager import TaskManager
    from tx_manager.utils.clock import Clock

logger = logging.getLogger(__name__)

# Error messages
_ERR_NOT_INITIALIZED = "Engine not initialized. Call initialize() first."


class TransactionEngine:
    """Owns the manager and its collaborators for the life of the application.

    ``initialize()`` wires everything from configuration, installs the
    process-wide manager and starts background work; ``close()`` undoes it.
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        processors: ProcessorRegistry | Mapping[str, Any] | None = None,
        metrics: TransactionMetrics | None = None,
        clock: Clock | None = None,
    ) -> None:
        """Initialize engine with configuration.

        Args:
            config: Application configuration.
            processors: Processors by transaction type.  When omitted they are
                imported from ``config.manager.processors``.
            metrics: Metrics to record into; created on initialize when omitted.
            clock: Time source; the system clock by default.
        """
        self._config = config
        self._processors = processors
        self._clock = clock
        self._initialized = False

        self._manager: TransactionManager | None = None
        self._metrics: TransactionMetrics | None = metrics
        self._hub: SubscriptionHub | None = None
        self._task_manager: TaskManager | None = None

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def config(self) -> AppConfig:
        return self._config

    @property
    def manager(self) -> TransactionManager:
        if self._manager is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._manager

    @property
    def metrics(self) -> TransactionMetrics:
        if self._metrics is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._metrics

    @property
    def task_manager(self) -> TaskManager | None:
        return self._task_manager

    async def initialize(self) -> None:
        """Build the manager, install it process-wide and start background work.

        Raises:
            RuntimeError: If already initialized.
        """
        if self._initialized:
            msg = "Engine already initialized"
            raise RuntimeError(msg)

        from tx_manager.engine.instance import set_transaction_manager
        from tx_manager.engine.manager import TransactionManager
        from tx_manager.engine.registry import ProcessorRegistry
        from tx_manager.metrics.collector import TransactionMetrics
        from tx_manager.notifications.hub import SubscriptionHub

        processors = self._processors
        if processors is None:
            processors = ProcessorRegistry.from_import_paths(self._config.manager.processors)

        if self._metrics is None:
            self._metrics = TransactionMetrics()
        sub = self._config.subscription
        self._hub = SubscriptionHub(
            buffer=sub.buffer,
            delivery_timeout=sub.delivery_timeout_ms / 1000,
        )
        self._manager = TransactionManager(
            processors,
            config=self._config.manager,
            queue_config=self._config.queue,
            hub=self._hub,
            metrics=self._metrics,
            clock=self._clock,
        )
        set_transaction_manager(self._manager)

        if self._config.manager.auto_start:
            await self._manager.start_auto_processing()

        from tx_manager.taskmanager.manager import CronJob, TaskManager
        from tx_manager.taskmanager.tasks import (
            REFRESH_GAUGES_PERIOD,
            task_cleanup_old_transactions,
            task_refresh_queue_gauges,
        )

        self._task_manager = TaskManager(metrics=self._metrics)
        cleanup = self._config.cleanup
        if cleanup.enabled:
            self._task_manager.register(
                "cleanup_old_transactions",
                CronJob(
                    handler=partial(
                        task_cleanup_old_transactions, self._manager, cleanup.max_age_ms
                    ),
                    period=cleanup.period_seconds,
                ),
            )
        if self._config.metrics.enabled:
            self._task_manager.register(
                "refresh_queue_gauges",
                CronJob(
                    handler=partial(task_refresh_queue_gauges, self._manager),
                    period=REFRESH_GAUGES_PERIOD,
                ),
            )
        await self._task_manager.start()

        self._initialized = True
        logger.info(
            "Transaction engine initialized with processors for %s",
            ", ".join(self._manager.registry.types) or "no types",
        )

    async def close(self) -> None:
        """Gracefully stop background work and uninstall the manager.

        Can be called multiple times (idempotent).
        """
        if not self._initialized:
            return

        from tx_manager.engine.instance import (
            get_transaction_manager,
            has_transaction_manager,
            reset_transaction_manager,
        )

        # Stop maintenance first (it calls into the manager)
        if self._task_manager is not None:
            await self._task_manager.stop()
            self._task_manager = None

        installed = has_transaction_manager() and get_transaction_manager() is self._manager
        if installed:
            await reset_transaction_manager()
        elif self._manager is not None:
            # Reset externally in between, or replaced by another manager
            await self._manager.close()

        self._manager = None
        self._hub = None
        self._initialized = False
        logger.info("Transaction engine closed")
