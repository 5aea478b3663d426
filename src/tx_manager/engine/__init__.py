"""Engine — records, queue, processors, the processing loop and the manager facade."""

from __future__ import annotations

from tx_manager.engine.manager import TransactionManager
from tx_manager.engine.models import (
    BulkCancelResult,
    BulkQueueResult,
    BulkTransactionInput,
    TransactionJob,
    TransactionMetadata,
    TransactionPriority,
    TransactionRecord,
    TransactionStatus,
)
from tx_manager.engine.registry import (
    CallableProcessor,
    Processor,
    ProcessorRegistry,
    ProcessorResult,
)

__all__ = [
    "BulkCancelResult",
    "BulkQueueResult",
    "BulkTransactionInput",
    "CallableProcessor",
    "Processor",
    "ProcessorRegistry",
    "ProcessorResult",
    "TransactionJob",
    "TransactionManager",
    "TransactionMetadata",
    "TransactionPriority",
    "TransactionRecord",
    "TransactionStatus",
]
