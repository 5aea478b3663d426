"""Errors — base class, pre-defined instances and processor signals."""

from __future__ import annotations

from tx_manager.errors.processor_errors import (
    FatalProcessorError,
    ProcessorError,
    RecoverableProcessorError,
)
from tx_manager.errors.tx_errors import TxManagerError

__all__ = [
    "FatalProcessorError",
    "ProcessorError",
    "RecoverableProcessorError",
    "TxManagerError",
]
