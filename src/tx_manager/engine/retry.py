"""Retry policy — classify a failed attempt and decide what happens next."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import TYPE_CHECKING

from tx_manager.errors.processor_errors import ProcessorError

if TYPE_CHECKING:
    from tx_manager.engine.models import TransactionRecord

# Failures carrying one of these phrases can't be fixed by trying again.
NON_RETRYABLE_PATTERNS = (
    "invalid payload",
    "validation failed",
    "invalid transaction",
    "missing required field",
)


def is_recoverable(exc: BaseException) -> bool:
    """Whether a retry could plausibly succeed after *exc*.

    Processors signal explicitly through ``ProcessorError.recoverable``;
    timeouts are transient; anything else is judged by its message.
    """
    if isinstance(exc, ProcessorError):
        return exc.recoverable
    if isinstance(exc, TimeoutError):
        return True
    message = str(exc).lower()
    return not any(pattern in message for pattern in NON_RETRYABLE_PATTERNS)


def describe(exc: BaseException) -> str:
    """Human-readable message for *exc*, never empty."""
    if isinstance(exc, TimeoutError) and not str(exc):
        return "processor timed out"
    return str(exc) or type(exc).__name__


class RetryAction(enum.Enum):
    RETRY = "retry"
    FAIL = "fail"


@dataclass(frozen=True)
class RetryDecision:
    action: RetryAction
    error: str
    delay_seconds: float = 0.0


def decide(record: TransactionRecord, exc: BaseException) -> RetryDecision:
    """Retry while the budget lasts; fail on a fatal error or an exhausted budget.

    The delay is the job's fixed ``retry_delay_ms``, not a backoff.
    """
    message = describe(exc)
    if not is_recoverable(exc):
        return RetryDecision(RetryAction.FAIL, message)
    if record.retry_count >= record.max_retries:
        return RetryDecision(RetryAction.FAIL, f"Max retries exceeded: {message}")
    return RetryDecision(RetryAction.RETRY, message, record.retry_delay_ms / 1000)
