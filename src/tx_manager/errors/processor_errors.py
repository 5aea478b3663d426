"""Errors a processor raises to signal whether a failed attempt may be retried."""

from __future__ import annotations

from tx_manager.errors.tx_errors import TxManagerError


class ProcessorError(TxManagerError):
    """Failure reported by a transaction processor.

    ``recoverable`` decides between a retry and an immediate terminal failure.
    """

    def __init__(
        self,
        message: str,
        *,
        recoverable: bool = True,
        status_code: int = 502,
        code: str = "processor-error",
    ) -> None:
        super().__init__(message, status_code=status_code, code=code)
        self.recoverable = recoverable


class RecoverableProcessorError(ProcessorError):
    """Transient failure (network, rate limit, nonce race); the job is retried."""

    def __init__(self, message: str, *, status_code: int = 502) -> None:
        super().__init__(
            message, recoverable=True, status_code=status_code, code="processor-recoverable"
        )


class FatalProcessorError(ProcessorError):
    """Non-recoverable failure (invalid payload); the job fails immediately."""

    def __init__(self, message: str, *, status_code: int = 422) -> None:
        super().__init__(
            message, recoverable=False, status_code=status_code, code="processor-fatal"
        )
