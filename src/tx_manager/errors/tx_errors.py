"""TxManagerError — base exception class for all tx-manager errors."""

from __future__ import annotations


class TxManagerError(Exception):
    """Base error for all transaction manager operations.

    Attributes:
        message: Human-readable error description.
        status_code: Suggested HTTP status code.
        code: Machine-readable error code string.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int = 500,
        code: str = "txm-error",
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code

    def with_detail(self, detail: str) -> TxManagerError:
        """Return a copy of this error with *detail* appended to the message."""
        return type(self)(
            f"{self.message}: {detail}",
            status_code=self.status_code,
            code=self.code,
        )
