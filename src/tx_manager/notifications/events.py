"""Event types for the notification system.

- ``RawEvent`` — envelope with type string + content dict
- ``StatusUpdateEvent`` — one transaction status transition
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from tx_manager.engine.models import TransactionRecord


@dataclass(frozen=True)
class RawEvent:
    """Generic event envelope sent to subscribers."""

    type: str
    content: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a plain dict."""
        return asdict(self)


@dataclass(frozen=True)
class StatusUpdateEvent(RawEvent):
    """Emitted after a transaction's status transition has been committed."""

    type: str = "status"
    transaction_id: str = ""
    status: str = ""
    timestamp: str = ""
    retry_count: int = 0
    progress: int = 0
    error: str | None = None
    result: Any = None

    @property
    def is_terminal(self) -> bool:
        from tx_manager.engine.models import TransactionStatus

        return TransactionStatus(self.status).is_terminal

    @classmethod
    def from_record(cls, record: TransactionRecord) -> StatusUpdateEvent:
        return cls(
            transaction_id=record.id,
            status=record.status.value,
            timestamp=record.updated_at.isoformat(),
            retry_count=record.retry_count,
            progress=record.progress,
            error=record.error if record.error is not None else record.last_error,
            result=record.result,
            content={"type": record.type, "user_id": record.user_id},
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a plain dict (includes all fields)."""
        return asdict(self)
