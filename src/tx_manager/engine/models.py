"""Transaction records, priorities and the status state machine."""

from __future__ import annotations

import dataclasses
import enum
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from tx_manager.errors.definitions import ErrInvalidPriority

if TYPE_CHECKING:
    from datetime import datetime


class TransactionPriority(enum.StrEnum):
    """Scheduling tier.  Governs order, never correctness."""

    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Sort key: lower runs first."""
        return _PRIORITY_RANK[self]

    @classmethod
    def parse(cls, value: str | TransactionPriority) -> TransactionPriority:
        """Coerce a caller-supplied priority, accepting ``medium`` for ``normal``.

        Raises:
            TxManagerError: ``ErrInvalidPriority`` for anything else.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = value.strip().lower()
            if key == "medium":
                return cls.NORMAL
            try:
                return cls(key)
            except ValueError:
                pass
        raise ErrInvalidPriority.with_detail(repr(value))


_PRIORITY_RANK = {
    TransactionPriority.HIGH: 0,
    TransactionPriority.NORMAL: 1,
    TransactionPriority.LOW: 2,
}


class TransactionStatus(enum.StrEnum):
    """Lifecycle status of a transaction."""

    QUEUED = "queued"
    PROCESSING = "processing"
    RETRYING = "retrying"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def progress(self) -> int:
        """Rough completion percentage shown by status endpoints."""
        return _PROGRESS[self]


TERMINAL_STATUSES = frozenset(
    {TransactionStatus.CONFIRMED, TransactionStatus.FAILED, TransactionStatus.CANCELLED}
)

# Allowed edges of the state machine; terminal states have none.
TRANSITIONS: dict[TransactionStatus, frozenset[TransactionStatus]] = {
    TransactionStatus.QUEUED: frozenset(
        {TransactionStatus.PROCESSING, TransactionStatus.CANCELLED}
    ),
    TransactionStatus.PROCESSING: frozenset(
        {
            TransactionStatus.CONFIRMED,
            TransactionStatus.RETRYING,
            TransactionStatus.FAILED,
            TransactionStatus.CANCELLED,
        }
    ),
    TransactionStatus.RETRYING: frozenset(
        {TransactionStatus.QUEUED, TransactionStatus.FAILED, TransactionStatus.CANCELLED}
    ),
    TransactionStatus.CONFIRMED: frozenset(),
    TransactionStatus.FAILED: frozenset(),
    TransactionStatus.CANCELLED: frozenset(),
}

_PROGRESS = {
    TransactionStatus.QUEUED: 10,
    TransactionStatus.RETRYING: 10,
    TransactionStatus.PROCESSING: 50,
    TransactionStatus.CONFIRMED: 100,
    TransactionStatus.FAILED: 0,
    TransactionStatus.CANCELLED: 0,
}


def can_transition(current: TransactionStatus, target: TransactionStatus) -> bool:
    """Whether *current* → *target* is an edge of the state machine."""
    return target in TRANSITIONS[current]


# ---------------------------------------------------------------------------
# Caller inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TransactionJob:
    """What to run: a processor key plus its opaque payload."""

    type: str
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TransactionMetadata:
    """Who asked for it and why."""

    user_id: str
    description: str = ""
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class BulkTransactionInput:
    """One entry of a bulk submission."""

    job: TransactionJob
    metadata: TransactionMetadata
    priority: str | TransactionPriority = TransactionPriority.NORMAL
    max_retries: int | None = None
    retry_delay_ms: int | None = None


@dataclass(frozen=True)
class BulkQueueResult:
    """Outcome of one bulk submission entry: an id or an error."""

    tx_id: str | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.tx_id is not None


@dataclass(frozen=True)
class BulkCancelResult:
    """Outcome of one bulk cancellation."""

    tx_id: str
    success: bool
    error: str | None = None


# ---------------------------------------------------------------------------
# Transaction record
# ---------------------------------------------------------------------------


@dataclass
class TransactionRecord:
    """One unit of asynchronous work and its lifecycle bookkeeping.

    Live records are owned by the ``TransactionStore``; everything handed to
    callers is a ``snapshot()``.
    """

    id: str
    type: str
    payload: dict[str, Any]
    priority: TransactionPriority
    user_id: str
    description: str
    max_retries: int
    retry_delay_ms: int
    created_at: datetime
    updated_at: datetime
    status: TransactionStatus = TransactionStatus.QUEUED
    metadata: dict[str, Any] = field(default_factory=dict)
    retry_count: int = 0
    result: Any = None
    error: str | None = None
    last_error: str | None = None
    completed_at: datetime | None = None
    next_retry_at: datetime | None = None
    cancel_requested: bool = False
    sequence: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def progress(self) -> int:
        return self.status.progress

    def snapshot(self) -> TransactionRecord:
        """Detached copy safe to hand out."""
        return dataclasses.replace(
            self,
            payload=dict(self.payload),
            metadata=dict(self.metadata),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a plain dict (timestamps as ISO strings)."""
        data = dataclasses.asdict(self)
        for key in ("created_at", "updated_at", "completed_at", "next_retry_at"):
            value = data[key]
            data[key] = value.isoformat() if value is not None else None
        data["status"] = self.status.value
        data["priority"] = self.priority.value
        data["progress"] = self.progress
        data.pop("sequence")
        return data
