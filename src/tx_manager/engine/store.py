"""In-memory record store — the single authority over transaction records.

Every status change goes through ``TransactionStore.transition`` so the
state machine and the ``updated_at`` refresh are enforced in one place.
"""

from __future__ import annotations

import itertools
import logging
from collections import defaultdict
from typing import TYPE_CHECKING, Any

from tx_manager.engine.models import TransactionStatus, can_transition
from tx_manager.errors.definitions import ErrInvalidTransition, ErrTransactionNotFound

if TYPE_CHECKING:
    from collections.abc import Iterator
    from datetime import datetime

    from tx_manager.engine.models import TransactionRecord
    from tx_manager.utils.clock import Clock

logger = logging.getLogger(__name__)

_WRITE_ONCE = ("result", "error")


class TransactionStore:
    """Records by id plus a per-user index."""

    def __init__(self, clock: Clock) -> None:
        self._clock = clock
        self._records: dict[str, TransactionRecord] = {}
        self._by_user: dict[str, list[str]] = defaultdict(list)
        self._sequence = itertools.count(1)

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, tx_id: object) -> bool:
        return tx_id in self._records

    def __iter__(self) -> Iterator[TransactionRecord]:
        return iter(list(self._records.values()))

    def add(self, record: TransactionRecord) -> None:
        """Insert a new record.  Ids are never reused."""
        if record.id in self._records:
            msg = f"duplicate transaction id {record.id}"
            raise ValueError(msg)
        record.sequence = next(self._sequence)
        self._records[record.id] = record
        self._by_user[record.user_id].append(record.id)

    def get(self, tx_id: str) -> TransactionRecord:
        """Return the live record for *tx_id*.

        Raises:
            TxManagerError: ``ErrTransactionNotFound`` for unknown ids.
        """
        record = self._records.get(tx_id)
        if record is None:
            raise ErrTransactionNotFound.with_detail(tx_id)
        return record

    def find(self, tx_id: str) -> TransactionRecord | None:
        return self._records.get(tx_id)

    def for_user(self, user_id: str) -> list[TransactionRecord]:
        """Records owned by *user_id*, newest first."""
        records = [self._records[i] for i in self._by_user.get(user_id, ()) if i in self._records]
        records.sort(key=lambda r: (r.created_at, r.sequence), reverse=True)
        return records

    def transition(
        self,
        record: TransactionRecord,
        status: TransactionStatus,
        **changes: Any,
    ) -> TransactionRecord:
        """Move *record* to *status*, applying *changes* to its fields.

        Raises:
            TxManagerError: ``ErrInvalidTransition`` if the edge is not in the
                state machine.
        """
        if not can_transition(record.status, status):
            raise ErrInvalidTransition.with_detail(
                f"{record.id}: {record.status} -> {status}"
            )
        for name in _WRITE_ONCE:
            if name in changes and getattr(record, name) is not None:
                msg = f"{name} of {record.id} is already set"
                raise ValueError(msg)

        now = self._clock.now()
        for name, value in changes.items():
            setattr(record, name, value)
        previous = record.status
        record.status = status
        record.updated_at = now
        if status.is_terminal:
            record.completed_at = now
            record.next_retry_at = None
        logger.debug("Transaction %s: %s -> %s", record.id, previous, status)
        return record

    def remove_terminal_before(self, cutoff: datetime) -> list[str]:
        """Drop terminal records last updated before *cutoff*; return their ids."""
        removed = [
            r.id for r in self._records.values() if r.is_terminal and r.updated_at < cutoff
        ]
        for tx_id in removed:
            record = self._records.pop(tx_id)
            ids = self._by_user.get(record.user_id)
            if ids is not None:
                ids.remove(tx_id)
                if not ids:
                    del self._by_user[record.user_id]
        return removed
