"""Priority queue of pending transaction ids and the retry schedule.

``PriorityQueue`` orders ids by priority tier, then insertion order, so every
tier is FIFO and a low-priority job is reached as soon as higher tiers drain.
Removal is lazy: removed ids stay in the heap and are skipped on pop.

``RetrySchedule`` holds jobs waiting out their retry delay, keyed by the
monotonic time at which they become eligible again.
"""

from __future__ import annotations

import heapq
import itertools
from typing import TYPE_CHECKING

from tx_manager.engine.models import TransactionPriority
from tx_manager.errors.definitions import ErrQueueFull

if TYPE_CHECKING:
    from collections.abc import Mapping


class PriorityQueue:
    """Heap of ``(rank, sequence, tx_id)`` with optional capacity limits."""

    def __init__(
        self,
        *,
        max_size: int = 0,
        max_per_priority: Mapping[str, int] | None = None,
    ) -> None:
        self._heap: list[tuple[int, int, str]] = []
        self._live: dict[str, TransactionPriority] = {}
        self._sequence = itertools.count()
        self._max_size = max_size
        self._max_per_priority = {
            TransactionPriority.parse(k): v for k, v in (max_per_priority or {}).items()
        }

    def __len__(self) -> int:
        return len(self._live)

    def __contains__(self, tx_id: object) -> bool:
        return tx_id in self._live

    def check_capacity(self, priority: TransactionPriority) -> None:
        """Raise ``ErrQueueFull`` if a new job of *priority* would not fit."""
        if self._max_size and len(self._live) >= self._max_size:
            raise ErrQueueFull
        limit = self._max_per_priority.get(priority, 0)
        if limit and self.depth(priority) >= limit:
            raise ErrQueueFull.with_detail(f"priority {priority}")

    def push(self, tx_id: str, priority: TransactionPriority, *, enforce_limits: bool = True) -> None:
        """Append *tx_id* at the tail of its priority tier.

        Retry re-entry passes ``enforce_limits=False``: an accepted job is never
        dropped for lack of room.
        """
        if tx_id in self._live:
            msg = f"{tx_id} is already queued"
            raise ValueError(msg)
        if enforce_limits:
            self.check_capacity(priority)
        self._live[tx_id] = priority
        heapq.heappush(self._heap, (priority.rank, next(self._sequence), tx_id))

    def pop(self) -> str | None:
        """Remove and return the highest-priority oldest id, or ``None``."""
        while self._heap:
            _, _, tx_id = heapq.heappop(self._heap)
            if self._live.pop(tx_id, None) is not None:
                return tx_id
        return None

    def remove(self, tx_id: str) -> bool:
        """Withdraw *tx_id*; returns ``False`` if it was not queued."""
        return self._live.pop(tx_id, None) is not None

    def depth(self, priority: TransactionPriority) -> int:
        return sum(1 for p in self._live.values() if p is priority)

    def depth_by_priority(self) -> dict[str, int]:
        counts = {p.value: 0 for p in TransactionPriority}
        for priority in self._live.values():
            counts[priority.value] += 1
        return counts

    def ids(self) -> list[str]:
        """Queued ids in the order they would be popped."""
        return [tx_id for _, _, tx_id in sorted(self._heap) if tx_id in self._live]


class RetrySchedule:
    """Min-heap of ``(eligible_at, sequence, tx_id)`` on a monotonic clock."""

    def __init__(self) -> None:
        self._heap: list[tuple[float, int, str]] = []
        self._pending: set[str] = set()
        self._sequence = itertools.count()

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, tx_id: object) -> bool:
        return tx_id in self._pending

    def schedule(self, tx_id: str, eligible_at: float) -> None:
        self._pending.add(tx_id)
        heapq.heappush(self._heap, (eligible_at, next(self._sequence), tx_id))

    def discard(self, tx_id: str) -> None:
        self._pending.discard(tx_id)

    def pop_due(self, now: float) -> list[str]:
        """Remove and return every id whose delay has elapsed, oldest first."""
        due: list[str] = []
        while self._heap and self._heap[0][0] <= now:
            _, _, tx_id = heapq.heappop(self._heap)
            if tx_id in self._pending:
                self._pending.remove(tx_id)
                due.append(tx_id)
        return due

    def seconds_until_next(self, now: float) -> float | None:
        """Time until the earliest pending retry, ``None`` if nothing is scheduled."""
        while self._heap and self._heap[0][2] not in self._pending:
            heapq.heappop(self._heap)
        if not self._heap:
            return None
        return max(0.0, self._heap[0][0] - now)
