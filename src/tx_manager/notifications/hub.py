"""Subscription hub — deliver status transitions to per-transaction listeners.

Each subscriber owns a bounded ``asyncio.Queue`` and a delivery task.  The
worker that commits a transition only does ``put_nowait``, so a slow or
failing callback can never stall it.  Delivery order per subscriber matches
publish order.  After the terminal event is delivered the subscription closes
itself.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import itertools
import logging
from collections import defaultdict
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable

    from tx_manager.notifications.events import StatusUpdateEvent

    StatusCallback = Callable[[StatusUpdateEvent], Any]

logger = logging.getLogger(__name__)

_DEFAULT_BUFFER = 100
_DEFAULT_DELIVERY_TIMEOUT = 5.0


class _Subscriber:
    __slots__ = ("callback", "closed", "key", "queue", "task", "tx_id")

    def __init__(self, key: int, tx_id: str, callback: StatusCallback, buffer: int) -> None:
        self.key = key
        self.tx_id = tx_id
        self.callback = callback
        self.queue: asyncio.Queue[StatusUpdateEvent] = asyncio.Queue(maxsize=buffer)
        self.task: asyncio.Task[None] | None = None
        self.closed = False


class Unsubscribe:
    """Handle returned by ``subscribe``.  Calling it more than once is harmless."""

    def __init__(self, hub: SubscriptionHub, subscriber: _Subscriber) -> None:
        self._hub = hub
        self._subscriber = subscriber

    @property
    def active(self) -> bool:
        return not self._subscriber.closed

    @property
    def transaction_id(self) -> str:
        return self._subscriber.tx_id

    def __call__(self) -> None:
        self._hub._close(self._subscriber, cancel=True)  # noqa: SLF001


class SubscriptionHub:
    """Per-transaction fan-out of ``StatusUpdateEvent``s.

    Usage::

        hub = SubscriptionHub()
        unsubscribe = hub.subscribe("tx_...", on_update)
        hub.publish(StatusUpdateEvent.from_record(record))
        ...
        unsubscribe()
        await hub.close()
    """

    def __init__(
        self,
        *,
        buffer: int = _DEFAULT_BUFFER,
        delivery_timeout: float = _DEFAULT_DELIVERY_TIMEOUT,
    ) -> None:
        self._buffer = buffer
        self._delivery_timeout = delivery_timeout
        self._subscribers: dict[str, dict[int, _Subscriber]] = defaultdict(dict)
        self._keys = itertools.count(1)

    def subscriber_count(self, tx_id: str | None = None) -> int:
        if tx_id is not None:
            return len(self._subscribers.get(tx_id, {}))
        return sum(len(subs) for subs in self._subscribers.values())

    def subscribe(
        self,
        tx_id: str,
        callback: StatusCallback,
        *,
        current: StatusUpdateEvent | None = None,
    ) -> Unsubscribe:
        """Register *callback* for every later transition of *tx_id*.

        *current*, when given, is delivered first so the listener starts from
        the transaction's present state.  Must be called from a running loop.

        *callback* may be a plain function or a coroutine function.
        """
        subscriber = _Subscriber(next(self._keys), tx_id, callback, self._buffer)
        self._subscribers[tx_id][subscriber.key] = subscriber
        subscriber.task = asyncio.get_running_loop().create_task(
            self._deliver(subscriber), name=f"subscriber-{tx_id}-{subscriber.key}"
        )
        if current is not None:
            self._offer(subscriber, current)
        return Unsubscribe(self, subscriber)

    def publish(self, event: StatusUpdateEvent) -> None:
        """Queue *event* for every subscriber of its transaction.  Never blocks."""
        for subscriber in list(self._subscribers.get(event.transaction_id, {}).values()):
            self._offer(subscriber, event)

    def drop(self, tx_id: str) -> None:
        """Close every subscription for *tx_id*."""
        for subscriber in list(self._subscribers.get(tx_id, {}).values()):
            self._close(subscriber, cancel=True)

    async def close(self) -> None:
        """Close all subscriptions and wait for their delivery tasks."""
        tasks = []
        for subs in list(self._subscribers.values()):
            for subscriber in list(subs.values()):
                if subscriber.task is not None:
                    tasks.append(subscriber.task)
                self._close(subscriber, cancel=True)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # -- internals --

    def _offer(self, subscriber: _Subscriber, event: StatusUpdateEvent) -> None:
        if subscriber.closed:
            return
        try:
            subscriber.queue.put_nowait(event)
        except asyncio.QueueFull:
            if not event.is_terminal:
                logger.warning(
                    "Subscriber %s of %s queue full — dropping %s event",
                    subscriber.key,
                    subscriber.tx_id,
                    event.status,
                )
                return
            # The terminal event is what closes the subscription; make room.
            with contextlib.suppress(asyncio.QueueEmpty):
                subscriber.queue.get_nowait()
            subscriber.queue.put_nowait(event)

    async def _deliver(self, subscriber: _Subscriber) -> None:
        try:
            while True:
                event = await subscriber.queue.get()
                await self._invoke(subscriber, event)
                if event.is_terminal:
                    break
        finally:
            self._close(subscriber, cancel=False)

    async def _invoke(self, subscriber: _Subscriber, event: StatusUpdateEvent) -> None:
        try:
            outcome = subscriber.callback(event)
            if inspect.isawaitable(outcome):
                await asyncio.wait_for(outcome, timeout=self._delivery_timeout)
        except asyncio.CancelledError:
            raise
        except TimeoutError:
            logger.warning(
                "Subscriber %s of %s timed out handling %s",
                subscriber.key,
                subscriber.tx_id,
                event.status,
            )
        except Exception:
            logger.exception(
                "Subscriber %s of %s failed handling %s",
                subscriber.key,
                subscriber.tx_id,
                event.status,
            )

    def _close(self, subscriber: _Subscriber, *, cancel: bool) -> None:
        if subscriber.closed:
            return
        subscriber.closed = True
        subs = self._subscribers.get(subscriber.tx_id)
        if subs is not None:
            subs.pop(subscriber.key, None)
            if not subs:
                del self._subscribers[subscriber.tx_id]
        if cancel and subscriber.task is not None and not subscriber.task.done():
            subscriber.task.cancel()
