"""Notifications — status events and per-transaction subscriptions.

Provides:
- ``SubscriptionHub`` — per-transaction listeners fed through bounded queues
- ``StatusUpdateEvent`` — one committed status transition
"""

from __future__ import annotations

from tx_manager.notifications.events import RawEvent, StatusUpdateEvent
from tx_manager.notifications.hub import SubscriptionHub, Unsubscribe

__all__ = [
    "RawEvent",
    "StatusUpdateEvent",
    "SubscriptionHub",
    "Unsubscribe",
]
