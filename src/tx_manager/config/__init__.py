"""Configuration — pydantic-settings models."""

from __future__ import annotations

from tx_manager.config.settings import (
    AppConfig,
    CleanupConfig,
    ManagerConfig,
    MetricsConfig,
    QueueConfig,
    ServerConfig,
    SubscriptionConfig,
)

__all__ = [
    "AppConfig",
    "CleanupConfig",
    "ManagerConfig",
    "MetricsConfig",
    "QueueConfig",
    "ServerConfig",
    "SubscriptionConfig",
]
