"""Application settings loaded from environment variables and config files.

Configuration is loaded from (highest priority first):
1. Environment variables (prefix: ``TXMANAGER_``, nested via ``__``)
2. YAML config file (``TXMANAGER_CONFIG_PATH`` env var or ``AppConfig.from_yaml``)
3. Defaults defined here
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Self

import yaml
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# One week, matching the retention used by the deploy routes
DEFAULT_CLEANUP_MAX_AGE_MS = 7 * 24 * 60 * 60 * 1000

# ---------------------------------------------------------------------------
# Sub-config models
# ---------------------------------------------------------------------------


class ServerConfig(BaseSettings):
    """HTTP status API settings."""

    model_config = SettingsConfigDict(
        env_prefix="TXMANAGER_SERVER__",
        case_sensitive=False,
    )

    host: str = "0.0.0.0"  # noqa: S104
    port: int = 3004
    allowed_origins: list[str] = Field(default_factory=lambda: ["*"])


class ManagerConfig(BaseSettings):
    """Transaction manager defaults applied to every queued job."""

    model_config = SettingsConfigDict(
        env_prefix="TXMANAGER_MANAGER__",
        case_sensitive=False,
    )

    max_retries: int = Field(default=5, ge=0)
    retry_delay_ms: int = Field(default=5000, ge=0)
    worker_pool_size: int = Field(default=3, ge=1, le=64)
    execute_timeout_ms: int = Field(
        default=300_000,
        ge=0,
        description="Upper bound for one processor call; 0 disables the bound",
    )
    auto_start: bool = True
    processors: dict[str, str] = Field(
        default_factory=dict,
        description="Transaction type -> 'package.module:attribute' import path",
    )


class QueueConfig(BaseSettings):
    """Priority queue capacity limits (0 = unlimited)."""

    model_config = SettingsConfigDict(
        env_prefix="TXMANAGER_QUEUE__",
        case_sensitive=False,
    )

    max_queue_size: int = Field(default=0, ge=0)
    max_per_priority: dict[str, int] = Field(default_factory=dict)

    @field_validator("max_per_priority")
    @classmethod
    def _known_priorities(cls, value: dict[str, int]) -> dict[str, int]:
        from tx_manager.engine.models import TransactionPriority
        from tx_manager.errors.tx_errors import TxManagerError

        normalized: dict[str, int] = {}
        for key, limit in value.items():
            try:
                priority = TransactionPriority.parse(key)
            except TxManagerError as exc:
                raise ValueError(exc.message) from None
            if limit < 0:
                msg = f"queue limit for {key!r} must be >= 0"
                raise ValueError(msg)
            normalized[priority.value] = limit
        return normalized


class SubscriptionConfig(BaseSettings):
    """Subscriber delivery settings."""

    model_config = SettingsConfigDict(
        env_prefix="TXMANAGER_SUBSCRIPTION__",
        case_sensitive=False,
    )

    buffer: int = Field(default=100, ge=1)
    delivery_timeout_ms: int = Field(default=5000, ge=1)
    heartbeat_seconds: float = Field(default=30.0, gt=0)


class CleanupConfig(BaseSettings):
    """Periodic removal of old terminal transactions."""

    model_config = SettingsConfigDict(
        env_prefix="TXMANAGER_CLEANUP__",
        case_sensitive=False,
    )

    enabled: bool = True
    period_seconds: float = Field(default=3600.0, gt=0)
    max_age_ms: int = Field(default=DEFAULT_CLEANUP_MAX_AGE_MS, ge=0)


class MetricsConfig(BaseSettings):
    """Prometheus metrics settings."""

    model_config = SettingsConfigDict(
        env_prefix="TXMANAGER_METRICS__",
        case_sensitive=False,
    )

    enabled: bool = True


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------


def _load_yaml(path: str | Path) -> dict[str, Any]:
    """Load a YAML configuration file and return its contents as a dict.

    Returns an empty dict if the file doesn't exist or is empty.
    """
    p = Path(path)
    if not p.exists():
        return {}
    data = yaml.safe_load(p.read_text(encoding="utf-8"))
    return data if isinstance(data, dict) else {}


class AppConfig(BaseSettings):
    """Top-level application configuration.

    Loads settings from environment variables (``TXMANAGER_`` prefix),
    an optional YAML file, and built-in defaults.
    """

    model_config = SettingsConfigDict(
        env_prefix="TXMANAGER_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    debug: bool = False
    config_path: str = ""

    server: ServerConfig = Field(default_factory=ServerConfig)
    manager: ManagerConfig = Field(default_factory=ManagerConfig)
    queue: QueueConfig = Field(default_factory=QueueConfig)
    subscription: SubscriptionConfig = Field(default_factory=SubscriptionConfig)
    cleanup: CleanupConfig = Field(default_factory=CleanupConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)

    @model_validator(mode="before")
    @classmethod
    def _merge_yaml(cls, values: dict[str, Any]) -> dict[str, Any]:
        """Merge YAML config file contents under the env var overrides."""
        config_path = values.get("config_path", "")
        if not config_path:
            return values
        for key, val in _load_yaml(config_path).items():
            if key not in values or values[key] is None:
                values[key] = val
            elif isinstance(val, dict) and isinstance(values.get(key), dict):
                values[key] = {**val, **values[key]}
        return values

    @classmethod
    def from_yaml(cls, path: str | Path) -> Self:
        """Construct ``AppConfig`` loading defaults from a YAML file.

        Environment variables still override YAML values.
        """
        return cls(config_path=str(path))
