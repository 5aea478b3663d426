"""Tests for the configuration system."""

from __future__ import annotations

import textwrap
from typing import TYPE_CHECKING

import pytest
from pydantic import ValidationError

from tx_manager.config.settings import (
    DEFAULT_CLEANUP_MAX_AGE_MS,
    AppConfig,
    CleanupConfig,
    ManagerConfig,
    MetricsConfig,
    QueueConfig,
    ServerConfig,
    SubscriptionConfig,
    _load_yaml,
)

if TYPE_CHECKING:
    from pathlib import Path

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------


class TestDefaults:
    """Verify all default values are correct."""

    def test_server_defaults(self) -> None:
        cfg = ServerConfig()
        assert cfg.host == "0.0.0.0"  # noqa: S104
        assert cfg.port == 3004
        assert cfg.allowed_origins == ["*"]

    def test_manager_defaults(self) -> None:
        cfg = ManagerConfig()
        assert cfg.max_retries == 5
        assert cfg.retry_delay_ms == 5000
        assert cfg.worker_pool_size == 3
        assert cfg.execute_timeout_ms == 300_000
        assert cfg.auto_start is True
        assert cfg.processors == {}

    def test_queue_defaults(self) -> None:
        cfg = QueueConfig()
        assert cfg.max_queue_size == 0
        assert cfg.max_per_priority == {}

    def test_subscription_defaults(self) -> None:
        cfg = SubscriptionConfig()
        assert cfg.buffer == 100
        assert cfg.delivery_timeout_ms == 5000
        assert cfg.heartbeat_seconds == 30.0

    def test_cleanup_defaults(self) -> None:
        cfg = CleanupConfig()
        assert cfg.enabled is True
        assert cfg.period_seconds == 3600.0
        assert cfg.max_age_ms == DEFAULT_CLEANUP_MAX_AGE_MS == 604_800_000

    def test_metrics_defaults(self) -> None:
        assert MetricsConfig().enabled is True

    def test_app_config_defaults(self) -> None:
        cfg = AppConfig()
        assert cfg.debug is False
        assert cfg.config_path == ""
        assert isinstance(cfg.manager, ManagerConfig)
        assert isinstance(cfg.subscription, SubscriptionConfig)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestValidation:
    def test_pool_size_bounds(self) -> None:
        with pytest.raises(ValidationError):
            ManagerConfig(worker_pool_size=0)
        with pytest.raises(ValidationError):
            ManagerConfig(worker_pool_size=65)

    def test_negative_retries(self) -> None:
        with pytest.raises(ValidationError):
            ManagerConfig(max_retries=-1)

    def test_per_priority_normalized(self) -> None:
        cfg = QueueConfig(max_per_priority={"HIGH": 10, "medium": 5})
        assert cfg.max_per_priority == {"high": 10, "normal": 5}

    def test_per_priority_unknown(self) -> None:
        with pytest.raises(ValidationError, match="invalid transaction priority"):
            QueueConfig(max_per_priority={"urgent": 1})

    def test_per_priority_negative(self) -> None:
        with pytest.raises(ValidationError):
            QueueConfig(max_per_priority={"low": -1})


# ---------------------------------------------------------------------------
# Environment variable overrides
# ---------------------------------------------------------------------------


class TestEnvOverride:
    """Verify environment variables override defaults."""

    def test_top_level_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TXMANAGER_DEBUG", "true")
        assert AppConfig().debug is True

    def test_nested_env_via_delimiter(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TXMANAGER_SERVER__PORT", "8080")
        monkeypatch.setenv("TXMANAGER_MANAGER__WORKER_POOL_SIZE", "8")
        cfg = AppConfig()
        assert cfg.server.port == 8080
        assert cfg.manager.worker_pool_size == 8

    def test_sub_config_reads_own_prefix(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TXMANAGER_MANAGER__RETRY_DELAY_MS", "250")
        assert ManagerConfig().retry_delay_ms == 250


# ---------------------------------------------------------------------------
# YAML loading
# ---------------------------------------------------------------------------


class TestYAML:
    """YAML config file loading."""

    def test_load_yaml_nonexistent(self, tmp_path: Path) -> None:
        assert _load_yaml(tmp_path / "nonexistent.yaml") == {}

    def test_load_yaml_empty_file(self, tmp_path: Path) -> None:
        f = tmp_path / "empty.yaml"
        f.write_text("")
        assert _load_yaml(f) == {}

    def test_load_yaml_non_dict(self, tmp_path: Path) -> None:
        """YAML file containing a list should return empty dict."""
        f = tmp_path / "list.yaml"
        f.write_text("- item1\n- item2\n")
        assert _load_yaml(f) == {}

    def test_from_yaml(self, tmp_path: Path) -> None:
        f = tmp_path / "app.yaml"
        f.write_text(
            textwrap.dedent("""\
                debug: true
                server:
                  port: 4000
                  host: 127.0.0.1
                manager:
                  max_retries: 7
                  processors:
                    token_deployment: myapp.processors:DeployProcessor
                queue:
                  max_per_priority:
                    low: 50
            """)
        )
        cfg = AppConfig.from_yaml(f)
        assert cfg.debug is True
        assert cfg.server.port == 4000
        assert cfg.server.host == "127.0.0.1"
        assert cfg.manager.max_retries == 7
        assert cfg.manager.processors == {
            "token_deployment": "myapp.processors:DeployProcessor"
        }
        assert cfg.queue.max_per_priority == {"low": 50}

    def test_env_overrides_yaml(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Env vars have higher priority than YAML values."""
        f = tmp_path / "app.yaml"
        f.write_text("debug: false\n")
        monkeypatch.setenv("TXMANAGER_DEBUG", "true")
        assert AppConfig.from_yaml(f).debug is True

    def test_config_path_from_env(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        f = tmp_path / "app.yaml"
        f.write_text("cleanup:\n  enabled: false\n")
        monkeypatch.setenv("TXMANAGER_CONFIG_PATH", str(f))
        assert AppConfig().cleanup.enabled is False


class TestCustomConstruction:
    def test_explicit_nested_overrides(self) -> None:
        cfg = AppConfig(
            manager=ManagerConfig(max_retries=1, worker_pool_size=2),
            cleanup=CleanupConfig(enabled=False),
        )
        assert cfg.manager.max_retries == 1
        assert cfg.manager.worker_pool_size == 2
        assert cfg.cleanup.enabled is False
