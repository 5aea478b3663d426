"""Shared test fixtures for py-txmanager test suite."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import pytest

from tx_manager.engine.models import TransactionJob, TransactionMetadata

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable

    from tx_manager.engine.manager import TransactionManager
    from tx_manager.engine.models import TransactionRecord


async def echo_processor(payload: dict[str, Any]) -> dict[str, Any]:
    """Succeeds immediately, echoing its payload."""
    return {"echo": payload}


@pytest.fixture
def app_config():
    """Provide a test AppConfig with fast, deterministic settings."""
    from tx_manager.config.settings import (
        AppConfig,
        CleanupConfig,
        ManagerConfig,
        SubscriptionConfig,
    )

    return AppConfig(
        debug=True,
        manager=ManagerConfig(
            max_retries=2,
            retry_delay_ms=10,
            worker_pool_size=2,
            execute_timeout_ms=2000,
        ),
        subscription=SubscriptionConfig(heartbeat_seconds=0.5, delivery_timeout_ms=500),
        cleanup=CleanupConfig(enabled=False),
    )


@pytest.fixture
def manager_config():
    """Manager defaults with short retry delays."""
    from tx_manager.config.settings import ManagerConfig

    return ManagerConfig(max_retries=3, retry_delay_ms=10, worker_pool_size=1)


@pytest.fixture
async def manager(manager_config) -> AsyncIterator[TransactionManager]:
    """A manager with an ``echo`` processor; closed after the test."""
    from tx_manager.engine.manager import TransactionManager

    mgr = TransactionManager({"echo": echo_processor}, config=manager_config)
    yield mgr
    await mgr.close()


@pytest.fixture
def job():
    """Build a (job, metadata) pair."""

    def _job(
        tx_type: str = "echo", user_id: str = "user-1", **payload: Any
    ) -> tuple[TransactionJob, TransactionMetadata]:
        return TransactionJob(tx_type, payload), TransactionMetadata(user_id=user_id)

    return _job


@pytest.fixture
def wait_for_status() -> Callable[..., Awaitable[TransactionRecord]]:
    """Poll a manager until a transaction reaches one of *statuses*."""

    async def _wait(
        manager: TransactionManager,
        tx_id: str,
        *statuses: str,
        timeout: float = 3.0,
    ) -> TransactionRecord:
        wanted = set(statuses) or {"confirmed", "failed", "cancelled"}
        async with asyncio.timeout(timeout):
            while True:
                record = manager.get_transaction(tx_id)
                if record.status in wanted:
                    return record
                await asyncio.sleep(0.005)

    return _wait


@pytest.fixture
def test_client(app_config):
    """Provide a FastAPI TestClient with the app wired to test config."""
    from fastapi.testclient import TestClient

    from tx_manager.api.app import create_app

    app = create_app(config=app_config, processors={"echo": echo_processor})
    with TestClient(app, raise_server_exceptions=False) as client:
        yield client
