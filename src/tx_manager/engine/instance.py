"""Process-wide access to the transaction manager.

The instance is installed explicitly by the application lifecycle
(``TransactionEngine.initialize``) and removed on shutdown.  Nothing here
constructs a manager lazily.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from tx_manager.errors.definitions import ErrManagerNotInitialized

if TYPE_CHECKING:
    from tx_manager.engine.manager import TransactionManager

logger = logging.getLogger(__name__)

_instance: TransactionManager | None = None


def set_transaction_manager(manager: TransactionManager) -> None:
    """Install *manager* as the process-wide instance.

    Raises:
        RuntimeError: If a different manager is already installed.
    """
    global _instance  # noqa: PLW0603
    if _instance is not None and _instance is not manager:
        msg = "A transaction manager is already installed; reset it first"
        raise RuntimeError(msg)
    _instance = manager


def get_transaction_manager() -> TransactionManager:
    """Return the installed manager.

    Raises:
        TxManagerError: ``ErrManagerNotInitialized`` if none is installed.
    """
    if _instance is None:
        raise ErrManagerNotInitialized
    return _instance


def has_transaction_manager() -> bool:
    """Whether a manager is currently installed."""
    return _instance is not None


async def reset_transaction_manager() -> None:
    """Close and uninstall the current manager.  A no-op when none is installed."""
    global _instance  # noqa: PLW0603
    manager, _instance = _instance, None
    if manager is not None:
        await manager.close()
        logger.info("Transaction manager reset")
