"""FastAPI dependency injection helpers.

Usage in a route::

    @router.get("/transactions/{tx_id}")
    async def get_transaction(
        tx_id: Annotated[str, Depends(valid_transaction_id)],
        manager: Annotated[TransactionManager, Depends(get_manager)],
    ) -> ...:
        ...
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from tx_manager.engine.client import TransactionEngine  # noqa: TC001
from tx_manager.engine.manager import TransactionManager  # noqa: TC001
from tx_manager.errors.definitions import ErrInvalidTransactionID, ErrManagerNotInitialized
from tx_manager.utils.ids import is_valid_transaction_id


def get_engine(request: Request) -> TransactionEngine:
    """Retrieve the engine from ``app.state``.

    The engine is stored on ``app.state.engine`` during lifespan startup.

    Raises:
        TxManagerError: ``ErrManagerNotInitialized`` outside the lifespan.
    """
    engine: TransactionEngine | None = getattr(request.app.state, "engine", None)
    if engine is None or not engine.is_initialized:
        raise ErrManagerNotInitialized
    return engine


def get_manager(
    engine: Annotated[TransactionEngine, Depends(get_engine)],
) -> TransactionManager:
    """The engine's transaction manager."""
    return engine.manager


def valid_transaction_id(tx_id: str) -> str:
    """Reject ids that can't have come from the manager (``tx_`` prefix, 10+ chars)."""
    if not is_valid_transaction_id(tx_id):
        raise ErrInvalidTransactionID.with_detail(tx_id)
    return tx_id
