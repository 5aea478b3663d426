"""V1 user endpoints — per-user transaction history."""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query

from tx_manager.api.dependencies import get_manager
from tx_manager.api.v1.schemas import HistoryParams, TransactionResponse
from tx_manager.engine.manager import TransactionManager  # noqa: TC001

router = APIRouter(tags=["user"])


@router.get("/users/{user_id}/transactions")
async def user_transactions(
    user_id: str,
    params: Annotated[HistoryParams, Query()],
    manager: Annotated[TransactionManager, Depends(get_manager)],
) -> dict[str, Any]:
    """Newest first, filtered by status and type."""
    records = manager.get_user_transaction_history(
        user_id,
        status=params.status,
        tx_type=params.type,
        limit=params.limit,
        offset=params.offset,
    )
    items = [TransactionResponse.model_validate(r.to_dict()) for r in records]
    return {
        "transactions": [i.model_dump(mode="json", by_alias=True) for i in items],
        "limit": params.limit,
        "offset": params.offset,
    }
