"""V1 transaction endpoints.

Submit, inspect, cancel and follow transactions.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import TYPE_CHECKING, Annotated, Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from tx_manager.api.dependencies import get_manager, valid_transaction_id
from tx_manager.api.v1.schemas import (
    BulkCancelItem,
    BulkCancelRequest,
    BulkSubmitItem,
    BulkSubmitRequest,
    CancelResponse,
    MetricsResponse,
    StatsResponse,
    TransactionResponse,
    TransactionSubmitRequest,
    TransactionSubmitResponse,
)
from tx_manager.engine.manager import TransactionManager  # noqa: TC001
from tx_manager.errors.definitions import ErrTransactionNotCancellable

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from tx_manager.engine.models import TransactionRecord
    from tx_manager.notifications.events import StatusUpdateEvent

logger = logging.getLogger(__name__)

router = APIRouter(tags=["transaction"])

_SSE_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive"}


def _tx_resp(record: TransactionRecord) -> dict[str, Any]:
    resp = TransactionResponse.model_validate(record.to_dict())
    return resp.model_dump(mode="json", by_alias=True)


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------


@router.post("/transactions", status_code=202)
async def submit_transaction(
    body: TransactionSubmitRequest,
    manager: Annotated[TransactionManager, Depends(get_manager)],
) -> dict[str, Any]:
    """Queue a transaction for background processing."""
    item = body.to_input()
    tx_id = await manager.queue_transaction(
        item.job,
        item.metadata,
        item.priority,
        max_retries=item.max_retries,
        retry_delay_ms=item.retry_delay_ms,
    )
    return TransactionSubmitResponse(tx_id=tx_id).model_dump(by_alias=True)


@router.post("/transactions/bulk")
async def submit_bulk(
    body: BulkSubmitRequest,
    manager: Annotated[TransactionManager, Depends(get_manager)],
) -> dict[str, Any]:
    """Queue several transactions; each entry succeeds or fails on its own."""
    results = await manager.bulk_queue_transactions(t.to_input() for t in body.transactions)
    items = [BulkSubmitItem.model_validate(r).model_dump(by_alias=True) for r in results]
    return {
        "results": items,
        "queued": sum(1 for r in results if r.success),
        "failed": sum(1 for r in results if not r.success),
    }


@router.post("/transactions/bulk-cancel")
async def cancel_bulk(
    body: BulkCancelRequest,
    manager: Annotated[TransactionManager, Depends(get_manager)],
) -> dict[str, Any]:
    results = await manager.bulk_cancel_transactions(body.ids)
    return {
        "results": [BulkCancelItem.model_validate(r).model_dump(by_alias=True) for r in results],
        "cancelled": sum(1 for r in results if r.success),
    }


# ---------------------------------------------------------------------------
# Aggregates (registered before /{tx_id} so the literal paths win)
# ---------------------------------------------------------------------------


@router.get("/transactions/stats")
async def transaction_stats(
    manager: Annotated[TransactionManager, Depends(get_manager)],
) -> dict[str, Any]:
    stats = manager.get_transaction_stats()
    return StatsResponse.model_validate(stats).model_dump(by_alias=True)


@router.get("/transactions/metrics")
async def transaction_metrics(
    manager: Annotated[TransactionManager, Depends(get_manager)],
) -> dict[str, Any]:
    snapshot = manager.get_metrics()
    return MetricsResponse.model_validate(snapshot).model_dump(by_alias=True)


# ---------------------------------------------------------------------------
# Single transaction
# ---------------------------------------------------------------------------


@router.get("/transactions/{tx_id}")
async def get_transaction(
    tx_id: Annotated[str, Depends(valid_transaction_id)],
    manager: Annotated[TransactionManager, Depends(get_manager)],
) -> dict[str, Any]:
    return _tx_resp(manager.get_transaction(tx_id))


@router.delete("/transactions/{tx_id}")
async def cancel_transaction(
    tx_id: Annotated[str, Depends(valid_transaction_id)],
    manager: Annotated[TransactionManager, Depends(get_manager)],
) -> dict[str, Any]:
    """Cancel a queued or retrying transaction.

    Processing and finished transactions answer 409; for a processing one the
    cancellation is still remembered and applied if the attempt fails.
    """
    if not await manager.cancel_transaction(tx_id):
        status = manager.get_transaction(tx_id).status
        raise ErrTransactionNotCancellable.with_detail(f"{tx_id} is {status}")
    return CancelResponse().model_dump()


@router.get("/transactions/{tx_id}/events")
async def transaction_events(
    request: Request,
    tx_id: Annotated[str, Depends(valid_transaction_id)],
    manager: Annotated[TransactionManager, Depends(get_manager)],
) -> StreamingResponse:
    """Server-Sent Events: the current status, then every transition.

    The stream ends after the terminal event.  Comment lines keep idle
    connections open.
    """
    updates: asyncio.Queue[StatusUpdateEvent] = asyncio.Queue()
    unsubscribe = manager.subscribe_to_transaction(tx_id, updates.put_nowait)
    heartbeat = request.app.state.config.subscription.heartbeat_seconds

    async def stream() -> AsyncIterator[str]:
        try:
            while True:
                try:
                    event = await asyncio.wait_for(updates.get(), heartbeat)
                except TimeoutError:
                    yield ": heartbeat\n\n"
                    continue
                payload = json.dumps(event.to_dict(), default=str)
                yield f"event: {event.type}\ndata: {payload}\n\n"
                if event.is_terminal:
                    return
        finally:
            unsubscribe()
            logger.debug("Event stream for %s closed", tx_id)

    return StreamingResponse(stream(), media_type="text/event-stream", headers=_SSE_HEADERS)
