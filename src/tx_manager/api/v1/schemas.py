"""V1 API request/response schemas (Pydantic models)."""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 - Pydantic needs this at runtime
from typing import Any

from pydantic import BaseModel, Field

from tx_manager.engine.models import (
    BulkTransactionInput,
    TransactionJob,
    TransactionMetadata,
)

# ---------------------------------------------------------------------------
# Common
# ---------------------------------------------------------------------------


class ErrorResponse(BaseModel):
    """Standard error response."""

    code: str
    message: str


class HistoryParams(BaseModel):
    """Filters and pagination for a user's transaction history."""

    status: str | None = Field(None, description="Only transactions in this status")
    type: str | None = Field(None, description="Only transactions of this type")
    limit: int = Field(10, ge=1, le=200)
    offset: int = Field(0, ge=0)


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------


class TransactionSubmitRequest(BaseModel):
    """Queue one transaction."""

    type: str = Field(..., min_length=1, description="Processor key, e.g. token_deployment")
    payload: dict[str, Any] = Field(default_factory=dict)
    user_id: str = Field(..., alias="userId", min_length=1)
    description: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)
    priority: str = "normal"
    max_retries: int | None = Field(None, alias="maxRetries", ge=0)
    retry_delay_ms: int | None = Field(None, alias="retryDelayMs", ge=0)

    model_config = {"populate_by_name": True}

    def to_input(self) -> BulkTransactionInput:
        return BulkTransactionInput(
            job=TransactionJob(type=self.type, payload=self.payload),
            metadata=TransactionMetadata(
                user_id=self.user_id,
                description=self.description,
                extra=self.metadata,
            ),
            priority=self.priority,
            max_retries=self.max_retries,
            retry_delay_ms=self.retry_delay_ms,
        )


class TransactionSubmitResponse(BaseModel):
    """Id of the queued transaction."""

    success: bool = True
    tx_id: str = Field(alias="txId")

    model_config = {"populate_by_name": True}


class BulkSubmitRequest(BaseModel):
    transactions: list[TransactionSubmitRequest] = Field(..., min_length=1, max_length=100)


class BulkSubmitItem(BaseModel):
    success: bool
    tx_id: str | None = Field(None, alias="txId")
    error: str | None = None

    model_config = {"populate_by_name": True, "from_attributes": True}


class BulkCancelRequest(BaseModel):
    ids: list[str] = Field(..., min_length=1, max_length=100)


class BulkCancelItem(BaseModel):
    tx_id: str = Field(alias="txId")
    success: bool
    error: str | None = None

    model_config = {"populate_by_name": True, "from_attributes": True}


class CancelResponse(BaseModel):
    success: bool = True
    message: str = "Transaction cancelled successfully"


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


class TransactionResponse(BaseModel):
    """A transaction record as seen by API clients."""

    id: str
    type: str
    status: str
    priority: str
    progress: int
    user_id: str = Field(alias="userId")
    description: str
    retry_count: int = Field(alias="retryCount")
    max_retries: int = Field(alias="maxRetries")
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")
    completed_at: datetime | None = Field(None, alias="completedAt")
    next_retry_at: datetime | None = Field(None, alias="nextRetryAt")
    error: str | None = None
    last_error: str | None = Field(None, alias="lastError")
    result: Any = None

    model_config = {"populate_by_name": True, "from_attributes": True}


class ProcessingTimeResponse(BaseModel):
    average: float
    p95: float
    p99: float

    model_config = {"from_attributes": True}


class MetricsResponse(BaseModel):
    total_submitted: int = Field(alias="totalSubmitted")
    queued: int
    processing: int
    retrying: int
    confirmed: int
    failed: int
    cancelled: int
    retries: int
    active_workers: int = Field(alias="activeWorkers")
    worker_pool_size: int = Field(alias="workerPoolSize")
    queue_depth: dict[str, int] = Field(alias="queueDepth")
    oldest_queued_id: str | None = Field(None, alias="oldestQueuedId")
    processing_time: ProcessingTimeResponse = Field(alias="processingTime")

    model_config = {"populate_by_name": True, "from_attributes": True}


class StatsResponse(BaseModel):
    by_type: dict[str, int] = Field(alias="byType")
    by_status: dict[str, int] = Field(alias="byStatus")
    by_priority: dict[str, int] = Field(alias="byPriority")
    total: int

    model_config = {"populate_by_name": True, "from_attributes": True}
