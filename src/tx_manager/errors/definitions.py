"""Pre-defined error instances raised by the manager and the API."""

from __future__ import annotations

from tx_manager.errors.tx_errors import TxManagerError

# -- Configuration (raised synchronously at submission) --------------------

ErrUnknownTransactionType = TxManagerError(
    "no processor registered for transaction type",
    status_code=400,
    code="unknown-transaction-type",
)
ErrInvalidPriority = TxManagerError(
    "invalid transaction priority", status_code=400, code="invalid-priority"
)
ErrInvalidTransaction = TxManagerError(
    "invalid transaction: missing required field \"type\"",
    status_code=400,
    code="invalid-transaction",
)
ErrInvalidArgument = TxManagerError("invalid argument", status_code=400, code="invalid-argument")

# -- Capacity --------------------------------------------------------------

ErrQueueFull = TxManagerError("queue size limit exceeded", status_code=503, code="queue-full")

# -- Not Found -------------------------------------------------------------

ErrTransactionNotFound = TxManagerError(
    "transaction not found", status_code=404, code="transaction-not-found"
)

# -- Lifecycle -------------------------------------------------------------

ErrManagerNotInitialized = TxManagerError(
    "transaction manager not initialized",
    status_code=503,
    code="manager-not-initialized",
)
ErrInvalidTransition = TxManagerError(
    "invalid transaction status transition",
    status_code=409,
    code="invalid-transition",
)
ErrInvalidTransactionID = TxManagerError(
    "invalid transaction ID format", status_code=400, code="invalid-transaction-id"
)
ErrTransactionNotCancellable = TxManagerError(
    "transaction cannot be cancelled in its current state",
    status_code=409,
    code="transaction-not-cancellable",
)
