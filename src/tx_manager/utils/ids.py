"""Transaction identifier generation and validation."""

from __future__ import annotations

import re
import secrets

TX_ID_PREFIX = "tx_"
_TX_ID_RE = re.compile(r"^tx_[A-Za-z0-9_-]{7,}$")


def new_transaction_id() -> str:
    """Return a fresh ``tx_`` + 16 hex character identifier."""
    return f"{TX_ID_PREFIX}{secrets.token_hex(8)}"


def is_valid_transaction_id(value: str) -> bool:
    """Check the shape of a transaction id (``tx_`` prefix, at least 10 chars)."""
    return bool(_TX_ID_RE.match(value))
