"""tx-manager — asynchronous blockchain transaction orchestration."""

from __future__ import annotations

__version__ = "0.1.0"
