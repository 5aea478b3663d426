"""Tests for FastAPI dependency injection helpers."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from fastapi import FastAPI, Request

from tx_manager.api.dependencies import get_engine, get_manager, valid_transaction_id
from tx_manager.errors.tx_errors import TxManagerError


def _request(app: FastAPI) -> MagicMock:
    request = MagicMock(spec=Request)
    request.app = app
    return request


class TestGetEngine:
    def test_returns_engine_from_state(self):
        app = FastAPI()
        engine = MagicMock()
        engine.is_initialized = True
        app.state.engine = engine

        assert get_engine(_request(app)) is engine
        assert get_manager(engine) is engine.manager

    def test_raises_if_no_engine(self):
        app = FastAPI()
        # No engine set on state

        with pytest.raises(TxManagerError, match="not initialized"):
            get_engine(_request(app))

    def test_raises_if_engine_closed(self):
        app = FastAPI()
        app.state.engine = MagicMock(is_initialized=False)

        with pytest.raises(TxManagerError) as exc_info:
            get_engine(_request(app))
        assert exc_info.value.status_code == 503


class TestValidTransactionId:
    @pytest.mark.parametrize("tx_id", ["tx_0123456789abcdef", "tx_abcdefg", "tx_a-b_c-d-e"])
    def test_accepts(self, tx_id):
        assert valid_transaction_id(tx_id) == tx_id

    @pytest.mark.parametrize("tx_id", ["tx_short", "0123456789", "tx_has space", "TX_0123456789"])
    def test_rejects(self, tx_id):
        with pytest.raises(TxManagerError) as exc_info:
            valid_transaction_id(tx_id)
        assert exc_info.value.status_code == 400
        assert exc_info.value.code == "invalid-transaction-id"
