import logging

import pytest
import structlog

from tabsplit.logging import resolve_level, transaction_context


def test_resolve_level_accepts_names_and_numbers():
    assert resolve_level("debug") == logging.DEBUG
    assert resolve_level(" Warning ") == logging.WARNING
    assert resolve_level(logging.ERROR) == logging.ERROR

    with pytest.raises(ValueError):
        resolve_level("chatty")


def test_transaction_context_binds_and_unbinds():
    with transaction_context("tx-1", group_id="group-1"):
        bound = structlog.contextvars.get_contextvars()
        assert bound["transaction_id"] == "tx-1"
        assert bound["group_id"] == "group-1"

    assert "transaction_id" not in structlog.contextvars.get_contextvars()
