"""Shared fixtures for Expense Sync tests."""

import pytest

from expense_sync.services.storage import CsvLedgerStorage

from tests.helpers import build_expense


@pytest.fixture
def make_expense():
    return build_expense


@pytest.fixture
def ledger(tmp_path) -> CsvLedgerStorage:
    """An empty, header-only ledger in a temp directory."""
    store = CsvLedgerStorage(
        tmp_path / "expenses.csv",
        backup_suffix=".backup.csv",
        temp_suffix=".tmp.csv",
        serialize_writes=False,
    )
    store.init_ledger()
    return store
