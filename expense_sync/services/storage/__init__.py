"""
Storage Services Package

Provides the abstract ledger interface and the CSV file implementation.
"""

from expense_sync.services.storage.interface import (
    LEDGER_TABLE_PLACEHOLDER,
    BackupError,
    LedgerStorageInterface,
    QueryError,
    StorageError,
    StoreReadError,
    StoreWriteError,
)
from expense_sync.services.storage.csv_ledger import (
    LEDGER_COLUMNS,
    LEDGER_SCHEMA,
    CsvLedgerStorage,
)

__all__ = [
    # Interface
    "LEDGER_TABLE_PLACEHOLDER",
    "LedgerStorageInterface",
    # Exceptions
    "BackupError",
    "QueryError",
    "StorageError",
    "StoreReadError",
    "StoreWriteError",
    # CSV implementation
    "LEDGER_COLUMNS",
    "LEDGER_SCHEMA",
    "CsvLedgerStorage",
]
