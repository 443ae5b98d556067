"""Services package."""

from expense_sync.services.storage import (
    BackupError,
    CsvLedgerStorage,
    LedgerStorageInterface,
    QueryError,
    StorageError,
    StoreReadError,
    StoreWriteError,
)

__all__ = [
    "BackupError",
    "CsvLedgerStorage",
    "LedgerStorageInterface",
    "QueryError",
    "StorageError",
    "StoreReadError",
    "StoreWriteError",
]
