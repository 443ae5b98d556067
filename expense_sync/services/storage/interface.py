"""
Abstract Ledger Storage Interface

DESIGN DECISION: We define an abstract interface for ledger operations.
This allows us to:
1. Keep the CSV file format out of the sync logic
2. Run the sync flow against a throwaway file in tests
3. Swap the flat file for a real database later

The interface is intentionally small. A ledger is read whole and written
in batches; there is no per-record lookup because a sync always needs the
full collection anyway.

CONCURRENCY: implementations assume a single logical writer per ledger.
Two concurrent mutating calls on the same ledger may interleave unless
the implementation serializes them.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any

from expense_sync.models.expense import ColumnInfo, Expense


# Placeholder that passthrough SQL uses to refer to the ledger table
LEDGER_TABLE_PLACEHOLDER = "%expenses%"


class LedgerStorageInterface(ABC):
    """
    Abstract interface for ledger storage operations.

    Any storage implementation (CSV file, SQL database)
    must implement these methods.
    """

    @abstractmethod
    async def load_all(self) -> list[Expense]:
        """
        Load every record in the ledger, soft-deleted ones included.

        Raises:
            StoreReadError: If the ledger is missing, unreadable or malformed
        """
        pass

    @abstractmethod
    async def upsert_batch(self, expenses: Sequence[Expense]) -> None:
        """
        Insert or replace (by id) every record in one atomic rewrite.

        Either all records are applied or the ledger is left exactly as
        it was.

        Raises:
            BackupError: If the backup could not be made (nothing was changed)
            StoreWriteError: If the rewrite failed (ledger restored)
        """
        pass

    @abstractmethod
    async def mutate(self, statements: Sequence[str]) -> None:
        """
        Apply raw SQL statements to the ledger in one atomic rewrite.

        Statements refer to the ledger table as %expenses%.

        Raises:
            BackupError, StoreWriteError: As for upsert_batch
        """
        pass

    @abstractmethod
    async def query(self, sql: str) -> list[dict[str, Any]]:
        """
        Run a read-only SQL query against the ledger.

        The query refers to the ledger table as %expenses%. The ledger
        itself is never modified, whatever the query does.

        Raises:
            StoreReadError: If the ledger cannot be read
            QueryError: If the query fails
        """
        pass

    @abstractmethod
    async def describe_schema(self) -> list[ColumnInfo]:
        """
        Describe the ledger columns.

        Returns:
            One entry per column, in file order
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class StoreReadError(StorageError):
    """Ledger missing, unreadable or malformed."""
    pass


class StoreWriteError(StorageError):
    """A rewrite failed after the backup was taken; the ledger was restored."""
    pass


class BackupError(StorageError):
    """The pre-rewrite backup could not be made; nothing was changed."""
    pass


class QueryError(StorageError):
    """A passthrough SQL statement failed."""
    pass
