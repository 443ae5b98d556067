"""
Ad-hoc Query Passthrough

DESIGN DECISION: Queries and raw statements are passed to the ledger
store VERBATIM. There is no query planning or rewriting here beyond the
%expenses% table placeholder, which the store substitutes.

- Queries run against a throwaway staged copy, so they can never change
  the ledger.
- Raw mutation statements go through the same backup/restore rewrite as
  sync upserts.

This module only adds timing, audit logging and result wrapping.
Failures propagate to the caller unchanged.
"""

import time
from collections.abc import Sequence
from typing import Optional

from expense_sync.audit import AuditLogger
from expense_sync.models.expense import ColumnInfo, QueryResult
from expense_sync.services.storage import LedgerStorageInterface


class QueryExecutor:
    """Runs passthrough queries, schema descriptions and raw mutations."""

    def __init__(self, storage: LedgerStorageInterface):
        self._storage = storage

    async def run(
        self,
        sql: str,
        audit_logger: Optional[AuditLogger] = None,
    ) -> QueryResult:
        """
        Execute a read-only query against the ledger.

        Args:
            sql: SQL referring to the ledger table as %expenses%
            audit_logger: Logger of the calling operation, if any

        Raises:
            StoreReadError, QueryError: From the store
        """
        audit = audit_logger or AuditLogger("query")
        started = time.perf_counter()

        try:
            rows = await self._storage.query(sql)
        except Exception as e:
            audit.log_error(e, details={"sql": sql})
            raise

        result = QueryResult(
            sql=sql,
            rows=rows,
            duration_ms=round((time.perf_counter() - started) * 1000, 1),
        )
        audit.log_query_executed(query_id=result.query_id, row_count=result.row_count)
        return result

    async def describe(self) -> list[ColumnInfo]:
        """Describe the ledger columns."""
        return await self._storage.describe_schema()

    async def mutate(
        self,
        statements: Sequence[str],
        audit_logger: Optional[AuditLogger] = None,
    ) -> None:
        """
        Apply raw statements to the ledger in one atomic rewrite.

        Raises:
            BackupError, StoreWriteError: From the store
        """
        audit = audit_logger or AuditLogger("mutate")

        try:
            await self._storage.mutate(statements)
        except Exception as e:
            audit.log_error(e, details={"statements": list(statements)})
            raise

        audit.log_ledger_mutated(statement_count=len(statements))
