"""
Main Orchestrator for Expense Sync

This module ties the components together and defines the end-to-end
sync flow:
    client batch → validate → load ledger → diff both ways
    → generate monthly occurrences → upsert → expenses for the client

DESIGN DECISION: The orchestrator enforces the boundaries:
- Invalid client records never reach the diff (they are dropped and logged)
- The ledger is only rewritten when something actually changed
- A failed rewrite fails the whole sync; the client gets nothing partial
- Every step is audited with its timing

Both diff directions run against the ledger as loaded at the start of the
sync, so records generated during this sync always reach the client.
"""

from collections.abc import Callable, Iterable, Sequence
from datetime import datetime
from typing import Any, Optional

from expense_sync.audit import AuditLogger
from expense_sync.config import get_settings
from expense_sync.models.expense import Expense, SyncResult, utc_now
from expense_sync.queries import QueryExecutor
from expense_sync.reconcile import diff_expenses, generate_occurrences
from expense_sync.services.storage import CsvLedgerStorage, LedgerStorageInterface
from expense_sync.validation import ExpenseValidator


class SyncFlow:
    """
    Orchestrates one client/server reconciliation.

    Flow:
    1. Validate → drop records that do not parse as an Expense
    2. Load → read the whole ledger
    3. Diff → client-only/newer records for the server, and vice versa
    4. Generate → next month's copies of the latest monthly basket
    5. Persist → upsert server delta + generated, only if non-empty
    6. Respond → delta for the client + generated
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        validator: Optional[ExpenseValidator] = None,
        clock: Optional[Callable[[], datetime]] = None,
        audit_namespace: str = "/expenses/sync",
    ):
        self._storage = storage
        self._validator = validator or ExpenseValidator()
        self._clock = clock or utc_now
        self._audit_namespace = audit_namespace

    @property
    def storage(self) -> LedgerStorageInterface:
        return self._storage

    async def sync(
        self,
        client_records: Iterable[Any],
        audit_logger: Optional[AuditLogger] = None,
    ) -> SyncResult:
        """
        Reconcile a client batch with the ledger.

        Args:
            client_records: Raw records as parsed from the request JSON
            audit_logger: Logger of the calling request, if any

        Returns:
            SyncResult; expenses_for_client is what the client must upsert

        Raises:
            StorageError: If the ledger cannot be read or rewritten
        """
        client_records = list(client_records)
        audit = audit_logger or AuditLogger(self._audit_namespace)
        audit.log_sync_started(client_count=len(client_records))

        try:
            validation = self._validator.validate_batch(client_records)
            if not validation.is_clean:
                audit.log_records_rejected(
                    issues=[issue.model_dump() for issue in validation.issues]
                )
            client = validation.accepted

            server = await self._storage.load_all()
            audit.log_ledger_loaded(record_count=len(server))

            delta_for_server = diff_expenses(client, server)
            audit.log_diff_computed("server", len(delta_for_server))

            delta_for_client = diff_expenses(server, client)
            audit.log_diff_computed("client", len(delta_for_client))

            generated = generate_occurrences(server, now=self._clock())
            audit.log_occurrences_generated(record_count=len(generated))

            persisted = await self._persist(delta_for_server, generated)
            if persisted:
                audit.log_ledger_upserted(
                    record_count=len(delta_for_server) + len(generated)
                )
        except Exception as e:
            audit.log_error(e)
            raise

        result = SyncResult(
            correlation_id=audit.correlation_id,
            delta_for_server=delta_for_server,
            delta_for_client=delta_for_client,
            generated=generated,
            rejected=validation.issues,
            persisted=persisted,
        )
        audit.log_sync_completed(
            for_client=len(result.expenses_for_client),
            persisted=persisted,
        )
        return result

    async def _persist(
        self,
        delta_for_server: Sequence[Expense],
        generated: Sequence[Expense],
    ) -> bool:
        """Upsert the server delta and generated records, if there are any."""
        if not delta_for_server and not generated:
            return False

        await self._storage.upsert_batch([*delta_for_server, *generated])
        return True


def create_app_components(
    dev: bool = False,
) -> tuple[SyncFlow, QueryExecutor, CsvLedgerStorage]:
    """
    Factory function to create the components for one environment.

    Args:
        dev: Use the development ledger instead of the production one

    Returns:
        (sync_flow, query_executor, ledger_storage)
    """
    ledger_settings = get_settings().ledger

    storage = CsvLedgerStorage(
        ledger_settings.path_for(dev),
        backup_suffix=ledger_settings.backup_suffix,
        temp_suffix=ledger_settings.temp_suffix,
        serialize_writes=ledger_settings.serialize_writes,
    )
    if ledger_settings.create_if_missing:
        storage.init_ledger()

    sync_flow = SyncFlow(storage)
    query_executor = QueryExecutor(storage)

    return sync_flow, query_executor, storage
