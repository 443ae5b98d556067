"""
Audit Models for Expense Sync

Every sync and every ledger rewrite is logged as a typed event.
This provides:
1. A trace of what each sync sent where
2. Timings per step (how long the load, diff and rewrite took)
3. A record of rejected client data, since the client is never told

DESIGN DECISION: Events are only ever appended to the log stream.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from expense_sync.models.expense import utc_now


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Sync flow
    SYNC_STARTED = "sync_started"
    RECORDS_REJECTED = "records_rejected"
    DIFF_COMPUTED = "diff_computed"
    OCCURRENCES_GENERATED = "occurrences_generated"
    LEDGER_UPSERTED = "ledger_upserted"
    SYNC_COMPLETED = "sync_completed"

    # Passthrough
    LEDGER_LOADED = "ledger_loaded"
    QUERY_EXECUTED = "query_executed"
    LEDGER_MUTATED = "ledger_mutated"

    # Failures
    OPERATION_FAILED = "operation_failed"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class AuditEvent(BaseModel):
    """
    A single audit event.

    step_ms/total_ms are filled in by the AuditLogger that emits the
    event: time since the previous event and since the operation began.
    """

    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    namespace: Optional[str] = Field(
        default=None,
        description="Operation the event belongs to (e.g. '/expenses/sync')"
    )
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID shared by all events of one operation"
    )

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None

    step_ms: Optional[float] = None
    total_ms: Optional[float] = None

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "occurred_at": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "namespace": self.namespace,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "step_ms": self.step_ms,
            "total_ms": self.total_ms,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.sync_started(client_count=12)
        event = AuditEventBuilder.ledger_upserted(record_count=3)
    """

    @staticmethod
    def sync_started(client_count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYNC_STARTED,
            description=f"Sync started with {client_count} client records",
            details={"client_count": client_count},
        )

    @staticmethod
    def records_rejected(issues: list[dict]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORDS_REJECTED,
            severity=AuditSeverity.WARNING,
            description=f"Dropped {len({i['index'] for i in issues})} invalid client records",
            details={"issues": issues},
        )

    @staticmethod
    def ledger_loaded(record_count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_LOADED,
            description=f"Loaded {record_count} ledger records",
            details={"record_count": record_count},
        )

    @staticmethod
    def diff_computed(direction: str, record_count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DIFF_COMPUTED,
            description=f"{record_count} new expenses for {direction}",
            details={"direction": direction, "record_count": record_count},
        )

    @staticmethod
    def occurrences_generated(record_count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OCCURRENCES_GENERATED,
            description=f"{record_count} new monthly expenses",
            details={"record_count": record_count},
        )

    @staticmethod
    def ledger_upserted(record_count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_UPSERTED,
            description=f"Upserted {record_count} records into the ledger",
            details={"record_count": record_count},
        )

    @staticmethod
    def sync_completed(for_client: int, persisted: bool) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYNC_COMPLETED,
            description=f"Sync done, {for_client} expenses sent to client",
            details={"for_client": for_client, "persisted": persisted},
        )

    @staticmethod
    def query_executed(query_id: UUID, row_count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.QUERY_EXECUTED,
            description=f"Query returned {row_count} rows",
            details={"query_id": str(query_id), "row_count": row_count},
        )

    @staticmethod
    def ledger_mutated(statement_count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_MUTATED,
            description=f"Applied {statement_count} statements to the ledger",
            details={"statement_count": statement_count},
        )

    @staticmethod
    def operation_failed(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OPERATION_FAILED,
            severity=AuditSeverity.ERROR,
            description=f"Operation failed: {error_type}",
            error_message=error_message,
            details=details or {},
        )
