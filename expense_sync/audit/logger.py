"""
Audit Logger

DESIGN DECISION: Every operation that touches the ledger is logged as a
sequence of typed events sharing a correlation ID. Each event carries the
time since the previous event (step_ms) and since the operation started
(total_ms), so a slow sync shows which step was slow.

The audit logger:
- Only writes to the local structured log (the ledger holds expenses only)
- Is created per operation, namespaced by the route or flow name
"""

import logging
import sys
import time
from typing import Optional
from uuid import UUID, uuid4

import structlog

from expense_sync.config import AppSettings, get_settings
from expense_sync.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity


def configure_logging(settings: Optional[AppSettings] = None) -> None:
    """
    Configure stdlib logging and structlog.

    JSON lines by default; a console renderer when log_json is off.
    Called once by the application factory at startup.
    """
    settings = settings or get_settings().app

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=settings.log_level,
    )
    logging.getLogger().setLevel(settings.log_level)

    renderer = (
        structlog.processors.JSONRenderer()
        if settings.log_json
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


class AuditLogger:
    """
    Audit logging for one operation (a sync, a query, a mutation).

    Usage:
        audit = AuditLogger("/expenses/sync")
        audit.log_sync_started(client_count=12)
        ...
        audit.log_sync_completed(for_client=3, persisted=True)
    """

    def __init__(
        self,
        namespace: str,
        correlation_id: Optional[UUID] = None,
    ):
        self._namespace = namespace
        self._correlation_id = correlation_id or create_correlation_id()
        self._logger = structlog.get_logger("expense_sync.audit")
        self._started = time.perf_counter()
        self._last = self._started

    @property
    def correlation_id(self) -> UUID:
        return self._correlation_id

    @property
    def namespace(self) -> str:
        return self._namespace

    def log(self, event: AuditEvent) -> AuditEvent:
        """
        Stamp an event with this operation's context and timings, then log it.

        Returns the stamped event.
        """
        now = time.perf_counter()
        event = event.model_copy(update={
            "namespace": self._namespace,
            "correlation_id": self._correlation_id,
            "step_ms": round((now - self._last) * 1000, 1),
            "total_ms": round((now - self._started) * 1000, 1),
        })
        self._last = now

        log_dict = event.to_log_dict()

        if event.severity == AuditSeverity.ERROR:
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        return event

    def log_sync_started(self, client_count: int) -> None:
        self.log(AuditEventBuilder.sync_started(client_count=client_count))

    def log_records_rejected(self, issues: list[dict]) -> None:
        """Log client records dropped by validation."""
        self.log(AuditEventBuilder.records_rejected(issues=issues))

    def log_ledger_loaded(self, record_count: int) -> None:
        self.log(AuditEventBuilder.ledger_loaded(record_count=record_count))

    def log_diff_computed(self, direction: str, record_count: int) -> None:
        self.log(AuditEventBuilder.diff_computed(
            direction=direction,
            record_count=record_count,
        ))

    def log_occurrences_generated(self, record_count: int) -> None:
        self.log(AuditEventBuilder.occurrences_generated(record_count=record_count))

    def log_ledger_upserted(self, record_count: int) -> None:
        self.log(AuditEventBuilder.ledger_upserted(record_count=record_count))

    def log_sync_completed(self, for_client: int, persisted: bool) -> None:
        self.log(AuditEventBuilder.sync_completed(
            for_client=for_client,
            persisted=persisted,
        ))

    def log_query_executed(self, query_id: UUID, row_count: int) -> None:
        self.log(AuditEventBuilder.query_executed(
            query_id=query_id,
            row_count=row_count,
        ))

    def log_ledger_mutated(self, statement_count: int) -> None:
        self.log(AuditEventBuilder.ledger_mutated(statement_count=statement_count))

    def log_error(
        self,
        error: BaseException,
        details: Optional[dict] = None,
    ) -> None:
        """Log a failed operation."""
        self.log(AuditEventBuilder.operation_failed(
            error_type=type(error).__name__,
            error_message=str(error),
            details=details,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of an operation and pass it to its AuditLogger.
    """
    return uuid4()
