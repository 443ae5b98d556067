"""
Data Models Package

This package contains all Pydantic models used in Expense Sync.
All data flowing through the system must conform to these schemas.
"""

from expense_sync.models.expense import (
    ColumnInfo,
    Expense,
    Periodicity,
    QueryResult,
    SyncResult,
    ValidationIssue,
    ValidationResult,
    format_timestamp,
    parse_timestamp,
    utc_now,
)
from expense_sync.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Expense models
    "ColumnInfo",
    "Expense",
    "Periodicity",
    "QueryResult",
    "SyncResult",
    "ValidationIssue",
    "ValidationResult",
    "format_timestamp",
    "parse_timestamp",
    "utc_now",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
