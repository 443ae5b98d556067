"""
Core Data Models for Expense Sync

These models define the strict schemas for all data flowing through the system.
They are designed to:
1. Reject malformed client records before they reach the merge
2. Normalize timestamps so client and server compare like with like
3. Serialize to the JSON shape clients already speak (camelCase updatedAt)

DESIGN DECISION: An Expense is immutable. A change is a whole new revision
with a later updatedAt, never a partial field update.
"""

import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
)


def utc_now() -> dt.datetime:
    """Current instant, UTC, truncated to the millisecond precision the ledger stores."""
    return truncate_to_millis(dt.datetime.now(dt.timezone.utc))


def truncate_to_millis(value: dt.datetime) -> dt.datetime:
    return value.replace(microsecond=value.microsecond // 1000 * 1000)


def to_utc(value: dt.datetime) -> dt.datetime:
    """Aware UTC at millisecond precision; naive values are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=dt.timezone.utc)
    try:
        value = value.astimezone(dt.timezone.utc)
    except OverflowError as e:
        raise ValueError("Timestamp out of range in UTC") from e
    return truncate_to_millis(value)


def format_timestamp(value: dt.datetime) -> str:
    """Render a timestamp as YYYY-MM-DDTHH:MM:SS.fffZ (UTC)."""
    value = value.astimezone(dt.timezone.utc)
    return f"{value:%Y-%m-%dT%H:%M:%S}.{value.microsecond // 1000:03d}Z"


def parse_timestamp(value: str) -> dt.datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    return to_utc(dt.datetime.fromisoformat(value.strip()))


# =============================================================================
# ENUMS
# =============================================================================

class Periodicity(str, Enum):
    """Whether an expense recurs."""
    ONE_TIME = "one-time"
    MONTHLY = "monthly"


# =============================================================================
# CORE EXPENSE MODEL
# =============================================================================

class Expense(BaseModel):
    """
    A single ledger record.

    Used both for records read from the ledger file and for records
    submitted by a client. The id is the join key between the two copies
    and updated_at is the only thing the merge looks at.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str = Field(
        ...,
        min_length=1,
        strict=True,
        validation_alias=AliasChoices("id", "_id"),
        description="Stable identity across client and server copies"
    )
    date: dt.date = Field(
        ...,
        description="When the expense occurred"
    )
    amount: Decimal = Field(
        ...,
        allow_inf_nan=False,
        description="Negative for an expense, positive for income"
    )
    category: str = Field(
        ...,
        min_length=1,
        strict=True,
        description="Classification (vocabulary is a UI concern)"
    )
    label: str = Field(
        ...,
        strict=True,
        description="Free-text description, may be empty"
    )
    periodicity: Periodicity = Field(
        ...,
        description="one-time or monthly"
    )
    checked: bool = Field(
        ...,
        strict=True,
        description="Reconciled against a bank statement"
    )
    deleted: bool = Field(
        ...,
        strict=True,
        description="Soft-delete flag"
    )
    updated_at: dt.datetime = Field(
        ...,
        alias="updatedAt",
        description="Last modification instant (UTC, millisecond precision)"
    )

    @field_validator('date', mode='before')
    @classmethod
    def parse_date(cls, v: Any) -> Any:
        """Accept a date, or an ISO date/datetime string truncated to its date."""
        if isinstance(v, dt.datetime):
            return v.date()
        if isinstance(v, dt.date):
            return v
        if isinstance(v, str):
            if "T" in v:
                return dt.datetime.fromisoformat(v.strip()).date()
            return v
        raise ValueError("Date must be an ISO date string")

    @field_validator('amount', mode='before')
    @classmethod
    def validate_amount(cls, v: Any) -> Any:
        """Only real numbers; no booleans, no numeric strings."""
        if isinstance(v, bool) or not isinstance(v, (int, float, Decimal)):
            raise ValueError("Amount must be a number")
        amount = Decimal(str(v)) if isinstance(v, float) else Decimal(v)
        if not amount.is_finite():
            raise ValueError("Amount must be finite")
        return amount

    @field_validator('updated_at', mode='before')
    @classmethod
    def parse_updated_at(cls, v: Any) -> Any:
        if isinstance(v, str):
            return parse_timestamp(v)
        if isinstance(v, dt.datetime):
            return v
        raise ValueError("updatedAt must be an ISO timestamp string")

    @field_validator('updated_at')
    @classmethod
    def normalize_updated_at(cls, v: dt.datetime) -> dt.datetime:
        return to_utc(v)

    @field_serializer('amount', when_used='json')
    def serialize_amount(self, v: Decimal) -> float:
        return float(v)

    @field_serializer('updated_at', when_used='json')
    def serialize_updated_at(self, v: dt.datetime) -> str:
        return format_timestamp(v)

    @property
    def is_monthly(self) -> bool:
        return self.periodicity == Periodicity.MONTHLY

    def to_json_dict(self) -> dict:
        """Convert to the JSON shape exchanged with clients."""
        return self.model_dump(mode="json", by_alias=True)


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """Why one client record was rejected."""

    index: int = Field(
        ...,
        ge=0,
        description="Position of the record in the submitted batch"
    )
    record_id: Optional[str] = Field(
        default=None,
        description="The record's id, when it could be read"
    )
    field: str = Field(
        ...,
        description="Field with the issue ('record' for the whole entry)"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'not_a_mapping')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )


class ValidationResult(BaseModel):
    """Accepted records and per-record rejections for one submitted batch."""

    accepted: list[Expense] = Field(default_factory=list)
    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def rejected_count(self) -> int:
        """Number of distinct records rejected."""
        return len({issue.index for issue in self.issues})

    @property
    def is_clean(self) -> bool:
        return not self.issues


# =============================================================================
# SYNC / QUERY RESULTS
# =============================================================================

class SyncResult(BaseModel):
    """
    Outcome of a single sync.

    Only expenses_for_client goes back over the wire; the rest is kept
    for logging and for in-process callers.
    """

    correlation_id: UUID = Field(default_factory=uuid4)
    synced_at: dt.datetime = Field(default_factory=utc_now)

    delta_for_server: list[Expense] = Field(
        default_factory=list,
        description="Client records the server did not have in this revision"
    )
    delta_for_client: list[Expense] = Field(
        default_factory=list,
        description="Server records the client did not have in this revision"
    )
    generated: list[Expense] = Field(
        default_factory=list,
        description="Monthly occurrences generated during this sync"
    )
    rejected: list[ValidationIssue] = Field(
        default_factory=list,
        description="Client records dropped by validation"
    )
    persisted: bool = Field(
        default=False,
        description="Whether the ledger was rewritten"
    )

    @property
    def expenses_for_client(self) -> list[Expense]:
        """Everything the client must upsert on its side."""
        return [*self.delta_for_client, *self.generated]


class ColumnInfo(BaseModel):
    """One column of the ledger schema."""
    model_config = ConfigDict(populate_by_name=True)

    column_name: str = Field(..., alias="columnName")
    column_type: str = Field(..., alias="columnType")
    nullable: bool = True
    primary_key: bool = Field(default=False, alias="primaryKey")


class QueryResult(BaseModel):
    """Rows returned by an ad-hoc passthrough query."""

    query_id: UUID = Field(default_factory=uuid4)
    executed_at: dt.datetime = Field(default_factory=utc_now)
    sql: str
    rows: list[dict[str, Any]] = Field(default_factory=list)
    duration_ms: float = Field(default=0.0, ge=0)

    @property
    def row_count(self) -> int:
        return len(self.rows)
