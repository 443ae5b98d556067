"""
Client Record Validation

DESIGN DECISION: Client records are untrusted. Each one is validated on its
own against the Expense schema:
- id: non-empty string
- date: parses as a calendar date
- amount: finite number
- category: non-empty string
- label: string (may be empty)
- periodicity: one-time or monthly
- checked / deleted: booleans
- updatedAt: parses as a timestamp

A record that fails is dropped from the batch; the rest of the batch still
syncs. The client is not told which records were dropped (the wire response
only carries the delta), so every rejection is reported here and logged by
the caller.

IMPORTANT: Validation NEVER fixes a record. A record is either taken as-is
or dropped.
"""

from collections.abc import Iterable, Mapping
from typing import Any, Optional

from pydantic import ValidationError

from expense_sync.models.expense import (
    Expense,
    ValidationIssue,
    ValidationResult,
)


class ExpenseValidator:
    """Validates a batch of raw client records into Expense models."""

    def _record_id(self, raw: Mapping) -> Optional[str]:
        for key in ("id", "_id"):
            value = raw.get(key)
            if isinstance(value, str) and value:
                return value
        return None

    def _issues_from_error(
        self,
        index: int,
        record_id: Optional[str],
        error: ValidationError,
    ) -> list[ValidationIssue]:
        issues = []
        for detail in error.errors():
            loc = detail.get("loc") or ("record",)
            issues.append(ValidationIssue(
                index=index,
                record_id=record_id,
                field=str(loc[0]),
                issue_type="missing" if detail.get("type") == "missing" else "invalid_value",
                message=detail.get("msg", "Invalid value"),
            ))
        return issues

    def validate_record(
        self,
        index: int,
        raw: Any,
    ) -> tuple[Optional[Expense], list[ValidationIssue]]:
        """
        Validate one raw record.

        Returns:
            (expense, issues) - expense is None when issues is non-empty
        """
        if not isinstance(raw, Mapping):
            return None, [ValidationIssue(
                index=index,
                field="record",
                issue_type="not_a_mapping",
                message=f"Expected an object, got {type(raw).__name__}",
            )]

        record_id = self._record_id(raw)
        try:
            return Expense.model_validate(dict(raw)), []
        except ValidationError as e:
            return None, self._issues_from_error(index, record_id, e)

    def validate_batch(self, raw_records: Iterable[Any]) -> ValidationResult:
        """
        Validate a whole client batch.

        Args:
            raw_records: Untyped key-value mappings as parsed from JSON

        Returns:
            ValidationResult with the accepted records (in submission order)
            and the issues of every rejected record
        """
        accepted = []
        issues = []

        for index, raw in enumerate(raw_records):
            expense, record_issues = self.validate_record(index, raw)
            if expense is not None:
                accepted.append(expense)
            issues.extend(record_issues)

        return ValidationResult(accepted=accepted, issues=issues)


def normalize_client_records(raw_records: Iterable[Any]) -> list[Expense]:
    """Validate client records, silently dropping the invalid ones."""
    return ExpenseValidator().validate_batch(raw_records).accepted
