"""Reconciliation package: the sync diff and monthly expense generation."""

from expense_sync.reconcile.diff import diff_expenses
from expense_sync.reconcile.recurring import (
    add_one_month,
    generate_occurrences,
    is_same_month,
    new_expense_id,
)

__all__ = [
    "add_one_month",
    "diff_expenses",
    "generate_occurrences",
    "is_same_month",
    "new_expense_id",
]
