"""
Monthly Expense Generation

Monthly expenses are generated one basket at a time:

1. The anchor is the latest monthly record dated on or before today.
2. If the anchor is already in the current month, nothing is due.
3. Otherwise every non-deleted monthly record in the anchor's month is a
   template, and each one is copied one calendar month forward.

Each sync therefore generates at most one month. A ledger that missed
several months catches up one month per sync, since the freshly generated
basket becomes the next anchor.

Generated records are new entities: fresh id, fresh updatedAt, unchecked.
"""

import secrets
import string
from collections.abc import Sequence
from datetime import date, datetime
from typing import Optional

from dateutil.relativedelta import relativedelta

from expense_sync.models.expense import Expense, to_utc, utc_now


ID_LENGTH = 8
_ID_FIRST_ALPHABET = string.ascii_letters
_ID_ALPHABET = string.ascii_letters + string.digits


def new_expense_id() -> str:
    """Random 8-char id; the first char is always a letter."""
    return secrets.choice(_ID_FIRST_ALPHABET) + "".join(
        secrets.choice(_ID_ALPHABET) for _ in range(ID_LENGTH - 1)
    )


def add_one_month(value: date) -> date:
    """Same day next month, clamped to the month's last day (Jan 31 -> Feb 28)."""
    return value + relativedelta(months=+1)


def is_same_month(first: date, second: date) -> bool:
    return first.year == second.year and first.month == second.month


def find_anchor(expenses: Sequence[Expense], today: date) -> Optional[Expense]:
    """Latest monthly record dated on or before today, deleted ones included."""
    candidates = [e for e in expenses if e.is_monthly and e.date <= today]
    if not candidates:
        return None
    return max(candidates, key=lambda e: e.date)


def find_templates(expenses: Sequence[Expense], today: date) -> list[Expense]:
    """The monthly basket to copy forward, or nothing if this month is done."""
    anchor = find_anchor(expenses, today)
    if anchor is None:
        return []

    if is_same_month(anchor.date, today):
        return []

    return [
        e for e in expenses
        if e.is_monthly
        and not e.deleted
        and is_same_month(e.date, anchor.date)
    ]


def generate_occurrences(
    expenses: Sequence[Expense],
    now: Optional[datetime] = None,
    today: Optional[date] = None,
) -> list[Expense]:
    """
    Generate next month's occurrences of the latest monthly basket.

    Args:
        expenses: The full server collection
        now: Instant stamped as updatedAt on generated records (default: now, UTC)
        today: Reference date for "already generated this month" (default: now's date)

    Returns:
        New records, in template order; empty when nothing is due
    """
    now = to_utc(now) if now else utc_now()
    today = today or now.date()

    return [
        template.model_copy(update={
            "id": new_expense_id(),
            "date": add_one_month(template.date),
            "checked": False,
            "updated_at": now,
        })
        for template in find_templates(expenses, today)
    ]
