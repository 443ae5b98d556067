"""Builders and constants shared by the test modules."""

import asyncio
from datetime import date, datetime, timezone
from decimal import Decimal

from expense_sync.models import Expense, Periodicity
from expense_sync.services.storage import CsvLedgerStorage

T1 = datetime(2024, 3, 1, 9, 0, 0, tzinfo=timezone.utc)
T2 = datetime(2024, 3, 2, 9, 0, 0, tzinfo=timezone.utc)
T3 = datetime(2024, 3, 3, 9, 0, 0, tzinfo=timezone.utc)


def run_async(coro):
    """Run an async store/flow call from a plain test."""
    return asyncio.run(coro)


def build_expense(
    id: str = "a",
    date: date = date(2024, 3, 1),
    amount: Decimal | str | int = "-10",
    category: str = "food",
    label: str = "",
    periodicity: Periodicity = Periodicity.ONE_TIME,
    checked: bool = False,
    deleted: bool = False,
    updated_at: datetime = T1,
) -> Expense:
    return Expense(
        id=id,
        date=date,
        amount=Decimal(amount),
        category=category,
        label=label,
        periodicity=periodicity,
        checked=checked,
        deleted=deleted,
        updated_at=updated_at,
    )


def write_ledger(store: CsvLedgerStorage, expenses: list[Expense]) -> None:
    """Write a ledger file directly, bypassing the rewrite protocol."""
    with store.path.open("w", newline="", encoding="utf-8") as f:
        store._write_csv(f, expenses)


def raw_expense(**overrides) -> dict:
    """A valid client record as parsed from JSON."""
    raw = {
        "id": "a",
        "date": "2024-03-01",
        "amount": -10,
        "category": "food",
        "label": "lunch",
        "periodicity": "one-time",
        "checked": False,
        "deleted": False,
        "updatedAt": "2024-03-01T09:00:00.000Z",
    }
    raw.update(overrides)
    return raw
