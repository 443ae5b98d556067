"""
Last-write-wins diff between two expense collections.

diff_expenses(new, old) answers "what does the owner of `old` need to
learn from `new`?". Running it both ways gives the two halves of a sync.
"""

from collections.abc import Iterable

from expense_sync.models.expense import Expense


def diff_expenses(
    new_expenses: Iterable[Expense],
    old_expenses: Iterable[Expense],
) -> list[Expense]:
    """
    Records of new_expenses that old_expenses lacks or holds an older revision of.

    A record is included when no record with the same id exists in
    old_expenses, or when the old one has a strictly earlier updated_at.
    Equal timestamps are a no-op. Output keeps the order of new_expenses.
    Neither input is modified.
    """
    # Last one wins on duplicate ids
    old_by_id = {expense.id: expense for expense in old_expenses}

    to_upsert = []
    for expense in new_expenses:
        old = old_by_id.get(expense.id)
        if old is None or expense.updated_at > old.updated_at:
            to_upsert.append(expense)

    return to_upsert
