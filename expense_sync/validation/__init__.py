"""Client record validation package."""

from expense_sync.validation.validator import ExpenseValidator, normalize_client_records

__all__ = ["ExpenseValidator", "normalize_client_records"]
