"""Expense Sync test suite."""
