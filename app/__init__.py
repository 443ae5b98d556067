"""HTTP entry point for Expense Sync."""
