"""Query passthrough package."""

from expense_sync.queries.executor import QueryExecutor

__all__ = ["QueryExecutor"]
