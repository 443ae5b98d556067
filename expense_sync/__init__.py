"""
Expense Sync - Source Package

A small personal finance backend that keeps a flat-file expense ledger
and reconciles it with client-held copies on every sync.

DESIGN PRINCIPLES:
1. Last write wins, decided by updatedAt only
2. The ledger file is never left half-written
3. Bad client records are dropped, never "fixed"
4. Every sync step is logged with its timing
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Expense Sync Team"
