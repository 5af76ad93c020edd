"""Shared SQLAlchemy models registry for the workspace database.

Currently includes the ledger tables used by ``fnzo``.
"""

from .finance import TABLES, Base, FnCategory, FnExpense, FnTemplate

__all__ = [
    "Base",
    "FnExpense",
    "FnCategory",
    "FnTemplate",
    "TABLES",
]
