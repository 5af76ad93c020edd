"""db: shared database library (SQLAlchemy/Supabase Postgres).

Public exports
--------------
- ``Base`` and ``metadata`` for schema creation
- ORM models in ``db.models.finance`` (re-exported for convenience)
- Engine/session helpers in ``db.client``
"""

from __future__ import annotations

from .models.finance import TABLES, Base, FnCategory, FnExpense, FnTemplate

metadata = Base.metadata

__all__ = [
    "Base",
    "metadata",
    "FnExpense",
    "FnCategory",
    "FnTemplate",
    "TABLES",
]
