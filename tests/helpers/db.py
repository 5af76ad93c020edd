"""DB helpers for tests: bootstrap a temporary SQLite DB and seed ledger rows."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path

from db import Base
from db.client import get_engine, session_scope
from db.models.finance import FnCategory, FnExpense
from sqlalchemy import text as sql_text


def bootstrap_sqlite_db(db_file: Path) -> str:
    """Create a file-backed SQLite database with the ledger schema; returns its URL.

    File-backed so every SQLAlchemy connection sees the same state (in-memory
    SQLite databases are per-connection).
    """

    db_file.parent.mkdir(parents=True, exist_ok=True)
    url = f"sqlite+pysqlite:///{db_file}"
    Base.metadata.create_all(bind=get_engine(database_url=url))
    _assert_schema_in_sync(url)
    return url


def seed_expense(
    database_url: str,
    *,
    user_id: str,
    category: str,
    amount: str | Decimal,
    kind: str = "expense",
    date: datetime | None = None,
    notes: str = "",
) -> str:
    """Insert one expense row directly (bypassing the services); returns its id."""

    row_id = str(uuid.uuid4())
    now = datetime.now(UTC)
    with session_scope(database_url=database_url) as session:
        session.add(
            FnExpense(
                id=row_id,
                user_id=user_id,
                date=date or now,
                type=kind,
                category=category,
                amount=Decimal(str(amount)),
                notes=notes,
                created_at=now,
                updated_at=now,
            )
        )
    return row_id


def seed_category(
    database_url: str,
    *,
    user_id: str,
    name: str,
    kind: str = "expense",
    is_default: bool = False,
    usage_count: int = 0,
    last_used: datetime | None = None,
) -> str:
    row_id = str(uuid.uuid4())
    now = datetime.now(UTC)
    with session_scope(database_url=database_url) as session:
        session.add(
            FnCategory(
                id=row_id,
                user_id=user_id,
                name=name,
                type=kind,
                is_default=is_default,
                usage_count=usage_count,
                last_used=last_used,
                created_at=now,
                updated_at=now,
            )
        )
    return row_id


def expense_categories(database_url: str, *, user_id: str) -> list[tuple[str, str]]:
    """``(category, type)`` of every expense row for ``user_id``, sorted."""

    with session_scope(database_url=database_url) as session:
        rows = session.execute(
            sql_text("SELECT category, type FROM expenses WHERE user_id = :u"),
            {"u": user_id},
        ).fetchall()
    return sorted((r[0], r[1]) for r in rows)


def _assert_schema_in_sync(database_url: str) -> None:
    """Every ORM table exists in SQLite with exactly the mapped columns."""

    with session_scope(database_url=database_url) as session:
        for table in Base.metadata.sorted_tables:
            rows = session.execute(sql_text(f"PRAGMA table_info('{table.name}')")).fetchall()
            got = {row[1] for row in rows}  # (cid, name, type, notnull, dflt_value, pk)
            expected = {c.name for c in table.columns}
            assert got == expected, f"{table.name} schema drift: {sorted(got ^ expected)}"
