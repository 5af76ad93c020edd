from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

_KIND_CHECK = "type in ('expense','income','savings')"


class Base(DeclarativeBase):
    pass


# ---------------------------
# Core: expenses
# ---------------------------


class FnExpense(Base):
    __tablename__ = "expenses"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False)
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    # Column is named ``type`` on the hosted schema; services expose it as ``kind``.
    type: Mapped[str] = mapped_column(String, nullable=False)
    # Plain name match against ``categories.name`` (same ``type``); deliberately
    # not a foreign key. Renames rewrite this column in bulk.
    category: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    notes: Mapped[str] = mapped_column(Text, nullable=False, server_default=text("''"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("now()")
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("now()")
    )

    __table_args__ = (
        CheckConstraint(_KIND_CHECK, name="ck_expenses_type"),
        CheckConstraint("amount > 0", name="ck_expenses_amount_positive"),
        Index("ix_expenses_user_category_type", "user_id", "category", "type"),
        Index("ix_expenses_user_date", "user_id", "date"),
    )


# ---------------------------
# Reference: categories
# ---------------------------


class FnCategory(Base):
    __tablename__ = "categories"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False)
    # Uniqueness of (user_id, type, name) is not enforced; duplicates are
    # tolerated exactly as the hosted schema tolerates them.
    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    type: Mapped[str] = mapped_column(String, nullable=False)
    budget: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    color: Mapped[str | None] = mapped_column(String, nullable=True)
    icon: Mapped[str | None] = mapped_column(String, nullable=True)
    is_default: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("false")
    )
    # Derived values cached on the row; spending itself is never stored.
    usage_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    last_used: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("now()")
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("now()")
    )

    __table_args__ = (
        CheckConstraint(_KIND_CHECK, name="ck_categories_type"),
        CheckConstraint("budget IS NULL OR budget >= 0", name="ck_categories_budget"),
        Index("ix_categories_user_type_name", "user_id", "type", "name"),
    )


# ---------------------------
# Convenience: transaction_templates
# ---------------------------


class FnTemplate(Base):
    __tablename__ = "transaction_templates"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    type: Mapped[str] = mapped_column(String, nullable=False)
    category: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, server_default=text("0")
    )
    notes: Mapped[str] = mapped_column(Text, nullable=False, server_default=text("''"))
    is_default: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("false")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("now()")
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("now()")
    )

    __table_args__ = (
        CheckConstraint(_KIND_CHECK, name="ck_transaction_templates_type"),
        CheckConstraint("amount >= 0", name="ck_transaction_templates_amount"),
    )


# Remote Store table name -> ORM model
TABLES: dict[str, type[Base]] = {
    FnExpense.__tablename__: FnExpense,
    FnCategory.__tablename__: FnCategory,
    FnTemplate.__tablename__: FnTemplate,
}


__all__ = [
    "Base",
    "FnExpense",
    "FnCategory",
    "FnTemplate",
    "TABLES",
]
