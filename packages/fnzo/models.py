"""Data models for ``fnzo``.

Rows travel to and from the Remote Store as plain dicts. The kind column is
named ``type`` on the wire and exposed as ``kind`` here; every other field
keeps its column name. Unknown row keys (``user_id``) are ignored on read.
"""

from __future__ import annotations

from datetime import UTC, date, datetime
from decimal import Decimal
from enum import StrEnum
from typing import Any, Self

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Kind(StrEnum):
    EXPENSE = "expense"
    INCOME = "income"
    SAVINGS = "savings"

    @classmethod
    def parse(cls, value: Any) -> Kind:
        """Case-insensitive lookup; raises ``ValueError`` for anything else."""

        if isinstance(value, Kind):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        raise ValueError(f"kind must be one of expense, income, savings (got {value!r})")


def to_utc(value: Any) -> datetime:
    """Coerce a datetime/date/ISO string to an aware UTC ``datetime``.

    Naive inputs are read as UTC.
    """

    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        dt = datetime.fromisoformat(value.strip())
    else:
        raise ValueError(f"unsupported timestamp value: {value!r}")
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


class _Row(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    @field_validator("kind", mode="before", check_fields=False)
    @classmethod
    def _kind(cls, v: Any) -> Kind:
        return Kind.parse(v)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Self:
        return cls.model_validate(row)


class Transaction(_Row):
    """A single ledger entry ("expense" generically). ``id`` is server-assigned."""

    id: str | None = None
    date: datetime
    kind: Kind = Field(alias="type")
    category: str
    amount: Decimal = Field(gt=0)
    notes: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("date", "created_at", "updated_at", mode="before")
    @classmethod
    def _ts(cls, v: Any) -> Any:
        return None if v is None else to_utc(v)

    @field_validator("notes", mode="before")
    @classmethod
    def _notes(cls, v: Any) -> str:
        return "" if v is None else str(v)

    def to_row(self) -> dict[str, Any]:
        """Wire payload for insert/update (no id or server timestamps)."""

        return {
            "date": self.date.isoformat(),
            "type": self.kind.value,
            "category": self.category,
            "amount": str(self.amount),
            "notes": self.notes,
        }


class Category(_Row):
    id: str
    name: str
    description: str | None = None
    kind: Kind = Field(alias="type")
    budget: Decimal | None = Field(default=None, ge=0)
    color: str | None = None
    icon: str | None = None
    is_default: bool = False
    usage_count: int = 0
    last_used: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("last_used", "created_at", "updated_at", mode="before")
    @classmethod
    def _ts(cls, v: Any) -> Any:
        return None if v is None else to_utc(v)

    @field_validator("usage_count", mode="before")
    @classmethod
    def _usage(cls, v: Any) -> Any:
        return 0 if v is None else v


class CategoryWithSpending(Category):
    """A category plus its computed spending (never stored)."""

    spending: Decimal = Decimal("0")


class CategoryCreate(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    kind: Kind = Field(alias="type")
    description: str | None = None
    budget: Decimal | None = Field(default=None, ge=0)
    color: str | None = None
    icon: str | None = None
    is_default: bool = False

    @field_validator("kind", mode="before")
    @classmethod
    def _kind(cls, v: Any) -> Kind:
        return Kind.parse(v)


class CategoryUpdate(BaseModel):
    """Partial category update; only explicitly set fields are sent."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str | None = None
    kind: Kind | None = Field(default=None, alias="type")
    description: str | None = None
    budget: Decimal | None = Field(default=None, ge=0)
    color: str | None = None
    icon: str | None = None

    @field_validator("kind", mode="before")
    @classmethod
    def _kind(cls, v: Any) -> Kind | None:
        return None if v is None else Kind.parse(v)

    def to_patch(self) -> dict[str, Any]:
        patch: dict[str, Any] = {}
        for field in self.model_fields_set:
            value = getattr(self, field)
            if field == "kind":
                patch["type"] = value.value if value is not None else None
            elif isinstance(value, Decimal):
                patch[field] = str(value)
            else:
                patch[field] = value
        return patch


class Template(_Row):
    id: str
    name: str
    kind: Kind = Field(alias="type")
    category: str
    amount: Decimal = Field(default=Decimal("0"), ge=0)
    notes: str = ""
    is_default: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _ts(cls, v: Any) -> Any:
        return None if v is None else to_utc(v)

    @field_validator("notes", mode="before")
    @classmethod
    def _notes(cls, v: Any) -> str:
        return "" if v is None else str(v)


class TemplateCreate(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(min_length=1)
    kind: Kind = Field(alias="type")
    category: str = Field(min_length=1)
    amount: Decimal = Field(default=Decimal("0"), ge=0)
    notes: str = ""
    is_default: bool = False

    @field_validator("kind", mode="before")
    @classmethod
    def _kind(cls, v: Any) -> Kind:
        return Kind.parse(v)

    def to_row(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.kind.value,
            "category": self.category,
            "amount": str(self.amount),
            "notes": self.notes,
            "is_default": self.is_default,
        }


class TemplateUpdate(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str | None = None
    kind: Kind | None = Field(default=None, alias="type")
    category: str | None = None
    amount: Decimal | None = Field(default=None, ge=0)
    notes: str | None = None
    is_default: bool | None = None

    @field_validator("kind", mode="before")
    @classmethod
    def _kind(cls, v: Any) -> Kind | None:
        return None if v is None else Kind.parse(v)

    def to_patch(self) -> dict[str, Any]:
        patch: dict[str, Any] = {}
        for field in self.model_fields_set:
            value = getattr(self, field)
            if field == "kind":
                patch["type"] = value.value if value is not None else None
            elif isinstance(value, Decimal):
                patch[field] = str(value)
            else:
                patch[field] = value
        return patch


class AuthSession(BaseModel):
    """An authenticated Remote Store session.

    ``expires_at`` is seconds since the epoch; ``None`` never expires.
    """

    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: str | None = None
    expires_at: float | None = None
    user_id: str

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and self.expires_at <= now


__all__ = [
    "Kind",
    "to_utc",
    "Transaction",
    "Category",
    "CategoryWithSpending",
    "CategoryCreate",
    "CategoryUpdate",
    "Template",
    "TemplateCreate",
    "TemplateUpdate",
    "AuthSession",
]
