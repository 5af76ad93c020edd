"""Remote Store protocol shared by the adapters and the services.

Adapters never raise for remote-side failures; every call returns a
``Response`` whose ``error``/``status``/``code`` describe what went wrong.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, Protocol

from .models import AuthSession

type Row = dict[str, Any]
type FilterOp = Literal["eq", "in", "gte", "lte"]


@dataclass(frozen=True, slots=True)
class Response:
    data: Any = None
    error: str | None = None
    status: int = 200
    code: str | None = None
    # Server-provided wait hint in seconds (``Retry-After``)
    retry_after: float | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def is_rate_limited(self) -> bool:
        if self.status == 429:
            return True
        return bool(self.error) and "too many requests" in self.error.lower()

    @property
    def rows(self) -> list[Row]:
        if self.data is None:
            return []
        if isinstance(self.data, list):
            return self.data
        return [self.data]


@dataclass(frozen=True, slots=True)
class Filter:
    column: str
    op: FilterOp
    value: Any


@dataclass(frozen=True, slots=True)
class Order:
    column: str
    ascending: bool = True


def eq(column: str, value: Any) -> Filter:
    return Filter(column, "eq", value)


def in_(column: str, values: Any) -> Filter:
    return Filter(column, "in", tuple(values))


def gte(column: str, value: Any) -> Filter:
    return Filter(column, "gte", value)


def lte(column: str, value: Any) -> Filter:
    return Filter(column, "lte", value)


class RemoteStore(Protocol):
    """Table-like CRUD plus session-based auth."""

    def select(self, table: str, *filters: Filter, order: Order | None = None) -> Response: ...

    def insert(self, table: str, row: Row | list[Row]) -> Response: ...

    def update(self, table: str, filters: list[Filter], patch: Row) -> Response: ...

    def delete(self, table: str, filters: list[Filter]) -> Response: ...

    def get_session(self) -> AuthSession | None: ...

    def refresh_session(self) -> AuthSession | None: ...


__all__ = [
    "Row",
    "Response",
    "Filter",
    "Order",
    "eq",
    "in_",
    "gte",
    "lte",
    "RemoteStore",
]
