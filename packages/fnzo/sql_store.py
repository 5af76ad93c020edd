"""Remote Store adapter over SQLAlchemy (direct Postgres, or SQLite in tests).

Every call runs in its own ``session_scope`` so callers see the same
one-statement-at-a-time semantics as the hosted REST API. Rows are scoped to
one user id the way row-level security scopes them on the hosted database.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from db.client import session_scope
from db.models.finance import TABLES, Base
from sqlalchemy import Boolean, DateTime, Integer, Numeric, delete, inspect, select, update
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

from .logging_setup import get_logger
from .models import AuthSession, to_utc
from .remote import Filter, Order, Response, Row

_logger = get_logger("fnzo.sql_store")

_LOCAL_TOKEN = "local"


class _BadColumn(Exception):
    pass


def _coerce(column, value: Any) -> Any:
    if value is None:
        return None
    t = column.type
    if isinstance(t, DateTime):
        return to_utc(value)
    if isinstance(t, Numeric):
        return value if isinstance(value, Decimal) else Decimal(str(value))
    if isinstance(t, Boolean):
        return bool(value)
    if isinstance(t, Integer):
        return int(value)
    return value


def _to_wire(value: Any) -> Any:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return value


def _row_dict(obj: Base) -> Row:
    return {attr.key: _to_wire(getattr(obj, attr.key)) for attr in inspect(obj).mapper.column_attrs}


class SqlStore:
    """``RemoteStore`` implementation for one user over a SQLAlchemy database."""

    def __init__(self, database_url: str, user_id: str) -> None:
        self.database_url = database_url
        self.user_id = user_id
        self._session = AuthSession(access_token=_LOCAL_TOKEN, user_id=user_id)

    # ---- helpers -----------------------------------------------------------

    def _model(self, table: str) -> type[Base] | None:
        return TABLES.get(table)

    def _column(self, model: type[Base], name: str):
        col = model.__table__.columns.get(name)
        if col is None:
            raise _BadColumn(name)
        return col

    def _conditions(self, model: type[Base], filters: list[Filter] | tuple[Filter, ...]) -> list:
        conds = [model.__table__.c.user_id == self.user_id]
        for f in filters:
            col = self._column(model, f.column)
            if f.op == "eq":
                conds.append(col == _coerce(col, f.value))
            elif f.op == "in":
                conds.append(col.in_([_coerce(col, v) for v in f.value]))
            elif f.op == "gte":
                conds.append(col >= _coerce(col, f.value))
            elif f.op == "lte":
                conds.append(col <= _coerce(col, f.value))
            else:
                raise _BadColumn(f"{f.column} (operator {f.op})")
        return conds

    def _values(self, model: type[Base], row: Row) -> dict[str, Any]:
        return {k: _coerce(self._column(model, k), v) for k, v in row.items()}

    def _guarded(self, table: str, op: str, fn) -> Response:
        model = self._model(table)
        if model is None:
            return Response(
                error=f'relation "{table}" does not exist', status=404, code="42P01"
            )
        try:
            return fn(model)
        except _BadColumn as e:
            return Response(error=f'column "{e}" does not exist', status=400, code="42703")
        except IntegrityError as e:
            _logger.warning("sql_store:integrity_error op=%s:%s error=%s", op, table, e.orig)
            return Response(error=str(e.orig), status=409, code="23505")
        except (OperationalError, SQLAlchemyError) as e:
            text = str(e)
            if "no such table" in text or "UndefinedTable" in text:
                return Response(
                    error=f'relation "{table}" does not exist', status=404, code="42P01"
                )
            _logger.error("sql_store:error op=%s:%s error=%s", op, table, e)
            return Response(error=str(e), status=500)

    # ---- RemoteStore -------------------------------------------------------

    def select(self, table: str, *filters: Filter, order: Order | None = None) -> Response:
        def _run(model: type[Base]) -> Response:
            stmt = select(model).where(*self._conditions(model, filters))
            if order is not None:
                col = self._column(model, order.column)
                stmt = stmt.order_by(col.asc() if order.ascending else col.desc())
            with session_scope(database_url=self.database_url) as s:
                return Response(data=[_row_dict(o) for o in s.scalars(stmt)])

        return self._guarded(table, "select", _run)

    def _new_object(self, model: type[Base], row: Row, now: datetime) -> Base:
        values = self._values(model, {**row, "user_id": self.user_id})
        if values.get("id") is None:
            values["id"] = str(uuid.uuid4())
        values.setdefault("created_at", now)
        values.setdefault("updated_at", now)
        return model(**values)

    def insert(self, table: str, row: Row | list[Row]) -> Response:
        """Insert one row, or a list of rows all-or-nothing in one transaction."""

        rows = row if isinstance(row, list) else [row]

        def _run(model: type[Base]) -> Response:
            if any(r.get("user_id", self.user_id) != self.user_id for r in rows):
                return Response(
                    error="new row violates row-level security policy",
                    status=403,
                    code="42501",
                )
            now = datetime.now(UTC)
            objs = [self._new_object(model, r, now) for r in rows]
            with session_scope(database_url=self.database_url) as s:
                s.add_all(objs)
                s.flush()
                for obj in objs:
                    s.refresh(obj)
                return Response(data=[_row_dict(o) for o in objs], status=201)

        return self._guarded(table, "insert", _run)

    def update(self, table: str, filters: list[Filter], patch: Row) -> Response:
        def _run(model: type[Base]) -> Response:
            if "user_id" in patch and patch["user_id"] != self.user_id:
                return Response(
                    error="new row violates row-level security policy",
                    status=403,
                    code="42501",
                )
            values = self._values(model, patch)
            if "updated_at" not in values:
                values["updated_at"] = datetime.now(UTC)
            conds = self._conditions(model, filters)
            pk = model.__table__.c.id
            with session_scope(database_url=self.database_url) as s:
                ids = list(s.scalars(select(pk).where(*conds)))
                if not ids:
                    return Response(data=[])
                s.execute(update(model).where(pk.in_(ids)).values(**values))
                s.flush()
                s.expire_all()
                rows = [_row_dict(o) for o in s.scalars(select(model).where(pk.in_(ids)))]
                return Response(data=rows)

        return self._guarded(table, "update", _run)

    def delete(self, table: str, filters: list[Filter]) -> Response:
        def _run(model: type[Base]) -> Response:
            with session_scope(database_url=self.database_url) as s:
                s.execute(delete(model).where(*self._conditions(model, filters)))
            return Response(data=None, status=204)

        return self._guarded(table, "delete", _run)

    def get_session(self) -> AuthSession | None:
        return self._session

    def refresh_session(self) -> AuthSession | None:
        return self._session


__all__ = ["SqlStore"]
