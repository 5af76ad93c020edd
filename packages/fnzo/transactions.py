"""Transaction Service and the in-memory category-name roster.

The roster is how category names are known before the ``categories`` table
exists: it starts from the default names per kind and grows whenever a
transaction introduces a name not seen before for its kind. The Category
Consistency Engine seeds the table from it (migration in place).
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable, Mapping
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal

from .cache import EntityCaches
from .errors import NotFoundError, RemoteError, friendly_message
from .logging_setup import get_logger
from .models import Kind, Transaction
from .remote import Order, RemoteStore, eq
from .retry import ResilientExecutor
from .session_guard import SessionGuard

_logger = get_logger("fnzo.transactions")

EXPENSES_TABLE = "expenses"

DEFAULT_CATEGORIES: dict[Kind, tuple[str, ...]] = {
    Kind.EXPENSE: (
        "Food",
        "Transport",
        "Entertainment",
        "Housing",
        "Utilities",
        "Healthcare",
        "Education",
        "Shopping",
        "Other",
    ),
    Kind.INCOME: ("Salary", "Freelance", "Gifts", "Investments", "Other"),
    Kind.SAVINGS: ("Emergency Fund", "Retirement", "Investments", "Goals", "Other"),
}


class CategoryRoster:
    """Known category names per kind, in first-seen order."""

    def __init__(self, initial: Mapping[Kind, Iterable[str]] | None = None) -> None:
        self._lock = threading.Lock()
        source = DEFAULT_CATEGORIES if initial is None else initial
        self._names: dict[Kind, list[str]] = {k: [] for k in Kind}
        for kind, names in source.items():
            for name in names:
                if name not in self._names[kind]:
                    self._names[kind].append(name)

    def names_for(self, kind: Kind) -> list[str]:
        with self._lock:
            return list(self._names[kind])

    def all_names(self) -> dict[Kind, list[str]]:
        with self._lock:
            return {k: list(v) for k, v in self._names.items()}

    def contains(self, kind: Kind, name: str) -> bool:
        with self._lock:
            return name in self._names[kind]

    def add(self, kind: Kind, names: Iterable[str]) -> list[str]:
        """Append unseen ``names``; returns the ones that were new."""

        added: list[str] = []
        with self._lock:
            for name in names:
                name = name.strip()
                if name and name not in self._names[kind]:
                    self._names[kind].append(name)
                    added.append(name)
        return added


def format_currency(amount: Decimal | int | float | str) -> str:
    """Format ``amount`` for display as whole rupees with Indian digit grouping.

    >>> format_currency(Decimal("123456.7"))
    '₹1,23,457'
    """

    value = Decimal(str(amount)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    sign = "-" if value < 0 else ""
    digits = str(abs(int(value)))
    if len(digits) > 3:
        head, tail = digits[:-3], digits[-3:]
        groups: list[str] = []
        while len(head) > 2:
            groups.insert(0, head[-2:])
            head = head[:-2]
        if head:
            groups.insert(0, head)
        digits = ",".join([*groups, tail])
    return f"{sign}₹{digits}"


def _friendly(e: RemoteError) -> RemoteError:
    message = friendly_message(e.code, e.message)
    if message == e.message:
        return e
    return type(e)(message, status=e.status, code=e.code, operation=e.operation)


class TransactionService:
    def __init__(
        self,
        store: RemoteStore,
        guard: SessionGuard,
        executor: ResilientExecutor,
        caches: EntityCaches,
        *,
        roster: CategoryRoster | None = None,
        now: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._store = store
        self._guard = guard
        self._executor = executor
        self._caches = caches
        self.roster = roster or CategoryRoster()
        self._now = now

    # ---- reads -------------------------------------------------------------

    def get_transactions(self) -> list[Transaction]:
        """All of the caller's transactions, newest first.

        Served from the cache within its TTL. On a remote failure the last
        cached list is returned even if stale; without one the error surfaces.
        """

        cache = self._caches.transactions
        cached = cache.get()
        if cached is not None:
            return list(cached)

        generation = cache.begin_fetch()
        user_id = self._guard.require_session().user_id
        try:
            resp = self._executor.run(
                lambda: self._store.select(
                    EXPENSES_TABLE,
                    eq("user_id", user_id),
                    order=Order("date", ascending=False),
                ),
                op=f"select:{EXPENSES_TABLE}",
            )
        except RemoteError as e:
            stale = cache.peek()
            if stale is not None:
                _logger.warning("transactions:stale_fallback error=%s", e)
                return list(stale)
            raise

        items = [Transaction.from_row(r) for r in resp.rows]
        for kind in Kind:
            self.roster.add(kind, (t.category for t in items if t.kind is kind))
        cache.put(items, generation)
        return list(items)

    # ---- writes ------------------------------------------------------------

    def _after_mutation(self) -> None:
        self._caches.transactions.invalidate()
        self._caches.recent_categories.invalidate()

    def _note_category(self, tx: Transaction) -> None:
        added = self.roster.add(tx.kind, [tx.category])
        if added:
            _logger.info(
                "transactions:roster_added kind=%s category=%s", tx.kind.value, tx.category
            )

    def add_transaction(self, tx: Transaction) -> Transaction:
        user_id = self._guard.require_session().user_id
        row = {**tx.to_row(), "user_id": user_id}
        try:
            resp = self._executor.run(
                lambda: self._store.insert(EXPENSES_TABLE, row),
                op=f"insert:{EXPENSES_TABLE}",
            )
        except RemoteError as e:
            raise _friendly(e) from e
        self._after_mutation()
        self._note_category(tx)
        created = Transaction.from_row(resp.rows[0]) if resp.rows else tx
        _logger.info(
            "transactions:added id=%s kind=%s category=%s",
            created.id,
            created.kind.value,
            created.category,
        )
        return created

    def update_transaction(self, tx: Transaction) -> Transaction:
        """Full-record update of an existing transaction (``tx.id`` required)."""

        if not tx.id:
            raise NotFoundError("Transaction has no id", status=404, operation="update:expenses")
        user_id = self._guard.require_session().user_id
        patch = {**tx.to_row(), "updated_at": self._now().isoformat()}
        try:
            resp = self._executor.run(
                lambda: self._store.update(
                    EXPENSES_TABLE, [eq("id", tx.id), eq("user_id", user_id)], patch
                ),
                op=f"update:{EXPENSES_TABLE}",
            )
        except RemoteError as e:
            raise _friendly(e) from e
        if not resp.rows:
            raise NotFoundError(
                f"Transaction {tx.id} not found", status=404, operation="update:expenses"
            )
        self._after_mutation()
        self._note_category(tx)
        _logger.info("transactions:updated id=%s", tx.id)
        return Transaction.from_row(resp.rows[0])

    def delete_transaction(self, transaction_id: str) -> None:
        user_id = self._guard.require_session().user_id
        self._executor.run(
            lambda: self._store.delete(
                EXPENSES_TABLE, [eq("id", transaction_id), eq("user_id", user_id)]
            ),
            op=f"delete:{EXPENSES_TABLE}",
        )
        self._after_mutation()
        _logger.info("transactions:deleted id=%s", transaction_id)

    # ---- roster ------------------------------------------------------------

    def get_category_names(self, kind: Kind) -> list[str]:
        return self.roster.names_for(kind)

    def all_category_names(self) -> dict[Kind, list[str]]:
        return self.roster.all_names()

    def update_category_roster(self, mapping: Mapping[Kind, Iterable[str]]) -> dict[Kind, list[str]]:
        """Add names per kind; returns only the names that were new."""

        return {kind: self.roster.add(kind, names) for kind, names in mapping.items()}

    @staticmethod
    def format_currency(amount: Decimal | int | float | str) -> str:
        return format_currency(amount)


__all__ = [
    "EXPENSES_TABLE",
    "DEFAULT_CATEGORIES",
    "CategoryRoster",
    "TransactionService",
    "format_currency",
]
