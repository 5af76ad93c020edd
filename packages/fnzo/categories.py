"""Category domain helpers and the Category Consistency Engine.

Categories and transactions are associated by ``(name, kind)`` match, not by
foreign key. Every operation here that changes a category name, or removes
a category that transactions still reference, rewrites the ``expenses``
table so no transaction is left pointing at a name that no longer exists.

The Remote Store has no multi-statement transactions, so multi-step
operations are ordered and compensated explicitly:

- rename: update the category row, then rewrite transactions; if the
  rewrite fails the old name is restored before the error surfaces.
- delete with replacement / merge: reassign transactions first, then remove
  the category row. A failed final delete leaves an empty category behind,
  which is still consistent.

Exports
-------
- ``CategoryService``: the engine (create, update/rename, delete, merge,
  spending and recently-used queries).
- ``normalize_name(...)`` and ``validate_name(...)``: helpers shared with the
  terminal UI for early feedback.
"""

from __future__ import annotations

import re
import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Any

from .cache import EntityCaches
from .errors import (
    FnzoError,
    NotFoundError,
    PartialConsistencyError,
    RemoteError,
    ValidationError,
)
from .events import CategorySync, CategoryUpdated, EventBus, EventName
from .logging_setup import get_logger
from .models import (
    Category,
    CategoryCreate,
    CategoryUpdate,
    CategoryWithSpending,
    Kind,
    Transaction,
)
from .remote import Filter, Order, RemoteStore, Response, eq, gte, in_, lte
from .retry import ResilientExecutor
from .session_guard import SessionGuard
from .transactions import EXPENSES_TABLE, TransactionService

_logger = get_logger("fnzo.categories")

CATEGORIES_TABLE = "categories"

PALETTE: tuple[str, ...] = (
    "#10b981",  # green
    "#ef4444",  # red
    "#3b82f6",  # blue
    "#8b5cf6",  # purple
    "#f59e0b",  # amber
    "#ec4899",  # pink
    "#06b6d4",  # cyan
    "#84cc16",  # lime
    "#f97316",  # orange
    "#6366f1",  # indigo
)

# ---------------------------
# Name normalization/validation
# ---------------------------

_CONTROL_RE = re.compile(r"[\x00-\x1f\x7f]")


def normalize_name(name: str) -> str:
    """Return a trimmed, single-spaced representation of ``name``.

    Does not change case; names match transactions exactly.
    """

    return " ".join(name.strip().split())


@dataclass(frozen=True, slots=True)
class NameValidation:
    ok: bool
    reason: str | None = None


def validate_name(name: str, *, min_len: int = 1, max_len: int = 64) -> NameValidation:
    """Lightweight validation for category names.

    Rules
    -----
    - Trim whitespace; enforce length bounds 1..64.
    - No control characters (names end up in CSV cells and terminal tables).
    """

    n = normalize_name(name)
    if len(n) < min_len:
        return NameValidation(False, "Name cannot be empty")
    if len(n) > max_len:
        return NameValidation(False, f"Name must be at most {max_len} characters")
    if _CONTROL_RE.search(n):
        return NameValidation(False, "Name cannot contain control characters")
    return NameValidation(True, None)


def _checked_name(name: str) -> str:
    v = validate_name(name)
    if not v.ok:
        raise ValidationError(v.reason or "Invalid category name")
    return normalize_name(name)


def _decimal(value: Any) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def _month_window(now: datetime) -> tuple[datetime, datetime]:
    start = datetime(now.year, now.month, 1, tzinfo=UTC)
    if now.month == 12:
        nxt = datetime(now.year + 1, 1, 1, tzinfo=UTC)
    else:
        nxt = datetime(now.year, now.month + 1, 1, tzinfo=UTC)
    return start, nxt - timedelta(microseconds=1)


def _recency_key(c: CategoryWithSpending) -> tuple[bool, float, int]:
    ts = c.last_used.timestamp() if c.last_used is not None else 0.0
    return (c.last_used is None, -ts, -c.usage_count)


class CategoryService:
    def __init__(
        self,
        store: RemoteStore,
        guard: SessionGuard,
        executor: ResilientExecutor,
        caches: EntityCaches,
        bus: EventBus,
        transactions: TransactionService,
        *,
        now: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._store = store
        self._guard = guard
        self._executor = executor
        self._caches = caches
        self._bus = bus
        self._transactions = transactions
        self._now = now
        # category id -> (usage_count, last_used) last pushed in the background
        self._pushed_usage: dict[str, tuple[int, datetime | None]] = {}

    # ---- plumbing ----------------------------------------------------------

    def _run(self, call: Callable[[], Response], op: str) -> Response:
        return self._executor.run(call, op=op)

    def _select_categories(self, user_id: str, *filters: Filter) -> list[Category]:
        resp = self._run(
            lambda: self._store.select(
                CATEGORIES_TABLE,
                eq("user_id", user_id),
                *filters,
                order=Order("name"),
            ),
            f"select:{CATEGORIES_TABLE}",
        )
        return [Category.from_row(r) for r in resp.rows]

    def _fetch_one(self, category_id: str, user_id: str) -> Category:
        found = self._select_categories(user_id, eq("id", category_id))
        if not found:
            raise NotFoundError(
                f"Category {category_id} not found",
                status=404,
                operation=f"select:{CATEGORIES_TABLE}",
            )
        return found[0]

    def _fetch_pair(self, first_id: str, second_id: str, user_id: str) -> tuple[Category, Category]:
        found = {c.id: c for c in self._select_categories(user_id, in_("id", [first_id, second_id]))}
        missing = [i for i in (first_id, second_id) if i not in found]
        if missing:
            raise NotFoundError(
                f"Category not found: {', '.join(missing)}",
                status=404,
                operation=f"select:{CATEGORIES_TABLE}",
            )
        return found[first_id], found[second_id]

    def _invalidate(self) -> None:
        self._caches.categories.invalidate()
        self._caches.recent_categories.invalidate()
        self._caches.transactions.invalidate()

    def _notify(self, updates: Iterable[CategoryUpdated], reason: str) -> None:
        for payload in updates:
            self._bus.publish(EventName.CATEGORY_UPDATED, payload)
        self._bus.publish(EventName.CATEGORY_SYNC, CategorySync(reason))

    def _warn_on_duplicate(self, user_id: str, name: str, kind: Kind, own_id: str | None) -> None:
        clashes = [
            c
            for c in self._select_categories(user_id, eq("name", name), eq("type", kind.value))
            if c.id != own_id
        ]
        if clashes:
            _logger.warning(
                "categories:duplicate_name name=%s kind=%s existing_ids=%s",
                name,
                kind.value,
                ",".join(c.id for c in clashes),
            )

    def _rewrite_category_name(self, old: str, new: str, kind: Kind, user_id: str) -> int:
        """Point every ``(old, kind)`` transaction at ``new``; returns the count."""

        resp = self._run(
            lambda: self._store.update(
                EXPENSES_TABLE,
                [eq("user_id", user_id), eq("category", old), eq("type", kind.value)],
                {"category": new, "updated_at": self._now().isoformat()},
            ),
            f"update:{EXPENSES_TABLE}",
        )
        count = len(resp.rows)
        _logger.info(
            "categories:transactions_rewritten from=%s to=%s kind=%s count=%d",
            old,
            new,
            kind.value,
            count,
        )
        return count

    # ---- reads -------------------------------------------------------------

    def get_categories(self) -> list[Category]:
        """The caller's categories, seeding the table from the roster when empty."""

        cache = self._caches.categories
        cached = cache.get()
        if cached is not None:
            return list(cached)

        generation = cache.begin_fetch()
        user_id = self._guard.require_session().user_id
        try:
            categories = self._select_categories(user_id)
        except RemoteError as e:
            if e.code == "42P01":
                _logger.info("categories:table_missing; migrating from roster")
                categories = []
            else:
                stale = cache.peek()
                if stale is not None:
                    _logger.warning("categories:stale_fallback error=%s", e)
                    return list(stale)
                raise

        if not categories:
            rows = self._seed_rows(user_id)
            try:
                categories = self._migrate(rows)
            except RemoteError as e:
                # The bulk insert is all-or-nothing, so the table is still empty
                _logger.warning("categories:migrate_failed count=%d error=%s", len(rows), e)
                return [Category.from_row(r) for r in rows]
        cache.put(categories, generation)
        return list(categories)

    def _seed_rows(self, user_id: str) -> list[dict[str, Any]]:
        """Category rows for the roster (defaults plus names in use), palette-colored."""

        try:
            self._transactions.get_transactions()
        except RemoteError as e:
            _logger.warning("categories:migrate_without_transactions error=%s", e)
        names = self._transactions.all_category_names()
        return [
            {
                "id": str(uuid.uuid4()),
                "user_id": user_id,
                "name": name,
                "description": f"Default {kind.value} category",
                "type": kind.value,
                "color": PALETTE[index % len(PALETTE)],
                "is_default": True,
                "usage_count": 0,
                "last_used": None,
            }
            for kind in Kind
            for index, name in enumerate(names[kind])
        ]

    def _migrate(self, rows: list[dict[str, Any]]) -> list[Category]:
        """Seed the categories table with ``rows`` in a single bulk insert."""

        resp = self._run(
            lambda: self._store.insert(CATEGORIES_TABLE, rows),
            f"insert:{CATEGORIES_TABLE}",
        )
        seeded = [Category.from_row(r) for r in (resp.rows or rows)]
        _logger.info("categories:migrated count=%d", len(seeded))
        return seeded

    def get_category_spending(self, name: str, kind: Kind) -> Decimal:
        """Sum of amounts of the transactions currently named ``(name, kind)``."""

        user_id = self._guard.require_session().user_id
        resp = self._run(
            lambda: self._store.select(
                EXPENSES_TABLE,
                eq("user_id", user_id),
                eq("category", name),
                eq("type", Kind.parse(kind).value),
            ),
            f"select:{EXPENSES_TABLE}",
        )
        return sum((_decimal(r["amount"]) for r in resp.rows), Decimal("0"))

    def get_all_categories_with_spending(self) -> list[CategoryWithSpending]:
        """Every category with spending, usage and last-used derived from transactions."""

        categories = self.get_categories()
        transactions = self._transactions.get_transactions()

        by_key: dict[tuple[str, Kind], list[Transaction]] = {}
        for tx in transactions:
            by_key.setdefault((tx.category, tx.kind), []).append(tx)

        result: list[CategoryWithSpending] = []
        for cat in categories:
            matching = by_key.get((cat.name, cat.kind), [])
            spending = sum((t.amount for t in matching), Decimal("0"))
            usage = len(matching)
            last_used = max(t.date for t in matching) if matching else cat.last_used

            if usage > 0 and (usage != cat.usage_count or last_used != cat.last_used):
                if self._pushed_usage.get(cat.id) != (usage, last_used):
                    self._pushed_usage[cat.id] = (usage, last_used)
                    self.update_category_usage(cat.id, usage, last_used)

            result.append(
                CategoryWithSpending.model_validate(
                    {
                        **cat.model_dump(),
                        "spending": spending,
                        "usage_count": usage,
                        "last_used": last_used,
                    }
                )
            )
        return result

    def get_recently_used_categories(self, limit: int = 5) -> list[CategoryWithSpending]:
        """Categories ranked by last use (then usage), preferring this month's.

        Remote failures degrade to the last ranking or an empty list.
        """

        cache = self._caches.recent_categories
        cached = cache.get()
        if cached is not None:
            return list(cached)[:limit]

        generation = cache.begin_fetch()
        try:
            everything = self.get_all_categories_with_spending()
        except RemoteError as e:
            _logger.warning("categories:recent_failed error=%s", e)
            return list(cache.peek() or [])[:limit]

        user_id = self._guard.require_session().user_id
        start, end = _month_window(self._now())
        in_month: set[tuple[str, Kind]] | None
        try:
            resp = self._run(
                lambda: self._store.select(
                    EXPENSES_TABLE,
                    eq("user_id", user_id),
                    gte("date", start.isoformat()),
                    lte("date", end.isoformat()),
                    order=Order("date", ascending=False),
                ),
                f"select:{EXPENSES_TABLE}",
            )
            in_month = {(r["category"], Kind.parse(r["type"])) for r in resp.rows}
        except RemoteError as e:
            _logger.warning("categories:recent_window_failed error=%s", e)
            in_month = None

        candidates = [
            c
            for c in everything
            if c.usage_count > 0 or (in_month is not None and (c.name, c.kind) in in_month)
        ]
        ranked = sorted(candidates, key=_recency_key)
        cache.put(ranked, generation)
        return ranked[:limit]

    # ---- writes ------------------------------------------------------------

    def add_category(self, create: CategoryCreate) -> Category:
        name = _checked_name(create.name)
        user_id = self._guard.require_session().user_id
        self._warn_on_duplicate(user_id, name, create.kind, None)
        row = {
            "id": str(uuid.uuid4()),
            "user_id": user_id,
            "name": name,
            "description": create.description,
            "type": create.kind.value,
            "budget": str(create.budget) if create.budget is not None else None,
            "color": create.color,
            "icon": create.icon,
            "is_default": create.is_default,
            "usage_count": 0,
            "last_used": None,
        }
        resp = self._run(
            lambda: self._store.insert(CATEGORIES_TABLE, row), f"insert:{CATEGORIES_TABLE}"
        )
        category = Category.from_row(resp.rows[0] if resp.rows else row)
        self._transactions.roster.add(category.kind, [category.name])
        self._invalidate()
        _logger.info(
            "categories:added id=%s name=%s kind=%s", category.id, category.name, category.kind.value
        )
        self._notify([CategoryUpdated(category)], "add")
        return category

    def update_category(self, category_id: str, update: CategoryUpdate) -> Category:
        """Apply ``update``; a name change is propagated to every matching transaction."""

        patch = update.to_patch()
        if "name" in patch:
            if patch["name"] is None:
                raise ValidationError("Name cannot be empty")
            patch["name"] = _checked_name(patch["name"])

        user_id = self._guard.require_session().user_id
        current = self._fetch_one(category_id, user_id)

        new_kind = patch.pop("type", None)
        if new_kind is not None and new_kind != current.kind.value:
            raise ValidationError("A category cannot change kind after creation")

        renamed = "name" in patch and patch["name"] != current.name
        if renamed:
            self._warn_on_duplicate(user_id, patch["name"], current.kind, current.id)

        patch["updated_at"] = self._now().isoformat()
        resp = self._run(
            lambda: self._store.update(
                CATEGORIES_TABLE, [eq("id", category_id), eq("user_id", user_id)], patch
            ),
            f"update:{CATEGORIES_TABLE}",
        )
        if not resp.rows:
            raise NotFoundError(
                f"Category {category_id} not found",
                status=404,
                operation=f"update:{CATEGORIES_TABLE}",
            )
        updated = Category.from_row(resp.rows[0])

        if renamed:
            try:
                self._rewrite_category_name(current.name, updated.name, current.kind, user_id)
            except RemoteError as e:
                self._compensate_rename(current, user_id, e)
                raise
            self._transactions.roster.add(updated.kind, [updated.name])

        self._invalidate()
        _logger.info("categories:updated id=%s renamed=%s", updated.id, renamed)
        self._notify(
            [CategoryUpdated(updated, old_name=current.name if renamed else None)],
            "rename" if renamed else "update",
        )
        return updated

    def _compensate_rename(self, original: Category, user_id: str, cause: RemoteError) -> None:
        """Restore ``original.name`` after a failed transaction rewrite."""

        self._invalidate()
        try:
            self._run(
                lambda: self._store.update(
                    CATEGORIES_TABLE,
                    [eq("id", original.id), eq("user_id", user_id)],
                    {"name": original.name, "updated_at": self._now().isoformat()},
                ),
                f"update:{CATEGORIES_TABLE}",
            )
        except RemoteError as comp_error:
            _logger.error(
                "categories:rename_partial id=%s old=%s error=%s compensation_error=%s",
                original.id,
                original.name,
                cause,
                comp_error,
            )
            raise PartialConsistencyError(
                "rename",
                completed=["update_category"],
                failed="rewrite_transactions",
                compensated=False,
                cause=cause,
            ) from comp_error
        _logger.error(
            "categories:rename_rolled_back id=%s restored=%s error=%s",
            original.id,
            original.name,
            cause,
        )

    def update_category_limit(self, category_id: str, budget: Decimal | int | str | None) -> Category:
        """Set (or clear with ``None``) the monthly budget of a category."""

        value = None if budget is None else _decimal(budget)
        if value is not None and value < 0:
            raise ValidationError("Budget must be zero or positive")
        user_id = self._guard.require_session().user_id
        self._fetch_one(category_id, user_id)
        resp = self._run(
            lambda: self._store.update(
                CATEGORIES_TABLE,
                [eq("id", category_id), eq("user_id", user_id)],
                {
                    "budget": None if value is None else str(value),
                    "updated_at": self._now().isoformat(),
                },
            ),
            f"update:{CATEGORIES_TABLE}",
        )
        if not resp.rows:
            raise NotFoundError(
                f"Category {category_id} not found",
                status=404,
                operation=f"update:{CATEGORIES_TABLE}",
            )
        updated = Category.from_row(resp.rows[0])
        self._invalidate()
        _logger.info("categories:limit_set id=%s budget=%s", updated.id, updated.budget)
        self._notify([CategoryUpdated(updated)], "limit")
        return updated

    def update_category_usage(
        self, category_id: str, usage_count: int, last_used: datetime | None = None
    ) -> None:
        """Background write-back of derived usage; never raises, never invalidates."""

        patch: dict[str, Any] = {"usage_count": usage_count}
        if last_used is not None:
            patch["last_used"] = last_used.isoformat()
        try:
            user_id = self._guard.require_session().user_id
            self._run(
                lambda: self._store.update(
                    CATEGORIES_TABLE, [eq("id", category_id), eq("user_id", user_id)], patch
                ),
                f"update:{CATEGORIES_TABLE}",
            )
        except FnzoError as e:
            _logger.warning("categories:usage_sync_failed id=%s error=%s", category_id, e)

    def _reassign(self, source: Category, target: Category, user_id: str) -> int:
        if source.id == target.id:
            raise ValidationError("Cannot reassign a category to itself")
        if source.kind is not target.kind:
            raise ValidationError("Cannot reassign transactions between different kinds")
        if source.name == target.name:
            return 0
        return self._rewrite_category_name(source.name, target.name, source.kind, user_id)

    def reassign_transactions(self, from_id: str, to_id: str) -> int:
        """Move every transaction of category ``from_id`` to ``to_id``; returns the count."""

        user_id = self._guard.require_session().user_id
        if from_id == to_id:
            raise ValidationError("Cannot reassign a category to itself")
        source, target = self._fetch_pair(from_id, to_id, user_id)
        moved = self._reassign(source, target, user_id)
        self._caches.transactions.invalidate()
        self._caches.recent_categories.invalidate()
        return moved

    def delete_category(self, category_id: str, replacement_id: str | None = None) -> None:
        """Delete a category, first moving its transactions to ``replacement_id``.

        A category with spending cannot be deleted without a replacement of
        the same kind. Default categories cannot be deleted at all.
        """

        user_id = self._guard.require_session().user_id
        category = self._fetch_one(category_id, user_id)
        if category.is_default:
            raise ValidationError(f"Default category '{category.name}' cannot be deleted")

        replacement: Category | None = None
        if replacement_id is not None:
            if replacement_id == category_id:
                raise ValidationError("Replacement must be a different category")
            replacement = self._fetch_one(replacement_id, user_id)
            if replacement.kind is not category.kind:
                raise ValidationError("Replacement category must be of the same kind")
        else:
            spending = self.get_category_spending(category.name, category.kind)
            if spending > 0:
                raise ValidationError("replacement category required")

        moved = 0
        if replacement is not None:
            moved = self._reassign(category, replacement, user_id)

        try:
            self._run(
                lambda: self._store.delete(
                    CATEGORIES_TABLE, [eq("id", category_id), eq("user_id", user_id)]
                ),
                f"delete:{CATEGORIES_TABLE}",
            )
        except RemoteError as e:
            self._invalidate()
            _logger.error(
                "categories:delete_failed id=%s reassigned=%d error=%s", category_id, moved, e
            )
            raise

        self._invalidate()
        _logger.info(
            "categories:deleted id=%s name=%s reassigned=%d", category.id, category.name, moved
        )
        self._notify([CategoryUpdated(category, deleted=True)], "delete")

    def merge_categories(self, source_id: str, target_id: str) -> Category:
        """Fold ``source_id`` into ``target_id`` (same kind) and delete the source."""

        if source_id == target_id:
            raise ValidationError("Cannot merge a category into itself")
        user_id = self._guard.require_session().user_id
        source, target = self._fetch_pair(source_id, target_id, user_id)
        if source.kind is not target.kind:
            raise ValidationError("Cannot merge categories of different kinds")
        if source.is_default:
            raise ValidationError(f"Default category '{source.name}' cannot be merged away")

        moved = self._reassign(source, target, user_id)

        merged = target
        if moved > 0:
            stamps = [d for d in (source.last_used, target.last_used) if d is not None]
            last_used = max(stamps) if stamps else None
            patch: dict[str, Any] = {
                "usage_count": target.usage_count + source.usage_count,
                "last_used": last_used.isoformat() if last_used is not None else None,
            }
            try:
                resp = self._run(
                    lambda: self._store.update(
                        CATEGORIES_TABLE, [eq("id", target.id), eq("user_id", user_id)], patch
                    ),
                    f"update:{CATEGORIES_TABLE}",
                )
                if resp.rows:
                    merged = Category.from_row(resp.rows[0])
            except RemoteError as e:
                _logger.warning("categories:merge_usage_failed target=%s error=%s", target.id, e)

        try:
            self._run(
                lambda: self._store.delete(
                    CATEGORIES_TABLE, [eq("id", source.id), eq("user_id", user_id)]
                ),
                f"delete:{CATEGORIES_TABLE}",
            )
        except RemoteError as e:
            self._invalidate()
            _logger.error(
                "categories:merge_delete_failed source=%s reassigned=%d error=%s",
                source.id,
                moved,
                e,
            )
            raise

        self._invalidate()
        _logger.info(
            "categories:merged source=%s target=%s reassigned=%d", source.name, target.name, moved
        )
        self._notify(
            [CategoryUpdated(merged), CategoryUpdated(source, deleted=True)], "merge"
        )
        return merged


__all__ = [
    "CATEGORIES_TABLE",
    "PALETTE",
    "CategoryService",
    "NameValidation",
    "normalize_name",
    "validate_name",
]
