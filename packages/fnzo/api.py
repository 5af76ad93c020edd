"""Service wiring for ``fnzo``.

``build_services`` constructs one cooperating set of services (session
guard, executor, caches, event bus, and the transaction, category and
template services) over a single Remote Store. Every clock and the sleep
function are injectable so tests can drive TTLs and backoff deterministically.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime

from .cache import EntityCaches
from .categories import CategoryService
from .config import Settings
from .events import EventBus
from .logging_setup import get_logger
from .remote import RemoteStore
from .rest_store import RestStore
from .retry import ResilientExecutor, RetryPolicy
from .session_guard import SessionGuard
from .sql_store import SqlStore
from .templates import TemplateService
from .transactions import TransactionService

_logger = get_logger("fnzo.api")


def create_store(settings: Settings) -> RemoteStore:
    """Direct SQL store when ``DATABASE_URL`` + ``FNZO_USER_ID`` are set, else Supabase.

    Raises ``ConfigurationError`` when the Supabase URL or key is missing.
    """

    database_url, user_id = settings.database_url, settings.user_id
    if database_url and user_id:
        _logger.debug("api:store kind=sql")
        return SqlStore(database_url, user_id)
    url, key = settings.require_supabase()
    _logger.debug("api:store kind=rest url=%s", url)
    return RestStore(
        url,
        key,
        session_file=settings.session_file,
        auth_timeout=settings.auth_timeout_sec,
    )


@dataclass(slots=True)
class Services:
    settings: Settings
    store: RemoteStore
    guard: SessionGuard
    executor: ResilientExecutor
    caches: EntityCaches
    bus: EventBus
    transactions: TransactionService
    categories: CategoryService
    templates: TemplateService


def build_services(
    settings: Settings | None = None,
    *,
    store: RemoteStore | None = None,
    sleep: Callable[[float], None] = time.sleep,
    monotonic: Callable[[], float] = time.monotonic,
    wall_clock: Callable[[], float] = time.time,
    now: Callable[[], datetime] = lambda: datetime.now(UTC),
) -> Services:
    s = settings or Settings.from_env()
    remote = store if store is not None else create_store(s)
    guard = SessionGuard(remote, ttl=s.session_ttl_sec, clock=wall_clock)
    executor = ResilientExecutor(
        RetryPolicy(
            max_attempts=s.max_attempts,
            base_delay=s.backoff_base_sec,
            jitter=s.backoff_jitter,
        ),
        sleep=sleep,
    )
    caches = EntityCaches.create(
        transactions_ttl=s.transactions_ttl_sec,
        categories_ttl=s.categories_ttl_sec,
        templates_ttl=s.templates_ttl_sec,
        recent_categories_ttl=s.recent_categories_ttl_sec,
        clock=monotonic,
    )
    bus = EventBus()
    transactions = TransactionService(remote, guard, executor, caches, now=now)
    categories = CategoryService(remote, guard, executor, caches, bus, transactions, now=now)
    templates = TemplateService(remote, guard, executor, caches, bus, now=now)
    return Services(
        settings=s,
        store=remote,
        guard=guard,
        executor=executor,
        caches=caches,
        bus=bus,
        transactions=transactions,
        categories=categories,
        templates=templates,
    )


__all__ = ["Services", "build_services", "create_store"]
