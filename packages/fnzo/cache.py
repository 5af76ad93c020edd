"""In-memory TTL caches, one per entity type.

Each ``EntityCache`` holds one collection, the time it was stored and a
generation counter. Readers that go to the Remote Store take a generation
with ``begin_fetch()`` before the call and hand it back to ``put()``; any
invalidation in between bumps the generation so the slow result is dropped
instead of overwriting fresher state.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from .logging_setup import get_logger

_logger = get_logger("fnzo.cache")


class EntityCache[T]:
    def __init__(
        self,
        name: str,
        ttl: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._value: T | None = None
        self._stored_at: float | None = None
        self._generation = 0

    def get(self) -> T | None:
        """Return the cached value when it is younger than ``ttl``."""

        with self._lock:
            if self._value is None or self._stored_at is None:
                return None
            if self._clock() - self._stored_at >= self.ttl:
                return None
            _logger.debug("cache:hit name=%s", self.name)
            return self._value

    def peek(self) -> T | None:
        """Return the cached value regardless of age (stale fallback)."""

        with self._lock:
            return self._value

    def begin_fetch(self) -> int:
        with self._lock:
            return self._generation

    def put(self, value: T, generation: int | None = None) -> bool:
        """Store ``value``; returns False when the fetch was superseded."""

        with self._lock:
            if generation is not None and generation != self._generation:
                _logger.debug(
                    "cache:stale_put_dropped name=%s generation=%d current=%d",
                    self.name,
                    generation,
                    self._generation,
                )
                return False
            self._value = value
            self._stored_at = self._clock()
            return True

    def invalidate(self) -> None:
        with self._lock:
            self._value = None
            self._stored_at = None
            self._generation += 1

    @property
    def generation(self) -> int:
        return self._generation


@dataclass(slots=True)
class EntityCaches:
    """The four caches a service set shares (transactions, categories, templates, recent)."""

    transactions: EntityCache[Any]
    categories: EntityCache[Any]
    templates: EntityCache[Any]
    recent_categories: EntityCache[Any]

    @classmethod
    def create(
        cls,
        *,
        transactions_ttl: float = 60.0,
        categories_ttl: float = 30.0,
        templates_ttl: float = 300.0,
        recent_categories_ttl: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> EntityCaches:
        return cls(
            transactions=EntityCache("transactions", transactions_ttl, clock=clock),
            categories=EntityCache("categories", categories_ttl, clock=clock),
            templates=EntityCache("templates", templates_ttl, clock=clock),
            recent_categories=EntityCache(
                "recent_categories", recent_categories_ttl, clock=clock
            ),
        )

    def invalidate_all(self) -> None:
        for cache in (self.transactions, self.categories, self.templates, self.recent_categories):
            cache.invalidate()


__all__ = ["EntityCache", "EntityCaches"]
