"""Change Notification Bus: synchronous in-process publish/subscribe.

Publishing invokes every handler subscribed at publish time exactly once, in
subscription order. A failing handler is logged and does not stop delivery
to the rest. Events only tell views to re-fetch; they carry no authority
over data correctness.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from .logging_setup import get_logger
from .models import Category, Template

_logger = get_logger("fnzo.events")


class EventName(StrEnum):
    CATEGORY_UPDATED = "category-updated"
    CATEGORY_SYNC = "category-sync"
    TEMPLATE_CREATED = "template-created"
    TEMPLATE_UPDATED = "template-updated"
    TEMPLATE_DELETED = "template-deleted"


@dataclass(frozen=True, slots=True)
class CategoryUpdated:
    """``old_name`` is set on renames so views can say "renamed X to Y"."""

    category: Category
    old_name: str | None = None
    deleted: bool = False

    @property
    def renamed(self) -> bool:
        return self.old_name is not None and self.old_name != self.category.name


@dataclass(frozen=True, slots=True)
class CategorySync:
    reason: str


@dataclass(frozen=True, slots=True)
class TemplateChanged:
    template: Template


type Handler = Callable[[Any], None]


class EventBus:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handlers: dict[EventName, list[Handler]] = {}

    def subscribe(self, event: EventName, handler: Handler) -> Callable[[], None]:
        """Register ``handler``; returns a callable that unsubscribes it."""

        with self._lock:
            self._handlers.setdefault(event, []).append(handler)

        def _unsubscribe() -> None:
            with self._lock:
                handlers = self._handlers.get(event, [])
                if handler in handlers:
                    handlers.remove(handler)

        return _unsubscribe

    def publish(self, event: EventName, payload: Any = None) -> int:
        """Deliver ``payload`` to current subscribers; returns how many were called."""

        with self._lock:
            handlers = list(self._handlers.get(event, ()))
        for handler in handlers:
            try:
                handler(payload)
            except Exception:  # noqa: BLE001
                _logger.exception("events:handler_failed event=%s", event.value)
        return len(handlers)

    def subscriber_count(self, event: EventName) -> int:
        with self._lock:
            return len(self._handlers.get(event, ()))


__all__ = [
    "EventName",
    "EventBus",
    "CategoryUpdated",
    "CategorySync",
    "TemplateChanged",
]
