"""Template Service: reusable transaction presets for quick entry.

Templates carry no derived fields and no cross-entity consistency rules;
this is cached CRUD plus change notifications.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import UTC, datetime
from decimal import Decimal

from .cache import EntityCaches
from .errors import NotFoundError, RemoteError, ValidationError
from .events import EventBus, EventName, TemplateChanged
from .logging_setup import get_logger
from .models import Template, TemplateCreate, TemplateUpdate, Transaction
from .remote import Order, RemoteStore, eq
from .retry import ResilientExecutor
from .session_guard import SessionGuard

_logger = get_logger("fnzo.templates")

TEMPLATES_TABLE = "transaction_templates"


class TemplateService:
    def __init__(
        self,
        store: RemoteStore,
        guard: SessionGuard,
        executor: ResilientExecutor,
        caches: EntityCaches,
        bus: EventBus,
        *,
        now: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._store = store
        self._guard = guard
        self._executor = executor
        self._caches = caches
        self._bus = bus
        self._now = now

    def get_templates(self) -> list[Template]:
        """Templates ordered by name; remote failures degrade to stale cache or ``[]``."""

        cache = self._caches.templates
        cached = cache.get()
        if cached is not None:
            return list(cached)

        generation = cache.begin_fetch()
        user_id = self._guard.require_session().user_id
        try:
            resp = self._executor.run(
                lambda: self._store.select(
                    TEMPLATES_TABLE, eq("user_id", user_id), order=Order("name")
                ),
                op=f"select:{TEMPLATES_TABLE}",
            )
        except RemoteError as e:
            stale = cache.peek()
            _logger.warning(
                "templates:fetch_failed stale=%s error=%s", stale is not None, e
            )
            return list(stale) if stale is not None else []

        templates = [Template.from_row(r) for r in resp.rows]
        cache.put(templates, generation)
        return list(templates)

    def get_default_templates(self) -> list[Template]:
        return [t for t in self.get_templates() if t.is_default]

    def _get_one(self, template_id: str, user_id: str) -> Template:
        resp = self._executor.run(
            lambda: self._store.select(
                TEMPLATES_TABLE, eq("id", template_id), eq("user_id", user_id)
            ),
            op=f"select:{TEMPLATES_TABLE}",
        )
        if not resp.rows:
            raise NotFoundError(
                f"Template {template_id} not found",
                status=404,
                operation=f"select:{TEMPLATES_TABLE}",
            )
        return Template.from_row(resp.rows[0])

    def create_template(self, create: TemplateCreate) -> Template:
        user_id = self._guard.require_session().user_id
        row = {**create.to_row(), "id": str(uuid.uuid4()), "user_id": user_id}
        resp = self._executor.run(
            lambda: self._store.insert(TEMPLATES_TABLE, row),
            op=f"insert:{TEMPLATES_TABLE}",
        )
        template = Template.from_row(resp.rows[0] if resp.rows else row)
        self._caches.templates.invalidate()
        _logger.info("templates:created id=%s name=%s", template.id, template.name)
        self._bus.publish(EventName.TEMPLATE_CREATED, TemplateChanged(template))
        return template

    def update_template(self, template_id: str, update: TemplateUpdate) -> Template:
        user_id = self._guard.require_session().user_id
        patch = {**update.to_patch(), "updated_at": self._now().isoformat()}
        resp = self._executor.run(
            lambda: self._store.update(
                TEMPLATES_TABLE, [eq("id", template_id), eq("user_id", user_id)], patch
            ),
            op=f"update:{TEMPLATES_TABLE}",
        )
        if not resp.rows:
            raise NotFoundError(
                f"Template {template_id} not found",
                status=404,
                operation=f"update:{TEMPLATES_TABLE}",
            )
        template = Template.from_row(resp.rows[0])
        self._caches.templates.invalidate()
        _logger.info("templates:updated id=%s", template.id)
        self._bus.publish(EventName.TEMPLATE_UPDATED, TemplateChanged(template))
        return template

    def delete_template(self, template_id: str) -> Template:
        user_id = self._guard.require_session().user_id
        template = self._get_one(template_id, user_id)
        self._executor.run(
            lambda: self._store.delete(
                TEMPLATES_TABLE, [eq("id", template_id), eq("user_id", user_id)]
            ),
            op=f"delete:{TEMPLATES_TABLE}",
        )
        self._caches.templates.invalidate()
        _logger.info("templates:deleted id=%s", template_id)
        self._bus.publish(EventName.TEMPLATE_DELETED, TemplateChanged(template))
        return template

    def to_transaction(
        self,
        template: Template,
        date: datetime | None = None,
        *,
        amount: Decimal | None = None,
    ) -> Transaction:
        """Build an unsaved transaction from ``template`` (quick entry).

        Templates may leave the amount at zero; ``amount`` then has to be given.
        """

        value = template.amount if amount is None else amount
        if value <= 0:
            raise ValidationError(f"Template '{template.name}' has no amount; supply one")
        return Transaction(
            date=date or self._now(),
            kind=template.kind,
            category=template.category,
            amount=value,
            notes=template.notes,
        )


__all__ = ["TEMPLATES_TABLE", "TemplateService"]
