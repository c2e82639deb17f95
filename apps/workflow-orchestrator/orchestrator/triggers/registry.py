"""In-memory trigger cache with a webhook route index."""

from __future__ import annotations

import logging
from typing import Callable

from ..engine.types import TriggerRecord, TriggerType
from ..repositories.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)

RouteKey = tuple[str, str, str]


def normalize_path(path: str) -> str:
    """``orders/new/`` -> ``/orders/new``."""
    path = "/" + path.strip().strip("/")
    return path if path != "/" else "/"


def webhook_method(trigger: TriggerRecord) -> str:
    return str(trigger.config.get("httpMethod") or "POST").upper()


class TriggerRegistry:
    """
    Active triggers grouped by ``(tenant_id, template_id)``.

    Webhook triggers are additionally indexed by ``(tenant_id, path, METHOD)``.
    The cache is rebuilt from persistence at ``init`` and per template on
    ``invalidate``; it never holds state that persistence does not.
    """

    def __init__(self) -> None:
        self._by_template: dict[tuple[str, str], list[TriggerRecord]] = {}
        self._by_id: dict[str, TriggerRecord] = {}
        self._routes: dict[RouteKey, str] = {}
        self._uow_factory: Callable[[], UnitOfWork] | None = None

    async def init(self, uow_factory: Callable[[], UnitOfWork]) -> None:
        self._uow_factory = uow_factory
        async with uow_factory() as uow:
            uow.set_system_scope()
            triggers = await uow.triggers.scan_active()

        self._clear()
        for trigger in triggers:
            self._add(trigger)
        logger.info("Trigger registry loaded %d active triggers", len(triggers))

    async def teardown(self) -> None:
        self._clear()
        self._uow_factory = None

    async def invalidate(self, tenant_id: str, template_id: str) -> None:
        """Reload one template's triggers from persistence."""
        for trigger in self._by_template.pop((tenant_id, template_id), []):
            self._remove(trigger)

        if self._uow_factory is None:
            return
        async with self._uow_factory() as uow:
            await uow.set_tenant(tenant_id)
            triggers = await uow.triggers.list(template_id=template_id, active_only=True)
        for trigger in triggers:
            self._add(trigger)
        logger.debug("Trigger registry reloaded %s/%s (%d active)", tenant_id, template_id, len(triggers))

    def get(self, trigger_id: str) -> TriggerRecord | None:
        return self._by_id.get(trigger_id)

    def for_template(self, tenant_id: str, template_id: str) -> list[TriggerRecord]:
        return list(self._by_template.get((tenant_id, template_id), []))

    def of_type(self, trigger_type: TriggerType, tenant_id: str | None = None) -> list[TriggerRecord]:
        return [
            t
            for t in self._by_id.values()
            if t.type == trigger_type and (tenant_id is None or t.tenant_id == tenant_id)
        ]

    def find_webhook(self, tenant_id: str, path: str, method: str) -> TriggerRecord | None:
        trigger_id = self._routes.get((tenant_id, normalize_path(path), method.upper()))
        return self._by_id.get(trigger_id) if trigger_id else None

    def __len__(self) -> int:
        return len(self._by_id)

    def _add(self, trigger: TriggerRecord) -> None:
        if not trigger.active:
            return
        self._by_template.setdefault((trigger.tenant_id, trigger.template_id), []).append(trigger)
        self._by_id[trigger.id] = trigger

        if trigger.type == TriggerType.WEBHOOK and trigger.config.get("path"):
            key = (trigger.tenant_id, normalize_path(trigger.config["path"]), webhook_method(trigger))
            existing = self._routes.get(key)
            if existing and existing != trigger.id:
                logger.warning("Webhook route %s %s already bound to %s; replacing with %s", key[2], key[1], existing, trigger.id)
            self._routes[key] = trigger.id

    def _remove(self, trigger: TriggerRecord) -> None:
        self._by_id.pop(trigger.id, None)
        for key, trigger_id in list(self._routes.items()):
            if trigger_id == trigger.id:
                del self._routes[key]

    def _clear(self) -> None:
        self._by_template.clear()
        self._by_id.clear()
        self._routes.clear()
