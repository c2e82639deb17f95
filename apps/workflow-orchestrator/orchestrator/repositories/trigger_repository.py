"""Trigger definition repository."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlmodel import select

from .base import TenantScopedRepository
from ..db.models import TriggerModel
from ..engine.types import TriggerRecord, TriggerType


class TriggerRepository(TenantScopedRepository):
    """Repository for trigger definitions."""

    async def get(self, trigger_id: str) -> TriggerRecord | None:
        db_trigger = await self._get_model(trigger_id)
        return self._to_record(db_trigger) if db_trigger else None

    async def list(self, template_id: str | None = None, active_only: bool = False) -> list[TriggerRecord]:
        statement = select(TriggerModel).where(TriggerModel.tenant_id == self._tenant_id)
        if template_id:
            statement = statement.where(TriggerModel.template_id == template_id)
        if active_only:
            statement = statement.where(TriggerModel.active == True)  # noqa: E712
        statement = statement.order_by(TriggerModel.created_at)
        result = await self._session.execute(statement)
        return [self._to_record(t) for t in result.scalars().all()]

    async def upsert(
        self,
        template_id: str,
        node_id: str,
        trigger_type: TriggerType,
        config: dict[str, Any],
        active: bool = True,
    ) -> TriggerRecord:
        """Create or replace the trigger for a template's start node."""
        trigger_id = f"{template_id}-{node_id}"
        now = datetime.now()
        db_trigger = await self._get_model(trigger_id)
        if db_trigger is None:
            db_trigger = TriggerModel(
                id=trigger_id,
                tenant_id=self._tenant_id,
                template_id=template_id,
                node_id=node_id,
                type=trigger_type.value,
                config=config,
                active=active,
                created_at=now,
                updated_at=now,
            )
            self._session.add(db_trigger)
        else:
            db_trigger.type = trigger_type.value
            db_trigger.config = config
            db_trigger.active = active
            db_trigger.updated_at = now
        await self._session.flush()
        return self._to_record(db_trigger)

    async def update(
        self,
        trigger_id: str,
        active: bool | None = None,
        config: dict[str, Any] | None = None,
    ) -> TriggerRecord | None:
        db_trigger = await self._get_model(trigger_id)
        if not db_trigger:
            return None
        if active is not None:
            db_trigger.active = active
        if config is not None:
            db_trigger.config = {**(db_trigger.config or {}), **config}
        db_trigger.updated_at = datetime.now()
        await self._session.flush()
        return self._to_record(db_trigger)

    async def set_active_for_template(self, template_id: str, active: bool) -> None:
        for trigger in await self._list_models(template_id):
            trigger.active = active
            trigger.updated_at = datetime.now()
        await self._session.flush()

    async def delete_for_template(self, template_id: str, keep_node_ids: set[str] | None = None) -> None:
        for trigger in await self._list_models(template_id):
            if keep_node_ids and trigger.node_id in keep_node_ids:
                continue
            await self._session.delete(trigger)
        await self._session.flush()

    async def scan_active(self) -> list[TriggerRecord]:
        """All active triggers across tenants."""
        self._uow.require_system_scope()
        statement = select(TriggerModel).where(TriggerModel.active == True)  # noqa: E712
        result = await self._session.execute(statement)
        return [self._to_record(t) for t in result.scalars().all()]

    async def _get_model(self, trigger_id: str) -> TriggerModel | None:
        statement = select(TriggerModel).where(
            TriggerModel.id == trigger_id,
            TriggerModel.tenant_id == self._tenant_id,
        )
        result = await self._session.execute(statement)
        return result.scalars().first()

    async def _list_models(self, template_id: str) -> list[TriggerModel]:
        statement = select(TriggerModel).where(
            TriggerModel.tenant_id == self._tenant_id,
            TriggerModel.template_id == template_id,
        )
        result = await self._session.execute(statement)
        return list(result.scalars().all())

    def _to_record(self, db_trigger: TriggerModel) -> TriggerRecord:
        return TriggerRecord(
            id=db_trigger.id,
            tenant_id=db_trigger.tenant_id,
            template_id=db_trigger.template_id,
            node_id=db_trigger.node_id,
            type=TriggerType(db_trigger.type),
            config=dict(db_trigger.config or {}),
            active=db_trigger.active,
            created_at=db_trigger.created_at,
            updated_at=db_trigger.updated_at,
        )
