"""Trigger service: listing, editing and scheduler callbacks."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from ..core.config import settings
from ..engine.types import TriggerRecord, TriggerType
from ..schemas.trigger import TriggerResponse, TriggerUpdateRequest

if TYPE_CHECKING:
    from ..engine.types import InstanceRecord
    from ..triggers import TriggerManager

_SECRET_KEYS = {"password", "jwtSecret", "signingSecret", "expectedValue", "secret", "apiKey"}


def redact(config: Any) -> Any:
    """Copy of a trigger config with secret values masked."""
    if isinstance(config, dict):
        return {k: "***" if k in _SECRET_KEYS and v else redact(v) for k, v in config.items()}
    if isinstance(config, list):
        return [redact(v) for v in config]
    return config


class TriggerService:
    """Service for trigger operations."""

    def __init__(self, trigger_manager: TriggerManager) -> None:
        self._trigger_manager = trigger_manager

    async def list_triggers(self, tenant_id: str, template_id: str | None = None) -> list[TriggerResponse]:
        triggers = await self._trigger_manager.list_triggers(tenant_id, template_id)
        return [self._to_response(t) for t in triggers]

    async def update_trigger(
        self,
        tenant_id: str,
        trigger_id: str,
        request: TriggerUpdateRequest,
    ) -> TriggerResponse:
        trigger = await self._trigger_manager.update_trigger(
            tenant_id, trigger_id, active=request.active, config=request.config
        )
        return self._to_response(trigger)

    async def fire_schedule(
        self,
        tenant_id: str,
        trigger_id: str,
        fired_at: datetime | None = None,
    ) -> InstanceRecord | None:
        return await self._trigger_manager.fire_schedule(tenant_id, trigger_id, fired_at)

    def _to_response(self, trigger: TriggerRecord) -> TriggerResponse:
        webhook_url = None
        if trigger.type == TriggerType.WEBHOOK and trigger.config.get("path"):
            webhook_url = f"{settings.public_base_url}/webhooks{trigger.config['path']}"
        return TriggerResponse(
            id=trigger.id,
            template_id=trigger.template_id,
            node_id=trigger.node_id,
            type=trigger.type.value,
            active=trigger.active,
            config=redact(trigger.config),
            webhook_url=webhook_url,
        )
