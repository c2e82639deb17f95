"""Trigger routes."""

from __future__ import annotations

import hmac
from typing import Annotated

from fastapi import APIRouter, Depends, Header, HTTPException

from ..core.config import settings
from ..core.dependencies import TenantId, get_trigger_service
from ..core.exceptions import OrchestratorError
from ..schemas.trigger import ScheduleFireRequest, TriggerResponse, TriggerUpdateRequest, WebhookAcceptedResponse
from ..services.trigger_service import TriggerService
from .errors import to_http

router = APIRouter(prefix="/triggers")


# Type alias for dependency injection
TriggerServiceDep = Annotated[TriggerService, Depends(get_trigger_service)]


@router.get("", response_model=list[TriggerResponse])
async def list_triggers(
    tenant_id: TenantId,
    service: TriggerServiceDep,
    template_id: str | None = None,
) -> list[TriggerResponse]:
    return await service.list_triggers(tenant_id, template_id)


@router.patch("/{trigger_id}", response_model=TriggerResponse)
async def update_trigger(
    trigger_id: str,
    request: TriggerUpdateRequest,
    tenant_id: TenantId,
    service: TriggerServiceDep,
) -> TriggerResponse:
    """Toggle a trigger or merge into its config."""
    try:
        return await service.update_trigger(tenant_id, trigger_id, request)
    except OrchestratorError as e:
        raise to_http(e)


@router.post("/{trigger_id}/fire", response_model=WebhookAcceptedResponse)
async def fire_schedule(
    trigger_id: str,
    tenant_id: TenantId,
    service: TriggerServiceDep,
    request: ScheduleFireRequest | None = None,
    x_scheduler_token: Annotated[str | None, Header()] = None,
) -> WebhookAcceptedResponse:
    """Callback for the external scheduler."""
    if not settings.scheduler_token:
        raise HTTPException(status_code=403, detail="Scheduler callbacks are disabled")
    if not x_scheduler_token or not hmac.compare_digest(x_scheduler_token, settings.scheduler_token):
        raise HTTPException(status_code=401, detail="Invalid scheduler token")

    try:
        record = await service.fire_schedule(tenant_id, trigger_id, request.fired_at if request else None)
    except OrchestratorError as e:
        raise to_http(e)

    return WebhookAcceptedResponse(
        trigger_id=trigger_id,
        instance_id=record.id if record else None,
        duplicate=record is None,
        status=record.status.value if record else None,
    )
