"""Inbound webhook route."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Request

from ..core.dependencies import get_trigger_manager
from ..core.exceptions import OrchestratorError
from ..schemas.trigger import WebhookAcceptedResponse
from ..triggers import TriggerManager
from .errors import to_http

logger = logging.getLogger(__name__)

router = APIRouter()

TriggerManagerDep = Annotated[TriggerManager, Depends(get_trigger_manager)]


@router.api_route("/webhooks/{path:path}", methods=["POST", "PUT", "PATCH"], response_model=WebhookAcceptedResponse)
async def handle_webhook(path: str, request: Request, manager: TriggerManagerDep) -> WebhookAcceptedResponse:
    """Single entry point for every webhook trigger; the tenant comes from ``X-Tenant-Id``."""
    raw_body = await request.body()
    try:
        outcome = await manager.handle_webhook(
            request.headers.get("x-tenant-id"),
            request.method,
            path,
            dict(request.headers),
            raw_body,
            request.client.host if request.client else None,
        )
    except OrchestratorError as e:
        logger.info("Webhook %s rejected: %s", path, e.message)
        raise to_http(e)

    return WebhookAcceptedResponse(
        trigger_id=outcome.trigger_id,
        instance_id=outcome.instance_id,
        duplicate=outcome.duplicate,
        status=outcome.status,
    )
