"""FastAPI dependency injection for the workflow orchestrator."""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Header, HTTPException


# --- Long-lived components ---


@lru_cache
def get_escalation_scheduler():
    """Get the process-wide escalation scheduler."""
    from ..engine.escalation import EscalationScheduler

    return EscalationScheduler()


@lru_cache
def get_orchestrator():
    """Get the orchestrator bound to the application database."""
    from ..db import async_session_factory
    from ..engine.orchestrator import Orchestrator
    from ..engine.step_registry import step_registry

    return Orchestrator(
        async_session_factory,
        registry=step_registry,
        escalations=get_escalation_scheduler(),
    )


@lru_cache
def get_trigger_manager():
    """Get the trigger manager."""
    from ..triggers import TriggerManager

    return TriggerManager(get_orchestrator())


# --- Request identity ---


def get_tenant_id(x_tenant_id: Annotated[str | None, Header()] = None) -> str:
    """Tenant of the request, from ``X-Tenant-Id``."""
    if not x_tenant_id:
        raise HTTPException(status_code=400, detail="X-Tenant-Id header is required")
    return x_tenant_id


def get_user_id(x_user_id: Annotated[str | None, Header()] = None) -> str:
    """Acting user, from ``X-User-Id``."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="X-User-Id header is required")
    return x_user_id


TenantId = Annotated[str, Depends(get_tenant_id)]
UserId = Annotated[str, Depends(get_user_id)]


# --- Service Dependencies ---


def get_template_service(
    orchestrator=Depends(get_orchestrator),
    trigger_manager=Depends(get_trigger_manager),
):
    """Get template service instance."""
    from ..services.template_service import TemplateService

    return TemplateService(orchestrator.unit_of_work, trigger_manager)


def get_instance_service(
    orchestrator=Depends(get_orchestrator),
    trigger_manager=Depends(get_trigger_manager),
):
    """Get instance service instance."""
    from ..services.instance_service import InstanceService

    return InstanceService(orchestrator, trigger_manager)


def get_trigger_service(trigger_manager=Depends(get_trigger_manager)):
    """Get trigger service instance."""
    from ..services.trigger_service import TriggerService

    return TriggerService(trigger_manager)
