"""Instance and decision routes."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from ..core.dependencies import TenantId, UserId, get_instance_service
from ..core.exceptions import OrchestratorError
from ..engine.types import InstanceStatus
from ..schemas.instance import (
    DecisionRequest,
    InstanceCreateRequest,
    InstanceDetailResponse,
    InstanceResponse,
)
from ..services.instance_service import InstanceService
from .errors import to_http

router = APIRouter(prefix="/instances")


# Type alias for dependency injection
InstanceServiceDep = Annotated[InstanceService, Depends(get_instance_service)]


@router.post("", response_model=InstanceResponse, status_code=201)
async def create_instance(
    request: InstanceCreateRequest,
    tenant_id: TenantId,
    user_id: UserId,
    service: InstanceServiceDep,
) -> InstanceResponse:
    """Start an instance through the template's manual trigger."""
    try:
        return await service.create_instance(tenant_id, user_id, request)
    except OrchestratorError as e:
        raise to_http(e)


@router.get("", response_model=list[InstanceResponse])
async def list_instances(
    tenant_id: TenantId,
    service: InstanceServiceDep,
    status: InstanceStatus | None = None,
    template_id: str | None = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
) -> list[InstanceResponse]:
    return await service.list_instances(
        tenant_id, status=status, template_id=template_id, limit=limit, offset=offset
    )


@router.get("/{instance_id}", response_model=InstanceDetailResponse)
async def get_instance(
    instance_id: str,
    tenant_id: TenantId,
    service: InstanceServiceDep,
) -> InstanceDetailResponse:
    """Instance with its execution history and progress."""
    try:
        return await service.get_instance(tenant_id, instance_id)
    except OrchestratorError as e:
        raise to_http(e)


@router.post("/{instance_id}/execute", response_model=InstanceResponse)
async def execute_instance(
    instance_id: str,
    tenant_id: TenantId,
    user_id: UserId,
    service: InstanceServiceDep,
) -> InstanceResponse:
    """Resume automatic steps of a running instance."""
    try:
        return await service.execute_instance(tenant_id, instance_id)
    except OrchestratorError as e:
        raise to_http(e)


@router.post("/{instance_id}/decisions", response_model=InstanceResponse)
async def submit_decision(
    instance_id: str,
    request: DecisionRequest,
    tenant_id: TenantId,
    user_id: UserId,
    service: InstanceServiceDep,
) -> InstanceResponse:
    """Approve, reject or delegate the current step."""
    try:
        return await service.decide(tenant_id, user_id, instance_id, request)
    except OrchestratorError as e:
        raise to_http(e)
