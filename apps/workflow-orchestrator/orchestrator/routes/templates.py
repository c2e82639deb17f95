"""Template routes."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from ..core.dependencies import TenantId, get_template_service
from ..core.exceptions import OrchestratorError
from ..schemas.common import SuccessResponse
from ..schemas.template import (
    TemplateCreateRequest,
    TemplateDetailResponse,
    TemplateResponse,
    TemplateUpdateRequest,
    ValidationResponse,
)
from ..services.template_service import TemplateService
from .errors import to_http

router = APIRouter(prefix="/templates")


# Type alias for dependency injection
TemplateServiceDep = Annotated[TemplateService, Depends(get_template_service)]


@router.get("", response_model=list[TemplateResponse])
async def list_templates(
    tenant_id: TenantId,
    service: TemplateServiceDep,
    active_only: bool = False,
) -> list[TemplateResponse]:
    """List the tenant's templates."""
    return await service.list_templates(tenant_id, active_only=active_only)


@router.post("", response_model=TemplateDetailResponse, status_code=201)
async def create_template(
    request: TemplateCreateRequest,
    tenant_id: TenantId,
    service: TemplateServiceDep,
) -> TemplateDetailResponse:
    """Create an unpublished template."""
    return await service.create_template(tenant_id, request)


@router.get("/{template_id}", response_model=TemplateDetailResponse)
async def get_template(
    template_id: str,
    tenant_id: TenantId,
    service: TemplateServiceDep,
) -> TemplateDetailResponse:
    try:
        return await service.get_template(tenant_id, template_id)
    except OrchestratorError as e:
        raise to_http(e)


@router.put("/{template_id}", response_model=TemplateDetailResponse)
async def update_template(
    template_id: str,
    request: TemplateUpdateRequest,
    tenant_id: TenantId,
    service: TemplateServiceDep,
) -> TemplateDetailResponse:
    """Update a template. Graph changes unpublish it."""
    try:
        return await service.update_template(tenant_id, template_id, request)
    except OrchestratorError as e:
        raise to_http(e)


@router.delete("/{template_id}", response_model=SuccessResponse)
async def delete_template(
    template_id: str,
    tenant_id: TenantId,
    service: TemplateServiceDep,
) -> SuccessResponse:
    try:
        await service.delete_template(tenant_id, template_id)
        return SuccessResponse(message="Template deleted")
    except OrchestratorError as e:
        raise to_http(e)


@router.post("/{template_id}/validate", response_model=ValidationResponse)
async def validate_template(
    template_id: str,
    tenant_id: TenantId,
    service: TemplateServiceDep,
) -> ValidationResponse:
    """Validate a template without publishing it."""
    try:
        return await service.validate_template(tenant_id, template_id)
    except OrchestratorError as e:
        raise to_http(e)


@router.post("/{template_id}/publish", response_model=TemplateDetailResponse)
async def publish_template(
    template_id: str,
    tenant_id: TenantId,
    service: TemplateServiceDep,
) -> TemplateDetailResponse:
    """Validate, activate and bind the template's trigger."""
    try:
        return await service.publish_template(tenant_id, template_id)
    except OrchestratorError as e:
        raise to_http(e)


@router.post("/{template_id}/unpublish", response_model=TemplateDetailResponse)
async def unpublish_template(
    template_id: str,
    tenant_id: TenantId,
    service: TemplateServiceDep,
) -> TemplateDetailResponse:
    try:
        return await service.unpublish_template(tenant_id, template_id)
    except OrchestratorError as e:
        raise to_http(e)
