"""Template service: CRUD, validation and publishing."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

from ..core.exceptions import TemplateNotFoundError, TemplateValidationError
from ..engine.graph_parser import validate_workflow
from ..engine.types import TemplateRecord, WorkflowGraph
from ..schemas.template import (
    TemplateCreateRequest,
    TemplateDetailResponse,
    TemplateResponse,
    TemplateUpdateRequest,
    ValidationResponse,
)

if TYPE_CHECKING:
    from ..repositories import UnitOfWork
    from ..triggers import TriggerManager

logger = logging.getLogger(__name__)


class TemplateService:
    """Service for template operations.

    Templates are created unpublished. Publishing validates the graph,
    marks the template active and binds its trigger.
    """

    def __init__(
        self,
        uow_factory: Callable[[], UnitOfWork],
        trigger_manager: TriggerManager,
    ) -> None:
        self._uow_factory = uow_factory
        self._trigger_manager = trigger_manager

    async def list_templates(self, tenant_id: str, active_only: bool = False) -> list[TemplateResponse]:
        async with self._uow_factory() as uow:
            await uow.set_tenant(tenant_id)
            templates = await uow.templates.list(active_only=active_only)
        return [self._to_response(t) for t in templates]

    async def get_template(self, tenant_id: str, template_id: str) -> TemplateDetailResponse:
        async with self._uow_factory() as uow:
            await uow.set_tenant(tenant_id)
            template = await self._get(uow, template_id)
        return self._to_detail(template)

    async def create_template(self, tenant_id: str, request: TemplateCreateRequest) -> TemplateDetailResponse:
        graph = WorkflowGraph.from_dict(request.to_definition())
        async with self._uow_factory() as uow:
            await uow.set_tenant(tenant_id)
            template = await uow.templates.create(request.name, graph, description=request.description)
            await uow.commit()
        logger.info("Created template %s (%s) for tenant %s", template.id, template.name, tenant_id)
        return self._to_detail(template)

    async def update_template(
        self,
        tenant_id: str,
        template_id: str,
        request: TemplateUpdateRequest,
    ) -> TemplateDetailResponse:
        """Update a template. Graph changes unpublish it; running instances keep their snapshot."""
        async with self._uow_factory() as uow:
            await uow.set_tenant(tenant_id)
            existing = await self._get(uow, template_id)

            graph = None
            if request.nodes is not None or request.edges is not None or request.viewport is not None:
                current = existing.graph.to_dict()
                graph = WorkflowGraph.from_dict(
                    {
                        "nodes": [n.model_dump() for n in request.nodes] if request.nodes is not None else current["nodes"],
                        "edges": (
                            [e.model_dump(exclude_none=True) for e in request.edges]
                            if request.edges is not None
                            else current["edges"]
                        ),
                        "viewport": request.viewport if request.viewport is not None else current["viewport"],
                    }
                )

            template = await uow.templates.update(
                template_id,
                name=request.name,
                description=request.description,
                graph=graph,
            )
            await uow.commit()

        if existing.is_active and not template.is_active:
            await self._trigger_manager.deactivate_template_triggers(tenant_id, template_id)
            logger.info("Template %s changed to version %d and was unpublished", template_id, template.version)
        return self._to_detail(template)

    async def delete_template(self, tenant_id: str, template_id: str) -> None:
        async with self._uow_factory() as uow:
            await uow.set_tenant(tenant_id)
            await self._get(uow, template_id)
            await uow.triggers.delete_for_template(template_id)
            await uow.templates.delete(template_id)
            await uow.commit()
        await self._trigger_manager.registry.invalidate(tenant_id, template_id)

    async def validate_template(self, tenant_id: str, template_id: str) -> ValidationResponse:
        async with self._uow_factory() as uow:
            await uow.set_tenant(tenant_id)
            template = await self._get(uow, template_id)
        result = validate_workflow(template.graph)
        return ValidationResponse(valid=result.is_valid, errors=result.errors)

    async def publish_template(self, tenant_id: str, template_id: str) -> TemplateDetailResponse:
        """
        Validate and activate a template, then bind its trigger.

        Raises:
            TemplateValidationError: The graph is not executable.
        """
        async with self._uow_factory() as uow:
            await uow.set_tenant(tenant_id)
            template = await self._get(uow, template_id)

            result = validate_workflow(template.graph)
            if not result.is_valid:
                raise TemplateValidationError(template_id, result.errors)

            template = await uow.templates.set_active(template_id, True)
            await uow.commit()

        await self._trigger_manager.activate_template_triggers(tenant_id, template_id)
        logger.info("Published template %s version %d", template_id, template.version)
        return self._to_detail(template)

    async def unpublish_template(self, tenant_id: str, template_id: str) -> TemplateDetailResponse:
        async with self._uow_factory() as uow:
            await uow.set_tenant(tenant_id)
            await self._get(uow, template_id)
            template = await uow.templates.set_active(template_id, False)
            await uow.commit()

        await self._trigger_manager.deactivate_template_triggers(tenant_id, template_id)
        return self._to_detail(template)

    async def _get(self, uow: UnitOfWork, template_id: str) -> TemplateRecord:
        template = await uow.templates.get(template_id)
        if not template:
            raise TemplateNotFoundError(template_id)
        return template

    def _to_response(self, template: TemplateRecord) -> TemplateResponse:
        return TemplateResponse(
            id=template.id,
            name=template.name,
            description=template.description,
            is_active=template.is_active,
            version=template.version,
            node_count=len(template.graph.nodes),
            created_at=template.created_at.isoformat() if template.created_at else None,
            updated_at=template.updated_at.isoformat() if template.updated_at else None,
            published_at=template.published_at.isoformat() if template.published_at else None,
        )

    def _to_detail(self, template: TemplateRecord) -> TemplateDetailResponse:
        return TemplateDetailResponse(
            **self._to_response(template).model_dump(),
            definition=template.graph.to_dict(),
        )
