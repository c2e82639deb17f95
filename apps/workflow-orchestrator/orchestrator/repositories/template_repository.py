"""Workflow template repository."""

from __future__ import annotations

from datetime import datetime

from sqlmodel import select

from .base import TenantScopedRepository
from ..db.models import TemplateModel
from ..engine.types import TemplateRecord, WorkflowGraph


class TemplateRepository(TenantScopedRepository):
    """Repository for workflow template persistence."""

    id_prefix = "tpl"

    async def create(
        self,
        name: str,
        graph: WorkflowGraph,
        description: str | None = None,
        template_id: str | None = None,
    ) -> TemplateRecord:
        """Create a new, inactive template."""
        now = datetime.now()
        db_template = TemplateModel(
            id=template_id or self._generate_id(),
            tenant_id=self._tenant_id,
            name=name,
            description=description,
            is_active=False,
            version=1,
            definition=graph.to_dict(),
            created_at=now,
            updated_at=now,
        )
        self._session.add(db_template)
        await self._session.flush()
        return self._to_record(db_template)

    async def get(self, template_id: str) -> TemplateRecord | None:
        db_template = await self._get_model(template_id)
        return self._to_record(db_template) if db_template else None

    async def list(self, active_only: bool = False) -> list[TemplateRecord]:
        statement = select(TemplateModel).where(TemplateModel.tenant_id == self._tenant_id)
        if active_only:
            statement = statement.where(TemplateModel.is_active == True)  # noqa: E712
        statement = statement.order_by(TemplateModel.updated_at.desc())
        result = await self._session.execute(statement)
        return [self._to_record(t) for t in result.scalars().all()]

    async def update(
        self,
        template_id: str,
        name: str | None = None,
        description: str | None = None,
        graph: WorkflowGraph | None = None,
    ) -> TemplateRecord | None:
        """Update a template. A graph change bumps the version and deactivates it until republished."""
        db_template = await self._get_model(template_id)
        if not db_template:
            return None

        if name:
            db_template.name = name
        if description is not None:
            db_template.description = description
        if graph is not None:
            db_template.definition = graph.to_dict()
            db_template.version += 1
            db_template.is_active = False
        db_template.updated_at = datetime.now()

        await self._session.flush()
        return self._to_record(db_template)

    async def set_active(self, template_id: str, active: bool) -> TemplateRecord | None:
        db_template = await self._get_model(template_id)
        if not db_template:
            return None

        db_template.is_active = active
        db_template.updated_at = datetime.now()
        if active:
            db_template.published_at = db_template.updated_at

        await self._session.flush()
        return self._to_record(db_template)

    async def delete(self, template_id: str) -> bool:
        db_template = await self._get_model(template_id)
        if not db_template:
            return False
        await self._session.delete(db_template)
        await self._session.flush()
        return True

    async def _get_model(self, template_id: str) -> TemplateModel | None:
        statement = select(TemplateModel).where(
            TemplateModel.id == template_id,
            TemplateModel.tenant_id == self._tenant_id,
        )
        result = await self._session.execute(statement)
        return result.scalars().first()

    def _to_record(self, db_template: TemplateModel) -> TemplateRecord:
        return TemplateRecord(
            id=db_template.id,
            tenant_id=db_template.tenant_id,
            name=db_template.name,
            description=db_template.description,
            graph=WorkflowGraph.from_dict(db_template.definition or {}),
            is_active=db_template.is_active,
            version=db_template.version,
            created_at=db_template.created_at,
            updated_at=db_template.updated_at,
            published_at=db_template.published_at,
        )
