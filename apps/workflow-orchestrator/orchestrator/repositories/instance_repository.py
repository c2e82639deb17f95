"""Workflow instance repository with optimistic concurrency."""

from __future__ import annotations

import copy
from datetime import datetime

from sqlalchemy import update
from sqlmodel import select

from .base import TenantScopedRepository
from ..core.exceptions import StaleStateError
from ..db.models import InstanceModel
from ..engine.types import APPROVABLE_STATUSES, InstanceRecord, InstanceStatus


class InstanceRepository(TenantScopedRepository):
    """Repository for workflow instances.

    ``save`` is a compare-and-swap on ``version``: two writers that loaded the
    same version cannot both succeed.
    """

    id_prefix = "inst"

    def new_id(self) -> str:
        return self._generate_id()

    async def create(self, record: InstanceRecord) -> InstanceRecord:
        now = datetime.now()
        db_instance = InstanceModel(
            id=record.id or self._generate_id(),
            tenant_id=self._tenant_id,
            template_id=record.template_id,
            template_version=record.template_version,
            reference_id=record.reference_id,
            requester_id=record.requester_id,
            name=record.name,
            status=record.status.value,
            current_step_id=record.current_step_id,
            workflow_data=copy.deepcopy(record.workflow_data),
            failure_reason=record.failure_reason,
            escalation_count=record.escalation_count,
            trigger_id=record.trigger_id,
            idempotency_key=record.idempotency_key,
            version=1,
            created_at=now,
            updated_at=now,
        )
        self._session.add(db_instance)
        await self._session.flush()
        return self._to_record(db_instance)

    async def get(self, instance_id: str) -> InstanceRecord | None:
        statement = (
            select(InstanceModel)
            .where(InstanceModel.id == instance_id, InstanceModel.tenant_id == self._tenant_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(statement)
        db_instance = result.scalars().first()
        return self._to_record(db_instance) if db_instance else None

    async def save(self, record: InstanceRecord) -> InstanceRecord:
        """
        Persist a modified instance if nobody else changed it since it was loaded.

        Raises:
            StaleStateError: The stored version no longer matches ``record.version``.
        """
        now = datetime.now()
        statement = (
            update(InstanceModel)
            .where(
                InstanceModel.id == record.id,
                InstanceModel.tenant_id == self._tenant_id,
                InstanceModel.version == record.version,
            )
            .values(
                status=record.status.value,
                current_step_id=record.current_step_id,
                workflow_data=copy.deepcopy(record.workflow_data),
                failure_reason=record.failure_reason,
                escalation_count=record.escalation_count,
                completed_at=record.completed_at,
                updated_at=now,
                version=record.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(statement)
        if result.rowcount != 1:
            raise StaleStateError(record.id, record.version)

        record.version += 1
        record.updated_at = now
        return record

    async def claim(self, record: InstanceRecord) -> InstanceRecord:
        """Bump the version without other changes, locking out concurrent writers."""
        return await self.save(record)

    async def list(
        self,
        status: InstanceStatus | None = None,
        template_id: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[InstanceRecord]:
        statement = select(InstanceModel).where(InstanceModel.tenant_id == self._tenant_id)
        if status:
            statement = statement.where(InstanceModel.status == status.value)
        if template_id:
            statement = statement.where(InstanceModel.template_id == template_id)
        statement = statement.order_by(InstanceModel.created_at.desc()).offset(offset).limit(limit)
        result = await self._session.execute(statement)
        return [self._to_record(i) for i in result.scalars().all()]

    # --- System scans (start-up hydration) ---

    async def scan_open_instances(self) -> list[InstanceRecord]:
        """All non-terminal instances across tenants."""
        self._uow.require_system_scope()
        statement = select(InstanceModel).where(
            InstanceModel.status.in_([s.value for s in APPROVABLE_STATUSES])
        )
        result = await self._session.execute(statement)
        return [self._to_record(i) for i in result.scalars().all()]

    async def scan_idempotency_keys(self, since: datetime) -> list[InstanceRecord]:
        """Instances created since ``since`` that carry an idempotency key, across tenants."""
        self._uow.require_system_scope()
        statement = select(InstanceModel).where(
            InstanceModel.idempotency_key.is_not(None),
            InstanceModel.created_at >= since,
        )
        result = await self._session.execute(statement)
        return [self._to_record(i) for i in result.scalars().all()]

    def _to_record(self, db_instance: InstanceModel) -> InstanceRecord:
        return InstanceRecord(
            id=db_instance.id,
            tenant_id=db_instance.tenant_id,
            template_id=db_instance.template_id,
            template_version=db_instance.template_version,
            reference_id=db_instance.reference_id,
            requester_id=db_instance.requester_id,
            name=db_instance.name,
            status=InstanceStatus(db_instance.status),
            current_step_id=db_instance.current_step_id,
            workflow_data=copy.deepcopy(db_instance.workflow_data or {}),
            failure_reason=db_instance.failure_reason,
            escalation_count=db_instance.escalation_count,
            trigger_id=db_instance.trigger_id,
            idempotency_key=db_instance.idempotency_key,
            version=db_instance.version,
            created_at=db_instance.created_at,
            updated_at=db_instance.updated_at,
            completed_at=db_instance.completed_at,
        )
