"""Execution audit row repository."""

from __future__ import annotations

import time
from datetime import datetime
from typing import Any

from sqlalchemy import update
from sqlmodel import select

from .base import TenantScopedRepository
from ..db.models import ExecutionModel
from ..engine.types import ExecutionRecord, ExecutionStatus, OPEN_EXECUTION_STATUSES

_OPEN = [s.value for s in OPEN_EXECUTION_STATUSES]


class ExecutionRepository(TenantScopedRepository):
    """Append-only execution rows.

    Rows are never rewritten except to move their own status from
    pending/running to a terminal state.
    """

    id_prefix = "exec"

    async def append(
        self,
        instance_id: str,
        step_id: str,
        executor_id: str,
        status: ExecutionStatus,
        input_data: dict[str, Any] | None = None,
        output_data: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> ExecutionRecord:
        now = datetime.now()
        terminal = status not in OPEN_EXECUTION_STATUSES
        db_execution = ExecutionModel(
            id=self._generate_id(),
            tenant_id=self._tenant_id,
            instance_id=instance_id,
            step_id=step_id,
            executor_id=executor_id,
            status=status.value,
            input_data=input_data or {},
            output_data=output_data or {},
            error=error,
            seq=time.time_ns(),
            started_at=now,
            completed_at=now if terminal else None,
        )
        self._session.add(db_execution)
        await self._session.flush()
        return self._to_record(db_execution)

    async def get_open(self, instance_id: str) -> ExecutionRecord | None:
        """The instance's current pending/running row, if any."""
        statement = (
            select(ExecutionModel)
            .where(
                ExecutionModel.tenant_id == self._tenant_id,
                ExecutionModel.instance_id == instance_id,
                ExecutionModel.status.in_(_OPEN),
            )
            .order_by(ExecutionModel.seq.desc())
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(statement)
        db_execution = result.scalars().first()
        return self._to_record(db_execution) if db_execution else None

    async def mark_running(self, execution_id: str) -> None:
        await self._transition(execution_id, [ExecutionStatus.PENDING.value], status=ExecutionStatus.RUNNING.value)

    async def close(
        self,
        execution_id: str,
        status: ExecutionStatus,
        output_data: dict[str, Any] | None = None,
        error: str | None = None,
        attempts: int | None = None,
    ) -> bool:
        """Move an open row to a terminal status. Returns False if it was already closed."""
        values: dict[str, Any] = {
            "status": status.value,
            "output_data": output_data or {},
            "error": error,
            "completed_at": datetime.now(),
        }
        if attempts is not None:
            values["attempts"] = attempts
        return await self._transition(execution_id, _OPEN, **values)

    async def list_for_instance(self, instance_id: str) -> list[ExecutionRecord]:
        statement = (
            select(ExecutionModel)
            .where(
                ExecutionModel.tenant_id == self._tenant_id,
                ExecutionModel.instance_id == instance_id,
            )
            .order_by(ExecutionModel.seq)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(statement)
        return [self._to_record(e) for e in result.scalars().all()]

    async def _transition(self, execution_id: str, from_statuses: list[str], **values: Any) -> bool:
        statement = (
            update(ExecutionModel)
            .where(
                ExecutionModel.id == execution_id,
                ExecutionModel.tenant_id == self._tenant_id,
                ExecutionModel.status.in_(from_statuses),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(statement)
        return result.rowcount == 1

    def _to_record(self, db_execution: ExecutionModel) -> ExecutionRecord:
        return ExecutionRecord(
            id=db_execution.id,
            tenant_id=db_execution.tenant_id,
            instance_id=db_execution.instance_id,
            step_id=db_execution.step_id,
            executor_id=db_execution.executor_id,
            status=ExecutionStatus(db_execution.status),
            input_data=db_execution.input_data or {},
            output_data=db_execution.output_data or {},
            error=db_execution.error,
            attempts=db_execution.attempts,
            started_at=db_execution.started_at,
            completed_at=db_execution.completed_at,
        )
