"""Instance service: manual starts, decisions and read models."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..engine.orchestrator import DECISION_EXECUTOR_ID
from ..engine.types import (
    ApprovalDecision,
    DecisionType,
    ExecutionRecord,
    ExecutionStatus,
    InstanceRecord,
    InstanceStatus,
)
from ..schemas.instance import (
    DecisionRequest,
    ExecutionSchema,
    InstanceCreateRequest,
    InstanceDetailResponse,
    InstanceResponse,
    ProgressSchema,
)

if TYPE_CHECKING:
    from ..engine.orchestrator import Orchestrator
    from ..triggers import TriggerManager


def _iso(value) -> str | None:
    return value.isoformat() if value else None


class InstanceService:
    """Service for workflow instance operations."""

    def __init__(self, orchestrator: Orchestrator, trigger_manager: TriggerManager) -> None:
        self._orchestrator = orchestrator
        self._trigger_manager = trigger_manager

    async def create_instance(
        self,
        tenant_id: str,
        user_id: str,
        request: InstanceCreateRequest,
    ) -> InstanceResponse:
        """Start an instance through the manual trigger."""
        record = await self._trigger_manager.fire_manual(
            tenant_id,
            request.template_id,
            user_id,
            payload=request.payload,
            reference_id=request.reference_id,
            name=request.name,
        )
        return self._to_response(record)

    async def list_instances(
        self,
        tenant_id: str,
        status: InstanceStatus | None = None,
        template_id: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[InstanceResponse]:
        records = await self._orchestrator.list_instances(
            tenant_id, status=status, template_id=template_id, limit=limit, offset=offset
        )
        return [self._to_response(r) for r in records]

    async def get_instance(self, tenant_id: str, instance_id: str) -> InstanceDetailResponse:
        record, executions = await self._orchestrator.get_instance_details(tenant_id, instance_id)
        return self._to_detail(record, executions)

    async def execute_instance(self, tenant_id: str, instance_id: str) -> InstanceResponse:
        """Resume automatic steps of a running instance."""
        record = await self._orchestrator.execute_instance(tenant_id, instance_id)
        return self._to_response(record)

    async def decide(
        self,
        tenant_id: str,
        user_id: str,
        instance_id: str,
        request: DecisionRequest,
    ) -> InstanceResponse:
        record = await self._orchestrator.process_approval(
            ApprovalDecision(
                tenant_id=tenant_id,
                instance_id=instance_id,
                user_id=user_id,
                decision=DecisionType(request.decision),
                comments=request.comments,
                reason=request.reason,
                delegate_to=request.delegate_to,
                metadata=request.metadata,
            )
        )
        return self._to_response(record)

    def _to_response(self, record: InstanceRecord) -> InstanceResponse:
        return InstanceResponse(
            id=record.id,
            template_id=record.template_id,
            template_version=record.template_version,
            name=record.name,
            status=record.status.value,
            current_step_id=record.current_step_id,
            current_assignee_id=record.current_assignee_id,
            reference_id=record.reference_id,
            requester_id=record.requester_id,
            failure_reason=record.failure_reason,
            escalation_count=record.escalation_count,
            version=record.version,
            created_at=_iso(record.created_at),
            updated_at=_iso(record.updated_at),
            completed_at=_iso(record.completed_at),
        )

    def _to_detail(self, record: InstanceRecord, executions: list[ExecutionRecord]) -> InstanceDetailResponse:
        data = record.workflow_data
        graph_steps = {s["nodeId"] for s in data.get("parsedGraph", {}).get("steps", [])}
        done = {
            e.step_id
            for e in executions
            if e.status == ExecutionStatus.COMPLETED
            and e.step_id in graph_steps
            and e.executor_id != DECISION_EXECUTOR_ID
        }
        return InstanceDetailResponse(
            **self._to_response(record).model_dump(),
            request_data=data.get("requestData") or {},
            delegations=data.get("delegations") or [],
            escalations=data.get("escalations") or [],
            step_outputs=data.get("stepOutputs") or {},
            progress=ProgressSchema(
                completed_steps=len(done),
                total_steps=len(graph_steps),
            ),
            executions=[
                ExecutionSchema(
                    id=e.id,
                    step_id=e.step_id,
                    executor_id=e.executor_id,
                    status=e.status.value,
                    input_data=e.input_data,
                    output_data=e.output_data,
                    error=e.error,
                    attempts=e.attempts,
                    started_at=_iso(e.started_at),
                    completed_at=_iso(e.completed_at),
                )
                for e in executions
            ],
        )
