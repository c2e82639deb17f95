"""Trigger executors - the first step of every instance."""

from __future__ import annotations

from datetime import datetime
from typing import Any, TYPE_CHECKING

from .base import BaseExecutor
from ..engine.types import ExecutionResult

if TYPE_CHECKING:
    from ..engine.types import ExecutionContext, StepDefinition


class TriggerExecutor(BaseExecutor):
    """Start node for manual, webhook, schedule and error triggers.

    Records how the instance was started so later steps can read it.
    """

    @property
    def executor_id(self) -> str:
        return "trigger-executor"

    @property
    def description(self) -> str:
        return "Records the event that started the workflow"

    async def execute(
        self,
        step: StepDefinition,
        payload: dict[str, Any],
        context: ExecutionContext,
    ) -> ExecutionResult:
        trigger = context.workflow_data.get("trigger") or {}
        return ExecutionResult.ok(
            message=f"Workflow started by {trigger.get('type', 'manual')} trigger",
            data={
                "triggerType": trigger.get("type", "manual"),
                "triggeredAt": trigger.get("firedAt") or datetime.now().isoformat(),
                "requesterId": context.requester_id,
            },
        )


class FormTriggerExecutor(BaseExecutor):
    """Validates a submitted form against the step's required fields."""

    @property
    def executor_id(self) -> str:
        return "form-trigger-executor"

    @property
    def description(self) -> str:
        return "Processes form submission triggers"

    async def execute(
        self,
        step: StepDefinition,
        payload: dict[str, Any],
        context: ExecutionContext,
    ) -> ExecutionResult:
        required_fields: list[str] = self.get_config(step, "requiredFields", [])
        missing = [f for f in required_fields if payload.get(f) in (None, "")]
        if missing:
            return ExecutionResult.failure(f"Missing required fields: {', '.join(missing)}")

        return ExecutionResult.ok(
            message="Form trigger processed successfully",
            data={
                **payload,
                "submittedAt": datetime.now().isoformat(),
                "submitterId": context.requester_id,
                "tenantId": context.tenant_id,
            },
        )
