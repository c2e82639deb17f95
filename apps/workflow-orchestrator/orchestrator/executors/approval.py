"""Approval executors - manual approval requests and rule-based auto approval."""

from __future__ import annotations

from datetime import datetime
from typing import Any, TYPE_CHECKING

from .base import BaseExecutor
from ..engine.types import ExecutionResult

if TYPE_CHECKING:
    from ..engine.types import ExecutionContext, StepDefinition


class ApprovalActionExecutor(BaseExecutor):
    """Builds the approval request shown to the assignee of an approval step.

    The orchestrator moves the instance to ``waiting_approval`` and notifies
    the assignee; this executor only describes what is being approved.
    """

    @property
    def executor_id(self) -> str:
        return "approval-action-executor"

    @property
    def description(self) -> str:
        return "Handles approval requests and notifications"

    async def execute(
        self,
        step: StepDefinition,
        payload: dict[str, Any],
        context: ExecutionContext,
    ) -> ExecutionResult:
        approver_role = self.get_config(step, "approverRole", "manager")
        message = self.get_config(
            step,
            "message",
            f"Approval required for: {step.label or step.node_id}",
        )
        return ExecutionResult.ok(
            message="Approval request prepared",
            data={
                "approverRole": approver_role,
                "assigneeId": context.workflow_data.get("currentAssigneeId"),
                "requestMessage": message,
                "status": "waiting_approval",
                "requestedAt": datetime.now().isoformat(),
            },
        )


class AutoApprovalExecutor(BaseExecutor):
    """Approves or rejects automatically from configured conditions.

    Supported conditions: ``maxAmount`` (against payload ``amount``),
    ``allowedRoles`` (against payload ``requesterRole``) and
    ``businessHoursOnly`` (09:00-17:59 local time).
    """

    @property
    def executor_id(self) -> str:
        return "auto-approval-executor"

    @property
    def description(self) -> str:
        return "Automatically approves requests based on configured conditions"

    async def execute(
        self,
        step: StepDefinition,
        payload: dict[str, Any],
        context: ExecutionContext,
    ) -> ExecutionResult:
        conditions: dict[str, Any] = self.get_config(step, "conditions", {})
        approved = True
        reason = "Automatic approval - all conditions met"

        max_amount = conditions.get("maxAmount")
        amount = payload.get("amount")
        if max_amount is not None and amount is not None:
            if float(amount) > float(max_amount):
                approved = False
                reason = f"Amount {amount} exceeds threshold {max_amount}"

        allowed_roles = conditions.get("allowedRoles")
        role = payload.get("requesterRole")
        if approved and allowed_roles and role and role not in allowed_roles:
            approved = False
            reason = f"Role {role} not in allowed list"

        if approved and conditions.get("businessHoursOnly"):
            hour = datetime.now().hour
            if hour < 9 or hour > 17:
                approved = False
                reason = "Request outside business hours"

        decision = "approve" if approved else "reject"
        return ExecutionResult.ok(
            message=f"Auto {decision}: {reason}",
            decision=decision,
            data={
                "autoApproved": approved,
                "reason": reason,
                "evaluatedAt": datetime.now().isoformat(),
            },
        )
