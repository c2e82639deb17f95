"""Generic action executor - fallback for unmapped action types."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, TYPE_CHECKING

from .base import BaseExecutor
from ..engine.types import ExecutionResult

if TYPE_CHECKING:
    from ..engine.types import ExecutionContext, StepDefinition

logger = logging.getLogger(__name__)


class GenericActionExecutor(BaseExecutor):
    """Completes a step without side effects, echoing its input."""

    @property
    def executor_id(self) -> str:
        return "generic-action-executor"

    @property
    def description(self) -> str:
        return "Generic fallback executor for simple actions"

    async def execute(
        self,
        step: StepDefinition,
        payload: dict[str, Any],
        context: ExecutionContext,
    ) -> ExecutionResult:
        logger.info(
            "Generic action on step %s (actionType=%s, tenant=%s)",
            step.node_id,
            step.action_type,
            context.tenant_id,
        )
        return ExecutionResult.ok(
            message=f"Generic action completed for step {step.node_id}",
            data={
                "stepId": step.node_id,
                "actionType": step.action_type,
                "completedAt": datetime.now().isoformat(),
            },
        )
