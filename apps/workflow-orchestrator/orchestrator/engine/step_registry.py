"""Step registry: closed dispatch table from executor id to step handler."""

from __future__ import annotations

import logging
from typing import Any, TYPE_CHECKING

from ..core.exceptions import ExecutorNotFoundError, RegistryFrozenError
from .types import ExecutionContext, ExecutionResult, StepDefinition, StepKind

if TYPE_CHECKING:
    from ..executors.base import BaseExecutor

logger = logging.getLogger(__name__)


class StepRegistryClass:
    """Registry for step executors.

    Executors are registered once at start-up, after which the registry is
    frozen. The registry holds no execution state.
    """

    def __init__(self) -> None:
        self._executors: dict[str, BaseExecutor] = {}
        self._frozen = False

    def has_executor(self, executor_id: str) -> bool:
        """Check if an executor id is registered."""
        return executor_id in self._executors

    def get_executor(self, executor_id: str) -> BaseExecutor:
        """
        Get the handler registered for an executor id.

        Raises:
            ExecutorNotFoundError: If the id is not registered
        """
        if executor_id not in self._executors:
            raise ExecutorNotFoundError(executor_id)
        return self._executors[executor_id]

    def register_executor(self, executor_id: str, handler: BaseExecutor) -> None:
        """Register a handler. Re-registering an id replaces it until the registry is frozen."""
        if self._frozen:
            raise RegistryFrozenError(executor_id)
        self._executors[executor_id] = handler

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def list_executors(self) -> list[dict[str, str]]:
        """List registered executors with their descriptions."""
        return [
            {"id": executor_id, "description": handler.description}
            for executor_id, handler in self._executors.items()
        ]

    async def execute_step(
        self,
        step: StepDefinition,
        payload: dict[str, Any],
        context: ExecutionContext,
    ) -> ExecutionResult:
        """
        Run the executor bound to a step.

        Handler exceptions become failed results. A decision step whose
        handler returns no decision token also yields a failed result.
        """
        handler = self.get_executor(step.executor_id)

        try:
            result = await handler.execute(step, payload, context)
        except Exception as e:
            logger.exception("Executor %s failed on step %s", step.executor_id, step.node_id)
            return ExecutionResult.failure(f"{type(e).__name__}: {e}")

        if step.kind == StepKind.DECISION and result.success:
            if not (result.decision or "").strip():
                return ExecutionResult.failure(
                    f"Decision step {step.node_id} produced no decision token",
                    data=result.data,
                )
        return result


# Singleton instance
step_registry = StepRegistryClass()


def register_all_executors(registry: StepRegistryClass | None = None) -> StepRegistryClass:
    """Register all built-in executors on the given registry (the singleton by default)."""
    from ..executors import (
        AIDecisionExecutor,
        ApprovalActionExecutor,
        AutoApprovalExecutor,
        DecisionEvaluatorExecutor,
        EmailActionExecutor,
        FormTriggerExecutor,
        GenericActionExecutor,
        HttpRequestExecutor,
        TriggerExecutor,
        WaitExecutor,
    )

    registry = registry if registry is not None else step_registry
    if registry.frozen:
        return registry

    all_executor_classes: list[type[BaseExecutor]] = [
        # Triggers
        TriggerExecutor,
        FormTriggerExecutor,
        # Actions
        GenericActionExecutor,
        EmailActionExecutor,
        HttpRequestExecutor,
        WaitExecutor,
        # Approvals and routing
        ApprovalActionExecutor,
        AutoApprovalExecutor,
        DecisionEvaluatorExecutor,
        AIDecisionExecutor,
    ]

    for executor_class in all_executor_classes:
        instance = executor_class()
        registry.register_executor(instance.executor_id, instance)

    return registry
