"""Base executor class for all workflow step executors."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, TYPE_CHECKING

from ..core.exceptions import StepExecutionError

if TYPE_CHECKING:
    from ..engine.types import ExecutionContext, ExecutionResult, StepDefinition


class BaseExecutor(ABC):
    """
    Abstract base class for step executors.

    Executors are stateless; one instance is registered per executor id and
    shared across all instances and tenants.
    """

    @property
    @abstractmethod
    def executor_id(self) -> str:
        """Executor identifier referenced by parsed steps."""
        ...

    @property
    @abstractmethod
    def description(self) -> str:
        """Short description of what the executor does."""
        ...

    @abstractmethod
    async def execute(
        self,
        step: StepDefinition,
        payload: dict[str, Any],
        context: ExecutionContext,
    ) -> ExecutionResult:
        """Perform the step's side effect."""
        ...

    def get_config(
        self,
        step: StepDefinition,
        key: str,
        default: Any = None,
        required: bool = False,
    ) -> Any:
        """Get a config value from the step definition."""
        value = step.config.get(key)
        if value is None or value == "":
            if required:
                raise StepExecutionError(
                    f'Missing required config "{key}" on step "{step.node_id}"',
                    step_id=step.node_id,
                )
            return default
        return value
