"""Wait executor - pauses a workflow for a short, bounded duration."""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, TYPE_CHECKING

from .base import BaseExecutor
from ..core.config import settings
from ..engine.types import ExecutionResult

if TYPE_CHECKING:
    from ..engine.types import ExecutionContext, StepDefinition


class WaitExecutor(BaseExecutor):
    """Wait-state placeholder.

    Waits inline up to ``max_inline_wait_seconds``; longer waits should be
    modelled as an approval step with a timeout.
    """

    @property
    def executor_id(self) -> str:
        return "wait-executor"

    @property
    def description(self) -> str:
        return "Pause execution for a specified duration"

    async def execute(
        self,
        step: StepDefinition,
        payload: dict[str, Any],
        context: ExecutionContext,
    ) -> ExecutionResult:
        unit = self.get_config(step, "unit", "seconds")
        duration = float(self.get_config(step, "duration", 0))

        if unit == "minutes":
            seconds = duration * 60
        elif unit == "hours":
            seconds = duration * 3600
        else:
            seconds = duration

        capped = min(max(seconds, 0.0), settings.max_inline_wait_seconds)
        if capped:
            await asyncio.sleep(capped)

        return ExecutionResult.ok(
            message=f"Waited {capped:g}s",
            data={"requestedSeconds": seconds, "waitedSeconds": capped, "resumedAt": datetime.now().isoformat()},
        )
