"""Escalation timers: cancellable delayed tasks keyed by (instance_id, step_id)."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

EscalationHandler = Callable[[str, str, str, int], Awaitable[object]]


class EscalationScheduler:
    """
    Owns one asyncio task per armed step timer.

    Scheduling the same (instance, step) again replaces the previous timer.
    Firing calls the bound handler with ``(tenant_id, instance_id, step_id,
    step_seq)``; the handler re-reads state, so a late firing is harmless.
    """

    def __init__(self) -> None:
        self._tasks: dict[tuple[str, str], asyncio.Task[None]] = {}
        self._handler: EscalationHandler | None = None
        self._running = False

    def bind(self, handler: EscalationHandler) -> None:
        self._handler = handler

    async def start(self) -> None:
        self._running = True

    async def shutdown(self) -> None:
        self._running = False
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    @property
    def running(self) -> bool:
        return self._running

    def schedule(
        self,
        tenant_id: str,
        instance_id: str,
        step_id: str,
        step_seq: int,
        delay_seconds: float,
    ) -> None:
        if not self._running:
            logger.warning("Escalation scheduler not running; timer for %s/%s not armed", instance_id, step_id)
            return

        key = (instance_id, step_id)
        self.cancel(instance_id, step_id)
        self._tasks[key] = asyncio.create_task(
            self._fire_after(key, tenant_id, step_seq, max(delay_seconds, 0.0)),
            name=f"escalation:{instance_id}:{step_id}",
        )
        logger.debug("Escalation armed for %s/%s in %.0fs", instance_id, step_id, delay_seconds)

    def cancel(self, instance_id: str, step_id: str) -> bool:
        task = self._tasks.pop((instance_id, step_id), None)
        if task is None:
            return False
        if task is not asyncio.current_task():
            task.cancel()
        return True

    def cancel_instance(self, instance_id: str) -> int:
        keys = [key for key in self._tasks if key[0] == instance_id]
        for key in keys:
            self.cancel(*key)
        return len(keys)

    def is_scheduled(self, instance_id: str, step_id: str) -> bool:
        return (instance_id, step_id) in self._tasks

    async def _fire_after(self, key: tuple[str, str], tenant_id: str, step_seq: int, delay: float) -> None:
        await asyncio.sleep(delay)

        if self._tasks.get(key) is asyncio.current_task():
            del self._tasks[key]
        if self._handler is None:
            logger.warning("Escalation fired for %s with no handler bound", key)
            return

        instance_id, step_id = key
        try:
            await self._handler(tenant_id, instance_id, step_id, step_seq)
        except Exception:
            logger.exception("Escalation handler failed for %s/%s", instance_id, step_id)
