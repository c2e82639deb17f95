"""Notification collaborator used by the orchestrator."""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Callable, Literal, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from ..db.models import NotificationModel

logger = logging.getLogger(__name__)

Priority = Literal["low", "medium", "high", "critical"]


class Notifier(Protocol):
    """Fire-and-forget notification sink. Implementations must never raise."""

    async def notify(
        self,
        tenant_id: str,
        user_id: str | None,
        title: str,
        message: str,
        priority: Priority = "medium",
        url: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> None: ...


class DatabaseNotifier:
    """Stores in-app notifications as rows; delivery channels read from there."""

    def __init__(self, session_factory: Callable[[], AsyncSession]) -> None:
        self._session_factory = session_factory

    async def notify(
        self,
        tenant_id: str,
        user_id: str | None,
        title: str,
        message: str,
        priority: Priority = "medium",
        url: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> None:
        if not user_id:
            logger.debug("Skipping notification '%s' without recipient", title)
            return
        try:
            async with self._session_factory() as session:
                session.add(
                    NotificationModel(
                        id=f"ntf_{int(time.time() * 1000)}_{uuid.uuid4().hex[:7]}",
                        tenant_id=tenant_id,
                        user_id=user_id,
                        title=title,
                        message=message,
                        priority=priority,
                        url=url,
                        data=data or {},
                    )
                )
                await session.commit()
        except Exception:
            logger.exception("Failed to store notification '%s' for %s/%s", title, tenant_id, user_id)

