"""Unit of work: one session, one tenant context, tenant-scoped repositories."""

from __future__ import annotations

import inspect
import logging
from typing import Any, Awaitable, Callable

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import TenantContextError

logger = logging.getLogger(__name__)

AfterCommitCallback = Callable[[], Awaitable[None] | None]


class UnitOfWork:
    """
    Async context manager wrapping a database session.

    Every repository call requires ``set_tenant()`` first. Cross-tenant scans
    used at start-up require ``set_system_scope()`` instead. Callbacks
    registered with ``after_commit`` run only once the transaction commits,
    so notifications and timers never refer to rolled-back state.
    """

    def __init__(self, session_factory: Callable[[], AsyncSession]) -> None:
        self._session_factory = session_factory
        self._session: AsyncSession | None = None
        self._tenant_id: str | None = None
        self._system_scope = False
        self._after_commit: list[AfterCommitCallback] = []

    async def __aenter__(self) -> UnitOfWork:
        from .directory_repository import DirectoryRepository
        from .execution_repository import ExecutionRepository
        from .instance_repository import InstanceRepository
        from .template_repository import TemplateRepository
        from .trigger_repository import TriggerRepository

        self._session = self._session_factory()
        self.templates = TemplateRepository(self)
        self.instances = InstanceRepository(self)
        self.executions = ExecutionRepository(self)
        self.triggers = TriggerRepository(self)
        self.directory = DirectoryRepository(self)
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        try:
            if exc_type is not None:
                await self.rollback()
            elif self.session.in_transaction():
                await self.rollback()
        finally:
            if self._is_postgres and self._tenant_id:
                await self.session.execute(text("RESET app.tenant_id"))
            await self.session.close()
            self._session = None

    @property
    def session(self) -> AsyncSession:
        if self._session is None:
            raise RuntimeError("UnitOfWork used outside of 'async with'")
        return self._session

    @property
    def _is_postgres(self) -> bool:
        return self._session is not None and self._session.bind.dialect.name == "postgresql"

    async def set_tenant(self, tenant_id: str) -> None:
        """Bind this unit of work to a tenant. On PostgreSQL also sets app.tenant_id for RLS."""
        if not tenant_id:
            raise TenantContextError()
        self._tenant_id = tenant_id
        self._system_scope = False
        if self._is_postgres:
            await self.session.execute(
                text("SELECT set_config('app.tenant_id', :tenant_id, false)"),
                {"tenant_id": tenant_id},
            )

    def set_system_scope(self) -> None:
        """Allow cross-tenant scans (start-up hydration only)."""
        self._system_scope = True

    @property
    def tenant_id(self) -> str:
        if not self._tenant_id:
            raise TenantContextError()
        return self._tenant_id

    def require_system_scope(self) -> None:
        if not self._system_scope:
            raise TenantContextError()

    def after_commit(self, callback: AfterCommitCallback) -> None:
        self._after_commit.append(callback)

    async def commit(self) -> None:
        await self.session.commit()
        callbacks, self._after_commit = self._after_commit, []
        for callback in callbacks:
            try:
                result = callback()
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("After-commit callback failed")

    async def rollback(self) -> None:
        self._after_commit = []
        await self.session.rollback()
