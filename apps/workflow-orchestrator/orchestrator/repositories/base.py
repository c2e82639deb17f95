"""Base class for tenant-scoped repositories."""

from __future__ import annotations

import time
import uuid
from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import AsyncSession

if TYPE_CHECKING:
    from .unit_of_work import UnitOfWork


class TenantScopedRepository:
    """Repository whose queries are always filtered by the unit of work's tenant."""

    id_prefix = "id"

    def __init__(self, uow: UnitOfWork) -> None:
        self._uow = uow

    @property
    def _session(self) -> AsyncSession:
        return self._uow.session

    @property
    def _tenant_id(self) -> str:
        return self._uow.tenant_id

    def _generate_id(self) -> str:
        """Generate a unique, roughly time-ordered ID."""
        return f"{self.id_prefix}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:7]}"
