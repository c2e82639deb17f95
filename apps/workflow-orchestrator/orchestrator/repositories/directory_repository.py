"""Teams, delegations and permission grants used for assignment and RBAC."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import or_
from sqlmodel import select

from .base import TenantScopedRepository
from ..db.models import DelegationModel, PermissionGrantModel, TeamAssignmentModel, TeamModel
from ..engine.types import DelegationRecord, TeamRecord


class DirectoryRepository(TenantScopedRepository):
    """Read access to the tenant's organisation directory, plus writers for seeding."""

    async def get_team(self, team_id: str) -> TeamRecord | None:
        statement = select(TeamModel).where(
            TeamModel.id == team_id,
            TeamModel.tenant_id == self._tenant_id,
            TeamModel.is_active == True,  # noqa: E712
        )
        result = await self._session.execute(statement)
        db_team = result.scalars().first()
        return self._to_team(db_team) if db_team else None

    async def teams_for_template(self, template_id: str) -> list[TeamRecord]:
        """Active teams assigned to a template, highest priority (lowest number) first."""
        statement = (
            select(TeamModel)
            .join(TeamAssignmentModel, TeamAssignmentModel.team_id == TeamModel.id)
            .where(
                TeamAssignmentModel.tenant_id == self._tenant_id,
                TeamAssignmentModel.template_id == template_id,
                TeamAssignmentModel.is_active == True,  # noqa: E712
                TeamModel.tenant_id == self._tenant_id,
                TeamModel.is_active == True,  # noqa: E712
            )
            .order_by(TeamAssignmentModel.priority, TeamModel.id)
        )
        result = await self._session.execute(statement)
        return [self._to_team(t) for t in result.scalars().all()]

    async def find_active_delegation(
        self,
        delegator_id: str,
        delegate_id: str,
        template_id: str | None,
        at: datetime | None = None,
    ) -> DelegationRecord | None:
        at = at or datetime.now()
        statement = select(DelegationModel).where(
            DelegationModel.tenant_id == self._tenant_id,
            DelegationModel.delegator_id == delegator_id,
            DelegationModel.delegate_id == delegate_id,
            DelegationModel.is_active == True,  # noqa: E712
            DelegationModel.valid_from <= at,
            or_(DelegationModel.valid_until.is_(None), DelegationModel.valid_until >= at),
            or_(DelegationModel.template_id.is_(None), DelegationModel.template_id == template_id),
        )
        result = await self._session.execute(statement)
        db_delegation = result.scalars().first()
        if not db_delegation:
            return None
        return DelegationRecord(
            id=db_delegation.id,
            tenant_id=db_delegation.tenant_id,
            delegator_id=db_delegation.delegator_id,
            delegate_id=db_delegation.delegate_id,
            template_id=db_delegation.template_id,
            valid_from=db_delegation.valid_from,
            valid_until=db_delegation.valid_until,
            is_active=db_delegation.is_active,
        )

    async def has_permission(self, user_id: str, action: str, template_id: str | None = None) -> bool:
        statement = select(PermissionGrantModel).where(
            PermissionGrantModel.tenant_id == self._tenant_id,
            PermissionGrantModel.user_id == user_id,
            PermissionGrantModel.action.in_([action, "*"]),
            or_(PermissionGrantModel.template_id.is_(None), PermissionGrantModel.template_id == template_id),
        )
        result = await self._session.execute(statement)
        return result.scalars().first() is not None

    # --- Writers ---

    async def add_team(
        self,
        name: str,
        primary_supervisor: str | None = None,
        secondary_supervisors: list[str] | None = None,
        members: list[str] | None = None,
        team_id: str | None = None,
    ) -> TeamRecord:
        db_team = TeamModel(
            id=team_id or self._generate_id(),
            tenant_id=self._tenant_id,
            name=name,
            primary_supervisor=primary_supervisor,
            secondary_supervisors=secondary_supervisors or [],
            members=members or [],
        )
        self._session.add(db_team)
        await self._session.flush()
        return self._to_team(db_team)

    async def assign_team(self, team_id: str, template_id: str, priority: int = 100) -> None:
        self._session.add(
            TeamAssignmentModel(
                id=self._generate_id(),
                tenant_id=self._tenant_id,
                team_id=team_id,
                template_id=template_id,
                priority=priority,
            )
        )
        await self._session.flush()

    async def add_delegation(
        self,
        delegator_id: str,
        delegate_id: str,
        template_id: str | None = None,
        valid_until: datetime | None = None,
    ) -> None:
        self._session.add(
            DelegationModel(
                id=self._generate_id(),
                tenant_id=self._tenant_id,
                delegator_id=delegator_id,
                delegate_id=delegate_id,
                template_id=template_id,
                valid_until=valid_until,
            )
        )
        await self._session.flush()

    async def grant_permission(self, user_id: str, action: str, template_id: str | None = None) -> None:
        self._session.add(
            PermissionGrantModel(
                id=self._generate_id(),
                tenant_id=self._tenant_id,
                user_id=user_id,
                action=action,
                template_id=template_id,
            )
        )
        await self._session.flush()

    def _to_team(self, db_team: TeamModel) -> TeamRecord:
        return TeamRecord(
            id=db_team.id,
            tenant_id=db_team.tenant_id,
            name=db_team.name,
            primary_supervisor=db_team.primary_supervisor,
            secondary_supervisors=list(db_team.secondary_supervisors or []),
            members=list(db_team.members or []),
            is_active=db_team.is_active,
        )
