"""Step assignment policy and approver authorization."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..core.exceptions import ApprovalAuthorizationError
from .types import InstanceRecord, StepDefinition, TeamRecord

if TYPE_CHECKING:
    from ..repositories.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)

APPROVE_PERMISSION = "workflow.approve"


async def _candidate_teams(uow: UnitOfWork, template_id: str, step: StepDefinition) -> list[TeamRecord]:
    """The step's own team if it names one, otherwise the teams assigned to the template."""
    team_id = step.config.get("teamId")
    if team_id:
        team = await uow.directory.get_team(team_id)
        return [team] if team else []
    return await uow.directory.teams_for_template(template_id)


class AssigneeResolver:
    """Chooses who holds a step.

    Priority: explicit ``assigneeId`` on the step, then the team hierarchy
    (primary supervisor, first secondary supervisor, first member), then
    the requester who started the instance.
    """

    async def resolve(
        self,
        uow: UnitOfWork,
        template_id: str,
        step: StepDefinition,
        requester_id: str | None,
    ) -> str | None:
        explicit = step.config.get("assigneeId")
        if explicit:
            return str(explicit)

        for team in await _candidate_teams(uow, template_id, step):
            hierarchy = team.hierarchy()
            if hierarchy:
                return hierarchy[0]

        return requester_id


class ApproverAuthorizer:
    """Decides whether a user may act on an instance's current step.

    Checks, first match wins: the current assignee; an active delegation
    from the current assignee; team hierarchy (primary supervisor,
    secondary supervisors, members); an explicit ``workflow.approve`` grant.
    """

    async def authorize(
        self,
        uow: UnitOfWork,
        instance: InstanceRecord,
        step: StepDefinition,
        user_id: str,
    ) -> str:
        """
        Return the rule that authorized ``user_id``.

        Raises:
            ApprovalAuthorizationError: If no rule matches.
        """
        assignee = instance.current_assignee_id
        if assignee and user_id == assignee:
            return "assignee"

        if assignee:
            delegation = await uow.directory.find_active_delegation(
                delegator_id=assignee,
                delegate_id=user_id,
                template_id=instance.template_id,
            )
            if delegation:
                return "delegation"

        for team in await _candidate_teams(uow, instance.template_id, step):
            if user_id == team.primary_supervisor:
                return "team_primary_supervisor"
            if user_id in team.secondary_supervisors:
                return "team_secondary_supervisor"
            if user_id in team.members:
                return "team_member"

        if await uow.directory.has_permission(user_id, APPROVE_PERMISSION, instance.template_id):
            return "permission"

        logger.info(
            "Approval denied for %s on instance %s step %s (assignee %s)",
            user_id,
            instance.id,
            step.node_id,
            assignee,
        )
        raise ApprovalAuthorizationError(instance.id, user_id, step.node_id)
