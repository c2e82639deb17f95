"""Seed the database with a demo tenant, its directory and two published templates."""

from __future__ import annotations

import asyncio
import logging

from .session import async_session_factory, init_db
from ..engine.orchestrator import Orchestrator
from ..engine.types import WorkflowGraph
from ..triggers import TriggerManager

logger = logging.getLogger(__name__)

DEMO_TENANT = "tenant-demo"

EXAMPLE_TEMPLATES = [
    {
        "id": "tpl_expense_approval",
        "name": "Expense approval",
        "description": "Manager approval for expenses, with auto-approval of small amounts",
        "definition": {
            "nodes": [
                {"id": "start", "kind": "trigger", "data": {"label": "Expense submitted", "config": {"triggerType": "manual"}}},
                {
                    "id": "route",
                    "kind": "decision",
                    "data": {
                        "label": "Amount check",
                        "config": {"condition": "amount < 100", "trueDecision": "auto", "falseDecision": "manager"},
                    },
                },
                {
                    "id": "manager",
                    "kind": "approval",
                    "data": {
                        "label": "Manager approval",
                        "config": {
                            "teamId": "team_finance",
                            "timeoutMinutes": 1440,
                            "message": "Expense approval requested",
                        },
                    },
                },
                {
                    "id": "notify",
                    "kind": "action",
                    "data": {
                        "actionType": "send-email",
                        "label": "Notify requester",
                        "config": {"subject": "Expense approved", "message": "Your expense of {{ amount }} was approved.", "isEnd": True},
                    },
                },
            ],
            "edges": [
                {"source": "start", "target": "route"},
                {"source": "route", "target": "notify", "label": "auto"},
                {"source": "route", "target": "manager", "label": "manager"},
                {"source": "manager", "target": "notify"},
            ],
            "viewport": {"x": 0, "y": 0, "zoom": 1},
        },
    },
    {
        "id": "tpl_lead_intake",
        "name": "Lead intake",
        "description": "Webhook-fed lead qualification",
        "definition": {
            "nodes": [
                {
                    "id": "start",
                    "kind": "trigger",
                    "data": {
                        "label": "Lead webhook",
                        "config": {
                            "triggerType": "webhook",
                            "path": "/leads",
                            "httpMethod": "POST",
                            "allowedEvents": ["lead.created"],
                            "requiredFields": ["email"],
                            "security": {"signingSecret": "change-me"},
                        },
                    },
                },
                {
                    "id": "review",
                    "kind": "approval",
                    "data": {"label": "Sales review", "config": {"teamId": "team_sales"}},
                },
            ],
            "edges": [{"source": "start", "target": "review"}],
        },
    },
]

EXAMPLE_TEAMS = [
    {
        "team_id": "team_finance",
        "name": "Finance",
        "primary_supervisor": "alice",
        "secondary_supervisors": ["bob"],
        "members": ["carol"],
        "templates": ["tpl_expense_approval"],
    },
    {
        "team_id": "team_sales",
        "name": "Sales",
        "primary_supervisor": "dave",
        "secondary_supervisors": [],
        "members": ["erin"],
        "templates": ["tpl_lead_intake"],
    },
]


async def seed_templates() -> None:
    """Seed the demo tenant. Existing templates are skipped."""
    await init_db()

    orchestrator = Orchestrator(async_session_factory)
    trigger_manager = TriggerManager(orchestrator)

    async with orchestrator.unit_of_work() as uow:
        await uow.set_tenant(DEMO_TENANT)

        for team in EXAMPLE_TEAMS:
            if await uow.directory.get_team(team["team_id"]):
                continue
            await uow.directory.add_team(
                team["name"],
                primary_supervisor=team["primary_supervisor"],
                secondary_supervisors=team["secondary_supervisors"],
                members=team["members"],
                team_id=team["team_id"],
            )
            for template_id in team["templates"]:
                await uow.directory.assign_team(team["team_id"], template_id)

        for user_id, action in [("carol", "workflow.create_instance"), ("alice", "*")]:
            if not await uow.directory.has_permission(user_id, action):
                await uow.directory.grant_permission(user_id, action)

        added = []
        for template in EXAMPLE_TEMPLATES:
            if await uow.templates.get(template["id"]):
                logger.info("Skipping '%s' - already exists", template["name"])
                continue
            await uow.templates.create(
                template["name"],
                WorkflowGraph.from_dict(template["definition"]),
                description=template["description"],
                template_id=template["id"],
            )
            await uow.templates.set_active(template["id"], True)
            added.append(template["id"])

        await uow.commit()

    for template_id in added:
        await trigger_manager.activate_template_triggers(DEMO_TENANT, template_id)
        logger.info("Added template: %s", template_id)

    logger.info("Seeding complete. Added %d templates.", len(added))


def main() -> None:
    """Run the seed script."""
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    asyncio.run(seed_templates())


if __name__ == "__main__":
    main()
