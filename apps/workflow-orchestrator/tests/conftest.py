"""
Shared pytest fixtures.

Persistence runs against a temporary SQLite file through aiosqlite; the
notifier is a recording fake.
"""

from __future__ import annotations

from typing import Any

import pytest
import pytest_asyncio

from orchestrator.db import create_session_factory, init_db
from orchestrator.engine.escalation import EscalationScheduler
from orchestrator.engine.orchestrator import Orchestrator
from orchestrator.engine.step_registry import StepRegistryClass, register_all_executors
from orchestrator.engine.types import InstanceContext, WorkflowGraph
from orchestrator.triggers import TriggerManager

TENANT = "tenant-a"


class RecordingNotifier:
    """Notifier that keeps every notification in memory."""

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []

    async def notify(
        self,
        tenant_id: str,
        user_id: str | None,
        title: str,
        message: str,
        priority: str = "medium",
        url: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> None:
        self.sent.append(
            {
                "tenant_id": tenant_id,
                "user_id": user_id,
                "title": title,
                "message": message,
                "priority": priority,
                "url": url,
                "data": data or {},
            }
        )

    def to(self, user_id: str) -> list[dict[str, Any]]:
        return [n for n in self.sent if n["user_id"] == user_id]


def approval_graph(**manager_config: Any) -> dict[str, Any]:
    """trigger -> send-mail -> manager approval -> end action."""
    return {
        "nodes": [
            {"id": "start", "kind": "trigger", "data": {"config": {"triggerType": "manual"}}},
            {
                "id": "mail",
                "kind": "action",
                "data": {"actionType": "send-email", "config": {"recipient": "ops@example.com", "subject": "New request"}},
            },
            {
                "id": "manager",
                "kind": "approval",
                "data": {"label": "Manager approval", "config": {"assigneeId": "mgr", **manager_config}},
            },
            {"id": "end", "kind": "action", "data": {"actionType": "generic", "config": {"isEnd": True}}},
        ],
        "edges": [
            {"source": "start", "target": "mail"},
            {"source": "mail", "target": "manager"},
            {"source": "manager", "target": "end"},
        ],
    }


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine, factory = create_session_factory(f"sqlite+aiosqlite:///{tmp_path / 'orchestrator.db'}")
    await init_db(engine)
    yield factory
    await engine.dispose()


@pytest.fixture
def registry() -> StepRegistryClass:
    return register_all_executors(StepRegistryClass())


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest_asyncio.fixture
async def escalations():
    scheduler = EscalationScheduler()
    await scheduler.start()
    yield scheduler
    await scheduler.shutdown()


@pytest.fixture
def orchestrator(session_factory, registry, notifier, escalations) -> Orchestrator:
    return Orchestrator(session_factory, registry=registry, notifier=notifier, escalations=escalations)


@pytest_asyncio.fixture
async def trigger_manager(orchestrator):
    manager = TriggerManager(orchestrator)
    await manager.init()
    orchestrator.add_failure_listener(manager.fire_error)
    yield manager
    await manager.teardown()


@pytest.fixture
def make_template(orchestrator):
    """Create a template directly through the repositories."""

    async def _make(graph: dict[str, Any], active: bool = True, tenant_id: str = TENANT, name: str = "Test"):
        async with orchestrator.unit_of_work() as uow:
            await uow.set_tenant(tenant_id)
            template = await uow.templates.create(name, WorkflowGraph.from_dict(graph))
            if active:
                template = await uow.templates.set_active(template.id, True)
            await uow.commit()
        return template

    return _make


@pytest.fixture
def directory(orchestrator):
    """Run a callback against the tenant's directory repository and commit."""

    async def _apply(callback, tenant_id: str = TENANT):
        async with orchestrator.unit_of_work() as uow:
            await uow.set_tenant(tenant_id)
            result = await callback(uow.directory)
            await uow.commit()
        return result

    return _apply


@pytest.fixture
def context():
    def _context(requester_id: str = "requester", **kwargs: Any) -> InstanceContext:
        return InstanceContext(tenant_id=TENANT, requester_id=requester_id, **kwargs)

    return _context
