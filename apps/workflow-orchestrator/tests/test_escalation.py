"""Tests for escalation timers and the escalation handler."""

import asyncio

from orchestrator.engine.escalation import EscalationScheduler
from orchestrator.engine.orchestrator import Orchestrator
from orchestrator.engine.types import ApprovalDecision, DecisionType, InstanceStatus

from conftest import TENANT, approval_graph


async def _waiting(orchestrator, make_template, context, **manager_config):
    template = await make_template(approval_graph(**manager_config))
    return await orchestrator.create_instance(template.id, context(), start=True)


# --- scheduler ---


async def test_scheduler_fires_bound_handler():
    fired = []

    async def handler(tenant_id, instance_id, step_id, step_seq):
        fired.append((tenant_id, instance_id, step_id, step_seq))

    scheduler = EscalationScheduler()
    scheduler.bind(handler)
    await scheduler.start()

    scheduler.schedule(TENANT, "inst_1", "manager", 3, 0.01)
    await asyncio.sleep(0.05)

    assert fired == [(TENANT, "inst_1", "manager", 3)]
    assert not scheduler.is_scheduled("inst_1", "manager")
    await scheduler.shutdown()


async def test_rescheduling_replaces_and_cancel_prevents_firing():
    fired = []

    async def handler(tenant_id, instance_id, step_id, step_seq):
        fired.append(step_seq)

    scheduler = EscalationScheduler()
    scheduler.bind(handler)
    await scheduler.start()

    scheduler.schedule(TENANT, "inst_1", "manager", 1, 0.01)
    scheduler.schedule(TENANT, "inst_1", "manager", 2, 0.02)
    scheduler.schedule(TENANT, "inst_2", "manager", 1, 0.01)
    assert scheduler.cancel("inst_2", "manager")
    assert not scheduler.cancel("inst_2", "manager")
    await asyncio.sleep(0.06)

    assert fired == [2]
    await scheduler.shutdown()


async def test_scheduler_ignores_schedules_until_started():
    scheduler = EscalationScheduler()

    scheduler.schedule(TENANT, "inst_1", "manager", 1, 60)

    assert not scheduler.is_scheduled("inst_1", "manager")


async def test_shutdown_cancels_pending_timers():
    scheduler = EscalationScheduler()
    await scheduler.start()
    scheduler.schedule(TENANT, "inst_1", "a", 1, 60)
    scheduler.schedule(TENANT, "inst_1", "b", 1, 60)

    await scheduler.shutdown()

    assert not scheduler.is_scheduled("inst_1", "a")
    assert not scheduler.running


# --- orchestrator integration ---


async def test_approval_step_arms_timer_and_decision_cancels_it(orchestrator, make_template, context):
    record = await _waiting(orchestrator, make_template, context, timeoutMinutes=30)

    assert orchestrator.escalations.is_scheduled(record.id, "manager")
    assert record.workflow_data["escalationDueAt"] is not None

    await orchestrator.process_approval(
        ApprovalDecision(tenant_id=TENANT, instance_id=record.id, user_id="mgr", decision=DecisionType.APPROVE)
    )

    assert not orchestrator.escalations.is_scheduled(record.id, "manager")


async def test_escalation_reassigns_to_target(orchestrator, make_template, context, notifier):
    record = await _waiting(orchestrator, make_template, context, timeoutMinutes=30, escalationTarget="director")

    escalated = await orchestrator.handle_escalation(TENANT, record.id, "manager", record.step_seq)

    assert escalated.status == InstanceStatus.WAITING_APPROVAL
    assert escalated.current_assignee_id == "director"
    assert escalated.escalation_count == 1
    assert escalated.workflow_data["originalAssignee"] == "mgr"
    assert escalated.workflow_data["escalations"][0]["previousHolder"] == "mgr"
    notification = notifier.to("director")[-1]
    assert notification["title"] == "Workflow escalated"
    assert notification["priority"] == "critical"

    record = await orchestrator.process_approval(
        ApprovalDecision(tenant_id=TENANT, instance_id=record.id, user_id="director", decision=DecisionType.APPROVE)
    )
    assert record.status == InstanceStatus.COMPLETED


async def test_escalation_falls_back_to_next_supervisor(orchestrator, make_template, context, directory):
    await directory(
        lambda d: d.add_team("Ops", primary_supervisor="lead", secondary_supervisors=["head"], team_id="team_ops")
    )
    graph = approval_graph()
    graph["nodes"][2]["data"]["config"] = {"teamId": "team_ops", "timeoutMinutes": 10}
    template = await make_template(graph)
    record = await orchestrator.create_instance(template.id, context(), start=True)
    assert record.current_assignee_id == "lead"

    escalated = await orchestrator.handle_escalation(TENANT, record.id, "manager", record.step_seq)

    assert escalated.current_assignee_id == "head"


async def test_escalation_is_a_noop_for_stale_sequence(orchestrator, make_template, context):
    record = await _waiting(orchestrator, make_template, context, timeoutMinutes=30, escalationTarget="director")

    assert await orchestrator.handle_escalation(TENANT, record.id, "manager", record.step_seq - 1) is None
    assert await orchestrator.handle_escalation(TENANT, record.id, "mail", record.step_seq) is None

    after = await orchestrator.get_instance(TENANT, record.id)
    assert after.current_assignee_id == "mgr"
    assert after.version == record.version


async def test_escalation_after_decision_is_a_noop(orchestrator, make_template, context):
    record = await _waiting(orchestrator, make_template, context, timeoutMinutes=30, escalationTarget="director")
    await orchestrator.process_approval(
        ApprovalDecision(tenant_id=TENANT, instance_id=record.id, user_id="mgr", decision=DecisionType.REJECT)
    )

    assert await orchestrator.handle_escalation(TENANT, record.id, "manager", record.step_seq) is None
    assert await orchestrator.handle_escalation(TENANT, "inst_missing", "manager", 1) is None


async def test_rehydrate_rearms_open_timers(session_factory, registry, notifier, orchestrator, make_template, context):
    record = await _waiting(orchestrator, make_template, context, timeoutMinutes=30)

    scheduler = EscalationScheduler()
    await scheduler.start()
    restarted = Orchestrator(session_factory, registry=registry, notifier=notifier, escalations=scheduler)

    assert await restarted.rehydrate_escalations() == 1
    assert scheduler.is_scheduled(record.id, "manager")
    await scheduler.shutdown()
