"""Tests for the instance state machine."""

import asyncio

import pytest

from orchestrator.core.exceptions import (
    AmbiguousTransitionError,
    ApprovalAuthorizationError,
    InstanceNotFoundError,
    InvalidDecisionError,
    InvalidInstanceStateError,
    StaleStateError,
    TemplateInactiveError,
    TemplateNotFoundError,
    UnmatchedDecisionError,
)
from orchestrator.engine.orchestrator import DECISION_EXECUTOR_ID, Orchestrator, select_next_step
from orchestrator.engine.types import (
    ApprovalDecision,
    DecisionType,
    ExecutionStatus,
    InstanceStatus,
    StepDefinition,
    StepKind,
)

from conftest import TENANT, approval_graph


def _decide(instance_id, user_id, decision, **kwargs):
    return ApprovalDecision(
        tenant_id=TENANT,
        instance_id=instance_id,
        user_id=user_id,
        decision=DecisionType(decision),
        **kwargs,
    )


def _routing_graph(default_decision):
    return {
        "nodes": [
            {"id": "start", "kind": "trigger"},
            {"id": "route", "kind": "decision", "data": {"config": {"defaultDecision": default_decision}}},
            {"id": "yes", "kind": "action", "data": {"actionType": "generic"}},
            {"id": "no", "kind": "action", "data": {"actionType": "generic"}},
        ],
        "edges": [
            {"source": "start", "target": "route"},
            {"source": "route", "target": "yes", "label": "Yes"},
            {"source": "route", "target": "no", "label": "No"},
        ],
    }


def _auto_approval_graph(max_amount):
    return {
        "nodes": [
            {"id": "start", "kind": "trigger"},
            {
                "id": "auto",
                "kind": "action",
                "data": {"actionType": "auto-approval", "config": {"conditions": {"maxAmount": max_amount}}},
            },
            {"id": "pay", "kind": "action", "data": {"actionType": "generic", "config": {"isEnd": True}}},
        ],
        "edges": [
            {"source": "start", "target": "auto"},
            {"source": "auto", "target": "pay"},
        ],
    }


async def _waiting_instance(orchestrator, make_template, context, **manager_config):
    template = await make_template(approval_graph(**manager_config))
    return await orchestrator.create_instance(template.id, context(), start=True)


# --- select_next_step ---


def test_select_next_step_matches_labels_case_insensitively():
    step = StepDefinition(
        node_id="d", kind=StepKind.DECISION, executor_id="decision-evaluator",
        next_step_ids=["a", "b"], conditions={"Approve": "a", "Reject": "b"},
    )

    assert select_next_step(step, " approve ") == "a"
    with pytest.raises(UnmatchedDecisionError):
        select_next_step(step, "maybe")


def test_select_next_step_for_linear_steps():
    end = StepDefinition(node_id="e", kind=StepKind.ACTION, executor_id="generic-action-executor")
    fan_out = StepDefinition(
        node_id="f", kind=StepKind.ACTION, executor_id="generic-action-executor", next_step_ids=["a", "b"]
    )

    assert select_next_step(end, None) is None
    with pytest.raises(AmbiguousTransitionError):
        select_next_step(fan_out, None)


# --- creation ---


async def test_create_instance_without_start(orchestrator, make_template, context, notifier):
    template = await make_template(approval_graph())

    record = await orchestrator.create_instance(template.id, context(request_data={"amount": 10}))

    assert record.status == InstanceStatus.RUNNING
    assert record.current_step_id == "start"
    assert record.version == 1
    assert record.workflow_data["requestData"] == {"amount": 10}
    assert record.workflow_data["stepSeq"] == 1
    assert "parsedGraph" in record.workflow_data

    _, executions = await orchestrator.get_instance_details(TENANT, record.id)
    assert [(e.step_id, e.status) for e in executions] == [("start", ExecutionStatus.PENDING)]
    assert notifier.to("requester")[0]["title"] == "New workflow request"


async def test_create_instance_rejects_unknown_and_inactive_templates(orchestrator, make_template, context):
    inactive = await make_template(approval_graph(), active=False)

    with pytest.raises(TemplateNotFoundError):
        await orchestrator.create_instance("tpl_missing", context())
    with pytest.raises(TemplateInactiveError):
        await orchestrator.create_instance(inactive.id, context())


async def test_templates_are_tenant_scoped(orchestrator, make_template, context):
    template = await make_template(approval_graph(), tenant_id="tenant-b")

    with pytest.raises(TemplateNotFoundError):
        await orchestrator.create_instance(template.id, context())


# --- the approval scenario ---


async def test_runs_until_approval_then_completes(orchestrator, make_template, context, notifier):
    record = await _waiting_instance(orchestrator, make_template, context)

    assert record.status == InstanceStatus.WAITING_APPROVAL
    assert record.current_step_id == "manager"
    assert record.current_assignee_id == "mgr"
    assert record.workflow_data["stepOutputs"]["mail"]["recipient"] == "ops@example.com"
    assert [n["title"] for n in notifier.to("mgr")] == ["Approval required"]

    record = await orchestrator.process_approval(_decide(record.id, "mgr", "approve", comments="fine"))

    assert record.status == InstanceStatus.COMPLETED
    assert record.completed_at is not None
    assert notifier.to("requester")[-1]["title"] == "Workflow completed"

    _, executions = await orchestrator.get_instance_details(TENANT, record.id)
    assert all(e.status == ExecutionStatus.COMPLETED for e in executions)
    assert [e.step_id for e in executions if e.executor_id != DECISION_EXECUTOR_ID] == [
        "start", "mail", "manager", "end"
    ]
    decision_row = next(e for e in executions if e.executor_id == DECISION_EXECUTOR_ID)
    assert decision_row.input_data["decision"] == "approve"
    assert decision_row.input_data["userId"] == "mgr"
    assert decision_row.input_data["authorizedBy"] == "assignee"
    assert decision_row.input_data["comments"] == "fine"


async def test_unauthorized_decision_changes_nothing(orchestrator, make_template, context):
    record = await _waiting_instance(orchestrator, make_template, context)

    with pytest.raises(ApprovalAuthorizationError):
        await orchestrator.process_approval(_decide(record.id, "stranger", "approve"))

    after, executions = await orchestrator.get_instance_details(TENANT, record.id)
    assert after.status == InstanceStatus.WAITING_APPROVAL
    assert after.version == record.version
    assert not any(e.executor_id == DECISION_EXECUTOR_ID for e in executions)


async def test_permission_grant_authorizes_approver(orchestrator, make_template, context, directory):
    record = await _waiting_instance(orchestrator, make_template, context)
    await directory(lambda d: d.grant_permission("auditor", "workflow.approve"))

    record = await orchestrator.process_approval(_decide(record.id, "auditor", "approve"))

    assert record.status == InstanceStatus.COMPLETED


async def test_team_hierarchy_assigns_and_authorizes(orchestrator, make_template, context, directory):
    await directory(
        lambda d: d.add_team("Finance", primary_supervisor="boss", members=["clerk"], team_id="team_fin")
    )
    graph = approval_graph()
    graph["nodes"][2]["data"]["config"] = {"teamId": "team_fin"}
    template = await make_template(graph)

    record = await orchestrator.create_instance(template.id, context(), start=True)
    assert record.current_assignee_id == "boss"

    record = await orchestrator.process_approval(_decide(record.id, "clerk", "approve"))

    assert record.status == InstanceStatus.COMPLETED
    _, executions = await orchestrator.get_instance_details(TENANT, record.id)
    decision_row = next(e for e in executions if e.executor_id == DECISION_EXECUTOR_ID)
    assert decision_row.input_data["authorizedBy"] == "team_member"


async def test_reject_is_terminal(orchestrator, make_template, context, notifier):
    record = await _waiting_instance(orchestrator, make_template, context)

    record = await orchestrator.process_approval(_decide(record.id, "mgr", "reject", reason="Over budget"))

    assert record.status == InstanceStatus.FAILED
    assert record.failure_reason == "Over budget"
    assert notifier.to("requester")[-1]["title"] == "Workflow rejected"

    _, executions = await orchestrator.get_instance_details(TENANT, record.id)
    manager_row = next(e for e in executions if e.step_id == "manager" and e.executor_id != DECISION_EXECUTOR_ID)
    assert manager_row.status == ExecutionStatus.FAILED

    with pytest.raises(InvalidInstanceStateError):
        await orchestrator.process_approval(_decide(record.id, "mgr", "approve"))


async def test_delegate_moves_holder_without_advancing(orchestrator, make_template, context, notifier):
    record = await _waiting_instance(orchestrator, make_template, context)

    record = await orchestrator.process_approval(
        _decide(record.id, "mgr", "delegate", delegate_to="deputy", reason="On leave")
    )

    assert record.status == InstanceStatus.WAITING_APPROVAL
    assert record.current_step_id == "manager"
    assert record.current_assignee_id == "deputy"
    trail = record.workflow_data["delegations"]
    assert trail[0]["previousHolder"] == "mgr"
    assert trail[0]["newHolder"] == "deputy"
    assert notifier.to("deputy")[0]["title"] == "Workflow delegated to you"

    with pytest.raises(ApprovalAuthorizationError):
        await orchestrator.process_approval(_decide(record.id, "mgr", "approve"))

    record = await orchestrator.process_approval(_decide(record.id, "deputy", "approve"))
    assert record.status == InstanceStatus.COMPLETED


async def test_delegate_requires_target(orchestrator, make_template, context):
    record = await _waiting_instance(orchestrator, make_template, context)

    with pytest.raises(InvalidDecisionError):
        await orchestrator.process_approval(_decide(record.id, "mgr", "delegate"))


async def test_decision_on_unknown_instance(orchestrator):
    with pytest.raises(InstanceNotFoundError):
        await orchestrator.process_approval(_decide("inst_missing", "mgr", "approve"))


async def test_approval_without_successor_completes(orchestrator, make_template, context):
    graph = {
        "nodes": [
            {"id": "start", "kind": "trigger"},
            {"id": "sign", "kind": "approval", "data": {"config": {"assigneeId": "mgr"}}},
        ],
        "edges": [{"source": "start", "target": "sign"}],
    }
    template = await make_template(graph)
    record = await orchestrator.create_instance(template.id, context(), start=True)

    record = await orchestrator.process_approval(_decide(record.id, "mgr", "approve"))

    assert record.status == InstanceStatus.COMPLETED


# --- routing and failures ---


async def test_decision_routes_by_label(orchestrator, make_template, context):
    template = await make_template(_routing_graph("yes"))

    record = await orchestrator.create_instance(template.id, context(), start=True)

    assert record.status == InstanceStatus.COMPLETED
    assert record.current_step_id == "yes"


async def test_unmatched_decision_fails_instance(orchestrator, make_template, context):
    failures = []

    async def listener(instance, reason, cause):
        failures.append((instance.id, cause))

    orchestrator.add_failure_listener(listener)
    template = await make_template(_routing_graph("maybe"))

    record = await orchestrator.create_instance(template.id, context(), start=True)

    assert record.status == InstanceStatus.FAILED
    assert "maybe" in record.failure_reason
    assert failures == [(record.id, "execution_error")]


async def test_failed_step_is_retried_then_fails(orchestrator, make_template, context):
    graph = approval_graph()
    graph["nodes"][1]["data"]["config"] = {"retryOnFail": 2, "retryDelayMs": 0}
    template = await make_template(graph)

    record = await orchestrator.create_instance(template.id, context(), start=True)

    assert record.status == InstanceStatus.FAILED
    assert "after 3 attempts" in record.failure_reason
    _, executions = await orchestrator.get_instance_details(TENANT, record.id)
    mail_row = next(e for e in executions if e.step_id == "mail")
    assert mail_row.status == ExecutionStatus.FAILED
    assert mail_row.attempts == 3


async def test_auto_rejection_stops_before_successor(orchestrator, make_template, context, notifier):
    failures = []

    async def listener(instance, reason, cause):
        failures.append((instance.id, cause))

    orchestrator.add_failure_listener(listener)
    template = await make_template(_auto_approval_graph(100))

    record = await orchestrator.create_instance(template.id, context(request_data={"amount": 5000}), start=True)

    assert record.status == InstanceStatus.FAILED
    assert "exceeds threshold" in record.failure_reason
    assert failures == [(record.id, "rejected")]
    assert notifier.to("requester")[-1]["title"] == "Workflow rejected"
    _, executions = await orchestrator.get_instance_details(TENANT, record.id)
    assert [e.step_id for e in executions] == ["start", "auto"]
    assert executions[-1].output_data["decision"] == "reject"


async def test_auto_approval_continues_to_successor(orchestrator, make_template, context):
    template = await make_template(_auto_approval_graph(100))

    record = await orchestrator.create_instance(template.id, context(request_data={"amount": 50}), start=True)

    assert record.status == InstanceStatus.COMPLETED
    _, executions = await orchestrator.get_instance_details(TENANT, record.id)
    assert [e.step_id for e in executions] == ["start", "auto", "pay"]


async def test_iteration_limit_fails_instance(session_factory, registry, notifier, escalations, make_template, context):
    orchestrator = Orchestrator(
        session_factory, registry=registry, notifier=notifier, escalations=escalations, max_iterations=5
    )
    graph = {
        "nodes": [
            {"id": "start", "kind": "trigger"},
            {"id": "work", "kind": "action", "data": {"actionType": "generic"}},
            {"id": "check", "kind": "decision", "data": {"config": {"defaultDecision": "retry"}}},
            {"id": "done", "kind": "action", "data": {"actionType": "generic"}},
        ],
        "edges": [
            {"source": "start", "target": "work"},
            {"source": "work", "target": "check"},
            {"source": "check", "target": "work", "label": "retry"},
            {"source": "check", "target": "done", "label": "done"},
        ],
    }
    template = await make_template(graph)

    record = await orchestrator.create_instance(template.id, context(), start=True)

    assert record.status == InstanceStatus.FAILED
    assert record.failure_reason == "Maximum workflow iterations exceeded"


# --- optimistic concurrency ---


async def test_save_with_stale_version_is_rejected(orchestrator, make_template, context):
    record = await _waiting_instance(orchestrator, make_template, context)

    async with orchestrator.unit_of_work() as uow:
        await uow.set_tenant(TENANT)
        first = await uow.instances.get(record.id)
        second = await uow.instances.get(record.id)
        await uow.instances.save(first)
        with pytest.raises(StaleStateError):
            await uow.instances.save(second)


async def test_decision_refused_while_step_is_executing(orchestrator, make_template, context):
    graph = approval_graph()
    graph["nodes"][1]["data"] = {"actionType": "wait", "config": {"duration": 0.3}}
    template = await make_template(graph)
    record = await orchestrator.create_instance(template.id, context())
    run = asyncio.create_task(orchestrator.execute_instance(TENANT, record.id))

    for _ in range(100):
        _, executions = await orchestrator.get_instance_details(TENANT, record.id)
        if any(e.step_id == "mail" and e.status == ExecutionStatus.RUNNING for e in executions):
            break
        await asyncio.sleep(0.01)
    else:
        pytest.fail("wait step never started")

    with pytest.raises(InvalidInstanceStateError):
        await orchestrator.process_approval(_decide(record.id, "requester", "reject"))
    # A second runner leaves the in-flight step alone
    assert (await orchestrator.execute_instance(TENANT, record.id)).current_step_id == "mail"

    record = await run
    assert record.status == InstanceStatus.WAITING_APPROVAL
    assert record.current_step_id == "manager"
    _, executions = await orchestrator.get_instance_details(TENANT, record.id)
    assert [e.step_id for e in executions if e.executor_id != DECISION_EXECUTOR_ID] == ["start", "mail", "manager"]


async def test_run_that_loses_the_version_race_returns_current_state(orchestrator, make_template, context, monkeypatch):
    template = await make_template(approval_graph())
    record = await orchestrator.create_instance(template.id, context())
    run_step = orchestrator._run_step

    async def run_step_with_concurrent_writer(step, current):
        async with orchestrator.unit_of_work() as uow:
            await uow.set_tenant(TENANT)
            await uow.instances.claim(await uow.instances.get(current.id))
            await uow.commit()
        return await run_step(step, current)

    monkeypatch.setattr(orchestrator, "_run_step", run_step_with_concurrent_writer)

    result = await orchestrator.execute_instance(TENANT, record.id)

    assert result.id == record.id
    assert result.status == InstanceStatus.RUNNING
    assert result.current_step_id == "start"
    assert result.version == record.version + 2


async def test_timestamps_round_trip(orchestrator, make_template, context):
    record = await _waiting_instance(orchestrator, make_template, context)
    record = await orchestrator.process_approval(_decide(record.id, "mgr", "approve"))

    stored = await orchestrator.get_instance(TENANT, record.id)

    assert stored.created_at <= stored.updated_at
    assert stored.created_at <= stored.completed_at


async def test_list_instances_filters_by_status(orchestrator, make_template, context):
    waiting = await _waiting_instance(orchestrator, make_template, context)
    template = await make_template(_routing_graph("no"))
    await orchestrator.create_instance(template.id, context(), start=True)

    listed = await orchestrator.list_instances(TENANT, status=InstanceStatus.WAITING_APPROVAL)

    assert [r.id for r in listed] == [waiting.id]
