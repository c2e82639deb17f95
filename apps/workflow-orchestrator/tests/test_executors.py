"""Tests for built-in executors that need no network."""

import pytest

from orchestrator.engine.types import ExecutionContext, StepDefinition, StepKind
from orchestrator.executors.ai_decision import parse_decision
from orchestrator.executors.approval import AutoApprovalExecutor
from orchestrator.executors.email import render_email_html
from orchestrator.executors.wait import WaitExecutor


def _context() -> ExecutionContext:
    return ExecutionContext(tenant_id="tenant-a", requester_id="u1", instance_id="inst_1")


def _step(executor_id, **config) -> StepDefinition:
    return StepDefinition(node_id="s1", kind=StepKind.ACTION, executor_id=executor_id, config=config)


@pytest.mark.parametrize(
    "reply, expected",
    [
        ('{"decision": "escalate", "reason": "large", "confidence": "high"}', ("escalate", "large", "high")),
        ('```json\n{"decision": "approve"}\n```', ("approve", "AI analysis completed", "medium")),
    ],
)
def test_parse_decision_json(reply, expected):
    assert parse_decision(reply, ["approve", "escalate"]) == expected


def test_parse_decision_falls_back_to_mentioned_option():
    decision, _, confidence = parse_decision("I would Reject this one.", ["approve", "reject"])

    assert decision == "reject"
    assert confidence == "low"
    assert parse_decision("no idea", ["approve"])[0] is None


async def test_auto_approval_thresholds():
    executor = AutoApprovalExecutor()
    step = _step("auto-approval-executor", conditions={"maxAmount": 100, "allowedRoles": ["staff"]})

    assert (await executor.execute(step, {"amount": 50, "requesterRole": "staff"}, _context())).decision == "approve"
    assert (await executor.execute(step, {"amount": 500}, _context())).decision == "reject"
    assert (await executor.execute(step, {"amount": 50, "requesterRole": "guest"}, _context())).decision == "reject"


async def test_wait_is_capped(monkeypatch):
    monkeypatch.setattr("orchestrator.executors.wait.settings.max_inline_wait_seconds", 0.01)

    result = await WaitExecutor().execute(_step("wait-executor", duration=2, unit="hours"), {}, _context())

    assert result.data["requestedSeconds"] == 7200
    assert result.data["waitedSeconds"] == 0.01


def test_render_email_html():
    assert render_email_html("hi", "plain") is None
    assert "<strong>bold</strong>" in render_email_html("**bold**", "markdown")
    assert render_email_html("<html><body>x</body></html>", "html") == "<html><body>x</body></html>"
